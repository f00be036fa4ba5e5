"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create question_bank_items table
    op.create_table(
        'question_bank_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('subject_id', sa.String(64), index=True),
        sa.Column('module_id', sa.String(64), index=True),
        sa.Column('topic_id', sa.String(64), index=True),
        sa.Column('learning_outcome_id', sa.String(64)),
        sa.Column('type', sa.String(32), nullable=False, index=True),
        sa.Column('difficulty', sa.String(16), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_html', sa.Text()),
        sa.Column('image_url', sa.String(512)),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('correct_answer', sa.JSON(), nullable=False),
        sa.Column('explanation', sa.Text()),
        sa.Column('solution_steps', sa.JSON(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('time_limit_seconds', sa.Integer()),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('source', sa.String(32), nullable=False),
        sa.Column('source_reference', sa.String(255)),
        sa.Column('language', sa.String(8), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_by', sa.String(64)),
        sa.Column('reviewed_by', sa.String(64)),
        sa.Column('reviewed_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False)
    )

    # Create assessments table
    op.create_table(
        'assessments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text()),
        sa.Column('type', sa.String(32), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, index=True),
        sa.Column('subject_id', sa.String(64), index=True),
        sa.Column('grade', sa.Integer()),
        sa.Column('module_id', sa.String(64)),
        sa.Column('topic_id', sa.String(64)),
        sa.Column('time_limit_minutes', sa.Integer()),
        sa.Column('total_marks', sa.Integer()),
        sa.Column('pass_mark', sa.Integer()),
        sa.Column('max_attempts', sa.Integer()),
        sa.Column('shuffle_questions', sa.Boolean(), nullable=False),
        sa.Column('shuffle_options', sa.Boolean(), nullable=False),
        sa.Column('show_results_immediately', sa.Boolean(), nullable=False),
        sa.Column('show_correct_answers', sa.Boolean(), nullable=False),
        sa.Column('show_explanations', sa.Boolean(), nullable=False),
        sa.Column('available_from', sa.DateTime()),
        sa.Column('available_until', sa.DateTime()),
        sa.Column('instructions', sa.Text()),
        sa.Column('created_by', sa.String(64)),
        sa.Column('published_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False)
    )

    # Create assessment_sections table
    op.create_table(
        'assessment_sections',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36), sa.ForeignKey('assessments.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255)),
        sa.Column('instructions', sa.Text()),
        sa.Column('time_limit_minutes', sa.Integer())
    )

    # Create assessment_questions table
    op.create_table(
        'assessment_questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36), sa.ForeignKey('assessments.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('section_id', sa.String(36), sa.ForeignKey('assessment_sections.id', ondelete='SET NULL')),
        sa.Column('question_bank_item_id', sa.String(36), sa.ForeignKey('question_bank_items.id'),
                  nullable=False, index=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('override_points', sa.Integer())
    )

    # Create assessment_attempts table
    op.create_table(
        'assessment_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('assessment_id', sa.String(36), sa.ForeignKey('assessments.id'), nullable=False, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, index=True),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('submitted_at', sa.DateTime()),
        sa.Column('total_score', sa.Float()),
        sa.Column('max_score', sa.Float()),
        sa.Column('percentage', sa.Integer()),
        sa.Column('time_spent_seconds', sa.Integer()),
        sa.Column('graded_by', sa.String(64)),
        sa.Column('graded_at', sa.DateTime()),
        sa.Column('feedback', sa.Text()),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.UniqueConstraint('assessment_id', 'user_id', 'attempt_number', name='uq_assessment_attempts_ordinal')
    )

    # Create attempt_answers table
    op.create_table(
        'attempt_answers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('attempt_id', sa.String(36), sa.ForeignKey('assessment_attempts.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('assessment_question_id', sa.String(36), sa.ForeignKey('assessment_questions.id'),
                  nullable=False),
        sa.Column('question_bank_item_id', sa.String(36), sa.ForeignKey('question_bank_items.id'),
                  nullable=False),
        sa.Column('answer', sa.JSON()),
        sa.Column('is_correct', sa.Boolean()),
        sa.Column('score', sa.Float()),
        sa.Column('max_score', sa.Float()),
        sa.Column('time_taken_seconds', sa.Integer()),
        sa.Column('marker_comment', sa.Text()),
        sa.Column('answered_at', sa.DateTime()),
        sa.UniqueConstraint('attempt_id', 'assessment_question_id', name='uq_attempt_answers_question')
    )

    # Create topic_mastery table
    op.create_table(
        'topic_mastery',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('topic_id', sa.String(64), nullable=False),
        sa.Column('questions_attempted', sa.Integer(), nullable=False),
        sa.Column('questions_correct', sa.Integer(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('max_score', sa.Float(), nullable=False),
        sa.Column('mastery_percentage', sa.Integer(), nullable=False),
        sa.Column('last_attempt_at', sa.DateTime()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('user_id', 'topic_id', name='uq_topic_mastery_user_topic')
    )

    # Create learning_profiles table
    op.create_table(
        'learning_profiles',
        sa.Column('user_id', sa.String(64), primary_key=True),
        sa.Column('recommended_difficulty', sa.String(16), nullable=False),
        sa.Column('last_percentage', sa.Integer()),
        sa.Column('last_attempt_id', sa.String(36)),
        sa.Column('updated_at', sa.DateTime(), nullable=False)
    )


def downgrade():
    op.drop_table('learning_profiles')
    op.drop_table('topic_mastery')
    op.drop_table('attempt_answers')
    op.drop_table('assessment_attempts')
    op.drop_table('assessment_questions')
    op.drop_table('assessment_sections')
    op.drop_table('assessments')
    op.drop_table('question_bank_items')

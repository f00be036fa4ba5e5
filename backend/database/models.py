"""
Database Models

SQLAlchemy tables for the question bank, assessments, attempts and mastery.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)

from backend.database.base import ModelBase

ID = String(36)


class QuestionBankItemModel(ModelBase):
    __tablename__ = "question_bank_items"

    id = Column(ID, primary_key=True)
    subject_id = Column(String(64), index=True)
    module_id = Column(String(64), index=True)
    topic_id = Column(String(64), index=True)
    learning_outcome_id = Column(String(64))
    type = Column(String(32), nullable=False, index=True)
    difficulty = Column(String(16), nullable=False, default="medium")
    question_text = Column(Text, nullable=False)
    question_html = Column(Text)
    image_url = Column(String(512))
    options = Column(JSON, nullable=False, default=list)
    correct_answer = Column(JSON, nullable=False)
    explanation = Column(Text)
    solution_steps = Column(JSON, nullable=False, default=list)
    points = Column(Integer, nullable=False, default=1)
    time_limit_seconds = Column(Integer)
    tags = Column(JSON, nullable=False, default=list)
    source = Column(String(32), nullable=False, default="manual")
    source_reference = Column(String(255))
    language = Column(String(8), nullable=False, default="en")
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(64))
    reviewed_by = Column(String(64))
    reviewed_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class AssessmentModel(ModelBase):
    __tablename__ = "assessments"

    id = Column(ID, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    type = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default="draft", index=True)
    subject_id = Column(String(64), index=True)
    grade = Column(Integer)
    module_id = Column(String(64))
    topic_id = Column(String(64))
    time_limit_minutes = Column(Integer)
    total_marks = Column(Integer)
    pass_mark = Column(Integer)
    max_attempts = Column(Integer)
    shuffle_questions = Column(Boolean, nullable=False, default=False)
    shuffle_options = Column(Boolean, nullable=False, default=False)
    show_results_immediately = Column(Boolean, nullable=False, default=True)
    show_correct_answers = Column(Boolean, nullable=False, default=True)
    show_explanations = Column(Boolean, nullable=False, default=True)
    available_from = Column(DateTime)
    available_until = Column(DateTime)
    instructions = Column(Text)
    created_by = Column(String(64))
    published_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)


class AssessmentSectionModel(ModelBase):
    __tablename__ = "assessment_sections"

    id = Column(ID, primary_key=True)
    assessment_id = Column(ID, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    order = Column(Integer, nullable=False)
    title = Column(String(255))
    instructions = Column(Text)
    time_limit_minutes = Column(Integer)


class AssessmentQuestionModel(ModelBase):
    __tablename__ = "assessment_questions"

    id = Column(ID, primary_key=True)
    assessment_id = Column(ID, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(ID, ForeignKey("assessment_sections.id", ondelete="SET NULL"))
    question_bank_item_id = Column(ID, ForeignKey("question_bank_items.id"), nullable=False, index=True)
    order = Column(Integer, nullable=False)
    override_points = Column(Integer)


class AssessmentAttemptModel(ModelBase):
    __tablename__ = "assessment_attempts"
    __table_args__ = (
        UniqueConstraint("assessment_id", "user_id", "attempt_number", name="uq_assessment_attempts_ordinal"),
    )

    id = Column(ID, primary_key=True)
    assessment_id = Column(ID, ForeignKey("assessments.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    attempt_number = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False)
    submitted_at = Column(DateTime)
    total_score = Column(Float)
    max_score = Column(Float)
    percentage = Column(Integer)
    time_spent_seconds = Column(Integer)
    graded_by = Column(String(64))
    graded_at = Column(DateTime)
    feedback = Column(Text)
    attempt_metadata = Column("metadata", JSON, nullable=False, default=dict)


class AttemptAnswerModel(ModelBase):
    __tablename__ = "attempt_answers"
    __table_args__ = (
        UniqueConstraint("attempt_id", "assessment_question_id", name="uq_attempt_answers_question"),
    )

    id = Column(ID, primary_key=True)
    attempt_id = Column(ID, ForeignKey("assessment_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    assessment_question_id = Column(ID, ForeignKey("assessment_questions.id"), nullable=False)
    question_bank_item_id = Column(ID, ForeignKey("question_bank_items.id"), nullable=False)
    answer = Column(JSON)
    is_correct = Column(Boolean)
    score = Column(Float)
    max_score = Column(Float)
    time_taken_seconds = Column(Integer)
    marker_comment = Column(Text)
    answered_at = Column(DateTime)


class TopicMasteryModel(ModelBase):
    __tablename__ = "topic_mastery"
    __table_args__ = (
        UniqueConstraint("user_id", "topic_id", name="uq_topic_mastery_user_topic"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    topic_id = Column(String(64), nullable=False)
    questions_attempted = Column(Integer, nullable=False, default=0)
    questions_correct = Column(Integer, nullable=False, default=0)
    total_score = Column(Float, nullable=False, default=0.0)
    max_score = Column(Float, nullable=False, default=0.0)
    mastery_percentage = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=False)


class LearningProfileModel(ModelBase):
    __tablename__ = "learning_profiles"

    user_id = Column(String(64), primary_key=True)
    recommended_difficulty = Column(String(16), nullable=False, default="medium")
    last_percentage = Column(Integer)
    last_attempt_id = Column(ID)
    updated_at = Column(DateTime, nullable=False)

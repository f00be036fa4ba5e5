"""
Assessment Attempt Engine backend.

Question bank, assessment composition, timed attempts, automatic grading and
topic mastery tracking.
"""

__version__ = "0.1.0"

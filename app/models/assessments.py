from sqlalchemy import (
    Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON, Float, Enum, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.database import Base
import enum

class QuestionType(str, enum.Enum):
    SINGLE_CHOICE = "SINGLE_CHOICE"
    TRUE_FALSE = "TRUE_FALSE"
    SHORT_ANSWER = "SHORT_ANSWER"
    LONG_ANSWER = "LONG_ANSWER"

    @property
    def is_objective(self) -> bool:
        return self in (QuestionType.SINGLE_CHOICE, QuestionType.TRUE_FALSE)

    @property
    def is_free_text(self) -> bool:
        return self in (QuestionType.SHORT_ANSWER, QuestionType.LONG_ANSWER)

class SubmissionStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"
    TIME_UP = "TIME_UP"

class Assessment(Base):
    """Quiz/test attached to a course"""
    __tablename__ = "assessments"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    time_limit = Column(Integer)  # minutes
    total_marks = Column(Integer, nullable=False, default=100)
    passing_marks = Column(Integer, nullable=False, default=40)
    attempts = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    randomize_questions = Column(Boolean, nullable=False, default=False)
    start_date = Column(DateTime(timezone=True))
    end_date = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    course = relationship("Course", back_populates="assessments")
    questions = relationship(
        "Question", cascade="all, delete-orphan",
        order_by="Question.order", back_populates="assessment"
    )
    submissions = relationship("AssessmentSubmission", cascade="all, delete-orphan", back_populates="assessment")

class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False)
    question_text = Column(Text, nullable=False)
    question_type = Column(Enum(QuestionType), nullable=False)
    marks = Column(Integer, nullable=False, default=1)
    order = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    explanation = Column(Text)
    image_url = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    assessment = relationship("Assessment", back_populates="questions")
    options = relationship(
        "QuestionOption", cascade="all, delete-orphan",
        order_by="QuestionOption.order", back_populates="question"
    )

    @property
    def correct_option(self):
        return next((opt for opt in self.options if opt.is_correct), None)

class QuestionOption(Base):
    __tablename__ = "question_options"

    id = Column(Integer, primary_key=True, index=True)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    option_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    order = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    question = relationship("Question", back_populates="options")

class AssessmentSubmission(Base):
    """One attempt by one user at one assessment"""
    __tablename__ = "assessment_submissions"
    __table_args__ = (
        UniqueConstraint("assessment_id", "user_id", "attempt_number", name="uq_submission_attempt"),
    )

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    attempt_number = Column(Integer, nullable=False, default=1)
    status = Column(Enum(SubmissionStatus), nullable=False, default=SubmissionStatus.IN_PROGRESS)
    total_marks = Column(Integer, nullable=False)
    obtained_marks = Column(Integer, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0.0)
    is_passed = Column(Boolean, nullable=False, default=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True))
    time_spent = Column(Integer)  # seconds
    question_order = Column(JSON)  # frozen presentation order (question ids)
    is_checked_by_teacher = Column(Boolean, nullable=False, default=False)
    checked_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    checked_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    assessment = relationship("Assessment", back_populates="submissions")
    user = relationship("User", foreign_keys=[user_id])
    checked_by_teacher = relationship("User", foreign_keys=[checked_by])
    answers = relationship("SubmissionAnswer", cascade="all, delete-orphan", back_populates="submission")

class SubmissionAnswer(Base):
    __tablename__ = "submission_answers"
    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_answer_submission_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    submission_id = Column(Integer, ForeignKey("assessment_submissions.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    selected_option_id = Column(Integer, ForeignKey("question_options.id", ondelete="SET NULL"))
    text_answer = Column(Text)
    is_correct = Column(Boolean, nullable=False, default=False)
    marks_obtained = Column(Integer, nullable=False, default=0)
    is_graded = Column(Boolean, nullable=False, default=False)
    time_spent = Column(Integer)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    submission = relationship("AssessmentSubmission", back_populates="answers")
    question = relationship("Question")
    selected_option = relationship("QuestionOption")

    @property
    def needs_grading(self) -> bool:
        return (
            self.question.question_type.is_free_text
            and self.text_answer is not None
            and not self.is_graded
        )

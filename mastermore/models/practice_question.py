"""Practice question models."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, Float, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from mastermore.db.base import Base


class SubmissionStatus:
    """Tri-state outcome of a practice answer."""

    PENDING = "pending"
    CORRECT = "correct"
    INCORRECT = "incorrect"

    ALL = (PENDING, CORRECT, INCORRECT)


class PracticeQuestion(Base):
    """Single-attempt practice question inside a module."""

    __tablename__ = "practice_questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    question = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # multiple_choice / true_false / coding
    points = Column(Integer, nullable=False, default=1)
    sequence_order = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    module = relationship("Module", back_populates="practice_questions")
    options = relationship(
        "PracticeQuestionOption", back_populates="question", cascade="all, delete-orphan",
        order_by="PracticeQuestionOption.sequence_order",
    )
    submissions = relationship("PracticeQuestionSubmission", back_populates="question", cascade="all, delete-orphan")


class PracticeQuestionOption(Base):
    """Choice for multiple-choice and true/false practice questions."""

    __tablename__ = "practice_question_options"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id = Column(Uuid, ForeignKey("practice_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(String(500), nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    sequence_order = Column(Integer, nullable=False, default=1)

    question = relationship("PracticeQuestion", back_populates="options")


class PracticeQuestionSubmission(Base):
    """A learner's one and only answer to a practice question."""

    __tablename__ = "practice_question_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "question_id", name="uq_practice_submission_user_question"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Uuid, ForeignKey("practice_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    answer = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=SubmissionStatus.PENDING)
    points = Column(Float, nullable=False, default=0.0)
    feedback = Column(Text)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime)
    graded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    # Relationships
    question = relationship("PracticeQuestion", back_populates="submissions")
    user = relationship("User", foreign_keys=[user_id])

    @property
    def is_correct(self) -> bool:
        return self.status == SubmissionStatus.CORRECT

"""Module exam and final exam models."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, Float, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from mastermore.db.base import Base


OBJECTIVE_QUESTION_TYPES = ("multiple_choice", "true_false")
MANUAL_QUESTION_TYPES = ("coding", "essay")


class ModuleExam(Base):
    """Exam that gates completion of a module."""

    __tablename__ = "module_exams"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_id = Column(Uuid, ForeignKey("modules.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text)
    passing_score = Column(Integer, nullable=False, default=70)  # percent
    time_limit = Column(Integer)  # minutes
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    module = relationship("Module", back_populates="exams")
    questions = relationship(
        "ExamQuestion", back_populates="module_exam", cascade="all, delete-orphan",
        order_by="ExamQuestion.sequence_order",
    )
    submissions = relationship("ModuleExamSubmission", back_populates="exam", cascade="all, delete-orphan")


class FinalExam(Base):
    """Course-level exam unlocked after every project is graded."""

    __tablename__ = "final_exams"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text)
    passing_score = Column(Integer, nullable=False, default=70)
    time_limit = Column(Integer)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    course = relationship("Course", back_populates="final_exams")
    questions = relationship(
        "ExamQuestion", back_populates="final_exam", cascade="all, delete-orphan",
        order_by="ExamQuestion.sequence_order",
    )
    submissions = relationship("FinalExamSubmission", back_populates="exam", cascade="all, delete-orphan")


class ExamQuestion(Base):
    """Question on either a module exam or a final exam."""

    __tablename__ = "exam_questions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_exam_id = Column(Uuid, ForeignKey("module_exams.id", ondelete="CASCADE"), index=True)
    final_exam_id = Column(Uuid, ForeignKey("final_exams.id", ondelete="CASCADE"), index=True)
    question = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # multiple_choice / true_false / coding / essay
    points = Column(Integer, nullable=False, default=1)
    sequence_order = Column(Integer, nullable=False)

    # Relationships
    module_exam = relationship("ModuleExam", back_populates="questions")
    final_exam = relationship("FinalExam", back_populates="questions")
    options = relationship(
        "ExamQuestionOption", back_populates="question", cascade="all, delete-orphan",
        order_by="ExamQuestionOption.sequence_order",
    )

    @property
    def needs_manual_grading(self) -> bool:
        return self.type in MANUAL_QUESTION_TYPES


class ExamQuestionOption(Base):
    """Choice for an objective exam question."""

    __tablename__ = "exam_question_options"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id = Column(Uuid, ForeignKey("exam_questions.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(String(500), nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    sequence_order = Column(Integer, nullable=False, default=1)

    question = relationship("ExamQuestion", back_populates="options")


class ModuleExamSubmission(Base):
    """Single attempt at a module exam."""

    __tablename__ = "module_exam_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "exam_id", name="uq_module_exam_submission_user_exam"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(Uuid, ForeignKey("module_exams.id", ondelete="CASCADE"), nullable=False, index=True)
    score = Column(Float)
    total_points = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime)
    graded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    # Relationships
    exam = relationship("ModuleExam", back_populates="submissions")
    user = relationship("User", foreign_keys=[user_id])
    answers = relationship(
        "ExamAnswer", back_populates="module_submission", cascade="all, delete-orphan",
    )


class FinalExamSubmission(Base):
    """Single attempt at a final exam."""

    __tablename__ = "final_exam_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "exam_id", name="uq_final_exam_submission_user_exam"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    exam_id = Column(Uuid, ForeignKey("final_exams.id", ondelete="CASCADE"), nullable=False, index=True)
    score = Column(Float)
    total_points = Column(Integer, nullable=False, default=0)
    passed = Column(Boolean, nullable=False, default=False)
    feedback = Column(Text)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime)
    graded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    # Relationships
    exam = relationship("FinalExam", back_populates="submissions")
    user = relationship("User", foreign_keys=[user_id])
    answers = relationship(
        "ExamAnswer", back_populates="final_submission", cascade="all, delete-orphan",
    )


class ExamAnswer(Base):
    """Answer to one exam question. ``points`` stays NULL until graded."""

    __tablename__ = "exam_answers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    module_submission_id = Column(Uuid, ForeignKey("module_exam_submissions.id", ondelete="CASCADE"), index=True)
    final_submission_id = Column(Uuid, ForeignKey("final_exam_submissions.id", ondelete="CASCADE"), index=True)
    question_id = Column(Uuid, ForeignKey("exam_questions.id", ondelete="CASCADE"), nullable=False)
    answer = Column(Text)
    points = Column(Float)
    feedback = Column(Text)

    # Relationships
    module_submission = relationship("ModuleExamSubmission", back_populates="answers")
    final_submission = relationship("FinalExamSubmission", back_populates="answers")
    question = relationship("ExamQuestion")

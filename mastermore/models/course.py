"""Course and module models."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from mastermore.db.base import Base


class Course(Base):
    """Top-level course. Owns ordered modules, legacy direct lessons, projects and final exams."""

    __tablename__ = "courses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    sequence_order = Column(Integer, nullable=False, default=1)
    is_published = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    modules = relationship(
        "Module", back_populates="course", cascade="all, delete-orphan",
        order_by="Module.sequence_order",
    )
    lessons = relationship(
        "Lesson", back_populates="course", cascade="all, delete-orphan",
        order_by="Lesson.sequence_order",
    )
    projects = relationship(
        "Project", back_populates="course", cascade="all, delete-orphan",
        order_by="Project.sequence_order",
    )
    final_exams = relationship(
        "FinalExam", back_populates="course", cascade="all, delete-orphan",
        order_by="FinalExam.created_at",
    )
    enrollments = relationship("Enrollment", back_populates="course", cascade="all, delete-orphan")


class Module(Base):
    """Ordered unit of sequential unlocking inside a course."""

    __tablename__ = "modules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    sequence_order = Column(Integer, nullable=False)
    required_level = Column(String(10))  # None = open to every level
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    course = relationship("Course", back_populates="modules")
    lessons = relationship(
        "Lesson", back_populates="module", cascade="all, delete-orphan",
        order_by="Lesson.sequence_order",
    )
    practice_questions = relationship(
        "PracticeQuestion", back_populates="module", cascade="all, delete-orphan",
        order_by="PracticeQuestion.sequence_order",
    )
    exams = relationship(
        "ModuleExam", back_populates="module", cascade="all, delete-orphan",
        order_by="ModuleExam.created_at",
    )
    completions = relationship("ModuleCompletion", back_populates="module", cascade="all, delete-orphan")

"""Lesson model."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, ForeignKey, CheckConstraint, Uuid
from sqlalchemy.orm import relationship
from mastermore.db.base import Base


class Lesson(Base):
    """A lesson owned either directly by a course (legacy) or by a module."""

    __tablename__ = "lessons"
    __table_args__ = (
        CheckConstraint(
            "(course_id IS NULL) <> (module_id IS NULL)",
            name="ck_lesson_single_owner",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), index=True)
    module_id = Column(Uuid, ForeignKey("modules.id", ondelete="CASCADE"), index=True)
    title = Column(String(300), nullable=False)
    content = Column(Text)
    sequence_order = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    course = relationship("Course", back_populates="lessons")
    module = relationship("Module", back_populates="lessons")
    completions = relationship("LessonCompletion", back_populates="lesson", cascade="all, delete-orphan")

    @property
    def owning_course_id(self):
        """Course the lesson counts toward, whichever way it is attached."""
        if self.course_id is not None:
            return self.course_id
        return self.module.course_id if self.module else None

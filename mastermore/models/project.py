"""Project models."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Integer, Float, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from mastermore.db.base import Base


class ProjectStatus:
    SUBMITTED = "submitted"
    REVISION_NEEDED = "revision_needed"
    GRADED = "graded"


class Project(Base):
    """Course project, unlocked once every module is complete."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text)
    requirements = Column(Text)
    points = Column(Integer, nullable=False, default=100)
    sequence_order = Column(Integer, nullable=False)
    due_date = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    course = relationship("Course", back_populates="projects")
    submissions = relationship("ProjectSubmission", back_populates="project", cascade="all, delete-orphan")


class ProjectSubmission(Base):
    """A learner's project hand-in and its manual grade."""

    __tablename__ = "project_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "project_id", name="uq_project_submission_user_project"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=ProjectStatus.SUBMITTED)
    score = Column(Float)
    feedback = Column(Text)
    submitted_at = Column(DateTime, default=datetime.utcnow)
    graded_at = Column(DateTime)
    graded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))

    # Relationships
    project = relationship("Project", back_populates="submissions")
    user = relationship("User", foreign_keys=[user_id])

"""Grade audit model."""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Boolean, Float, ForeignKey, Uuid
from mastermore.db.base import Base


class Grade(Base):
    """Append-only record of every score handed out, automatic or manual."""

    __tablename__ = "grades"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Uuid, ForeignKey("courses.id", ondelete="CASCADE"), index=True)
    module_id = Column(Uuid, ForeignKey("modules.id", ondelete="CASCADE"), index=True)
    item_type = Column(String(30), nullable=False)  # practice_question / module_exam / final_exam / project
    item_id = Column(Uuid, nullable=False)
    score = Column(Float, nullable=False)
    max_score = Column(Float, nullable=False)
    percentage = Column(Float, nullable=False)
    passed = Column(Boolean, nullable=False)
    graded_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"))
    feedback = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)

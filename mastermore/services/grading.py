"""Grading aggregator: the manual review queue and grade application."""
from typing import Any, Dict, List, Optional
import logging
from datetime import datetime
from sqlalchemy.orm import Session

from mastermore.core.config import settings
from mastermore.core.exceptions import StructuralNotFound
from mastermore.db.sessions import transaction
from mastermore.models import (
    Grade,
    PracticeQuestionSubmission,
    SubmissionStatus,
    ModuleExamSubmission,
    FinalExamSubmission,
    ProjectSubmission,
    ProjectStatus,
)
from mastermore.services.completion_recorder import CompletionRecorder
from mastermore.services.entity_store import EntityStore

logger = logging.getLogger(__name__)

GRADING_KINDS = ("project", "module_exam", "final_exam", "practice_question")


class GradingAggregator:
    def __init__(self, db: Session):
        self.db = db
        self.store = EntityStore(db)
        self.recorder = CompletionRecorder(db)

    def list_pending_grading(self, kind: str) -> List[Any]:
        """Ungraded submissions of ``kind``, oldest first."""
        if kind == "project":
            query = self.db.query(ProjectSubmission).filter(
                ProjectSubmission.status == ProjectStatus.SUBMITTED
            ).order_by(ProjectSubmission.submitted_at.asc())
        elif kind == "module_exam":
            query = self.db.query(ModuleExamSubmission).filter(
                ModuleExamSubmission.graded_at.is_(None)
            ).order_by(ModuleExamSubmission.submitted_at.asc())
        elif kind == "final_exam":
            query = self.db.query(FinalExamSubmission).filter(
                FinalExamSubmission.graded_at.is_(None)
            ).order_by(FinalExamSubmission.submitted_at.asc())
        elif kind == "practice_question":
            query = self.db.query(PracticeQuestionSubmission).filter(
                PracticeQuestionSubmission.status == SubmissionStatus.PENDING
            ).order_by(PracticeQuestionSubmission.submitted_at.asc())
        else:
            raise ValueError(f"Unknown grading kind: {kind}")
        return query.all()

    def apply_grade(
        self,
        kind: str,
        submission_id,
        score: Optional[float] = None,
        feedback: Optional[str] = None,
        per_item_scores: Optional[Dict[Any, float]] = None,
        grader_id=None,
        request_revision: bool = False,
    ) -> Grade:
        """Grade one submission and return the audit row written for it.

        Exam kinds go through the completion recorder so that a passing
        grade can complete the module. When ``per_item_scores`` is given its
        total wins over ``score``.
        """
        if kind not in GRADING_KINDS:
            raise ValueError(f"Unknown grading kind: {kind}")

        if kind in ("module_exam", "final_exam"):
            outcome = self.recorder.record_exam_grade(
                kind, submission_id, per_item_scores, feedback,
                grader_id=grader_id, score=score,
            )
            return outcome.grade

        if score is None:
            raise ValueError("A score is required")

        if kind == "practice_question":
            outcome = self.recorder.record_practice_grade(
                submission_id, score, feedback=feedback, grader_id=grader_id,
            )
            logger.info("Practice submission %s graded: %s", submission_id, outcome.status)
            return outcome.grade

        return self._grade_project(submission_id, score, feedback, grader_id, request_revision)

    def _grade_project(self, submission_id, score: float, feedback: Optional[str],
                       grader_id, request_revision: bool) -> Grade:
        with transaction(self.db):
            submission = self.db.get(ProjectSubmission, submission_id)
            if submission is None:
                raise StructuralNotFound("Submission not found")
            if submission.status != ProjectStatus.SUBMITTED:
                raise ValueError("Submission is not waiting for a grade")
            project = submission.project
            if score < 0 or score > project.points:
                raise ValueError(f"Score must be between 0 and {project.points}")

            passed = score / project.points >= settings.PROJECT_PASS_RATIO
            submission.score = float(score)
            submission.feedback = feedback
            submission.graded_at = datetime.utcnow()
            submission.graded_by = grader_id
            submission.status = ProjectStatus.REVISION_NEEDED if request_revision else ProjectStatus.GRADED

            grade = self.store.add_grade(
                user_id=submission.user_id,
                course_id=project.course_id,
                item_type="project",
                item_id=project.id,
                score=float(score),
                max_score=float(project.points),
                passed=passed and not request_revision,
                graded_by=grader_id,
                feedback=feedback,
            )
        logger.info("Project submission %s graded: score=%s passed=%s status=%s",
                    submission_id, score, grade.passed, submission.status)
        return grade

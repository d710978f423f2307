"""Per-learner course view-model: lock and checkmark flags for every node."""
from typing import Any, Dict, List, Optional
import logging
from sqlalchemy import func
from sqlalchemy.orm import Session

from mastermore.models import (
    Course,
    Grade,
    User,
    ProjectSubmission,
    ModuleExamSubmission,
    FinalExamSubmission,
)
from mastermore.services import progression
from mastermore.services.completion_recorder import CompletionRecorder
from mastermore.services.entity_store import EntityStore
from mastermore.services.progression import LearnerState

logger = logging.getLogger(__name__)


class CourseProgressService:
    def __init__(self, db: Session):
        self.db = db
        self.store = EntityStore(db)

    def build(self, user_id, course_id) -> Dict[str, Any]:
        course = self.store.get_course(course_id)
        enrollment = self.store.require_enrollment(user_id, course.id)
        user = self.store.get_user(user_id)
        state = self.store.load_learner_state(user_id, course)

        logger.debug("Building progress view for user %s in course %s", user_id, course.id)

        return {
            "course_id": str(course.id),
            "name": course.name,
            "percentage": CompletionRecorder(self.db).get_cached_progress(user_id, course.id),
            "overall_progress": progression.compute_overall_progress(
                course.modules, course.projects, course.final_exams, state
            ),
            "is_completed": enrollment.is_completed,
            "average_grade": self.average_grade(user_id, course.id),
            "lessons": self._lessons(course.lessons, state),
            "modules": [self._module(user, course.modules, idx, state) for idx in range(len(course.modules))],
            "can_access_projects": progression.can_access_projects(course.modules, state),
            "projects": self._projects(user_id, course),
            "can_access_final_exam": progression.can_access_final_exam(course.modules, course.projects, state),
            "final_exams": self._final_exams(user_id, course, state),
        }

    def average_grade(self, user_id, course_id) -> Optional[float]:
        """Mean percentage across every grade handed out in the course, or None."""
        avg = self.db.query(func.avg(Grade.percentage)).filter(
            Grade.user_id == user_id,
            Grade.course_id == course_id,
        ).scalar()
        return round(avg, 1) if avg is not None else None

    def _lessons(self, lessons, state: LearnerState, module_open: bool = True) -> List[Dict[str, Any]]:
        """Lesson nodes; nothing inside a locked module is accessible."""
        return [
            {
                "id": str(lesson.id),
                "title": lesson.title,
                "sequence_order": lesson.sequence_order,
                "is_accessible": module_open and progression.is_lesson_accessible(lessons, idx, state),
                "is_completed": progression.is_lesson_completed(lesson, state),
            }
            for idx, lesson in enumerate(lessons)
        ]

    def _module(self, user: User, modules, idx: int, state: LearnerState) -> Dict[str, Any]:
        module = modules[idx]
        unlocked = progression.is_module_accessible(modules, idx, state)
        level_ok = progression.meets_level_requirement(user.level, module.required_level)
        questions = module.practice_questions
        exams = self.db.query(ModuleExamSubmission).filter(
            ModuleExamSubmission.user_id == user.id,
            ModuleExamSubmission.exam_id.in_([e.id for e in module.exams]),
        ).all() if module.exams else []
        by_exam = {s.exam_id: s for s in exams}
        return {
            "id": str(module.id),
            "name": module.name,
            "sequence_order": module.sequence_order,
            "required_level": module.required_level,
            "meets_level": level_ok,
            "is_accessible": unlocked and level_ok,
            "is_completed": progression.is_module_completed(module, state),
            "lessons": self._lessons(module.lessons, state, module_open=unlocked and level_ok),
            "practice_total": len(questions),
            "practice_answered": sum(1 for q in questions if q.id in state.practice_statuses),
            "exam_eligible": progression.is_exam_eligible(module, state),
            "exams": [
                {
                    "id": str(exam.id),
                    "title": exam.title,
                    "passing_score": exam.passing_score,
                    "submitted": exam.id in by_exam,
                    "passed": exam.id in state.passed_module_exam_ids,
                    "score": by_exam[exam.id].score if exam.id in by_exam else None,
                }
                for exam in module.exams
            ],
        }

    def _projects(self, user_id, course: Course) -> List[Dict[str, Any]]:
        submissions = {
            s.project_id: s
            for s in self.db.query(ProjectSubmission).filter(ProjectSubmission.user_id == user_id).all()
        }
        items = []
        for project in course.projects:
            sub = submissions.get(project.id)
            items.append({
                "id": str(project.id),
                "title": project.title,
                "points": project.points,
                "status": sub.status if sub else None,
                "score": sub.score if sub else None,
            })
        return items

    def _final_exams(self, user_id, course: Course, state: LearnerState) -> List[Dict[str, Any]]:
        submissions = {
            s.exam_id: s
            for s in self.db.query(FinalExamSubmission).filter(FinalExamSubmission.user_id == user_id).all()
        }
        return [
            {
                "id": str(exam.id),
                "title": exam.title,
                "passing_score": exam.passing_score,
                "submitted": exam.id in state.submitted_final_exam_ids,
                "passed": exam.id in state.passed_final_exam_ids,
                "score": submissions[exam.id].score if exam.id in submissions else None,
            }
            for exam in course.final_exams
        ]

"""Entity store: typed reads and keyed upserts over the SQLAlchemy session.

The store never commits. The calling service owns the transaction so that a
completion event and everything derived from it land together or not at all.
"""
from typing import Optional, Tuple
import logging
from datetime import datetime
from sqlalchemy.orm import Session

from mastermore.core.exceptions import NotEnrolled, StructuralNotFound
from mastermore.models import (
    User,
    Course,
    Module,
    Lesson,
    PracticeQuestion,
    PracticeQuestionSubmission,
    ModuleExam,
    FinalExam,
    ModuleExamSubmission,
    FinalExamSubmission,
    Project,
    ProjectSubmission,
    ProjectStatus,
    Enrollment,
    LessonCompletion,
    ModuleCompletion,
    UserProgress,
    Grade,
)
from mastermore.services.progression import LearnerState, course_lessons

logger = logging.getLogger(__name__)


class EntityStore:
    def __init__(self, db: Session):
        self.db = db

    # ---------- structural reads ----------

    def _get(self, model, item_id, label: str):
        obj = self.db.get(model, item_id)
        if obj is None:
            raise StructuralNotFound(f"{label} not found")
        return obj

    def get_user(self, user_id) -> User:
        return self._get(User, user_id, "User")

    def get_course(self, course_id) -> Course:
        return self._get(Course, course_id, "Course")

    def get_module(self, module_id) -> Module:
        return self._get(Module, module_id, "Module")

    def get_lesson(self, lesson_id) -> Lesson:
        return self._get(Lesson, lesson_id, "Lesson")

    def get_practice_question(self, question_id) -> PracticeQuestion:
        return self._get(PracticeQuestion, question_id, "Practice question")

    def get_module_exam(self, exam_id) -> ModuleExam:
        return self._get(ModuleExam, exam_id, "Module exam")

    def get_final_exam(self, exam_id) -> FinalExam:
        return self._get(FinalExam, exam_id, "Final exam")

    def get_project(self, project_id) -> Project:
        return self._get(Project, project_id, "Project")

    def get_lesson_in_course(self, course_id, lesson_id) -> Lesson:
        """Lesson that belongs to ``course_id`` directly or through one of its modules."""
        lesson = self.get_lesson(lesson_id)
        if lesson.owning_course_id != course_id:
            raise StructuralNotFound("Lesson not found")
        return lesson

    def get_question_in_module(self, module_id, question_id) -> PracticeQuestion:
        question = self.get_practice_question(question_id)
        if question.module_id != module_id:
            raise StructuralNotFound("Practice question not found")
        return question

    # ---------- enrollment ----------

    def get_enrollment(self, user_id, course_id) -> Optional[Enrollment]:
        return self.db.query(Enrollment).filter(
            Enrollment.user_id == user_id,
            Enrollment.course_id == course_id,
        ).first()

    def require_enrollment(self, user_id, course_id) -> Enrollment:
        enrollment = self.get_enrollment(user_id, course_id)
        if enrollment is None:
            raise NotEnrolled(course_id)
        return enrollment

    # ---------- learner state ----------

    def load_learner_state(self, user_id, course: Course) -> LearnerState:
        """Snapshot every completion/submission fact of ``user_id`` inside ``course``."""
        lesson_ids = [lesson.id for lesson in course_lessons(course)]
        module_ids = [m.id for m in course.modules]
        question_ids = [q.id for m in course.modules for q in m.practice_questions]
        exam_ids = [e.id for m in course.modules for e in m.exams]
        project_ids = [p.id for p in course.projects]
        final_ids = [e.id for e in course.final_exams]

        state = LearnerState()

        if lesson_ids:
            rows = self.db.query(LessonCompletion.lesson_id).filter(
                LessonCompletion.user_id == user_id,
                LessonCompletion.lesson_id.in_(lesson_ids),
            ).all()
            state.completed_lesson_ids = {lid for lid, in rows}

        if module_ids:
            rows = self.db.query(ModuleCompletion.module_id).filter(
                ModuleCompletion.user_id == user_id,
                ModuleCompletion.module_id.in_(module_ids),
            ).all()
            state.completed_module_ids = {mid for mid, in rows}

        if question_ids:
            rows = self.db.query(
                PracticeQuestionSubmission.question_id, PracticeQuestionSubmission.status
            ).filter(
                PracticeQuestionSubmission.user_id == user_id,
                PracticeQuestionSubmission.question_id.in_(question_ids),
            ).all()
            state.practice_statuses = {qid: status for qid, status in rows}

        if exam_ids:
            rows = self.db.query(ModuleExamSubmission.exam_id, ModuleExamSubmission.passed).filter(
                ModuleExamSubmission.user_id == user_id,
                ModuleExamSubmission.exam_id.in_(exam_ids),
            ).all()
            state.submitted_module_exam_ids = {eid for eid, _ in rows}
            state.passed_module_exam_ids = {eid for eid, passed in rows if passed}

        if project_ids:
            rows = self.db.query(
                ProjectSubmission.project_id, ProjectSubmission.status, ProjectSubmission.score
            ).filter(
                ProjectSubmission.user_id == user_id,
                ProjectSubmission.project_id.in_(project_ids),
            ).all()
            state.submitted_project_ids = {pid for pid, _, _ in rows}
            state.graded_project_ids = {
                pid for pid, status, score in rows
                if status == ProjectStatus.GRADED and score is not None
            }

        if final_ids:
            rows = self.db.query(FinalExamSubmission.exam_id, FinalExamSubmission.passed).filter(
                FinalExamSubmission.user_id == user_id,
                FinalExamSubmission.exam_id.in_(final_ids),
            ).all()
            state.submitted_final_exam_ids = {eid for eid, _ in rows}
            state.passed_final_exam_ids = {eid for eid, passed in rows if passed}

        return state

    # ---------- keyed writes ----------

    def upsert_lesson_completion(self, user_id, lesson_id) -> Tuple[LessonCompletion, bool]:
        completion = self.db.query(LessonCompletion).filter(
            LessonCompletion.user_id == user_id,
            LessonCompletion.lesson_id == lesson_id,
        ).first()
        if completion:
            completion.completed_at = datetime.utcnow()
            return completion, False
        completion = LessonCompletion(user_id=user_id, lesson_id=lesson_id)
        self.db.add(completion)
        self.db.flush()
        return completion, True

    def upsert_module_completion(self, user_id, module_id) -> bool:
        """Create the completion row if absent. Returns True when it was created."""
        exists = self.db.query(ModuleCompletion.id).filter(
            ModuleCompletion.user_id == user_id,
            ModuleCompletion.module_id == module_id,
        ).first()
        if exists:
            return False
        self.db.add(ModuleCompletion(user_id=user_id, module_id=module_id))
        self.db.flush()
        return True

    def upsert_user_progress(self, user_id, course_id, percentage: int) -> UserProgress:
        progress = self.db.query(UserProgress).filter(
            UserProgress.user_id == user_id,
            UserProgress.course_id == course_id,
        ).first()
        if progress:
            progress.progress = percentage
        else:
            progress = UserProgress(user_id=user_id, course_id=course_id, progress=percentage)
            self.db.add(progress)
        self.db.flush()
        return progress

    def add_grade(self, **fields) -> Grade:
        max_score = fields.get("max_score") or 0
        score = fields.get("score") or 0
        fields.setdefault("percentage", (score * 100 / max_score) if max_score else 0.0)
        grade = Grade(**fields)
        self.db.add(grade)
        self.db.flush()
        return grade

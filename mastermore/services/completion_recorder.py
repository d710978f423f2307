"""Completion recorder service.

Applies one learner or grader event at a time and updates the state derived
from it: cached course progress, enrollment completion, module completion.
Every public method runs as a single transaction; on any failure nothing is
written and the exception reaches the caller untouched.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional
import logging
from datetime import datetime
from sqlalchemy.orm import Session

from mastermore.core.config import settings
from mastermore.core.exceptions import AccessDenied, DuplicateSubmission, StructuralNotFound
from mastermore.db.sessions import transaction
from mastermore.models import (
    User,
    Course,
    Module,
    Lesson,
    PracticeQuestionSubmission,
    SubmissionStatus,
    ModuleExam,
    FinalExam,
    ModuleExamSubmission,
    FinalExamSubmission,
    ExamAnswer,
    ProjectSubmission,
    ProjectStatus,
    Enrollment,
    UserProgress,
    Grade,
)
from mastermore.services import progression
from mastermore.services.entity_store import EntityStore
from mastermore.services.progression import LearnerState

logger = logging.getLogger(__name__)

EXAM_KINDS = ("module_exam", "final_exam")


@dataclass
class PracticeOutcome:
    submission: PracticeQuestionSubmission
    status: str
    is_correct: bool
    points_awarded: float
    module_completed: bool = False
    grade: Optional[Grade] = None


@dataclass
class ExamGradeOutcome:
    submission: Any
    total_score: Optional[float]
    total_points: int
    percentage: Optional[float]
    passed: bool
    graded: bool
    module_completed: bool = False
    grade: Optional[Grade] = None


def grade_objective_answer(question_type: str, options: Iterable[Any], answer: Optional[str]) -> bool:
    """Check a multiple-choice (option id) or true/false (option text) answer."""
    if answer is None:
        return False
    answer = str(answer).strip()
    options = list(options)
    if question_type == "multiple_choice":
        selected = next((opt for opt in options if str(opt.id) == answer), None)
        return bool(selected and selected.is_correct)
    if question_type == "true_false":
        correct = next((opt for opt in options if opt.is_correct), None)
        return bool(correct and correct.text.strip().lower() == answer.lower())
    raise ValueError(f"{question_type} answers cannot be graded automatically")


class CompletionRecorder:
    def __init__(self, db: Session):
        self.db = db
        self.store = EntityStore(db)

    # ---------- access guards ----------

    def _ensure_module_access(self, user: User, module: Module, state: LearnerState) -> None:
        modules = module.course.modules
        idx = progression.index_of(modules, module.id)
        if not progression.is_module_accessible(modules, idx, state):
            logger.info("User %s blocked from locked module %s", user.id, module.id)
            raise AccessDenied("Previous modules must be completed first")
        if not progression.meets_level_requirement(user.level, module.required_level):
            raise AccessDenied(f"This module requires level {module.required_level}")

    def _ensure_lesson_access(self, user: User, lesson: Lesson, state: LearnerState) -> None:
        if lesson.module is not None:
            self._ensure_module_access(user, lesson.module, state)
        scope = progression.lesson_scope(lesson)
        idx = progression.index_of(scope, lesson.id)
        if not progression.is_lesson_accessible(scope, idx, state):
            logger.info("User %s blocked from locked lesson %s", user.id, lesson.id)
            raise AccessDenied("Previous lessons must be completed first")

    def ensure_lesson_access(self, user_id, lesson: Lesson) -> LearnerState:
        """Read-side guard used when a learner opens a lesson."""
        course = lesson.module.course if lesson.module is not None else lesson.course
        self.store.require_enrollment(user_id, course.id)
        state = self.store.load_learner_state(user_id, course)
        self._ensure_lesson_access(self.store.get_user(user_id), lesson, state)
        return state

    def ensure_module_access(self, user_id, module: Module) -> LearnerState:
        """Read-side guard used when a learner opens a module or its exams."""
        self.store.require_enrollment(user_id, module.course_id)
        state = self.store.load_learner_state(user_id, module.course)
        self._ensure_module_access(self.store.get_user(user_id), module, state)
        return state

    # ---------- module completion ----------

    def _refresh_module(self, user_id, module: Module, state: LearnerState) -> bool:
        if not progression.compute_module_completion_eligibility(module, state):
            return False
        created = self.store.upsert_module_completion(user_id, module.id)
        state.completed_module_ids.add(module.id)
        if created:
            logger.info("Module %s completed by user %s", module.id, user_id)
        return created

    def refresh_module_completion(self, user_id, module_id) -> bool:
        """Re-evaluate a module for ``user_id`` and record its completion if now eligible."""
        with transaction(self.db):
            module = self.store.get_module(module_id)
            state = self.store.load_learner_state(user_id, module.course)
            return self._refresh_module(user_id, module, state)

    # ---------- enrollment ----------

    def enroll(self, user_id, course_id) -> Enrollment:
        """Join a published course. Enrolling twice returns the existing enrollment."""
        with transaction(self.db):
            course = self.store.get_course(course_id)
            if not course.is_published:
                raise StructuralNotFound("Course not found")
            enrollment = self.store.get_enrollment(user_id, course.id)
            if enrollment:
                return enrollment
            enrollment = Enrollment(user_id=user_id, course_id=course.id)
            self.db.add(enrollment)
            state = self.store.load_learner_state(user_id, course)
            pct = progression.compute_course_progress(progression.course_lessons(course), state)
            self.store.upsert_user_progress(user_id, course.id, pct)
            logger.info("User %s enrolled in course %s", user_id, course.id)
        return enrollment

    # ---------- lessons ----------

    def record_lesson_completion(self, user_id, lesson_id, course_id=None) -> int:
        """Mark a lesson done and return the recomputed course percentage."""
        with transaction(self.db):
            if course_id is not None:
                lesson = self.store.get_lesson_in_course(course_id, lesson_id)
            else:
                lesson = self.store.get_lesson(lesson_id)
            course: Course = lesson.module.course if lesson.module is not None else lesson.course
            enrollment = self.store.require_enrollment(user_id, course.id)
            user = self.store.get_user(user_id)
            state = self.store.load_learner_state(user_id, course)
            self._ensure_lesson_access(user, lesson, state)

            self.store.upsert_lesson_completion(user_id, lesson.id)
            state.completed_lesson_ids.add(lesson.id)

            pct = progression.compute_course_progress(progression.course_lessons(course), state)
            self.store.upsert_user_progress(user_id, course.id, pct)
            if pct == 100 and not enrollment.is_completed:
                enrollment.is_completed = True
                enrollment.completed_at = datetime.utcnow()
                logger.info("User %s completed course %s", user_id, course.id)

            if lesson.module is not None:
                self._refresh_module(user_id, lesson.module, state)
        logger.info("Lesson %s completed by user %s (progress %s%%)", lesson_id, user_id, pct)
        return pct

    # ---------- practice questions ----------

    def record_practice_submission(self, user_id, question_id, answer: str, module_id=None) -> PracticeOutcome:
        """Record the single allowed answer to a practice question.

        Choice questions are graded on the spot. Coding answers are stored as
        ``pending`` and wait for a grader.
        """
        with transaction(self.db):
            if module_id is not None:
                question = self.store.get_question_in_module(module_id, question_id)
            else:
                question = self.store.get_practice_question(question_id)
            module = question.module
            self.store.require_enrollment(user_id, module.course_id)
            user = self.store.get_user(user_id)
            state = self.store.load_learner_state(user_id, module.course)
            self._ensure_module_access(user, module, state)

            existing = self.db.query(PracticeQuestionSubmission).filter(
                PracticeQuestionSubmission.user_id == user_id,
                PracticeQuestionSubmission.question_id == question.id,
            ).first()
            if existing:
                raise DuplicateSubmission(existing=existing)

            if question.type == "coding":
                status = SubmissionStatus.PENDING
            elif grade_objective_answer(question.type, question.options, answer):
                status = SubmissionStatus.CORRECT
            else:
                status = SubmissionStatus.INCORRECT
            points = float(question.points) if status == SubmissionStatus.CORRECT else 0.0

            submission = PracticeQuestionSubmission(
                user_id=user_id,
                question_id=question.id,
                answer=answer,
                status=status,
                points=points,
                graded_at=None if status == SubmissionStatus.PENDING else datetime.utcnow(),
            )
            self.db.add(submission)
            self.db.flush()

            grade = None
            if status != SubmissionStatus.PENDING:
                grade = self.store.add_grade(
                    user_id=user_id,
                    course_id=module.course_id,
                    module_id=module.id,
                    item_type="practice_question",
                    item_id=question.id,
                    score=points,
                    max_score=float(question.points),
                    passed=status == SubmissionStatus.CORRECT,
                )

            state.practice_statuses[question.id] = status
            module_completed = self._refresh_module(user_id, module, state)

        return PracticeOutcome(
            submission=submission,
            status=status,
            is_correct=status == SubmissionStatus.CORRECT,
            points_awarded=points,
            module_completed=module_completed,
            grade=grade,
        )

    def record_practice_grade(self, submission_id, score: float, feedback: Optional[str] = None,
                              grader_id=None) -> PracticeOutcome:
        """Resolve a pending coding answer with a manual score."""
        with transaction(self.db):
            submission = self.db.get(PracticeQuestionSubmission, submission_id)
            if submission is None:
                raise StructuralNotFound("Submission not found")
            if submission.status != SubmissionStatus.PENDING:
                raise ValueError("Submission is already graded")
            question = submission.question
            if score < 0 or score > question.points:
                raise ValueError(f"Score must be between 0 and {question.points}")

            passed = score >= question.points * settings.PROJECT_PASS_RATIO
            submission.status = SubmissionStatus.CORRECT if passed else SubmissionStatus.INCORRECT
            submission.points = float(score)
            submission.feedback = feedback
            submission.graded_at = datetime.utcnow()
            submission.graded_by = grader_id

            module = question.module
            grade = self.store.add_grade(
                user_id=submission.user_id,
                course_id=module.course_id,
                module_id=module.id,
                item_type="practice_question",
                item_id=question.id,
                score=float(score),
                max_score=float(question.points),
                passed=passed,
                graded_by=grader_id,
                feedback=feedback,
            )
            state = self.store.load_learner_state(submission.user_id, module.course)
            module_completed = self._refresh_module(submission.user_id, module, state)

        return PracticeOutcome(
            submission=submission,
            status=submission.status,
            is_correct=passed,
            points_awarded=float(score),
            module_completed=module_completed,
            grade=grade,
        )

    # ---------- exams ----------

    def _build_answers(self, questions, answers: Dict[Any, Optional[str]]):
        """Create answer rows, scoring objective questions. Returns (rows, needs_manual)."""
        by_question = {str(k): v for k, v in (answers or {}).items()}
        rows = []
        needs_manual = False
        for question in questions:
            given = by_question.get(str(question.id))
            row = ExamAnswer(question_id=question.id, answer=given)
            if question.needs_manual_grading:
                if given is None or not str(given).strip():
                    row.points = 0.0
                else:
                    needs_manual = True
            else:
                correct = grade_objective_answer(question.type, question.options, given)
                row.points = float(question.points) if correct else 0.0
            rows.append(row)
        return rows, needs_manual

    def _finalize_exam(self, submission, exam, kind: str, course_id, module_id=None,
                       grader_id=None, feedback=None, score_override=None) -> Grade:
        if score_override is not None:
            total = float(score_override)
        else:
            total = sum(answer.points or 0.0 for answer in submission.answers)
        total_points = submission.total_points
        percentage = (total * 100 / total_points) if total_points else 100.0

        submission.score = total
        submission.passed = percentage >= exam.passing_score
        submission.graded_at = datetime.utcnow()
        submission.graded_by = grader_id
        if feedback is not None:
            submission.feedback = feedback

        return self.store.add_grade(
            user_id=submission.user_id,
            course_id=course_id,
            module_id=module_id,
            item_type=kind,
            item_id=exam.id,
            score=total,
            max_score=float(total_points),
            percentage=percentage,
            passed=submission.passed,
            graded_by=grader_id,
            feedback=feedback,
        )

    def _outcome(self, submission, module_completed: bool = False, grade: Optional[Grade] = None) -> ExamGradeOutcome:
        graded = submission.graded_at is not None
        percentage = None
        if graded:
            percentage = (submission.score * 100 / submission.total_points) if submission.total_points else 100.0
        return ExamGradeOutcome(
            submission=submission,
            total_score=submission.score,
            total_points=submission.total_points,
            percentage=percentage,
            passed=bool(submission.passed),
            graded=graded,
            module_completed=module_completed,
            grade=grade,
        )

    def submit_module_exam(self, user_id, exam_id, answers: Dict[Any, Optional[str]],
                           module_id=None) -> ExamGradeOutcome:
        """Single attempt at a module exam once every lesson and practice question is done."""
        with transaction(self.db):
            exam: ModuleExam = self.store.get_module_exam(exam_id)
            if module_id is not None and exam.module_id != module_id:
                raise StructuralNotFound("Module exam not found")
            module = exam.module
            self.store.require_enrollment(user_id, module.course_id)
            user = self.store.get_user(user_id)
            state = self.store.load_learner_state(user_id, module.course)
            self._ensure_module_access(user, module, state)
            if not progression.is_exam_eligible(module, state):
                raise AccessDenied("Complete all lessons and practice questions first")

            existing = self.db.query(ModuleExamSubmission).filter(
                ModuleExamSubmission.user_id == user_id,
                ModuleExamSubmission.exam_id == exam.id,
            ).first()
            if existing:
                raise DuplicateSubmission(existing=existing)

            rows, needs_manual = self._build_answers(exam.questions, answers)
            submission = ModuleExamSubmission(
                user_id=user_id,
                exam_id=exam.id,
                total_points=sum(q.points for q in exam.questions),
                answers=rows,
            )
            self.db.add(submission)
            self.db.flush()

            module_completed = False
            grade = None
            if needs_manual:
                logger.info("Module exam submission %s queued for manual grading", submission.id)
            else:
                grade = self._finalize_exam(submission, exam, "module_exam", module.course_id, module.id)
                if submission.passed:
                    state.passed_module_exam_ids.add(exam.id)
                    module_completed = self._refresh_module(user_id, module, state)
        return self._outcome(submission, module_completed, grade)

    def submit_final_exam(self, user_id, exam_id, answers: Dict[Any, Optional[str]],
                          course_id=None) -> ExamGradeOutcome:
        """Single attempt at a final exam once every module and project is done."""
        with transaction(self.db):
            exam: FinalExam = self.store.get_final_exam(exam_id)
            if course_id is not None and exam.course_id != course_id:
                raise StructuralNotFound("Final exam not found")
            course = exam.course
            self.store.require_enrollment(user_id, course.id)
            state = self.store.load_learner_state(user_id, course)
            if not progression.can_access_final_exam(course.modules, course.projects, state):
                raise AccessDenied("Complete all modules and projects first")

            existing = self.db.query(FinalExamSubmission).filter(
                FinalExamSubmission.user_id == user_id,
                FinalExamSubmission.exam_id == exam.id,
            ).first()
            if existing:
                raise DuplicateSubmission(existing=existing)

            rows, needs_manual = self._build_answers(exam.questions, answers)
            submission = FinalExamSubmission(
                user_id=user_id,
                exam_id=exam.id,
                total_points=sum(q.points for q in exam.questions),
                answers=rows,
            )
            self.db.add(submission)
            self.db.flush()
            grade = None
            if not needs_manual:
                grade = self._finalize_exam(submission, exam, "final_exam", course.id)
        return self._outcome(submission, grade=grade)

    def record_exam_grade(self, kind: str, submission_id, per_question_scores: Optional[Dict[Any, float]] = None,
                          feedback: Optional[str] = None, grader_id=None,
                          score: Optional[float] = None) -> ExamGradeOutcome:
        """Apply a grader's scores to an exam submission.

        Itemised scores, when given, are written onto the answers and the
        total is recomputed from every answer; ``score`` is then ignored.
        """
        if kind not in EXAM_KINDS:
            raise ValueError(f"Unknown exam kind: {kind}")
        model = ModuleExamSubmission if kind == "module_exam" else FinalExamSubmission

        with transaction(self.db):
            submission = self.db.get(model, submission_id)
            if submission is None:
                raise StructuralNotFound("Submission not found")
            if submission.graded_at is not None:
                raise ValueError("Submission is already graded")
            exam = submission.exam

            score_override = None
            if per_question_scores:
                answers = {str(a.question_id): a for a in submission.answers}
                for question_id, points in per_question_scores.items():
                    answer = answers.get(str(question_id))
                    if answer is None:
                        raise ValueError(f"Question {question_id} is not part of this submission")
                    if points < 0 or points > answer.question.points:
                        raise ValueError(f"Points for question {question_id} must be between 0 and {answer.question.points}")
                    answer.points = float(points)
                for answer in submission.answers:
                    if answer.points is None:
                        answer.points = 0.0
            elif score is not None:
                if score < 0 or score > submission.total_points:
                    raise ValueError(f"Score must be between 0 and {submission.total_points}")
                score_override = score
            else:
                raise ValueError("Provide per-question scores or a total score")

            if kind == "module_exam":
                module = exam.module
                grade = self._finalize_exam(submission, exam, kind, module.course_id, module.id,
                                    grader_id=grader_id, feedback=feedback, score_override=score_override)
                state = self.store.load_learner_state(submission.user_id, module.course)
                module_completed = self._refresh_module(submission.user_id, module, state)
            else:
                grade = self._finalize_exam(submission, exam, kind, exam.course_id,
                                    grader_id=grader_id, feedback=feedback, score_override=score_override)
                module_completed = False
            logger.info("%s submission %s graded: score=%s passed=%s",
                        kind, submission.id, submission.score, submission.passed)
        return self._outcome(submission, module_completed, grade)

    # ---------- projects ----------

    def submit_project(self, user_id, project_id, content: str) -> ProjectSubmission:
        """Hand in a project. Only a submission sent back for revision may be replaced."""
        with transaction(self.db):
            project = self.store.get_project(project_id)
            course = project.course
            self.store.require_enrollment(user_id, course.id)
            state = self.store.load_learner_state(user_id, course)
            if not progression.can_access_projects(course.modules, state):
                raise AccessDenied("Complete all modules first")

            submission = self.db.query(ProjectSubmission).filter(
                ProjectSubmission.user_id == user_id,
                ProjectSubmission.project_id == project.id,
            ).first()
            if submission and submission.status != ProjectStatus.REVISION_NEEDED:
                raise DuplicateSubmission(existing=submission)
            if submission:
                submission.content = content
                submission.status = ProjectStatus.SUBMITTED
                submission.submitted_at = datetime.utcnow()
            else:
                submission = ProjectSubmission(user_id=user_id, project_id=project.id, content=content)
                self.db.add(submission)
            self.db.flush()
        return submission

    # ---------- cached progress ----------

    def get_cached_progress(self, user_id, course_id) -> int:
        row = self.db.query(UserProgress).filter(
            UserProgress.user_id == user_id,
            UserProgress.course_id == course_id,
        ).first()
        return row.progress if row else 0

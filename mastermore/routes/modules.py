"""Module routes: module detail, practice questions and module exams."""
import uuid
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel

from mastermore.db.sessions import get_db
from mastermore.models import User, PracticeQuestionSubmission, ModuleExamSubmission
from mastermore.core.exceptions import DuplicateSubmission
from mastermore.core.security import get_current_user
from mastermore.routes.courses import ExamResponse, OptionResponse, exam_payload
from mastermore.services import progression
from mastermore.services.completion_recorder import CompletionRecorder
from mastermore.services.entity_store import EntityStore


router = APIRouter(tags=["Modules"])


# Request/Response schemas
class LessonState(BaseModel):
    id: str
    title: str
    sequence_order: int
    is_accessible: bool
    is_completed: bool


class PracticeQuestionResponse(BaseModel):
    id: str
    title: str
    question: str
    type: str
    points: int
    options: List[OptionResponse]
    status: Optional[str]
    points_awarded: Optional[float]


class ModuleDetailResponse(BaseModel):
    id: str
    course_id: str
    name: str
    description: Optional[str]
    sequence_order: int
    required_level: Optional[str]
    is_completed: bool
    exam_eligible: bool
    lessons: List[LessonState]
    practice_questions: List[PracticeQuestionResponse]


class PracticeSubmitRequest(BaseModel):
    answer: str


class PracticeSubmitResponse(BaseModel):
    submission_id: str
    status: str
    is_correct: bool
    points_awarded: float
    module_completed: bool
    correct_option_id: Optional[str] = None
    duplicate: bool = False


def correct_option(question) -> Optional[str]:
    """Id of the right option, revealed once the single attempt is spent."""
    for opt in question.options:
        if opt.is_correct:
            return str(opt.id)
    return None


class ExamSubmitRequest(BaseModel):
    answers: Dict[str, Optional[str]] = {}


class ExamSubmitResponse(BaseModel):
    submission_id: str
    graded: bool
    score: Optional[float]
    total_points: int
    percentage: Optional[float]
    passed: bool
    module_completed: bool = False
    duplicate: bool = False


def exam_submit_payload(submission, module_completed: bool = False, duplicate: bool = False) -> ExamSubmitResponse:
    graded = submission.graded_at is not None
    percentage = None
    if graded:
        percentage = (submission.score * 100 / submission.total_points) if submission.total_points else 100.0
    return ExamSubmitResponse(
        submission_id=str(submission.id),
        graded=graded,
        score=submission.score,
        total_points=submission.total_points,
        percentage=percentage,
        passed=bool(submission.passed),
        module_completed=module_completed,
        duplicate=duplicate,
    )


@router.get("/modules/{module_id}", response_model=ModuleDetailResponse)
def get_module(
    module_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Module content for an unlocked module. Locked modules answer 403."""
    module = EntityStore(db).get_module(module_id)
    state = CompletionRecorder(db).ensure_module_access(current_user.id, module)
    submissions = {
        s.question_id: s
        for s in db.query(PracticeQuestionSubmission).filter(
            PracticeQuestionSubmission.user_id == current_user.id
        ).all()
    }
    lessons = module.lessons
    return ModuleDetailResponse(
        id=str(module.id),
        course_id=str(module.course_id),
        name=module.name,
        description=module.description,
        sequence_order=module.sequence_order,
        required_level=module.required_level,
        is_completed=progression.is_module_completed(module, state),
        exam_eligible=progression.is_exam_eligible(module, state),
        lessons=[
            LessonState(
                id=str(lesson.id),
                title=lesson.title,
                sequence_order=lesson.sequence_order,
                is_accessible=progression.is_lesson_accessible(lessons, idx, state),
                is_completed=progression.is_lesson_completed(lesson, state),
            )
            for idx, lesson in enumerate(lessons)
        ],
        practice_questions=[
            PracticeQuestionResponse(
                id=str(q.id),
                title=q.title,
                question=q.question,
                type=q.type,
                points=q.points,
                options=[OptionResponse(id=str(opt.id), text=opt.text) for opt in q.options],
                status=submissions[q.id].status if q.id in submissions else None,
                points_awarded=submissions[q.id].points if q.id in submissions else None,
            )
            for q in module.practice_questions
        ],
    )


@router.post(
    "/modules/{module_id}/practice-questions/{question_id}/submit",
    response_model=PracticeSubmitResponse,
)
def submit_practice_answer(
    module_id: uuid.UUID,
    question_id: uuid.UUID,
    request: PracticeSubmitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Submit the one allowed answer to a practice question.

    - Choice questions are graded immediately
    - Coding answers stay pending until an admin grades them
    - A second submission is a no-op that returns the first result
    """
    try:
        outcome = CompletionRecorder(db).record_practice_submission(
            current_user.id, question_id, request.answer, module_id=module_id
        )
    except DuplicateSubmission as exc:
        existing = exc.existing
        return PracticeSubmitResponse(
            submission_id=str(existing.id),
            status=existing.status,
            is_correct=existing.is_correct,
            points_awarded=existing.points,
            module_completed=False,
            correct_option_id=correct_option(existing.question),
            duplicate=True,
        )
    return PracticeSubmitResponse(
        submission_id=str(outcome.submission.id),
        status=outcome.status,
        is_correct=outcome.is_correct,
        points_awarded=outcome.points_awarded,
        module_completed=outcome.module_completed,
        correct_option_id=correct_option(outcome.submission.question),
    )


@router.get("/modules/{module_id}/exams", response_model=List[ExamResponse])
def list_module_exams(
    module_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Exams of a module. Questions are withheld until the learner is eligible."""
    module = EntityStore(db).get_module(module_id)
    state = CompletionRecorder(db).ensure_module_access(current_user.id, module)
    eligible = progression.is_exam_eligible(module, state)
    submissions = {
        s.exam_id: s
        for s in db.query(ModuleExamSubmission).filter(ModuleExamSubmission.user_id == current_user.id).all()
    }
    return [exam_payload(exam, submissions.get(exam.id), eligible) for exam in module.exams]


@router.post("/exams/{exam_id}/submit", response_model=ExamSubmitResponse)
def submit_module_exam(
    exam_id: uuid.UUID,
    request: ExamSubmitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Single attempt at a module exam. Answers are keyed by question id."""
    try:
        outcome = CompletionRecorder(db).submit_module_exam(current_user.id, exam_id, request.answers)
    except DuplicateSubmission as exc:
        return exam_submit_payload(exc.existing, duplicate=True)
    return exam_submit_payload(outcome.submission, module_completed=outcome.module_completed)

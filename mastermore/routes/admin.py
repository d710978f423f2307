"""Admin routes: course building, student levels and manual grading."""
import uuid
from datetime import datetime
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from mastermore.db.sessions import get_db
from mastermore.models import User
from mastermore.core.security import require_admin
from mastermore.services.course_builder import CourseBuilder
from mastermore.services.grading import GRADING_KINDS, GradingAggregator


router = APIRouter(prefix="/admin", tags=["Admin"])


# Request/Response schemas
class CourseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    is_published: bool = True
    sequence_order: Optional[int] = None


class ModuleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    required_level: Optional[str] = None
    sequence_order: Optional[int] = None


class LessonCreate(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    content: Optional[str] = None
    sequence_order: Optional[int] = None


class OptionCreate(BaseModel):
    text: str
    is_correct: bool = False


class PracticeQuestionCreate(BaseModel):
    title: str
    question: str
    type: str = Field(pattern="^(multiple_choice|true_false|coding)$")
    points: int = Field(default=1, ge=0)
    options: List[OptionCreate] = []
    sequence_order: Optional[int] = None


class ExamQuestionCreate(BaseModel):
    question: str
    type: str = Field(pattern="^(multiple_choice|true_false|coding|essay)$")
    points: int = Field(default=1, ge=0)
    options: List[OptionCreate] = []


class ExamCreate(BaseModel):
    title: str
    description: Optional[str] = None
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)
    time_limit: Optional[int] = None
    questions: List[ExamQuestionCreate] = []


class ProjectCreate(BaseModel):
    title: str
    description: Optional[str] = None
    requirements: Optional[str] = None
    points: int = Field(default=100, gt=0)
    due_date: Optional[datetime] = None
    sequence_order: Optional[int] = None


class ReorderRequest(BaseModel):
    ordered_ids: List[uuid.UUID]


class LevelUpdate(BaseModel):
    level: str


class CreatedResponse(BaseModel):
    id: str
    sequence_order: Optional[int] = None


class OrderedItem(BaseModel):
    id: str
    sequence_order: int


class StudentResponse(BaseModel):
    id: str
    name: str
    email: str
    level: str


class PendingSubmission(BaseModel):
    submission_id: str
    kind: str
    user_id: str
    user_name: str
    item_id: str
    item_title: str
    submitted_at: str
    content: Optional[str] = None
    answers: Dict[str, Optional[str]] = {}


class GradeRequest(BaseModel):
    kind: str
    submission_id: uuid.UUID
    score: Optional[float] = None
    feedback: Optional[str] = None
    per_item_scores: Optional[Dict[uuid.UUID, float]] = None
    request_revision: bool = False


class GradeResponse(BaseModel):
    grade_id: str
    item_type: str
    score: float
    max_score: float
    percentage: float
    passed: bool


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _options(options: List[OptionCreate]) -> List[dict]:
    return [opt.model_dump() for opt in options]


# ---------- course building ----------

@router.post("/courses", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_course(
    request: CourseCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        course = CourseBuilder(db).create_course(
            request.name, request.description,
            is_published=request.is_published, sequence_order=request.sequence_order,
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(course.id), sequence_order=course.sequence_order)


@router.post("/courses/{course_id}/modules", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_module(
    course_id: uuid.UUID,
    request: ModuleCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        module = CourseBuilder(db).create_module(
            course_id, request.name, request.description,
            required_level=request.required_level,
            sequence_order=request.sequence_order,
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(module.id), sequence_order=module.sequence_order)


@router.post("/courses/{course_id}/lessons", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_course_lesson(
    course_id: uuid.UUID,
    request: LessonCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Attach a lesson directly to a course (legacy layout without modules)."""
    try:
        lesson = CourseBuilder(db).create_lesson(
            request.title, request.content, course_id=course_id, sequence_order=request.sequence_order,
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(lesson.id), sequence_order=lesson.sequence_order)


@router.post("/modules/{module_id}/lessons", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_module_lesson(
    module_id: uuid.UUID,
    request: LessonCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        lesson = CourseBuilder(db).create_lesson(
            request.title, request.content, module_id=module_id, sequence_order=request.sequence_order,
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(lesson.id), sequence_order=lesson.sequence_order)


@router.post(
    "/modules/{module_id}/practice-questions",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_practice_question(
    module_id: uuid.UUID,
    request: PracticeQuestionCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        question = CourseBuilder(db).create_practice_question(
            module_id, request.title, request.question, request.type,
            points=request.points, options=_options(request.options),
            sequence_order=request.sequence_order,
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(question.id), sequence_order=question.sequence_order)


@router.post("/modules/{module_id}/exams", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_module_exam(
    module_id: uuid.UUID,
    request: ExamCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        exam = CourseBuilder(db).create_module_exam(
            module_id, request.title, request.description,
            passing_score=request.passing_score, time_limit=request.time_limit,
            questions=[q.model_dump() for q in request.questions],
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(exam.id))


@router.post("/courses/{course_id}/final-exams", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_final_exam(
    course_id: uuid.UUID,
    request: ExamCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        exam = CourseBuilder(db).create_final_exam(
            course_id, request.title, request.description,
            passing_score=request.passing_score, time_limit=request.time_limit,
            questions=[q.model_dump() for q in request.questions],
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(exam.id))


@router.post("/courses/{course_id}/projects", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    course_id: uuid.UUID,
    request: ProjectCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        project = CourseBuilder(db).create_project(
            course_id, request.title, request.description,
            requirements=request.requirements, points=request.points,
            due_date=request.due_date, sequence_order=request.sequence_order,
        )
    except ValueError as e:
        raise _bad_request(e)
    return CreatedResponse(id=str(project.id), sequence_order=project.sequence_order)


@router.post("/courses/reorder", response_model=List[OrderedItem])
def reorder_courses(
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Renumber the whole catalogue 1..n following ``ordered_ids``."""
    try:
        courses = CourseBuilder(db).reorder_courses(request.ordered_ids)
    except ValueError as e:
        raise _bad_request(e)
    return [OrderedItem(id=str(c.id), sequence_order=c.sequence_order) for c in courses]


@router.post("/courses/{course_id}/modules/reorder", response_model=List[OrderedItem])
def reorder_modules(
    course_id: uuid.UUID,
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Renumber the course's modules 1..n following ``ordered_ids``."""
    try:
        modules = CourseBuilder(db).reorder_modules(course_id, request.ordered_ids)
    except ValueError as e:
        raise _bad_request(e)
    return [OrderedItem(id=str(m.id), sequence_order=m.sequence_order) for m in modules]


@router.post("/modules/{module_id}/lessons/reorder", response_model=List[OrderedItem])
def reorder_lessons(
    module_id: uuid.UUID,
    request: ReorderRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        lessons = CourseBuilder(db).reorder_lessons(module_id, request.ordered_ids)
    except ValueError as e:
        raise _bad_request(e)
    return [OrderedItem(id=str(lesson.id), sequence_order=lesson.sequence_order) for lesson in lessons]


# ---------- students ----------

@router.put("/students/{user_id}/level", response_model=StudentResponse)
def update_student_level(
    user_id: uuid.UUID,
    request: LevelUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    try:
        user = CourseBuilder(db).set_student_level(user_id, request.level)
    except ValueError as e:
        raise _bad_request(e)
    return StudentResponse(id=str(user.id), name=user.name, email=user.email, level=user.level)


# ---------- grading ----------

def _pending_payload(kind: str, submission) -> PendingSubmission:
    answers = {}
    if kind == "project":
        item, content = submission.project, submission.content
    elif kind == "practice_question":
        item, content = submission.question, submission.answer
    else:
        item, content = submission.exam, None
        answers = {str(a.question_id): a.answer for a in submission.answers}
    return PendingSubmission(
        submission_id=str(submission.id),
        kind=kind,
        user_id=str(submission.user_id),
        user_name=submission.user.name,
        item_id=str(item.id),
        item_title=item.title,
        submitted_at=submission.submitted_at.isoformat(),
        content=content,
        answers=answers,
    )


@router.get("/grading", response_model=List[PendingSubmission])
def list_pending(
    type: str = Query("project", description="One of: " + ", ".join(GRADING_KINDS)),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Ungraded submissions of one kind, oldest first."""
    try:
        pending = GradingAggregator(db).list_pending_grading(type)
    except ValueError as e:
        raise _bad_request(e)
    return [_pending_payload(type, s) for s in pending]


@router.post("/grading", response_model=GradeResponse)
def apply_grade(
    request: GradeRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Grade a submission.

    - Exams: ``per_item_scores`` (question id -> points) wins over ``score``
    - Projects and coding answers pass at 60% of their points
    """
    try:
        grade = GradingAggregator(db).apply_grade(
            request.kind,
            request.submission_id,
            score=request.score,
            feedback=request.feedback,
            per_item_scores=request.per_item_scores,
            grader_id=admin.id,
            request_revision=request.request_revision,
        )
    except ValueError as e:
        raise _bad_request(e)
    return GradeResponse(
        grade_id=str(grade.id),
        item_type=grade.item_type,
        score=grade.score,
        max_score=grade.max_score,
        percentage=grade.percentage,
        passed=grade.passed,
    )

"""Learner course routes: catalogue, enrollment, lessons and progress."""
import uuid
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel

from mastermore.db.sessions import get_db
from mastermore.models import Course, Enrollment, UserProgress, User, ProjectSubmission, FinalExamSubmission
from mastermore.core.security import get_current_user
from mastermore.services import progression
from mastermore.services.completion_recorder import CompletionRecorder
from mastermore.services.course_progress import CourseProgressService
from mastermore.services.entity_store import EntityStore


router = APIRouter(prefix="/courses", tags=["Courses"])


# Request/Response schemas
class CourseSummary(BaseModel):
    id: str
    name: str
    description: Optional[str]
    sequence_order: int
    module_count: int
    is_enrolled: bool
    progress: int

    class Config:
        from_attributes = True


class EnrollmentResponse(BaseModel):
    course_id: str
    enrolled_at: str
    is_completed: bool


class LessonResponse(BaseModel):
    id: str
    title: str
    content: Optional[str]
    sequence_order: int
    module_id: Optional[str]
    is_completed: bool

    class Config:
        from_attributes = True


class LessonCompleteResponse(BaseModel):
    lesson_id: str
    progress: int
    course_completed: bool


class ProjectResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    requirements: Optional[str]
    points: int
    due_date: Optional[str]
    status: Optional[str]
    score: Optional[float]
    feedback: Optional[str]


class ProjectsResponse(BaseModel):
    can_access: bool
    projects: List[ProjectResponse]


class OptionResponse(BaseModel):
    id: str
    text: str


class QuestionResponse(BaseModel):
    id: str
    question: str
    type: str
    points: int
    options: List[OptionResponse]


class ExamResponse(BaseModel):
    id: str
    title: str
    description: Optional[str]
    passing_score: int
    time_limit: Optional[int]
    submitted: bool
    score: Optional[float]
    passed: Optional[bool]
    questions: List[QuestionResponse]


class FinalExamsResponse(BaseModel):
    can_access: bool
    exams: List[ExamResponse]


def question_payload(question) -> QuestionResponse:
    """Question as shown to a learner; ``is_correct`` never leaves the server."""
    return QuestionResponse(
        id=str(question.id),
        question=question.question,
        type=question.type,
        points=question.points,
        options=[OptionResponse(id=str(opt.id), text=opt.text) for opt in question.options],
    )


def exam_payload(exam, submission, include_questions: bool) -> ExamResponse:
    return ExamResponse(
        id=str(exam.id),
        title=exam.title,
        description=exam.description,
        passing_score=exam.passing_score,
        time_limit=exam.time_limit,
        submitted=submission is not None,
        score=submission.score if submission else None,
        passed=submission.passed if submission and submission.graded_at else None,
        questions=[question_payload(q) for q in exam.questions] if include_questions else [],
    )


@router.get("", response_model=List[CourseSummary])
def list_courses(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Published courses with the caller's enrollment flag and cached progress."""
    courses = db.query(Course).filter(Course.is_published.is_(True)).order_by(Course.sequence_order).all()
    enrolled = {
        cid for cid, in db.query(Enrollment.course_id).filter(Enrollment.user_id == current_user.id).all()
    }
    cached = dict(
        db.query(UserProgress.course_id, UserProgress.progress).filter(
            UserProgress.user_id == current_user.id
        ).all()
    )
    return [
        CourseSummary(
            id=str(course.id),
            name=course.name,
            description=course.description,
            sequence_order=course.sequence_order,
            module_count=len(course.modules),
            is_enrolled=course.id in enrolled,
            progress=cached.get(course.id, 0),
        )
        for course in courses
    ]


@router.post("/{course_id}/enroll", response_model=EnrollmentResponse)
def enroll(
    course_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    enrollment = CompletionRecorder(db).enroll(current_user.id, course_id)
    return EnrollmentResponse(
        course_id=str(enrollment.course_id),
        enrolled_at=enrollment.enrolled_at.isoformat(),
        is_completed=enrollment.is_completed,
    )


@router.get("/{course_id}/progress")
def get_progress(
    course_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Lock/checkmark flags for every module, lesson, project and final exam."""
    return CourseProgressService(db).build(current_user.id, course_id)


@router.get("/{course_id}/lessons/{lesson_id}", response_model=LessonResponse)
def get_lesson(
    course_id: uuid.UUID,
    lesson_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    lesson = EntityStore(db).get_lesson_in_course(course_id, lesson_id)
    state = CompletionRecorder(db).ensure_lesson_access(current_user.id, lesson)
    return LessonResponse(
        id=str(lesson.id),
        title=lesson.title,
        content=lesson.content,
        sequence_order=lesson.sequence_order,
        module_id=str(lesson.module_id) if lesson.module_id else None,
        is_completed=progression.is_lesson_completed(lesson, state),
    )


@router.post("/{course_id}/lessons/{lesson_id}/complete", response_model=LessonCompleteResponse)
def complete_lesson(
    course_id: uuid.UUID,
    lesson_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark a lesson completed and return the recomputed course percentage."""
    pct = CompletionRecorder(db).record_lesson_completion(current_user.id, lesson_id, course_id=course_id)
    enrollment = EntityStore(db).get_enrollment(current_user.id, course_id)
    return LessonCompleteResponse(
        lesson_id=str(lesson_id),
        progress=pct,
        course_completed=bool(enrollment and enrollment.is_completed),
    )


@router.get("/{course_id}/projects", response_model=ProjectsResponse)
def list_projects(
    course_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    store = EntityStore(db)
    course = store.get_course(course_id)
    store.require_enrollment(current_user.id, course.id)
    state = store.load_learner_state(current_user.id, course)
    submissions = {
        s.project_id: s
        for s in db.query(ProjectSubmission).filter(ProjectSubmission.user_id == current_user.id).all()
    }
    projects = []
    for project in course.projects:
        sub = submissions.get(project.id)
        projects.append(ProjectResponse(
            id=str(project.id),
            title=project.title,
            description=project.description,
            requirements=project.requirements,
            points=project.points,
            due_date=project.due_date.isoformat() if project.due_date else None,
            status=sub.status if sub else None,
            score=sub.score if sub else None,
            feedback=sub.feedback if sub else None,
        ))
    return ProjectsResponse(can_access=progression.can_access_projects(course.modules, state), projects=projects)


@router.get("/{course_id}/final-exams", response_model=FinalExamsResponse)
def list_final_exams(
    course_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Final exams of the course. Questions are only shown once the exam is unlocked."""
    store = EntityStore(db)
    course = store.get_course(course_id)
    store.require_enrollment(current_user.id, course.id)
    state = store.load_learner_state(current_user.id, course)
    can_access = progression.can_access_final_exam(course.modules, course.projects, state)
    submissions = {
        s.exam_id: s
        for s in db.query(FinalExamSubmission).filter(FinalExamSubmission.user_id == current_user.id).all()
    }
    return FinalExamsResponse(
        can_access=can_access,
        exams=[exam_payload(exam, submissions.get(exam.id), can_access) for exam in course.final_exams],
    )

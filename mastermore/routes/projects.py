"""Project and final exam submission routes."""
import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field

from mastermore.db.sessions import get_db
from mastermore.models import User
from mastermore.core.exceptions import DuplicateSubmission
from mastermore.core.security import get_current_user
from mastermore.routes.modules import ExamSubmitRequest, ExamSubmitResponse, exam_submit_payload
from mastermore.services.completion_recorder import CompletionRecorder


router = APIRouter(tags=["Projects"])


# Request/Response schemas
class ProjectSubmitRequest(BaseModel):
    content: str = Field(min_length=1)


class ProjectSubmitResponse(BaseModel):
    submission_id: str
    project_id: str
    status: str
    submitted_at: str
    duplicate: bool = False


def _project_payload(submission, duplicate: bool = False) -> ProjectSubmitResponse:
    return ProjectSubmitResponse(
        submission_id=str(submission.id),
        project_id=str(submission.project_id),
        status=submission.status,
        submitted_at=submission.submitted_at.isoformat(),
        duplicate=duplicate,
    )


@router.post("/projects/{project_id}/submit", response_model=ProjectSubmitResponse)
def submit_project(
    project_id: uuid.UUID,
    request: ProjectSubmitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Hand in a project once every module of the course is complete.

    Resubmitting is only possible after a grader asked for a revision.
    """
    try:
        submission = CompletionRecorder(db).submit_project(current_user.id, project_id, request.content)
    except DuplicateSubmission as exc:
        return _project_payload(exc.existing, duplicate=True)
    return _project_payload(submission)


@router.post("/final-exams/{exam_id}/submit", response_model=ExamSubmitResponse)
def submit_final_exam(
    exam_id: uuid.UUID,
    request: ExamSubmitRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        outcome = CompletionRecorder(db).submit_final_exam(current_user.id, exam_id, request.answers)
    except DuplicateSubmission as exc:
        return exam_submit_payload(exc.existing, duplicate=True)
    return exam_submit_payload(outcome.submission)

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request

from editorial.middlewares.actor_middleware import get_current_actor
from editorial.routers.submissions import submission_payload
from editorial.schemas.submission_schemas import (
    AssignEditorRequest,
    AssignReviewerRequest,
    UnassignRequest,
)
from editorial.services.assignment_service import (
    AssignmentService,
    get_assignment_service,
)
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

assignments_router = APIRouter()

SubmissionId = Annotated[str, Path(description="Submission ID")]


@assignments_router.post("/{submission_id}/assignments/reviewer")
async def assign_reviewer(
    request: Request,
    submission_id: SubmissionId,
    body: AssignReviewerRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[AssignmentService, Depends(get_assignment_service)],
):
    """Assign a reviewer; a deadline within five days raises the priority."""
    submission = await service.assign_reviewer(
        submission_id,
        actor,
        body.reviewer_id,
        deadline=body.deadline,
        expected_version=body.expected_version,
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message=f"Reviewer {submission.assigned_reviewer_id} assigned",
    )


@assignments_router.post("/{submission_id}/assignments/editor")
async def assign_editor(
    request: Request,
    submission_id: SubmissionId,
    body: AssignEditorRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[AssignmentService, Depends(get_assignment_service)],
):
    submission = await service.assign_editor(
        submission_id,
        actor,
        body.editor_id,
        expected_version=body.expected_version,
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message=f"Editor {submission.assigned_editor_id} assigned",
    )


@assignments_router.post("/{submission_id}/assignments/unassign")
async def unassign(
    request: Request,
    submission_id: SubmissionId,
    body: UnassignRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    service: Annotated[AssignmentService, Depends(get_assignment_service)],
):
    """
    Clear the reviewer or editor assignment.

    Removing the reviewer of a submission under review returns it to
    ``submitted``.
    """
    submission = await service.unassign(
        submission_id, actor, body.role, expected_version=body.expected_version
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message=f"{body.role.value.capitalize()} unassigned",
    )

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request

from editorial.middlewares.actor_middleware import get_current_actor
from editorial.routers.submissions import submission_payload
from editorial.schemas.submission_schemas import ContentVersionResponse, RestoreVersionRequest
from editorial.services.workflow_service import WorkflowService, get_workflow_service
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

versions_router = APIRouter()

SubmissionId = Annotated[str, Path(description="Submission ID")]
VersionNumber = Annotated[int, Path(ge=1, description="Content version number")]


def version_payload(version) -> dict:
    return ContentVersionResponse.model_validate(version).model_dump(by_alias=True)


@versions_router.get("/{submission_id}/versions")
async def list_versions(
    request: Request,
    submission_id: SubmissionId,
    _: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Content history, newest first."""
    versions = await workflow.list_versions(submission_id)
    return ResponseBuilder.success(
        request=request,
        data=[version_payload(version) for version in versions],
        message=f"Retrieved {len(versions)} content versions",
    )


@versions_router.get("/{submission_id}/versions/{number}")
async def get_version(
    request: Request,
    submission_id: SubmissionId,
    number: VersionNumber,
    _: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    version = await workflow.get_version(submission_id, number)
    return ResponseBuilder.success(
        request=request,
        data=version_payload(version),
        message=f"Content version {number} retrieved",
    )


@versions_router.post("/{submission_id}/versions/{number}/restore")
async def restore_version(
    request: Request,
    submission_id: SubmissionId,
    number: VersionNumber,
    body: RestoreVersionRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Copy an earlier version's content back onto the submission as a new version."""
    submission = await workflow.restore_version(
        submission_id,
        actor,
        number,
        expected_version=body.expected_version,
        note=body.note,
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message=f"Content version {number} restored",
    )

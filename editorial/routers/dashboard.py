from typing import Annotated

from fastapi import APIRouter, Depends, Request

from editorial.middlewares.actor_middleware import require_staff
from editorial.schemas.submission_schemas import (
    DashboardStatsResponse,
    SubmissionListItem,
)
from editorial.services.workflow_service import WorkflowService, get_workflow_service
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

dashboard_router = APIRouter()


@dashboard_router.get("/stats")
async def get_dashboard_stats(
    request: Request,
    _: Annotated[Actor, Depends(require_staff)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Submission counts per status plus active editor assignments."""
    stats = DashboardStatsResponse(**await workflow.dashboard_stats())
    return ResponseBuilder.success(
        request=request,
        data=stats.model_dump(by_alias=True),
        message="Dashboard stats retrieved",
    )


@dashboard_router.get("/publishing-queue")
async def get_publishing_queue(
    request: Request,
    _: Annotated[Actor, Depends(require_staff)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Approved submissions waiting to be published, oldest first."""
    queue = await workflow.publishing_queue()
    return ResponseBuilder.success(
        request=request,
        data=[
            SubmissionListItem.model_validate(item).model_dump(by_alias=True)
            for item in queue
        ],
        message=f"{len(queue)} submissions ready to publish",
    )

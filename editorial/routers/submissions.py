from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status

from editorial.db.models import Priority, SubmissionStatus
from editorial.middlewares.actor_middleware import get_current_actor
from editorial.schemas.submission_schemas import (
    CreateSubmissionRequest,
    GateResponse,
    PlagiarismScanResponse,
    SubmissionDetailResponse,
    SubmissionListItem,
    SubmissionResponse,
    TransitionRequest,
    UpdateDraftRequest,
    WorkflowEventResponse,
)
from editorial.services.audit_log import AuditLog, get_audit_log
from editorial.services.submission_store import SubmissionFilters
from editorial.services.workflow_service import (
    SubmissionDetail,
    WorkflowService,
    get_workflow_service,
)
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

submissions_router = APIRouter()

SubmissionId = Annotated[str, Path(description="Submission ID")]


def submission_payload(submission) -> dict:
    return SubmissionResponse.model_validate(submission).model_dump(by_alias=True)


def detail_payload(detail: SubmissionDetail) -> dict:
    return SubmissionDetailResponse(
        submission=SubmissionResponse.model_validate(detail.submission),
        revision_count=detail.revision_count,
        gate=GateResponse.model_validate(detail.gate),
        allowed_targets=detail.allowed_targets,
        latest_scan=(
            PlagiarismScanResponse.model_validate(detail.latest_scan)
            if detail.latest_scan
            else None
        ),
    ).model_dump(by_alias=True)


@submissions_router.post("", status_code=status.HTTP_201_CREATED)
async def create_submission(
    request: Request,
    body: CreateSubmissionRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Create a new draft owned by the calling author."""
    submission = await workflow.create_submission(
        actor,
        title=body.title,
        body=body.body,
        category=body.category,
        priority=body.priority,
        attachment_paths=body.attachment_paths,
    )
    return ResponseBuilder.created(
        request=request,
        data=submission_payload(submission),
        message="Draft created",
    )


@submissions_router.get("")
async def list_submissions(
    request: Request,
    _: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    author_id: Optional[str] = Query(None, alias="authorId"),
    reviewer_id: Optional[str] = Query(None, alias="reviewerId"),
    editor_id: Optional[str] = Query(None, alias="editorId"),
    category: Optional[str] = Query(None),
    priority: Optional[Priority] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100, alias="perPage"),
):
    """
    List submissions, newest first.

    All filters are optional and combine with AND.
    """
    filters = SubmissionFilters(
        status=status_filter,
        author_id=author_id,
        reviewer_id=reviewer_id,
        editor_id=editor_id,
        category=category,
        priority=priority,
    )
    items, total = await workflow.list_submissions(filters, page, per_page)
    return ResponseBuilder.paginated(
        request=request,
        data=[
            SubmissionListItem.model_validate(item).model_dump(by_alias=True)
            for item in items
        ],
        page=page,
        per_page=per_page,
        total=total,
        message=f"Retrieved {len(items)} submissions",
    )


@submissions_router.get("/{submission_id}")
async def get_submission(
    request: Request,
    submission_id: SubmissionId,
    _: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """Submission with its gate verdict, revision count and next allowed statuses."""
    detail = await workflow.get_submission_detail(submission_id)
    return ResponseBuilder.success(
        request=request,
        data=detail_payload(detail),
        message="Submission retrieved",
    )


@submissions_router.patch("/{submission_id}")
async def update_draft(
    request: Request,
    submission_id: SubmissionId,
    body: UpdateDraftRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    submission = await workflow.update_draft(
        submission_id,
        actor,
        expected_version=body.expected_version,
        title=body.title,
        body=body.body,
        category=body.category,
        attachment_paths=body.attachment_paths,
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message="Submission updated",
    )


@submissions_router.post("/{submission_id}/transitions")
async def apply_transition(
    request: Request,
    submission_id: SubmissionId,
    body: TransitionRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
):
    """
    Move the submission to ``targetStatus``.

    ``expectedVersion`` must match the stored version; a stale value is
    answered with 409 and ``meta.retryable = true``.
    """
    submission = await workflow.apply_transition(
        submission_id,
        actor,
        body.target_status,
        expected_version=body.expected_version,
        note=body.note,
        reviewer_id=body.reviewer_id,
        review_deadline=body.review_deadline,
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message=f"Submission moved to {submission.status.value}",
    )


@submissions_router.get("/{submission_id}/timeline")
async def get_timeline(
    request: Request,
    submission_id: SubmissionId,
    _: Annotated[Actor, Depends(get_current_actor)],
    workflow: Annotated[WorkflowService, Depends(get_workflow_service)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
):
    """Workflow history of the submission, oldest first."""
    await workflow.get_submission(submission_id)
    events = [
        WorkflowEventResponse.model_validate(event).model_dump(by_alias=True)
        async for event in audit.list_events(submission_id)
    ]
    return ResponseBuilder.success(
        request=request,
        data=events,
        message=f"Retrieved {len(events)} workflow events",
    )

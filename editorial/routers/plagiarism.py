from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Path, Request, status

from editorial.middlewares.actor_middleware import get_current_actor
from editorial.routers.submissions import submission_payload
from editorial.schemas.submission_schemas import (
    PlagiarismScanResponse,
    RecordScanRequest,
    VersionedRequest,
)
from editorial.services.plagiarism_gate import PlagiarismGate, get_plagiarism_gate
from editorial.services.submission_store import SubmissionStore, get_submission_store
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

plagiarism_router = APIRouter()

SubmissionId = Annotated[str, Path(description="Submission ID")]


def scan_payload(scan) -> dict:
    return PlagiarismScanResponse.model_validate(scan).model_dump(by_alias=True)


@plagiarism_router.post("/{submission_id}/plagiarism/scans", status_code=status.HTTP_201_CREATED)
async def record_scan(
    request: Request,
    submission_id: SubmissionId,
    body: RecordScanRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    gate: Annotated[PlagiarismGate, Depends(get_plagiarism_gate)],
):
    """Record a similarity score produced by an external checker."""
    scan = await gate.record_scan(
        submission_id,
        actor,
        body.similarity_score,
        source_matches=body.source_matches,
        expected_version=body.expected_version,
    )
    return ResponseBuilder.created(
        request=request,
        data=scan_payload(scan),
        message=f"Scan recorded: {scan.decision.value}",
    )


@plagiarism_router.post("/{submission_id}/plagiarism/run", status_code=status.HTTP_201_CREATED)
async def run_scan(
    request: Request,
    submission_id: SubmissionId,
    actor: Annotated[Actor, Depends(get_current_actor)],
    gate: Annotated[PlagiarismGate, Depends(get_plagiarism_gate)],
    body: Optional[VersionedRequest] = Body(None),
):
    """Score the submission against recent submissions and record the result."""
    scan = await gate.run_scan(
        submission_id, actor, expected_version=body.expected_version if body else None
    )
    return ResponseBuilder.created(
        request=request,
        data=scan_payload(scan),
        message=f"Similarity {scan.similarity_score}%: {scan.decision.value}",
    )


@plagiarism_router.post("/{submission_id}/plagiarism/verify")
async def verify(
    request: Request,
    submission_id: SubmissionId,
    actor: Annotated[Actor, Depends(get_current_actor)],
    gate: Annotated[PlagiarismGate, Depends(get_plagiarism_gate)],
    body: Optional[VersionedRequest] = Body(None),
):
    """Content manager accepts a needs-validation similarity result."""
    submission = await gate.verify(
        submission_id, actor, expected_version=body.expected_version if body else None
    )
    return ResponseBuilder.success(
        request=request,
        data=submission_payload(submission),
        message="Similarity result verified",
    )


@plagiarism_router.get("/{submission_id}/plagiarism/scans")
async def list_scans(
    request: Request,
    submission_id: SubmissionId,
    _: Annotated[Actor, Depends(get_current_actor)],
    gate: Annotated[PlagiarismGate, Depends(get_plagiarism_gate)],
    store: Annotated[SubmissionStore, Depends(get_submission_store)],
):
    await store.get(submission_id)
    scans = await gate.list_scans(submission_id)
    return ResponseBuilder.success(
        request=request,
        data=[scan_payload(scan) for scan in scans],
        message=f"Retrieved {len(scans)} scans",
    )


@plagiarism_router.get("/{submission_id}/plagiarism/scans/latest")
async def latest_scan(
    request: Request,
    submission_id: SubmissionId,
    _: Annotated[Actor, Depends(get_current_actor)],
    gate: Annotated[PlagiarismGate, Depends(get_plagiarism_gate)],
    store: Annotated[SubmissionStore, Depends(get_submission_store)],
):
    submission = await store.get(submission_id)
    scan = await gate.latest_scan(submission_id)
    verdict = gate.evaluate(submission)
    return ResponseBuilder.success(
        request=request,
        data=scan_payload(scan) if scan else None,
        message="Latest scan retrieved" if scan else "No scan recorded",
        meta={
            "allows_approval": verdict.allows_approval,
            "reason": verdict.reason,
        },
    )

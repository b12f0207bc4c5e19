from datetime import date, datetime
from typing import List, Optional

from pydantic import Field, field_validator

from editorial.db.models import (
    ActorRole,
    AssignmentRole,
    ContentVersionReason,
    Priority,
    PlagiarismDecision,
    SubmissionStatus,
    WorkflowEventType,
)
from editorial.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


# ========== REQUESTS ==========


class CreateSubmissionRequest(BaseModel):
    title: str = Field(..., max_length=500, description="Submission title")
    body: str = Field("", description="Article body")
    category: Optional[str] = Field(None, max_length=100, description="Content category")
    priority: Priority = Field(Priority.NORMAL, description="Initial priority")
    attachment_paths: List[str] = Field(
        default_factory=list, description="Opaque attachment store paths"
    )


class UpdateDraftRequest(BaseModel):
    expected_version: int = Field(..., ge=0, description="Version the caller last read")
    title: Optional[str] = Field(None, max_length=500)
    body: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    attachment_paths: Optional[List[str]] = None


class TransitionRequest(BaseModel):
    """Request to move a submission to ``target_status``"""

    target_status: SubmissionStatus = Field(..., description="Status to move to")
    expected_version: int = Field(..., ge=0, description="Version the caller last read")
    note: Optional[str] = Field(None, description="Feedback or rejection reason")
    reviewer_id: Optional[str] = Field(
        None, description="Reviewer to assign when starting the review"
    )
    review_deadline: Optional[date] = Field(None, description="Review due date")


class AssignReviewerRequest(BaseModel):
    reviewer_id: str = Field(..., min_length=1)
    deadline: Optional[date] = Field(None, description="Review due date")
    expected_version: Optional[int] = Field(None, ge=0)


class AssignEditorRequest(BaseModel):
    editor_id: str = Field(..., min_length=1)
    expected_version: Optional[int] = Field(None, ge=0)


class UnassignRequest(BaseModel):
    role: AssignmentRole = Field(..., description="Which assignment to clear")
    expected_version: Optional[int] = Field(None, ge=0)


class VersionedRequest(BaseModel):
    expected_version: Optional[int] = Field(None, ge=0)


class RestoreVersionRequest(BaseModel):
    expected_version: int = Field(..., ge=0, description="Version the caller last read")
    note: Optional[str] = Field(None, max_length=2000)


# ========== RESPONSES ==========


class SubmissionResponse(BaseModel):
    id: str = Field(..., description="Submission ID")
    title: str
    body: str
    category: Optional[str] = None
    author_id: str
    status: SubmissionStatus
    assigned_reviewer_id: Optional[str] = None
    assigned_editor_id: Optional[str] = None
    review_deadline: Optional[date] = None
    priority: Priority
    similarity_score: Optional[float] = None
    plagiarism_decision: Optional[PlagiarismDecision] = None
    plagiarism_locked: bool
    cm_verified: bool
    cm_verified_by: Optional[str] = None
    attachment_paths: List[str] = Field(default_factory=list)
    certificate_id: Optional[str] = None
    version: int = Field(..., description="Current optimistic-concurrency version")
    created_at: datetime
    updated_at: datetime


class SubmissionListItem(BaseModel):
    """Compact row for list views"""

    id: str
    title: str
    category: Optional[str] = None
    author_id: str
    status: SubmissionStatus
    assigned_reviewer_id: Optional[str] = None
    assigned_editor_id: Optional[str] = None
    review_deadline: Optional[date] = None
    priority: Priority
    similarity_score: Optional[float] = None
    version: int
    created_at: datetime
    updated_at: datetime


class GateResponse(BaseModel):
    decision: Optional[PlagiarismDecision] = None
    cm_verified: bool
    allows_approval: bool
    reason: str


class PlagiarismScanResponse(BaseModel):
    id: str
    submission_id: str
    scan_number: int
    similarity_score: float
    source_matches: List[dict] = Field(default_factory=list)
    decision: PlagiarismDecision
    auto_threshold: float
    escalation_threshold: float
    run_by: str
    created_at: datetime


class SubmissionDetailResponse(BaseModel):
    submission: SubmissionResponse
    revision_count: int = Field(..., description="Number of resubmissions")
    gate: GateResponse
    allowed_targets: List[SubmissionStatus]
    latest_scan: Optional[PlagiarismScanResponse] = None


class ContentVersionResponse(BaseModel):
    id: int
    submission_id: str
    number: int = Field(..., description="1, 2, 3... per submission")
    title: str
    body: str
    category: Optional[str] = None
    attachment_paths: List[str] = Field(default_factory=list)
    reason: ContentVersionReason
    note: Optional[str] = None
    restored_from: Optional[int] = None
    submission_version: int
    created_by: str
    created_by_role: ActorRole
    created_at: datetime


class WorkflowEventResponse(BaseModel):
    id: int
    submission_id: str
    actor_id: str
    actor_role: ActorRole
    event_type: WorkflowEventType
    from_status: SubmissionStatus
    to_status: SubmissionStatus
    note: Optional[str] = None
    created_at: datetime


class DashboardStatsResponse(BaseModel):
    total: int
    draft: int
    submitted: int
    under_review: int
    changes_requested: int
    approved: int
    rejected: int
    published: int
    with_editor: int = Field(..., description="Active submissions with an editor")


class RecordScanRequest(BaseModel):
    similarity_score: float = Field(..., description="Percentage in [0, 100]")
    source_matches: List[dict] = Field(default_factory=list)
    expected_version: Optional[int] = Field(None, ge=0)

    @field_validator("similarity_score")
    @classmethod
    def check_range(cls, value: float) -> float:
        if not 0 <= value <= 100:
            raise ValueError("similarityScore must be between 0 and 100")
        return value

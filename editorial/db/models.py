from typing import List, Optional
from datetime import datetime, date
import uuid
from sqlalchemy import (
    String,
    Boolean,
    Integer,
    Float,
    Text,
    JSON,
    ForeignKey,
    Enum,
    Index,
    CheckConstraint,
    UniqueConstraint,
    DateTime,
    Date,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import enum

from editorial.utils.datetime_utils import naive_utc_now


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


# Enums
class SubmissionStatus(enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    CHANGES_REQUESTED = "changes_requested"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.PUBLISHED, SubmissionStatus.REJECTED)


class ActorRole(enum.Enum):
    AUTHOR = "author"
    CONTENT_MANAGER = "content_manager"
    REVIEWER = "reviewer"
    EDITOR = "editor"
    ADMIN = "admin"
    SYSTEM = "system"


class Priority(enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class PlagiarismDecision(enum.Enum):
    CLEAR = "clear"
    NEEDS_VALIDATION = "needs_validation"
    MUST_REVISE = "must_revise"


class WorkflowEventType(enum.Enum):
    TRANSITION = "transition"
    REVISION = "revision"
    COMPENSATION = "compensation"
    ASSIGNMENT = "assignment"
    UNASSIGNMENT = "unassignment"
    SCAN = "scan"
    VERIFICATION = "verification"
    EDIT = "edit"
    RESTORE = "restore"


class NotificationType(enum.Enum):
    ASSIGNMENT = "assignment"
    MESSAGE = "message"
    SYSTEM = "system"


class AssignmentRole(enum.Enum):
    REVIEWER = "reviewer"
    EDITOR = "editor"


class ContentVersionReason(enum.Enum):
    CREATED = "created"
    EDIT = "edit"
    RESUBMISSION = "resubmission"
    RESTORE = "restore"


# Base model with common audit fields
class AuditMixin:
    """Mixin for common audit fields"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, onupdate=naive_utc_now, nullable=False
    )


# Models
class Submission(Base, AuditMixin):
    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[Optional[str]] = mapped_column(String(100))
    author_id: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus), nullable=False, default=SubmissionStatus.DRAFT
    )
    assigned_reviewer_id: Mapped[Optional[str]] = mapped_column(String(64))
    assigned_editor_id: Mapped[Optional[str]] = mapped_column(String(64))
    review_deadline: Mapped[Optional[date]] = mapped_column(Date)
    priority: Mapped[Priority] = mapped_column(
        Enum(Priority), nullable=False, default=Priority.NORMAL
    )

    # Plagiarism gate state, always derived from the latest scan
    similarity_score: Mapped[Optional[float]] = mapped_column(Float)
    plagiarism_decision: Mapped[Optional[PlagiarismDecision]] = mapped_column(
        Enum(PlagiarismDecision)
    )
    plagiarism_locked: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    cm_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cm_verified_by: Mapped[Optional[str]] = mapped_column(String(64))

    # Opaque attachment store paths; bytes are never read here
    attachment_paths: Mapped[List[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    certificate_id: Mapped[Optional[str]] = mapped_column(String(100))
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    __table_args__ = (
        Index("idx_submissions_status", "status"),
        Index("idx_submissions_author", "author_id"),
        Index("idx_submissions_reviewer", "assigned_reviewer_id"),
        Index("idx_submissions_editor", "assigned_editor_id"),
        CheckConstraint(
            "similarity_score IS NULL OR (similarity_score >= 0 AND similarity_score <= 100)",
            name="ck_submissions_similarity_range",
        ),
        CheckConstraint("version >= 0", name="ck_submissions_version"),
    )


class WorkflowEvent(Base):
    """Immutable audit entry; one per successful mutation of a submission."""

    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("submissions.id"), nullable=False
    )
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[ActorRole] = mapped_column(Enum(ActorRole), nullable=False)
    event_type: Mapped[WorkflowEventType] = mapped_column(
        Enum(WorkflowEventType), nullable=False
    )
    from_status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus), nullable=False
    )
    to_status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus), nullable=False
    )
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (
        Index("idx_workflow_events_submission_created", "submission_id", "created_at"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    submission_id: Mapped[Optional[str]] = mapped_column(ForeignKey("submissions.id"))
    sender_id: Mapped[Optional[str]] = mapped_column(String(64))
    receiver_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (
        Index("idx_notifications_receiver_read", "receiver_id", "is_read"),
        Index("idx_notifications_receiver_created", "receiver_id", "created_at"),
    )


class PlagiarismScan(Base):
    __tablename__ = "plagiarism_scans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("submissions.id"), nullable=False
    )
    # 1, 2, 3... per submission; the highest number is the scan the gate state came from
    scan_number: Mapped[int] = mapped_column(Integer, nullable=False)
    similarity_score: Mapped[float] = mapped_column(Float, nullable=False)
    source_matches: Mapped[List[dict]] = mapped_column(
        JSON, default=list, nullable=False
    )
    decision: Mapped[PlagiarismDecision] = mapped_column(
        Enum(PlagiarismDecision), nullable=False
    )
    auto_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    escalation_threshold: Mapped[float] = mapped_column(Float, nullable=False)
    run_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("submission_id", "scan_number", name="uq_plagiarism_scans_number"),
        CheckConstraint(
            "similarity_score >= 0 AND similarity_score <= 100",
            name="ck_plagiarism_scans_similarity_range",
        ),
    )


class ContentVersion(Base):
    """Immutable snapshot of a submission's content, taken on every content change."""

    __tablename__ = "content_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    submission_id: Mapped[str] = mapped_column(
        ForeignKey("submissions.id"), nullable=False
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    attachment_paths: Mapped[List[str]] = mapped_column(
        JSON, default=list, nullable=False
    )
    reason: Mapped[ContentVersionReason] = mapped_column(
        Enum(ContentVersionReason), nullable=False
    )
    note: Mapped[Optional[str]] = mapped_column(Text)
    restored_from: Mapped[Optional[int]] = mapped_column(Integer)
    # Submission.version right after the change that produced this snapshot
    submission_version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_by_role: Mapped[ActorRole] = mapped_column(Enum(ActorRole), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=naive_utc_now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("submission_id", "number", name="uq_content_versions_number"),
    )

import asyncio
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.config.settings import settings
from editorial.db.models import (
    ActorRole,
    AssignmentRole,
    ContentVersion,
    ContentVersionReason,
    NotificationType,
    PlagiarismScan,
    Priority,
    Submission,
    SubmissionStatus,
    WorkflowEventType,
)
from editorial.db.session import get_async_session
from editorial.db.transaction import run_in_transaction
from editorial.services.assignment_service import AssignmentService
from editorial.services.audit_log import AuditLog
from editorial.services.certificate_issuer import (
    CertificateIssuer,
    get_certificate_issuer,
)
from editorial.services.content_history import ContentHistory
from editorial.services.plagiarism_gate import GateResult, PlagiarismGate
from editorial.services.submission_store import SubmissionFilters, SubmissionStore
from editorial.utils.errors import (
    DownstreamError,
    GuardRejectedError,
    InvalidStateError,
    InvalidTransitionError,
    RoleNotPermittedError,
)
from editorial.utils.logging import get_logger
from editorial.workflow.actor import Actor
from editorial.workflow.transitions import (
    Guard,
    TransitionRule,
    allowed_targets,
    get_rule,
)

logger = get_logger()

EDITABLE_STATUSES = frozenset({SubmissionStatus.DRAFT, SubmissionStatus.CHANGES_REQUESTED})
# The assigned editor works on the copy while it is being reviewed
EDITOR_EDITABLE_STATUSES = frozenset({SubmissionStatus.UNDER_REVIEW})
CONTENT_FIELDS = ("title", "body", "category", "attachment_paths")


@dataclass
class SubmissionDetail:
    submission: Submission
    revision_count: int
    gate: GateResult
    allowed_targets: List[SubmissionStatus]
    latest_scan: Optional[PlagiarismScan]


class WorkflowService:
    """
    Applies status transitions to submissions.

    Each mutation loads the record, checks the caller's expected version,
    validates the edge against the transition table, evaluates its guards
    (consulting the plagiarism gate and assignment engine) and then writes
    the status change, its audit event and notifications in one transaction.
    Content edits are also snapshotted into the content history.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        gate: Optional[PlagiarismGate] = None,
        certificate_issuer: Optional[CertificateIssuer] = None,
    ):
        self.db = db_session
        self.store = SubmissionStore(db_session)
        self.audit = AuditLog(db_session)
        self.history = ContentHistory(db_session)
        self.assignments = AssignmentService(db_session)
        self.gate = gate or PlagiarismGate(db_session)
        self.certificate_issuer = certificate_issuer or get_certificate_issuer()

    # ========== AUTHORING ==========

    async def create_submission(
        self,
        actor: Actor,
        title: str,
        body: str = "",
        category: Optional[str] = None,
        priority: Priority = Priority.NORMAL,
        attachment_paths: Optional[Sequence[str]] = None,
    ) -> Submission:
        """New draft owned by the calling author, at version 0"""
        if actor.role != ActorRole.AUTHOR:
            raise RoleNotPermittedError("Only authors can create submissions")

        async def _create() -> Submission:
            submission = await self.store.create(
                title=(title or "").strip(),
                body=body or "",
                category=category,
                author_id=actor.actor_id,
                status=SubmissionStatus.DRAFT,
                priority=priority,
                attachment_paths=list(attachment_paths or []),
                version=0,
            )
            await self.history.snapshot(submission, actor, ContentVersionReason.CREATED)
            return submission

        submission = await run_in_transaction(self.db, _create, description="create submission")
        logger.info(f"Draft {submission.id} created by {actor}")
        return submission

    async def update_draft(
        self,
        submission_id: str,
        actor: Actor,
        expected_version: int,
        title: Optional[str] = None,
        body: Optional[str] = None,
        category: Optional[str] = None,
        attachment_paths: Optional[Sequence[str]] = None,
    ) -> Submission:
        """
        Edit content. The author edits while the submission is a draft or
        sent back; the assigned editor edits while it is under review. Every
        change is snapshotted into the content history and logged as an
        ``edit`` event.
        """

        async def _update() -> Submission:
            submission = await self.store.get(submission_id)
            self.store.check_version(submission, expected_version)
            self._ensure_can_edit(submission, actor)

            values = {}
            if title is not None:
                values["title"] = title.strip()
            if body is not None:
                values["body"] = body
            if category is not None:
                values["category"] = category
            if attachment_paths is not None:
                values["attachment_paths"] = list(attachment_paths)
            changed = [name for name, value in values.items() if getattr(submission, name) != value]
            if not changed:
                return submission

            status = submission.status
            await self.store.compare_and_swap(submission, submission.version, **values)
            version = await self.history.snapshot(submission, actor, ContentVersionReason.EDIT)
            await self.audit.append_event(
                submission.id,
                actor,
                WorkflowEventType.EDIT,
                status,
                status,
                note=f"Saved content version {version.number} ({', '.join(changed)})",
            )
            await self._notify_author_of_edit(
                submission, actor, f'An editor revised "{submission.title}".'
            )
            return submission

        submission = await run_in_transaction(self.db, _update, description="update content")
        logger.info(f"Submission {submission_id} edited by {actor} (v{submission.version})")
        return submission

    async def restore_version(
        self,
        submission_id: str,
        actor: Actor,
        number: int,
        expected_version: int,
        note: Optional[str] = None,
    ) -> Submission:
        """Bring back the content of history entry ``number`` as a new entry"""
        note = note.strip() if note else None

        async def _restore() -> Submission:
            submission = await self.store.get(submission_id)
            self.store.check_version(submission, expected_version)
            self._ensure_can_edit(submission, actor)
            source = await self.history.get_version(submission_id, number)

            status = submission.status
            await self.store.compare_and_swap(
                submission,
                submission.version,
                **{name: getattr(source, name) for name in CONTENT_FIELDS},
            )
            version = await self.history.snapshot(
                submission,
                actor,
                ContentVersionReason.RESTORE,
                note=note,
                restored_from=source.number,
            )
            restored = f"Restored content version {source.number} as version {version.number}"
            await self.audit.append_event(
                submission.id,
                actor,
                WorkflowEventType.RESTORE,
                status,
                status,
                note=f"{restored}. {note}" if note else restored,
            )
            await self._notify_author_of_edit(
                submission,
                actor,
                f'An editor restored an earlier version of "{submission.title}".',
            )
            return submission

        submission = await run_in_transaction(self.db, _restore, description="restore content version")
        logger.info(
            f"Submission {submission_id} restored to content version {number} by {actor} "
            f"(v{submission.version})"
        )
        return submission

    async def list_versions(self, submission_id: str) -> List[ContentVersion]:
        await self.store.get(submission_id)
        return await self.history.list_versions(submission_id)

    async def get_version(self, submission_id: str, number: int) -> ContentVersion:
        await self.store.get(submission_id)
        return await self.history.get_version(submission_id, number)

    # ========== TRANSITIONS ==========

    async def apply_transition(
        self,
        submission_id: str,
        actor: Actor,
        target_status: SubmissionStatus,
        expected_version: int,
        note: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        review_deadline: Optional[date] = None,
    ) -> Submission:
        """
        Move a submission along one edge of the lifecycle.

        Raises NotFoundError, VersionConflictError, InvalidTransitionError,
        GuardRejectedError (RoleNotPermittedError for role mismatches) or
        DownstreamError. On success exactly one WorkflowEvent is written.
        ``reviewer_id`` lets ``submitted -> under_review`` assign the reviewer
        in the same write.
        """
        note = note.strip() if note else None

        async def _transition() -> Submission:
            submission = await self.store.get(submission_id)
            self.store.check_version(submission, expected_version)

            current = submission.status
            rule = get_rule(current, target_status)
            if rule is None:
                raise InvalidTransitionError(
                    f"Cannot move a submission from {current.value} to {target_status.value}"
                )

            values = {"status": target_status}
            values.update(
                self._check_guards(rule, submission, actor, note, reviewer_id, review_deadline)
            )
            assigned_reviewer = values.get("assigned_reviewer_id")

            await self.store.compare_and_swap(submission, submission.version, **values)
            if rule.event_type == WorkflowEventType.REVISION:
                await self.history.snapshot(
                    submission, actor, ContentVersionReason.RESUBMISSION, note=note
                )

            if rule.requires(Guard.CERTIFICATE_ISSUED):
                certificate_id = await self._issue_certificate(submission)
                submission.certificate_id = certificate_id
                await self.db.flush()

            await self.audit.append_event(
                submission.id,
                actor,
                rule.event_type,
                current,
                target_status,
                note=self._event_note(note, assigned_reviewer),
            )
            if assigned_reviewer:
                # Inline assignment: the assignment notice replaces the under-review notice
                await self.assignments.notify_assignee(
                    submission, actor, AssignmentRole.REVIEWER, assigned_reviewer
                )
            else:
                await self._notify_transition(rule, submission, actor, note)
            return submission

        try:
            submission = await run_in_transaction(
                self.db, _transition, description=f"transition to {target_status.value}"
            )
        except (InvalidTransitionError, GuardRejectedError) as e:
            logger.warning(
                f"Transition of {submission_id} to {target_status.value} by {actor} refused: {e.message}"
            )
            raise
        logger.info(
            f"Submission {submission_id} -> {target_status.value} by {actor} (v{submission.version})"
        )
        return submission

    # ========== READS ==========

    async def get_submission(self, submission_id: str) -> Submission:
        return await self.store.get(submission_id)

    async def get_submission_detail(self, submission_id: str) -> SubmissionDetail:
        submission = await self.store.get(submission_id)
        revision_count = await self.audit.count_events(
            submission_id, WorkflowEventType.REVISION
        )
        return SubmissionDetail(
            submission=submission,
            revision_count=revision_count,
            gate=self.gate.evaluate(submission),
            allowed_targets=allowed_targets(submission.status),
            latest_scan=await self.gate.latest_scan(submission_id),
        )

    async def list_submissions(
        self, filters: Optional[SubmissionFilters] = None, page: int = 1, per_page: int = 20
    ) -> Tuple[Sequence[Submission], int]:
        return await self.store.list_submissions(filters, page, per_page)

    async def publishing_queue(self) -> Sequence[Submission]:
        return await self.store.publishing_queue()

    async def dashboard_stats(self) -> Dict[str, int]:
        counts = await self.store.count_by_status()
        stats = {status.value: count for status, count in counts.items()}
        stats["total"] = sum(counts.values())
        stats["with_editor"] = await self.store.count_with_editor()
        return stats

    # ========== GUARDS ==========

    def _check_guards(
        self,
        rule: TransitionRule,
        submission: Submission,
        actor: Actor,
        note: Optional[str],
        reviewer_id: Optional[str],
        review_deadline: Optional[date],
    ) -> dict:
        """Raise on the first failing guard; return extra column values to write"""
        extra = {}

        if not rule.permits(actor.role):
            allowed = ", ".join(sorted(role.value for role in rule.roles))
            raise RoleNotPermittedError(
                f"Role {actor.role.value} cannot move a submission to "
                f"{rule.target.value} (allowed: {allowed})"
            )

        if rule.requires(Guard.AUTHOR_ONLY) and actor.actor_id != submission.author_id:
            raise RoleNotPermittedError("Only the submission's author can do this")

        if rule.requires(Guard.ASSIGNED_PARTICIPANT):
            if actor.role == ActorRole.REVIEWER and submission.assigned_reviewer_id != actor.actor_id:
                raise RoleNotPermittedError("Only the assigned reviewer can do this")
            if actor.role == ActorRole.EDITOR and submission.assigned_editor_id != actor.actor_id:
                raise RoleNotPermittedError("Only the assigned editor can do this")

        if rule.requires(Guard.CONTENT_REQUIRED):
            if not (submission.title or "").strip() or not (submission.body or "").strip():
                raise GuardRejectedError(
                    "A title and body are required before submitting", "CONTENT_REQUIRED"
                )

        if rule.requires(Guard.NOTE_REQUIRED) and not note:
            raise GuardRejectedError(
                f"A note is required to move a submission to {rule.target.value}",
                "NOTE_REQUIRED",
            )

        if rule.requires(Guard.REVIEWER_ASSIGNED):
            if reviewer_id and reviewer_id.strip():
                reviewer_id = reviewer_id.strip()
                if submission.assigned_reviewer_id and submission.assigned_reviewer_id != reviewer_id:
                    raise GuardRejectedError(
                        "A different reviewer is already assigned; unassign first",
                        "REVIEWER_ALREADY_ASSIGNED",
                    )
                if reviewer_id == submission.author_id:
                    raise GuardRejectedError(
                        "Authors cannot review their own submission", "REVIEWER_IS_AUTHOR"
                    )
                if submission.assigned_reviewer_id is None:
                    extra.update(
                        self.assignments.reviewer_assignment_values(
                            submission, reviewer_id, review_deadline
                        )
                    )
            elif submission.assigned_reviewer_id is None:
                raise GuardRejectedError(
                    "Assign a reviewer before starting the review", "REVIEWER_REQUIRED"
                )

        if rule.requires(Guard.PLAGIARISM_RESOLVED):
            result = self.gate.evaluate(submission)
            if not result.allows_approval:
                raise GuardRejectedError(result.reason, "PLAGIARISM_UNRESOLVED")

        return extra

    @staticmethod
    def _ensure_can_edit(submission: Submission, actor: Actor) -> None:
        if actor.role == ActorRole.AUTHOR and actor.actor_id == submission.author_id:
            editable = EDITABLE_STATUSES
        elif actor.role == ActorRole.EDITOR and actor.actor_id == submission.assigned_editor_id:
            editable = EDITOR_EDITABLE_STATUSES
        else:
            raise RoleNotPermittedError(
                "Only the author or the assigned editor can edit this submission"
            )
        if submission.status not in editable:
            raise InvalidStateError(
                f"Content cannot be edited by {actor.role.value} while the submission is "
                f"{submission.status.value}",
                "SUBMISSION_NOT_EDITABLE",
            )

    async def _issue_certificate(self, submission: Submission) -> str:
        timeout = settings.CERTIFICATE_ISSUER_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(
                self.certificate_issuer.issue(submission.id, submission.author_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(
                f"Certificate issuer did not answer within {timeout}s for submission {submission.id}"
            )
            raise DownstreamError(
                f"Certificate issuer did not respond within {timeout} seconds; "
                "the submission was not published",
                "CERTIFICATE_ISSUANCE_TIMEOUT",
            ) from e
        except Exception as e:
            logger.error(f"Certificate issuance failed for submission {submission.id}: {e}")
            raise DownstreamError(
                "Certificate could not be issued; the submission was not published",
                "CERTIFICATE_ISSUANCE_FAILED",
            ) from e

    # ========== NOTIFICATIONS ==========

    async def _notify_author_of_edit(
        self, submission: Submission, actor: Actor, message: str
    ) -> None:
        if actor.actor_id == submission.author_id:
            return
        await self.audit.append_notification(
            receiver_id=submission.author_id,
            notification_type=NotificationType.SYSTEM,
            message=message,
            submission_id=submission.id,
            sender_id=actor.actor_id,
        )

    @staticmethod
    def _event_note(note: Optional[str], assigned_reviewer: Optional[str]) -> Optional[str]:
        if not assigned_reviewer:
            return note
        assignment = f"Assigned reviewer {assigned_reviewer}"
        return f"{assignment}. {note}" if note else assignment

    async def _notify_transition(
        self,
        rule: TransitionRule,
        submission: Submission,
        actor: Actor,
        note: Optional[str],
    ) -> None:
        title = submission.title
        target = rule.target
        author_messages = {
            SubmissionStatus.CHANGES_REQUESTED: f'Changes were requested on "{title}": {note}',
            SubmissionStatus.APPROVED: f'"{title}" was approved for publishing.',
            SubmissionStatus.REJECTED: f'"{title}" was rejected: {note}',
            SubmissionStatus.PUBLISHED: f'Your article "{title}" is now live! Certificate {submission.certificate_id}.',
        }

        if rule.source == SubmissionStatus.DRAFT and target == SubmissionStatus.SUBMITTED:
            await self.audit.append_notification(
                receiver_id=submission.author_id,
                notification_type=NotificationType.SYSTEM,
                message=f'"{title}" was submitted and is waiting for review.',
                submission_id=submission.id,
            )
        elif rule.event_type == WorkflowEventType.REVISION:
            for participant in {submission.assigned_reviewer_id, submission.assigned_editor_id} - {None}:
                await self.audit.append_notification(
                    receiver_id=participant,
                    notification_type=NotificationType.SYSTEM,
                    message=f'A revised version of "{title}" was resubmitted.',
                    submission_id=submission.id,
                    sender_id=actor.actor_id,
                )
        elif target == SubmissionStatus.UNDER_REVIEW:
            await self.audit.append_notification(
                receiver_id=submission.assigned_reviewer_id,
                notification_type=NotificationType.SYSTEM,
                message=f'"{title}" is now under review.',
                submission_id=submission.id,
                sender_id=actor.actor_id,
            )
        elif target in author_messages:
            await self.audit.append_notification(
                receiver_id=submission.author_id,
                notification_type=NotificationType.SYSTEM,
                message=author_messages[target],
                submission_id=submission.id,
                sender_id=actor.actor_id,
            )


def get_workflow_service(
    db_session: AsyncSession = Depends(get_async_session),
    certificate_issuer: CertificateIssuer = Depends(get_certificate_issuer),
) -> WorkflowService:
    """Dependency function to get WorkflowService instance"""
    return WorkflowService(db_session, certificate_issuer=certificate_issuer)

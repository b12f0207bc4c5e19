from datetime import date
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.db.models import (
    ActorRole,
    AssignmentRole,
    NotificationType,
    Priority,
    Submission,
    SubmissionStatus,
    WorkflowEventType,
)
from editorial.db.session import get_async_session
from editorial.db.transaction import run_in_transaction
from editorial.services.audit_log import AuditLog
from editorial.services.submission_store import SubmissionStore
from editorial.utils.datetime_utils import days_until
from editorial.utils.errors import (
    GuardRejectedError,
    InvalidStateError,
    RoleNotPermittedError,
)
from editorial.utils.logging import get_logger
from editorial.workflow.actor import Actor
from editorial.workflow.transitions import ASSIGNABLE_STATUSES

logger = get_logger()

ASSIGNING_ROLES = frozenset({ActorRole.CONTENT_MANAGER, ActorRole.ADMIN})

_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.NORMAL: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


def priority_for_deadline(
    deadline: Optional[date], current: Priority, today: Optional[date] = None
) -> Priority:
    """
    Raise the priority when a review deadline is close: two days or less is
    urgent, five days or less is high. Never lowers an existing priority.
    """
    if deadline is None:
        return current
    remaining = days_until(deadline, today)
    if remaining <= 2:
        derived = Priority.URGENT
    elif remaining <= 5:
        derived = Priority.HIGH
    else:
        derived = current
    return derived if _PRIORITY_RANK[derived] > _PRIORITY_RANK[current] else current


class AssignmentService:
    """Assigns and unassigns reviewers and editors on submissions"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.store = SubmissionStore(db_session)
        self.audit = AuditLog(db_session)

    # ========== PUBLIC API METHODS ==========

    async def assign_reviewer(
        self,
        submission_id: str,
        actor: Actor,
        reviewer_id: str,
        deadline: Optional[date] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """Set the reviewer (and review deadline). Status is left unchanged."""
        self._ensure_can_assign(actor)
        reviewer_id = self._require_assignee(reviewer_id, AssignmentRole.REVIEWER)

        async def _assign() -> Submission:
            submission = await self._load_assignable(submission_id, expected_version)
            if submission.author_id == reviewer_id:
                raise GuardRejectedError(
                    "Authors cannot review their own submission", "REVIEWER_IS_AUTHOR"
                )
            if submission.assigned_reviewer_id == reviewer_id:
                raise GuardRejectedError(
                    f"{reviewer_id} is already the assigned reviewer",
                    "ALREADY_ASSIGNED",
                )
            if submission.assigned_reviewer_id is not None:
                raise InvalidStateError(
                    "A reviewer is already assigned; unassign first to reassign",
                    "REVIEWER_ALREADY_ASSIGNED",
                )

            status = submission.status
            values = self.reviewer_assignment_values(submission, reviewer_id, deadline)
            await self.store.compare_and_swap(submission, submission.version, **values)
            await self.audit.append_event(
                submission.id,
                actor,
                WorkflowEventType.ASSIGNMENT,
                status,
                status,
                note=self._assignment_note(AssignmentRole.REVIEWER, reviewer_id, deadline),
            )
            await self.notify_assignee(submission, actor, AssignmentRole.REVIEWER, reviewer_id)
            return submission

        submission = await run_in_transaction(self.db, _assign, description="assign reviewer")
        logger.info(f"Reviewer {reviewer_id} assigned to submission {submission_id} by {actor}")
        return submission

    async def assign_editor(
        self,
        submission_id: str,
        actor: Actor,
        editor_id: str,
        expected_version: Optional[int] = None,
    ) -> Submission:
        self._ensure_can_assign(actor)
        editor_id = self._require_assignee(editor_id, AssignmentRole.EDITOR)

        async def _assign() -> Submission:
            submission = await self._load_assignable(submission_id, expected_version)
            if submission.author_id == editor_id:
                raise GuardRejectedError(
                    "Authors cannot edit their own submission", "EDITOR_IS_AUTHOR"
                )
            if submission.assigned_editor_id == editor_id:
                raise GuardRejectedError(
                    f"{editor_id} is already the assigned editor", "ALREADY_ASSIGNED"
                )
            if submission.assigned_editor_id is not None:
                raise InvalidStateError(
                    "An editor is already assigned; unassign first to reassign",
                    "EDITOR_ALREADY_ASSIGNED",
                )

            status = submission.status
            await self.store.compare_and_swap(
                submission, submission.version, assigned_editor_id=editor_id
            )
            await self.audit.append_event(
                submission.id,
                actor,
                WorkflowEventType.ASSIGNMENT,
                status,
                status,
                note=self._assignment_note(AssignmentRole.EDITOR, editor_id),
            )
            await self.notify_assignee(submission, actor, AssignmentRole.EDITOR, editor_id)
            return submission

        submission = await run_in_transaction(self.db, _assign, description="assign editor")
        logger.info(f"Editor {editor_id} assigned to submission {submission_id} by {actor}")
        return submission

    async def unassign(
        self,
        submission_id: str,
        actor: Actor,
        role: AssignmentRole,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """
        Clear an assignment. Removing the reviewer from a submission under
        review demotes it to ``submitted`` in the same write, recorded as a
        single compensation event.
        """
        self._ensure_can_assign(actor)

        async def _unassign() -> Submission:
            submission = await self._load_assignable(submission_id, expected_version)
            field_name = (
                "assigned_reviewer_id"
                if role == AssignmentRole.REVIEWER
                else "assigned_editor_id"
            )
            previous = getattr(submission, field_name)
            if previous is None:
                raise InvalidStateError(
                    f"No {role.value} is assigned to this submission",
                    "NOTHING_TO_UNASSIGN",
                )

            from_status = submission.status
            values = {field_name: None}
            if role == AssignmentRole.REVIEWER:
                values["review_deadline"] = None

            compensating = (
                role == AssignmentRole.REVIEWER
                and from_status == SubmissionStatus.UNDER_REVIEW
            )
            if compensating:
                values["status"] = SubmissionStatus.SUBMITTED

            await self.store.compare_and_swap(submission, submission.version, **values)

            if compensating:
                await self.audit.append_event(
                    submission.id,
                    actor,
                    WorkflowEventType.COMPENSATION,
                    from_status,
                    SubmissionStatus.SUBMITTED,
                    note=f"Reviewer {previous} unassigned; returned to submitted until a reviewer is assigned",
                )
            else:
                await self.audit.append_event(
                    submission.id,
                    actor,
                    WorkflowEventType.UNASSIGNMENT,
                    from_status,
                    from_status,
                    note=f"Unassigned {role.value} {previous}",
                )

            await self.audit.append_notification(
                receiver_id=previous,
                notification_type=NotificationType.SYSTEM,
                message=f'You have been unassigned as {role.value} from "{submission.title}".',
                submission_id=submission.id,
                sender_id=actor.actor_id,
            )
            return submission

        submission = await run_in_transaction(self.db, _unassign, description=f"unassign {role.value}")
        logger.info(f"Unassigned {role.value} from submission {submission_id} by {actor}")
        return submission

    # ========== SHARED WITH THE WORKFLOW ==========

    @staticmethod
    def reviewer_assignment_values(
        submission: Submission, reviewer_id: str, deadline: Optional[date]
    ) -> dict:
        """Column values that record a reviewer assignment"""
        values = {"assigned_reviewer_id": reviewer_id}
        if deadline is not None:
            values["review_deadline"] = deadline
            values["priority"] = priority_for_deadline(deadline, submission.priority)
        return values

    async def notify_assignee(
        self,
        submission: Submission,
        actor: Actor,
        role: AssignmentRole,
        assignee_id: str,
    ) -> None:
        action = "review" if role == AssignmentRole.REVIEWER else "edit"
        message = f'You have been assigned to {action} "{submission.title}".'
        if role == AssignmentRole.REVIEWER and submission.review_deadline:
            message += f" Review due {submission.review_deadline.isoformat()}."
        await self.audit.append_notification(
            receiver_id=assignee_id,
            notification_type=NotificationType.ASSIGNMENT,
            message=message,
            submission_id=submission.id,
            sender_id=actor.actor_id,
        )

    # ========== PRIVATE HELPERS ==========

    async def _load_assignable(
        self, submission_id: str, expected_version: Optional[int]
    ) -> Submission:
        submission = await self.store.get(submission_id)
        self.store.check_version(submission, expected_version)
        if submission.status not in ASSIGNABLE_STATUSES:
            raise InvalidStateError(
                f"Assignments cannot change while the submission is {submission.status.value}",
                "INVALID_ASSIGNMENT_STATE",
            )
        return submission

    @staticmethod
    def _ensure_can_assign(actor: Actor) -> None:
        if actor.role not in ASSIGNING_ROLES:
            raise RoleNotPermittedError(
                f"Role {actor.role.value} may not manage assignments"
            )

    @staticmethod
    def _require_assignee(assignee_id: Optional[str], role: AssignmentRole) -> str:
        if not assignee_id or not assignee_id.strip():
            raise GuardRejectedError(
                f"A {role.value} id is required", f"{role.name}_REQUIRED"
            )
        return assignee_id.strip()

    @staticmethod
    def _assignment_note(
        role: AssignmentRole, assignee_id: str, deadline: Optional[date] = None
    ) -> str:
        note = f"Assigned {role.value} {assignee_id}"
        if deadline is not None:
            note += f" (due {deadline.isoformat()})"
        return note


def get_assignment_service(
    db_session: AsyncSession = Depends(get_async_session),
) -> AssignmentService:
    """Dependency function to get AssignmentService instance"""
    return AssignmentService(db_session)

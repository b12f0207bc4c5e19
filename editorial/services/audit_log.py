from typing import AsyncIterator, Optional

from fastapi import Depends
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.db.models import (
    Notification,
    NotificationType,
    SubmissionStatus,
    WorkflowEvent,
    WorkflowEventType,
)
from editorial.db.session import get_async_session
from editorial.db.transaction import run_in_transaction
from editorial.utils.datetime_utils import naive_utc_now
from editorial.utils.errors import GuardRejectedError, NotFoundError
from editorial.utils.logging import get_logger
from editorial.workflow.actor import Actor

logger = get_logger()


class AuditLog:
    """
    Append-only workflow history and the cross-role notification feed.

    ``append_event`` and ``append_notification`` only add rows to the
    caller's session, so they commit or roll back together with the
    submission update that produced them. They fail only when the store
    itself does.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ========== APPENDS ==========

    async def append_event(
        self,
        submission_id: str,
        actor: Actor,
        event_type: WorkflowEventType,
        from_status: SubmissionStatus,
        to_status: SubmissionStatus,
        note: Optional[str] = None,
    ) -> WorkflowEvent:
        event = WorkflowEvent(
            submission_id=submission_id,
            actor_id=actor.actor_id,
            actor_role=actor.role,
            event_type=event_type,
            from_status=from_status,
            to_status=to_status,
            note=note,
            created_at=naive_utc_now(),
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def append_notification(
        self,
        receiver_id: str,
        notification_type: NotificationType,
        message: str,
        submission_id: Optional[str] = None,
        sender_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            submission_id=submission_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            type=notification_type,
            message=message,
            is_read=False,
            created_at=naive_utc_now(),
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    # ========== READS ==========

    async def list_events(self, submission_id: str) -> AsyncIterator[WorkflowEvent]:
        """Timeline for one submission, oldest first. Each call starts over."""
        result = await self.db.stream_scalars(
            select(WorkflowEvent)
            .where(WorkflowEvent.submission_id == submission_id)
            .order_by(WorkflowEvent.created_at.asc(), WorkflowEvent.id.asc())
        )
        try:
            async for event in result:
                yield event
        finally:
            await result.close()

    async def count_events(
        self, submission_id: str, event_type: Optional[WorkflowEventType] = None
    ) -> int:
        query = (
            select(func.count())
            .select_from(WorkflowEvent)
            .where(WorkflowEvent.submission_id == submission_id)
        )
        if event_type is not None:
            query = query.where(WorkflowEvent.event_type == event_type)
        return (await self.db.execute(query)).scalar_one()

    async def list_notifications(
        self,
        receiver_id: str,
        unread_only: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> AsyncIterator[Notification]:
        """Feed for one receiver, newest first."""
        query = select(Notification).where(Notification.receiver_id == receiver_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(
            Notification.created_at.desc(), Notification.id.desc()
        ).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        result = await self.db.stream_scalars(query)
        try:
            async for notification in result:
                yield notification
        finally:
            await result.close()

    async def unread_count(self, receiver_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.receiver_id == receiver_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar_one()

    # ========== RECEIVER ACTIONS ==========

    async def send_message(
        self,
        sender: Actor,
        receiver_id: str,
        message: str,
        submission_id: Optional[str] = None,
    ) -> Notification:
        """Direct message between roles, kept in the same feed as notifications"""
        if not message or not message.strip():
            raise GuardRejectedError("Message text is required", "MESSAGE_REQUIRED")
        if receiver_id == sender.actor_id:
            raise GuardRejectedError(
                "Cannot send a message to yourself", "MESSAGE_TO_SELF"
            )

        async def _send() -> Notification:
            return await self.append_notification(
                receiver_id=receiver_id,
                notification_type=NotificationType.MESSAGE,
                message=message.strip(),
                submission_id=submission_id,
                sender_id=sender.actor_id,
            )

        notification = await run_in_transaction(self.db, _send, description="send message")
        logger.info(f"Message {notification.id} sent from {sender} to {receiver_id}")
        return notification

    async def mark_read(self, notification_id: str, receiver_id: str) -> Notification:
        """Only the receiver may mark a notification read"""

        async def _mark() -> Notification:
            result = await self.db.execute(
                select(Notification)
                .where(
                    Notification.id == notification_id,
                    Notification.receiver_id == receiver_id,
                )
                .execution_options(populate_existing=True)
            )
            notification = result.scalar_one_or_none()
            if notification is None:
                raise NotFoundError(
                    f"Notification {notification_id} not found",
                    "NOTIFICATION_NOT_FOUND",
                )
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = naive_utc_now()
                await self.db.flush()
            return notification

        return await run_in_transaction(self.db, _mark, description="mark notification read")

    async def mark_all_read(self, receiver_id: str) -> int:
        async def _mark_all() -> int:
            result = await self.db.execute(
                update(Notification)
                .where(
                    Notification.receiver_id == receiver_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=naive_utc_now())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        count = await run_in_transaction(
            self.db, _mark_all, description="mark all notifications read"
        )
        logger.info(f"Marked {count} notifications read for {receiver_id}")
        return count


def get_audit_log(
    db_session: AsyncSession = Depends(get_async_session),
) -> AuditLog:
    """Dependency function to get AuditLog instance"""
    return AuditLog(db_session)

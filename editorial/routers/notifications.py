from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from editorial.middlewares.actor_middleware import get_current_actor
from editorial.schemas.notification_schemas import (
    NotificationFeed,
    NotificationItem,
    NotificationStats,
    SendMessageRequest,
)
from editorial.services.audit_log import AuditLog, get_audit_log
from editorial.services.submission_store import SubmissionStore, get_submission_store
from editorial.utils.responses import ResponseBuilder
from editorial.workflow.actor import Actor

notifications_router = APIRouter()


@notifications_router.get("")
async def get_notifications(
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
    unread_only: bool = Query(False, alias="unreadOnly"),
    limit: int = Query(
        default=50, ge=1, le=100, description="Maximum number of notifications to return"
    ),
    offset: int = Query(default=0, ge=0, description="Offset for pagination"),
):
    """
    Notification feed for the calling actor, newest first.

    Includes workflow notifications and direct messages.
    """
    notifications = [
        NotificationItem.model_validate(notification)
        async for notification in audit.list_notifications(
            actor.actor_id, unread_only=unread_only, limit=limit, offset=offset
        )
    ]
    feed = NotificationFeed(
        notifications=notifications,
        unread_count=await audit.unread_count(actor.actor_id),
        limit=limit,
        offset=offset,
        has_more=len(notifications) == limit,
    )
    return ResponseBuilder.success(
        request=request,
        data=feed.model_dump(by_alias=True),
        message=f"Retrieved {len(notifications)} notifications",
    )


@notifications_router.get("/count")
async def get_unread_count(
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
):
    unread_count = await audit.unread_count(actor.actor_id)
    return ResponseBuilder.success(
        request=request,
        data=NotificationStats(unread_count=unread_count).model_dump(
            by_alias=True, exclude_none=True
        ),
        message="Unread count retrieved",
    )


@notifications_router.patch("/read-all")
async def mark_all_notifications_as_read(
    request: Request,
    actor: Annotated[Actor, Depends(get_current_actor)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
):
    updated_count = await audit.mark_all_read(actor.actor_id)
    return ResponseBuilder.success(
        request=request,
        data=NotificationStats(all_as_read_count=updated_count).model_dump(
            by_alias=True, exclude_none=True
        ),
        message=f"Marked {updated_count} notifications as read",
    )


@notifications_router.patch("/{notification_id}/read")
async def mark_notification_as_read(
    request: Request,
    notification_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
):
    """Mark one of the caller's own notifications as read."""
    await audit.mark_read(notification_id, actor.actor_id)
    unread_count = await audit.unread_count(actor.actor_id)
    return ResponseBuilder.success(
        request=request,
        data=NotificationStats(unread_count=unread_count).model_dump(
            by_alias=True, exclude_none=True
        ),
        message="Notification marked as read",
    )


@notifications_router.post("/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    request: Request,
    body: SendMessageRequest,
    actor: Annotated[Actor, Depends(get_current_actor)],
    audit: Annotated[AuditLog, Depends(get_audit_log)],
    store: Annotated[SubmissionStore, Depends(get_submission_store)],
):
    if body.submission_id:
        await store.get(body.submission_id)
    notification = await audit.send_message(
        actor, body.receiver_id, body.message, submission_id=body.submission_id
    )
    return ResponseBuilder.created(
        request=request,
        data=NotificationItem.model_validate(notification).model_dump(by_alias=True),
        message="Message sent",
    )

from typing import List, Optional

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.db.models import ContentVersion, ContentVersionReason, Submission
from editorial.db.session import get_async_session
from editorial.utils.datetime_utils import naive_utc_now
from editorial.utils.errors import NotFoundError
from editorial.workflow.actor import Actor


class ContentHistory:
    """
    Numbered snapshots of a submission's title, body, category and
    attachments. A snapshot is written in the same transaction as the
    content change it records, after the compare-and-swap succeeded, so
    numbers are gap-free per submission.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def snapshot(
        self,
        submission: Submission,
        actor: Actor,
        reason: ContentVersionReason,
        note: Optional[str] = None,
        restored_from: Optional[int] = None,
    ) -> ContentVersion:
        previous = await self.db.scalar(
            select(func.max(ContentVersion.number)).where(
                ContentVersion.submission_id == submission.id
            )
        )
        version = ContentVersion(
            submission_id=submission.id,
            number=(previous or 0) + 1,
            title=submission.title,
            body=submission.body,
            category=submission.category,
            attachment_paths=list(submission.attachment_paths or []),
            reason=reason,
            note=note,
            restored_from=restored_from,
            submission_version=submission.version,
            created_by=actor.actor_id,
            created_by_role=actor.role,
            created_at=naive_utc_now(),
        )
        self.db.add(version)
        await self.db.flush()
        return version

    async def list_versions(self, submission_id: str) -> List[ContentVersion]:
        """Newest first"""
        result = await self.db.execute(
            select(ContentVersion)
            .where(ContentVersion.submission_id == submission_id)
            .order_by(ContentVersion.number.desc())
        )
        return list(result.scalars().all())

    async def get_version(self, submission_id: str, number: int) -> ContentVersion:
        result = await self.db.execute(
            select(ContentVersion).where(
                ContentVersion.submission_id == submission_id,
                ContentVersion.number == number,
            )
        )
        version = result.scalar_one_or_none()
        if version is None:
            raise NotFoundError(
                f"Version {number} of submission {submission_id} not found",
                "CONTENT_VERSION_NOT_FOUND",
            )
        return version


def get_content_history(
    db_session: AsyncSession = Depends(get_async_session),
) -> ContentHistory:
    return ContentHistory(db_session)

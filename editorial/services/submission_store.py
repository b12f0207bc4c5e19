from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import Depends
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.db.models import Priority, Submission, SubmissionStatus
from editorial.db.session import get_async_session
from editorial.utils.datetime_utils import naive_utc_now
from editorial.utils.errors import NotFoundError, VersionConflictError
from editorial.utils.logging import get_logger

logger = get_logger()


@dataclass
class SubmissionFilters:
    status: Optional[SubmissionStatus] = None
    author_id: Optional[str] = None
    reviewer_id: Optional[str] = None
    editor_id: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[Priority] = None


class SubmissionStore:
    """Durable access to submission records with version-checked writes"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ========== READS ==========

    async def get_optional(self, submission_id: str) -> Optional[Submission]:
        """Fresh read, bypassing whatever the identity map holds"""
        result = await self.db.execute(
            select(Submission)
            .where(Submission.id == submission_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, submission_id: str) -> Submission:
        submission = await self.get_optional(submission_id)
        if submission is None:
            raise NotFoundError(
                f"Submission {submission_id} not found", "SUBMISSION_NOT_FOUND"
            )
        return submission

    async def list_submissions(
        self,
        filters: Optional[SubmissionFilters] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[Sequence[Submission], int]:
        """Filtered page of submissions, newest first, plus the total count"""
        conditions = self._filter_conditions(filters or SubmissionFilters())

        count_query = select(func.count()).select_from(Submission).where(*conditions)
        total = (await self.db.execute(count_query)).scalar_one()

        query = (
            select(Submission)
            .where(*conditions)
            .order_by(Submission.created_at.desc(), Submission.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await self.db.execute(query)
        return result.scalars().all(), total

    async def count_by_status(self) -> Dict[SubmissionStatus, int]:
        result = await self.db.execute(
            select(Submission.status, func.count()).group_by(Submission.status)
        )
        counts = {status: 0 for status in SubmissionStatus}
        for status, count in result.all():
            counts[status] = count
        return counts

    async def count_with_editor(self) -> int:
        """Active submissions that currently have an editor assigned"""
        result = await self.db.execute(
            select(func.count())
            .select_from(Submission)
            .where(
                Submission.assigned_editor_id.is_not(None),
                Submission.status.not_in(
                    [SubmissionStatus.PUBLISHED, SubmissionStatus.REJECTED]
                ),
            )
        )
        return result.scalar_one()

    async def publishing_queue(self, limit: Optional[int] = None) -> Sequence[Submission]:
        """Approved submissions waiting to be published, oldest first"""
        query = (
            select(Submission)
            .where(Submission.status == SubmissionStatus.APPROVED)
            .order_by(Submission.created_at.asc(), Submission.id)
        )
        if limit:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def corpus(
        self, exclude_id: str, limit: int
    ) -> Sequence[Tuple[str, str, str]]:
        """(id, title, body) of the most recent other submissions with content"""
        result = await self.db.execute(
            select(Submission.id, Submission.title, Submission.body)
            .where(Submission.id != exclude_id, Submission.body != "")
            .order_by(Submission.created_at.desc())
            .limit(limit)
        )
        return [tuple(row) for row in result.all()]

    # ========== WRITES ==========

    async def create(self, **fields: Any) -> Submission:
        submission = Submission(**fields)
        self.db.add(submission)
        await self.db.flush()
        await self.db.refresh(submission)
        return submission

    @staticmethod
    def check_version(submission: Submission, expected_version: Optional[int]) -> None:
        """Reject a caller whose snapshot is older than the stored record"""
        if expected_version is not None and expected_version != submission.version:
            raise VersionConflictError(
                f"Submission {submission.id} is at version {submission.version}, "
                f"not {expected_version}; re-read and retry",
                expected_version=expected_version,
                current_version=submission.version,
            )

    async def compare_and_swap(
        self, submission: Submission, expected_version: int, **values: Any
    ) -> Submission:
        """
        Apply ``values`` only if the stored version still equals
        ``expected_version``, bumping the version by one.

        The version predicate lives in the UPDATE itself, so of two writers
        that read the same version only the first to write succeeds.
        """
        values["updated_at"] = naive_utc_now()
        result = await self.db.execute(
            update(Submission)
            .where(
                Submission.id == submission.id,
                Submission.version == expected_version,
            )
            .values(version=Submission.version + 1, **values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            current = await self.get_optional(submission.id)
            current_version = current.version if current is not None else None
            logger.warning(
                f"Stale write on submission {submission.id}: expected v{expected_version}, "
                f"found v{current_version}"
            )
            raise VersionConflictError(
                f"Submission {submission.id} was modified concurrently; re-read and retry",
                expected_version=expected_version,
                current_version=current_version,
            )

        await self.db.refresh(submission)
        return submission

    # ========== HELPERS ==========

    @staticmethod
    def _filter_conditions(filters: SubmissionFilters) -> List[Any]:
        conditions = []
        if filters.status is not None:
            conditions.append(Submission.status == filters.status)
        if filters.author_id:
            conditions.append(Submission.author_id == filters.author_id)
        if filters.reviewer_id:
            conditions.append(Submission.assigned_reviewer_id == filters.reviewer_id)
        if filters.editor_id:
            conditions.append(Submission.assigned_editor_id == filters.editor_id)
        if filters.category:
            conditions.append(Submission.category == filters.category)
        if filters.priority is not None:
            conditions.append(Submission.priority == filters.priority)
        return conditions


def get_submission_store(
    db_session: AsyncSession = Depends(get_async_session),
) -> SubmissionStore:
    """Dependency function to get SubmissionStore instance"""
    return SubmissionStore(db_session)

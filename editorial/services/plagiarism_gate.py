from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from editorial.config.settings import Settings, settings
from editorial.db.models import (
    ActorRole,
    NotificationType,
    PlagiarismDecision,
    PlagiarismScan,
    Submission,
    WorkflowEventType,
)
from editorial.db.session import get_async_session
from editorial.db.transaction import run_in_transaction
from editorial.services.audit_log import AuditLog
from editorial.services.similarity import SimilarityScanner
from editorial.services.submission_store import SubmissionStore
from editorial.utils.datetime_utils import naive_utc_now
from editorial.utils.errors import (
    GuardRejectedError,
    InvalidStateError,
    RoleNotPermittedError,
)
from editorial.utils.logging import get_logger
from editorial.workflow.actor import Actor

logger = get_logger()

SCAN_ROLES = frozenset(
    {ActorRole.CONTENT_MANAGER, ActorRole.REVIEWER, ActorRole.EDITOR, ActorRole.ADMIN}
)
VERIFY_ROLES = frozenset({ActorRole.CONTENT_MANAGER})


@dataclass(frozen=True)
class Thresholds:
    auto: float
    escalation: float


@dataclass(frozen=True)
class ThresholdPolicy:
    """
    Similarity thresholds, optionally overridden per category.

    A score equal to a threshold does not exceed it: ``score <= auto`` is
    clear, ``auto < score <= escalation`` needs validation, anything higher
    must be revised.
    """

    auto: float = 15.0
    escalation: float = 40.0
    category_overrides: Dict[str, Thresholds] = field(default_factory=dict)
    scan_required: bool = True

    def __post_init__(self):
        for name, thresholds in [("default", Thresholds(self.auto, self.escalation))] + list(
            self.category_overrides.items()
        ):
            if not (0 <= thresholds.auto <= thresholds.escalation <= 100):
                raise ValueError(
                    f"Invalid plagiarism thresholds for {name}: "
                    f"need 0 <= auto ({thresholds.auto}) <= escalation ({thresholds.escalation}) <= 100"
                )

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ThresholdPolicy":
        overrides = {
            category: Thresholds(
                auto=values.get("auto", config.PLAGIARISM_AUTO_THRESHOLD),
                escalation=values.get(
                    "escalation", config.PLAGIARISM_ESCALATION_THRESHOLD
                ),
            )
            for category, values in config.PLAGIARISM_CATEGORY_OVERRIDES.items()
        }
        return cls(
            auto=config.PLAGIARISM_AUTO_THRESHOLD,
            escalation=config.PLAGIARISM_ESCALATION_THRESHOLD,
            category_overrides=overrides,
            scan_required=config.PLAGIARISM_SCAN_REQUIRED,
        )

    def for_category(self, category: Optional[str]) -> Thresholds:
        if category and category in self.category_overrides:
            return self.category_overrides[category]
        return Thresholds(auto=self.auto, escalation=self.escalation)

    def classify(self, score: float, category: Optional[str] = None) -> PlagiarismDecision:
        thresholds = self.for_category(category)
        if score <= thresholds.auto:
            return PlagiarismDecision.CLEAR
        if score <= thresholds.escalation:
            return PlagiarismDecision.NEEDS_VALIDATION
        return PlagiarismDecision.MUST_REVISE


@dataclass(frozen=True)
class GateResult:
    decision: Optional[PlagiarismDecision]
    cm_verified: bool
    allows_approval: bool
    reason: str


class PlagiarismGate:
    """Records similarity results and owns the approval gating decision"""

    def __init__(
        self,
        db_session: AsyncSession,
        policy: Optional[ThresholdPolicy] = None,
        scanner: Optional[SimilarityScanner] = None,
    ):
        self.db = db_session
        self.store = SubmissionStore(db_session)
        self.audit = AuditLog(db_session)
        self.policy = policy or ThresholdPolicy.from_settings()
        self.scanner = scanner or SimilarityScanner()

    # ========== DECISION ==========

    def evaluate(self, submission: Submission) -> GateResult:
        """Gate verdict from the state the latest scan left on the submission"""
        decision = submission.plagiarism_decision

        if decision is None:
            if self.policy.scan_required:
                return GateResult(None, submission.cm_verified, False, "No plagiarism scan recorded")
            return GateResult(None, submission.cm_verified, True, "Scan not required")

        if decision == PlagiarismDecision.CLEAR:
            return GateResult(decision, submission.cm_verified, True, "Similarity within threshold")

        if decision == PlagiarismDecision.NEEDS_VALIDATION:
            if submission.cm_verified:
                return GateResult(decision, True, True, "Verified by content manager")
            return GateResult(
                decision,
                False,
                False,
                f"Similarity {submission.similarity_score}% needs content manager verification",
            )

        return GateResult(
            decision,
            submission.cm_verified,
            False,
            f"Similarity {submission.similarity_score}% is above the escalation threshold; revision required",
        )

    # ========== OPERATIONS ==========

    async def record_scan(
        self,
        submission_id: str,
        actor: Actor,
        similarity_score: float,
        source_matches: Optional[Sequence[Dict[str, Any]]] = None,
        expected_version: Optional[int] = None,
    ) -> PlagiarismScan:
        """
        Store a scan result and re-derive the gate decision from it.

        Each call adds a scan row; the submission's decision always reflects
        the latest one, and any earlier verification is discarded.
        """
        self._ensure_role(actor, SCAN_ROLES, "record plagiarism scans")
        score = self._validate_score(similarity_score)
        matches = list(source_matches or [])

        async def _record() -> PlagiarismScan:
            submission = await self.store.get(submission_id)
            self.store.check_version(submission, expected_version)
            self._ensure_scannable(submission, actor)
            return await self._store_scan(submission, actor, score, matches)

        scan = await run_in_transaction(self.db, _record, description="record plagiarism scan")
        logger.info(
            f"Scan recorded for submission {submission_id} by {actor}: "
            f"{scan.similarity_score}% -> {scan.decision.value}"
        )
        return scan

    async def run_scan(
        self,
        submission_id: str,
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> PlagiarismScan:
        """Score the submission against the internal corpus and record the result"""
        self._ensure_role(actor, SCAN_ROLES, "run plagiarism scans")

        async def _run() -> PlagiarismScan:
            submission = await self.store.get(submission_id)
            self.store.check_version(submission, expected_version)
            self._ensure_scannable(submission, actor)

            content = (submission.body or "").strip()
            if len(content) < settings.PLAGIARISM_MIN_CONTENT_LENGTH:
                raise GuardRejectedError(
                    f"Content is too short to check (minimum {settings.PLAGIARISM_MIN_CONTENT_LENGTH} characters)",
                    "CONTENT_TOO_SHORT",
                )

            corpus = await self.store.corpus(
                exclude_id=submission.id, limit=settings.PLAGIARISM_CORPUS_LIMIT
            )
            report = self.scanner.scan(content, corpus)
            return await self._store_scan(
                submission, actor, report.similarity_score, report.source_matches
            )

        scan = await run_in_transaction(self.db, _run, description="run plagiarism scan")
        logger.info(
            f"Internal scan for submission {submission_id}: "
            f"{scan.similarity_score}% -> {scan.decision.value}"
        )
        return scan

    async def verify(
        self,
        submission_id: str,
        actor: Actor,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """Content manager accepts a needs-validation result, unblocking approval"""
        self._ensure_role(actor, VERIFY_ROLES, "verify plagiarism results")

        async def _verify() -> Submission:
            submission = await self.store.get(submission_id)
            self.store.check_version(submission, expected_version)

            if submission.status.is_terminal:
                raise InvalidStateError(
                    f"Submission is {submission.status.value}; nothing to verify",
                    "SUBMISSION_CLOSED",
                )
            if submission.plagiarism_decision != PlagiarismDecision.NEEDS_VALIDATION:
                current = (
                    submission.plagiarism_decision.value
                    if submission.plagiarism_decision
                    else "no scan"
                )
                raise GuardRejectedError(
                    f"Only a needs_validation result can be verified (current: {current})",
                    "PLAGIARISM_NOT_VERIFIABLE",
                )
            if submission.cm_verified:
                raise GuardRejectedError(
                    "The latest scan is already verified", "PLAGIARISM_ALREADY_VERIFIED"
                )

            status = submission.status
            await self.store.compare_and_swap(
                submission,
                submission.version,
                cm_verified=True,
                cm_verified_by=actor.actor_id,
                plagiarism_locked=False,
            )
            await self.audit.append_event(
                submission.id,
                actor,
                WorkflowEventType.VERIFICATION,
                status,
                status,
                note=f"Similarity {submission.similarity_score}% verified as acceptable",
            )
            await self.audit.append_notification(
                receiver_id=submission.author_id,
                notification_type=NotificationType.SYSTEM,
                message=f'The similarity check for "{submission.title}" was verified by a content manager.',
                submission_id=submission.id,
            )
            return submission

        submission = await run_in_transaction(self.db, _verify, description="verify plagiarism")
        logger.info(f"Plagiarism result verified for submission {submission_id} by {actor}")
        return submission

    # ========== READS ==========

    async def latest_scan(self, submission_id: str) -> Optional[PlagiarismScan]:
        result = await self.db.execute(
            select(PlagiarismScan)
            .where(PlagiarismScan.submission_id == submission_id)
            .order_by(PlagiarismScan.scan_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_scans(self, submission_id: str) -> List[PlagiarismScan]:
        result = await self.db.execute(
            select(PlagiarismScan)
            .where(PlagiarismScan.submission_id == submission_id)
            .order_by(PlagiarismScan.scan_number.asc())
        )
        return list(result.scalars().all())

    # ========== PRIVATE HELPERS ==========

    async def _store_scan(
        self,
        submission: Submission,
        actor: Actor,
        score: float,
        matches: List[Dict[str, Any]],
    ) -> PlagiarismScan:
        thresholds = self.policy.for_category(submission.category)
        decision = self.policy.classify(score, submission.category)
        previous = await self.db.scalar(
            select(func.max(PlagiarismScan.scan_number)).where(
                PlagiarismScan.submission_id == submission.id
            )
        )

        scan = PlagiarismScan(
            submission_id=submission.id,
            scan_number=(previous or 0) + 1,
            similarity_score=score,
            source_matches=matches,
            decision=decision,
            auto_threshold=thresholds.auto,
            escalation_threshold=thresholds.escalation,
            run_by=actor.actor_id,
            created_at=naive_utc_now(),
        )
        self.db.add(scan)

        status = submission.status
        await self.store.compare_and_swap(
            submission,
            submission.version,
            similarity_score=score,
            plagiarism_decision=decision,
            plagiarism_locked=decision != PlagiarismDecision.CLEAR,
            cm_verified=False,
            cm_verified_by=None,
        )
        await self.audit.append_event(
            submission.id,
            actor,
            WorkflowEventType.SCAN,
            status,
            status,
            note=f"Similarity {score}% ({decision.value}; thresholds {thresholds.auto}/{thresholds.escalation})",
        )
        await self.db.flush()
        return scan

    @staticmethod
    def _validate_score(similarity_score: float) -> float:
        try:
            score = float(similarity_score)
        except (TypeError, ValueError) as e:
            raise GuardRejectedError(
                f"Similarity score must be a number, got {similarity_score!r}",
                "INVALID_SIMILARITY_SCORE",
            ) from e
        if not 0 <= score <= 100:
            raise GuardRejectedError(
                f"Similarity score must be within [0, 100], got {score}",
                "INVALID_SIMILARITY_SCORE",
            )
        return score

    @staticmethod
    def _ensure_role(actor: Actor, roles: frozenset, action: str) -> None:
        if actor.role not in roles:
            raise RoleNotPermittedError(
                f"Role {actor.role.value} may not {action}"
            )

    @staticmethod
    def _ensure_scannable(submission: Submission, actor: Actor) -> None:
        if submission.status.is_terminal:
            raise InvalidStateError(
                f"Cannot scan a {submission.status.value} submission",
                "SUBMISSION_CLOSED",
            )
        if actor.role == ActorRole.REVIEWER and submission.assigned_reviewer_id != actor.actor_id:
            raise RoleNotPermittedError("Only the assigned reviewer may scan this submission")
        if actor.role == ActorRole.EDITOR and submission.assigned_editor_id != actor.actor_id:
            raise RoleNotPermittedError("Only the assigned editor may scan this submission")


def get_plagiarism_gate(
    db_session: AsyncSession = Depends(get_async_session),
) -> PlagiarismGate:
    """Dependency function to get PlagiarismGate instance"""
    return PlagiarismGate(db_session)

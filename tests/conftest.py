from datetime import date
from typing import AsyncGenerator, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from editorial.db.models import ActorRole, Base, Submission, SubmissionStatus
from editorial.db.session import build_engine, build_sessionmaker
from editorial.services.assignment_service import AssignmentService
from editorial.services.audit_log import AuditLog
from editorial.services.certificate_issuer import CertificateIssuanceError
from editorial.services.plagiarism_gate import PlagiarismGate, ThresholdPolicy
from editorial.services.submission_store import SubmissionStore
from editorial.services.workflow_service import WorkflowService
from editorial.workflow.actor import Actor

SAMPLE_BODY = (
    "Urban beekeeping has grown steadily across the city over the last decade, "
    "with rooftop hives now supplying several neighbourhood markets."
)


class FakeCertificateIssuer:
    """Issues predictable certificate ids and remembers every call."""

    def __init__(self):
        self.issued: List[str] = []

    async def issue(self, submission_id: str, author_id: str) -> str:
        certificate_id = f"CERT-TEST-{len(self.issued) + 1:04d}"
        self.issued.append(submission_id)
        return certificate_id


class FailingCertificateIssuer:
    def __init__(self):
        self.calls = 0

    async def issue(self, submission_id: str, author_id: str) -> str:
        self.calls += 1
        raise CertificateIssuanceError("certificate service unavailable")


# Actors
AUTHOR = Actor("author-1", ActorRole.AUTHOR)
OTHER_AUTHOR = Actor("author-2", ActorRole.AUTHOR)
CONTENT_MANAGER = Actor("cm-1", ActorRole.CONTENT_MANAGER)
REVIEWER = Actor("reviewer-1", ActorRole.REVIEWER)
OTHER_REVIEWER = Actor("reviewer-2", ActorRole.REVIEWER)
EDITOR = Actor("editor-1", ActorRole.EDITOR)
ADMIN = Actor("admin-1", ActorRole.ADMIN)


# Test database setup: a fresh file-backed database per test
@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'editorial.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def policy() -> ThresholdPolicy:
    return ThresholdPolicy(auto=15, escalation=40)


@pytest.fixture
def issuer() -> FakeCertificateIssuer:
    return FakeCertificateIssuer()


@pytest.fixture
def store(db_session) -> SubmissionStore:
    return SubmissionStore(db_session)


@pytest.fixture
def audit(db_session) -> AuditLog:
    return AuditLog(db_session)


@pytest.fixture
def gate(db_session, policy) -> PlagiarismGate:
    return PlagiarismGate(db_session, policy=policy)


@pytest.fixture
def assignments(db_session) -> AssignmentService:
    return AssignmentService(db_session)


@pytest.fixture
def workflow(db_session, gate, issuer) -> WorkflowService:
    return WorkflowService(db_session, gate=gate, certificate_issuer=issuer)


async def collect(async_iterable) -> list:
    return [item async for item in async_iterable]


class SubmissionFactory:
    """Drives submissions through the real workflow to a requested status"""

    def __init__(self, workflow: WorkflowService, assignments: AssignmentService, gate: PlagiarismGate):
        self.workflow = workflow
        self.assignments = assignments
        self.gate = gate

    async def draft(
        self, title: str = "Rooftop bees", body: str = SAMPLE_BODY, category: Optional[str] = None
    ) -> Submission:
        return await self.workflow.create_submission(
            AUTHOR, title=title, body=body, category=category
        )

    async def submitted(self, **kwargs) -> Submission:
        submission = await self.draft(**kwargs)
        return await self.workflow.apply_transition(
            submission.id, AUTHOR, SubmissionStatus.SUBMITTED, expected_version=submission.version
        )

    async def under_review(self, deadline: Optional[date] = None, **kwargs) -> Submission:
        submission = await self.submitted(**kwargs)
        submission = await self.assignments.assign_reviewer(
            submission.id, CONTENT_MANAGER, REVIEWER.actor_id, deadline=deadline
        )
        return await self.workflow.apply_transition(
            submission.id,
            CONTENT_MANAGER,
            SubmissionStatus.UNDER_REVIEW,
            expected_version=submission.version,
        )

    async def scanned(self, score: float, **kwargs) -> Submission:
        submission = await self.under_review(**kwargs)
        await self.gate.record_scan(submission.id, CONTENT_MANAGER, score)
        return await self.workflow.get_submission(submission.id)

    async def approved(self, score: float = 5.0, **kwargs) -> Submission:
        submission = await self.scanned(score, **kwargs)
        return await self.workflow.apply_transition(
            submission.id,
            CONTENT_MANAGER,
            SubmissionStatus.APPROVED,
            expected_version=submission.version,
        )


@pytest.fixture
def factory(workflow, assignments, gate) -> SubmissionFactory:
    return SubmissionFactory(workflow, assignments, gate)

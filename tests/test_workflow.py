import asyncio
from datetime import date, timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy import select

from editorial.config.settings import Settings, settings
from editorial.db.models import (
    Notification,
    NotificationType,
    PlagiarismDecision,
    Priority,
    SubmissionStatus,
    WorkflowEvent,
    WorkflowEventType,
)
from editorial.services.plagiarism_gate import PlagiarismGate, ThresholdPolicy
from editorial.services.workflow_service import WorkflowService
from editorial.utils.errors import (
    DownstreamError,
    GuardRejectedError,
    InvalidStateError,
    InvalidTransitionError,
    RoleNotPermittedError,
    VersionConflictError,
)

from conftest import (
    ADMIN,
    AUTHOR,
    CONTENT_MANAGER,
    EDITOR,
    OTHER_AUTHOR,
    OTHER_REVIEWER,
    REVIEWER,
    SAMPLE_BODY,
    FailingCertificateIssuer,
    collect,
)

S = SubmissionStatus


async def notifications_for(db_session, receiver_id):
    result = await db_session.execute(
        select(Notification)
        .where(Notification.receiver_id == receiver_id)
        .order_by(Notification.created_at)
    )
    return list(result.scalars().all())


class TestAuthoring:
    """Draft creation and editing."""

    @pytest.mark.asyncio
    async def test_create_submission_starts_as_draft_at_version_zero(self, workflow, audit):
        draft = await workflow.create_submission(
            AUTHOR, title="  Rooftop bees ", body=SAMPLE_BODY, category="science",
            attachment_paths=["uploads/hive.png"],
        )

        assert draft.status == S.DRAFT
        assert draft.version == 0
        assert draft.title == "Rooftop bees"
        assert draft.author_id == AUTHOR.actor_id
        assert draft.attachment_paths == ["uploads/hive.png"]
        assert draft.priority == Priority.NORMAL
        assert await audit.count_events(draft.id) == 0

    @pytest.mark.asyncio
    async def test_only_authors_create_submissions(self, workflow):
        with pytest.raises(RoleNotPermittedError):
            await workflow.create_submission(CONTENT_MANAGER, title="Title", body="Body")

    @pytest.mark.asyncio
    async def test_update_draft_bumps_version_and_logs_edit(self, workflow, audit):
        draft = await workflow.create_submission(AUTHOR, title="Title", body="")

        updated = await workflow.update_draft(
            draft.id, AUTHOR, expected_version=0, body=SAMPLE_BODY
        )

        assert updated.body == SAMPLE_BODY
        assert updated.version == 1
        events = await collect(audit.list_events(draft.id))
        assert [event.event_type for event in events] == [WorkflowEventType.EDIT]
        assert events[0].from_status == events[0].to_status == S.DRAFT
        assert "body" in events[0].note

    @pytest.mark.asyncio
    async def test_update_draft_rejects_other_author(self, workflow):
        draft = await workflow.create_submission(AUTHOR, title="Title", body="Body")

        with pytest.raises(RoleNotPermittedError):
            await workflow.update_draft(draft.id, OTHER_AUTHOR, expected_version=0, title="Mine")

    @pytest.mark.asyncio
    async def test_update_draft_rejects_stale_version(self, workflow):
        draft = await workflow.create_submission(AUTHOR, title="Title", body="Body")
        submission_id = draft.id
        await workflow.update_draft(submission_id, AUTHOR, expected_version=0, title="First")

        with pytest.raises(VersionConflictError) as exc_info:
            await workflow.update_draft(submission_id, AUTHOR, expected_version=0, title="Second")
        assert exc_info.value.current_version == 1

    @pytest.mark.asyncio
    async def test_update_not_allowed_once_under_review(self, workflow, factory):
        submission = await factory.under_review()

        with pytest.raises(InvalidStateError) as exc_info:
            await workflow.update_draft(
                submission.id, AUTHOR, expected_version=submission.version, title="Late edit"
            )
        assert exc_info.value.error_code == "SUBMISSION_NOT_EDITABLE"


class TestGuards:
    """Each guard rejects with a typed error and leaves the record untouched."""

    @pytest.mark.asyncio
    async def test_submit_requires_title_and_body(self, workflow, store):
        draft = await workflow.create_submission(AUTHOR, title="Title", body="   ")
        submission_id = draft.id

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(submission_id, AUTHOR, S.SUBMITTED, expected_version=0)

        assert exc_info.value.error_code == "CONTENT_REQUIRED"
        assert (await store.get(submission_id)).status == S.DRAFT

    @pytest.mark.asyncio
    async def test_only_own_author_submits(self, workflow, factory):
        draft = await factory.draft()

        with pytest.raises(RoleNotPermittedError):
            await workflow.apply_transition(draft.id, OTHER_AUTHOR, S.SUBMITTED, expected_version=0)

    @pytest.mark.asyncio
    async def test_content_manager_cannot_submit_for_author(self, workflow, factory):
        draft = await factory.draft()

        with pytest.raises(RoleNotPermittedError) as exc_info:
            await workflow.apply_transition(
                draft.id, CONTENT_MANAGER, S.SUBMITTED, expected_version=0
            )
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_under_review_requires_reviewer(self, workflow, factory, store):
        submission = await factory.submitted()
        submission_id, version = submission.id, submission.version

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(
                submission_id, CONTENT_MANAGER, S.UNDER_REVIEW, expected_version=version
            )

        assert exc_info.value.error_code == "REVIEWER_REQUIRED"
        reread = await store.get(submission_id)
        assert reread.status == S.SUBMITTED
        assert reread.version == version

    @pytest.mark.asyncio
    async def test_under_review_can_assign_reviewer_in_same_write(self, workflow, factory, audit, db_session):
        submission = await factory.submitted()
        deadline = date.today() + timedelta(days=1)
        version = submission.version

        moved = await workflow.apply_transition(
            submission.id,
            CONTENT_MANAGER,
            S.UNDER_REVIEW,
            expected_version=version,
            reviewer_id=REVIEWER.actor_id,
            review_deadline=deadline,
        )

        assert moved.status == S.UNDER_REVIEW
        assert moved.assigned_reviewer_id == REVIEWER.actor_id
        assert moved.review_deadline == deadline
        assert moved.priority == Priority.URGENT
        assert moved.version == version + 1

        events = await collect(audit.list_events(submission.id))
        assert [event.event_type for event in events] == [
            WorkflowEventType.TRANSITION,
            WorkflowEventType.TRANSITION,
        ]
        assert "reviewer-1" in events[-1].note

        reviewer_feed = await notifications_for(db_session, REVIEWER.actor_id)
        assert [n.notification_type for n in reviewer_feed] == [NotificationType.ASSIGNMENT]

    @pytest.mark.asyncio
    async def test_reviewer_cannot_be_the_author(self, workflow, factory):
        submission = await factory.submitted()

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(
                submission.id,
                CONTENT_MANAGER,
                S.UNDER_REVIEW,
                expected_version=submission.version,
                reviewer_id=AUTHOR.actor_id,
            )
        assert exc_info.value.error_code == "REVIEWER_IS_AUTHOR"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("note", [None, "", "   "])
    async def test_reject_requires_note(self, workflow, factory, note):
        submission = await factory.under_review()

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(
                submission.id, CONTENT_MANAGER, S.REJECTED,
                expected_version=submission.version, note=note,
            )
        assert exc_info.value.error_code == "NOTE_REQUIRED"

    @pytest.mark.asyncio
    async def test_request_changes_requires_note(self, workflow, factory):
        submission = await factory.under_review()

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(
                submission.id, REVIEWER, S.CHANGES_REQUESTED, expected_version=submission.version
            )
        assert exc_info.value.error_code == "NOTE_REQUIRED"

    @pytest.mark.asyncio
    async def test_only_assigned_reviewer_requests_changes(self, workflow, factory):
        submission = await factory.under_review()

        with pytest.raises(RoleNotPermittedError):
            await workflow.apply_transition(
                submission.id, OTHER_REVIEWER, S.CHANGES_REQUESTED,
                expected_version=submission.version, note="Please cite sources",
            )

    @pytest.mark.asyncio
    async def test_unassigned_editor_cannot_request_changes(self, workflow, factory):
        submission = await factory.under_review()

        with pytest.raises(RoleNotPermittedError):
            await workflow.apply_transition(
                submission.id, EDITOR, S.CHANGES_REQUESTED,
                expected_version=submission.version, note="Tighten the intro",
            )

    @pytest.mark.asyncio
    async def test_approval_blocked_without_scan(self, workflow, factory):
        submission = await factory.under_review()

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(
                submission.id, CONTENT_MANAGER, S.APPROVED, expected_version=submission.version
            )
        assert exc_info.value.error_code == "PLAGIARISM_UNRESOLVED"

    @pytest.mark.asyncio
    async def test_approval_without_scan_when_not_required(self, db_session, issuer, factory):
        gate = PlagiarismGate(db_session, policy=ThresholdPolicy(scan_required=False))
        lenient = WorkflowService(db_session, gate=gate, certificate_issuer=issuer)
        submission = await factory.under_review()

        approved = await lenient.apply_transition(
            submission.id, CONTENT_MANAGER, S.APPROVED, expected_version=submission.version
        )
        assert approved.status == S.APPROVED

    @pytest.mark.asyncio
    async def test_must_revise_blocks_approval_even_for_admin_roles(self, workflow, factory):
        submission = await factory.scanned(75.0)

        with pytest.raises(GuardRejectedError) as exc_info:
            await workflow.apply_transition(
                submission.id, CONTENT_MANAGER, S.APPROVED, expected_version=submission.version
            )
        assert exc_info.value.error_code == "PLAGIARISM_UNRESOLVED"

    @pytest.mark.asyncio
    async def test_reviewer_cannot_approve(self, workflow, factory):
        submission = await factory.scanned(5.0)

        with pytest.raises(RoleNotPermittedError):
            await workflow.apply_transition(
                submission.id, REVIEWER, S.APPROVED, expected_version=submission.version
            )

    @pytest.mark.asyncio
    async def test_terminal_submission_cannot_move(self, workflow, factory):
        submission = await factory.under_review()
        rejected = await workflow.apply_transition(
            submission.id, ADMIN, S.REJECTED,
            expected_version=submission.version, note="Out of scope",
        )

        assert rejected.status.is_terminal
        with pytest.raises(InvalidTransitionError):
            await workflow.apply_transition(
                rejected.id, AUTHOR, S.SUBMITTED, expected_version=rejected.version
            )


class TestLifecycle:
    """End-to-end paths through the state machine."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "auto,escalation,score",
        [(15, 40, 22.0), (18, 30, 25.0), (20, 40, 30.0), (15, 40, 40.0)],
    )
    async def test_needs_validation_scenario(
        self, db_session, issuer, assignments, audit, auto, escalation, score
    ):
        gate = PlagiarismGate(db_session, policy=ThresholdPolicy(auto=auto, escalation=escalation))
        workflow = WorkflowService(db_session, gate=gate, certificate_issuer=issuer)

        draft = await workflow.create_submission(AUTHOR, title="S1", body=SAMPLE_BODY)
        assert draft.version == 0
        submission_id = draft.id

        submitted = await workflow.apply_transition(submission_id, AUTHOR, S.SUBMITTED, expected_version=0)
        assert (submitted.status, submitted.version) == (S.SUBMITTED, 1)

        reviewing = await workflow.apply_transition(
            submission_id, CONTENT_MANAGER, S.UNDER_REVIEW, expected_version=1,
            reviewer_id=REVIEWER.actor_id,
        )
        assert (reviewing.status, reviewing.version) == (S.UNDER_REVIEW, 2)

        scan = await gate.record_scan(submission_id, CONTENT_MANAGER, score, expected_version=2)
        assert scan.decision == PlagiarismDecision.NEEDS_VALIDATION

        with pytest.raises(GuardRejectedError):
            await workflow.apply_transition(
                submission_id, CONTENT_MANAGER, S.APPROVED, expected_version=3
            )

        verified = await gate.verify(submission_id, CONTENT_MANAGER, expected_version=3)
        assert verified.cm_verified is True
        assert verified.version == 4

        approved = await workflow.apply_transition(
            submission_id, CONTENT_MANAGER, S.APPROVED, expected_version=4
        )
        assert (approved.status, approved.version) == (S.APPROVED, 5)

        published = await workflow.apply_transition(
            submission_id, CONTENT_MANAGER, S.PUBLISHED, expected_version=5
        )
        assert (published.status, published.version) == (S.PUBLISHED, 6)
        assert published.certificate_id == "CERT-TEST-0001"
        assert issuer.issued == [submission_id]

        events = await collect(audit.list_events(submission_id))
        assert [(event.from_status, event.to_status) for event in events] == [
            (S.DRAFT, S.SUBMITTED),
            (S.SUBMITTED, S.UNDER_REVIEW),
            (S.UNDER_REVIEW, S.UNDER_REVIEW),
            (S.UNDER_REVIEW, S.UNDER_REVIEW),
            (S.UNDER_REVIEW, S.APPROVED),
            (S.APPROVED, S.PUBLISHED),
        ]
        assert [event.event_type for event in events][2:4] == [
            WorkflowEventType.SCAN,
            WorkflowEventType.VERIFICATION,
        ]

    @pytest.mark.asyncio
    async def test_revision_cycle_counts_revisions(self, workflow, factory, db_session):
        submission = await factory.under_review()
        changes = await workflow.apply_transition(
            submission.id, REVIEWER, S.CHANGES_REQUESTED,
            expected_version=submission.version, note="Please add sources",
        )

        edited = await workflow.update_draft(
            changes.id, AUTHOR, expected_version=changes.version, body=SAMPLE_BODY + " Sources added."
        )
        resubmitted = await workflow.apply_transition(
            edited.id, AUTHOR, S.SUBMITTED, expected_version=edited.version
        )

        assert resubmitted.status == S.SUBMITTED
        assert resubmitted.assigned_reviewer_id == REVIEWER.actor_id

        detail = await workflow.get_submission_detail(submission.id)
        assert detail.revision_count == 1
        assert S.UNDER_REVIEW in detail.allowed_targets

        author_messages = [n.message for n in await notifications_for(db_session, AUTHOR.actor_id)]
        assert any("Please add sources" in message for message in author_messages)
        reviewer_messages = [n.message for n in await notifications_for(db_session, REVIEWER.actor_id)]
        assert any("resubmitted" in message for message in reviewer_messages)

    @pytest.mark.asyncio
    async def test_rejection_notifies_author_with_reason(self, workflow, factory, db_session):
        submission = await factory.approved()

        rejected = await workflow.apply_transition(
            submission.id, CONTENT_MANAGER, S.REJECTED,
            expected_version=submission.version, note="Duplicate of an existing feature",
        )

        assert rejected.status == S.REJECTED
        messages = [n.message for n in await notifications_for(db_session, AUTHOR.actor_id)]
        assert any("Duplicate of an existing feature" in message for message in messages)

    @pytest.mark.asyncio
    async def test_publish_notifies_author_with_certificate(self, workflow, factory, db_session):
        submission = await factory.approved()

        published = await workflow.apply_transition(
            submission.id, ADMIN, S.PUBLISHED, expected_version=submission.version
        )

        messages = [n.message for n in await notifications_for(db_session, AUTHOR.actor_id)]
        assert any("now live" in message and published.certificate_id in message for message in messages)


class SlowCertificateIssuer:
    def __init__(self, delay: float):
        self.delay = delay

    async def issue(self, submission_id: str, author_id: str) -> str:
        await asyncio.sleep(self.delay)
        return f"CERT-{submission_id}"


class TestPublishAtomicity:
    """A failing or slow certificate issuer leaves the submission approved."""

    @pytest.mark.asyncio
    async def test_issuer_failure_rolls_back_publish(self, db_session, gate, factory, store, audit):
        submission = await factory.approved()
        submission_id, version = submission.id, submission.version
        failing = FailingCertificateIssuer()
        workflow = WorkflowService(db_session, gate=gate, certificate_issuer=failing)
        events_before = await audit.count_events(submission_id)

        with pytest.raises(DownstreamError) as exc_info:
            await workflow.apply_transition(
                submission_id, CONTENT_MANAGER, S.PUBLISHED, expected_version=version
            )

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code == 502
        assert failing.calls == 1

        reread = await store.get(submission_id)
        assert reread.status == S.APPROVED
        assert reread.version == version
        assert reread.certificate_id is None

        assert await audit.count_events(submission_id) == events_before
        published_events = await db_session.execute(
            select(WorkflowEvent).where(
                WorkflowEvent.submission_id == submission_id,
                WorkflowEvent.to_status == S.PUBLISHED,
            )
        )
        assert published_events.scalars().all() == []

    @pytest.mark.asyncio
    async def test_publish_can_be_retried_after_issuer_failure(self, db_session, gate, factory, issuer):
        submission = await factory.approved()
        submission_id, version = submission.id, submission.version
        failing = WorkflowService(db_session, gate=gate, certificate_issuer=FailingCertificateIssuer())

        with pytest.raises(DownstreamError):
            await failing.apply_transition(
                submission_id, CONTENT_MANAGER, S.PUBLISHED, expected_version=version
            )

        working = WorkflowService(db_session, gate=gate, certificate_issuer=issuer)
        published = await working.apply_transition(
            submission_id, CONTENT_MANAGER, S.PUBLISHED, expected_version=version
        )
        assert published.status == S.PUBLISHED
        assert published.version == version + 1


    @pytest.mark.asyncio
    async def test_slow_issuer_times_out_before_the_store(
        self, db_session, gate, factory, store, monkeypatch
    ):
        monkeypatch.setattr(settings, "STORE_TIMEOUT_SECONDS", 2.0)
        monkeypatch.setattr(settings, "CERTIFICATE_ISSUER_TIMEOUT_SECONDS", 0.1)
        submission = await factory.approved()
        submission_id, version = submission.id, submission.version
        slow = SlowCertificateIssuer(delay=1.0)
        workflow = WorkflowService(db_session, gate=gate, certificate_issuer=slow)

        with pytest.raises(DownstreamError) as exc_info:
            await workflow.apply_transition(
                submission_id, CONTENT_MANAGER, S.PUBLISHED, expected_version=version
            )

        assert exc_info.value.error_code == "CERTIFICATE_ISSUANCE_TIMEOUT"
        assert exc_info.value.status_code == 502
        assert exc_info.value.retryable is True

        reread = await store.get(submission_id)
        assert reread.status == S.APPROVED
        assert reread.version == version
        assert reread.certificate_id is None

    def test_issuer_timeout_must_be_below_store_timeout(self):
        with pytest.raises(ValidationError):
            Settings(STORE_TIMEOUT_SECONDS=5, CERTIFICATE_ISSUER_TIMEOUT_SECONDS=5)

        config = Settings(STORE_TIMEOUT_SECONDS=5, CERTIFICATE_ISSUER_TIMEOUT_SECONDS=2)
        assert config.CERTIFICATE_ISSUER_TIMEOUT_SECONDS < config.STORE_TIMEOUT_SECONDS


class TestReads:
    @pytest.mark.asyncio
    async def test_dashboard_stats_and_publishing_queue(self, workflow, factory, assignments):
        await factory.draft(title="Idea")
        submitted = await factory.submitted(title="Pending")
        await assignments.assign_editor(submitted.id, CONTENT_MANAGER, EDITOR.actor_id)
        first = await factory.approved(title="Ready one")
        second = await factory.approved(title="Ready two")

        stats = await workflow.dashboard_stats()
        assert stats["draft"] == 1
        assert stats["submitted"] == 1
        assert stats["approved"] == 2
        assert stats["published"] == 0
        assert stats["total"] == 4
        assert stats["with_editor"] == 1

        queue = await workflow.publishing_queue()
        assert [item.id for item in queue] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_detail_reports_gate_and_latest_scan(self, workflow, factory):
        submission = await factory.scanned(25.0)

        detail = await workflow.get_submission_detail(submission.id)

        assert detail.gate.decision == PlagiarismDecision.NEEDS_VALIDATION
        assert detail.gate.allows_approval is False
        assert detail.latest_scan.similarity_score == 25.0
        assert detail.revision_count == 0

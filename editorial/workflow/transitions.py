"""
Closed transition table for the submission lifecycle.

Every allowed ``(current, target)`` edge maps to a rule naming the roles
that may take it and the guards that must hold. Anything not in the table
is an invalid transition.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from editorial.db.models import ActorRole, SubmissionStatus, WorkflowEventType


class Guard(enum.Enum):
    # Title and body must both be non-empty
    CONTENT_REQUIRED = "content_required"
    # Only the submission's own author may act
    AUTHOR_ONLY = "author_only"
    # Reviewer/editor actors must be the ones assigned to the submission
    ASSIGNED_PARTICIPANT = "assigned_participant"
    REVIEWER_ASSIGNED = "reviewer_assigned"
    NOTE_REQUIRED = "note_required"
    PLAGIARISM_RESOLVED = "plagiarism_resolved"
    CERTIFICATE_ISSUED = "certificate_issued"


@dataclass(frozen=True)
class TransitionRule:
    source: SubmissionStatus
    target: SubmissionStatus
    roles: FrozenSet[ActorRole]
    guards: Tuple[Guard, ...] = ()
    event_type: WorkflowEventType = WorkflowEventType.TRANSITION
    description: str = field(default="", compare=False)

    def permits(self, role: ActorRole) -> bool:
        return role in self.roles

    def requires(self, guard: Guard) -> bool:
        return guard in self.guards


S = SubmissionStatus
R = ActorRole

_RULES = (
    TransitionRule(
        S.DRAFT,
        S.SUBMITTED,
        frozenset({R.AUTHOR}),
        (Guard.AUTHOR_ONLY, Guard.CONTENT_REQUIRED),
        description="Author submits the draft",
    ),
    TransitionRule(
        S.SUBMITTED,
        S.UNDER_REVIEW,
        frozenset({R.CONTENT_MANAGER}),
        (Guard.REVIEWER_ASSIGNED,),
        description="Content manager sends the submission to review",
    ),
    TransitionRule(
        S.UNDER_REVIEW,
        S.CHANGES_REQUESTED,
        frozenset({R.REVIEWER, R.EDITOR, R.CONTENT_MANAGER}),
        (Guard.ASSIGNED_PARTICIPANT, Guard.NOTE_REQUIRED),
        description="Send back to the author with feedback",
    ),
    TransitionRule(
        S.UNDER_REVIEW,
        S.APPROVED,
        frozenset({R.CONTENT_MANAGER}),
        (Guard.PLAGIARISM_RESOLVED,),
        description="Content manager approves",
    ),
    TransitionRule(
        S.CHANGES_REQUESTED,
        S.SUBMITTED,
        frozenset({R.AUTHOR}),
        (Guard.AUTHOR_ONLY, Guard.CONTENT_REQUIRED),
        event_type=WorkflowEventType.REVISION,
        description="Author resubmits a revision",
    ),
    TransitionRule(
        S.APPROVED,
        S.PUBLISHED,
        frozenset({R.CONTENT_MANAGER, R.ADMIN}),
        (Guard.PLAGIARISM_RESOLVED, Guard.CERTIFICATE_ISSUED),
        description="Publish and issue the author certificate",
    ),
    TransitionRule(
        S.UNDER_REVIEW,
        S.REJECTED,
        frozenset({R.CONTENT_MANAGER, R.ADMIN}),
        (Guard.NOTE_REQUIRED,),
        description="Reject during review",
    ),
    TransitionRule(
        S.APPROVED,
        S.REJECTED,
        frozenset({R.CONTENT_MANAGER, R.ADMIN}),
        (Guard.NOTE_REQUIRED,),
        description="Reject after approval",
    ),
)

TRANSITIONS: Dict[Tuple[SubmissionStatus, SubmissionStatus], TransitionRule] = {
    (rule.source, rule.target): rule for rule in _RULES
}

# Statuses in which reviewers and editors may be (un)assigned
ASSIGNABLE_STATUSES: FrozenSet[SubmissionStatus] = frozenset(
    {S.SUBMITTED, S.UNDER_REVIEW, S.CHANGES_REQUESTED}
)


def get_rule(
    current: SubmissionStatus, target: SubmissionStatus
) -> Optional[TransitionRule]:
    return TRANSITIONS.get((current, target))


def allowed_targets(current: SubmissionStatus) -> List[SubmissionStatus]:
    """Targets reachable from ``current`` in one step, in enum order."""
    return [target for target in SubmissionStatus if (current, target) in TRANSITIONS]

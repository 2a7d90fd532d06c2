"""
Claim lifecycle domain types (``welfare_kernel.domain.claim_lifecycle``).

Responsibility
--------------
Pure value objects for the two-stage claim approval workflow: the claim
state machine, reviewer capabilities, the append-only approval event
record and the transition notification emitted after commit.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/`` or ``models/``.

Lifecycle
---------
::

    PENDING --begin_review--> IN_REVIEW
    PENDING | IN_REVIEW --front_line_approve--> FRONT_LINE_APPROVED
    FRONT_LINE_APPROVED --final_approve--> FINAL_APPROVED   (ledger write)
    PENDING | IN_REVIEW | FRONT_LINE_APPROVED --reject--> REJECTED
    FINAL_APPROVED --complete--> COMPLETED

``REJECTED`` and ``COMPLETED`` are terminal.  ``final_approve`` is the
only transition that mutates the quota ledger.  ``complete`` on an
already completed claim is a no-op rather than an error.

Reviewer capabilities are an authorization predicate only.  The identity
layer decides who holds which capability; the state machine checks the
capability against the transition and records who acted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from welfare_kernel.exceptions import (
    InvalidStateTransitionError,
    UnauthorizedTransitionError,
)


# =========================================================================
# Claim States and Actions
# =========================================================================


class ClaimState(str, Enum):
    """Claim lifecycle states."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    FRONT_LINE_APPROVED = "front_line_approved"
    FINAL_APPROVED = "final_approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


TERMINAL_CLAIM_STATES: frozenset[ClaimState] = frozenset({
    ClaimState.REJECTED,
    ClaimState.COMPLETED,
})


class ClaimAction(str, Enum):
    """Actions recorded in a claim's event log."""

    SUBMIT = "submit"
    BEGIN_REVIEW = "begin_review"
    FRONT_LINE_APPROVE = "front_line_approve"
    FINAL_APPROVE = "final_approve"
    REJECT = "reject"
    COMPLETE = "complete"
    COMMENT = "comment"


class ReviewerCapability(str, Enum):
    """What a reviewer is allowed to do."""

    FRONT_LINE = "front_line"
    FINAL = "final"
    PRIMARY = "primary"


# =========================================================================
# Transition Table
# =========================================================================


@dataclass(frozen=True)
class TransitionRule:
    """One permitted action and the states it applies to.

    ``to_state`` of None means the action leaves the state unchanged.
    An empty ``required_capabilities`` means any actor may perform it.
    """

    action: ClaimAction
    from_states: frozenset[ClaimState]
    to_state: ClaimState | None
    required_capabilities: frozenset[ReviewerCapability] = frozenset()
    mutates_ledger: bool = False
    requires_reason: bool = False


_OPEN_STATES = frozenset({
    ClaimState.PENDING,
    ClaimState.IN_REVIEW,
    ClaimState.FRONT_LINE_APPROVED,
})

CLAIM_TRANSITIONS: dict[ClaimAction, TransitionRule] = {
    ClaimAction.BEGIN_REVIEW: TransitionRule(
        action=ClaimAction.BEGIN_REVIEW,
        from_states=frozenset({ClaimState.PENDING}),
        to_state=ClaimState.IN_REVIEW,
        required_capabilities=frozenset({
            ReviewerCapability.FRONT_LINE, ReviewerCapability.PRIMARY,
        }),
    ),
    ClaimAction.FRONT_LINE_APPROVE: TransitionRule(
        action=ClaimAction.FRONT_LINE_APPROVE,
        from_states=frozenset({ClaimState.PENDING, ClaimState.IN_REVIEW}),
        to_state=ClaimState.FRONT_LINE_APPROVED,
        required_capabilities=frozenset({
            ReviewerCapability.FRONT_LINE, ReviewerCapability.PRIMARY,
        }),
    ),
    ClaimAction.FINAL_APPROVE: TransitionRule(
        action=ClaimAction.FINAL_APPROVE,
        from_states=frozenset({ClaimState.FRONT_LINE_APPROVED}),
        to_state=ClaimState.FINAL_APPROVED,
        required_capabilities=frozenset({
            ReviewerCapability.FINAL, ReviewerCapability.PRIMARY,
        }),
        mutates_ledger=True,
    ),
    ClaimAction.REJECT: TransitionRule(
        action=ClaimAction.REJECT,
        from_states=_OPEN_STATES,
        to_state=ClaimState.REJECTED,
        required_capabilities=frozenset({
            ReviewerCapability.FRONT_LINE,
            ReviewerCapability.FINAL,
            ReviewerCapability.PRIMARY,
        }),
        requires_reason=True,
    ),
    ClaimAction.COMPLETE: TransitionRule(
        action=ClaimAction.COMPLETE,
        from_states=frozenset({ClaimState.FINAL_APPROVED}),
        to_state=ClaimState.COMPLETED,
        required_capabilities=frozenset({
            ReviewerCapability.FINAL, ReviewerCapability.PRIMARY,
        }),
    ),
    ClaimAction.COMMENT: TransitionRule(
        action=ClaimAction.COMMENT,
        from_states=frozenset(ClaimState),
        to_state=None,
        requires_reason=True,
    ),
}

CLAIM_STATE_TRANSITIONS: dict[ClaimState, frozenset[ClaimState]] = {
    state: frozenset(
        rule.to_state
        for rule in CLAIM_TRANSITIONS.values()
        if rule.to_state is not None and state in rule.from_states
    )
    for state in ClaimState
}

# Preference order when recording which capability authorised an action.
_CAPABILITY_ORDER = (
    ReviewerCapability.FRONT_LINE,
    ReviewerCapability.FINAL,
    ReviewerCapability.PRIMARY,
)


# =========================================================================
# Actors
# =========================================================================


@dataclass(frozen=True)
class ReviewerActor:
    """An authenticated actor and the capabilities the identity layer granted."""

    actor_id: UUID
    capabilities: frozenset[ReviewerCapability] = frozenset()

    def __post_init__(self):
        if not isinstance(self.capabilities, frozenset):
            object.__setattr__(self, "capabilities", frozenset(self.capabilities))

    def capability_for(self, rule: TransitionRule) -> ReviewerCapability | None:
        """The capability that authorises ``rule``, or None if none does."""
        for capability in _CAPABILITY_ORDER:
            if capability in self.capabilities and capability in rule.required_capabilities:
                return capability
        return None

    def can(self, action: ClaimAction) -> bool:
        rule = CLAIM_TRANSITIONS.get(action)
        if rule is None:
            return False
        if not rule.required_capabilities:
            return True
        return self.capability_for(rule) is not None


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalEvent:
    """One entry in a claim's append-only event log."""

    claim_id: UUID
    sequence: int
    action: ClaimAction
    from_state: ClaimState | None
    to_state: ClaimState
    actor_id: UUID
    occurred_at: datetime
    actor_capability: ReviewerCapability | None = None
    comment: str | None = None
    approved_amount: Decimal | None = None
    event_id: UUID | None = None


@dataclass(frozen=True)
class ClaimRecord:
    """Read model of a claim and its event log."""

    claim_id: UUID
    member_id: UUID
    sub_type_id: UUID
    fiscal_year: int
    state: ClaimState
    requested_amount: Decimal
    submitted_at: datetime
    quantity: int | None = None
    approved_amount: Decimal | None = None
    description: str | None = None
    rejection_reason: str | None = None
    events: tuple[ApprovalEvent, ...] = field(default_factory=tuple)
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_CLAIM_STATES


@dataclass(frozen=True)
class ClaimTransitionEvent:
    """Notification emitted to subscribers after a transition commits."""

    claim_id: UUID
    member_id: UUID
    action: ClaimAction
    old_state: ClaimState | None
    new_state: ClaimState
    actor_id: UUID
    occurred_at: datetime
    approved_amount: Decimal | None = None


# =========================================================================
# State Machine
# =========================================================================


@dataclass(frozen=True)
class TransitionPlan:
    """What a permitted action will do to a claim."""

    action: ClaimAction
    from_state: ClaimState
    to_state: ClaimState
    actor_capability: ReviewerCapability | None
    mutates_ledger: bool = False
    is_noop: bool = False


class ClaimStateMachine:
    """Decides whether an actor may perform an action on a claim."""

    def plan(
        self,
        claim_id: UUID,
        current_state: ClaimState,
        action: ClaimAction,
        actor: ReviewerActor,
    ) -> TransitionPlan:
        """
        Check an action against the transition table and the actor.

        Raises:
            InvalidStateTransitionError: The action is not permitted from
                ``current_state``.
            UnauthorizedTransitionError: The actor lacks every capability
                the action requires.
        """
        rule = CLAIM_TRANSITIONS.get(action)
        idempotent_completion = (
            action is ClaimAction.COMPLETE and current_state is ClaimState.COMPLETED
        )
        if rule is None or (
            current_state not in rule.from_states and not idempotent_completion
        ):
            raise InvalidStateTransitionError(
                str(claim_id), current_state.value, action.value
            )

        capability = actor.capability_for(rule)
        if rule.required_capabilities and capability is None:
            raise UnauthorizedTransitionError(
                str(actor.actor_id),
                action.value,
                tuple(sorted(c.value for c in rule.required_capabilities)),
            )

        return TransitionPlan(
            action=action,
            from_state=current_state,
            to_state=rule.to_state or current_state,
            actor_capability=capability,
            mutates_ledger=rule.mutates_ledger and not idempotent_completion,
            is_noop=idempotent_completion,
        )

    def is_allowed(self, current_state: ClaimState, action: ClaimAction) -> bool:
        rule = CLAIM_TRANSITIONS.get(action)
        return rule is not None and current_state in rule.from_states

    def available_actions(
        self, current_state: ClaimState, actor: ReviewerActor
    ) -> tuple[ClaimAction, ...]:
        """Actions ``actor`` may take on a claim in ``current_state``."""
        return tuple(
            action
            for action, rule in CLAIM_TRANSITIONS.items()
            if current_state in rule.from_states and actor.can(action)
        )

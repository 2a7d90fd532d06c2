"""
Tests for the claim state machine (``welfare_kernel.domain.claim_lifecycle``).

Invariants tested:
- CLAIM_TRANSITIONS defines the only valid state changes; terminal
  states have no outgoing edges.
- final_approve is the only ledger-mutating transition.
- Capabilities are checked after the state; the state error wins.
- complete on a completed claim is a no-op.
"""

from uuid import uuid4

import pytest

from welfare_kernel.domain.claim_lifecycle import (
    CLAIM_STATE_TRANSITIONS,
    CLAIM_TRANSITIONS,
    TERMINAL_CLAIM_STATES,
    ClaimAction,
    ClaimState,
    ClaimStateMachine,
    ReviewerActor,
    ReviewerCapability,
)
from welfare_kernel.exceptions import (
    InvalidStateTransitionError,
    UnauthorizedTransitionError,
)


def actor(*capabilities: ReviewerCapability) -> ReviewerActor:
    return ReviewerActor(uuid4(), frozenset(capabilities))


PRIMARY = actor(ReviewerCapability.PRIMARY)


@pytest.fixture
def machine() -> ClaimStateMachine:
    return ClaimStateMachine()


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_CLAIM_STATES:
            assert CLAIM_STATE_TRANSITIONS[state] == frozenset()

    def test_state_graph(self):
        assert CLAIM_STATE_TRANSITIONS[ClaimState.PENDING] == {
            ClaimState.IN_REVIEW,
            ClaimState.FRONT_LINE_APPROVED,
            ClaimState.REJECTED,
        }
        assert CLAIM_STATE_TRANSITIONS[ClaimState.IN_REVIEW] == {
            ClaimState.FRONT_LINE_APPROVED,
            ClaimState.REJECTED,
        }
        assert CLAIM_STATE_TRANSITIONS[ClaimState.FRONT_LINE_APPROVED] == {
            ClaimState.FINAL_APPROVED,
            ClaimState.REJECTED,
        }
        assert CLAIM_STATE_TRANSITIONS[ClaimState.FINAL_APPROVED] == {
            ClaimState.COMPLETED,
        }

    def test_only_final_approve_mutates_ledger(self):
        mutating = {a for a, rule in CLAIM_TRANSITIONS.items() if rule.mutates_ledger}
        assert mutating == {ClaimAction.FINAL_APPROVE}

    def test_final_approved_cannot_be_rejected(self):
        assert ClaimState.REJECTED not in CLAIM_STATE_TRANSITIONS[ClaimState.FINAL_APPROVED]


class TestPlan:
    def test_front_line_can_begin_review(self, machine):
        plan = machine.plan(
            uuid4(), ClaimState.PENDING, ClaimAction.BEGIN_REVIEW,
            actor(ReviewerCapability.FRONT_LINE),
        )
        assert plan.to_state is ClaimState.IN_REVIEW
        assert plan.actor_capability is ReviewerCapability.FRONT_LINE
        assert plan.mutates_ledger is False

    def test_front_line_approve_can_skip_review(self, machine):
        plan = machine.plan(
            uuid4(), ClaimState.PENDING, ClaimAction.FRONT_LINE_APPROVE, PRIMARY
        )
        assert plan.to_state is ClaimState.FRONT_LINE_APPROVED
        assert plan.actor_capability is ReviewerCapability.PRIMARY

    def test_final_approve_plan_mutates_ledger(self, machine):
        plan = machine.plan(
            uuid4(), ClaimState.FRONT_LINE_APPROVED, ClaimAction.FINAL_APPROVE,
            actor(ReviewerCapability.FINAL),
        )
        assert plan.to_state is ClaimState.FINAL_APPROVED
        assert plan.mutates_ledger is True

    def test_rejected_claim_cannot_be_approved(self, machine):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            machine.plan(uuid4(), ClaimState.REJECTED, ClaimAction.FINAL_APPROVE, PRIMARY)
        assert exc_info.value.current_state == "rejected"
        assert exc_info.value.action == "final_approve"

    @pytest.mark.parametrize("action", [
        ClaimAction.BEGIN_REVIEW,
        ClaimAction.FRONT_LINE_APPROVE,
        ClaimAction.FINAL_APPROVE,
        ClaimAction.REJECT,
        ClaimAction.COMPLETE,
    ])
    def test_rejected_is_terminal(self, machine, action):
        with pytest.raises(InvalidStateTransitionError):
            machine.plan(uuid4(), ClaimState.REJECTED, action, PRIMARY)

    def test_final_approve_requires_front_line_approval_first(self, machine):
        with pytest.raises(InvalidStateTransitionError):
            machine.plan(uuid4(), ClaimState.IN_REVIEW, ClaimAction.FINAL_APPROVE, PRIMARY)

    def test_front_line_cannot_final_approve(self, machine):
        reviewer = actor(ReviewerCapability.FRONT_LINE)
        with pytest.raises(UnauthorizedTransitionError) as exc_info:
            machine.plan(
                uuid4(), ClaimState.FRONT_LINE_APPROVED, ClaimAction.FINAL_APPROVE, reviewer
            )
        assert exc_info.value.required == ("final", "primary")

    def test_state_error_wins_over_capability_error(self, machine):
        with pytest.raises(InvalidStateTransitionError):
            machine.plan(uuid4(), ClaimState.COMPLETED, ClaimAction.REJECT, actor())

    def test_complete_on_completed_is_noop(self, machine):
        plan = machine.plan(uuid4(), ClaimState.COMPLETED, ClaimAction.COMPLETE, PRIMARY)
        assert plan.is_noop is True
        assert plan.to_state is ClaimState.COMPLETED

    def test_comment_needs_no_capability(self, machine):
        plan = machine.plan(uuid4(), ClaimState.REJECTED, ClaimAction.COMMENT, actor())
        assert plan.to_state is ClaimState.REJECTED
        assert plan.actor_capability is None

    def test_submit_is_not_a_review_action(self, machine):
        with pytest.raises(InvalidStateTransitionError):
            machine.plan(uuid4(), ClaimState.PENDING, ClaimAction.SUBMIT, PRIMARY)


class TestAvailableActions:
    def test_front_line_on_pending(self, machine):
        actions = machine.available_actions(
            ClaimState.PENDING, actor(ReviewerCapability.FRONT_LINE)
        )
        assert set(actions) == {
            ClaimAction.BEGIN_REVIEW,
            ClaimAction.FRONT_LINE_APPROVE,
            ClaimAction.REJECT,
            ClaimAction.COMMENT,
        }

    def test_final_on_front_line_approved(self, machine):
        actions = machine.available_actions(
            ClaimState.FRONT_LINE_APPROVED, actor(ReviewerCapability.FINAL)
        )
        assert set(actions) == {
            ClaimAction.FINAL_APPROVE,
            ClaimAction.REJECT,
            ClaimAction.COMMENT,
        }

    def test_capabilities_are_coerced_to_frozenset(self):
        reviewer = ReviewerActor(uuid4(), [ReviewerCapability.FINAL])
        assert reviewer.capabilities == frozenset({ReviewerCapability.FINAL})
        assert reviewer.can(ClaimAction.COMPLETE)
        assert not reviewer.can(ClaimAction.BEGIN_REVIEW)

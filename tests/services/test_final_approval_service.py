"""
Tests for FinalApprovalService and QuotaLedgerWriter.

Invariants tested:
- Final approval is the only path that increments the quota ledger, and
  it increments exactly once per approved claim.
- The approved amount is > 0, <= requested and <= the ceiling
  recomputed under lock.
- Lifetime totals carry forward into a new fiscal year; yearly totals
  restart.
- Lifetime caps count usage from every fiscal year, including claims
  approved for a later fiscal year before an earlier claim is approved.
- Rejected or invalid approvals leave both claim and ledger untouched.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from tests.factories import TEST_ACTOR_ID, TEST_FISCAL_YEAR
from welfare_kernel.domain.benefits import AccrualMethod
from welfare_kernel.domain.claim_lifecycle import ClaimAction, ClaimState
from welfare_kernel.domain.ledger import LedgerKey
from welfare_kernel.exceptions import (
    ClaimNotFoundError,
    ExceedsRemainingQuotaError,
    InvalidInputError,
    InvalidStateTransitionError,
    QuotaExceededError,
    SubTypeInactiveError,
    UnauthorizedTransitionError,
)
from welfare_kernel.selectors.claim_selector import ClaimSelector
from welfare_kernel.selectors.quota_selector import QuotaSelector
from welfare_kernel.services.benefit_catalog_service import BenefitCatalogService
from welfare_kernel.services.final_approval_service import FinalApprovalService


@pytest.fixture
def inpatient(make_sub_type):
    return make_sub_type(
        "MEDICAL_INPATIENT",
        accrual_method=AccrualMethod.PER_UNIT,
        base_amount="500",
        max_per_request=Decimal("5000"),
        max_per_fiscal_year=Decimal("10000"),
    )


def ledger_entry(session, member_id, sub_type_id, fiscal_year=TEST_FISCAL_YEAR):
    return QuotaSelector(session).get_entry(LedgerKey(member_id, sub_type_id, fiscal_year))


class TestApprove:
    def test_approve_creates_ledger_row(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver, published,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=4)
        result = final_approval_service.final_approve(claim.claim_id, final_approver)

        assert result.approved_amount == Decimal("2000")
        assert result.attempts == 1
        assert result.claim.state is ClaimState.FINAL_APPROVED
        assert result.claim.approved_amount == Decimal("2000")
        event = result.claim.events[-1]
        assert event.action is ClaimAction.FINAL_APPROVE
        assert event.approved_amount == Decimal("2000")
        assert event.actor_capability.value == "final"

        usage = ledger_entry(session, member_id, inpatient.sub_type_id)
        assert usage.used_amount_year == Decimal("2000")
        assert usage.used_claims_year == 1
        assert usage.used_amount_lifetime == Decimal("2000")
        assert usage.used_claims_lifetime == 1
        assert result.usage == usage

        assert published[-1].action is ClaimAction.FINAL_APPROVE
        assert published[-1].approved_amount == Decimal("2000")

    def test_approve_increments_existing_row(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver, seed_usage,
    ):
        seed_usage(member_id, inpatient.sub_type_id, used_amount_year="3000", used_claims_year=1)
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=2)
        final_approval_service.final_approve(claim.claim_id, final_approver)

        usage = ledger_entry(session, member_id, inpatient.sub_type_id)
        assert usage.used_amount_year == Decimal("4000")
        assert usage.used_claims_year == 2

    def test_default_amount_is_capped_by_fresh_ceiling(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver, seed_usage,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=10)
        # Another approval consumed most of the year after submission.
        seed_usage(member_id, inpatient.sub_type_id, used_amount_year="8500", used_claims_year=2)

        result = final_approval_service.final_approve(claim.claim_id, final_approver)
        assert result.approved_amount == Decimal("1500")
        assert ledger_entry(
            session, member_id, inpatient.sub_type_id
        ).used_amount_year == Decimal("10000")

    def test_explicit_partial_amount(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, primary_reviewer,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=4)
        result = final_approval_service.final_approve(
            claim.claim_id, primary_reviewer, approved_amount=Decimal("1250.50"),
            comment="Partial receipt",
        )
        assert result.approved_amount == Decimal("1250.50")
        assert result.claim.events[-1].comment == "Partial receipt"
        assert result.claim.events[-1].actor_capability.value == "primary"

    def test_amount_above_requested_rejected(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=4)
        with pytest.raises(ExceedsRemainingQuotaError) as exc_info:
            final_approval_service.final_approve(
                claim.claim_id, final_approver, approved_amount=Decimal("2500")
            )
        assert exc_info.value.approvable_amount == Decimal("2000")
        assert ClaimSelector(session).get(claim.claim_id).state is ClaimState.FRONT_LINE_APPROVED
        assert ledger_entry(session, member_id, inpatient.sub_type_id) is None

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1"), "abc", True])
    def test_amount_must_be_positive(
        self, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver, amount,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        with pytest.raises(InvalidInputError) as exc_info:
            final_approval_service.final_approve(
                claim.claim_id, final_approver, approved_amount=amount
            )
        assert exc_info.value.field == "approved_amount"


class TestGuards:
    def test_pending_claim_cannot_be_final_approved(
        self, session, claim_service, final_approval_service, inpatient, member_id,
        final_approver,
    ):
        claim = claim_service.submit_claim(member_id, inpatient.sub_type_id, quantity=1)
        with pytest.raises(InvalidStateTransitionError):
            final_approval_service.final_approve(claim.claim_id, final_approver)
        assert ledger_entry(session, member_id, inpatient.sub_type_id) is None

    def test_front_line_reviewer_cannot_final_approve(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, front_line_reviewer,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        with pytest.raises(UnauthorizedTransitionError):
            final_approval_service.final_approve(claim.claim_id, front_line_reviewer)
        assert ledger_entry(session, member_id, inpatient.sub_type_id) is None

    def test_approving_twice_charges_once(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        final_approval_service.final_approve(claim.claim_id, final_approver)
        with pytest.raises(InvalidStateTransitionError):
            final_approval_service.final_approve(claim.claim_id, final_approver)

        usage = ledger_entry(session, member_id, inpatient.sub_type_id)
        assert usage.used_claims_year == 1

    def test_rejected_claim_never_touches_ledger(
        self, session, claim_service, final_approval_service, inpatient, member_id,
        front_line_approved_claim, front_line_reviewer, final_approver,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        claim_service.reject(claim.claim_id, front_line_reviewer, "Not covered")
        with pytest.raises(InvalidStateTransitionError):
            final_approval_service.final_approve(claim.claim_id, final_approver)
        assert ledger_entry(session, member_id, inpatient.sub_type_id) is None

    def test_deactivated_sub_type(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        BenefitCatalogService(session).deactivate(inpatient.sub_type_id, TEST_ACTOR_ID)
        session.commit()
        with pytest.raises(SubTypeInactiveError):
            final_approval_service.final_approve(claim.claim_id, final_approver)

    def test_unknown_claim(self, final_approval_service, final_approver):
        with pytest.raises(ClaimNotFoundError):
            final_approval_service.final_approve(uuid4(), final_approver)

    def test_blocked_at_approval_time(
        self, session, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver, seed_usage,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        seed_usage(member_id, inpatient.sub_type_id, used_amount_year="10000", used_claims_year=3)

        with pytest.raises(ExceedsRemainingQuotaError) as exc_info:
            final_approval_service.final_approve(claim.claim_id, final_approver)
        assert exc_info.value.approvable_amount == Decimal("0")
        assert "Fiscal-year amount cap reached" in exc_info.value.reasons
        assert ClaimSelector(session).get(claim.claim_id).state is ClaimState.FRONT_LINE_APPROVED

    def test_max_attempts_must_be_positive(self, session_factory):
        with pytest.raises(ValueError):
            FinalApprovalService(session_factory, max_attempts=0)


class TestLifetimeLimits:
    def test_one_shot_benefit_holds_across_fiscal_years(
        self, session, clock, claim_service, final_approval_service, make_sub_type,
        member_id, front_line_approved_claim, final_approver,
    ):
        funeral = make_sub_type("FUNERAL_MEMBER", base_amount="10000", max_lifetime_claims=1)
        claim = front_line_approved_claim(member_id, funeral.sub_type_id)
        final_approval_service.final_approve(claim.claim_id, final_approver)

        with pytest.raises(QuotaExceededError) as exc_info:
            claim_service.submit_claim(member_id, funeral.sub_type_id)
        assert exc_info.value.reasons == ("Lifetime claim count cap reached",)

        clock.set_time(datetime(2027, 9, 1, 9, 0, tzinfo=UTC))
        with pytest.raises(QuotaExceededError):
            claim_service.submit_claim(member_id, funeral.sub_type_id)

    def test_lifetime_amount_cap_blocks_eleventh_incident(
        self, session, claim_service, final_approval_service, make_sub_type,
        member_id, front_line_approved_claim, final_approver,
    ):
        disaster = make_sub_type(
            "DISASTER_RELIEF",
            accrual_method=AccrualMethod.PER_INCIDENT,
            base_amount="2000",
            max_lifetime_amount=Decimal("20000"),
        )
        for _ in range(10):
            claim = front_line_approved_claim(member_id, disaster.sub_type_id)
            final_approval_service.final_approve(claim.claim_id, final_approver)

        usage = ledger_entry(session, member_id, disaster.sub_type_id)
        assert usage.used_amount_lifetime == Decimal("20000")
        assert usage.used_claims_lifetime == 10

        with pytest.raises(QuotaExceededError) as exc_info:
            claim_service.submit_claim(member_id, disaster.sub_type_id)
        assert exc_info.value.reasons == ("Lifetime amount cap reached",)

    def test_lifetime_totals_carry_forward(
        self, session, clock, final_approval_service, make_sub_type, member_id,
        front_line_approved_claim, final_approver,
    ):
        disaster = make_sub_type(
            "DISASTER_RELIEF",
            accrual_method=AccrualMethod.PER_INCIDENT,
            base_amount="2000",
            max_lifetime_amount=Decimal("20000"),
            max_claims_per_fiscal_year=1,
        )
        first = front_line_approved_claim(member_id, disaster.sub_type_id)
        final_approval_service.final_approve(first.claim_id, final_approver)

        clock.set_time(datetime(2025, 8, 1, 9, 0, tzinfo=UTC))
        second = front_line_approved_claim(member_id, disaster.sub_type_id)
        assert second.fiscal_year == TEST_FISCAL_YEAR + 1
        result = final_approval_service.final_approve(second.claim_id, final_approver)

        assert result.usage.used_claims_year == 1
        assert result.usage.used_amount_year == Decimal("2000")
        assert result.usage.used_claims_lifetime == 2
        assert result.usage.used_amount_lifetime == Decimal("4000")

        previous = ledger_entry(session, member_id, disaster.sub_type_id, TEST_FISCAL_YEAR)
        assert previous.used_claims_lifetime == 1

    def test_late_approval_sees_later_fiscal_year_usage(
        self, session, clock, final_approval_service, make_sub_type, member_id,
        front_line_approved_claim, final_approver,
    ):
        marriage = make_sub_type("MARRIAGE", base_amount="2000", max_lifetime_claims=1)
        earlier = front_line_approved_claim(member_id, marriage.sub_type_id)

        clock.set_time(datetime(2025, 7, 2, 9, 0, tzinfo=UTC))
        later = front_line_approved_claim(member_id, marriage.sub_type_id)
        assert later.fiscal_year == TEST_FISCAL_YEAR + 1
        final_approval_service.final_approve(later.claim_id, final_approver)

        with pytest.raises(ExceedsRemainingQuotaError) as exc_info:
            final_approval_service.final_approve(earlier.claim_id, final_approver)
        assert exc_info.value.reasons == ("Lifetime claim count cap reached",)

        assert ClaimSelector(session).get(earlier.claim_id).state is ClaimState.FRONT_LINE_APPROVED
        assert ledger_entry(session, member_id, marriage.sub_type_id) is None
        usage = QuotaSelector(session).get_usage(
            member_id, marriage.sub_type_id, TEST_FISCAL_YEAR + 2
        )
        assert usage.used_claims_lifetime == 1

    def test_late_approval_moves_later_lifetime_totals(
        self, session, clock, final_approval_service, make_sub_type, member_id,
        front_line_approved_claim, final_approver, captured_logs,
    ):
        disaster = make_sub_type(
            "DISASTER_RELIEF",
            accrual_method=AccrualMethod.PER_INCIDENT,
            base_amount="2000",
            max_lifetime_amount=Decimal("20000"),
        )
        earlier = front_line_approved_claim(member_id, disaster.sub_type_id)

        clock.set_time(datetime(2025, 7, 2, 9, 0, tzinfo=UTC))
        later = front_line_approved_claim(member_id, disaster.sub_type_id)
        final_approval_service.final_approve(later.claim_id, final_approver)

        result = final_approval_service.final_approve(earlier.claim_id, final_approver)
        assert result.usage.used_claims_year == 1
        assert result.usage.used_claims_lifetime == 2
        assert result.usage.used_amount_lifetime == Decimal("4000")

        earlier_row = ledger_entry(session, member_id, disaster.sub_type_id, TEST_FISCAL_YEAR)
        assert earlier_row.used_claims_lifetime == 1
        later_row = ledger_entry(session, member_id, disaster.sub_type_id, TEST_FISCAL_YEAR + 1)
        assert later_row.used_claims_year == 1
        assert later_row.used_claims_lifetime == 2
        assert later_row.used_amount_lifetime == Decimal("4000")

        incremented = [r for r in captured_logs() if r["message"] == "quota_ledger_incremented"]
        assert incremented[-1]["later_years_updated"] == 1


class TestLogging:
    def test_logs_approval(
        self, final_approval_service, inpatient, member_id,
        front_line_approved_claim, final_approver, captured_logs,
    ):
        claim = front_line_approved_claim(member_id, inpatient.sub_type_id, quantity=1)
        final_approval_service.final_approve(claim.claim_id, final_approver)

        logs = captured_logs()
        approved = next(r for r in logs if r["message"] == "claim_final_approved")
        assert approved["claim_id"] == str(claim.claim_id)
        assert approved["actor_id"] == str(final_approver.actor_id)
        incremented = next(r for r in logs if r["message"] == "quota_ledger_incremented")
        assert incremented["row_created"] is True
        assert incremented["later_years_updated"] == 0
        assert any(r["message"] == "final_approval_completed" for r in logs)

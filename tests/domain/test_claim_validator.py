"""
Tests for ClaimValidator (``welfare_kernel.domain.claim_validator``).

Invariants tested:
- The validator never raises; every failure is a structured reason.
- Every exhausted quota axis is reported, not just the first.
- approvable_amount is zero whenever the claim is not valid, and never
  exceeds the computed amount or the tightest remaining amount cap.
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from tests.factories import build_sub_type
from welfare_kernel.domain.benefits import AccrualMethod
from welfare_kernel.domain.claim_validator import ClaimValidator, ReasonCode
from welfare_kernel.domain.entitlement import QuotaAxis
from welfare_kernel.domain.ledger import QuotaUsage


@pytest.fixture
def validator() -> ClaimValidator:
    return ClaimValidator()


class TestLookupFailures:
    def test_missing_sub_type(self, validator):
        result = validator.validate(None, None, sub_type_ref="NOPE")
        assert result.is_valid is False
        assert result.reason_codes == (ReasonCode.SUB_TYPE_NOT_FOUND,)
        assert "NOPE" in result.messages[0]
        assert result.approvable_amount == Decimal("0")

    def test_inactive_sub_type(self, validator):
        sub_type = build_sub_type("OLD_PLAN", is_active=False)
        result = validator.validate(sub_type, QuotaUsage.zero())
        assert result.reason_codes == (ReasonCode.SUB_TYPE_INACTIVE,)

    def test_invalid_quantity_is_a_reason_not_an_exception(self, validator):
        sub_type = build_sub_type("INPATIENT", AccrualMethod.PER_UNIT, base_amount="500")
        result = validator.validate(sub_type, QuotaUsage.zero(), quantity=0)
        assert result.is_valid is False
        assert result.reason_codes == (ReasonCode.INVALID_INPUT,)
        assert result.messages[0].startswith("quantity:")


class TestQuotaChecks:
    def test_fresh_member_is_valid(self, validator):
        sub_type = build_sub_type(
            "INPATIENT",
            AccrualMethod.PER_UNIT,
            base_amount="500",
            max_per_request=Decimal("5000"),
            max_per_fiscal_year=Decimal("10000"),
        )
        result = validator.validate(sub_type, None, quantity=4)
        assert result.is_valid
        assert result.computed_amount == Decimal("2000")
        assert result.approvable_amount == Decimal("2000")
        assert result.remaining_yearly_amount == Decimal("10000")
        assert result.reasons == ()

    def test_yearly_amount_exhausted(self, validator):
        """A member who used the whole 10000 yearly cap gets nothing more."""
        sub_type = build_sub_type(
            "INPATIENT",
            AccrualMethod.PER_UNIT,
            base_amount="500",
            max_per_fiscal_year=Decimal("10000"),
        )
        usage = QuotaUsage(
            used_amount_year=Decimal("10000"),
            used_claims_year=2,
            used_amount_lifetime=Decimal("10000"),
            used_claims_lifetime=2,
        )
        result = validator.validate(sub_type, usage, quantity=1)
        assert result.is_valid is False
        assert result.reason_codes == (ReasonCode.QUOTA_EXCEEDED,)
        assert result.reasons[0].axis is QuotaAxis.YEARLY_AMOUNT
        assert result.messages == ("Fiscal-year amount cap reached",)
        assert result.approvable_amount == Decimal("0")
        assert result.remaining_yearly_amount == Decimal("0")

    def test_partial_room_caps_approvable_amount(self, validator):
        sub_type = build_sub_type(
            "INPATIENT",
            AccrualMethod.PER_UNIT,
            base_amount="500",
            max_per_fiscal_year=Decimal("10000"),
        )
        usage = QuotaUsage(used_amount_year=Decimal("9000"), used_amount_lifetime=Decimal("9000"))
        result = validator.validate(sub_type, usage, quantity=4)
        assert result.is_valid
        assert result.computed_amount == Decimal("2000")
        assert result.approvable_amount == Decimal("1000")

    def test_every_exhausted_axis_is_reported(self, validator):
        sub_type = build_sub_type(
            "OUTPATIENT",
            base_amount="1000",
            max_per_fiscal_year=Decimal("5000"),
            max_claims_per_fiscal_year=5,
            max_lifetime_amount=Decimal("5000"),
            max_lifetime_claims=5,
        )
        usage = QuotaUsage(
            used_amount_year=Decimal("5000"),
            used_claims_year=5,
            used_amount_lifetime=Decimal("5000"),
            used_claims_lifetime=5,
        )
        result = validator.validate(sub_type, usage)
        assert {r.axis for r in result.reasons} == set(QuotaAxis)
        assert set(result.messages) == {
            "Fiscal-year amount cap reached",
            "Lifetime amount cap reached",
            "Fiscal-year claim count cap reached",
            "Lifetime claim count cap reached",
        }

    def test_lifetime_claim_count_blocks(self, validator):
        sub_type = build_sub_type("FUNERAL", base_amount="10000", max_lifetime_claims=1)
        usage = QuotaUsage(used_amount_lifetime=Decimal("10000"), used_claims_lifetime=1)
        result = validator.validate(sub_type, usage)
        assert result.is_valid is False
        assert result.reasons[0].axis is QuotaAxis.LIFETIME_CLAIMS

    def test_zero_base_amount_has_nothing_to_claim(self, validator):
        sub_type = build_sub_type("TOKEN", base_amount="0")
        result = validator.validate(sub_type, QuotaUsage.zero())
        assert result.is_valid is False
        assert result.reason_codes == (ReasonCode.NO_CLAIMABLE_AMOUNT,)

    def test_clamp_is_reported(self, validator):
        sub_type = build_sub_type(
            "INPATIENT",
            AccrualMethod.PER_UNIT,
            base_amount="500",
            max_per_request=Decimal("5000"),
        )
        result = validator.validate(sub_type, QuotaUsage.zero(), quantity=20)
        assert result.is_valid
        assert result.was_clamped is True
        assert result.computed_amount == Decimal("5000")


class TestApprovableProperty:
    @given(
        base=st.integers(min_value=1, max_value=5_000),
        cap=st.integers(min_value=1, max_value=20_000),
        used=st.integers(min_value=0, max_value=25_000),
    )
    def test_approvable_within_bounds(self, base, cap, used):
        sub_type = build_sub_type(
            "DISASTER",
            AccrualMethod.PER_INCIDENT,
            base_amount=base,
            max_lifetime_amount=Decimal(cap),
        )
        usage = QuotaUsage(used_amount_lifetime=Decimal(used))
        result = ClaimValidator().validate(sub_type, usage)

        room = max(cap - used, 0)
        if room == 0:
            assert result.is_valid is False
            assert result.approvable_amount == 0
        else:
            assert result.is_valid
            assert result.approvable_amount == Decimal(min(base, room))

"""
ORM-level immutability of ledger rows, claims and approval events.

Invariants tested:
- Quota ledger counters, yearly and lifetime, are add-only and rows are
  never deleted.
- A claim in a terminal state cannot have its columns changed, but can
  still receive comment events.
- Approval events cannot be updated or deleted.
- Concurrent updates of the same ledger row are detected by its version.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy.orm.exc import StaleDataError

from welfare_kernel.domain.benefits import AccrualMethod
from welfare_kernel.exceptions import ImmutabilityViolationError
from welfare_kernel.models.claim import ApprovalEventModel, ClaimRequestModel
from welfare_kernel.models.quota_ledger import QuotaLedgerEntryModel
from welfare_kernel.selectors.quota_selector import QuotaSelector


@pytest.fixture
def ledger_row(session, make_sub_type, member_id, seed_usage):
    plan = make_sub_type("FUNERAL")
    return seed_usage(member_id, plan.sub_type_id, used_amount_year="3000", used_claims_year=1)


class TestLedgerRows:
    def test_counters_can_grow(self, session, ledger_row):
        ledger_row.used_amount_year = Decimal("4000")
        ledger_row.used_amount_lifetime = Decimal("4000")
        session.flush()
        assert ledger_row.version == 2

    def test_counter_cannot_shrink(self, session, ledger_row):
        ledger_row.used_amount_year = Decimal("1000")
        with pytest.raises(ImmutabilityViolationError, match="add-only"):
            session.flush()

    def test_claim_count_cannot_shrink(self, session, ledger_row):
        ledger_row.used_claims_lifetime = 0
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_key_cannot_change(self, session, ledger_row):
        ledger_row.fiscal_year = ledger_row.fiscal_year + 1
        with pytest.raises(ImmutabilityViolationError, match="fiscal_year"):
            session.flush()

    def test_rows_are_never_deleted(self, session, ledger_row):
        session.delete(ledger_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_stale_version_is_detected(self, session_factory, ledger_row):
        first = session_factory()
        second = session_factory()
        try:
            a = first.get(QuotaLedgerEntryModel, ledger_row.id)
            b = second.get(QuotaLedgerEntryModel, ledger_row.id)

            a.used_claims_year += 1
            first.commit()

            b.used_claims_year += 1
            with pytest.raises(StaleDataError):
                second.flush()
        finally:
            second.rollback()
            second.close()
            first.close()

class TestLifetimeRows:
    @pytest.fixture
    def lifetime_row(self, session, ledger_row):
        return QuotaSelector(session).get_lifetime(ledger_row.member_id, ledger_row.sub_type_id)

    def test_lifetime_row_mirrors_seeded_totals(self, lifetime_row):
        assert lifetime_row.used_amount_lifetime == Decimal("3000")
        assert lifetime_row.used_claims_lifetime == 1

    def test_lifetime_counter_cannot_shrink(self, session, lifetime_row):
        lifetime_row.used_claims_lifetime = 0
        with pytest.raises(ImmutabilityViolationError, match="QuotaLifetime"):
            session.flush()

    def test_lifetime_key_cannot_change(self, session, lifetime_row):
        lifetime_row.member_id = uuid4()
        with pytest.raises(ImmutabilityViolationError, match="member_id"):
            session.flush()

    def test_lifetime_rows_are_never_deleted(self, session, lifetime_row):
        session.delete(lifetime_row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestClaims:
    @pytest.fixture
    def rejected_claim(self, session, claim_service, make_sub_type, member_id, front_line_reviewer):
        plan = make_sub_type("NEWBORN", accrual_method=AccrualMethod.PER_INCIDENT)
        claim = claim_service.submit_claim(member_id, plan.sub_type_id)
        claim_service.reject(claim.claim_id, front_line_reviewer, "Duplicate")
        return session.get(ClaimRequestModel, claim.claim_id)

    def test_terminal_claim_columns_are_frozen(self, session, rejected_claim):
        rejected_claim.requested_amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError, match="requested_amount"):
            session.flush()

    def test_terminal_claim_cannot_be_reopened(self, session, rejected_claim):
        rejected_claim.state = "pending"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_claims_are_never_deleted(self, session, rejected_claim):
        session.delete(rejected_claim)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_events_are_immutable(self, session, rejected_claim):
        event = rejected_claim.events[0]
        event.comment = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_events_cannot_be_deleted(self, session, rejected_claim):
        event = session.get(ApprovalEventModel, rejected_claim.events[0].id)
        session.delete(event)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

"""
Quota usage snapshots (``welfare_kernel.domain.ledger``).

``QuotaUsage`` is the immutable value read from (or about to be written
to) a quota ledger row.  Counters only ever grow: ``plus_claim`` returns a
new snapshot and there is no operation that lowers a counter.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

_ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerKey:
    """Unique key of a quota ledger row."""

    member_id: UUID
    sub_type_id: UUID
    fiscal_year: int


@dataclass(frozen=True)
class QuotaUsage:
    """Running totals for one (member, sub-type, fiscal year).

    As read for validation, the lifetime counters are the member's totals
    across every fiscal year, later ones included.
    """

    used_amount_year: Decimal = _ZERO
    used_claims_year: int = 0
    used_amount_lifetime: Decimal = _ZERO
    used_claims_lifetime: int = 0

    @classmethod
    def zero(cls) -> QuotaUsage:
        return cls()

    @classmethod
    def carried_forward(cls, previous: QuotaUsage | None) -> QuotaUsage:
        """Usage at the start of a new fiscal year.

        Yearly counters restart at zero; lifetime counters continue from
        the member's most recent earlier fiscal year.
        """
        if previous is None:
            return cls()
        return cls(
            used_amount_lifetime=previous.used_amount_lifetime,
            used_claims_lifetime=previous.used_claims_lifetime,
        )

    def plus_claim(self, amount: Decimal) -> QuotaUsage:
        """Usage after one more approved claim of ``amount``."""
        if amount < 0:
            raise ValueError(f"Ledger increments must be non-negative, got {amount}")
        return QuotaUsage(
            used_amount_year=self.used_amount_year + amount,
            used_claims_year=self.used_claims_year + 1,
            used_amount_lifetime=self.used_amount_lifetime + amount,
            used_claims_lifetime=self.used_claims_lifetime + 1,
        )

    def with_lifetime(self, used_amount: Decimal, used_claims: int) -> QuotaUsage:
        """The same yearly counters with the given lifetime totals."""
        return replace(
            self,
            used_amount_lifetime=used_amount,
            used_claims_lifetime=used_claims,
        )

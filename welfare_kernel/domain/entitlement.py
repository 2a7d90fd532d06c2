"""
Entitlement resolution (``welfare_kernel.domain.entitlement``).

Given a sub-type's limits and a usage snapshot, compute the member's
remaining capacity on each of the four quota axes.  ``None`` means the
axis is uncapped; a number is ``max(0, cap - used)``.

A member is blocked on an axis when the axis is capped and its remaining
value is exactly zero.  One blocked axis is enough to make the member
ineligible, whatever headroom the other axes have.

Pure functions; no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from welfare_kernel.domain.benefits import AccrualMethod, QuotaLimits
from welfare_kernel.domain.ledger import QuotaUsage

_ZERO = Decimal("0")


class QuotaAxis(str, Enum):
    """The four capacity axes a sub-type may cap."""

    YEARLY_AMOUNT = "yearly_amount"
    LIFETIME_AMOUNT = "lifetime_amount"
    YEARLY_CLAIMS = "yearly_claims"
    LIFETIME_CLAIMS = "lifetime_claims"


@dataclass(frozen=True)
class RemainingCapacity:
    """Remaining headroom per axis (``None`` = uncapped)."""

    remaining_yearly_amount: Decimal | None = None
    remaining_lifetime_amount: Decimal | None = None
    remaining_yearly_claims: int | None = None
    remaining_lifetime_claims: int | None = None

    def remaining_for(self, axis: QuotaAxis) -> Decimal | int | None:
        return {
            QuotaAxis.YEARLY_AMOUNT: self.remaining_yearly_amount,
            QuotaAxis.LIFETIME_AMOUNT: self.remaining_lifetime_amount,
            QuotaAxis.YEARLY_CLAIMS: self.remaining_yearly_claims,
            QuotaAxis.LIFETIME_CLAIMS: self.remaining_lifetime_claims,
        }[axis]

    @property
    def blocked_axes(self) -> tuple[QuotaAxis, ...]:
        """Capped axes with nothing left, in QuotaAxis order."""
        return tuple(
            axis for axis in QuotaAxis if self.remaining_for(axis) == 0
        )

    @property
    def is_blocked(self) -> bool:
        return bool(self.blocked_axes)

    @property
    def amount_ceiling(self) -> Decimal | None:
        """Smallest remaining amount across the amount axes, or None if uncapped."""
        amounts = [
            a
            for a in (self.remaining_yearly_amount, self.remaining_lifetime_amount)
            if a is not None
        ]
        return min(amounts) if amounts else None


def _remaining(cap, used):
    if cap is None:
        return None
    return max(cap - used, type(cap)(0))


class EntitlementResolver:
    """Computes remaining capacity from limits and a usage snapshot."""

    def resolve(self, limits: QuotaLimits, usage: QuotaUsage | None) -> RemainingCapacity:
        usage = usage or QuotaUsage.zero()
        return RemainingCapacity(
            remaining_yearly_amount=_remaining(
                limits.max_per_fiscal_year, usage.used_amount_year
            ),
            remaining_lifetime_amount=_remaining(
                limits.max_lifetime_amount, usage.used_amount_lifetime
            ),
            remaining_yearly_claims=_remaining(
                limits.max_claims_per_fiscal_year, usage.used_claims_year
            ),
            remaining_lifetime_claims=_remaining(
                limits.max_lifetime_claims, usage.used_claims_lifetime
            ),
        )


@dataclass(frozen=True)
class QuotaSummaryLine:
    """One row of a member's quota overview for a fiscal year."""

    sub_type_id: UUID
    sub_type_code: str
    sub_type_name: str
    category_code: str
    accrual_method: AccrualMethod
    base_amount: Decimal
    limits: QuotaLimits
    fiscal_year: int
    usage: QuotaUsage
    remaining: RemainingCapacity

    @property
    def can_claim(self) -> bool:
        return not self.remaining.is_blocked

"""
Benefit sub-type configuration (``welfare_kernel.domain.benefits``).

A sub-type is one claimable variant of a benefit category ("inpatient
night", "marriage lump sum").  Its accrual method fixes how a claim's
amount is computed; its limits fix how much a member may draw per
request, per fiscal year and over their lifetime.

An absent cap means the axis is uncapped.  A cap that is present must be
positive: zero is never used to mean "disabled" (deactivate the sub-type
instead).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID


class AccrualMethod(str, Enum):
    """How the claimable amount of a sub-type accrues."""

    FLAT_SUM = "flat_sum"
    PER_UNIT = "per_unit"
    PER_INCIDENT = "per_incident"


@dataclass(frozen=True)
class QuotaLimits:
    """Per-request, per-fiscal-year and lifetime caps of a sub-type.

    Every cap is optional and independent of the others; ``None`` means
    uncapped on that axis.
    """

    max_per_request: Decimal | None = None
    max_per_fiscal_year: Decimal | None = None
    max_claims_per_fiscal_year: int | None = None
    max_lifetime_amount: Decimal | None = None
    max_lifetime_claims: int | None = None

    def __post_init__(self):
        for name in (
            "max_per_request",
            "max_per_fiscal_year",
            "max_claims_per_fiscal_year",
            "max_lifetime_amount",
            "max_lifetime_claims",
        ):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive when set, got {value}")

    @property
    def is_uncapped(self) -> bool:
        return all(
            v is None
            for v in (
                self.max_per_request,
                self.max_per_fiscal_year,
                self.max_claims_per_fiscal_year,
                self.max_lifetime_amount,
                self.max_lifetime_claims,
            )
        )


@dataclass(frozen=True)
class BenefitSubType:
    """A claimable benefit variant and its limit configuration."""

    sub_type_id: UUID
    code: str
    name: str
    category_code: str
    accrual_method: AccrualMethod
    base_amount: Decimal
    limits: QuotaLimits = field(default_factory=QuotaLimits)
    allows_variable_amount: bool = False
    is_active: bool = True

    def __post_init__(self):
        if not self.code or not self.code.strip():
            raise ValueError("code cannot be empty")
        if self.base_amount < 0:
            raise ValueError(f"base_amount cannot be negative, got {self.base_amount}")
        if self.allows_variable_amount and self.accrual_method is not AccrualMethod.FLAT_SUM:
            raise ValueError("allows_variable_amount applies to flat_sum sub-types only")

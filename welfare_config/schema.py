"""
Welfare configuration schema.

Defines the human-authored, reviewable configuration artifact: kernel
settings plus the benefit catalog.  YAML files are parsed into these
types by the loader; bridges turn catalog entries into kernel domain
objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

_ACCRUAL_METHODS = ("flat_sum", "per_unit", "per_incident")

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KernelSettings:
    """Runtime knobs of the welfare kernel."""

    fiscal_year_start_month: int = 7
    final_approval_max_attempts: int = 3
    database_url: str | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.fiscal_year_start_month <= 12:
            raise ValueError(
                f"fiscal_year_start_month must be 1-12, got {self.fiscal_year_start_month}"
            )
        if self.final_approval_max_attempts < 1:
            raise ValueError(
                "final_approval_max_attempts must be at least 1, "
                f"got {self.final_approval_max_attempts}"
            )


# ---------------------------------------------------------------------------
# Benefit catalog
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SubTypeDef:
    """One claimable sub-type as authored in YAML."""

    code: str
    name: str
    accrual_method: str
    base_amount: Decimal
    allows_variable_amount: bool = False
    max_per_request: Decimal | None = None
    max_per_fiscal_year: Decimal | None = None
    max_claims_per_fiscal_year: int | None = None
    max_lifetime_amount: Decimal | None = None
    max_lifetime_claims: int | None = None
    is_active: bool = True
    sub_type_id: str | None = None

    def __post_init__(self) -> None:
        if self.accrual_method not in _ACCRUAL_METHODS:
            raise ValueError(
                f"Sub-type {self.code}: accrual_method must be one of "
                f"{', '.join(_ACCRUAL_METHODS)}, got {self.accrual_method!r}"
            )


@dataclass(frozen=True)
class CategoryDef:
    """A benefit category and its sub-types."""

    code: str
    name: str
    sub_types: tuple[SubTypeDef, ...] = ()


@dataclass(frozen=True)
class BenefitCatalog:
    """All benefit categories of a configuration set."""

    categories: tuple[CategoryDef, ...] = ()
    checksum: str = ""

    def iter_sub_types(self):
        """Yield ``(category_code, SubTypeDef)`` in authored order."""
        for category in self.categories:
            for sub_type in category.sub_types:
                yield category.code, sub_type

    @property
    def sub_type_codes(self) -> tuple[str, ...]:
        return tuple(sub_type.code for _, sub_type in self.iter_sub_types())


# ---------------------------------------------------------------------------
# Root artifact
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WelfareConfiguration:
    """A complete configuration set: settings plus catalog."""

    config_id: str
    version: int
    settings: KernelSettings = field(default_factory=KernelSettings)
    catalog: BenefitCatalog = field(default_factory=BenefitCatalog)
    checksum: str = ""

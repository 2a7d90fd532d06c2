"""
Module: welfare_kernel.models.benefit_sub_type
Responsibility: ORM persistence for benefit sub-type configuration.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only; domain types are imported lazily in to_dto().

Invariants enforced:
    - code is unique across all sub-types.
    - accrual_method is one of flat_sum, per_unit, per_incident.
    - Every cap is either NULL (uncapped) or strictly positive.

Failure modes:
    - IntegrityError on duplicate code or invalid cap.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from welfare_kernel.db.base import TrackedBase

if TYPE_CHECKING:
    from welfare_kernel.domain.benefits import BenefitSubType


class BenefitSubTypeModel(TrackedBase):
    """Persistent benefit sub-type.

    Contract:
        Sub-types are deactivated, never deleted; claims keep a foreign
        key to them.
    """

    __tablename__ = "benefit_sub_types"

    __table_args__ = (
        CheckConstraint(
            "accrual_method IN ('flat_sum', 'per_unit', 'per_incident')",
            name="ck_benefit_sub_types_accrual_method",
        ),
        CheckConstraint("base_amount >= 0", name="ck_benefit_sub_types_base_amount"),
        CheckConstraint(
            "max_per_request IS NULL OR max_per_request > 0",
            name="ck_benefit_sub_types_max_per_request",
        ),
        CheckConstraint(
            "max_per_fiscal_year IS NULL OR max_per_fiscal_year > 0",
            name="ck_benefit_sub_types_max_per_fiscal_year",
        ),
        CheckConstraint(
            "max_claims_per_fiscal_year IS NULL OR max_claims_per_fiscal_year > 0",
            name="ck_benefit_sub_types_max_claims_per_fiscal_year",
        ),
        CheckConstraint(
            "max_lifetime_amount IS NULL OR max_lifetime_amount > 0",
            name="ck_benefit_sub_types_max_lifetime_amount",
        ),
        CheckConstraint(
            "max_lifetime_claims IS NULL OR max_lifetime_claims > 0",
            name="ck_benefit_sub_types_max_lifetime_claims",
        ),
        Index("ix_benefit_sub_types_category", "category_code", "code"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category_code: Mapped[str] = mapped_column(String(50), nullable=False)
    accrual_method: Mapped[str] = mapped_column(String(20), nullable=False)
    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    allows_variable_amount: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )

    max_per_request: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_per_fiscal_year: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_claims_per_fiscal_year: Mapped[int | None] = mapped_column(nullable=True)
    max_lifetime_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    max_lifetime_claims: Mapped[int | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<BenefitSubType {self.code} active={self.is_active}>"

    def to_dto(self) -> BenefitSubType:
        """Convert ORM model to frozen domain DTO."""
        from welfare_kernel.domain.benefits import (
            AccrualMethod,
            BenefitSubType,
            QuotaLimits,
        )

        return BenefitSubType(
            sub_type_id=self.id,
            code=self.code,
            name=self.name,
            category_code=self.category_code,
            accrual_method=AccrualMethod(self.accrual_method),
            base_amount=self.base_amount,
            limits=QuotaLimits(
                max_per_request=self.max_per_request,
                max_per_fiscal_year=self.max_per_fiscal_year,
                max_claims_per_fiscal_year=self.max_claims_per_fiscal_year,
                max_lifetime_amount=self.max_lifetime_amount,
                max_lifetime_claims=self.max_lifetime_claims,
            ),
            allows_variable_amount=self.allows_variable_amount,
            is_active=self.is_active,
        )

    @classmethod
    def from_dto(cls, dto: BenefitSubType, created_by_id: UUID) -> BenefitSubTypeModel:
        """Create ORM model from domain DTO."""
        model = cls(
            id=dto.sub_type_id,
            code=dto.code,
            created_by_id=created_by_id,
        )
        model.apply(dto)
        return model

    def apply(self, dto: BenefitSubType) -> None:
        """Copy the configurable fields of ``dto`` onto this row."""
        limits = dto.limits
        self.name = dto.name
        self.category_code = dto.category_code
        self.accrual_method = dto.accrual_method.value
        self.base_amount = dto.base_amount
        self.allows_variable_amount = dto.allows_variable_amount
        self.max_per_request = limits.max_per_request
        self.max_per_fiscal_year = limits.max_per_fiscal_year
        self.max_claims_per_fiscal_year = limits.max_claims_per_fiscal_year
        self.max_lifetime_amount = limits.max_lifetime_amount
        self.max_lifetime_claims = limits.max_lifetime_claims
        self.is_active = dto.is_active

"""
Module: welfare_kernel.models.quota_ledger
Responsibility: ORM persistence for quota usage totals: one row per
    (member, sub-type, fiscal year) and one lifetime row per
    (member, sub-type).

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.

Invariants enforced:
    - UNIQUE(member_id, sub_type_id, fiscal_year) on yearly rows and
      UNIQUE(member_id, sub_type_id) on lifetime rows.  A lost race on
      lazy creation surfaces as IntegrityError.
    - Counters are add-only: an UPDATE that lowers any counter, or that
      moves the row to a different key, raises at flush.
    - Rows are never deleted.
    - version is the optimistic-concurrency counter; a stale UPDATE
      raises StaleDataError.

Lifetime row:
    QuotaLifetimeModel holds the member's totals across every fiscal
    year.  Every final approval for the (member, sub-type) updates it, so
    it is the row that serialises approvals across fiscal years.  A
    yearly row's lifetime fields are the totals through that fiscal year.

Failure modes:
    - IntegrityError on duplicate key.
    - StaleDataError on concurrent update.
    - ImmutabilityViolationError on decrement, re-keying or DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    UniqueConstraint,
    event,
)
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapped, mapped_column

from welfare_kernel.db.base import Base, UUIDString
from welfare_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from welfare_kernel.domain.ledger import LedgerKey, QuotaUsage


class QuotaLedgerEntryModel(Base):
    """Running quota usage for one (member, sub-type, fiscal year).

    Contract:
        Written only by QuotaLedgerWriter, and only by addition.
    """

    __tablename__ = "quota_ledger_entries"

    __table_args__ = (
        UniqueConstraint(
            "member_id", "sub_type_id", "fiscal_year",
            name="uq_quota_ledger_entries_key",
        ),
        CheckConstraint(
            "used_amount_year >= 0 AND used_claims_year >= 0 "
            "AND used_amount_lifetime >= 0 AND used_claims_lifetime >= 0",
            name="ck_quota_ledger_entries_non_negative",
        ),
        Index(
            "ix_quota_ledger_entries_member_sub_type",
            "member_id", "sub_type_id", "fiscal_year",
        ),
    )

    member_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sub_type_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("benefit_sub_types.id"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(nullable=False)

    used_amount_year: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    used_claims_year: Mapped[int] = mapped_column(nullable=False, default=0)
    used_amount_lifetime: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    used_claims_lifetime: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<QuotaLedgerEntry member={self.member_id} "
            f"sub_type={self.sub_type_id} fy={self.fiscal_year} v{self.version}>"
        )

    @property
    def key(self) -> LedgerKey:
        from welfare_kernel.domain.ledger import LedgerKey

        return LedgerKey(self.member_id, self.sub_type_id, self.fiscal_year)

    def to_usage(self) -> QuotaUsage:
        """Convert the row's counters to a frozen usage snapshot."""
        from welfare_kernel.domain.ledger import QuotaUsage

        return QuotaUsage(
            used_amount_year=self.used_amount_year,
            used_claims_year=self.used_claims_year,
            used_amount_lifetime=self.used_amount_lifetime,
            used_claims_lifetime=self.used_claims_lifetime,
        )


class QuotaLifetimeModel(Base):
    """Running quota usage for one (member, sub-type) across all fiscal years.

    Contract:
        Written only by QuotaLedgerWriter, and only by addition.  Equal to
        the sum of the yearly counters of the member's yearly rows.
    """

    __tablename__ = "quota_lifetime_totals"

    __table_args__ = (
        UniqueConstraint("member_id", "sub_type_id", name="uq_quota_lifetime_totals_key"),
        CheckConstraint(
            "used_amount_lifetime >= 0 AND used_claims_lifetime >= 0",
            name="ck_quota_lifetime_totals_non_negative",
        ),
    )

    member_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sub_type_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("benefit_sub_types.id"),
        nullable=False,
    )

    used_amount_lifetime: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    used_claims_lifetime: Mapped[int] = mapped_column(nullable=False, default=0)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<QuotaLifetime member={self.member_id} "
            f"sub_type={self.sub_type_id} v{self.version}>"
        )


# =============================================================================
# ORM-Level Add-Only Enforcement
# =============================================================================

_LIFETIME_FIELDS = ("used_amount_lifetime", "used_claims_lifetime")

_ADD_ONLY_RULES = {
    QuotaLedgerEntryModel: (
        "QuotaLedgerEntry",
        ("member_id", "sub_type_id", "fiscal_year"),
        ("used_amount_year", "used_claims_year") + _LIFETIME_FIELDS,
    ),
    QuotaLifetimeModel: (
        "QuotaLifetime",
        ("member_id", "sub_type_id"),
        _LIFETIME_FIELDS,
    ),
}


def enforce_add_only_counters(mapper, connection, target):
    """Refuse re-keying a quota row or lowering any of its counters."""
    entity_type, key_fields, counter_fields = _ADD_ONLY_RULES[type(target)]
    state = sa_inspect(target)

    for name in key_fields:
        history = state.attrs[name].history
        if history.deleted and history.added and history.deleted[0] != history.added[0]:
            raise ImmutabilityViolationError(
                entity_type=entity_type,
                entity_id=str(target.id),
                reason=f"ledger key field {name} cannot change",
            )

    for name in counter_fields:
        history = state.attrs[name].history
        if not (history.deleted and history.added):
            continue
        old, new = history.deleted[0], history.added[0]
        if old is not None and (new is None or new < old):
            raise ImmutabilityViolationError(
                entity_type=entity_type,
                entity_id=str(target.id),
                reason=f"{name} is add-only ({old} -> {new})",
            )


def prevent_ledger_delete(mapper, connection, target):
    """Prevent deletion of quota rows."""
    raise ImmutabilityViolationError(
        entity_type=_ADD_ONLY_RULES[type(target)][0],
        entity_id=str(target.id),
        reason="Quota ledger rows are never deleted",
    )


for _model in _ADD_ONLY_RULES:
    event.listen(_model, "before_update", enforce_add_only_counters)
    event.listen(_model, "before_delete", prevent_ledger_delete)

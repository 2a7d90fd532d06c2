"""
QuotaLedgerWriter -- the only code path that writes quota ledger rows.

Responsibility:
    Reads a member's quota rows for one (member, sub-type) under a write
    lock and applies the increment for one approved claim:
    - the lifetime row (member, sub-type), the authoritative lifetime
      totals;
    - the yearly row (member, sub-type, fiscal year), created lazily with
      its lifetime fields seeded from the most recent earlier year;
    - every later yearly row, whose lifetime fields move up with it.

Architecture position:
    Kernel > Services.  Called only by FinalApprovalService inside its
    transaction.  Flushes, never commits.

Concurrency:
    - The lifetime row is locked first and updated by every approval, so
      approvals for the same (member, sub-type) serialise whichever
      fiscal year they belong to.  Different (member, sub-type) pairs
      never block each other.
    - PostgreSQL: ``SELECT ... FOR UPDATE`` on the lifetime row, then the
      yearly rows.
    - SQLite: FOR UPDATE is not rendered; the single-writer lock and the
      rows' ``version`` columns detect the lost race instead.
    - Lost races surface from ``apply_increment`` as ``StaleDataError``
      (stale version) or ``IntegrityError`` (two writers creating the same
      row).  Neither is handled here; the caller retries from scratch.

Failure modes:
    - StaleDataError / IntegrityError / OperationalError propagate.
    - ImmutabilityViolationError if an update would lower a counter.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from welfare_kernel.domain.clock import Clock
from welfare_kernel.domain.ledger import LedgerKey, QuotaUsage
from welfare_kernel.logging_config import get_logger
from welfare_kernel.models.quota_ledger import QuotaLedgerEntryModel, QuotaLifetimeModel
from welfare_kernel.selectors.quota_selector import QuotaSelector, effective_usage
from welfare_kernel.services.base import BaseService

logger = get_logger("services.quota_ledger_writer")


@dataclass(frozen=True)
class LockedUsage:
    """Usage read under lock.

    ``entry`` and ``lifetime`` are None when those rows do not exist yet.
    ``later_entries`` are the yearly rows after ``key.fiscal_year``.
    """

    key: LedgerKey
    usage: QuotaUsage
    entry: QuotaLedgerEntryModel | None = None
    lifetime: QuotaLifetimeModel | None = None
    later_entries: tuple[QuotaLedgerEntryModel, ...] = field(default=())

    @property
    def is_new(self) -> bool:
        return self.entry is None


class QuotaLedgerWriter(BaseService[QuotaLedgerEntryModel]):
    """
    Locked read and add-only write of quota ledger rows.

    Usage:
        locked = writer.lock_usage(key)
        # validate against locked.usage ...
        writer.apply_increment(locked, amount)
    """

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def lock_usage(self, key: LedgerKey) -> LockedUsage:
        """
        Lock the member's quota rows for ``key``'s sub-type.

        The returned usage has the yearly counters of ``key``'s fiscal
        year (zero when its row does not exist) and the member's lifetime
        totals across all fiscal years.
        """
        lifetime = self.session.execute(
            select(QuotaLifetimeModel)
            .where(
                QuotaLifetimeModel.member_id == key.member_id,
                QuotaLifetimeModel.sub_type_id == key.sub_type_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        rows = self.session.execute(
            select(QuotaLedgerEntryModel)
            .where(
                QuotaLedgerEntryModel.member_id == key.member_id,
                QuotaLedgerEntryModel.sub_type_id == key.sub_type_id,
                QuotaLedgerEntryModel.fiscal_year >= key.fiscal_year,
            )
            .order_by(QuotaLedgerEntryModel.fiscal_year)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()

        entry = next((r for r in rows if r.fiscal_year == key.fiscal_year), None)
        return LockedUsage(
            key=key,
            usage=effective_usage(entry, lifetime),
            entry=entry,
            lifetime=lifetime,
            later_entries=tuple(r for r in rows if r.fiscal_year > key.fiscal_year),
        )

    def apply_increment(self, locked: LockedUsage, amount: Decimal) -> QuotaUsage:
        """
        Add one claim of ``amount`` to the locked rows and flush.

        Returns:
            The effective usage after the increment.
        """
        if amount < 0:
            raise ValueError(f"Ledger increments must be non-negative, got {amount}")
        key = locked.key
        now = self._clock.now()

        lifetime = locked.lifetime
        if lifetime is None:
            lifetime = QuotaLifetimeModel(
                member_id=key.member_id,
                sub_type_id=key.sub_type_id,
                used_amount_lifetime=amount,
                used_claims_lifetime=1,
                created_at=now,
                updated_at=now,
            )
            self.session.add(lifetime)
        else:
            lifetime.used_amount_lifetime = lifetime.used_amount_lifetime + amount
            lifetime.used_claims_lifetime = lifetime.used_claims_lifetime + 1
            lifetime.updated_at = now

        if locked.entry is None:
            previous = QuotaSelector(self.session).previous_usage(key)
            row_usage = QuotaUsage.carried_forward(previous).plus_claim(amount)
            entry = QuotaLedgerEntryModel(
                member_id=key.member_id,
                sub_type_id=key.sub_type_id,
                fiscal_year=key.fiscal_year,
                used_amount_year=row_usage.used_amount_year,
                used_claims_year=row_usage.used_claims_year,
                used_amount_lifetime=row_usage.used_amount_lifetime,
                used_claims_lifetime=row_usage.used_claims_lifetime,
                created_at=now,
                updated_at=now,
            )
            self.session.add(entry)
        else:
            entry = locked.entry
            row_usage = entry.to_usage().plus_claim(amount)
            entry.used_amount_year = row_usage.used_amount_year
            entry.used_claims_year = row_usage.used_claims_year
            entry.used_amount_lifetime = row_usage.used_amount_lifetime
            entry.used_claims_lifetime = row_usage.used_claims_lifetime
            entry.updated_at = now

        for later in locked.later_entries:
            later.used_amount_lifetime = later.used_amount_lifetime + amount
            later.used_claims_lifetime = later.used_claims_lifetime + 1
            later.updated_at = now

        self.session.flush()

        new_usage = effective_usage(entry, lifetime)
        logger.info(
            "quota_ledger_incremented",
            extra={
                "member_id": str(key.member_id),
                "sub_type_id": str(key.sub_type_id),
                "fiscal_year": key.fiscal_year,
                "amount": str(amount),
                "row_created": locked.is_new,
                "later_years_updated": len(locked.later_entries),
                "used_amount_year": str(new_usage.used_amount_year),
                "used_claims_lifetime": new_usage.used_claims_lifetime,
            },
        )
        return new_usage

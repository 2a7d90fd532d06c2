"""
Module: welfare_kernel.selectors.quota_selector
Responsibility: Read-only quota usage queries, including lifetime
    carry-forward and the per-member quota summary.
Architecture position: Kernel > Selectors.

Effective usage:
    Yearly counters come from the (member, sub-type, fiscal year) row,
    zero when it does not exist.  Lifetime counters come from the
    member's lifetime row and cover every fiscal year, so a claim from
    an earlier fiscal year still sees usage approved in later ones.

Carry-forward:
    When QuotaLedgerWriter first creates a yearly row, its lifetime
    fields are seeded from the member's most recent earlier fiscal-year
    row for that sub-type (``previous_usage``).

Freshness:
    Ledger rows are written by FinalApprovalService in its own sessions,
    so every query here reloads rows already in the identity map.

Failure modes:
    - Returns zero usage when the member has never claimed the sub-type.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from welfare_kernel.domain.entitlement import EntitlementResolver, QuotaSummaryLine
from welfare_kernel.domain.ledger import LedgerKey, QuotaUsage
from welfare_kernel.models.benefit_sub_type import BenefitSubTypeModel
from welfare_kernel.models.quota_ledger import QuotaLedgerEntryModel, QuotaLifetimeModel
from welfare_kernel.selectors.base import BaseSelector


def effective_usage(
    entry: QuotaLedgerEntryModel | None,
    lifetime: QuotaLifetimeModel | None,
) -> QuotaUsage:
    """Yearly counters of ``entry`` with the lifetime totals of ``lifetime``."""
    usage = entry.to_usage() if entry is not None else QuotaUsage.zero()
    if lifetime is None:
        return usage.with_lifetime(Decimal("0"), 0)
    return usage.with_lifetime(lifetime.used_amount_lifetime, lifetime.used_claims_lifetime)


class QuotaSelector(BaseSelector[QuotaLedgerEntryModel]):
    """Quota usage reads."""

    def get_entry(self, key: LedgerKey) -> QuotaUsage | None:
        """The exact ledger row for ``key``, or None if it does not exist yet."""
        model = self.session.execute(
            select(QuotaLedgerEntryModel).where(
                QuotaLedgerEntryModel.member_id == key.member_id,
                QuotaLedgerEntryModel.sub_type_id == key.sub_type_id,
                QuotaLedgerEntryModel.fiscal_year == key.fiscal_year,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_usage() if model is not None else None

    def previous_usage(self, key: LedgerKey) -> QuotaUsage | None:
        """Usage of the most recent fiscal year before ``key.fiscal_year``."""
        model = self.session.execute(
            select(QuotaLedgerEntryModel)
            .where(
                QuotaLedgerEntryModel.member_id == key.member_id,
                QuotaLedgerEntryModel.sub_type_id == key.sub_type_id,
                QuotaLedgerEntryModel.fiscal_year < key.fiscal_year,
            )
            .order_by(QuotaLedgerEntryModel.fiscal_year.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_usage() if model is not None else None

    def get_lifetime(self, member_id: UUID, sub_type_id: UUID) -> QuotaLifetimeModel | None:
        return self.session.execute(
            select(QuotaLifetimeModel)
            .where(
                QuotaLifetimeModel.member_id == member_id,
                QuotaLifetimeModel.sub_type_id == sub_type_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_usage(self, member_id: UUID, sub_type_id: UUID, fiscal_year: int) -> QuotaUsage:
        """Effective usage for a key: that year's counters plus lifetime totals."""
        entry = self.session.execute(
            select(QuotaLedgerEntryModel)
            .where(
                QuotaLedgerEntryModel.member_id == member_id,
                QuotaLedgerEntryModel.sub_type_id == sub_type_id,
                QuotaLedgerEntryModel.fiscal_year == fiscal_year,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return effective_usage(entry, self.get_lifetime(member_id, sub_type_id))

    def member_summary(
        self,
        member_id: UUID,
        fiscal_year: int,
        resolver: EntitlementResolver | None = None,
    ) -> list[QuotaSummaryLine]:
        """
        Quota overview for one member and fiscal year.

        One line per active sub-type, ordered by category then code.
        """
        resolver = resolver or EntitlementResolver()

        sub_types = [
            m.to_dto()
            for m in self.session.execute(
                select(BenefitSubTypeModel)
                .where(BenefitSubTypeModel.is_active.is_(True))
                .order_by(BenefitSubTypeModel.category_code, BenefitSubTypeModel.code)
            ).scalars()
        ]

        yearly = {
            row.sub_type_id: row
            for row in self.session.execute(
                select(QuotaLedgerEntryModel)
                .where(
                    QuotaLedgerEntryModel.member_id == member_id,
                    QuotaLedgerEntryModel.fiscal_year == fiscal_year,
                )
                .execution_options(populate_existing=True)
            ).scalars()
        }
        lifetime = {
            row.sub_type_id: row
            for row in self.session.execute(
                select(QuotaLifetimeModel)
                .where(QuotaLifetimeModel.member_id == member_id)
                .execution_options(populate_existing=True)
            ).scalars()
        }

        lines = []
        for sub_type in sub_types:
            usage = effective_usage(
                yearly.get(sub_type.sub_type_id), lifetime.get(sub_type.sub_type_id)
            )
            lines.append(
                QuotaSummaryLine(
                    sub_type_id=sub_type.sub_type_id,
                    sub_type_code=sub_type.code,
                    sub_type_name=sub_type.name,
                    category_code=sub_type.category_code,
                    accrual_method=sub_type.accrual_method,
                    base_amount=sub_type.base_amount,
                    limits=sub_type.limits,
                    fiscal_year=fiscal_year,
                    usage=usage,
                    remaining=resolver.resolve(sub_type.limits, usage),
                )
            )
        return lines

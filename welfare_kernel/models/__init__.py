"""SQLAlchemy ORM models for the welfare kernel."""

from welfare_kernel.models.benefit_sub_type import BenefitSubTypeModel
from welfare_kernel.models.claim import ApprovalEventModel, ClaimRequestModel
from welfare_kernel.models.quota_ledger import QuotaLedgerEntryModel, QuotaLifetimeModel

__all__ = [
    "BenefitSubTypeModel",
    "ClaimRequestModel",
    "ApprovalEventModel",
    "QuotaLedgerEntryModel",
    "QuotaLifetimeModel",
]

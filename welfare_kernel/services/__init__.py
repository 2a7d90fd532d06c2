"""Services for the welfare kernel (write side)."""

from welfare_kernel.services.benefit_catalog_service import (
    BenefitCatalogService,
    CatalogSyncResult,
)
from welfare_kernel.services.claim_service import ClaimService
from welfare_kernel.services.final_approval_service import (
    FinalApprovalResult,
    FinalApprovalService,
)
from welfare_kernel.services.quota_ledger_writer import LockedUsage, QuotaLedgerWriter
from welfare_kernel.services.transition_publisher import (
    TransitionPublisher,
    TransitionSubscriber,
    log_transition,
)

__all__ = [
    "BenefitCatalogService",
    "CatalogSyncResult",
    "ClaimService",
    "FinalApprovalResult",
    "FinalApprovalService",
    "LockedUsage",
    "QuotaLedgerWriter",
    "TransitionPublisher",
    "TransitionSubscriber",
    "log_transition",
]

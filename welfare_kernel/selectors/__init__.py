"""Selectors for the welfare kernel (read side)."""

from welfare_kernel.selectors.benefit_selector import BenefitSelector
from welfare_kernel.selectors.claim_selector import ClaimSelector
from welfare_kernel.selectors.quota_selector import QuotaSelector

__all__ = [
    "BenefitSelector",
    "ClaimSelector",
    "QuotaSelector",
]

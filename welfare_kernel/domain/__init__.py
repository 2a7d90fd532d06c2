"""
Pure domain layer.

This module contains pure value objects and decision logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time
- I/O

All domain objects are immutable and deterministic.
"""

from welfare_kernel.domain.amount_calculator import AmountCalculator, ComputedAmount
from welfare_kernel.domain.benefits import AccrualMethod, BenefitSubType, QuotaLimits
from welfare_kernel.domain.claim_lifecycle import (
    CLAIM_STATE_TRANSITIONS,
    CLAIM_TRANSITIONS,
    TERMINAL_CLAIM_STATES,
    ApprovalEvent,
    ClaimAction,
    ClaimRecord,
    ClaimState,
    ClaimStateMachine,
    ClaimTransitionEvent,
    ReviewerActor,
    ReviewerCapability,
    TransitionPlan,
    TransitionRule,
)
from welfare_kernel.domain.claim_validator import (
    ClaimValidationResult,
    ClaimValidator,
    ReasonCode,
    ValidationReason,
)
from welfare_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from welfare_kernel.domain.entitlement import (
    EntitlementResolver,
    QuotaAxis,
    QuotaSummaryLine,
    RemainingCapacity,
)
from welfare_kernel.domain.fiscal_year import (
    FiscalYearCalculator,
    FiscalYearRange,
    StartMonthFiscalYear,
)
from welfare_kernel.domain.ledger import LedgerKey, QuotaUsage

__all__ = [
    # Benefits
    "AccrualMethod",
    "BenefitSubType",
    "QuotaLimits",
    # Amounts
    "AmountCalculator",
    "ComputedAmount",
    # Ledger / entitlement
    "LedgerKey",
    "QuotaUsage",
    "EntitlementResolver",
    "QuotaAxis",
    "QuotaSummaryLine",
    "RemainingCapacity",
    # Validation
    "ClaimValidationResult",
    "ClaimValidator",
    "ReasonCode",
    "ValidationReason",
    # Lifecycle
    "CLAIM_STATE_TRANSITIONS",
    "CLAIM_TRANSITIONS",
    "TERMINAL_CLAIM_STATES",
    "ApprovalEvent",
    "ClaimAction",
    "ClaimRecord",
    "ClaimState",
    "ClaimStateMachine",
    "ClaimTransitionEvent",
    "ReviewerActor",
    "ReviewerCapability",
    "TransitionPlan",
    "TransitionRule",
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "FiscalYearCalculator",
    "FiscalYearRange",
    "StartMonthFiscalYear",
]

"""
Claim admissibility (``welfare_kernel.domain.claim_validator``).

Composes AmountCalculator and EntitlementResolver into one decision:
is this claim admissible right now, and what is the most that may be
approved for it?

The validator never raises.  Missing or inactive sub-types and invalid
input come back as structured reasons, as does every exhausted quota
axis (all of them, not just the first).

At submission the result is advisory and nothing is written.  At final
approval the same validator is re-run against the freshly locked ledger
row and its ``approvable_amount`` is authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from welfare_kernel.domain.amount_calculator import AmountCalculator
from welfare_kernel.domain.benefits import BenefitSubType
from welfare_kernel.domain.entitlement import EntitlementResolver, QuotaAxis
from welfare_kernel.domain.ledger import QuotaUsage
from welfare_kernel.exceptions import InvalidInputError

_ZERO = Decimal("0")


class ReasonCode(str, Enum):
    """Machine-readable reason a claim is not admissible."""

    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    SUB_TYPE_NOT_FOUND = "SUB_TYPE_NOT_FOUND"
    SUB_TYPE_INACTIVE = "SUB_TYPE_INACTIVE"
    INVALID_INPUT = "INVALID_INPUT"
    NO_CLAIMABLE_AMOUNT = "NO_CLAIMABLE_AMOUNT"


_AXIS_MESSAGES = {
    QuotaAxis.YEARLY_AMOUNT: "Fiscal-year amount cap reached",
    QuotaAxis.LIFETIME_AMOUNT: "Lifetime amount cap reached",
    QuotaAxis.YEARLY_CLAIMS: "Fiscal-year claim count cap reached",
    QuotaAxis.LIFETIME_CLAIMS: "Lifetime claim count cap reached",
}


@dataclass(frozen=True)
class ValidationReason:
    code: ReasonCode
    message: str
    axis: QuotaAxis | None = None


@dataclass(frozen=True)
class ClaimValidationResult:
    """Outcome of ClaimValidator.validate."""

    is_valid: bool
    computed_amount: Decimal
    approvable_amount: Decimal
    remaining_yearly_amount: Decimal | None = None
    remaining_lifetime_amount: Decimal | None = None
    remaining_yearly_claims: int | None = None
    remaining_lifetime_claims: int | None = None
    reasons: tuple[ValidationReason, ...] = field(default_factory=tuple)
    was_clamped: bool = False

    @property
    def messages(self) -> tuple[str, ...]:
        return tuple(r.message for r in self.reasons)

    @property
    def reason_codes(self) -> tuple[ReasonCode, ...]:
        return tuple(r.code for r in self.reasons)


def _rejected(reason: ValidationReason) -> ClaimValidationResult:
    return ClaimValidationResult(
        is_valid=False,
        computed_amount=_ZERO,
        approvable_amount=_ZERO,
        reasons=(reason,),
    )


class ClaimValidator:
    """Decides admissibility and the maximum approvable amount of a claim."""

    def __init__(
        self,
        calculator: AmountCalculator | None = None,
        resolver: EntitlementResolver | None = None,
    ):
        self._calculator = calculator or AmountCalculator()
        self._resolver = resolver or EntitlementResolver()

    @property
    def calculator(self) -> AmountCalculator:
        return self._calculator

    @property
    def resolver(self) -> EntitlementResolver:
        return self._resolver

    def validate(
        self,
        sub_type: BenefitSubType | None,
        usage: QuotaUsage | None,
        quantity: int | None = None,
        declared_amount: Decimal | None = None,
        sub_type_ref: str | None = None,
    ) -> ClaimValidationResult:
        """
        Validate a claim against a usage snapshot.

        Args:
            sub_type: The sub-type, or None if the lookup found nothing.
            usage: Current ledger snapshot (None reads as zero usage).
            quantity: Units claimed (per-unit sub-types).
            declared_amount: Caller-declared amount (variable flat-sum).
            sub_type_ref: Identifier used in the not-found message.

        Returns:
            ClaimValidationResult.  ``approvable_amount`` is zero whenever
            the claim is not valid.
        """
        if sub_type is None:
            return _rejected(
                ValidationReason(
                    ReasonCode.SUB_TYPE_NOT_FOUND,
                    f"Benefit sub-type not found: {sub_type_ref or 'unknown'}",
                )
            )
        if not sub_type.is_active:
            return _rejected(
                ValidationReason(
                    ReasonCode.SUB_TYPE_INACTIVE,
                    f"Benefit sub-type is not active: {sub_type.code}",
                )
            )

        try:
            computed = self._calculator.compute(
                sub_type, quantity=quantity, declared_amount=declared_amount
            )
        except InvalidInputError as exc:
            return _rejected(
                ValidationReason(ReasonCode.INVALID_INPUT, f"{exc.field}: {exc.reason}")
            )

        remaining = self._resolver.resolve(sub_type.limits, usage)

        reasons = [
            ValidationReason(ReasonCode.QUOTA_EXCEEDED, _AXIS_MESSAGES[axis], axis)
            for axis in remaining.blocked_axes
        ]

        ceiling = computed.amount
        amount_ceiling = remaining.amount_ceiling
        if amount_ceiling is not None:
            ceiling = min(ceiling, amount_ceiling)

        if not reasons and ceiling <= 0:
            reasons.append(
                ValidationReason(
                    ReasonCode.NO_CLAIMABLE_AMOUNT, "No claimable amount remains"
                )
            )

        is_valid = not reasons
        return ClaimValidationResult(
            is_valid=is_valid,
            computed_amount=computed.amount,
            approvable_amount=ceiling if is_valid else _ZERO,
            remaining_yearly_amount=remaining.remaining_yearly_amount,
            remaining_lifetime_amount=remaining.remaining_lifetime_amount,
            remaining_yearly_claims=remaining.remaining_yearly_claims,
            remaining_lifetime_claims=remaining.remaining_lifetime_claims,
            reasons=tuple(reasons),
            was_clamped=computed.was_clamped,
        )

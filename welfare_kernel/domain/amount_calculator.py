"""
Amount Calculator - Compute the claimable amount of a benefit claim.

Supports flat-sum, per-unit and per-incident accrual.
Pure functions with no I/O - the sub-type is provided as a parameter.

Usage:
    from welfare_kernel.domain.amount_calculator import AmountCalculator

    calculator = AmountCalculator()
    result = calculator.compute(inpatient_night, quantity=20)
    print(result.amount)          # Decimal: 5000 (clamped)
    print(result.uncapped_amount) # Decimal: 10000
    print(result.was_clamped)     # True
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from welfare_kernel.domain.benefits import AccrualMethod, BenefitSubType
from welfare_kernel.exceptions import InvalidInputError
from welfare_kernel.logging_config import get_logger

logger = get_logger("domain.amount_calculator")


@dataclass(frozen=True)
class ComputedAmount:
    """Result of an amount computation."""

    amount: Decimal
    uncapped_amount: Decimal
    was_clamped: bool = False


def _to_decimal(value, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInputError(field_name, "must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInputError(field_name, f"not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidInputError(field_name, "must be finite")
    return result


class AmountCalculator:
    """
    Computes claim amounts from a sub-type's accrual method.

    The per-request cap is applied last and silently; ``was_clamped``
    tells the caller it happened.
    """

    def compute(
        self,
        sub_type: BenefitSubType,
        quantity: int | None = None,
        declared_amount: Decimal | None = None,
    ) -> ComputedAmount:
        """
        Compute the claimable amount.

        Args:
            sub_type: The benefit sub-type being claimed.
            quantity: Units claimed. Required and positive for per-unit
                sub-types; ignored otherwise.
            declared_amount: Caller-declared amount. Honoured only for
                flat-sum sub-types that allow a variable amount.

        Returns:
            ComputedAmount with the (possibly clamped) amount.

        Raises:
            InvalidInputError: Missing or non-positive quantity for a
                per-unit sub-type, or an invalid declared amount.
        """
        method = sub_type.accrual_method

        if method is AccrualMethod.FLAT_SUM:
            amount = sub_type.base_amount
            if declared_amount is not None and sub_type.allows_variable_amount:
                declared = _to_decimal(declared_amount, "declared_amount")
                if declared <= 0:
                    raise InvalidInputError(
                        "declared_amount", f"must be positive, got {declared}"
                    )
                amount = declared
        elif method is AccrualMethod.PER_UNIT:
            if quantity is None:
                raise InvalidInputError("quantity", "required for per-unit benefits")
            if isinstance(quantity, bool) or not isinstance(quantity, int):
                raise InvalidInputError("quantity", f"must be an integer, got {quantity!r}")
            if quantity <= 0:
                raise InvalidInputError("quantity", f"must be positive, got {quantity}")
            amount = sub_type.base_amount * quantity
        else:
            amount = sub_type.base_amount

        cap = sub_type.limits.max_per_request
        if cap is not None and amount > cap:
            logger.debug(
                "amount_clamped_to_request_cap",
                extra={
                    "sub_type_code": sub_type.code,
                    "uncapped_amount": str(amount),
                    "max_per_request": str(cap),
                },
            )
            return ComputedAmount(amount=cap, uncapped_amount=amount, was_clamped=True)

        return ComputedAmount(amount=amount, uncapped_amount=amount)

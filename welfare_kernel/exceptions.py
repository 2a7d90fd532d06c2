"""
Typed exception hierarchy for the welfare kernel.

Every error has a typed class, a machine-readable ``code`` class
attribute, and carries its context as attributes rather than only in the
message string.  Callers catch by type and render ``code`` plus the
structured fields.

    WelfareKernelError (base)
    |
    +-- NotFoundError
    |   +-- SubTypeNotFoundError
    |   +-- ClaimNotFoundError
    |
    +-- InactiveResourceError
    |   +-- SubTypeInactiveError
    |
    +-- InvalidInputError
    +-- DuplicateSubTypeError
    |
    +-- QuotaError
    |   +-- QuotaExceededError
    |   +-- ExceedsRemainingQuotaError
    |
    +-- ClaimStateError
    |   +-- InvalidStateTransitionError
    |   +-- UnauthorizedTransitionError
    |
    +-- ConcurrencyError
    |   +-- ConflictError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

Category      | Code                      | When Raised
--------------|---------------------------|------------------------------------------
Lookup        | SUB_TYPE_NOT_FOUND        | Benefit sub-type id/code doesn't exist
              | CLAIM_NOT_FOUND           | Claim id doesn't exist
              | SUB_TYPE_INACTIVE         | Sub-type is disabled
Input         | INVALID_INPUT             | Missing/non-positive quantity, bad amount
              | DUPLICATE_SUB_TYPE        | Sub-type code already registered
Quota         | QUOTA_EXCEEDED            | One or more capacity axes at zero
              | EXCEEDS_REMAINING_QUOTA   | Approved amount above fresh ceiling
Lifecycle     | INVALID_STATE_TRANSITION  | Action not permitted from current state
              | UNAUTHORIZED_TRANSITION   | Actor lacks the capability for the action
Concurrency   | CONFLICT                  | Ledger write lost the race (retryable)
Immutability  | IMMUTABILITY_VIOLATION    | Mutating append-only / add-only records

ConcurrencyError is the only retryable category.  Everything else needs a
correction by the caller before trying again.
"""

from decimal import Decimal


class WelfareKernelError(Exception):
    """Base exception for all welfare kernel errors."""

    code: str = "WELFARE_KERNEL_ERROR"


# Lookup errors


class NotFoundError(WelfareKernelError):
    """Base exception for missing resources."""

    code: str = "NOT_FOUND"


class SubTypeNotFoundError(NotFoundError):
    """Benefit sub-type with the given id or code was not found."""

    code: str = "SUB_TYPE_NOT_FOUND"

    def __init__(self, sub_type_ref: str):
        self.sub_type_ref = str(sub_type_ref)
        super().__init__(f"Benefit sub-type not found: {sub_type_ref}")


class ClaimNotFoundError(NotFoundError):
    """Claim with the given id was not found."""

    code: str = "CLAIM_NOT_FOUND"

    def __init__(self, claim_id: str):
        self.claim_id = str(claim_id)
        super().__init__(f"Claim not found: {claim_id}")


class InactiveResourceError(WelfareKernelError):
    """Base exception for disabled resources."""

    code: str = "INACTIVE_RESOURCE"


class SubTypeInactiveError(InactiveResourceError):
    """Benefit sub-type exists but is not accepting claims."""

    code: str = "SUB_TYPE_INACTIVE"

    def __init__(self, sub_type_code: str):
        self.sub_type_code = sub_type_code
        super().__init__(f"Benefit sub-type is not active: {sub_type_code}")


# Input errors


class InvalidInputError(WelfareKernelError):
    """A claim or configuration input is missing or malformed."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class DuplicateSubTypeError(WelfareKernelError):
    """A sub-type with the same code is already registered."""

    code: str = "DUPLICATE_SUB_TYPE"

    def __init__(self, sub_type_code: str):
        self.sub_type_code = sub_type_code
        super().__init__(f"Benefit sub-type code already registered: {sub_type_code}")


# Quota errors


class QuotaError(WelfareKernelError):
    """Base exception for entitlement/quota failures."""

    code: str = "QUOTA_ERROR"


class QuotaExceededError(QuotaError):
    """One or more capacity axes are exhausted.

    ``reasons`` carries every blocking reason, not just the first.
    """

    code: str = "QUOTA_EXCEEDED"

    def __init__(self, member_id: str, sub_type_code: str, reasons: tuple[str, ...]):
        self.member_id = str(member_id)
        self.sub_type_code = sub_type_code
        self.reasons = tuple(reasons)
        super().__init__(
            f"Claim not admissible for member {member_id} on {sub_type_code}: "
            + "; ".join(self.reasons)
        )


class ExceedsRemainingQuotaError(QuotaError):
    """Approver-chosen amount exceeds the freshly recomputed ceiling."""

    code: str = "EXCEEDS_REMAINING_QUOTA"

    def __init__(
        self,
        claim_id: str,
        requested_amount: Decimal,
        approvable_amount: Decimal,
        reasons: tuple[str, ...] = (),
    ):
        self.claim_id = str(claim_id)
        self.requested_amount = requested_amount
        self.approvable_amount = approvable_amount
        self.reasons = tuple(reasons)
        message = (
            f"Claim {claim_id}: amount {requested_amount} exceeds remaining "
            f"approvable amount {approvable_amount}"
        )
        if self.reasons:
            message += " (" + "; ".join(self.reasons) + ")"
        super().__init__(message)


# Lifecycle errors


class ClaimStateError(WelfareKernelError):
    """Base exception for claim lifecycle errors."""

    code: str = "CLAIM_STATE_ERROR"


class InvalidStateTransitionError(ClaimStateError):
    """The requested action is not permitted from the claim's current state."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, claim_id: str, current_state: str, action: str):
        self.claim_id = str(claim_id)
        self.current_state = current_state
        self.action = action
        super().__init__(
            f"Claim {claim_id}: cannot {action} from state {current_state}"
        )


class UnauthorizedTransitionError(ClaimStateError):
    """The acting reviewer lacks the capability required for the action."""

    code: str = "UNAUTHORIZED_TRANSITION"

    def __init__(self, actor_id: str, action: str, required: tuple[str, ...]):
        self.actor_id = str(actor_id)
        self.action = action
        self.required = tuple(required)
        super().__init__(
            f"Actor {actor_id} may not {action}; requires one of: "
            + ", ".join(self.required)
        )


# Concurrency errors


class ConcurrencyError(WelfareKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConflictError(ConcurrencyError):
    """A concurrent writer won the race; the operation may be retried."""

    code: str = "CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, attempts: int):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id} "
            f"persisted after {attempts} attempt(s)"
        )


# Immutability errors


class ImmutabilityError(WelfareKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only or add-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is immutable: {reason}")

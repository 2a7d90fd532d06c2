"""
FinalApprovalService -- FRONT_LINE_APPROVED -> FINAL_APPROVED, with the
quota ledger write.

Responsibility:
    The single read-validate-write operation that mutates quota usage.
    In one transaction it locks the claim, locks (or lazily creates) the
    member's quota rows, re-runs ClaimValidator against the fresh usage,
    writes the ledger increment, moves the claim to FINAL_APPROVED,
    appends the ApprovalEvent and commits.

Architecture position:
    Kernel > Services.  Owns its transaction boundary.  Takes a session
    factory rather than a session so that every attempt starts with a
    clean session and a fresh snapshot.

Invariants enforced:
    - The ledger is incremented exactly once per approved claim: the
      claim's state check and the increment commit together.
    - The approved amount is > 0, <= the claim's requested amount and
      <= the approvable amount recomputed under lock.
    - Writers on the same (member, sub-type) serialise on its lifetime
      row, whichever fiscal year their claims belong to; writers on
      different (member, sub-type) pairs never block each other.
    - Lifetime caps are checked against usage from every fiscal year.

Retry contract:
    - Lost races (StaleDataError, IntegrityError on lazy row creation,
      OperationalError from a lock timeout) roll back and retry from
      scratch, up to ``max_attempts`` (default 3).
    - A retry that finds the fresh ceiling too low raises
      ExceedsRemainingQuotaError.  Exhausting the attempts raises
      ConflictError.
    - Business errors (not found, invalid state, unauthorized) are never
      retried.
"""

import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from welfare_kernel.domain.claim_lifecycle import (
    ClaimAction,
    ClaimRecord,
    ClaimState,
    ClaimStateMachine,
    ClaimTransitionEvent,
    ReviewerActor,
)
from welfare_kernel.domain.claim_validator import ClaimValidationResult, ClaimValidator
from welfare_kernel.domain.clock import Clock, SystemClock
from welfare_kernel.domain.ledger import LedgerKey, QuotaUsage
from welfare_kernel.exceptions import (
    ClaimNotFoundError,
    ConflictError,
    ExceedsRemainingQuotaError,
    InvalidInputError,
    SubTypeInactiveError,
    SubTypeNotFoundError,
    WelfareKernelError,
)
from welfare_kernel.logging_config import LogContext, get_logger
from welfare_kernel.models.claim import ClaimRequestModel
from welfare_kernel.selectors.benefit_selector import BenefitSelector
from welfare_kernel.services.quota_ledger_writer import QuotaLedgerWriter
from welfare_kernel.services.transition_publisher import TransitionPublisher

logger = get_logger("services.final_approval")

_RETRYABLE = (StaleDataError, IntegrityError, OperationalError)


@dataclass(frozen=True)
class FinalApprovalResult:
    """Outcome of a committed final approval."""

    claim: ClaimRecord
    approved_amount: Decimal
    usage: QuotaUsage
    validation: ClaimValidationResult
    attempts: int


class FinalApprovalService:
    """
    Final approval with the quota ledger write.

    Usage:
        service = FinalApprovalService(get_session_factory(), clock)
        result = service.final_approve(claim_id, final_approver)
        print(result.approved_amount, result.usage.used_amount_year)
    """

    DEFAULT_MAX_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        validator: ClaimValidator | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        publisher: TransitionPublisher | None = None,
    ):
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._validator = validator or ClaimValidator()
        self._max_attempts = max_attempts
        self._publisher = publisher or TransitionPublisher.with_logging()
        self._state_machine = ClaimStateMachine()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def final_approve(
        self,
        claim_id: UUID,
        actor: ReviewerActor,
        approved_amount: Decimal | None = None,
        comment: str | None = None,
    ) -> FinalApprovalResult:
        """
        Approve a front-line-approved claim and charge the quota ledger.

        Args:
            claim_id: The claim to approve.
            actor: Reviewer holding FINAL or PRIMARY.
            approved_amount: Amount to approve.  Defaults to the freshly
                recomputed approvable amount, capped by the requested
                amount.
            comment: Optional comment recorded on the event.

        Returns:
            FinalApprovalResult for the committed transition.

        Raises:
            ClaimNotFoundError, SubTypeNotFoundError, SubTypeInactiveError,
            InvalidStateTransitionError, UnauthorizedTransitionError:
                Not retried.
            InvalidInputError: ``approved_amount`` is not a positive number.
            ExceedsRemainingQuotaError: The amount does not fit the ceiling
                recomputed under lock.
            ConflictError: Lost the race ``max_attempts`` times.
        """
        if approved_amount is not None:
            approved_amount = _positive_amount(approved_amount)

        with LogContext.bind(
            correlation_id=str(uuid4()),
            claim_id=str(claim_id),
            actor_id=str(actor.actor_id),
        ):
            logger.info(
                "final_approval_started",
                extra={
                    "approved_amount": (
                        str(approved_amount) if approved_amount is not None else None
                    ),
                    "max_attempts": self._max_attempts,
                },
            )
            t0 = time.monotonic()
            last_error: Exception | None = None

            for attempt in range(1, self._max_attempts + 1):
                session = self._session_factory()
                try:
                    result, transition = self._attempt(
                        session, claim_id, actor, approved_amount, comment, attempt
                    )
                    session.commit()
                except _RETRYABLE as exc:
                    session.rollback()
                    last_error = exc
                    logger.warning(
                        "final_approval_conflict_retry",
                        extra={
                            "attempt": attempt,
                            "max_attempts": self._max_attempts,
                            "error": type(exc).__name__,
                        },
                    )
                    continue
                except WelfareKernelError:
                    session.rollback()
                    logger.warning(
                        "final_approval_rejected",
                        extra={"attempt": attempt},
                        exc_info=True,
                    )
                    raise
                except Exception:
                    session.rollback()
                    logger.error(
                        "final_approval_failed",
                        extra={"attempt": attempt},
                        exc_info=True,
                    )
                    raise
                finally:
                    session.close()

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    "final_approval_completed",
                    extra={
                        "approved_amount": str(result.approved_amount),
                        "attempts": attempt,
                        "duration_ms": duration_ms,
                    },
                )
                self._publisher.publish(transition)
                return result

            logger.error(
                "final_approval_conflict_exhausted",
                extra={"attempts": self._max_attempts},
            )
            raise ConflictError(
                "ClaimRequest", str(claim_id), self._max_attempts
            ) from last_error

    def _attempt(
        self,
        session: Session,
        claim_id: UUID,
        actor: ReviewerActor,
        approved_amount: Decimal | None,
        comment: str | None,
        attempt: int,
    ) -> tuple[FinalApprovalResult, ClaimTransitionEvent]:
        claim = session.get(
            ClaimRequestModel,
            claim_id,
            with_for_update=True,
            populate_existing=True,
        )
        if claim is None:
            raise ClaimNotFoundError(str(claim_id))

        current = ClaimState(claim.state)
        plan = self._state_machine.plan(claim.id, current, ClaimAction.FINAL_APPROVE, actor)

        sub_type = BenefitSelector(session).find(claim.sub_type_id)
        if sub_type is None:
            raise SubTypeNotFoundError(str(claim.sub_type_id))
        if not sub_type.is_active:
            raise SubTypeInactiveError(sub_type.code)

        writer = QuotaLedgerWriter(session, self._clock)
        locked = writer.lock_usage(
            LedgerKey(claim.member_id, claim.sub_type_id, claim.fiscal_year)
        )

        validation = self._validator.validate(
            sub_type,
            locked.usage,
            quantity=claim.quantity,
            declared_amount=claim.requested_amount,
        )
        chosen = approved_amount
        if not validation.is_valid:
            raise ExceedsRemainingQuotaError(
                str(claim.id),
                chosen if chosen is not None else claim.requested_amount,
                validation.approvable_amount,
                validation.messages,
            )

        approvable = min(validation.approvable_amount, claim.requested_amount)
        if chosen is None:
            chosen = approvable
        if chosen > approvable:
            raise ExceedsRemainingQuotaError(str(claim.id), chosen, approvable)

        usage = writer.apply_increment(locked, chosen)

        now = self._clock.now()
        claim.state = plan.to_state.value
        claim.approved_amount = chosen
        claim.updated_at = now
        claim.record_event(
            action=ClaimAction.FINAL_APPROVE.value,
            from_state=current.value,
            to_state=plan.to_state.value,
            actor_id=actor.actor_id,
            actor_capability=plan.actor_capability.value if plan.actor_capability else None,
            comment=comment,
            approved_amount=chosen,
            occurred_at=now,
        )
        session.flush()

        logger.info(
            "claim_final_approved",
            extra={
                "attempt": attempt,
                "approved_amount": str(chosen),
                "approvable_amount": str(approvable),
                "fiscal_year": claim.fiscal_year,
            },
        )

        record = claim.to_dto()
        transition = ClaimTransitionEvent(
            claim_id=claim.id,
            member_id=claim.member_id,
            action=ClaimAction.FINAL_APPROVE,
            old_state=current,
            new_state=plan.to_state,
            actor_id=actor.actor_id,
            occurred_at=now,
            approved_amount=chosen,
        )
        result = FinalApprovalResult(
            claim=record,
            approved_amount=chosen,
            usage=usage,
            validation=validation,
            attempts=attempt,
        )
        return result, transition


def _positive_amount(value) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInputError("approved_amount", "must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidInputError("approved_amount", f"not a number: {value!r}") from exc
    if not amount.is_finite() or amount <= 0:
        raise InvalidInputError("approved_amount", f"must be positive, got {value}")
    return amount

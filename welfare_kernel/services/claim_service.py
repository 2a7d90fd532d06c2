"""
ClaimService -- claim submission and the non-ledger lifecycle transitions.

Responsibility:
    Advisory validation, submission, begin-review, front-line approval,
    rejection, completion and comments.  None of these touch the quota
    ledger; final approval lives in FinalApprovalService.

Architecture position:
    Kernel > Services.  Defines its own transaction boundary: each write
    operation commits on success and rolls back on failure when
    ``auto_commit`` is True (the default).  With ``auto_commit=False`` the
    caller commits and then calls ``publish_pending()``.

Invariants enforced:
    - Claims move only along CLAIM_TRANSITIONS; invalid actions raise
      InvalidStateTransitionError and change nothing.
    - Every transition appends exactly one ApprovalEvent.
    - Completing an already completed claim is a no-op: no event, no
      notification.
    - Transition notifications go out after commit.

Failure modes:
    - SubTypeNotFoundError / SubTypeInactiveError / InvalidInputError /
      QuotaExceededError at submission.
    - ClaimNotFoundError, InvalidStateTransitionError,
      UnauthorizedTransitionError on transitions.
    - ConflictError when a concurrent writer changed the claim first.
"""

import time
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
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
from welfare_kernel.domain.fiscal_year import FiscalYearCalculator, StartMonthFiscalYear
from welfare_kernel.exceptions import (
    ClaimNotFoundError,
    ConflictError,
    InvalidInputError,
    QuotaExceededError,
    SubTypeInactiveError,
    SubTypeNotFoundError,
    WelfareKernelError,
)
from welfare_kernel.logging_config import LogContext, get_logger
from welfare_kernel.models.claim import ClaimRequestModel
from welfare_kernel.selectors.benefit_selector import BenefitSelector
from welfare_kernel.selectors.quota_selector import QuotaSelector
from welfare_kernel.services.base import BaseService
from welfare_kernel.services.transition_publisher import TransitionPublisher

logger = get_logger("services.claim")


class ClaimService(BaseService[ClaimRequestModel]):
    """
    Claim submission and review workflow.

    Usage:
        service = ClaimService(session, clock, StartMonthFiscalYear())
        claim = service.submit_claim(member_id, sub_type_id, quantity=3)
        service.begin_review(claim.claim_id, front_line_reviewer)
        service.front_line_approve(claim.claim_id, front_line_reviewer)
        # then FinalApprovalService.final_approve(...)
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        fiscal_years: FiscalYearCalculator | None = None,
        validator: ClaimValidator | None = None,
        publisher: TransitionPublisher | None = None,
        auto_commit: bool = True,
    ):
        """
        Args:
            session: SQLAlchemy session.
            clock: Clock for timestamps and fiscal-year bucketing.
                Defaults to SystemClock.
            fiscal_years: Fiscal-year calculator. Defaults to a July start.
            validator: Claim validator. Defaults to the standard one.
            publisher: Transition subscribers. Defaults to the logging
                subscriber only.
            auto_commit: If True (default), write operations commit on
                success and roll back on failure.
        """
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._fiscal_years = fiscal_years or StartMonthFiscalYear()
        self._validator = validator or ClaimValidator()
        self._publisher = publisher or TransitionPublisher.with_logging()
        self._auto_commit = auto_commit
        self._state_machine = ClaimStateMachine()
        self._pending: list[ClaimTransitionEvent] = []

    # ------------------------------------------------------------------
    # Validation and submission
    # ------------------------------------------------------------------

    def validate_claim(
        self,
        member_id: UUID,
        sub_type_id: UUID,
        quantity: int | None = None,
        declared_amount: Decimal | None = None,
    ) -> ClaimValidationResult:
        """
        Advisory admissibility check for today's fiscal year.

        Never raises for business reasons and never writes.
        """
        fiscal_year = self._fiscal_years.fiscal_year_for(self._clock.today())
        sub_type = BenefitSelector(self.session).find(sub_type_id)
        usage = None
        if sub_type is not None:
            usage = QuotaSelector(self.session).get_usage(
                member_id, sub_type.sub_type_id, fiscal_year
            )
        return self._validator.validate(
            sub_type,
            usage,
            quantity=quantity,
            declared_amount=declared_amount,
            sub_type_ref=str(sub_type_id),
        )

    def submit_claim(
        self,
        member_id: UUID,
        sub_type_id: UUID,
        quantity: int | None = None,
        declared_amount: Decimal | None = None,
        description: str | None = None,
    ) -> ClaimRecord:
        """
        Submit a new claim in state PENDING.

        The requested amount is the computed amount, already clamped to
        the sub-type's per-request cap.  The fiscal year is fixed here.

        Raises:
            SubTypeNotFoundError: Unknown sub-type.
            SubTypeInactiveError: Sub-type is deactivated.
            InvalidInputError: Bad quantity or declared amount.
            QuotaExceededError: Any quota axis blocks the claim; carries
                every reason.
        """
        with LogContext.bind(correlation_id=str(uuid4()), member_id=str(member_id)):
            return self._run(
                "submit",
                lambda: self._do_submit(
                    member_id, sub_type_id, quantity, declared_amount, description
                ),
            )

    def _do_submit(
        self,
        member_id: UUID,
        sub_type_id: UUID,
        quantity: int | None,
        declared_amount: Decimal | None,
        description: str | None,
    ) -> tuple[ClaimRecord, ClaimTransitionEvent]:
        sub_type = BenefitSelector(self.session).find(sub_type_id)
        if sub_type is None:
            raise SubTypeNotFoundError(str(sub_type_id))
        if not sub_type.is_active:
            raise SubTypeInactiveError(sub_type.code)

        # Raises InvalidInputError directly instead of folding it into reasons.
        self._validator.calculator.compute(
            sub_type, quantity=quantity, declared_amount=declared_amount
        )

        now = self._clock.now()
        fiscal_year = self._fiscal_years.fiscal_year_for(now.date())
        usage = QuotaSelector(self.session).get_usage(
            member_id, sub_type.sub_type_id, fiscal_year
        )
        result = self._validator.validate(
            sub_type, usage, quantity=quantity, declared_amount=declared_amount
        )
        if not result.is_valid:
            raise QuotaExceededError(str(member_id), sub_type.code, result.messages)

        claim = ClaimRequestModel(
            id=uuid4(),
            member_id=member_id,
            sub_type_id=sub_type.sub_type_id,
            fiscal_year=fiscal_year,
            state=ClaimState.PENDING.value,
            requested_amount=result.computed_amount,
            quantity=quantity,
            description=description,
            submitted_at=now,
            updated_at=now,
        )
        claim.record_event(
            action=ClaimAction.SUBMIT.value,
            from_state=None,
            to_state=ClaimState.PENDING.value,
            actor_id=member_id,
            occurred_at=now,
            comment=description,
        )
        self.session.add(claim)
        self.session.flush()

        logger.info(
            "claim_submitted",
            extra={
                "claim_id": str(claim.id),
                "sub_type_code": sub_type.code,
                "fiscal_year": fiscal_year,
                "requested_amount": str(result.computed_amount),
                "was_clamped": result.was_clamped,
            },
        )

        transition = ClaimTransitionEvent(
            claim_id=claim.id,
            member_id=member_id,
            action=ClaimAction.SUBMIT,
            old_state=None,
            new_state=ClaimState.PENDING,
            actor_id=member_id,
            occurred_at=now,
        )
        return claim.to_dto(), transition

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def begin_review(self, claim_id: UUID, actor: ReviewerActor) -> ClaimRecord:
        """PENDING -> IN_REVIEW."""
        return self._transition(claim_id, ClaimAction.BEGIN_REVIEW, actor)

    def front_line_approve(
        self,
        claim_id: UUID,
        actor: ReviewerActor,
        comment: str | None = None,
    ) -> ClaimRecord:
        """PENDING | IN_REVIEW -> FRONT_LINE_APPROVED."""
        return self._transition(
            claim_id, ClaimAction.FRONT_LINE_APPROVE, actor, comment=comment
        )

    def reject(self, claim_id: UUID, actor: ReviewerActor, reason: str) -> ClaimRecord:
        """
        Reject an open claim.

        Raises:
            InvalidInputError: If ``reason`` is blank.
        """
        if reason is None or not reason.strip():
            raise InvalidInputError("reason", "rejection reason is required")
        return self._transition(claim_id, ClaimAction.REJECT, actor, comment=reason.strip())

    def complete(
        self,
        claim_id: UUID,
        actor: ReviewerActor,
        comment: str | None = None,
    ) -> ClaimRecord:
        """FINAL_APPROVED -> COMPLETED.  A no-op on an already completed claim."""
        return self._transition(claim_id, ClaimAction.COMPLETE, actor, comment=comment)

    def add_comment(self, claim_id: UUID, actor: ReviewerActor, comment: str) -> ClaimRecord:
        """
        Append a COMMENT event without changing state.  Allowed in any state.

        Raises:
            InvalidInputError: If ``comment`` is blank.
        """
        if comment is None or not comment.strip():
            raise InvalidInputError("comment", "comment cannot be blank")
        return self._transition(claim_id, ClaimAction.COMMENT, actor, comment=comment.strip())

    def _transition(
        self,
        claim_id: UUID,
        action: ClaimAction,
        actor: ReviewerActor,
        comment: str | None = None,
    ) -> ClaimRecord:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            claim_id=str(claim_id),
            actor_id=str(actor.actor_id),
        ):
            return self._run(
                action.value,
                lambda: self._do_transition(claim_id, action, actor, comment),
                claim_id=claim_id,
            )

    def _do_transition(
        self,
        claim_id: UUID,
        action: ClaimAction,
        actor: ReviewerActor,
        comment: str | None,
    ) -> tuple[ClaimRecord, ClaimTransitionEvent | None]:
        claim = self.session.get(ClaimRequestModel, claim_id, populate_existing=True)
        if claim is None:
            raise ClaimNotFoundError(str(claim_id))

        current = ClaimState(claim.state)
        plan = self._state_machine.plan(claim.id, current, action, actor)

        if plan.is_noop:
            logger.info(
                "claim_transition_noop",
                extra={"action": action.value, "state": current.value},
            )
            return claim.to_dto(), None

        now = self._clock.now()
        if plan.to_state is not current:
            claim.state = plan.to_state.value
            claim.updated_at = now
            if action is ClaimAction.REJECT:
                claim.rejection_reason = comment

        claim.record_event(
            action=action.value,
            from_state=current.value,
            to_state=plan.to_state.value,
            actor_id=actor.actor_id,
            actor_capability=plan.actor_capability.value if plan.actor_capability else None,
            comment=comment,
            occurred_at=now,
        )
        self.session.flush()

        transition = ClaimTransitionEvent(
            claim_id=claim.id,
            member_id=claim.member_id,
            action=action,
            old_state=current,
            new_state=plan.to_state,
            actor_id=actor.actor_id,
            occurred_at=now,
        )
        return claim.to_dto(), transition

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    def _run(self, operation: str, work, claim_id: UUID | None = None) -> ClaimRecord:
        logger.info("claim_operation_started", extra={"operation": operation})
        t0 = time.monotonic()
        try:
            record, transition = work()
            if self._auto_commit:
                self.session.commit()
        except (StaleDataError, IntegrityError) as exc:
            if self._auto_commit:
                self.session.rollback()
            logger.warning(
                "claim_operation_conflict",
                extra={"operation": operation, "error": type(exc).__name__},
            )
            raise ConflictError(
                "ClaimRequest", str(claim_id) if claim_id else "new", 1
            ) from exc
        except WelfareKernelError:
            if self._auto_commit:
                self.session.rollback()
            logger.warning(
                "claim_operation_rejected",
                extra={"operation": operation},
                exc_info=True,
            )
            raise
        except Exception:
            if self._auto_commit:
                self.session.rollback()
            logger.error(
                "claim_operation_failed",
                extra={"operation": operation},
                exc_info=True,
            )
            raise

        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        logger.info(
            "claim_operation_completed",
            extra={
                "operation": operation,
                "claim_id": str(record.claim_id),
                "state": record.state.value,
                "duration_ms": duration_ms,
            },
        )

        if transition is not None:
            if self._auto_commit:
                self._publisher.publish(transition)
            else:
                self._pending.append(transition)
        return record

    def publish_pending(self) -> None:
        """Deliver notifications held back while ``auto_commit`` is off.

        Call after the caller's commit.
        """
        pending, self._pending = self._pending, []
        for transition in pending:
            self._publisher.publish(transition)

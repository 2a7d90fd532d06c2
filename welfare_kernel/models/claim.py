"""
Module: welfare_kernel.models.claim
Responsibility: ORM persistence for claim requests and their approval
    event log.

Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only; domain types are imported lazily in to_dto().

Invariants enforced:
    - state is one of the six lifecycle values (check constraint); the
      service layer enforces the transition table.
    - A claim in a terminal state (rejected, completed) cannot be updated.
    - approved_amount never exceeds requested_amount.
    - Claims are never deleted.
    - Approval events are append-only: UNIQUE(claim_id, sequence), no
      UPDATE, no DELETE.
    - version is the optimistic-concurrency counter on the claim row.

Failure modes:
    - IntegrityError on duplicate event sequence.
    - StaleDataError on concurrent claim update.
    - ImmutabilityViolationError on terminal-claim UPDATE, claim DELETE,
      or event UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapped, mapped_column, relationship

from welfare_kernel.db.base import Base, UUIDString
from welfare_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from welfare_kernel.domain.claim_lifecycle import ApprovalEvent, ClaimRecord

_TERMINAL_STATES = frozenset({"rejected", "completed"})


class ClaimRequestModel(Base):
    """Persistent claim request.

    Contract:
        Mutated only through ClaimService / FinalApprovalService
        transitions.  Terminal claims are frozen.
    """

    __tablename__ = "claim_requests"

    __table_args__ = (
        CheckConstraint(
            "state IN ('pending', 'in_review', 'front_line_approved', "
            "'final_approved', 'rejected', 'completed')",
            name="ck_claim_requests_valid_state",
        ),
        CheckConstraint(
            "requested_amount >= 0", name="ck_claim_requests_requested_amount",
        ),
        CheckConstraint(
            "approved_amount IS NULL OR "
            "(approved_amount > 0 AND approved_amount <= requested_amount)",
            name="ck_claim_requests_approved_amount",
        ),
        Index("ix_claim_requests_member_fy", "member_id", "fiscal_year"),
        Index("ix_claim_requests_state", "state", "submitted_at"),
    )

    member_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    sub_type_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("benefit_sub_types.id"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(nullable=False)
    state: Mapped[str] = mapped_column(String(30), nullable=False, default="pending")

    requested_amount: Mapped[Decimal] = mapped_column(nullable=False)
    quantity: Mapped[int | None] = mapped_column(nullable=True)
    approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    events: Mapped[list["ApprovalEventModel"]] = relationship(
        "ApprovalEventModel",
        back_populates="claim",
        order_by="ApprovalEventModel.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<ClaimRequest {self.id} member={self.member_id} state={self.state}>"

    @property
    def next_sequence(self) -> int:
        return (self.events[-1].sequence + 1) if self.events else 1

    def record_event(
        self,
        *,
        action: str,
        from_state: str | None,
        to_state: str,
        actor_id: UUID,
        occurred_at: datetime,
        actor_capability: str | None = None,
        comment: str | None = None,
        approved_amount: Decimal | None = None,
    ) -> ApprovalEventModel:
        """Append the next event to this claim's log."""
        approval_event = ApprovalEventModel(
            sequence=self.next_sequence,
            action=action,
            from_state=from_state,
            to_state=to_state,
            actor_id=actor_id,
            actor_capability=actor_capability,
            comment=comment,
            approved_amount=approved_amount,
            occurred_at=occurred_at,
        )
        self.events.append(approval_event)
        return approval_event

    def to_dto(self) -> ClaimRecord:
        """Convert ORM model to frozen domain DTO."""
        from welfare_kernel.domain.claim_lifecycle import ClaimRecord, ClaimState

        return ClaimRecord(
            claim_id=self.id,
            member_id=self.member_id,
            sub_type_id=self.sub_type_id,
            fiscal_year=self.fiscal_year,
            state=ClaimState(self.state),
            requested_amount=self.requested_amount,
            submitted_at=self.submitted_at,
            quantity=self.quantity,
            approved_amount=self.approved_amount,
            description=self.description,
            rejection_reason=self.rejection_reason,
            events=tuple(e.to_dto() for e in self.events),
            version=self.version,
        )


class ApprovalEventModel(Base):
    """Persistent approval event. Append-only.

    Contract:
        Events are immutable once created -- no UPDATE, no DELETE.
    """

    __tablename__ = "claim_approval_events"

    __table_args__ = (
        UniqueConstraint(
            "claim_id", "sequence",
            name="uq_claim_approval_events_sequence",
        ),
        Index("ix_claim_approval_events_actor", "actor_id", "occurred_at"),
    )

    claim_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("claim_requests.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    from_state: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_state: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_capability: Mapped[str | None] = mapped_column(String(20), nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    claim: Mapped["ClaimRequestModel"] = relationship(
        "ClaimRequestModel",
        back_populates="events",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalEvent claim={self.claim_id} #{self.sequence} "
            f"{self.action} {self.from_state}->{self.to_state}>"
        )

    def to_dto(self) -> ApprovalEvent:
        """Convert ORM model to frozen domain DTO."""
        from welfare_kernel.domain.claim_lifecycle import (
            ApprovalEvent,
            ClaimAction,
            ClaimState,
            ReviewerCapability,
        )

        return ApprovalEvent(
            event_id=self.id,
            claim_id=self.claim_id,
            sequence=self.sequence,
            action=ClaimAction(self.action),
            from_state=ClaimState(self.from_state) if self.from_state else None,
            to_state=ClaimState(self.to_state),
            actor_id=self.actor_id,
            actor_capability=(
                ReviewerCapability(self.actor_capability)
                if self.actor_capability
                else None
            ),
            comment=self.comment,
            approved_amount=self.approved_amount,
            occurred_at=self.occurred_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ClaimRequestModel, "before_update")
def prevent_terminal_claim_update(mapper, connection, target):
    """Refuse column changes to a claim whose committed state is terminal."""
    state = sa_inspect(target)
    state_history = state.attrs.state.history
    previous = state_history.deleted[0] if state_history.deleted else target.state
    if previous not in _TERMINAL_STATES:
        return

    changed = [
        attr.key
        for attr in mapper.column_attrs
        if state.attrs[attr.key].history.has_changes()
    ]
    if changed:
        raise ImmutabilityViolationError(
            entity_type="ClaimRequest",
            entity_id=str(target.id),
            reason=f"claim is {previous}; cannot modify {', '.join(sorted(changed))}",
        )


@event.listens_for(ClaimRequestModel, "before_delete")
def prevent_claim_delete(mapper, connection, target):
    """Prevent deletion of claim requests."""
    raise ImmutabilityViolationError(
        entity_type="ClaimRequest",
        entity_id=str(target.id),
        reason="Claims are never deleted",
    )


@event.listens_for(ApprovalEventModel, "before_update")
def prevent_event_update(mapper, connection, target):
    """Prevent updates to approval event records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalEvent",
        entity_id=str(target.id),
        reason="Approval events are immutable -- cannot modify",
    )


@event.listens_for(ApprovalEventModel, "before_delete")
def prevent_event_delete(mapper, connection, target):
    """Prevent deletion of approval event records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalEvent",
        entity_id=str(target.id),
        reason="Approval events are immutable -- cannot delete",
    )

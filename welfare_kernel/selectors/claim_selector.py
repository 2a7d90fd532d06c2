"""
Module: welfare_kernel.selectors.claim_selector
Responsibility: Read-only claim queries: a claim with its event log, a
    member's claims, and review queues by state.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from welfare_kernel.domain.claim_lifecycle import ClaimRecord, ClaimState
from welfare_kernel.exceptions import ClaimNotFoundError
from welfare_kernel.models.claim import ClaimRequestModel
from welfare_kernel.selectors.base import BaseSelector

# Claims are written by other sessions (FinalApprovalService); always reload.
_FRESH = {"populate_existing": True}


class ClaimSelector(BaseSelector[ClaimRequestModel]):
    """Claim reads.  Every result carries its ordered event log."""

    def find(self, claim_id: UUID) -> ClaimRecord | None:
        model = self.session.get(ClaimRequestModel, claim_id, populate_existing=True)
        return model.to_dto() if model is not None else None

    def get(self, claim_id: UUID) -> ClaimRecord:
        """
        Get a claim by id.

        Raises:
            ClaimNotFoundError: If no claim has this id.
        """
        claim = self.find(claim_id)
        if claim is None:
            raise ClaimNotFoundError(str(claim_id))
        return claim

    def list_for_member(
        self,
        member_id: UUID,
        fiscal_year: int | None = None,
        state: ClaimState | None = None,
    ) -> list[ClaimRecord]:
        """A member's claims, oldest first."""
        query = select(ClaimRequestModel).where(ClaimRequestModel.member_id == member_id)
        if fiscal_year is not None:
            query = query.where(ClaimRequestModel.fiscal_year == fiscal_year)
        if state is not None:
            query = query.where(ClaimRequestModel.state == state.value)
        query = query.order_by(ClaimRequestModel.submitted_at, ClaimRequestModel.id)
        rows = self.session.execute(query, execution_options=_FRESH).scalars()
        return [m.to_dto() for m in rows]

    def list_by_state(self, state: ClaimState, limit: int | None = None) -> list[ClaimRecord]:
        """Review queue: claims in ``state``, oldest submission first."""
        query = (
            select(ClaimRequestModel)
            .where(ClaimRequestModel.state == state.value)
            .order_by(ClaimRequestModel.submitted_at, ClaimRequestModel.id)
        )
        if limit is not None:
            query = query.limit(limit)
        rows = self.session.execute(query, execution_options=_FRESH).scalars()
        return [m.to_dto() for m in rows]

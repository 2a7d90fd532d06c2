"""
BenefitCatalogService -- maintenance of benefit sub-type configuration.

Responsibility:
    Register, update, activate and deactivate sub-types, and upsert a
    whole catalog (typically parsed from YAML by ``welfare_config``).

Architecture position:
    Kernel > Services.  Flushes, never commits; the caller owns the
    transaction.

Failure modes:
    - DuplicateSubTypeError when registering a code that already exists.
    - SubTypeNotFoundError when updating or toggling an unknown sub-type.
"""

from dataclasses import dataclass, replace
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from welfare_kernel.domain.benefits import BenefitSubType
from welfare_kernel.exceptions import DuplicateSubTypeError, SubTypeNotFoundError
from welfare_kernel.logging_config import get_logger
from welfare_kernel.models.benefit_sub_type import BenefitSubTypeModel
from welfare_kernel.services.base import BaseService

logger = get_logger("services.benefit_catalog")


@dataclass(frozen=True)
class CatalogSyncResult:
    """Codes touched by sync_from_catalog."""

    created: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()


class BenefitCatalogService(BaseService[BenefitSubTypeModel]):
    """Writes to the benefit sub-type catalog."""

    def __init__(self, session: Session):
        super().__init__(session)

    def _by_code(self, code: str) -> BenefitSubTypeModel | None:
        return self.session.execute(
            select(BenefitSubTypeModel).where(BenefitSubTypeModel.code == code)
        ).scalar_one_or_none()

    def _require(self, sub_type_id: UUID) -> BenefitSubTypeModel:
        model = self.session.get(BenefitSubTypeModel, sub_type_id)
        if model is None:
            raise SubTypeNotFoundError(str(sub_type_id))
        return model

    def register(self, sub_type: BenefitSubType, actor_id: UUID) -> BenefitSubType:
        """
        Add a new sub-type.

        Raises:
            DuplicateSubTypeError: If the code is already registered.
        """
        if self._by_code(sub_type.code) is not None:
            raise DuplicateSubTypeError(sub_type.code)

        model = BenefitSubTypeModel.from_dto(sub_type, created_by_id=actor_id)
        self.session.add(model)
        self.session.flush()

        logger.info(
            "benefit_sub_type_registered",
            extra={
                "sub_type_id": str(model.id),
                "sub_type_code": model.code,
                "accrual_method": model.accrual_method,
            },
        )
        return model.to_dto()

    def update(self, sub_type: BenefitSubType, actor_id: UUID) -> BenefitSubType:
        """
        Replace the configurable fields of an existing sub-type.

        The code is the stable business key and cannot be changed here.

        Raises:
            SubTypeNotFoundError: If ``sub_type.sub_type_id`` is unknown.
        """
        model = self._require(sub_type.sub_type_id)
        if model.code != sub_type.code:
            sub_type = replace(sub_type, code=model.code)
        model.apply(sub_type)
        model.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "benefit_sub_type_updated",
            extra={"sub_type_id": str(model.id), "sub_type_code": model.code},
        )
        return model.to_dto()

    def activate(self, sub_type_id: UUID, actor_id: UUID) -> BenefitSubType:
        return self._set_active(sub_type_id, actor_id, True)

    def deactivate(self, sub_type_id: UUID, actor_id: UUID) -> BenefitSubType:
        """Stop accepting new claims for a sub-type.  Existing claims are untouched."""
        return self._set_active(sub_type_id, actor_id, False)

    def _set_active(self, sub_type_id: UUID, actor_id: UUID, active: bool) -> BenefitSubType:
        model = self._require(sub_type_id)
        if model.is_active != active:
            model.is_active = active
            model.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "benefit_sub_type_activated" if active else "benefit_sub_type_deactivated",
                extra={"sub_type_id": str(model.id), "sub_type_code": model.code},
            )
        return model.to_dto()

    def sync_from_catalog(
        self,
        sub_types: Iterable[BenefitSubType],
        actor_id: UUID,
    ) -> CatalogSyncResult:
        """
        Upsert sub-types by code.

        Existing rows keep their id; new rows take the id of the incoming
        sub-type.  Sub-types missing from ``sub_types`` are left as they are.
        """
        created: list[str] = []
        updated: list[str] = []
        unchanged: list[str] = []

        for sub_type in sub_types:
            model = self._by_code(sub_type.code)
            if model is None:
                self.session.add(BenefitSubTypeModel.from_dto(sub_type, created_by_id=actor_id))
                created.append(sub_type.code)
                continue

            desired = replace(sub_type, sub_type_id=model.id)
            if model.to_dto() == desired:
                unchanged.append(sub_type.code)
                continue
            model.apply(desired)
            model.updated_by_id = actor_id
            updated.append(sub_type.code)

        self.session.flush()

        logger.info(
            "benefit_catalog_synced",
            extra={
                "created_count": len(created),
                "updated_count": len(updated),
                "unchanged_count": len(unchanged),
            },
        )
        return CatalogSyncResult(
            created=tuple(created),
            updated=tuple(updated),
            unchanged=tuple(unchanged),
        )

"""
Module: welfare_kernel.selectors.benefit_selector
Responsibility: Read-only lookups of benefit sub-type configuration.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import select

from welfare_kernel.domain.benefits import BenefitSubType
from welfare_kernel.exceptions import SubTypeNotFoundError
from welfare_kernel.models.benefit_sub_type import BenefitSubTypeModel
from welfare_kernel.selectors.base import BaseSelector


class BenefitSelector(BaseSelector[BenefitSubTypeModel]):
    """Sub-type lookups by id or code."""

    def find(self, sub_type_id: UUID) -> BenefitSubType | None:
        model = self.session.get(BenefitSubTypeModel, sub_type_id, populate_existing=True)
        return model.to_dto() if model is not None else None

    def get(self, sub_type_id: UUID) -> BenefitSubType:
        """
        Get a sub-type by id.

        Raises:
            SubTypeNotFoundError: If no sub-type has this id.
        """
        sub_type = self.find(sub_type_id)
        if sub_type is None:
            raise SubTypeNotFoundError(str(sub_type_id))
        return sub_type

    def find_by_code(self, code: str) -> BenefitSubType | None:
        model = self.session.execute(
            select(BenefitSubTypeModel).where(BenefitSubTypeModel.code == code)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def get_by_code(self, code: str) -> BenefitSubType:
        """
        Get a sub-type by its unique code.

        Raises:
            SubTypeNotFoundError: If no sub-type has this code.
        """
        sub_type = self.find_by_code(code)
        if sub_type is None:
            raise SubTypeNotFoundError(code)
        return sub_type

    def list_active(self, category_code: str | None = None) -> list[BenefitSubType]:
        """Active sub-types ordered by category then code."""
        query = select(BenefitSubTypeModel).where(BenefitSubTypeModel.is_active.is_(True))
        if category_code is not None:
            query = query.where(BenefitSubTypeModel.category_code == category_code)
        query = query.order_by(BenefitSubTypeModel.category_code, BenefitSubTypeModel.code)
        return [m.to_dto() for m in self.session.execute(query).scalars()]

    def list_all(self) -> list[BenefitSubType]:
        query = select(BenefitSubTypeModel).order_by(
            BenefitSubTypeModel.category_code, BenefitSubTypeModel.code
        )
        return [m.to_dto() for m in self.session.execute(query).scalars()]

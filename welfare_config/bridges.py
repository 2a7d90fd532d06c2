"""
Bridges from configuration artifacts to kernel inputs.

``welfare_config`` imports the kernel; the kernel never imports
``welfare_config``.  These functions are the only place the two meet.
"""

from __future__ import annotations

from uuid import UUID, uuid5

from welfare_config.schema import BenefitCatalog, KernelSettings, SubTypeDef
from welfare_kernel.domain.benefits import AccrualMethod, BenefitSubType, QuotaLimits
from welfare_kernel.domain.fiscal_year import StartMonthFiscalYear

# Namespace for ids derived from sub-type codes, so that re-syncing the
# same catalog yields the same ids on every machine.
SUB_TYPE_NAMESPACE = UUID("6f1c2d3e-8a4b-5c6d-9e0f-1a2b3c4d5e6f")


def sub_type_id_for(definition: SubTypeDef) -> UUID:
    if definition.sub_type_id:
        return UUID(definition.sub_type_id)
    return uuid5(SUB_TYPE_NAMESPACE, definition.code)


def sub_type_from_def(category_code: str, definition: SubTypeDef) -> BenefitSubType:
    return BenefitSubType(
        sub_type_id=sub_type_id_for(definition),
        code=definition.code,
        name=definition.name,
        category_code=category_code,
        accrual_method=AccrualMethod(definition.accrual_method),
        base_amount=definition.base_amount,
        limits=QuotaLimits(
            max_per_request=definition.max_per_request,
            max_per_fiscal_year=definition.max_per_fiscal_year,
            max_claims_per_fiscal_year=definition.max_claims_per_fiscal_year,
            max_lifetime_amount=definition.max_lifetime_amount,
            max_lifetime_claims=definition.max_lifetime_claims,
        ),
        allows_variable_amount=definition.allows_variable_amount,
        is_active=definition.is_active,
    )


def sub_types_from_catalog(catalog: BenefitCatalog) -> list[BenefitSubType]:
    """Kernel sub-types for every catalog entry, in authored order."""
    return [
        sub_type_from_def(category_code, definition)
        for category_code, definition in catalog.iter_sub_types()
    ]


def fiscal_year_calculator(settings: KernelSettings) -> StartMonthFiscalYear:
    return StartMonthFiscalYear(start_month=settings.fiscal_year_start_month)

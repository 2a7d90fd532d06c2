"""
Configuration Loader (``welfare_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into typed ``welfare_config.schema``
dataclass instances.  Runtime callers go through
``welfare_config.get_active_settings()``; ``load_benefit_catalog`` is the
entry point for stand-alone catalog fragments.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* Amounts are parsed to ``Decimal`` from their string form, never via
  float.
* Sub-type codes are unique across the whole catalog.
* ``compute_checksum`` is deterministic for identical parsed data.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid amounts, counts or duplicate codes  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from welfare_config.schema import (
    BenefitCatalog,
    CategoryDef,
    KernelSettings,
    SubTypeDef,
    WelfareConfiguration,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse an amount from YAML (string, int or float)."""
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected an amount, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{field_name}: cannot parse amount from {value!r}") from exc


def _optional_decimal(data: dict[str, Any], key: str) -> Decimal | None:
    value = data.get(key)
    return None if value is None else parse_decimal(value, key)


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> KernelSettings:
    """Parse KernelSettings; every key is optional."""
    return KernelSettings(
        fiscal_year_start_month=data.get("fiscal_year_start_month", 7),
        final_approval_max_attempts=data.get("final_approval_max_attempts", 3),
        database_url=data.get("database_url"),
    )


def parse_sub_type(data: dict[str, Any]) -> SubTypeDef:
    """
    Parse a SubTypeDef.

    Caps live under an optional ``limits`` mapping; absent caps mean
    uncapped.
    """
    limits = data.get("limits") or {}
    return SubTypeDef(
        code=data["code"],
        name=data["name"],
        accrual_method=data["accrual_method"],
        base_amount=parse_decimal(data["base_amount"], "base_amount"),
        allows_variable_amount=bool(data.get("allows_variable_amount", False)),
        max_per_request=_optional_decimal(limits, "max_per_request"),
        max_per_fiscal_year=_optional_decimal(limits, "max_per_fiscal_year"),
        max_claims_per_fiscal_year=_optional_int(limits, "max_claims_per_fiscal_year"),
        max_lifetime_amount=_optional_decimal(limits, "max_lifetime_amount"),
        max_lifetime_claims=_optional_int(limits, "max_lifetime_claims"),
        is_active=bool(data.get("is_active", True)),
        sub_type_id=data.get("sub_type_id"),
    )


def parse_category(data: dict[str, Any]) -> CategoryDef:
    """Parse a CategoryDef and its sub-types."""
    return CategoryDef(
        code=data["code"],
        name=data["name"],
        sub_types=tuple(parse_sub_type(s) for s in data.get("sub_types", [])),
    )


def parse_catalog(data: dict[str, Any]) -> BenefitCatalog:
    """
    Parse the ``categories`` list of a configuration or catalog fragment.

    Raises:
        ValueError: if a sub-type code appears more than once.
    """
    raw_categories = data.get("categories", [])
    categories = tuple(parse_category(c) for c in raw_categories)

    seen: set[str] = set()
    for category in categories:
        for sub_type in category.sub_types:
            if sub_type.code in seen:
                raise ValueError(f"Duplicate sub-type code in catalog: {sub_type.code}")
            seen.add(sub_type.code)

    return BenefitCatalog(
        categories=categories,
        checksum=compute_checksum({"categories": raw_categories}),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_benefit_catalog(path: Path) -> BenefitCatalog:
    """Load a stand-alone catalog fragment (a file with ``categories``)."""
    return parse_catalog(load_yaml_file(Path(path)))


def load_configuration(path: Path) -> WelfareConfiguration:
    """Load a complete configuration set from one YAML file."""
    data = load_yaml_file(Path(path))
    return WelfareConfiguration(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        settings=parse_settings(data.get("settings") or {}),
        catalog=parse_catalog(data),
        checksum=compute_checksum(data),
    )

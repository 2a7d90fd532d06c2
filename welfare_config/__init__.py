"""
welfare_config -- single public entrypoint for welfare configuration.

Responsibility:
    Provides the way to obtain configuration at runtime through
    ``get_active_settings()``.  Returns a ``WelfareConfiguration``: kernel
    settings plus the benefit catalog, parsed from YAML.

Architecture position:
    Configuration layer.  Sits above ``welfare_kernel``: the kernel MUST
    NEVER import from ``welfare_config``; ``welfare_config.bridges``
    translates catalog entries into kernel domain objects.

Environment:
    ``WELFARE_DATABASE_URL`` overrides ``settings.database_url``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema violations in the YAML.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from welfare_config.loader import load_benefit_catalog, load_configuration
from welfare_config.schema import (
    BenefitCatalog,
    CategoryDef,
    KernelSettings,
    SubTypeDef,
    WelfareConfiguration,
)
from welfare_kernel.logging_config import get_logger

_logger = get_logger("config")

DATABASE_URL_ENV = "WELFARE_DATABASE_URL"

# Default configuration set
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_settings(config_path: Path | None = None) -> WelfareConfiguration:
    """The public configuration entrypoint.

    Args:
        config_path: YAML configuration set to load.  Defaults to
            ``welfare_config/sets/default.yaml``.

    Returns:
        WelfareConfiguration with the environment override applied.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If the configuration fails validation.
    """
    config = load_configuration(config_path or DEFAULT_CONFIG_PATH)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        config = dataclasses.replace(
            config,
            settings=dataclasses.replace(config.settings, database_url=database_url),
        )

    _logger.info(
        "welfare_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "catalog_checksum": config.catalog.checksum,
            "sub_type_count": len(config.catalog.sub_type_codes),
            "fiscal_year_start_month": config.settings.fiscal_year_start_month,
            "database_url_from_env": bool(database_url),
        },
    )
    return config


__all__ = [
    "BenefitCatalog",
    "CategoryDef",
    "DATABASE_URL_ENV",
    "DEFAULT_CONFIG_PATH",
    "KernelSettings",
    "SubTypeDef",
    "WelfareConfiguration",
    "get_active_settings",
    "load_benefit_catalog",
]

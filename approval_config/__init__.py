"""
approval_config -- single public entrypoint for approval engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or the ``DATABASE_URL`` / ``APPROVAL_CONFIG_PATH`` environment
    variables directly.

Architecture position:
    Configuration.  Sits above ``approval_kernel`` and below
    ``approval_services``.  The kernel MUST NEVER import from
    ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- the file is not valid YAML.
    - ``KeyError`` / ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``APPROVAL_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying every approval decision to the configuration that
    governed it.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from approval_config.loader import load_yaml_file, parse_config
from approval_config.schema import (
    ApprovalEngineConfig,
    AuthorityLimitSeed,
    CompanySeed,
    DatabaseSettings,
    EngineSettings,
    RuleSeed,
)
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

# Default configuration set
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

ENV_CONFIG_PATH = "APPROVAL_CONFIG_PATH"
ENV_DATABASE_URL = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> ApprovalEngineConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then
    ``$APPROVAL_CONFIG_PATH``, then the bundled ``sets/default.yaml``.
    ``$DATABASE_URL``, when set, replaces ``database.url``.
    """
    path = Path(
        config_path
        or os.environ.get(ENV_CONFIG_PATH)
        or _DEFAULT_CONFIG_PATH
    )
    config = parse_config(load_yaml_file(path))

    database_url = os.environ.get(ENV_DATABASE_URL)
    if database_url:
        config = replace(config, database=replace(config.database, url=database_url))

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "database_url_overridden": bool(database_url),
            "ordering": config.engine.ordering.value,
            "missing_limit_policy": config.engine.missing_limit_policy.value,
            "company_count": len(config.companies),
        },
    )
    return config


__all__ = [
    "ApprovalEngineConfig",
    "AuthorityLimitSeed",
    "CompanySeed",
    "DatabaseSettings",
    "EngineSettings",
    "RuleSeed",
    "get_active_config",
]

"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the typed
``approval_config.schema`` dataclasses.  Runtime code goes through
``approval_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required keys have no silent defaults.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` is deterministic: the same YAML content always
  produces the same SHA-256 hash.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Bad enum values or logging level, non-positive levels, inverted cost
  ranges -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from approval_config.schema import (
    EVALUATION_STRATEGIES,
    ApprovalEngineConfig,
    AuthorityLimitSeed,
    CompanySeed,
    DatabaseSettings,
    EngineSettings,
    RuleSeed,
)
from approval_kernel.domain.approval import ApprovalOrdering, MissingLimitPolicy

LOGGING_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_amount(value: Any, field_name: str) -> Decimal | None:
    """Parse an optional non-negative amount.  Floats go through str()."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field_name}: expected an amount, got {value!r}")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{field_name}: expected an amount, got {value!r}") from None
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"{field_name}: must be a non-negative amount, got {value!r}")
    return amount


def _parse_enum(enum_cls: type, value: Any, field_name: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"{field_name}: {value!r} is not one of {allowed}") from None


def parse_engine(data: dict[str, Any]) -> EngineSettings:
    """Parse EngineSettings.  Every key is optional."""
    defaults = EngineSettings()
    levels = data.get("default_levels_without_rule", defaults.default_levels_without_rule)
    if isinstance(levels, bool) or not isinstance(levels, int) or levels < 1:
        raise ValueError(
            f"engine.default_levels_without_rule must be an integer >= 1, got {levels!r}"
        )
    strategy = str(data.get("evaluation_strategy", defaults.evaluation_strategy)).lower()
    if strategy not in EVALUATION_STRATEGIES:
        raise ValueError(
            f"engine.evaluation_strategy: {strategy!r} is not one of "
            f"{', '.join(EVALUATION_STRATEGIES)}"
        )
    return EngineSettings(
        ordering=_parse_enum(
            ApprovalOrdering, data.get("ordering", defaults.ordering.value),
            "engine.ordering",
        ),
        missing_limit_policy=_parse_enum(
            MissingLimitPolicy,
            data.get("missing_limit_policy", defaults.missing_limit_policy.value),
            "engine.missing_limit_policy",
        ),
        default_levels_without_rule=levels,
        evaluation_strategy=strategy,
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse DatabaseSettings.  Every key is optional."""
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=str(data.get("url", defaults.url)),
        echo=bool(data.get("echo", defaults.echo)),
        pool_size=int(data.get("pool_size", defaults.pool_size)),
        max_overflow=int(data.get("max_overflow", defaults.max_overflow)),
        pool_timeout=int(data.get("pool_timeout", defaults.pool_timeout)),
        pool_recycle=int(data.get("pool_recycle", defaults.pool_recycle)),
    )


def parse_authority_limit(data: dict[str, Any]) -> AuthorityLimitSeed:
    """Parse an AuthorityLimitSeed.  role_key and max_direct_authorization are required."""
    return AuthorityLimitSeed(
        role_key=data["role_key"],
        max_direct_authorization=parse_amount(
            data["max_direct_authorization"], "max_direct_authorization",
        ),
        can_create_work_orders=bool(data.get("can_create_work_orders", True)),
        can_assign_directly=bool(data.get("can_assign_directly", True)),
    )


def parse_rule(data: dict[str, Any]) -> RuleSeed:
    """Parse a RuleSeed.  name and approval_levels are required."""
    name = data["name"]
    levels = data["approval_levels"]
    if isinstance(levels, bool) or not isinstance(levels, int) or levels < 1:
        raise ValueError(f"rule {name!r}: approval_levels must be an integer >= 1")
    min_cost = parse_amount(data.get("min_cost"), f"rule {name!r} min_cost")
    max_cost = parse_amount(data.get("max_cost"), f"rule {name!r} max_cost")
    if min_cost is not None and max_cost is not None and min_cost > max_cost:
        raise ValueError(f"rule {name!r}: min_cost {min_cost} exceeds max_cost {max_cost}")
    return RuleSeed(
        name=name,
        approval_levels=levels,
        description=data.get("description"),
        min_cost=min_cost,
        max_cost=max_cost,
        priority=data.get("priority"),
        type=data.get("type"),
        asset_criticality=data.get("asset_criticality"),
        requires_qa=bool(data.get("requires_qa", False)),
    )


def parse_company(data: dict[str, Any]) -> CompanySeed:
    """Parse a CompanySeed.  company_id is required."""
    return CompanySeed(
        company_id=UUID(str(data["company_id"])),
        name=data.get("name", ""),
        authority_limits=tuple(
            parse_authority_limit(d) for d in data.get("authority_limits", [])
        ),
        rules=tuple(parse_rule(d) for d in data.get("rules", [])),
    )


def parse_config(data: dict[str, Any]) -> ApprovalEngineConfig:
    """
    Parse the root configuration dict.

    Postconditions:
        - ``checksum`` is the SHA-256 of ``data`` as given (before any
          environment overrides).
    Raises:
        KeyError: if ``config_id`` or ``version`` is missing.
        ValueError: on invalid values.
    """
    logging_data = data.get("logging") or {}
    logging_level = str(logging_data.get("level", "INFO")).upper()
    if logging_level not in LOGGING_LEVELS:
        raise ValueError(f"logging.level must be one of {LOGGING_LEVELS}, got {logging_level!r}")
    return ApprovalEngineConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        engine=parse_engine(data.get("engine") or {}),
        database=parse_database(data.get("database") or {}),
        logging_level=logging_level,
        companies=tuple(parse_company(c) for c in data.get("companies", [])),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()

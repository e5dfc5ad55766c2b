"""
Approval engine configuration schema.

The YAML configuration set is parsed into these frozen dataclasses by the
loader.  ``get_active_config()`` is the only way runtime code obtains one.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from approval_kernel.domain.approval import ApprovalOrdering, MissingLimitPolicy

EVALUATION_STRATEGIES = ("authority", "aggregate")


# ---------------------------------------------------------------------------
# Engine behaviour
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Switches for the product decisions the engine leaves open."""

    ordering: ApprovalOrdering = ApprovalOrdering.ANY
    missing_limit_policy: MissingLimitPolicy = MissingLimitPolicy.FAIL_OPEN
    default_levels_without_rule: int = 1
    evaluation_strategy: str = "authority"  # authority | aggregate


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite://"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthorityLimitSeed:
    role_key: str
    max_direct_authorization: Decimal
    can_create_work_orders: bool = True
    can_assign_directly: bool = True


@dataclass(frozen=True)
class RuleSeed:
    name: str
    approval_levels: int
    description: str | None = None
    min_cost: Decimal | None = None
    max_cost: Decimal | None = None
    priority: str | None = None
    type: str | None = None
    asset_criticality: str | None = None
    requires_qa: bool = False


@dataclass(frozen=True)
class CompanySeed:
    """Authority limits and rules declared for one company."""

    company_id: UUID
    name: str = ""
    authority_limits: tuple[AuthorityLimitSeed, ...] = ()
    rules: tuple[RuleSeed, ...] = ()


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalEngineConfig:
    """The complete, parsed configuration set."""

    config_id: str
    version: int
    engine: EngineSettings = EngineSettings()
    database: DatabaseSettings = DatabaseSettings()
    logging_level: str = "INFO"
    companies: tuple[CompanySeed, ...] = ()
    checksum: str = ""

    def company(self, company_id: UUID) -> CompanySeed | None:
        for seed in self.companies:
            if seed.company_id == company_id:
                return seed
        return None

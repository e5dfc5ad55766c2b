"""
Configuration seeding -- load declared authority limits and rules.

Responsibility:
    Creates the authority limits and approval rules a ``CompanySeed``
    declares, through the kernel admin services so every record passes the
    same validation as an administrator's edit.

Idempotent: a role that already has an active limit, or a rule name that
already exists among active rules, is skipped rather than duplicated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.orm import Session

from approval_config.schema import ApprovalEngineConfig, CompanySeed
from approval_kernel.domain.capabilities import (
    APPROVAL_MANAGE_AUTHORITY_LIMITS,
    APPROVAL_MANAGE_RULES,
    CallerSession,
    CapabilitySet,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.services.approval_rule_service import ApprovalRuleService
from approval_kernel.services.authority_limit_service import AuthorityLimitService

logger = get_logger("services.seeding")

SYSTEM_USER_ID = UUID("00000000-0000-0000-0000-000000000000")


@dataclass
class SeedReport:
    company_id: UUID
    limits_created: list[str] = field(default_factory=list)
    limits_skipped: list[str] = field(default_factory=list)
    rules_created: list[str] = field(default_factory=list)
    rules_skipped: list[str] = field(default_factory=list)


def system_caller(company_id: UUID) -> CallerSession:
    """Caller used for seeding: may manage limits and rules of one company."""
    return CallerSession(
        user_id=SYSTEM_USER_ID,
        company_id=company_id,
        capabilities=CapabilitySet.of(
            APPROVAL_MANAGE_AUTHORITY_LIMITS, APPROVAL_MANAGE_RULES,
        ),
    )


def seed_company(
    seed: CompanySeed,
    limits: AuthorityLimitService,
    rules: ApprovalRuleService,
) -> SeedReport:
    caller = system_caller(seed.company_id)
    report = SeedReport(company_id=seed.company_id)

    for limit in seed.authority_limits:
        if limits.get_for_role(caller, limit.role_key) is not None:
            report.limits_skipped.append(limit.role_key)
            continue
        limits.create(
            caller,
            role_key=limit.role_key,
            max_direct_authorization=limit.max_direct_authorization,
            can_create_work_orders=limit.can_create_work_orders,
            can_assign_directly=limit.can_assign_directly,
        )
        report.limits_created.append(limit.role_key)

    existing_names = {r.name for r in rules.list_for_company(caller)}
    for rule in seed.rules:
        if rule.name in existing_names:
            report.rules_skipped.append(rule.name)
            continue
        rules.create(
            caller,
            name=rule.name,
            approval_levels=rule.approval_levels,
            description=rule.description,
            min_cost=rule.min_cost,
            max_cost=rule.max_cost,
            priority=rule.priority,
            type=rule.type,
            asset_criticality=rule.asset_criticality,
            requires_qa=rule.requires_qa,
        )
        existing_names.add(rule.name)
        report.rules_created.append(rule.name)

    logger.info(
        "company_seeded",
        extra={
            "company_id": str(seed.company_id),
            "limits_created": len(report.limits_created),
            "limits_skipped": len(report.limits_skipped),
            "rules_created": len(report.rules_created),
            "rules_skipped": len(report.rules_skipped),
        },
    )
    return report


def seed_from_config(session: Session, config: ApprovalEngineConfig) -> list[SeedReport]:
    """Seed every company of ``config`` into the database behind ``session``."""
    limits = AuthorityLimitService.for_session(session)
    rules = ApprovalRuleService.for_session(session)
    return [seed_company(seed, limits, rules) for seed in config.companies]

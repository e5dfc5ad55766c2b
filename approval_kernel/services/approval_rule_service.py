"""
approval_kernel.services.approval_rule_service -- Approval rule administration.

Responsibility:
    Create, update, soft-delete, restore and read the approval rules of the
    caller's company.

Architecture position:
    Kernel > Services.  May import from domain/, stores/, exceptions.

Invariants enforced:
    - Writes require ``approval.manage_rules``.
    - Rule names are unique among ACTIVE rules per company.
    - approval_levels is an integer >= 1.
    - min_cost <= max_cost when both are set; both non-negative.

Failure modes:
    - PermissionDeniedError, MissingCompanyContextError, AccessDeniedError.
    - ApprovalRuleNotFoundError, DuplicateRuleNameError.
    - InvalidApprovalLevelsError, InvalidCostRangeError, InvalidCostError,
      ApprovalValidationError.
    - InvalidLifecycleTransitionError.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_kernel.domain import lifecycle
from approval_kernel.domain.approval import ApprovalRule
from approval_kernel.domain.capabilities import APPROVAL_MANAGE_RULES, CallerSession
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.stores import ApprovalRuleStore
from approval_kernel.domain.values import to_optional_amount
from approval_kernel.exceptions import (
    ApprovalRuleNotFoundError,
    ApprovalValidationError,
    DuplicateRuleNameError,
    InvalidApprovalLevelsError,
    InvalidCostRangeError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.services.base import BaseApprovalService
from approval_kernel.stores.sql import SqlApprovalRuleStore

logger = get_logger("services.approval_rule")

_ENTITY = "ApprovalRule"
_CRITERIA = ("priority", "type", "asset_criticality")
_UPDATABLE = frozenset({
    "name",
    "description",
    "min_cost",
    "max_cost",
    "approval_levels",
    "requires_qa",
    "is_active",
    *_CRITERIA,
})


def validate_levels(levels: Any) -> int:
    if isinstance(levels, bool) or not isinstance(levels, int) or levels < 1:
        raise InvalidApprovalLevelsError(levels, minimum=1)
    return levels


def validate_cost_range(
    min_cost: Decimal | None, max_cost: Decimal | None,
) -> None:
    if min_cost is not None and max_cost is not None and min_cost > max_cost:
        raise InvalidCostRangeError(str(min_cost), str(max_cost))


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ApprovalValidationError(f"Rule name must be a non-empty string, got {name!r}")
    return name.strip()


def _clean_criterion(value: Any) -> str | None:
    # Empty strings are wildcards, same as unset
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ApprovalRuleService(BaseApprovalService):
    """Administers approval rules."""

    def __init__(self, rules: ApprovalRuleStore, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._rules = rules

    @classmethod
    def for_session(
        cls, session: Session, clock: Clock | None = None,
    ) -> ApprovalRuleService:
        return cls(SqlApprovalRuleStore(session), clock)

    def create(
        self,
        caller: CallerSession,
        *,
        name: str,
        approval_levels: int,
        description: str | None = None,
        min_cost: Decimal | int | str | None = None,
        max_cost: Decimal | int | str | None = None,
        priority: str | None = None,
        type: str | None = None,
        asset_criticality: str | None = None,
        requires_qa: bool = False,
        is_active: bool = True,
    ) -> ApprovalRule:
        self._require(caller, APPROVAL_MANAGE_RULES)
        company_id = self._company_of(caller)
        name = _clean_name(name)
        levels = validate_levels(approval_levels)
        low = to_optional_amount(min_cost, "min_cost")
        high = to_optional_amount(max_cost, "max_cost")
        validate_cost_range(low, high)

        if is_active and self._rules.check_name_exists(name, company_id):
            raise DuplicateRuleNameError(name, str(company_id))

        rule = self._rules.add(ApprovalRule(
            id=uuid4(),
            company_id=company_id,
            name=name,
            approval_levels=levels,
            description=description,
            min_cost=low,
            max_cost=high,
            priority=_clean_criterion(priority),
            type=_clean_criterion(type),
            asset_criticality=_clean_criterion(asset_criticality),
            requires_qa=bool(requires_qa),
            lifecycle=lifecycle.lifecycle_from_flag(is_active),
        ))
        logger.info(
            "approval_rule_created",
            extra={
                "rule_id": str(rule.id),
                "company_id": str(company_id),
                "rule_name": name,
                "approval_levels": levels,
            },
        )
        return rule

    def update(
        self, caller: CallerSession, rule_id: UUID, **changes: Any,
    ) -> ApprovalRule:
        """Apply a partial update.

        Passing ``None`` for a criterion turns it into a wildcard.
        """
        self._require(caller, APPROVAL_MANAGE_RULES)
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ApprovalValidationError(f"Unknown approval rule fields: {sorted(unknown)}")
        current = self._load(caller, rule_id)

        fields: dict[str, Any] = {}
        if "name" in changes:
            fields["name"] = _clean_name(changes["name"])
        if "description" in changes:
            fields["description"] = changes["description"]
        if "approval_levels" in changes:
            fields["approval_levels"] = validate_levels(changes["approval_levels"])
        for bound in ("min_cost", "max_cost"):
            if bound in changes:
                fields[bound] = to_optional_amount(changes[bound], bound)
        for criterion in _CRITERIA:
            if criterion in changes:
                fields[criterion] = _clean_criterion(changes[criterion])
        if "requires_qa" in changes:
            fields["requires_qa"] = bool(changes["requires_qa"])
        if "is_active" in changes:
            target = lifecycle.lifecycle_from_flag(bool(changes["is_active"]))
            if target is not current.lifecycle:
                fields["lifecycle"] = lifecycle.transition(
                    _ENTITY, current.lifecycle, target,
                )

        updated = replace(current, **fields)
        validate_cost_range(updated.min_cost, updated.max_cost)
        if updated.is_active and (
            updated.name != current.name or not current.is_active
        ):
            if self._rules.check_name_exists(updated.name, updated.company_id, updated.id):
                raise DuplicateRuleNameError(updated.name, str(updated.company_id))

        saved = self._rules.save(updated)
        logger.info(
            "approval_rule_updated",
            extra={"rule_id": str(rule_id), "fields": sorted(fields)},
        )
        return saved

    def delete(self, caller: CallerSession, rule_id: UUID) -> ApprovalRule:
        """Soft-delete."""
        self._require(caller, APPROVAL_MANAGE_RULES)
        current = self._load(caller, rule_id)
        saved = self._rules.save(replace(
            current, lifecycle=lifecycle.deactivate(_ENTITY, current.lifecycle),
        ))
        logger.info("approval_rule_deleted", extra={"rule_id": str(rule_id)})
        return saved

    def restore(self, caller: CallerSession, rule_id: UUID) -> ApprovalRule:
        self._require(caller, APPROVAL_MANAGE_RULES)
        current = self._load(caller, rule_id)
        target = lifecycle.restore(_ENTITY, current.lifecycle)
        if self._rules.check_name_exists(current.name, current.company_id, current.id):
            raise DuplicateRuleNameError(current.name, str(current.company_id))
        saved = self._rules.save(replace(current, lifecycle=target))
        logger.info("approval_rule_restored", extra={"rule_id": str(rule_id)})
        return saved

    def get(self, caller: CallerSession, rule_id: UUID) -> ApprovalRule:
        return self._load(caller, rule_id)

    def list_for_company(
        self, caller: CallerSession, include_deleted: bool = False,
    ) -> list[ApprovalRule]:
        return self._rules.list_for_company(
            self._company_of(caller), include_deleted=include_deleted,
        )

    def _load(self, caller: CallerSession, rule_id: UUID) -> ApprovalRule:
        company_id = self._company_of(caller)
        rule = self._rules.get_by_id(rule_id)
        if rule is None:
            raise ApprovalRuleNotFoundError(str(rule_id))
        self._check_tenant(_ENTITY, rule_id, rule.company_id, company_id)
        return rule

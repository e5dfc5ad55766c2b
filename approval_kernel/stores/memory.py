"""
In-memory stores (``approval_kernel.stores.memory``).

Dict-backed implementations of the store protocols, plus an in-memory
governed-action provider.  Used by unit tests of the evaluator, chain
service and processor, and by callers that embed the engine without a
database.

Each store guards its state with a ``threading.Lock``; the step store's
compare-and-swap holds the lock across the pending check and the write.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from approval_kernel.domain.approval import (
    ActionCriteria,
    ApprovalRule,
    ApprovalStep,
    AuthorityLimit,
    ChainResolution,
    GovernedAction,
    StepStatus,
    order_rules,
    rule_matches,
)
from approval_kernel.exceptions import (
    ChainAlreadyExistsError,
    GovernedActionNotFoundError,
)


class InMemoryAuthorityLimitStore:
    def __init__(self) -> None:
        self._limits: dict[UUID, AuthorityLimit] = {}
        self._lock = threading.Lock()

    def get(self, role_key: str, company_id: UUID) -> AuthorityLimit | None:
        with self._lock:
            for limit in self._limits.values():
                if (
                    limit.is_active
                    and limit.role_key == role_key
                    and limit.company_id == company_id
                ):
                    return limit
        return None

    def get_by_id(self, limit_id: UUID) -> AuthorityLimit | None:
        with self._lock:
            return self._limits.get(limit_id)

    def exists(
        self, role_key: str, company_id: UUID, exclude_id: UUID | None = None,
    ) -> bool:
        with self._lock:
            return any(
                lim.is_active
                and lim.role_key == role_key
                and lim.company_id == company_id
                and lim.id != exclude_id
                for lim in self._limits.values()
            )

    def list_for_company(
        self, company_id: UUID, include_deleted: bool = False,
    ) -> list[AuthorityLimit]:
        with self._lock:
            found = [
                lim for lim in self._limits.values()
                if lim.company_id == company_id and (include_deleted or lim.is_active)
            ]
        return sorted(found, key=lambda lim: (lim.role_key, str(lim.id)))

    def add(self, limit: AuthorityLimit) -> AuthorityLimit:
        with self._lock:
            self._limits[limit.id] = limit
        return limit

    def save(self, limit: AuthorityLimit) -> AuthorityLimit:
        return self.add(limit)


class InMemoryApprovalRuleStore:
    def __init__(self) -> None:
        self._rules: dict[UUID, ApprovalRule] = {}
        self._lock = threading.Lock()

    def matching_rules(
        self,
        company_id: UUID,
        cost: Decimal | None,
        priority: str | None = None,
        type: str | None = None,
        asset_criticality: str | None = None,
    ) -> list[ApprovalRule]:
        criteria = ActionCriteria(
            cost=cost,
            priority=priority,
            type=type,
            asset_criticality=asset_criticality,
        )
        return [
            r for r in self.active_for_company(company_id)
            if rule_matches(r, criteria)
        ]

    def active_for_company(self, company_id: UUID) -> list[ApprovalRule]:
        return self.list_for_company(company_id)

    def check_name_exists(
        self, name: str, company_id: UUID, exclude_id: UUID | None = None,
    ) -> bool:
        with self._lock:
            return any(
                r.is_active
                and r.name == name
                and r.company_id == company_id
                and r.id != exclude_id
                for r in self._rules.values()
            )

    def get_by_id(self, rule_id: UUID) -> ApprovalRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def list_for_company(
        self, company_id: UUID, include_deleted: bool = False,
    ) -> list[ApprovalRule]:
        with self._lock:
            found = [
                r for r in self._rules.values()
                if r.company_id == company_id and (include_deleted or r.is_active)
            ]
        return order_rules(found)

    def add(self, rule: ApprovalRule) -> ApprovalRule:
        with self._lock:
            self._rules[rule.id] = rule
        return rule

    def save(self, rule: ApprovalRule) -> ApprovalRule:
        return self.add(rule)


class InMemoryApprovalStepStore:
    def __init__(self) -> None:
        self._steps: dict[UUID, ApprovalStep] = {}
        self._lock = threading.Lock()

    def get(self, step_id: UUID) -> ApprovalStep | None:
        with self._lock:
            return self._steps.get(step_id)

    def for_action(self, action_id: UUID) -> list[ApprovalStep]:
        with self._lock:
            found = [s for s in self._steps.values() if s.action_id == action_id]
        return sorted(found, key=lambda s: s.level)

    def lock_chain(self, action_id: UUID) -> list[ApprovalStep]:
        # Each write below is atomic under _lock; nothing to hold.
        return self.for_action(action_id)

    def add_all(self, steps: Sequence[ApprovalStep]) -> list[ApprovalStep]:
        with self._lock:
            taken = {(s.action_id, s.level) for s in self._steps.values()}
            for step in steps:
                if (step.action_id, step.level) in taken:
                    existing = sum(
                        1 for s in self._steps.values()
                        if s.action_id == step.action_id
                    )
                    raise ChainAlreadyExistsError(str(step.action_id), existing)
            for step in steps:
                self._steps[step.id] = step
        return list(steps)

    def compare_and_set_status(
        self,
        step_id: UUID,
        new_status: StepStatus,
        *,
        resolved_by_id: UUID,
        resolved_at: datetime,
        comments: str | None = None,
    ) -> bool:
        with self._lock:
            current = self._steps.get(step_id)
            if current is None or not current.is_pending:
                return False
            changes: dict = {"status": new_status, "resolved_by_id": resolved_by_id}
            if new_status is StepStatus.APPROVED:
                changes["approved_at"] = resolved_at
            else:
                changes["rejected_at"] = resolved_at
            if comments is not None:
                changes["comments"] = comments
            self._steps[step_id] = replace(current, **changes)
            return True

    def assign_approver_if_pending(
        self, step_id: UUID, approver_id: UUID | None,
    ) -> bool:
        with self._lock:
            current = self._steps.get(step_id)
            if current is None or not current.is_pending:
                return False
            self._steps[step_id] = replace(current, approver_id=approver_id)
            return True

    def pending_for_approver(
        self, approver_id: UUID, company_id: UUID,
    ) -> list[ApprovalStep]:
        with self._lock:
            found = [
                s for s in self._steps.values()
                if s.approver_id == approver_id
                and s.company_id == company_id
                and s.is_pending
            ]
        return sorted(found, key=lambda s: (s.created_at is None, s.created_at, s.level))

    def all(self) -> list[ApprovalStep]:
        with self._lock:
            return list(self._steps.values())


class InMemoryGovernedActions:
    """GovernedActionProvider over a dict of work orders.

    ``apply_resolution`` is idempotent: a repeated resolution for an action
    already in that state is not recorded as a transition.
    """

    STATUS_PENDING_APPROVAL = "pending_approval"

    def __init__(self) -> None:
        self._actions: dict[UUID, GovernedAction] = {}
        self.status: dict[UUID, str] = {}
        self.requires_qa: dict[UUID, bool] = {}
        self.transitions: list[tuple[UUID, ChainResolution]] = []
        self._lock = threading.Lock()

    def register(self, action: GovernedAction, status: str = "open") -> GovernedAction:
        with self._lock:
            self._actions[action.action_id] = action
            self.status[action.action_id] = status
        return action

    def get_action(self, action_id: UUID) -> GovernedAction:
        action = self._actions.get(action_id)
        if action is None:
            raise GovernedActionNotFoundError(str(action_id))
        return action

    def mark_pending_approval(self, action_id: UUID, requires_qa: bool) -> None:
        self.get_action(action_id)
        with self._lock:
            self.status[action_id] = self.STATUS_PENDING_APPROVAL
            self.requires_qa[action_id] = requires_qa

    def apply_resolution(self, action_id: UUID, resolution: ChainResolution) -> None:
        self.get_action(action_id)
        if resolution is ChainResolution.PENDING:
            return
        with self._lock:
            if self.status.get(action_id) == resolution.value:
                return
            self.status[action_id] = resolution.value
            self.transitions.append((action_id, resolution))

    def transitions_for(self, action_id: UUID) -> list[ChainResolution]:
        with self._lock:
            return [r for a, r in self.transitions if a == action_id]

"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the work-order approval engine: the step state
machine, authority limits and approval rules, the rule-matching predicate,
evaluation results, and the approval chain with its aggregate state.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports from
``db/``, ``models/``, ``stores/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* Step state machine -- ``STEP_TRANSITIONS`` defines the only valid status
  transitions: pending -> approved | rejected.  Terminal states have no
  outgoing edges.
* Unset rule criteria are wildcards -- ``rule_matches`` is the single
  predicate used by every store and by the aggregate evaluator.
* Deterministic rule ordering -- ``order_rules``: approval_levels
  descending, then name, then id.
* Chain contiguity -- ``ApprovalChain.from_steps`` refuses a chain whose
  levels are not exactly 1..N.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Protocol
from uuid import UUID

from approval_kernel.domain.lifecycle import RecordLifecycle
from approval_kernel.exceptions import ChainIntegrityError


# =========================================================================
# Step Status Lifecycle
# =========================================================================


class StepStatus(str, Enum):
    """Approval step lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.APPROVED, StepStatus.REJECTED}),
    StepStatus.APPROVED: frozenset(),
    StepStatus.REJECTED: frozenset(),
}

TERMINAL_STEP_STATUSES: frozenset[StepStatus] = frozenset({
    StepStatus.APPROVED,
    StepStatus.REJECTED,
})


class ChainResolution(str, Enum):
    """Outcome of a chain, returned to the owner of the governed action."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalOrdering(str, Enum):
    """Whether levels must be approved in ascending order."""

    ANY = "any"
    STRICT = "strict"


class MissingLimitPolicy(str, Enum):
    """What the authority-gated evaluator does when a role has no limit."""

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


# =========================================================================
# Configuration Records
# =========================================================================


@dataclass(frozen=True)
class AuthorityLimit:
    """Ceiling below which ``role_key`` may act without approval."""

    id: UUID
    company_id: UUID
    role_key: str
    max_direct_authorization: Decimal
    can_create_work_orders: bool = True
    can_assign_directly: bool = True
    lifecycle: RecordLifecycle = RecordLifecycle.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.lifecycle is RecordLifecycle.ACTIVE


@dataclass(frozen=True)
class ApprovalRule:
    """Named condition set mapping action attributes to approval levels.

    ``None`` criteria are wildcards.
    """

    id: UUID
    company_id: UUID
    name: str
    approval_levels: int
    description: str | None = None
    min_cost: Decimal | None = None
    max_cost: Decimal | None = None
    priority: str | None = None
    type: str | None = None
    asset_criticality: str | None = None
    requires_qa: bool = False
    lifecycle: RecordLifecycle = RecordLifecycle.ACTIVE
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.lifecycle is RecordLifecycle.ACTIVE


# =========================================================================
# Matching
# =========================================================================


@dataclass(frozen=True)
class ActionCriteria:
    """The attributes of a governed action that rules match on."""

    cost: Decimal | None = None
    priority: str | None = None
    type: str | None = None
    asset_criticality: str | None = None


def rule_matches(rule: ApprovalRule, criteria: ActionCriteria) -> bool:
    """The matching predicate.

    A missing cost compares as zero.
    """
    if not rule.is_active:
        return False
    cost = criteria.cost if criteria.cost is not None else Decimal("0")
    if rule.min_cost is not None and cost < rule.min_cost:
        return False
    if rule.max_cost is not None and cost > rule.max_cost:
        return False
    if rule.priority is not None and rule.priority != criteria.priority:
        return False
    if rule.type is not None and rule.type != criteria.type:
        return False
    if (
        rule.asset_criticality is not None
        and rule.asset_criticality != criteria.asset_criticality
    ):
        return False
    return True


def order_rules(rules: Iterable[ApprovalRule]) -> list[ApprovalRule]:
    """Highest approval_levels first; ties by name, then id."""
    return sorted(rules, key=lambda r: (-r.approval_levels, r.name, str(r.id)))


# =========================================================================
# Evaluation Results
# =========================================================================


@dataclass(frozen=True)
class ApprovalRequirement:
    """Result of the authority-gated evaluation."""

    required: bool
    levels: int = 0
    reason: str | None = None
    matched_rule: ApprovalRule | None = None


@dataclass(frozen=True)
class AggregateRequirement:
    """Result of the role-agnostic aggregate evaluation."""

    needs_approval: bool
    approval_levels: int = 0
    requires_qa: bool = False
    matched_rule_names: tuple[str, ...] = ()


# =========================================================================
# Steps and Chains
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """One sign-off gate.  Immutable snapshot of a stored step."""

    id: UUID
    action_id: UUID
    company_id: UUID
    level: int
    status: StepStatus = StepStatus.PENDING
    approver_id: UUID | None = None
    resolved_by_id: UUID | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    comments: str | None = None
    created_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is StepStatus.PENDING


@dataclass(frozen=True)
class ApprovalChain:
    """All steps of one governed action, with derived aggregate state."""

    action_id: UUID
    steps: tuple[ApprovalStep, ...] = ()

    @classmethod
    def from_steps(
        cls, action_id: UUID, steps: Iterable[ApprovalStep],
    ) -> ApprovalChain:
        ordered = tuple(sorted(steps, key=lambda s: s.level))
        levels = [s.level for s in ordered]
        if levels != list(range(1, len(ordered) + 1)):
            raise ChainIntegrityError(str(action_id), levels)
        return cls(action_id=action_id, steps=ordered)

    @property
    def max_level(self) -> int:
        return len(self.steps)

    @property
    def current_level(self) -> int:
        """Lowest pending level, or max_level + 1 when nothing is pending."""
        for step in self.steps:
            if step.is_pending:
                return step.level
        return self.max_level + 1

    @property
    def is_rejected(self) -> bool:
        return any(s.status is StepStatus.REJECTED for s in self.steps)

    @property
    def can_proceed(self) -> bool:
        return all(s.status is StepStatus.APPROVED for s in self.steps)

    @property
    def is_complete(self) -> bool:
        return self.can_proceed or self.is_rejected

    @property
    def resolution(self) -> ChainResolution:
        if self.is_rejected:
            return ChainResolution.REJECTED
        if self.can_proceed:
            return ChainResolution.APPROVED
        return ChainResolution.PENDING

    def step_at(self, level: int) -> ApprovalStep | None:
        if 1 <= level <= self.max_level:
            return self.steps[level - 1]
        return None

    def pending_below(self, level: int) -> ApprovalStep | None:
        """First pending step at a level lower than ``level``."""
        for step in self.steps:
            if step.level >= level:
                return None
            if step.is_pending:
                return step
        return None


@dataclass(frozen=True)
class StepDecision:
    """What approve/reject returns: the resolved step, the re-read chain,
    and the resolution the governed action's owner must apply."""

    step: ApprovalStep
    chain: ApprovalChain
    resolution: ChainResolution

    @property
    def is_terminal(self) -> bool:
        return self.resolution is not ChainResolution.PENDING


# =========================================================================
# Governed Action (external)
# =========================================================================


@dataclass(frozen=True)
class GovernedAction:
    """What the engine reads from the governed action (a work order)."""

    action_id: UUID
    company_id: UUID
    cost: Decimal | None = None
    priority: str | None = None
    type: str | None = None
    asset_criticality: str | None = None
    creator_role_key: str | None = None
    metadata: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def criteria(self) -> ActionCriteria:
        return ActionCriteria(
            cost=self.cost,
            priority=self.priority,
            type=self.type,
            asset_criticality=self.asset_criticality,
        )


class GovernedActionProvider(Protocol):
    """Owner of the governed action.  The engine never writes its schema."""

    def get_action(self, action_id: UUID) -> GovernedAction:
        """Return the action or raise GovernedActionNotFoundError."""
        ...

    def mark_pending_approval(self, action_id: UUID, requires_qa: bool) -> None:
        """Record that the action awaits sign-off."""
        ...

    def apply_resolution(self, action_id: UUID, resolution: ChainResolution) -> None:
        """Apply a terminal chain resolution (approved or rejected)."""
        ...

"""
Store protocols (``approval_kernel.domain.stores``).

The evaluator, chain service and processor depend only on these
interfaces.  ``approval_kernel.stores.sql`` implements them over a
SQLAlchemy session; ``approval_kernel.stores.memory`` implements them over
dicts for unit tests and for embedding without a database.

Contract shared by every implementation:

* Reads return frozen domain objects, never ORM instances.
* ``ApprovalStepStore.compare_and_set_status`` is the ONLY way a step
  leaves PENDING.  It returns ``False`` (never raises) when the step was no
  longer pending at write time.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from approval_kernel.domain.approval import (
    ApprovalRule,
    ApprovalStep,
    AuthorityLimit,
    StepStatus,
)


class AuthorityLimitStore(Protocol):
    def get(self, role_key: str, company_id: UUID) -> AuthorityLimit | None:
        """Active limit for (role, company), or None."""
        ...

    def get_by_id(self, limit_id: UUID) -> AuthorityLimit | None: ...

    def exists(
        self, role_key: str, company_id: UUID, exclude_id: UUID | None = None,
    ) -> bool:
        """True if another ACTIVE limit holds this role in this company."""
        ...

    def list_for_company(
        self, company_id: UUID, include_deleted: bool = False,
    ) -> list[AuthorityLimit]: ...

    def add(self, limit: AuthorityLimit) -> AuthorityLimit: ...

    def save(self, limit: AuthorityLimit) -> AuthorityLimit: ...


class ApprovalRuleStore(Protocol):
    def matching_rules(
        self,
        company_id: UUID,
        cost: Decimal | None,
        priority: str | None = None,
        type: str | None = None,
        asset_criticality: str | None = None,
    ) -> list[ApprovalRule]:
        """Active matching rules, approval_levels descending."""
        ...

    def active_for_company(self, company_id: UUID) -> list[ApprovalRule]: ...

    def check_name_exists(
        self, name: str, company_id: UUID, exclude_id: UUID | None = None,
    ) -> bool: ...

    def get_by_id(self, rule_id: UUID) -> ApprovalRule | None: ...

    def list_for_company(
        self, company_id: UUID, include_deleted: bool = False,
    ) -> list[ApprovalRule]: ...

    def add(self, rule: ApprovalRule) -> ApprovalRule: ...

    def save(self, rule: ApprovalRule) -> ApprovalRule: ...


class ApprovalStepStore(Protocol):
    def get(self, step_id: UUID) -> ApprovalStep | None: ...

    def for_action(self, action_id: UUID) -> list[ApprovalStep]:
        """All steps of the action, freshly read, ordered by level."""
        ...

    def lock_chain(self, action_id: UUID) -> list[ApprovalStep]:
        """Like ``for_action``, but holds every step of the action locked
        until the transaction ends.  Resolutions on one chain serialize here.
        """
        ...

    def add_all(self, steps: Sequence[ApprovalStep]) -> list[ApprovalStep]:
        """Insert a whole chain atomically."""
        ...

    def compare_and_set_status(
        self,
        step_id: UUID,
        new_status: StepStatus,
        *,
        resolved_by_id: UUID,
        resolved_at: datetime,
        comments: str | None = None,
    ) -> bool:
        """Set status only if the step is still PENDING.

        Stamps ``approved_at`` or ``rejected_at`` from ``resolved_at``.
        Returns True iff exactly one row changed.
        """
        ...

    def assign_approver_if_pending(
        self, step_id: UUID, approver_id: UUID | None,
    ) -> bool:
        """Set the approver only while the step is still PENDING."""
        ...

    def pending_for_approver(
        self, approver_id: UUID, company_id: UUID,
    ) -> list[ApprovalStep]: ...

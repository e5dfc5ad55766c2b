"""
SQL stores (``approval_kernel.stores.sql``).

SQLAlchemy implementations of the store protocols in
``approval_kernel.domain.stores``.

Step resolution is a compare-and-swap::

    UPDATE approval_steps
       SET status = :new, ...
     WHERE id = :id AND status = 'pending'

and the affected row count decides the winner.  Every step read uses
``populate_existing`` so a session never serves a stale identity-map copy
after such an UPDATE.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from approval_kernel.domain.approval import (
    ApprovalRule,
    ApprovalStep,
    AuthorityLimit,
    StepStatus,
)
from approval_kernel.domain.lifecycle import RecordLifecycle
from approval_kernel.exceptions import ChainAlreadyExistsError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval_rule import ApprovalRuleModel
from approval_kernel.models.approval_step import ApprovalStepModel
from approval_kernel.models.authority_limit import AuthorityLimitModel
from approval_kernel.stores.base import BaseSqlStore

logger = get_logger("stores.sql")

_ACTIVE = RecordLifecycle.ACTIVE.value
_PENDING = StepStatus.PENDING.value


class SqlAuthorityLimitStore(BaseSqlStore):
    """Authority limits in the ``authority_limits`` table."""

    def get(self, role_key: str, company_id: UUID) -> AuthorityLimit | None:
        model = self.session.execute(
            select(AuthorityLimitModel).where(
                AuthorityLimitModel.role_key == role_key,
                AuthorityLimitModel.company_id == company_id,
                AuthorityLimitModel.lifecycle == _ACTIVE,
            )
        ).scalars().first()
        return model.to_dto() if model is not None else None

    def get_by_id(self, limit_id: UUID) -> AuthorityLimit | None:
        model = self.session.get(AuthorityLimitModel, limit_id)
        return model.to_dto() if model is not None else None

    def exists(
        self, role_key: str, company_id: UUID, exclude_id: UUID | None = None,
    ) -> bool:
        stmt = select(func.count()).select_from(AuthorityLimitModel).where(
            AuthorityLimitModel.role_key == role_key,
            AuthorityLimitModel.company_id == company_id,
            AuthorityLimitModel.lifecycle == _ACTIVE,
        )
        if exclude_id is not None:
            stmt = stmt.where(AuthorityLimitModel.id != exclude_id)
        return self.session.execute(stmt).scalar_one() > 0

    def list_for_company(
        self, company_id: UUID, include_deleted: bool = False,
    ) -> list[AuthorityLimit]:
        stmt = select(AuthorityLimitModel).where(
            AuthorityLimitModel.company_id == company_id,
        )
        if not include_deleted:
            stmt = stmt.where(AuthorityLimitModel.lifecycle == _ACTIVE)
        stmt = stmt.order_by(AuthorityLimitModel.role_key, AuthorityLimitModel.id)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def add(self, limit: AuthorityLimit) -> AuthorityLimit:
        model = AuthorityLimitModel.from_dto(limit)
        self.session.add(model)
        self.session.flush()
        return model.to_dto()

    def save(self, limit: AuthorityLimit) -> AuthorityLimit:
        model = self.session.get(AuthorityLimitModel, limit.id)
        model.apply(limit)
        self.session.flush()
        return model.to_dto()


class SqlApprovalRuleStore(BaseSqlStore):
    """Approval rules in the ``approval_rules`` table."""

    def matching_rules(
        self,
        company_id: UUID,
        cost: Decimal | None,
        priority: str | None = None,
        type: str | None = None,
        asset_criticality: str | None = None,
    ) -> list[ApprovalRule]:
        effective = cost if cost is not None else Decimal("0")
        m = ApprovalRuleModel
        stmt = (
            select(m)
            .where(
                m.company_id == company_id,
                m.lifecycle == _ACTIVE,
                or_(m.min_cost.is_(None), m.min_cost <= effective),
                or_(m.max_cost.is_(None), m.max_cost >= effective),
                or_(m.priority.is_(None), m.priority == priority),
                or_(m.type.is_(None), m.type == type),
                or_(
                    m.asset_criticality.is_(None),
                    m.asset_criticality == asset_criticality,
                ),
            )
            .order_by(m.approval_levels.desc(), m.name, m.id)
        )
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def active_for_company(self, company_id: UUID) -> list[ApprovalRule]:
        return self.list_for_company(company_id)

    def check_name_exists(
        self, name: str, company_id: UUID, exclude_id: UUID | None = None,
    ) -> bool:
        stmt = select(func.count()).select_from(ApprovalRuleModel).where(
            ApprovalRuleModel.name == name,
            ApprovalRuleModel.company_id == company_id,
            ApprovalRuleModel.lifecycle == _ACTIVE,
        )
        if exclude_id is not None:
            stmt = stmt.where(ApprovalRuleModel.id != exclude_id)
        return self.session.execute(stmt).scalar_one() > 0

    def get_by_id(self, rule_id: UUID) -> ApprovalRule | None:
        model = self.session.get(ApprovalRuleModel, rule_id)
        return model.to_dto() if model is not None else None

    def list_for_company(
        self, company_id: UUID, include_deleted: bool = False,
    ) -> list[ApprovalRule]:
        stmt = select(ApprovalRuleModel).where(
            ApprovalRuleModel.company_id == company_id,
        )
        if not include_deleted:
            stmt = stmt.where(ApprovalRuleModel.lifecycle == _ACTIVE)
        stmt = stmt.order_by(
            ApprovalRuleModel.approval_levels.desc(),
            ApprovalRuleModel.name,
            ApprovalRuleModel.id,
        )
        return [r.to_dto() for r in self.session.execute(stmt).scalars()]

    def add(self, rule: ApprovalRule) -> ApprovalRule:
        model = ApprovalRuleModel.from_dto(rule)
        self.session.add(model)
        self.session.flush()
        return model.to_dto()

    def save(self, rule: ApprovalRule) -> ApprovalRule:
        model = self.session.get(ApprovalRuleModel, rule.id)
        model.apply(rule)
        self.session.flush()
        return model.to_dto()


class SqlApprovalStepStore(BaseSqlStore):
    """Approval steps in the ``approval_steps`` table."""

    def get(self, step_id: UUID) -> ApprovalStep | None:
        model = self.session.execute(
            select(ApprovalStepModel)
            .where(ApprovalStepModel.id == step_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def for_action(self, action_id: UUID) -> list[ApprovalStep]:
        models = self.session.execute(
            select(ApprovalStepModel)
            .where(ApprovalStepModel.action_id == action_id)
            .order_by(ApprovalStepModel.level)
            .execution_options(populate_existing=True)
        ).scalars()
        return [m.to_dto() for m in models]

    def lock_chain(self, action_id: UUID) -> list[ApprovalStep]:
        # SELECT ... FOR UPDATE in level order; SQLite ignores the clause
        # and serializes writers itself.
        models = self.session.execute(
            select(ApprovalStepModel)
            .where(ApprovalStepModel.action_id == action_id)
            .order_by(ApprovalStepModel.level)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars()
        return [m.to_dto() for m in models]

    def add_all(self, steps: Sequence[ApprovalStep]) -> list[ApprovalStep]:
        models = [ApprovalStepModel.from_dto(s) for s in steps]
        self.session.add_all(models)
        try:
            self.session.flush()
        except SAIntegrityError as exc:
            # UNIQUE(action_id, level): another transaction created the chain
            action_id = steps[0].action_id
            logger.warning(
                "approval_chain_insert_conflict",
                extra={"action_id": str(action_id)},
            )
            raise ChainAlreadyExistsError(str(action_id), len(steps)) from exc
        return [m.to_dto() for m in models]

    def compare_and_set_status(
        self,
        step_id: UUID,
        new_status: StepStatus,
        *,
        resolved_by_id: UUID,
        resolved_at: datetime,
        comments: str | None = None,
    ) -> bool:
        values: dict = {
            "status": new_status.value,
            "resolved_by_id": resolved_by_id,
        }
        if new_status is StepStatus.APPROVED:
            values["approved_at"] = resolved_at
        else:
            values["rejected_at"] = resolved_at
        if comments is not None:
            values["comments"] = comments

        result = self.session.execute(
            update(ApprovalStepModel)
            .where(
                ApprovalStepModel.id == step_id,
                ApprovalStepModel.status == _PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def assign_approver_if_pending(
        self, step_id: UUID, approver_id: UUID | None,
    ) -> bool:
        result = self.session.execute(
            update(ApprovalStepModel)
            .where(
                ApprovalStepModel.id == step_id,
                ApprovalStepModel.status == _PENDING,
            )
            .values(approver_id=approver_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def pending_for_approver(
        self, approver_id: UUID, company_id: UUID,
    ) -> list[ApprovalStep]:
        models = self.session.execute(
            select(ApprovalStepModel)
            .where(
                ApprovalStepModel.approver_id == approver_id,
                ApprovalStepModel.company_id == company_id,
                ApprovalStepModel.status == _PENDING,
            )
            .order_by(ApprovalStepModel.created_at, ApprovalStepModel.level)
            .execution_options(populate_existing=True)
        ).scalars()
        return [m.to_dto() for m in models]

"""
Module: approval_kernel.selectors.approval_selector
Responsibility: Paginated, filtered reads of approval steps, approval rules
    and authority limits, and the "waiting on me" query for approvers.
Architecture position: Kernel > Selectors.  Read-only.

Every query is scoped to the caller's company.  Step listings require the
``work_orders.view`` capability.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select

from approval_kernel.domain.approval import (
    ApprovalRule,
    ApprovalStep,
    AuthorityLimit,
    StepStatus,
)
from approval_kernel.domain.capabilities import WORK_ORDERS_VIEW, CallerSession
from approval_kernel.domain.lifecycle import RecordLifecycle
from approval_kernel.exceptions import (
    MissingCompanyContextError,
    PermissionDeniedError,
)
from approval_kernel.models.approval_rule import ApprovalRuleModel
from approval_kernel.models.approval_step import ApprovalStepModel
from approval_kernel.models.authority_limit import AuthorityLimitModel
from approval_kernel.selectors.base import BaseSelector, Page, check_paging


@dataclass(frozen=True)
class StepFilter:
    """Optional filters for ``list_steps``.  Unset fields do not filter."""

    action_id: UUID | None = None
    approver_id: UUID | None = None
    status: StepStatus | None = None
    level: int | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None


class ApprovalSelector(BaseSelector):
    """Read-only queries over approval data."""

    def list_steps(
        self,
        caller: CallerSession,
        filters: StepFilter | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[ApprovalStep]:
        """Steps of the caller's company, newest first."""
        check_paging(page, page_size)
        company_id = _company_of(caller)
        if not caller.can(WORK_ORDERS_VIEW):
            raise PermissionDeniedError(str(caller.user_id), WORK_ORDERS_VIEW)

        f = filters or StepFilter()
        m = ApprovalStepModel
        stmt = select(m).where(m.company_id == company_id)
        if f.action_id is not None:
            stmt = stmt.where(m.action_id == f.action_id)
        if f.approver_id is not None:
            stmt = stmt.where(m.approver_id == f.approver_id)
        if f.status is not None:
            stmt = stmt.where(m.status == StepStatus(f.status).value)
        if f.level is not None:
            stmt = stmt.where(m.level == f.level)
        if f.created_from is not None:
            stmt = stmt.where(m.created_at >= f.created_from)
        if f.created_to is not None:
            stmt = stmt.where(m.created_at <= f.created_to)

        stmt = (
            stmt.order_by(m.created_at.desc(), m.action_id, m.level)
            .execution_options(populate_existing=True)
        )
        return self._paginate(stmt, page, page_size)

    def pending_for_approver(self, caller: CallerSession) -> list[ApprovalStep]:
        """Pending steps assigned to the caller, oldest first."""
        company_id = _company_of(caller)
        m = ApprovalStepModel
        stmt = (
            select(m)
            .where(
                m.approver_id == caller.user_id,
                m.company_id == company_id,
                m.status == StepStatus.PENDING.value,
            )
            .order_by(m.created_at, m.level)
            .execution_options(populate_existing=True)
        )
        return [row.to_dto() for row in self.session.execute(stmt).scalars()]

    def list_rules(
        self,
        caller: CallerSession,
        include_deleted: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[ApprovalRule]:
        check_paging(page, page_size)
        m = ApprovalRuleModel
        stmt = select(m).where(m.company_id == _company_of(caller))
        if not include_deleted:
            stmt = stmt.where(m.lifecycle == RecordLifecycle.ACTIVE.value)
        stmt = stmt.order_by(m.approval_levels.desc(), m.name, m.id)
        return self._paginate(stmt, page, page_size)

    def list_authority_limits(
        self,
        caller: CallerSession,
        include_deleted: bool = False,
        page: int = 1,
        page_size: int = 20,
    ) -> Page[AuthorityLimit]:
        check_paging(page, page_size)
        m = AuthorityLimitModel
        stmt = select(m).where(m.company_id == _company_of(caller))
        if not include_deleted:
            stmt = stmt.where(m.lifecycle == RecordLifecycle.ACTIVE.value)
        stmt = stmt.order_by(m.role_key, m.id)
        return self._paginate(stmt, page, page_size)

    def _paginate(self, stmt: Select, page: int, page_size: int) -> Page:
        total = self.session.execute(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        ).scalar_one()
        rows = self.session.execute(
            stmt.offset((page - 1) * page_size).limit(page_size)
        ).scalars()
        return Page(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            page_size=page_size,
        )


def _company_of(caller: CallerSession) -> UUID:
    if caller.company_id is None:
        raise MissingCompanyContextError(str(caller.user_id))
    return caller.company_id

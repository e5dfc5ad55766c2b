"""Tests for ApprovalSelector."""

from uuid import uuid4

import pytest

from approval_kernel.domain.approval import StepStatus
from approval_kernel.domain.capabilities import APPROVAL_OVERRIDE, WORK_ORDERS_VIEW
from approval_kernel.exceptions import (
    ApprovalValidationError,
    MissingCompanyContextError,
    PermissionDeniedError,
)
from approval_kernel.selectors.approval_selector import ApprovalSelector, StepFilter
from approval_kernel.selectors.base import Page
from approval_kernel.services.approval_chain_service import ApprovalChainService
from approval_kernel.services.approval_processor import ApprovalProcessor
from approval_kernel.services.approval_rule_service import ApprovalRuleService
from approval_kernel.services.authority_limit_service import AuthorityLimitService


@pytest.fixture
def selector(session):
    return ApprovalSelector(session)


@pytest.fixture
def sql_chains(session, deterministic_clock):
    return ApprovalChainService.for_session(session, deterministic_clock)


@pytest.fixture
def sql_processor(session, deterministic_clock):
    return ApprovalProcessor.for_session(session, deterministic_clock)


class TestPage:
    """Tests for the Page container."""

    def test_page_arithmetic(self):
        page = Page(items=(1, 2), total=5, page=1, page_size=2)
        assert page.total_pages == 3
        assert page.has_next

    def test_empty(self):
        page = Page(items=(), total=0, page=1, page_size=20)
        assert page.total_pages == 0
        assert not page.has_next


class TestListSteps:
    """Tests for list_steps."""

    def test_requires_view_capability(self, selector, make_caller):
        with pytest.raises(PermissionDeniedError):
            selector.list_steps(make_caller(APPROVAL_OVERRIDE))

    def test_requires_company(self, selector, make_caller):
        with pytest.raises(MissingCompanyContextError):
            selector.list_steps(make_caller(WORK_ORDERS_VIEW, company_id=None))

    @pytest.mark.parametrize("page, page_size", [(0, 20), (1, 0), (1, 201)])
    def test_paging_bounds(self, selector, admin, page, page_size):
        with pytest.raises(ApprovalValidationError):
            selector.list_steps(admin, page=page, page_size=page_size)

    def test_filters_and_scoping(
        self, selector, sql_chains, sql_processor, admin, company_id,
        other_company_id, deterministic_clock,
    ):
        first = sql_chains.create_chain(uuid4(), 3, company_id=company_id)
        deterministic_clock.advance(60)
        sql_chains.create_chain(uuid4(), 1, company_id=company_id)
        sql_chains.create_chain(uuid4(), 2, company_id=other_company_id)
        sql_processor.approve(first.steps[0].id, admin)

        everything = selector.list_steps(admin)
        assert everything.total == 4

        of_first = selector.list_steps(admin, StepFilter(action_id=first.action_id))
        assert [s.level for s in of_first.items] == [1, 2, 3]

        approved = selector.list_steps(admin, StepFilter(status=StepStatus.APPROVED))
        assert [s.id for s in approved.items] == [first.steps[0].id]

        level_two = selector.list_steps(admin, StepFilter(level=2))
        assert level_two.total == 1

    def test_newest_first_and_pagination(
        self, selector, sql_chains, admin, company_id, deterministic_clock,
    ):
        actions = []
        for _ in range(5):
            actions.append(
                sql_chains.create_chain(uuid4(), 1, company_id=company_id).action_id
            )
            deterministic_clock.advance(60)

        first_page = selector.list_steps(admin, page=1, page_size=2)
        last_page = selector.list_steps(admin, page=3, page_size=2)

        assert first_page.total == 5
        assert first_page.total_pages == 3
        assert first_page.has_next
        assert [s.action_id for s in first_page.items] == [actions[4], actions[3]]
        assert [s.action_id for s in last_page.items] == [actions[0]]
        assert not last_page.has_next

    def test_created_window(
        self, selector, sql_chains, admin, company_id, deterministic_clock,
    ):
        sql_chains.create_chain(uuid4(), 1, company_id=company_id)
        deterministic_clock.advance(3600)
        window_start = deterministic_clock.now()
        late = sql_chains.create_chain(uuid4(), 1, company_id=company_id)

        page = selector.list_steps(admin, StepFilter(created_from=window_start))

        assert [s.action_id for s in page.items] == [late.action_id]


class TestPendingForApprover:
    """Tests for pending_for_approver."""

    def test_only_own_pending_steps(
        self, selector, sql_chains, sql_processor, company_id, make_caller,
        override_caller,
    ):
        me = make_caller(WORK_ORDERS_VIEW)
        chain = sql_chains.create_chain(
            uuid4(), 2, company_id=company_id, approver_ids=[me.user_id, me.user_id],
        )
        sql_chains.create_chain(uuid4(), 1, company_id=company_id, approver_ids=[uuid4()])
        sql_processor.approve(chain.steps[0].id, me)

        waiting = selector.pending_for_approver(me)

        assert [s.id for s in waiting] == [chain.steps[1].id]


class TestConfigurationListings:
    """Tests for list_rules and list_authority_limits."""

    def test_rules_and_limits(self, selector, session, admin, deterministic_clock):
        rules = ApprovalRuleService.for_session(session, deterministic_clock)
        limits = AuthorityLimitService.for_session(session, deterministic_clock)
        rules.create(admin, name="small", approval_levels=1)
        big = rules.create(admin, name="big", approval_levels=3)
        rules.delete(admin, big.id)
        limits.create(admin, role_key="SUPERVISOR", max_direct_authorization=1000)
        limits.create(admin, role_key="MANAGER", max_direct_authorization=10000)

        active_rules = selector.list_rules(admin)
        all_rules = selector.list_rules(admin, include_deleted=True)
        limit_page = selector.list_authority_limits(admin)

        assert [r.name for r in active_rules.items] == ["small"]
        assert [r.name for r in all_rules.items] == ["big", "small"]
        assert [lim.role_key for lim in limit_page.items] == ["MANAGER", "SUPERVISOR"]

"""
Tests for ApprovalOrchestrator and configuration seeding.

The governed action is a work order held by InMemoryGovernedActions; the
provider records every resolution it applies, so "exactly once" is checked
against its transition log.
"""

from dataclasses import replace
from uuid import UUID, uuid4

import pytest

from approval_config import get_active_config
from approval_config.schema import EngineSettings
from approval_kernel.domain.approval import ApprovalOrdering, ChainResolution
from approval_kernel.domain.capabilities import APPROVAL_OVERRIDE
from approval_kernel.exceptions import (
    ChainAlreadyExistsError,
    GovernedActionNotFoundError,
    OutOfOrderApprovalError,
)
from approval_kernel.logging_config import LogContext
from approval_kernel.stores.memory import InMemoryGovernedActions
from approval_services.orchestrator import ApprovalOrchestrator
from approval_services.seeding import seed_from_config

DEMO_COMPANY = UUID("7c9e6679-7425-40de-944b-e07fc1f90ae7")
PENDING = InMemoryGovernedActions.STATUS_PENDING_APPROVAL


@pytest.fixture
def orchestrator(evaluator, chain_service, processor, provider):
    return ApprovalOrchestrator(evaluator, chain_service, processor, provider)


@pytest.fixture
def aggregate_orchestrator(evaluator, chain_service, processor, provider):
    return ApprovalOrchestrator(
        evaluator, chain_service, processor, provider,
        EngineSettings(evaluation_strategy="aggregate"),
    )


class TestSubmitAndDecide:
    """Submission and resolution against the in-memory stores."""

    def test_supervisor_high_priority_work_order(
        self, orchestrator, provider, register_action, add_limit, add_rule,
        override_caller,
    ):
        add_limit("SUPERVISOR", 1000)
        add_rule("R1", 2, min_cost=2000, priority="HIGH")
        wo42 = register_action(cost=5000, priority="HIGH", creator_role_key="SUPERVISOR")

        submitted = orchestrator.submit_for_approval(wo42.action_id)

        assert submitted.required is True
        assert submitted.levels == 2
        assert submitted.reason == "R1"
        assert provider.status[wo42.action_id] == PENDING
        step1, step2 = submitted.chain.steps

        orchestrator.approve(step1.id, override_caller)
        assert provider.transitions_for(wo42.action_id) == []
        assert provider.status[wo42.action_id] == PENDING

        final = orchestrator.approve(step2.id, override_caller)
        assert final.resolution is ChainResolution.APPROVED
        assert provider.transitions_for(wo42.action_id) == [ChainResolution.APPROVED]
        assert provider.status[wo42.action_id] == "approved"

    @pytest.mark.parametrize("level", [1, 2, 3])
    def test_rejection_at_any_level_rejects_work_order(
        self, orchestrator, provider, register_action, add_limit, add_rule,
        override_caller, level,
    ):
        add_limit("SUPERVISOR", 0)
        add_rule("three", 3)
        order = register_action(cost=10, creator_role_key="SUPERVISOR")
        chain = orchestrator.submit_for_approval(order.action_id).chain
        if level > 1:
            orchestrator.approve(chain.steps[0].id, override_caller)

        orchestrator.reject(chain.steps[level - 1].id, override_caller, "no budget")

        assert provider.transitions_for(order.action_id) == [ChainResolution.REJECTED]
        assert provider.status[order.action_id] == "rejected"

    def test_within_authority_opens_no_chain(
        self, orchestrator, provider, register_action, add_limit, step_store,
    ):
        add_limit("PLANT_MANAGER", 50000)
        order = register_action(cost=4000, creator_role_key="PLANT_MANAGER")

        result = orchestrator.submit_for_approval(order.action_id)

        assert result.required is False
        assert result.chain.can_proceed
        assert step_store.for_action(order.action_id) == []
        assert provider.status[order.action_id] == "open"
        assert provider.transitions_for(order.action_id) == []

    def test_matched_rule_sets_qa_flag(
        self, orchestrator, provider, register_action, add_limit, add_rule,
    ):
        add_limit("TECHNICIAN", 0)
        add_rule("Critical asset work", 2, asset_criticality="CRITICAL", requires_qa=True)
        order = register_action(
            cost=500, asset_criticality="CRITICAL", creator_role_key="TECHNICIAN",
        )

        result = orchestrator.submit_for_approval(order.action_id)

        assert result.requires_qa is True
        assert provider.requires_qa[order.action_id] is True

    def test_approvers_passed_through(
        self, orchestrator, register_action, add_limit, add_rule,
    ):
        add_limit("SUPERVISOR", 0)
        add_rule("two", 2)
        order = register_action(cost=1, creator_role_key="SUPERVISOR")
        approver = uuid4()

        chain = orchestrator.submit_for_approval(
            order.action_id, approver_ids=[approver],
        ).chain

        assert chain.steps[0].approver_id == approver
        assert chain.steps[1].approver_id is None

    def test_resubmission_refused(
        self, orchestrator, register_action, add_limit,
    ):
        add_limit("SUPERVISOR", 0)
        order = register_action(cost=1, creator_role_key="SUPERVISOR")
        orchestrator.submit_for_approval(order.action_id)

        with pytest.raises(ChainAlreadyExistsError):
            orchestrator.submit_for_approval(order.action_id)

    def test_unknown_action(self, orchestrator):
        with pytest.raises(GovernedActionNotFoundError):
            orchestrator.submit_for_approval(uuid4())

    def test_logs_submission(
        self, orchestrator, register_action, add_limit, captured_logs,
    ):
        add_limit("SUPERVISOR", 0)
        order = register_action(cost=1, creator_role_key="SUPERVISOR")

        orchestrator.submit_for_approval(order.action_id)

        submitted = [r for r in captured_logs() if r["message"] == "approval_submitted"]
        assert len(submitted) == 1
        assert submitted[0]["action_id"] == str(order.action_id)
        assert submitted[0]["levels"] == 1
        assert submitted[0]["reason"] == "no_matching_rule"


class TestCorrelation:
    """Every submit and decision runs under a correlation id."""

    @pytest.fixture
    def pending_order(self, orchestrator, register_action, add_limit, add_rule):
        add_limit("SUPERVISOR", 0)
        add_rule("two", 2)
        order = register_action(cost=1, creator_role_key="SUPERVISOR")
        return orchestrator.submit_for_approval(order.action_id, correlation_id="req-7")

    def test_given_id_on_submission_lines(
        self, orchestrator, register_action, add_limit, captured_logs,
    ):
        add_limit("SUPERVISOR", 0)
        order = register_action(cost=1, creator_role_key="SUPERVISOR")

        orchestrator.submit_for_approval(order.action_id, correlation_id="req-7")

        lines = [
            r for r in captured_logs()
            if r["message"] in ("approval_chain_created", "approval_submitted")
        ]
        assert len(lines) == 2
        assert {r["correlation_id"] for r in lines} == {"req-7"}
        assert "correlation_id" not in LogContext.get_all()

    def test_fresh_id_per_call(
        self, orchestrator, pending_order, override_caller, captured_logs,
    ):
        orchestrator.approve(pending_order.chain.steps[0].id, override_caller)
        orchestrator.approve(pending_order.chain.steps[1].id, override_caller)

        approved = [r for r in captured_logs() if r["message"] == "approval_step_approved"]
        ids = [r["correlation_id"] for r in approved]
        assert len(ids) == 2
        assert ids[0] != ids[1]
        assert "req-7" not in ids
        applied = [r for r in captured_logs() if r["message"] == "approval_resolution_applied"]
        assert applied[0]["correlation_id"] == ids[1]

    def test_inherits_bound_id(
        self, orchestrator, pending_order, override_caller, captured_logs,
    ):
        with LogContext.bind(correlation_id="outer-request"):
            orchestrator.reject(pending_order.chain.steps[0].id, override_caller, "no")

        rejected = [r for r in captured_logs() if r["message"] == "approval_step_rejected"]
        assert rejected[0]["correlation_id"] == "outer-request"


class TestAggregateStrategy:
    """Submission with evaluation_strategy = aggregate."""

    def test_ignores_authority_and_ors_qa(
        self, aggregate_orchestrator, provider, register_action, add_limit, add_rule,
    ):
        add_limit("PLANT_MANAGER", 1_000_000)
        add_rule("critical", 1, asset_criticality="CRITICAL", requires_qa=True)
        add_rule("big", 3, min_cost=10000)
        order = register_action(
            cost=20000, asset_criticality="CRITICAL", creator_role_key="PLANT_MANAGER",
        )

        result = aggregate_orchestrator.submit_for_approval(order.action_id)

        assert result.required is True
        assert result.levels == 3
        assert result.requires_qa is True
        assert result.reason == "big, critical"
        assert provider.requires_qa[order.action_id] is True

    def test_no_matching_rule_needs_nothing(
        self, aggregate_orchestrator, register_action,
    ):
        order = register_action(cost=999999)
        assert aggregate_orchestrator.submit_for_approval(order.action_id).required is False


class TestWithDatabase:
    """The bundled configuration seeded into SQL, end to end."""

    @pytest.fixture
    def config(self, monkeypatch):
        monkeypatch.delenv("APPROVAL_CONFIG_PATH", raising=False)
        return get_active_config()

    @pytest.fixture
    def demo_admin(self, make_caller):
        return make_caller(APPROVAL_OVERRIDE, company_id=DEMO_COMPANY)

    def test_seeding_is_idempotent(self, session, config):
        first = seed_from_config(session, config)
        second = seed_from_config(session, config)

        assert len(first[0].limits_created) == 4
        assert len(first[0].rules_created) == 4
        assert second[0].limits_created == []
        assert second[0].rules_created == []
        assert len(second[0].rules_skipped) == 4

    def test_seeded_rules_drive_a_work_order(
        self, session, config, provider, register_action, demo_admin,
        deterministic_clock,
    ):
        seed_from_config(session, config)
        orchestrator = ApprovalOrchestrator.for_session(
            session, provider, config, deterministic_clock,
        )
        order = register_action(
            cost=5000, priority="HIGH", creator_role_key="SUPERVISOR",
            company_id=DEMO_COMPANY,
        )

        submitted = orchestrator.submit_for_approval(order.action_id)
        assert submitted.levels == 2
        assert submitted.reason == "High priority above 2000"

        for step in submitted.chain.steps:
            orchestrator.approve(step.id, demo_admin)
        session.commit()

        assert provider.transitions_for(order.action_id) == [ChainResolution.APPROVED]

    def test_critical_asset_requires_qa(
        self, session, config, provider, register_action, deterministic_clock,
    ):
        seed_from_config(session, config)
        orchestrator = ApprovalOrchestrator.for_session(
            session, provider, config, deterministic_clock,
        )
        order = register_action(
            cost=500, asset_criticality="CRITICAL", creator_role_key="TECHNICIAN",
            company_id=DEMO_COMPANY,
        )

        result = orchestrator.submit_for_approval(order.action_id)

        assert result.levels == 2
        assert result.requires_qa is True

    def test_strict_ordering_from_config(
        self, session, config, provider, register_action, demo_admin,
        deterministic_clock,
    ):
        strict = replace(
            config, engine=replace(config.engine, ordering=ApprovalOrdering.STRICT),
        )
        seed_from_config(session, strict)
        orchestrator = ApprovalOrchestrator.for_session(
            session, provider, strict, deterministic_clock,
        )
        order = register_action(
            cost=30000, creator_role_key="MAINTENANCE_MANAGER", company_id=DEMO_COMPANY,
        )
        chain = orchestrator.submit_for_approval(order.action_id).chain
        assert chain.max_level == 3

        with pytest.raises(OutOfOrderApprovalError):
            orchestrator.approve(chain.steps[2].id, demo_admin)

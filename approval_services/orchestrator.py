"""
ApprovalOrchestrator -- the governed-action owner's side of the engine.

Responsibility:
    Wires the evaluator, chain service and processor to a
    ``GovernedActionProvider``:

    * ``submit_for_approval`` evaluates an action, creates its chain and
      marks the action as awaiting sign-off.
    * ``decide`` resolves one step and, when the chain reaches a terminal
      resolution, applies it to the governed action.

Architecture position:
    Services -- outer orchestration.  Imports from ``approval_kernel`` and
    ``approval_config``.  Never commits: the caller owns the transaction.

Notes:
    On SQL the chain lock makes exactly one of two concurrent final
    approvals report APPROVED.  The in-memory step store has no
    transactions, so there both can; provider implementations must make
    ``apply_resolution`` idempotent.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_config.schema import ApprovalEngineConfig, EngineSettings
from approval_kernel.domain.approval import (
    ApprovalChain,
    GovernedActionProvider,
    StepDecision,
)
from approval_kernel.domain.capabilities import CallerSession
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.evaluator import ApprovalEvaluator, EvaluatorSettings
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.approval_chain_service import ApprovalChainService
from approval_kernel.services.approval_processor import ApprovalProcessor
from approval_kernel.stores.sql import (
    SqlApprovalRuleStore,
    SqlApprovalStepStore,
    SqlAuthorityLimitStore,
)

logger = get_logger("services.orchestrator")


@dataclass(frozen=True)
class SubmissionResult:
    """What submitting an action for approval produced."""

    action_id: UUID
    required: bool
    levels: int
    requires_qa: bool
    reason: str | None
    chain: ApprovalChain


class ApprovalOrchestrator:
    """Submit governed actions for approval and apply decisions to them."""

    def __init__(
        self,
        evaluator: ApprovalEvaluator,
        chains: ApprovalChainService,
        processor: ApprovalProcessor,
        provider: GovernedActionProvider,
        settings: EngineSettings | None = None,
    ) -> None:
        self._evaluator = evaluator
        self._chains = chains
        self._processor = processor
        self._provider = provider
        self._settings = settings or EngineSettings()

    @classmethod
    def for_session(
        cls,
        session: Session,
        provider: GovernedActionProvider,
        config: ApprovalEngineConfig | None = None,
        clock: Clock | None = None,
    ) -> ApprovalOrchestrator:
        settings = config.engine if config is not None else EngineSettings()
        steps = SqlApprovalStepStore(session)
        evaluator = ApprovalEvaluator(
            SqlAuthorityLimitStore(session),
            SqlApprovalRuleStore(session),
            evaluator_settings(settings),
        )
        return cls(
            evaluator,
            ApprovalChainService(steps, clock),
            ApprovalProcessor(steps, clock, settings.ordering),
            provider,
            settings,
        )

    def submit_for_approval(
        self,
        action_id: UUID,
        *,
        approver_ids: Sequence[UUID | None] | None = None,
        correlation_id: str | None = None,
    ) -> SubmissionResult:
        """Evaluate the action and, if sign-off is needed, open its chain."""
        action = self._provider.get_action(action_id)

        with LogContext.bind(
            correlation_id=_correlation(correlation_id),
            company_id=str(action.company_id),
            action_id=str(action_id),
        ):
            if self._settings.evaluation_strategy == "aggregate":
                aggregate = self._evaluator.evaluate_aggregate(
                    action.company_id, action.criteria,
                )
                required = aggregate.needs_approval
                levels = aggregate.approval_levels
                requires_qa = aggregate.requires_qa
                reason = ", ".join(aggregate.matched_rule_names) or None
            else:
                requirement = self._evaluator.evaluate(
                    action.company_id,
                    action.cost,
                    priority=action.priority,
                    type=action.type,
                    asset_criticality=action.asset_criticality,
                    creator_role_key=action.creator_role_key,
                )
                required = requirement.required
                levels = requirement.levels
                requires_qa = (
                    requirement.matched_rule.requires_qa
                    if requirement.matched_rule is not None else False
                )
                reason = requirement.reason

            if not required:
                logger.info("approval_not_required", extra={"reason": reason})
                return SubmissionResult(
                    action_id=action_id,
                    required=False,
                    levels=0,
                    requires_qa=False,
                    reason=reason,
                    chain=ApprovalChain(action_id=action_id),
                )

            chain = self._chains.create_chain(
                action_id, levels,
                company_id=action.company_id,
                approver_ids=approver_ids,
            )
            self._provider.mark_pending_approval(action_id, requires_qa)
            logger.info(
                "approval_submitted",
                extra={
                    "levels": levels,
                    "requires_qa": requires_qa,
                    "reason": reason,
                    "strategy": self._settings.evaluation_strategy,
                },
            )
            return SubmissionResult(
                action_id=action_id,
                required=True,
                levels=levels,
                requires_qa=requires_qa,
                reason=reason,
                chain=chain,
            )

    def decide(
        self,
        step_id: UUID,
        caller: CallerSession,
        *,
        approve: bool,
        comments: str | None = None,
        correlation_id: str | None = None,
    ) -> StepDecision:
        """Approve or reject a step, then apply a terminal resolution."""
        with LogContext.bind(correlation_id=_correlation(correlation_id)):
            if approve:
                decision = self._processor.approve(step_id, caller, comments)
            else:
                decision = self._processor.reject(step_id, caller, comments)

            if decision.is_terminal:
                action_id = decision.chain.action_id
                self._provider.apply_resolution(action_id, decision.resolution)
                logger.info(
                    "approval_resolution_applied",
                    extra={
                        "action_id": str(action_id),
                        "resolution": decision.resolution.value,
                    },
                )
        return decision

    def approve(
        self,
        step_id: UUID,
        caller: CallerSession,
        comments: str | None = None,
        *,
        correlation_id: str | None = None,
    ) -> StepDecision:
        return self.decide(
            step_id, caller, approve=True, comments=comments,
            correlation_id=correlation_id,
        )

    def reject(
        self,
        step_id: UUID,
        caller: CallerSession,
        comments: str | None,
        *,
        correlation_id: str | None = None,
    ) -> StepDecision:
        return self.decide(
            step_id, caller, approve=False, comments=comments,
            correlation_id=correlation_id,
        )


def _correlation(correlation_id: str | None) -> str:
    """The given id, else the one already bound, else a fresh one."""
    return (
        correlation_id
        or LogContext.get_all().get("correlation_id")
        or str(uuid4())
    )


def evaluator_settings(settings: EngineSettings) -> EvaluatorSettings:
    """Translate engine configuration into kernel evaluator settings."""
    return EvaluatorSettings(
        missing_limit_policy=settings.missing_limit_policy,
        default_levels_without_rule=settings.default_levels_without_rule,
    )

"""Pure domain layer of the approval kernel: value objects, protocols, evaluator."""

from approval_kernel.domain.approval import (
    STEP_TRANSITIONS,
    TERMINAL_STEP_STATUSES,
    ActionCriteria,
    AggregateRequirement,
    ApprovalChain,
    ApprovalOrdering,
    ApprovalRequirement,
    ApprovalRule,
    ApprovalStep,
    AuthorityLimit,
    ChainResolution,
    GovernedAction,
    GovernedActionProvider,
    MissingLimitPolicy,
    StepDecision,
    StepStatus,
    order_rules,
    rule_matches,
)
from approval_kernel.domain.capabilities import CallerSession, CapabilitySet
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.evaluator import ApprovalEvaluator, EvaluatorSettings
from approval_kernel.domain.lifecycle import RecordLifecycle

__all__ = [
    "STEP_TRANSITIONS",
    "TERMINAL_STEP_STATUSES",
    "ActionCriteria",
    "AggregateRequirement",
    "ApprovalChain",
    "ApprovalEvaluator",
    "ApprovalOrdering",
    "ApprovalRequirement",
    "ApprovalRule",
    "ApprovalStep",
    "AuthorityLimit",
    "CallerSession",
    "CapabilitySet",
    "ChainResolution",
    "Clock",
    "DeterministicClock",
    "EvaluatorSettings",
    "GovernedAction",
    "GovernedActionProvider",
    "MissingLimitPolicy",
    "RecordLifecycle",
    "StepDecision",
    "StepStatus",
    "SystemClock",
    "order_rules",
    "rule_matches",
]

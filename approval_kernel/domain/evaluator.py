"""
Approval evaluator (``approval_kernel.domain.evaluator``).

Decides whether a governed action needs sign-off and how many levels.
Two independent strategies:

``evaluate``
    Authority-gated.  The creator's role ceiling is consulted first; only
    an action above the ceiling is matched against the rules.

``evaluate_aggregate``
    Role-agnostic.  Every active rule of the company is considered; the
    result is the maximum level count and the OR of the QA flags.

Both are read-only: they call store readers and nothing else.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from approval_kernel.domain.approval import (
    ActionCriteria,
    AggregateRequirement,
    ApprovalRequirement,
    MissingLimitPolicy,
    order_rules,
    rule_matches,
)
from approval_kernel.domain.stores import ApprovalRuleStore, AuthorityLimitStore
from approval_kernel.domain.values import to_optional_amount

REASON_NO_AUTHORITY_LIMIT = "no_authority_limit"
REASON_WITHIN_AUTHORITY = "within_authority"
REASON_NO_MATCHING_RULE = "no_matching_rule"


@dataclass(frozen=True)
class EvaluatorSettings:
    missing_limit_policy: MissingLimitPolicy = MissingLimitPolicy.FAIL_OPEN
    default_levels_without_rule: int = 1


class ApprovalEvaluator:
    """Pure evaluation over the authority-limit and rule stores."""

    def __init__(
        self,
        limits: AuthorityLimitStore,
        rules: ApprovalRuleStore,
        settings: EvaluatorSettings | None = None,
    ) -> None:
        self._limits = limits
        self._rules = rules
        self._settings = settings or EvaluatorSettings()

    @property
    def settings(self) -> EvaluatorSettings:
        return self._settings

    def evaluate(
        self,
        company_id: UUID,
        cost: Decimal | int | str | None,
        priority: str | None = None,
        type: str | None = None,
        asset_criticality: str | None = None,
        creator_role_key: str | None = None,
    ) -> ApprovalRequirement:
        """Authority-gated evaluation.

        1. No active limit for the creator's role: not required (fail-open),
           or fall through to rule matching (fail-closed).
        2. cost <= max_direct_authorization: not required.
        3. No matching rule: required with the default level count.
        4. Otherwise the highest-level matching rule decides.
        """
        amount = to_optional_amount(cost, "cost")
        effective = amount if amount is not None else Decimal("0")

        limit = None
        if creator_role_key:
            limit = self._limits.get(creator_role_key, company_id)

        if limit is None:
            if self._settings.missing_limit_policy is MissingLimitPolicy.FAIL_OPEN:
                return ApprovalRequirement(
                    required=False, reason=REASON_NO_AUTHORITY_LIMIT,
                )
        elif effective <= limit.max_direct_authorization:
            return ApprovalRequirement(required=False, reason=REASON_WITHIN_AUTHORITY)

        matches = self._rules.matching_rules(
            company_id,
            amount,
            priority=priority,
            type=type,
            asset_criticality=asset_criticality,
        )
        if not matches:
            return ApprovalRequirement(
                required=True,
                levels=self._settings.default_levels_without_rule,
                reason=REASON_NO_MATCHING_RULE,
            )

        top = order_rules(matches)[0]
        return ApprovalRequirement(
            required=True,
            levels=top.approval_levels,
            reason=top.name,
            matched_rule=top,
        )

    def evaluate_aggregate(
        self, company_id: UUID, criteria: ActionCriteria,
    ) -> AggregateRequirement:
        """Role-agnostic evaluation across every active rule.

        A missing cost is treated as zero.
        """
        matched = [
            rule
            for rule in order_rules(self._rules.active_for_company(company_id))
            if rule_matches(rule, criteria)
        ]
        if not matched:
            return AggregateRequirement(needs_approval=False)
        return AggregateRequirement(
            needs_approval=True,
            approval_levels=max(r.approval_levels for r in matched),
            requires_qa=any(r.requires_qa for r in matched),
            matched_rule_names=tuple(r.name for r in matched),
        )

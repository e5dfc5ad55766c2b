"""
approval_kernel.services.approval_processor -- The approve/reject state machine.

Responsibility:
    The only component that resolves approval steps.  Validates the caller,
    writes the decision with a compare-and-swap on ``status = 'pending'``,
    re-reads the whole chain and returns the ``ChainResolution`` that the
    owner of the governed action must apply.

Architecture position:
    Kernel > Services.  May import from domain/, stores/, exceptions.
    Knows nothing about the governed action's own schema.

Invariants enforced:
    - A step moves pending -> approved | rejected exactly once.
    - Authorization: the override capability, or being the assigned
      approver.
    - Tenant: the step must belong to the caller's company.
    - A rejection halts the chain; later decisions on it are refused.
    - Under ``ApprovalOrdering.STRICT`` a level is approved only after
      every lower level.  Rejection is allowed at any level.
    - The chain's rows are locked (SELECT ... FOR UPDATE) before the write,
      so concurrent resolutions on one chain serialize and the completion
      check, which re-reads the chain after the write, sees every earlier
      decision.

Failure modes:
    - ApprovalStepNotFoundError, AccessDeniedError, MissingCompanyContextError.
    - PermissionDeniedError when the caller is neither override holder nor
      assigned approver.
    - CommentsRequiredError on reject without comments.
    - InvalidStepStateError when the step is already resolved.
    - ChainAlreadyResolvedError when another step was rejected.
    - OutOfOrderApprovalError under strict ordering.
    - StaleApprovalError when a concurrent resolver won the CAS.
"""

from __future__ import annotations

from typing import NoReturn
from uuid import UUID

from sqlalchemy.orm import Session

from approval_kernel.domain.approval import (
    ApprovalChain,
    ApprovalOrdering,
    ApprovalStep,
    ChainResolution,
    StepDecision,
    StepStatus,
)
from approval_kernel.domain.capabilities import APPROVAL_OVERRIDE, CallerSession
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.stores import ApprovalStepStore
from approval_kernel.exceptions import (
    ApprovalStepNotFoundError,
    ChainAlreadyResolvedError,
    CommentsRequiredError,
    InvalidStepStateError,
    OutOfOrderApprovalError,
    PermissionDeniedError,
    StaleApprovalError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.base import BaseApprovalService
from approval_kernel.stores.sql import SqlApprovalStepStore

logger = get_logger("services.approval_processor")


class ApprovalProcessor(BaseApprovalService):
    """Resolves approval steps."""

    def __init__(
        self,
        steps: ApprovalStepStore,
        clock: Clock | None = None,
        ordering: ApprovalOrdering = ApprovalOrdering.ANY,
    ) -> None:
        super().__init__(clock)
        self._steps = steps
        self._ordering = ordering

    @classmethod
    def for_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        ordering: ApprovalOrdering = ApprovalOrdering.ANY,
    ) -> ApprovalProcessor:
        return cls(SqlApprovalStepStore(session), clock, ordering)

    @property
    def ordering(self) -> ApprovalOrdering:
        return self._ordering

    def approve(
        self,
        step_id: UUID,
        caller: CallerSession,
        comments: str | None = None,
    ) -> StepDecision:
        """Approve one step.

        Returns resolution APPROVED once no step of the chain is pending,
        PENDING otherwise.
        """
        return self._resolve(step_id, caller, StepStatus.APPROVED, comments)

    def reject(
        self,
        step_id: UUID,
        caller: CallerSession,
        comments: str | None,
    ) -> StepDecision:
        """Reject one step.  The chain resolves REJECTED."""
        if comments is None or not comments.strip():
            raise CommentsRequiredError(str(step_id))
        return self._resolve(step_id, caller, StepStatus.REJECTED, comments.strip())

    # -----------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------

    def _resolve(
        self,
        step_id: UUID,
        caller: CallerSession,
        target: StepStatus,
        comments: str | None,
    ) -> StepDecision:
        company_id = self._company_of(caller)
        step = self._steps.get(step_id)
        if step is None:
            raise ApprovalStepNotFoundError(str(step_id))

        with LogContext.bind(
            company_id=str(company_id),
            actor_id=str(caller.user_id),
            action_id=str(step.action_id),
            step_id=str(step_id),
        ):
            self._check_tenant("ApprovalStep", step_id, step.company_id, company_id)
            self._authorize(step, caller)

            if not step.is_pending:
                raise InvalidStepStateError(
                    str(step_id), step.status.value, target.value,
                )

            chain = ApprovalChain.from_steps(
                step.action_id, self._steps.lock_chain(step.action_id),
            )
            current = chain.step_at(step.level)
            if current is None or not current.is_pending:
                # Resolved between our two reads
                self._race_lost(step_id, target)
            if chain.is_rejected:
                raise ChainAlreadyResolvedError(
                    str(step.action_id), ChainResolution.REJECTED.value,
                )
            if target is StepStatus.APPROVED and self._ordering is ApprovalOrdering.STRICT:
                blocking = chain.pending_below(step.level)
                if blocking is not None:
                    raise OutOfOrderApprovalError(
                        str(step_id), step.level, blocking.level,
                    )

            won = self._steps.compare_and_set_status(
                step_id,
                target,
                resolved_by_id=caller.user_id,
                resolved_at=self._clock.now(),
                comments=comments,
            )
            if not won:
                self._race_lost(step_id, target)

            chain = ApprovalChain.from_steps(
                step.action_id, self._steps.for_action(step.action_id),
            )
            resolved = chain.step_at(step.level)
            if target is StepStatus.REJECTED:
                resolution = ChainResolution.REJECTED
            else:
                resolution = chain.resolution

            logger.info(
                f"approval_step_{target.value}",
                extra={
                    "step_level": step.level,
                    "max_level": chain.max_level,
                    "resolution": resolution.value,
                    "override": step.approver_id != caller.user_id,
                },
            )
            if resolution is not ChainResolution.PENDING:
                logger.info(
                    "approval_chain_resolved",
                    extra={"resolution": resolution.value},
                )

        return StepDecision(step=resolved, chain=chain, resolution=resolution)

    @staticmethod
    def _race_lost(step_id: UUID, target: StepStatus) -> NoReturn:
        logger.warning(
            "approval_race_lost",
            extra={"attempted_status": target.value},
        )
        raise StaleApprovalError(str(step_id), target.value)

    def _authorize(self, step: ApprovalStep, caller: CallerSession) -> None:
        if caller.can(APPROVAL_OVERRIDE):
            return
        if step.approver_id is not None and step.approver_id == caller.user_id:
            return
        raise PermissionDeniedError(
            str(caller.user_id),
            APPROVAL_OVERRIDE,
            "caller is not the assigned approver of this step",
        )

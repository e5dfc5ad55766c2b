"""
approval_kernel.services.approval_chain_service -- Approval chain management.

Responsibility:
    Creates the ordered set of pending steps for a governed action, reads
    it back with its aggregate state, and (re)assigns approvers to steps
    that are still pending.

Architecture position:
    Kernel > Services.  May import from domain/, stores/, exceptions.

Invariants enforced:
    - A chain is inserted in one flush: levels 1..N, all pending.
    - At most one chain per action (existence check plus the
      UNIQUE(action_id, level) constraint on the step table).
    - Every chain read validates level contiguity.
    - Approver assignment is a conditional write on status = 'pending'.

Failure modes:
    - InvalidApprovalLevelsError for negative or non-integer levels.
    - ChainAlreadyExistsError when the action already has steps.
    - AccessDeniedError / MissingCompanyContextError on chain reads outside
      the caller's company.
    - ApprovalStepNotFoundError / AccessDeniedError / PermissionDeniedError
      on assignment.
    - InvalidStepStateError when assigning to a resolved step.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_kernel.domain.approval import ApprovalChain, ApprovalStep, StepStatus
from approval_kernel.domain.capabilities import (
    APPROVAL_ASSIGN,
    APPROVAL_OVERRIDE,
    CallerSession,
)
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.stores import ApprovalStepStore
from approval_kernel.exceptions import (
    AccessDeniedError,
    ApprovalStepNotFoundError,
    ChainAlreadyExistsError,
    InvalidApprovalLevelsError,
    InvalidStepStateError,
    PermissionDeniedError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.base import BaseApprovalService
from approval_kernel.stores.sql import SqlApprovalStepStore

logger = get_logger("services.approval_chain")


class ApprovalChainService(BaseApprovalService):
    """Creates and reads approval chains."""

    def __init__(self, steps: ApprovalStepStore, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._steps = steps

    @classmethod
    def for_session(
        cls, session: Session, clock: Clock | None = None,
    ) -> ApprovalChainService:
        return cls(SqlApprovalStepStore(session), clock)

    def create_chain(
        self,
        action_id: UUID,
        levels: int,
        *,
        company_id: UUID,
        approver_ids: Sequence[UUID | None] | None = None,
    ) -> ApprovalChain:
        """Insert ``levels`` pending steps for ``action_id``.

        ``levels=0`` yields the vacuous chain (complete, can proceed) and
        writes nothing.  ``approver_ids[i]`` is assigned to level ``i + 1``.
        """
        if isinstance(levels, bool) or not isinstance(levels, int) or levels < 0:
            raise InvalidApprovalLevelsError(levels, minimum=0)
        approvers = list(approver_ids or ())
        if len(approvers) > levels:
            raise InvalidApprovalLevelsError(levels, minimum=len(approvers))

        existing = self._steps.for_action(action_id)
        if existing:
            raise ChainAlreadyExistsError(str(action_id), len(existing))

        if levels == 0:
            logger.info(
                "approval_chain_vacuous",
                extra={"action_id": str(action_id), "company_id": str(company_id)},
            )
            return ApprovalChain(action_id=action_id)

        approvers.extend([None] * (levels - len(approvers)))
        now = self._clock.now()
        steps = [
            ApprovalStep(
                id=uuid4(),
                action_id=action_id,
                company_id=company_id,
                level=level,
                status=StepStatus.PENDING,
                approver_id=approvers[level - 1],
                created_at=now,
            )
            for level in range(1, levels + 1)
        ]
        created = self._steps.add_all(steps)

        logger.info(
            "approval_chain_created",
            extra={
                "action_id": str(action_id),
                "company_id": str(company_id),
                "levels": levels,
                "assigned_levels": sum(1 for a in approvers if a is not None),
            },
        )
        return ApprovalChain.from_steps(action_id, created)

    def get_chain(self, action_id: UUID, caller: CallerSession) -> ApprovalChain:
        """Read all steps of ``action_id``.  Zero steps is complete.

        Every step must belong to the caller's company.
        """
        company_id = self._company_of(caller)
        steps = self._steps.for_action(action_id)
        for step in steps:
            if step.company_id != company_id:
                raise AccessDeniedError(
                    "ApprovalChain", str(action_id), str(company_id),
                )
        return ApprovalChain.from_steps(action_id, steps)

    def can_proceed(self, action_id: UUID, caller: CallerSession) -> bool:
        return self.get_chain(action_id, caller).can_proceed

    def assign_approver(
        self,
        step_id: UUID,
        approver_id: UUID | None,
        caller: CallerSession,
    ) -> ApprovalStep:
        """Assign (or clear) the approver of a still-pending step."""
        company_id = self._company_of(caller)
        step = self._steps.get(step_id)
        if step is None:
            raise ApprovalStepNotFoundError(str(step_id))
        self._check_tenant("ApprovalStep", step_id, step.company_id, company_id)
        if not (caller.can(APPROVAL_OVERRIDE) or caller.can(APPROVAL_ASSIGN)):
            raise PermissionDeniedError(
                str(caller.user_id), APPROVAL_ASSIGN,
                "assigning approvers requires approval.assign or approval.override",
            )
        if not step.is_pending:
            raise InvalidStepStateError(
                str(step_id), step.status.value, StepStatus.PENDING.value,
            )

        with LogContext.bind(
            actor_id=str(caller.user_id), step_id=str(step_id),
            action_id=str(step.action_id),
        ):
            if not self._steps.assign_approver_if_pending(step_id, approver_id):
                current = self._steps.get(step_id)
                logger.warning("approval_assignment_race_lost")
                raise InvalidStepStateError(
                    str(step_id),
                    current.status.value if current else "unknown",
                    StepStatus.PENDING.value,
                )
            logger.info(
                "approval_step_assigned",
                extra={"approver_id": str(approver_id) if approver_id else None},
            )
        return self._steps.get(step_id)

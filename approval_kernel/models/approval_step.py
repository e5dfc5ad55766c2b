"""
Module: approval_kernel.models.approval_step
Responsibility: ORM persistence for approval steps (the sign-off gates of a
    governed action).

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE(action_id, level): one step per level per action.
    - level >= 1; status is one of pending/approved/rejected.
    - Steps leave 'pending' only through a conditional UPDATE issued by
      the step store; the ORM listeners below refuse any ORM-level change
      to a resolved step and any DELETE.

Failure modes:
    - IntegrityError on a duplicate (action_id, level).
    - ImmutabilityViolationError on DELETE, or on UPDATE of a step whose
      status was already approved or rejected.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.orm.attributes import get_history

from approval_kernel.db.base import Base, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import ApprovalStep

_RESOLVED = ("approved", "rejected")


class ApprovalStepModel(Base):
    """Persistent approval step.

    Contract:
        Rows are inserted as 'pending' and resolved exactly once.
    """

    __tablename__ = "approval_steps"

    __table_args__ = (
        UniqueConstraint("action_id", "level", name="uq_approval_steps_action_level"),
        CheckConstraint("level >= 1", name="ck_approval_steps_level_positive"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_approval_steps_valid_status",
        ),
        Index("ix_approval_steps_approver_status", "approver_id", "status"),
        Index("ix_approval_steps_company_created", "company_id", "created_at"),
    )

    action_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    rejected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalStep {self.id} action={self.action_id} "
            f"level={self.level} status={self.status}>"
        )

    def to_dto(self) -> ApprovalStep:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalStep as StepDTO,
            StepStatus,
        )

        return StepDTO(
            id=self.id,
            action_id=self.action_id,
            company_id=self.company_id,
            level=self.level,
            status=StepStatus(self.status),
            approver_id=self.approver_id,
            resolved_by_id=self.resolved_by_id,
            approved_at=self.approved_at,
            rejected_at=self.rejected_at,
            comments=self.comments,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalStep) -> ApprovalStepModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.id,
            action_id=dto.action_id,
            company_id=dto.company_id,
            level=dto.level,
            approver_id=dto.approver_id,
            status=dto.status.value,
            resolved_by_id=dto.resolved_by_id,
            approved_at=dto.approved_at,
            rejected_at=dto.rejected_at,
            comments=dto.comments,
            created_at=dto.created_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(ApprovalStepModel, "before_update")
def prevent_resolved_step_update(mapper, connection, target):
    """Refuse ORM updates to a step that was already resolved."""
    history = get_history(target, "status")
    previous = history.deleted or history.unchanged
    if previous and previous[0] in _RESOLVED:
        raise ImmutabilityViolationError(
            entity_type="ApprovalStep",
            entity_id=str(target.id),
            reason=f"Step already {previous[0]} -- cannot modify",
        )


@event.listens_for(ApprovalStepModel, "before_delete")
def prevent_step_delete(mapper, connection, target):
    """Approval steps are never deleted."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalStep",
        entity_id=str(target.id),
        reason="Approval steps are permanent -- cannot delete",
    )

"""
Module: approval_kernel.models.approval_rule
Responsibility: ORM persistence for approval rules.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - approval_levels >= 1.
    - min_cost <= max_cost when both are set; both non-negative.
    - Rule names unique among ACTIVE rules per company (service check,
      plus a partial unique index on PostgreSQL and SQLite).
    - NULL criteria columns are wildcards.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from approval_kernel.domain.approval import ApprovalRule


class ApprovalRuleModel(TimestampedBase):
    """Persistent approval rule.  Soft-deleted, never removed."""

    __tablename__ = "approval_rules"

    __table_args__ = (
        CheckConstraint(
            "approval_levels >= 1",
            name="ck_approval_rules_levels_positive",
        ),
        CheckConstraint(
            "min_cost IS NULL OR min_cost >= 0",
            name="ck_approval_rules_min_cost_non_negative",
        ),
        CheckConstraint(
            "max_cost IS NULL OR max_cost >= 0",
            name="ck_approval_rules_max_cost_non_negative",
        ),
        CheckConstraint(
            "min_cost IS NULL OR max_cost IS NULL OR min_cost <= max_cost",
            name="ck_approval_rules_cost_range",
        ),
        CheckConstraint(
            "lifecycle IN ('active', 'deleted')",
            name="ck_approval_rules_lifecycle",
        ),
        Index(
            "ix_approval_rules_active_name",
            "company_id", "name",
            unique=True,
            postgresql_where=text("lifecycle = 'active'"),
            sqlite_where=text("lifecycle = 'active'"),
        ),
        Index("ix_approval_rules_company_lifecycle", "company_id", "lifecycle"),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    min_cost: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    max_cost: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(50), nullable=True)
    type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    asset_criticality: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approval_levels: Mapped[int] = mapped_column(Integer, nullable=False)
    requires_qa: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lifecycle: Mapped[str] = mapped_column(
        String(20), default="active", nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalRule {self.name!r} company={self.company_id} "
            f"levels={self.approval_levels} {self.lifecycle}>"
        )

    def to_dto(self) -> ApprovalRule:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import ApprovalRule as RuleDTO
        from approval_kernel.domain.lifecycle import RecordLifecycle

        return RuleDTO(
            id=self.id,
            company_id=self.company_id,
            name=self.name,
            approval_levels=self.approval_levels,
            description=self.description,
            min_cost=self.min_cost,
            max_cost=self.max_cost,
            priority=self.priority,
            type=self.type,
            asset_criticality=self.asset_criticality,
            requires_qa=self.requires_qa,
            lifecycle=RecordLifecycle(self.lifecycle),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRule) -> ApprovalRuleModel:
        """Create ORM model from domain DTO."""
        model = cls(id=dto.id, company_id=dto.company_id)
        model.apply(dto)
        return model

    def apply(self, dto: ApprovalRule) -> None:
        """Copy the mutable fields of ``dto`` onto this row."""
        self.name = dto.name
        self.description = dto.description
        self.min_cost = dto.min_cost
        self.max_cost = dto.max_cost
        self.priority = dto.priority
        self.type = dto.type
        self.asset_criticality = dto.asset_criticality
        self.approval_levels = dto.approval_levels
        self.requires_qa = dto.requires_qa
        self.lifecycle = dto.lifecycle.value

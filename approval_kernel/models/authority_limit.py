"""
Module: approval_kernel.models.authority_limit
Responsibility: ORM persistence for per-role authority limits.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - max_direct_authorization is non-negative (DB check constraint).
    - lifecycle is 'active' or 'deleted' (DB check constraint).
    - At most one ACTIVE limit per (company_id, role_key).  The service
      layer checks before insert, rename and restore; a partial unique
      index (PostgreSQL and SQLite) backs it up.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from approval_kernel.domain.approval import AuthorityLimit


class AuthorityLimitModel(TimestampedBase):
    """Persistent authority limit.  Soft-deleted, never removed."""

    __tablename__ = "authority_limits"

    __table_args__ = (
        CheckConstraint(
            "max_direct_authorization >= 0",
            name="ck_authority_limits_non_negative",
        ),
        CheckConstraint(
            "lifecycle IN ('active', 'deleted')",
            name="ck_authority_limits_lifecycle",
        ),
        Index(
            "ix_authority_limits_active_role",
            "company_id", "role_key",
            unique=True,
            postgresql_where=text("lifecycle = 'active'"),
            sqlite_where=text("lifecycle = 'active'"),
        ),
    )

    company_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    role_key: Mapped[str] = mapped_column(String(100), nullable=False)
    max_direct_authorization: Mapped[Decimal] = mapped_column(
        Numeric(38, 9), nullable=False,
    )
    can_create_work_orders: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    can_assign_directly: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    lifecycle: Mapped[str] = mapped_column(
        String(20), default="active", nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<AuthorityLimit {self.role_key} company={self.company_id} "
            f"max={self.max_direct_authorization} {self.lifecycle}>"
        )

    def to_dto(self) -> AuthorityLimit:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import AuthorityLimit as LimitDTO
        from approval_kernel.domain.lifecycle import RecordLifecycle

        return LimitDTO(
            id=self.id,
            company_id=self.company_id,
            role_key=self.role_key,
            max_direct_authorization=self.max_direct_authorization,
            can_create_work_orders=self.can_create_work_orders,
            can_assign_directly=self.can_assign_directly,
            lifecycle=RecordLifecycle(self.lifecycle),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    @classmethod
    def from_dto(cls, dto: AuthorityLimit) -> AuthorityLimitModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.id,
            company_id=dto.company_id,
            role_key=dto.role_key,
            max_direct_authorization=dto.max_direct_authorization,
            can_create_work_orders=dto.can_create_work_orders,
            can_assign_directly=dto.can_assign_directly,
            lifecycle=dto.lifecycle.value,
        )

    def apply(self, dto: AuthorityLimit) -> None:
        """Copy the mutable fields of ``dto`` onto this row."""
        self.role_key = dto.role_key
        self.max_direct_authorization = dto.max_direct_authorization
        self.can_create_work_orders = dto.can_create_work_orders
        self.can_assign_directly = dto.can_assign_directly
        self.lifecycle = dto.lifecycle.value

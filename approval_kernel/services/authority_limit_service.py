"""
approval_kernel.services.authority_limit_service -- Authority limit administration.

Responsibility:
    Create, update, soft-delete, restore and read the per-role authority
    limits of the caller's company.

Architecture position:
    Kernel > Services.  May import from domain/, stores/, exceptions.

Invariants enforced:
    - Writes require ``approval.manage_authority_limits``.
    - At most one ACTIVE limit per (company, role): checked on create,
      on rename, and on restore.
    - max_direct_authorization is a non-negative Decimal.
    - Records are soft-deleted through the lifecycle transitions.

Failure modes:
    - PermissionDeniedError, MissingCompanyContextError, AccessDeniedError.
    - AuthorityLimitNotFoundError.
    - DuplicateAuthorityLimitError.
    - InvalidCostError, ApprovalValidationError.
    - InvalidLifecycleTransitionError (deleting a deleted record, ...).
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_kernel.domain import lifecycle
from approval_kernel.domain.approval import AuthorityLimit
from approval_kernel.domain.capabilities import (
    APPROVAL_MANAGE_AUTHORITY_LIMITS,
    CallerSession,
)
from approval_kernel.domain.clock import Clock
from approval_kernel.domain.stores import AuthorityLimitStore
from approval_kernel.domain.values import to_amount
from approval_kernel.exceptions import (
    ApprovalValidationError,
    AuthorityLimitNotFoundError,
    DuplicateAuthorityLimitError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.services.base import BaseApprovalService
from approval_kernel.stores.sql import SqlAuthorityLimitStore

logger = get_logger("services.authority_limit")

_ENTITY = "AuthorityLimit"
_UPDATABLE = frozenset({
    "role_key",
    "max_direct_authorization",
    "can_create_work_orders",
    "can_assign_directly",
    "is_active",
})


class AuthorityLimitService(BaseApprovalService):
    """Administers authority limits."""

    def __init__(self, limits: AuthorityLimitStore, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._limits = limits

    @classmethod
    def for_session(
        cls, session: Session, clock: Clock | None = None,
    ) -> AuthorityLimitService:
        return cls(SqlAuthorityLimitStore(session), clock)

    def create(
        self,
        caller: CallerSession,
        *,
        role_key: str,
        max_direct_authorization: Decimal | int | str,
        can_create_work_orders: bool = True,
        can_assign_directly: bool = True,
        is_active: bool = True,
    ) -> AuthorityLimit:
        self._require(caller, APPROVAL_MANAGE_AUTHORITY_LIMITS)
        company_id = self._company_of(caller)
        role_key = _clean_role_key(role_key)
        amount = to_amount(max_direct_authorization, "max_direct_authorization")

        if is_active and self._limits.exists(role_key, company_id):
            raise DuplicateAuthorityLimitError(role_key, str(company_id))

        limit = self._limits.add(AuthorityLimit(
            id=uuid4(),
            company_id=company_id,
            role_key=role_key,
            max_direct_authorization=amount,
            can_create_work_orders=can_create_work_orders,
            can_assign_directly=can_assign_directly,
            lifecycle=lifecycle.lifecycle_from_flag(is_active),
        ))
        logger.info(
            "authority_limit_created",
            extra={
                "limit_id": str(limit.id),
                "company_id": str(company_id),
                "role_key": role_key,
                "max_direct_authorization": str(amount),
            },
        )
        return limit

    def update(
        self, caller: CallerSession, limit_id: UUID, **changes: Any,
    ) -> AuthorityLimit:
        """Apply a partial update.  Unknown fields are refused."""
        self._require(caller, APPROVAL_MANAGE_AUTHORITY_LIMITS)
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise ApprovalValidationError(
                f"Unknown authority limit fields: {sorted(unknown)}"
            )
        current = self._load(caller, limit_id)

        fields: dict[str, Any] = {}
        if "role_key" in changes:
            fields["role_key"] = _clean_role_key(changes["role_key"])
        if "max_direct_authorization" in changes:
            fields["max_direct_authorization"] = to_amount(
                changes["max_direct_authorization"], "max_direct_authorization",
            )
        for flag in ("can_create_work_orders", "can_assign_directly"):
            if flag in changes:
                fields[flag] = bool(changes[flag])
        if "is_active" in changes:
            target = lifecycle.lifecycle_from_flag(bool(changes["is_active"]))
            if target is not current.lifecycle:
                fields["lifecycle"] = lifecycle.transition(
                    _ENTITY, current.lifecycle, target,
                )

        updated = replace(current, **fields)
        if updated.is_active and (
            updated.role_key != current.role_key or not current.is_active
        ):
            if self._limits.exists(updated.role_key, updated.company_id, updated.id):
                raise DuplicateAuthorityLimitError(
                    updated.role_key, str(updated.company_id),
                )

        saved = self._limits.save(updated)
        logger.info(
            "authority_limit_updated",
            extra={"limit_id": str(limit_id), "fields": sorted(fields)},
        )
        return saved

    def delete(self, caller: CallerSession, limit_id: UUID) -> AuthorityLimit:
        """Soft-delete."""
        self._require(caller, APPROVAL_MANAGE_AUTHORITY_LIMITS)
        current = self._load(caller, limit_id)
        saved = self._limits.save(replace(
            current, lifecycle=lifecycle.deactivate(_ENTITY, current.lifecycle),
        ))
        logger.info("authority_limit_deleted", extra={"limit_id": str(limit_id)})
        return saved

    def restore(self, caller: CallerSession, limit_id: UUID) -> AuthorityLimit:
        self._require(caller, APPROVAL_MANAGE_AUTHORITY_LIMITS)
        current = self._load(caller, limit_id)
        target = lifecycle.restore(_ENTITY, current.lifecycle)
        if self._limits.exists(current.role_key, current.company_id, current.id):
            raise DuplicateAuthorityLimitError(
                current.role_key, str(current.company_id),
            )
        saved = self._limits.save(replace(current, lifecycle=target))
        logger.info("authority_limit_restored", extra={"limit_id": str(limit_id)})
        return saved

    def get(self, caller: CallerSession, limit_id: UUID) -> AuthorityLimit:
        return self._load(caller, limit_id)

    def get_for_role(self, caller: CallerSession, role_key: str) -> AuthorityLimit | None:
        """Active limit of ``role_key`` in the caller's company."""
        return self._limits.get(role_key, self._company_of(caller))

    def list_for_company(
        self, caller: CallerSession, include_deleted: bool = False,
    ) -> list[AuthorityLimit]:
        return self._limits.list_for_company(
            self._company_of(caller), include_deleted=include_deleted,
        )

    def _load(self, caller: CallerSession, limit_id: UUID) -> AuthorityLimit:
        company_id = self._company_of(caller)
        limit = self._limits.get_by_id(limit_id)
        if limit is None:
            raise AuthorityLimitNotFoundError(str(limit_id))
        self._check_tenant(_ENTITY, limit_id, limit.company_id, company_id)
        return limit


def _clean_role_key(role_key: Any) -> str:
    if not isinstance(role_key, str) or not role_key.strip():
        raise ApprovalValidationError(f"role_key must be a non-empty string, got {role_key!r}")
    return role_key.strip()


"""
BaseApprovalService -- shared guards for every approval kernel service.

Responsibility:
    Holds the injected ``Clock`` and the caller checks every write path
    repeats: company context, capability, and tenant ownership.

Architecture position:
    Kernel > Services -- imperative shell.  Services depend on the store
    protocols in ``approval_kernel.domain.stores``; each offers a
    ``for_session`` constructor wiring the SQL stores to a caller-owned
    session.

Invariants enforced:
    - Transaction boundaries: services never commit or roll back.  The
      caller (``session_scope()``, the orchestrator, or the test harness)
      owns the transaction.
    - Tenant scoping is re-validated on every read and write.
"""

from __future__ import annotations

from abc import ABC
from uuid import UUID

from approval_kernel.domain.capabilities import CallerSession
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import (
    AccessDeniedError,
    MissingCompanyContextError,
    PermissionDeniedError,
)


class BaseApprovalService(ABC):
    """Abstract base class for approval kernel services."""

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    @staticmethod
    def _company_of(caller: CallerSession) -> UUID:
        if caller.company_id is None:
            raise MissingCompanyContextError(str(caller.user_id))
        return caller.company_id

    @staticmethod
    def _require(caller: CallerSession, capability: str, reason: str = "") -> None:
        if not caller.can(capability):
            raise PermissionDeniedError(str(caller.user_id), capability, reason)

    @staticmethod
    def _check_tenant(
        entity_type: str,
        entity_id: UUID,
        owner_company_id: UUID,
        company_id: UUID,
    ) -> None:
        if owner_company_id != company_id:
            raise AccessDeniedError(entity_type, str(entity_id), str(company_id))

"""
Capabilities (``approval_kernel.domain.capabilities``).

Permissions are dotted strings (``module.action``).  A caller holds a set of
them, possibly with wildcards:

    "*"                      -- everything
    "approval.*"             -- every action in the ``approval`` module
    "approval.override"      -- exactly one action

All checks go through ``satisfies`` so the wildcard rules live in one place.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

GLOBAL_WILDCARD = "*"

# Resolve any approval step regardless of the assigned approver
APPROVAL_OVERRIDE = "approval.override"
# Assign or re-assign the approver of a pending step
APPROVAL_ASSIGN = "approval.assign"
APPROVAL_MANAGE_RULES = "approval.manage_rules"
APPROVAL_MANAGE_AUTHORITY_LIMITS = "approval.manage_authority_limits"
WORK_ORDERS_VIEW = "work_orders.view"


def satisfies(held: str, required: str) -> bool:
    """True if the single held capability grants ``required``.

    >>> satisfies("*", "approval.override")
    True
    >>> satisfies("approval.*", "approval.override")
    True
    >>> satisfies("approval.*", "work_orders.view")
    False
    """
    if held == GLOBAL_WILDCARD or held == required:
        return True
    if held.endswith(".*"):
        module = held[:-2]
        return required.startswith(f"{module}.")
    return False


@dataclass(frozen=True)
class CapabilitySet:
    """Immutable set of held capability strings."""

    held: frozenset[str] = frozenset()

    @classmethod
    def of(cls, *capabilities: str) -> CapabilitySet:
        return cls(frozenset(capabilities))

    @classmethod
    def from_iterable(cls, capabilities: Iterable[str]) -> CapabilitySet:
        return cls(frozenset(c.strip() for c in capabilities if c and c.strip()))

    def allows(self, required: str) -> bool:
        return any(satisfies(h, required) for h in self.held)

    def __contains__(self, required: object) -> bool:
        return isinstance(required, str) and self.allows(required)


@dataclass(frozen=True)
class CallerSession:
    """Who is calling, for which company, holding what.

    Supplied by the identity provider of the surrounding application.
    """

    user_id: UUID
    company_id: UUID | None
    capabilities: CapabilitySet = CapabilitySet()
    role_key: str | None = None

    def can(self, required: str) -> bool:
        return self.capabilities.allows(required)

"""
Lifecycle of configuration records (``approval_kernel.domain.lifecycle``).

Authority limits and approval rules are never hard-deleted.  Instead of a
bare ``is_active`` flag checked ad hoc in every query, each record carries an
explicit ``RecordLifecycle`` and moves between states only through
``deactivate`` / ``restore``.
"""

from __future__ import annotations

from enum import Enum

from approval_kernel.exceptions import InvalidLifecycleTransitionError


class RecordLifecycle(str, Enum):
    """Lifecycle states of a configuration record."""

    ACTIVE = "active"
    DELETED = "deleted"


LIFECYCLE_TRANSITIONS: dict[RecordLifecycle, frozenset[RecordLifecycle]] = {
    RecordLifecycle.ACTIVE: frozenset({RecordLifecycle.DELETED}),
    RecordLifecycle.DELETED: frozenset({RecordLifecycle.ACTIVE}),
}


def transition(
    entity_type: str,
    current: RecordLifecycle,
    target: RecordLifecycle,
) -> RecordLifecycle:
    """Return ``target`` if the move is allowed, else raise."""
    if target not in LIFECYCLE_TRANSITIONS[current]:
        raise InvalidLifecycleTransitionError(
            entity_type, current.value, target.value,
        )
    return target


def deactivate(entity_type: str, current: RecordLifecycle) -> RecordLifecycle:
    """Soft-delete."""
    return transition(entity_type, current, RecordLifecycle.DELETED)


def restore(entity_type: str, current: RecordLifecycle) -> RecordLifecycle:
    """Undo a soft-delete.  Callers must re-check uniqueness first."""
    return transition(entity_type, current, RecordLifecycle.ACTIVE)


def lifecycle_from_flag(is_active: bool) -> RecordLifecycle:
    """Map the administrative ``is_active`` input onto a lifecycle state."""
    return RecordLifecycle.ACTIVE if is_active else RecordLifecycle.DELETED

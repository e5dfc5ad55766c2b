"""
Values -- amount coercion for the approval domain.

Costs and authority ceilings arrive from many callers (YAML, HTTP payloads,
the work-order owner).  They are normalised to ``Decimal`` exactly once, at
the boundary, and rejected if negative or not a finite number.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from approval_kernel.exceptions import InvalidCostError


def to_amount(value: Any, field_name: str = "cost") -> Decimal:
    """Coerce ``value`` to a non-negative, finite Decimal.

    Floats go through ``str()`` so ``0.1`` becomes ``Decimal("0.1")``.
    Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidCostError(field_name, value)
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise InvalidCostError(field_name, value) from None
    if not amount.is_finite() or amount < 0:
        raise InvalidCostError(field_name, value)
    return amount


def to_optional_amount(value: Any, field_name: str) -> Decimal | None:
    """Like ``to_amount`` but ``None`` (unset, wildcard) passes through."""
    if value is None:
        return None
    return to_amount(value, field_name)

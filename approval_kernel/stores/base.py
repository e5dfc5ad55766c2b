"""
BaseSqlStore -- abstract base for the SQLAlchemy store implementations.

Responsibility:
    Common constructor and session contract for every SQL-backed store.
    Stores receive a SQLAlchemy ``Session`` from the caller and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Stores -- imperative shell over models/.  Services depend on
    the protocols in ``approval_kernel.domain.stores``; this package is one
    implementation of them.

Invariants enforced:
    - Transaction boundaries: stores flush within the caller's transaction
      and never commit or roll back.  ``session_scope()`` (or the test
      harness) owns commit/rollback.
    - Reads hand back frozen DTOs, never ORM instances.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSqlStore(ABC):
    """Abstract base class for SQL stores."""

    def __init__(self, session: Session):
        self.session = session

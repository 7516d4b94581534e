"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services.  Every service in ``colony_kernel/services/`` that
    performs write operations extends this class.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (``session_scope()``, a batch script, or the test harness) owns
      commit/rollback, so a plot write, the colony recount and any
      auto-created booking land together or not at all.
    - Savepoints (``session.begin_nested()``) are the only partial
      rollback a service may perform, and only around an insert that can
      lose a uniqueness race.

Failure modes:
    - If a subclass calls ``session.commit()``, a later failure in the same
      operation leaves derived fields (colony counts, bookings) out of step
      with the plot row.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from colony_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide listing queries -- those belong in
          ``colony_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

"""
Module: colony_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    are the read side of the kernel: listings and diagnostics over plots,
    bookings and colonies, without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/base.py,
    domain/ and models/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT raw ORM
      model instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from colony_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session

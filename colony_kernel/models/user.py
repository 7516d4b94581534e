"""
Module: colony_kernel.models.user
Responsibility: ORM persistence for actors (users) and their roles.

Invariants enforced:
    - email is unique (uq_user_email); user_code is unique (uq_user_code).
    - Role.permissions is either a list of permission names or contains the
      wildcard "all".  Permission checks read the live Role row.
"""

from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from colony_kernel.db.base import TimestampedBase, UUIDString


class Role(TimestampedBase):
    """A named permission set. Mutable; never cached by the kernel."""

    __tablename__ = "roles"

    __table_args__ = (
        UniqueConstraint("name", name="uq_role_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class User(TimestampedBase):
    """
    An actor of the system.

    user_code is <PREFIX>-NNNNN where the prefix derives from the role name
    at creation time (AG for Agent, ADV for Lawyer, EMP by default).
    """

    __tablename__ = "users"

    __table_args__ = (
        UniqueConstraint("email", name="uq_user_email"),
        UniqueConstraint("user_code", name="uq_user_code"),
        Index("idx_user_role", "role_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    user_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    role_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("roles.id"),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.user_code or '-'}: {self.email}>"

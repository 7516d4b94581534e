"""
Permission gate.

The routing layer authenticates the request and hands the kernel an
``Identity``.  Every mutating service operation calls ``require_permission``
before touching the store.  A role passes when it is the admin role, or
when its permission list holds the required permission or the ``all``
wildcard.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from colony_kernel.exceptions import ForbiddenError
from colony_kernel.logging_config import get_logger

logger = get_logger("domain.permissions")

WILDCARD = "all"
ADMIN_ROLE = "admin"


class Permission:
    """Permission names checked by the kernel."""

    PLOT_CREATE = "plot_create"
    PLOT_UPDATE = "plot_update"
    PLOT_DELETE = "plot_delete"
    BOOKING_CREATE = "booking_create"
    BOOKING_UPDATE = "booking_update"
    COLONY_CREATE = "colony_create"
    COLONY_UPDATE = "colony_update"
    COLONY_DELETE = "colony_delete"
    PROPERTY_CREATE = "property_create"
    SETTINGS_UPDATE = "settings_update"
    USER_CREATE = "user_create"
    ROLE_UPDATE = "role_update"


@dataclass(frozen=True)
class RoleGrant:
    """Role name and permission list as read from the live Role row."""

    name: str
    permissions: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Identity:
    """Authenticated actor attached to a mutation request."""

    user_id: UUID
    role: RoleGrant

    @property
    def is_admin(self) -> bool:
        return self.role.name.strip().lower() == ADMIN_ROLE


def has_permission(identity: Identity, permission: str) -> bool:
    if identity.is_admin:
        return True
    granted = identity.role.permissions
    return permission in granted or WILDCARD in granted


def require_permission(identity: Identity, permission: str) -> None:
    """Raise ForbiddenError unless the identity holds the permission."""
    if has_permission(identity, permission):
        return
    logger.warning(
        "permission_denied",
        extra={
            "user_id": str(identity.user_id),
            "role": identity.role.name,
            "permission": permission,
        },
    )
    raise ForbiddenError(permission, str(identity.user_id))

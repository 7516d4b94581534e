"""
UserService -- actors, roles and user codes.

Responsibility:
    Creates roles and users and assigns each user a ``<PREFIX>-NNNNN``
    code, the prefix taken from the role name through configuration
    (Agent -> AG, Lawyer -> ADV, anything unmapped -> EMP).

Architecture position:
    Kernel > Services.  IdentityService reads what this service writes;
    ``backfill_user_codes`` backs ``scripts/generate_user_codes.py``.

Invariants enforced:
    - email is unique (case-insensitive: stored lower-cased).
    - user_code is unique; allocation retries a lost race like every
      other sequence.
    - Role names are unique; permission lists hold strings only.

Failure modes:
    - ForbiddenError, RoleNotFoundError, UserNotFoundError.
    - DuplicateEmailError, DuplicateRoleError, ValidationError.
    - SequencingError: user code allocation failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from colony_config import KernelConfig, get_active_config
from colony_kernel.db.integrity import is_unique_violation
from colony_kernel.domain.permissions import Identity, Permission, require_permission
from colony_kernel.exceptions import (
    DuplicateEmailError,
    DuplicateRoleError,
    RoleNotFoundError,
    ValidationError,
)
from colony_kernel.logging_config import get_logger
from colony_kernel.models.user import Role, User
from colony_kernel.services.base import BaseService
from colony_kernel.services.sequence_service import SequenceService, user_code_format

logger = get_logger("services.user")


@dataclass(frozen=True)
class RoleInfo:
    id: UUID
    name: str
    description: str | None
    permissions: tuple[str, ...]
    is_active: bool


@dataclass(frozen=True)
class UserInfo:
    id: UUID
    name: str
    email: str
    phone: str | None
    user_code: str | None
    role_id: UUID
    is_active: bool


class UserService(BaseService[User]):
    """Service for users and roles."""

    def __init__(
        self,
        session: Session,
        config: KernelConfig | None = None,
        sequences: SequenceService | None = None,
    ):
        super().__init__(session)
        self._config = config or get_active_config()
        self._sequences = sequences or SequenceService(
            session, max_attempts=self._config.sequence_max_attempts
        )

    # Roles

    def create_role(
        self,
        name: str,
        permissions: Iterable[str],
        identity: Identity,
        description: str | None = None,
    ) -> RoleInfo:
        require_permission(identity, Permission.ROLE_UPDATE)
        name = (name or "").strip()
        if not name:
            raise ValidationError("name", "role name is required")

        existing = self.session.execute(
            select(Role.id).where(func.lower(Role.name) == name.lower())
        ).first()
        if existing is not None:
            raise DuplicateRoleError(name)

        role = Role(
            name=name,
            description=description,
            permissions=_permission_list(permissions),
            is_active=True,
        )
        self.session.add(role)
        self.session.flush()

        logger.info(
            "role_created",
            extra={"role_id": str(role.id), "role": role.name, "permissions": role.permissions},
        )
        return _role_dto(role)

    def update_role_permissions(
        self,
        role_id: UUID,
        permissions: Iterable[str],
        identity: Identity,
    ) -> RoleInfo:
        """
        Replace a role's permission list.

        Takes effect on the next IdentityService.load; nothing is cached.
        """
        require_permission(identity, Permission.ROLE_UPDATE)
        role = self._get_role(role_id)
        before = list(role.permissions)
        role.permissions = _permission_list(permissions)
        self.session.flush()

        logger.info(
            "role_permissions_updated",
            extra={
                "role_id": str(role.id),
                "role": role.name,
                "before": before,
                "after": role.permissions,
            },
        )
        return _role_dto(role)

    # Users

    def create_user(
        self,
        name: str,
        email: str,
        role_id: UUID,
        identity: Identity,
        phone: str | None = None,
    ) -> UserInfo:
        """
        Create a user with a fresh user code.

        Raises:
            ForbiddenError, ValidationError, RoleNotFoundError,
            DuplicateEmailError, SequencingError.
        """
        require_permission(identity, Permission.USER_CREATE)

        name = (name or "").strip()
        if not name:
            raise ValidationError("name", "user name is required")
        email = (email or "").strip().lower()
        if "@" not in email:
            raise ValidationError("email", f"'{email}' is not an email address")

        role = self._get_role(role_id)
        if self.session.execute(select(User.id).where(User.email == email)).first():
            raise DuplicateEmailError(email)

        prefix = self._config.prefix_for_role(role.name)

        def persist(code: str) -> User:
            user = User(
                name=name,
                email=email,
                phone=phone,
                user_code=code,
                role_id=role.id,
                is_active=True,
                created_by_id=identity.user_id,
            )
            self.session.add(user)
            return user

        try:
            user = self._sequences.allocate_with_retry(
                user_code_format(prefix),
                lambda: self._sequences.next_user_code(prefix),
                persist,
            )
        except IntegrityError as exc:
            if is_unique_violation(exc, "uq_user_email", "users.email"):
                raise DuplicateEmailError(email) from exc
            raise

        logger.info(
            "user_created",
            extra={
                "new_user_id": str(user.id),
                "user_code": user.user_code,
                "role": role.name,
            },
        )
        return _user_dto(user)

    def backfill_user_codes(self, actor_id: UUID) -> list[UserInfo]:
        """
        Assign codes to users created before codes existed.

        Users are processed oldest first so codes follow creation order.

        Returns:
            The users that received a code.
        """
        rows = self.session.execute(
            select(User, Role.name)
            .join(Role, Role.id == User.role_id)
            .where(User.user_code.is_(None))
            .order_by(User.created_at, User.email)
        ).all()

        assigned = []
        for user, role_name in rows:
            prefix = self._config.prefix_for_role(role_name)

            def persist(code: str, user: User = user) -> User:
                user.user_code = code
                return user

            self._sequences.allocate_with_retry(
                user_code_format(prefix),
                lambda prefix=prefix: self._sequences.next_user_code(prefix),
                persist,
            )
            assigned.append(_user_dto(user))
            logger.info(
                "user_code_assigned",
                extra={
                    "target_user_id": str(user.id),
                    "user_code": user.user_code,
                    "actor_id": str(actor_id),
                },
            )
        return assigned

    def _get_role(self, role_id: UUID) -> Role:
        role = self.session.get(Role, role_id)
        if role is None:
            raise RoleNotFoundError(str(role_id))
        return role


def _permission_list(permissions: Iterable[str]) -> list[str]:
    result = []
    for permission in permissions or ():
        if not isinstance(permission, str) or not permission.strip():
            raise ValidationError("permissions", f"invalid permission {permission!r}")
        if permission.strip() not in result:
            result.append(permission.strip())
    return result


def _role_dto(role: Role) -> RoleInfo:
    return RoleInfo(
        id=role.id,
        name=role.name,
        description=role.description,
        permissions=tuple(role.permissions or ()),
        is_active=role.is_active,
    )


def _user_dto(user: User) -> UserInfo:
    return UserInfo(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        user_code=user.user_code,
        role_id=user.role_id,
        is_active=user.is_active,
    )

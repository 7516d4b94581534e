"""
IdentityService -- resolve the acting user for a request.

The routing layer authenticates the caller and passes the user id here.
The Identity is rebuilt from the live User and Role rows every time, so a
permission change on a role applies to the very next request.
"""

from uuid import UUID

from colony_kernel.domain.permissions import Identity, RoleGrant
from colony_kernel.exceptions import ForbiddenError
from colony_kernel.logging_config import get_logger
from colony_kernel.models.user import Role, User
from colony_kernel.services.base import BaseService

logger = get_logger("services.identity")

AUTHENTICATED = "authenticated"


class IdentityService(BaseService[User]):
    """Loads Identity values; read-only."""

    def load(self, user_id: UUID) -> Identity:
        """
        Build the Identity for an authenticated user.

        Raises:
            ForbiddenError: the user is missing or inactive, or the role is
                missing or inactive.
        """
        user = self.session.get(User, user_id)
        if user is None or not user.is_active:
            logger.warning(
                "identity_rejected",
                extra={"user_id": str(user_id), "reason": "missing or inactive user"},
            )
            raise ForbiddenError(AUTHENTICATED, str(user_id))

        role = self.session.get(Role, user.role_id)
        if role is None or not role.is_active:
            logger.warning(
                "identity_rejected",
                extra={"user_id": str(user_id), "reason": "missing or inactive role"},
            )
            raise ForbiddenError(AUTHENTICATED, str(user_id))

        return Identity(
            user_id=user.id,
            role=RoleGrant(name=role.name, permissions=tuple(role.permissions or ())),
        )

"""Tests for the permission gate."""

from uuid import uuid4

import pytest

from colony_kernel.domain.permissions import (
    Identity,
    Permission,
    RoleGrant,
    has_permission,
    require_permission,
)
from colony_kernel.exceptions import ForbiddenError


def _identity(role: str, *permissions: str) -> Identity:
    return Identity(user_id=uuid4(), role=RoleGrant(role, tuple(permissions)))


class TestPermissionGate:

    def test_admin_passes_everything(self):
        admin = _identity("Admin")
        assert admin.is_admin
        assert has_permission(admin, Permission.PLOT_DELETE)
        assert has_permission(admin, Permission.SETTINGS_UPDATE)

    def test_admin_name_is_case_insensitive(self):
        assert _identity(" ADMIN ").is_admin

    def test_listed_permission_passes(self):
        agent = _identity("Agent", Permission.BOOKING_CREATE)
        assert has_permission(agent, Permission.BOOKING_CREATE)
        assert not has_permission(agent, Permission.PLOT_CREATE)

    def test_wildcard_passes(self):
        manager = _identity("Manager", "all")
        assert not manager.is_admin
        assert has_permission(manager, Permission.PLOT_UPDATE)

    def test_require_raises_forbidden(self, captured_logs):
        viewer = _identity("Viewer")

        with pytest.raises(ForbiddenError) as exc_info:
            require_permission(viewer, Permission.PLOT_CREATE)

        assert exc_info.value.permission == Permission.PLOT_CREATE
        assert exc_info.value.user_id == str(viewer.user_id)
        denied = [r for r in captured_logs() if r["message"] == "permission_denied"]
        assert denied and denied[0]["role"] == "Viewer"

    def test_require_passes_silently(self):
        require_permission(_identity("Agent", Permission.PLOT_CREATE), Permission.PLOT_CREATE)

"""
Configuration schema (``colony_config.schema``).

Frozen dataclass produced by the loader.  Nothing outside ``colony_config``
constructs one from raw files.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class KernelConfig:
    """Runtime configuration for the colony kernel."""

    database_url: str
    pool_size: int = 20
    max_overflow: int = 10
    sequence_max_attempts: int = 3
    user_code_prefixes: dict[str, str] = field(default_factory=dict)
    default_user_code_prefix: str = "EMP"
    log_level: str = "INFO"
    expose_error_details: bool = False

    def prefix_for_role(self, role_name: str | None) -> str:
        """User-code prefix for a role name, falling back to the default."""
        if role_name is None:
            return self.default_user_code_prefix
        return self.user_code_prefixes.get(role_name, self.default_user_code_prefix)

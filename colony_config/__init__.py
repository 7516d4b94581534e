"""
colony_config -- single public entrypoint for kernel configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Resolution order (later wins):
    1. Packaged ``defaults.yaml``.
    2. The YAML file named by ``COLONY_CONFIG_FILE``, if set.
    3. Environment variables ``DATABASE_URL``, ``COLONY_LOG_LEVEL``,
       ``COLONY_EXPOSE_ERROR_DETAILS``.

Failure modes:
    - ``FileNotFoundError`` -- COLONY_CONFIG_FILE points at a missing file.
    - ``ValueError`` -- malformed values.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Mapping

from colony_config.loader import apply_env_overrides, load_yaml_file, merge, parse_config
from colony_config.schema import KernelConfig

__all__ = ["KernelConfig", "get_active_config", "load_config", "reset_config"]

_logger = logging.getLogger("colony_kernel.config")

_DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

_active: KernelConfig | None = None
_lock = threading.Lock()


def load_config(
    config_file: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> KernelConfig:
    """
    Build a KernelConfig without touching the memoized instance.

    Args:
        config_file: Overlay file; defaults to $COLONY_CONFIG_FILE.
        env: Environment mapping; defaults to os.environ.
    """
    env = os.environ if env is None else env
    data = load_yaml_file(_DEFAULTS_FILE)

    overlay_path = config_file or (
        Path(env["COLONY_CONFIG_FILE"]) if env.get("COLONY_CONFIG_FILE") else None
    )
    if overlay_path is not None:
        data = merge(data, load_yaml_file(overlay_path))

    config = parse_config(apply_env_overrides(data, env))
    _logger.info(
        "config_loaded",
        extra={
            "overlay": str(overlay_path) if overlay_path else None,
            "sequence_max_attempts": config.sequence_max_attempts,
            "log_level": config.log_level,
        },
    )
    return config


def get_active_config() -> KernelConfig:
    """The ONLY public configuration entrypoint (memoized per process)."""
    global _active
    with _lock:
        if _active is None:
            _active = load_config()
        return _active


def reset_config() -> None:
    """Forget the memoized config. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None

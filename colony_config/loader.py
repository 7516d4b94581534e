"""
Configuration Loader (``colony_config.loader``).

Responsibility
--------------
Loads YAML configuration files, merges overlays, applies environment
overrides and parses the result into a ``KernelConfig``.  Runtime callers
use ``colony_config.get_active_config()`` instead of this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Out-of-range or wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml

from colony_config.schema import KernelConfig

_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge(base: dict[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``overlay`` into a copy of ``base``."""
    result = dict(base)
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(result.get(key), Mapping):
            result[key] = merge(dict(result[key]), value)
        else:
            result[key] = value
    return result


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"{name}: cannot parse boolean from {value!r}")


def _positive_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name}: expected an integer, got {value!r}") from None
    if number < 1:
        raise ValueError(f"{name}: must be at least 1, got {number}")
    return number


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Overlay DATABASE_URL, COLONY_LOG_LEVEL and COLONY_EXPOSE_ERROR_DETAILS."""
    overlay: dict[str, Any] = {}
    if env.get("DATABASE_URL"):
        overlay["database"] = {"url": env["DATABASE_URL"]}
    if env.get("COLONY_LOG_LEVEL"):
        overlay["logging"] = {"level": env["COLONY_LOG_LEVEL"]}
    if "COLONY_EXPOSE_ERROR_DETAILS" in env:
        overlay["errors"] = {"expose_details": env["COLONY_EXPOSE_ERROR_DETAILS"]}
    return merge(data, overlay)


def parse_config(data: Mapping[str, Any]) -> KernelConfig:
    """
    Parse a merged configuration mapping into a ``KernelConfig``.

    Raises:
        ValueError: if the database URL is missing or a value is malformed.
    """
    database = data.get("database") or {}
    url = database.get("url")
    if not url or not isinstance(url, str):
        raise ValueError("database.url is required")

    user_codes = data.get("user_codes") or {}
    prefixes = user_codes.get("prefixes") or {}
    if not isinstance(prefixes, Mapping):
        raise ValueError("user_codes.prefixes must be a mapping of role name to prefix")
    for role_name, prefix in prefixes.items():
        if not isinstance(prefix, str) or not prefix.isalnum():
            raise ValueError(f"user_codes.prefixes[{role_name!r}]: invalid prefix {prefix!r}")

    default_prefix = str(user_codes.get("default_prefix", "EMP"))
    if not default_prefix.isalnum():
        raise ValueError(f"user_codes.default_prefix: invalid prefix {default_prefix!r}")

    level = str((data.get("logging") or {}).get("level", "INFO")).upper()
    if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ValueError(f"logging.level: unknown level {level!r}")

    return KernelConfig(
        database_url=url,
        pool_size=_positive_int(database.get("pool_size", 20), "database.pool_size"),
        max_overflow=int(database.get("max_overflow", 10)),
        sequence_max_attempts=_positive_int(
            (data.get("sequences") or {}).get("max_attempts", 3),
            "sequences.max_attempts",
        ),
        user_code_prefixes={str(k): str(v) for k, v in prefixes.items()},
        default_user_code_prefix=default_prefix,
        log_level=level,
        expose_error_details=parse_bool(
            (data.get("errors") or {}).get("expose_details", False),
            "errors.expose_details",
        ),
    )

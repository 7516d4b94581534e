"""
Tests for kernel configuration loading.

Covers:
- Packaged defaults -- sequence attempts, user-code prefixes
- YAML overlay via COLONY_CONFIG_FILE
- Environment overrides
- Validation failures
- get_active_config memoization
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from colony_config import get_active_config, load_config, reset_config
from colony_config.loader import merge, parse_bool


def _write_overlay(tmp_path, text: str):
    path = tmp_path / "overlay.yaml"
    path.write_text(text)
    return path


# =========================================================================
# Defaults
# =========================================================================


class TestDefaults:
    """Values shipped in defaults.yaml."""

    def test_sequence_attempts(self):
        assert load_config(env={}).sequence_max_attempts == 3

    def test_role_prefixes(self):
        config = load_config(env={})

        assert config.prefix_for_role("Agent") == "AG"
        assert config.prefix_for_role("Lawyer") == "ADV"
        assert config.prefix_for_role("Colony Manager") == "CM"

    def test_unknown_role_gets_default_prefix(self):
        config = load_config(env={})

        assert config.prefix_for_role("Surveyor") == "EMP"
        assert config.prefix_for_role(None) == "EMP"

    def test_errors_hidden_by_default(self):
        assert load_config(env={}).expose_error_details is False

    def test_config_is_frozen(self):
        config = load_config(env={})

        with pytest.raises(FrozenInstanceError):
            config.sequence_max_attempts = 10


# =========================================================================
# Overlay and environment
# =========================================================================


class TestOverlay:
    """COLONY_CONFIG_FILE and explicit overlay files."""

    def test_overlay_from_env(self, tmp_path):
        path = _write_overlay(tmp_path, "sequences:\n  max_attempts: 7\n")

        config = load_config(env={"COLONY_CONFIG_FILE": str(path)})

        assert config.sequence_max_attempts == 7
        # Untouched sections keep their defaults
        assert config.prefix_for_role("Agent") == "AG"

    def test_overlay_merges_prefix_mapping(self, tmp_path):
        path = _write_overlay(
            tmp_path,
            "user_codes:\n  prefixes:\n    Surveyor: SRV\n",
        )

        config = load_config(config_file=path, env={})

        assert config.prefix_for_role("Surveyor") == "SRV"
        assert config.prefix_for_role("Lawyer") == "ADV"

    def test_missing_overlay_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(env={"COLONY_CONFIG_FILE": str(tmp_path / "absent.yaml")})

    def test_non_mapping_overlay(self, tmp_path):
        path = _write_overlay(tmp_path, "- just\n- a list\n")

        with pytest.raises(ValueError):
            load_config(config_file=path, env={})

    def test_load_logged(self, tmp_path, captured_logs):
        path = _write_overlay(tmp_path, "logging:\n  level: DEBUG\n")

        load_config(config_file=path, env={})

        records = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert records[-1]["overlay"] == str(path)
        assert records[-1]["log_level"] == "DEBUG"


class TestEnvOverrides:

    def test_database_url(self):
        config = load_config(env={"DATABASE_URL": "sqlite://"})

        assert config.database_url == "sqlite://"

    def test_log_level_normalized(self):
        assert load_config(env={"COLONY_LOG_LEVEL": "warning"}).log_level == "WARNING"

    def test_expose_details(self):
        config = load_config(env={"COLONY_EXPOSE_ERROR_DETAILS": "yes"})

        assert config.expose_error_details is True

    def test_env_wins_over_overlay(self, tmp_path):
        path = _write_overlay(tmp_path, "database:\n  url: postgresql://overlay/db\n")

        config = load_config(config_file=path, env={"DATABASE_URL": "sqlite://"})

        assert config.database_url == "sqlite://"


# =========================================================================
# Validation
# =========================================================================


class TestValidation:

    @pytest.mark.parametrize(
        "overlay",
        [
            "database:\n  url: ''\n",
            "sequences:\n  max_attempts: 0\n",
            "sequences:\n  max_attempts: many\n",
            "user_codes:\n  prefixes:\n    Agent: A-G\n",
            "user_codes:\n  default_prefix: E.M.P\n",
            "database:\n  pool_size: -1\n",
        ],
    )
    def test_rejected_overlays(self, tmp_path, overlay):
        path = _write_overlay(tmp_path, overlay)

        with pytest.raises(ValueError):
            load_config(config_file=path, env={})

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="logging.level"):
            load_config(env={"COLONY_LOG_LEVEL": "LOUD"})

    def test_bad_boolean(self):
        with pytest.raises(ValueError, match="errors.expose_details"):
            load_config(env={"COLONY_EXPOSE_ERROR_DETAILS": "sometimes"})


class TestHelpers:

    @pytest.mark.parametrize(
        "value, expected",
        [(True, True), ("1", True), ("On", True), ("no", False), ("", False), (False, False)],
    )
    def test_parse_bool(self, value, expected):
        assert parse_bool(value, "flag") is expected

    def test_merge_is_recursive_and_non_mutating(self):
        base = {"database": {"url": "a", "pool_size": 5}}

        merged = merge(base, {"database": {"url": "b"}})

        assert merged == {"database": {"url": "b", "pool_size": 5}}
        assert base["database"]["url"] == "a"


# =========================================================================
# Memoized accessor
# =========================================================================


class TestActiveConfig:

    def test_memoized(self):
        assert get_active_config() is get_active_config()

    def test_reset_reloads(self, monkeypatch):
        first = get_active_config()
        monkeypatch.setenv("COLONY_LOG_LEVEL", "ERROR")

        assert get_active_config() is first

        reset_config()
        second = get_active_config()

        assert second is not first
        assert second.log_level == "ERROR"

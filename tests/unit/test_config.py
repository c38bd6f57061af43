"""
tests/unit/test_config.py — Client Configuration Tests

Covers:
  - ConnectionConfig rejects non-websocket addresses and bad timeouts
  - transaction_timeout of 0 disables the bounded wait
  - SessionConfig rejects negative keep-alive intervals
  - Invalid log level is rejected
  - validate_all() raises ConfigError with a numbered list
  - JANUS_* environment variables reach nested sections
  - JANUS_CONFIG env var is respected by load_settings()
  - Explicit config_path argument takes priority over env var
"""

from __future__ import annotations

import os
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError


# ── Helpers ───────────────────────────────────────────────────────────────────

def _make_connection_cfg(**kwargs):
    from config.settings import ConnectionConfig
    return ConnectionConfig(**kwargs)


def _make_session_cfg(**kwargs):
    from config.settings import SessionConfig
    return SessionConfig(**kwargs)


def _make_logging_cfg(**kwargs):
    from config.settings import LoggingConfig
    return LoggingConfig(**kwargs)


# ── ConnectionConfig ──────────────────────────────────────────────────────────

class TestConnectionConfig:
    def test_defaults(self):
        cfg = _make_connection_cfg()
        assert cfg.address == "ws://127.0.0.1:8188"
        assert cfg.subprotocol == "janus-protocol"
        assert cfg.transaction_timeout == 30.0

    def test_wss_accepted(self):
        assert _make_connection_cfg(address="wss://janus.example/ws").address.startswith("wss://")

    def test_http_address_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            _make_connection_cfg(address="http://127.0.0.1:8088/janus")
        assert "ws://" in str(exc_info.value)

    def test_zero_open_timeout_rejected(self):
        with pytest.raises(ValidationError):
            _make_connection_cfg(open_timeout=0)

    def test_zero_transaction_timeout_disables(self):
        assert _make_connection_cfg(transaction_timeout=0).transaction_timeout is None

    def test_none_transaction_timeout(self):
        assert _make_connection_cfg(transaction_timeout=None).transaction_timeout is None

    def test_negative_transaction_timeout_rejected(self):
        with pytest.raises(ValidationError):
            _make_connection_cfg(transaction_timeout=-1)

    def test_zero_message_size_rejected(self):
        with pytest.raises(ValidationError):
            _make_connection_cfg(max_message_size=0)


# ── SessionConfig ─────────────────────────────────────────────────────────────

class TestSessionConfig:
    def test_default_interval(self):
        assert _make_session_cfg().keepalive_interval == 30.0

    def test_zero_disables(self):
        from config.settings import Settings
        s = Settings(session={"keepalive_interval": 0})
        assert s.keepalive_interval is None

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            _make_session_cfg(keepalive_interval=-5)


# ── LoggingConfig ─────────────────────────────────────────────────────────────

class TestLoggingConfig:
    def test_valid_levels(self):
        for level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            assert _make_logging_cfg(level=level).level == level

    def test_case_insensitive(self):
        assert _make_logging_cfg(level="debug").level == "DEBUG"

    def test_invalid_level_rejected(self):
        with pytest.raises(ValidationError):
            _make_logging_cfg(level="VERBOSE")


# ── validate_all ─────────────────────────────────────────────────────────────

class TestValidateAll:
    def test_defaults_pass(self):
        from config.settings import Settings
        Settings().validate_all()  # should not raise

    def test_keepalive_shorter_than_timeout_fails(self):
        from config.settings import ConfigError, Settings
        s = Settings(
            connection={"transaction_timeout": 30},
            session={"keepalive_interval": 10},
        )
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        assert "keepalive_interval" in str(exc_info.value)

    def test_disabled_timeout_skips_keepalive_check(self):
        from config.settings import Settings
        Settings(
            connection={"transaction_timeout": 0},
            session={"keepalive_interval": 10},
        ).validate_all()

    def test_secret_over_plain_ws_to_remote_host_fails(self):
        from config.settings import ConfigError, Settings
        s = Settings(connection={"address": "ws://janus.example:8188", "apisecret": "s3cret"})
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        assert "wss://" in str(exc_info.value)

    def test_secret_over_localhost_ok(self):
        from config.settings import Settings
        Settings(connection={"address": "ws://localhost:8188", "token": "t"}).validate_all()

    def test_multiple_errors_all_reported(self):
        """All problems are collected and reported, not just the first."""
        from config.settings import ConfigError, Settings
        s = Settings(
            connection={"address": "ws://janus.example:8188", "token": "t"},
            session={"keepalive_interval": 1},
        )
        with pytest.raises(ConfigError) as exc_info:
            s.validate_all()
        msg = str(exc_info.value)
        assert "1." in msg and "2." in msg
        assert "2 problem(s)" in msg


# ── Environment ───────────────────────────────────────────────────────────────

class TestEnvironment:
    def test_nested_env_var(self, monkeypatch):
        from config.settings import Settings
        monkeypatch.setenv("JANUS_CONNECTION__ADDRESS", "wss://env.example/ws")
        assert Settings().address == "wss://env.example/ws"


# ── Config path resolution ────────────────────────────────────────────────────

class TestConfigPathResolution:
    def test_explicit_path_takes_priority(self, tmp_path):
        """Explicit config_path arg overrides env var."""
        from config.settings import _resolve_config_path
        cfg_file = tmp_path / "custom.yaml"
        cfg_file.write_text("")
        env_file = tmp_path / "env.yaml"

        with patch.dict(os.environ, {"JANUS_CONFIG": str(env_file)}):
            resolved = _resolve_config_path(str(cfg_file))
        assert resolved == Path(str(cfg_file))

    def test_env_var_used_when_no_explicit_path(self, tmp_path):
        from config.settings import _resolve_config_path
        env_file = tmp_path / "env_config.yaml"

        with patch.dict(os.environ, {"JANUS_CONFIG": str(env_file)}):
            resolved = _resolve_config_path(None)
        assert resolved == Path(str(env_file))

    def test_default_path_when_no_arg_no_env(self):
        from config.settings import _resolve_config_path
        assert _resolve_config_path(None) == Path("config/config.yaml")

    def test_missing_file_gives_defaults(self, tmp_path):
        from config.settings import load_settings
        import config.settings as cs

        settings = load_settings(tmp_path / "absent.yaml")
        assert settings.address == "ws://127.0.0.1:8188"
        cs._singleton = None

    def test_load_settings_from_file(self, tmp_path):
        """load_settings reads a custom YAML file and becomes the singleton."""
        from config.settings import get_settings, load_settings
        import config.settings as cs

        cfg_file = tmp_path / "test_config.yaml"
        cfg_file.write_text(textwrap.dedent("""
            connection:
              address: "wss://janus.example/ws"
              transaction_timeout: 5
            session:
              keepalive_interval: 25
            unrelated:
              ignored: true
        """))

        cs._singleton = None
        settings = load_settings(str(cfg_file))

        assert settings.address == "wss://janus.example/ws"
        assert settings.connection.transaction_timeout == 5
        assert settings.keepalive_interval == 25
        assert get_settings() is settings

        cs._singleton = None

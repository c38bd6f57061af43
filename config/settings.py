"""
config/settings.py — Janus Client Runtime Settings

Merges config.yaml (defaults/structure) with environment variables.
Pydantic-powered — all fields are validated and typed.

  - ConnectionConfig rejects non-websocket addresses and non-positive timeouts
  - SessionConfig rejects negative keep-alive intervals
  - validate_all() performs cross-field validation and raises ConfigError
    with a clear, human-readable message listing every problem found
  - load_settings() respects JANUS_CONFIG env var as a fallback
    when no explicit config_path argument is given
"""

from __future__ import annotations

import os
import threading as _threading
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(Exception):
    """Raised by validate_all() when one or more config problems are found."""


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_VALID_SCHEMES = ("ws://", "wss://")


# ─────────────────────────────────────────────────────────────────────────────
# Sub-models
# ─────────────────────────────────────────────────────────────────────────────

class ConnectionConfig(BaseModel):
    """Transport options handed to Connection.create()."""
    address: str = "ws://127.0.0.1:8188"
    subprotocol: str = "janus-protocol"
    open_timeout: float = 10.0
    close_timeout: float = 5.0
    max_message_size: int = 2**20
    # Bounded wait for every correlated reply. None or 0 waits forever.
    transaction_timeout: Optional[float] = 30.0
    token: Optional[str] = None
    apisecret: Optional[str] = None

    @field_validator("address")
    @classmethod
    def _websocket_address(cls, v: str) -> str:
        if not v.startswith(_VALID_SCHEMES):
            raise ValueError(
                f"connection.address '{v}' must start with one of {list(_VALID_SCHEMES)}"
            )
        return v

    @field_validator("open_timeout", "close_timeout")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("connection timeouts must be > 0")
        return v

    @field_validator("transaction_timeout")
    @classmethod
    def _valid_transaction_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("connection.transaction_timeout must be >= 0 (0 disables it)")
        return v or None

    @field_validator("max_message_size")
    @classmethod
    def _positive_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("connection.max_message_size must be >= 1")
        return v


class SessionConfig(BaseModel):
    # Seconds between keep-alive requests. 0 disables keep-alive.
    keepalive_interval: float = 30.0

    @field_validator("keepalive_interval")
    @classmethod
    def _non_negative_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("session.keepalive_interval must be >= 0")
        return v


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: str = "./data/logs"
    max_file_size_mb: int = 100
    backup_count: int = 5
    console_output: bool = False
    json_format: bool = True

    @field_validator("level")
    @classmethod
    def _valid_log_level(cls, v: str) -> str:
        upper = v.upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(
                f"logging.level '{v}' is not valid. "
                f"Must be one of: {sorted(_VALID_LOG_LEVELS)}"
            )
        return upper


# ─────────────────────────────────────────────────────────────────────────────
# Root Settings
# ─────────────────────────────────────────────────────────────────────────────

class Settings(BaseSettings):
    """
    Janus client runtime settings.

    Priority (highest to lowest):
      1. Environment variables (JANUS_CONNECTION__ADDRESS, ...)
      2. .env file
      3. config.yaml
      4. Field defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="JANUS_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    connection: ConnectionConfig = Field(default_factory=ConnectionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("connection", mode="before")
    @classmethod
    def _coerce_connection(cls, v: Any) -> Any:
        return ConnectionConfig(**v) if isinstance(v, dict) else v

    @field_validator("session", mode="before")
    @classmethod
    def _coerce_session(cls, v: Any) -> Any:
        return SessionConfig(**v) if isinstance(v, dict) else v

    @field_validator("logging", mode="before")
    @classmethod
    def _coerce_logging(cls, v: Any) -> Any:
        return LoggingConfig(**v) if isinstance(v, dict) else v

    # -- Convenience properties ----------------------------------------------

    @property
    def address(self) -> str:
        return self.connection.address

    @property
    def keepalive_interval(self) -> Optional[float]:
        return self.session.keepalive_interval or None

    @property
    def log_level(self) -> str:
        return self.logging.level.upper()

    @property
    def log_dir(self) -> Path:
        return Path(self.logging.log_dir)

    @property
    def log_json_format(self) -> bool:
        return self.logging.json_format

    @property
    def log_console_output(self) -> bool:
        return self.logging.console_output

    def validate_all(self) -> None:
        """
        Cross-field validation. Raises ConfigError listing every problem found.

        Pydantic field validators catch type/value errors at parse time; this
        catches combinations that only make sense together.
        """
        errors: list[str] = []

        # ── Keep-alive requests must not overlap ────────────────────────────
        timeout = self.connection.transaction_timeout
        interval = self.session.keepalive_interval
        if timeout and interval and interval < timeout:
            errors.append(
                f"session.keepalive_interval ({interval:g}s) is shorter than "
                f"connection.transaction_timeout ({timeout:g}s); keep-alive "
                f"requests would overlap. Raise the interval or lower the timeout."
            )

        # ── Secrets over plain websockets ───────────────────────────────────
        secret = self.connection.apisecret or self.connection.token
        if secret and self.connection.address.startswith("ws://"):
            host = self.connection.address[len("ws://"):].split("/", 1)[0]
            if not host.startswith(("127.0.0.1", "localhost", "[::1]")):
                errors.append(
                    "connection.token/apisecret would be sent unencrypted to "
                    f"'{host}'. Use a wss:// address."
                )

        # ── Report all errors together ───────────────────────────────────────
        if errors:
            numbered = "\n".join(f"  {i+1}. {e}" for i, e in enumerate(errors))
            raise ConfigError(
                f"\n\nJanus client configuration invalid — {len(errors)} "
                f"problem(s) found:\n\n{numbered}\n"
            )


# ─────────────────────────────────────────────────────────────────────────────
# Loader + singleton
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[Settings] = None
_singleton_lock = _threading.Lock()


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _resolve_config_path(config_path: str | Path | None) -> Path:
    """
    Resolve the config file path with this priority:
      1. Explicit config_path argument
      2. JANUS_CONFIG environment variable
      3. Default: config/config.yaml
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get("JANUS_CONFIG")
    if env_path:
        return Path(env_path)
    return Path("config/config.yaml")


_KNOWN_SECTIONS = {"connection", "session", "logging"}


def _build_settings(config_path: str | Path | None) -> Settings:
    yaml_data = _load_yaml(_resolve_config_path(config_path))
    init_kwargs = {k: v for k, v in yaml_data.items() if k in _KNOWN_SECTIONS}
    return Settings(**init_kwargs)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings by merging config.yaml with environment variables.

    Config path resolution order:
      1. config_path argument
      2. JANUS_CONFIG env var
      3. config/config.yaml   (default)
    """
    global _singleton
    instance = _build_settings(config_path)
    with _singleton_lock:
        _singleton = instance
    return instance


def get_settings() -> Settings:
    """
    Return the global Settings singleton.
    If load_settings() has been called already, returns that instance.
    Otherwise loads from the default config path.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            _singleton = _build_settings(None)
    return _singleton

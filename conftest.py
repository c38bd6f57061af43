"""
Shared test fixtures — an in-memory gateway connection.

FakeConnection records every message it is asked to send and lets a test
play the gateway by feeding replies through deliver(). Isolates tests from
any JANUS_* variables and .env file in the developer's environment.
"""
from __future__ import annotations

from typing import Any, Optional

import pytest

from config.settings import ConnectionConfig
from exceptions import ConnectivityError
from signaling.connection import Connection
from signaling.session import Session


class FakeConnection(Connection):
    def __init__(
        self,
        connection_id: str = "conn-test",
        options: Optional[ConnectionConfig] = None,
        *,
        fail_open: bool = False,
    ) -> None:
        options = options or ConnectionConfig(address="ws://gateway.test", transaction_timeout=None)
        super().__init__(connection_id, options.address, options)
        self.sent: list[dict[str, Any]] = []
        self.fail_open = fail_open
        self.fail_send: Optional[BaseException] = None

    async def _connect(self) -> None:
        if self.fail_open:
            raise ConnectivityError("refused")

    async def _transmit(self, message: dict[str, Any]) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append(message)

    async def _disconnect(self) -> None:
        pass

    # -- gateway side --------------------------------------------------------

    def deliver(self, message: dict[str, Any]) -> None:
        self.process_income_message(message)

    def reply(self, request: dict[str, Any], janus: str = "success", **fields: Any) -> None:
        """Answer `request` with its own transaction (and session) id."""
        message = {"janus": janus, "transaction": request["transaction"], **fields}
        if "session_id" in request:
            message.setdefault("session_id", request["session_id"])
        self.deliver(message)

    def drop(self, reason: Optional[BaseException] = None) -> None:
        """Simulate the transport dying."""
        self._destroy(reason or ConnectivityError("transport lost"))


_JANUS_ENV_VARS = [
    "JANUS_CONFIG",
    "JANUS_CONNECTION__ADDRESS",
    "JANUS_CONNECTION__TRANSACTION_TIMEOUT",
    "JANUS_CONNECTION__TOKEN",
    "JANUS_CONNECTION__APISECRET",
    "JANUS_SESSION__KEEPALIVE_INTERVAL",
    "JANUS_LOGGING__LEVEL",
]


@pytest.fixture(autouse=True)
def _isolate_janus_env(monkeypatch):
    """Remove JANUS_* env vars and .env loading so Settings() sees defaults."""
    for var in _JANUS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    import config.settings as settings_module
    from pydantic_settings import SettingsConfigDict
    patched_config = SettingsConfigDict(
        env_prefix="JANUS_",
        env_file=None,
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
    monkeypatch.setattr(settings_module.Settings, "model_config", patched_config)


@pytest.fixture
def fake_connection_class():
    return FakeConnection


@pytest.fixture
def connection():
    """An opened-state FakeConnection without awaiting open()."""
    conn = FakeConnection()
    conn._open = True
    return conn


@pytest.fixture
def session(connection):
    return Session(connection, 1001)

"""
signaling/client.py — Client entry point

The one place external code starts the lifecycle chain:

    client = Client.from_settings(get_settings())
    connection = await client.create_connection("conn-1")
    session = await client.create_session(connection)   # keep-alive per config
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from config.settings import ConnectionConfig, SessionConfig, Settings
from observability.logger import get_logger
from signaling.connection import Connection, create_connection
from signaling.session import Session

log = get_logger(__name__)

ConnectionFactory = Callable[[str, str, ConnectionConfig], Connection]


class Client:
    """Builds and opens Connections to one gateway address, and Sessions on them."""

    def __init__(
        self,
        address: str,
        options: Optional[ConnectionConfig | dict[str, Any]] = None,
        *,
        session_options: Optional[SessionConfig | dict[str, Any]] = None,
        connection_factory: ConnectionFactory = create_connection,
    ) -> None:
        if isinstance(options, ConnectionConfig):
            options = options.model_dump()
        options = ConnectionConfig(**{**(options or {}), "address": address})
        if not isinstance(session_options, SessionConfig):
            session_options = SessionConfig(**(session_options or {}))
        self._address = address
        self._options = options
        self._session_options = session_options
        self._connection_factory = connection_factory

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "Client":
        kwargs.setdefault("session_options", settings.session)
        return cls(settings.connection.address, settings.connection, **kwargs)

    @property
    def address(self) -> str:
        return self._address

    @property
    def options(self) -> ConnectionConfig:
        return self._options

    @property
    def session_options(self) -> SessionConfig:
        return self._session_options

    async def create_connection(self, connection_id: str) -> Connection:
        """
        Build a Connection and open it.

        Raises ConnectivityError if the gateway cannot be reached.
        """
        connection = self._connection_factory(connection_id, self._address, self._options)
        await connection.open()
        log.info("client.connection_ready", connection_id=connection_id, address=self._address)
        return connection

    async def create_session(self, connection: Connection) -> Session:
        """Create a Session on `connection`, keeping it alive at the configured interval."""
        return await Session.create(
            connection,
            keepalive_interval=self._session_options.keepalive_interval or None,
        )

"""
signaling/connection.py — Gateway Connection

The transport boundary. A Connection opens a channel to the gateway, sends
messages, and emits:

    message(message)   exactly once per inbound message that is not the
                       reply to a connection-level request
    destroy(reason)    exactly once, when the connection becomes unusable

It also correlates connection-level requests (`create`, `info`) that are
answered before any session exists.

Reconnection and address fallback are not handled here: a dropped
connection is destroyed and its sessions with it.

Usage:
    async with create_connection("conn-1", "ws://127.0.0.1:8188") as connection:
        info = await connection.get_info()
        session = await Session.create(connection)
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from typing import Any, Optional

import websockets

from config.settings import ConnectionConfig
from exceptions import ConnectivityError, JanusClientError
from observability.logger import bind_connection, get_logger
from signaling.events import EventEmitter
from signaling.protocol import JanusType, decode, encode, make_request, response_policy_for
from signaling.transaction import Transaction, TransactionTable

log = get_logger(__name__)


class Connection(EventEmitter, ABC):
    """
    Lifecycle and correlation shared by every transport.

    Subclasses implement _connect(), _transmit() and _disconnect(), and feed
    every decoded inbound message to process_income_message().
    """

    def __init__(
        self,
        connection_id: str,
        address: str,
        options: Optional[ConnectionConfig] = None,
    ) -> None:
        super().__init__()
        self._id = connection_id
        self._address = address
        self._options = options or ConnectionConfig(address=address)
        self._transactions = TransactionTable(
            owner=f"connection:{connection_id}",
            timeout=self._options.transaction_timeout,
        )
        self._open = False
        self._destroyed = False
        self._log = get_logger(__name__, connection_id=connection_id)

    def __repr__(self) -> str:
        if self._destroyed:
            state = "destroyed"
        else:
            state = "open" if self._open else "closed"
        return f"<{type(self).__name__} {self._id} {self._address} {state}>"

    async def __aenter__(self) -> "Connection":
        await self.open()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # ── Identity / state ──────────────────────────────────────────────────────

    @property
    def id(self) -> str:
        return self._id

    @property
    def address(self) -> str:
        return self._address

    @property
    def options(self) -> ConnectionConfig:
        return self._options

    @property
    def transaction_timeout(self) -> Optional[float]:
        return self._transactions.timeout

    @property
    def is_open(self) -> bool:
        return self._open and not self._destroyed

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def open(self) -> None:
        """Open the transport. Raises ConnectivityError on failure."""
        if self._destroyed:
            raise ConnectivityError(f"Connection {self._id} is destroyed")
        if self._open:
            return
        await self._connect()
        self._open = True
        self._log.info("connection.opened", address=self._address)

    async def close(self) -> None:
        """Close the transport and destroy the connection."""
        if self._destroyed:
            return
        try:
            await self._disconnect()
        finally:
            self._destroy(ConnectivityError(f"Connection {self._id} was closed"))

    # ── Outbound ──────────────────────────────────────────────────────────────

    async def send(self, message: dict[str, Any]) -> None:
        """
        Transmit `message`. Raises ConnectivityError if the connection is not
        open or the transport refuses it; nothing is dropped silently.
        """
        if not self.is_open:
            raise ConnectivityError(f"Connection {self._id} is not open")
        if self._options.token and "token" not in message:
            message["token"] = self._options.token
        if self._options.apisecret and "apisecret" not in message:
            message["apisecret"] = self._options.apisecret
        await self._transmit(message)

    async def request(self, message: dict[str, Any]) -> Any:
        """Send a connection-level request and return its correlated reply."""
        if not message.get("transaction"):
            message["transaction"] = self._transactions.new_id()
        transaction = self._transactions.add(Transaction(
            message["transaction"],
            request=message,
            policy=response_policy_for(message),
        ))
        try:
            await self.send(message)
        except JanusClientError as exc:
            transaction.reject(exc)
            raise
        return await transaction.future

    async def get_info(self) -> dict[str, Any]:
        """Return the gateway's `server_info` reply."""
        return await self.request(make_request(JanusType.INFO))

    # ── Inbound ───────────────────────────────────────────────────────────────

    def process_income_message(self, message: dict[str, Any]) -> None:
        transaction_id = message.get("transaction")
        if transaction_id and transaction_id in self._transactions:
            self._transactions.dispatch(message)
            return
        self.emit("message", message)

    def _destroy(self, reason: BaseException) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self._open = False
        self._transactions.cancel_all(reason)
        self._log.info("connection.destroyed", reason=str(reason))
        self.emit("destroy", reason)

    # ── Transport ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def _connect(self) -> None:
        ...

    @abstractmethod
    async def _transmit(self, message: dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def _disconnect(self) -> None:
        ...


class WebSocketConnection(Connection):
    """Connection over the gateway's WebSocket transport (`janus-protocol`)."""

    def __init__(
        self,
        connection_id: str,
        address: str,
        options: Optional[ConnectionConfig] = None,
    ) -> None:
        super().__init__(connection_id, address, options)
        self._ws = None
        self._reader_task: Optional[asyncio.Task[None]] = None

    async def _connect(self) -> None:
        try:
            self._ws = await websockets.connect(
                self._address,
                subprotocols=[self._options.subprotocol],
                open_timeout=self._options.open_timeout,
                close_timeout=self._options.close_timeout,
                max_size=self._options.max_message_size,
            )
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            raise ConnectivityError(f"Could not open {self._address}: {exc}") from exc
        self._reader_task = asyncio.create_task(
            self._reader_loop(), name=f"janus-reader-{self._id}"
        )

    async def _transmit(self, message: dict[str, Any]) -> None:
        try:
            await self._ws.send(encode(message))
        except websockets.ConnectionClosed as exc:
            raise ConnectivityError(f"Connection {self._id} closed while sending") from exc

    async def _disconnect(self) -> None:
        reader, self._reader_task = self._reader_task, None
        if reader is not None:
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def _reader_loop(self) -> None:
        """Read frames until the socket closes, then destroy the connection."""
        bind_connection(self._id, self._address)
        try:
            async for raw in self._ws:
                try:
                    message = decode(raw)
                except ValueError as exc:
                    self._log.warning("connection.bad_frame", error=str(exc))
                    continue
                self.process_income_message(message)
        except websockets.ConnectionClosed as exc:
            self._log.warning("connection.lost", code=getattr(exc, "code", None))
        self._destroy(ConnectivityError(f"Connection {self._id} was closed by the gateway"))


def create_connection(
    connection_id: str,
    address: str,
    options: Optional[ConnectionConfig | dict[str, Any]] = None,
) -> Connection:
    """Build (but do not open) the connection for `address`."""
    if isinstance(options, dict):
        options = ConnectionConfig(**{**options, "address": address})
    elif options is None:
        options = ConnectionConfig(address=address)
    return WebSocketConnection(connection_id, address, options)

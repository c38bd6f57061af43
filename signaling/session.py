"""
signaling/session.py — Gateway Session

One Session per gateway-assigned session id. Owns its plugin handles and
the transactions of session-level requests (attach, keepalive, destroy),
sends everything through its Connection, and routes what the connection
delivers to the right transaction or plugin.

Destruction (explicit destroy, gateway `timeout`, or connection loss)
rejects every pending request of the session and of each plugin, then
emits `destroy`, which detaches every plugin.

Usage:
    session = await Session.create(connection, keepalive_interval=30)
    plugin = await session.attach_plugin("janus.plugin.streaming")
    ...
    await session.destroy()
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Any, Optional

from exceptions import ConnectivityError, JanusClientError, SessionDestroyedError
from observability.logger import get_logger
from signaling.events import EventEmitter
from signaling.plugin import Plugin
from signaling.protocol import (
    JanusType,
    handle_id_of,
    make_request,
    response_policy_for,
)
from signaling.transaction import Transaction, TransactionTable

if TYPE_CHECKING:
    from signaling.connection import Connection

log = get_logger(__name__)


class Session(EventEmitter):
    """
    A gateway session bound to one Connection.

    Events:
        message(message)   push for the session not claimed by any plugin
        destroy(reason)    emitted once; `reason` is the error pending
                           requests were rejected with
    """

    def __init__(self, connection: "Connection", session_id: Any) -> None:
        super().__init__()
        self._connection = connection
        self._id = session_id
        self._plugins: dict[Any, Plugin] = {}
        self._transactions = TransactionTable(
            owner=f"session:{session_id}",
            timeout=connection.transaction_timeout,
        )
        self._destroyed = False
        self._keepalive_task: Optional[asyncio.Task[None]] = None
        self._log = get_logger(__name__, session_id=session_id)
        connection.on("message", self.process_income_message)
        connection.on("destroy", self._on_connection_destroy)

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else f"{len(self._plugins)} plugin(s)"
        return f"<Session {self._id} {state}>"

    @classmethod
    async def create(
        cls,
        connection: "Connection",
        *,
        keepalive_interval: Optional[float] = None,
    ) -> "Session":
        """Ask the gateway for a new session and bind it to `connection`."""
        response = await connection.request(make_request(JanusType.CREATE))
        session = cls(connection, response["data"]["id"])
        log.info("session.created", session_id=session.id, connection_id=connection.id)
        if keepalive_interval:
            session.start_keepalive(keepalive_interval)
        return session

    # ── Identity / state ──────────────────────────────────────────────────────

    @property
    def id(self) -> Any:
        return self._id

    @property
    def connection(self) -> "Connection":
        return self._connection

    @property
    def transaction_timeout(self) -> Optional[float]:
        return self._transactions.timeout

    @property
    def transactions(self) -> TransactionTable:
        return self._transactions

    @property
    def plugins(self) -> dict[Any, Plugin]:
        return dict(self._plugins)

    @property
    def is_destroyed(self) -> bool:
        return self._destroyed

    def get_plugin(self, handle_id: Any) -> Optional[Plugin]:
        return self._plugins.get(handle_id)

    def has_plugin(self, handle_id: Any) -> bool:
        return handle_id in self._plugins

    # ── Outbound ──────────────────────────────────────────────────────────────

    async def send(self, message: dict[str, Any], *, expect_reply: bool = True) -> Any:
        """
        Send `message` in this session and, if `expect_reply`, return the reply.

        Messages whose `handle_id` names an owned plugin go through that
        plugin's pre-send hook and are correlated in its table. The caller's
        `transaction` id is kept; one is generated when missing. Raises
        DuplicateIdError, before sending, if that id is already live.
        """
        if self._destroyed:
            raise SessionDestroyedError(f"Session {self._id} is destroyed")
        message["session_id"] = self._id
        plugin = self._plugins.get(message.get("handle_id"))
        table = plugin.transactions if plugin is not None else self._transactions
        if not message.get("transaction"):
            message["transaction"] = table.new_id()
        registered = plugin.process_outcome_message(message) if plugin is not None else None

        transaction = registered
        if expect_reply and transaction is None:
            transaction = table.add(Transaction(
                message["transaction"],
                request=message,
                policy=response_policy_for(message),
            ))

        try:
            await self._connection.send(message)
        except JanusClientError as exc:
            if transaction is not None:
                transaction.reject(exc)
            raise
        if not expect_reply:
            return None
        if registered is not None:
            # Shared with concurrent detach() callers; cancelling one must not settle it.
            return await asyncio.shield(transaction.future)
        return await transaction.future

    async def attach_plugin(self, name: str, *, opaque_id: Optional[str] = None) -> Plugin:
        """Attach a new handle for plugin `name` and return it."""
        response = await self.send(make_request(JanusType.ATTACH, plugin=name, opaque_id=opaque_id))
        plugin = Plugin.create(self, name, response["data"]["id"])
        self._add_plugin(plugin)
        self._log.info("plugin.attached", plugin=name, handle_id=plugin.id)
        return plugin

    async def keepalive(self) -> Any:
        return await self.send(make_request(JanusType.KEEPALIVE))

    def start_keepalive(self, interval: float) -> None:
        """Send a keep-alive every `interval` seconds until destroyed."""
        self.stop_keepalive()
        self._keepalive_task = asyncio.create_task(
            self._keepalive_loop(interval), name=f"janus-keepalive-{self._id}"
        )

    def stop_keepalive(self) -> None:
        task, self._keepalive_task = self._keepalive_task, None
        if task is not None and task is not _current_task():
            task.cancel()

    async def destroy(self) -> Any:
        """Destroy the session on the gateway, then tear it down locally."""
        response = await self.send(make_request(JanusType.DESTROY))
        self._destroy(SessionDestroyedError(f"Session {self._id} was destroyed"))
        return response

    # ── Inbound ───────────────────────────────────────────────────────────────

    def process_income_message(self, message: dict[str, Any]) -> None:
        """Route one message delivered by the connection."""
        if self._destroyed or message.get("session_id") != self._id:
            return
        transaction_id = message.get("transaction")
        if transaction_id and transaction_id in self._transactions:
            self._transactions.dispatch(message)
            return

        plugin = self._plugin_for(message)
        if plugin is not None:
            plugin.process_income_message(message)
            return
        if transaction_id:
            self._log.debug("session.stale_dropped", transaction=transaction_id, janus=message.get("janus"))
            return
        if message.get("janus") == JanusType.TIMEOUT.value:
            self._log.warning("session.timed_out")
            self._destroy(SessionDestroyedError(f"Session {self._id} timed out on the gateway"))
            return
        self.emit("message", message)

    # ── Internals ─────────────────────────────────────────────────────────────

    def _plugin_for(self, message: dict[str, Any]) -> Optional[Plugin]:
        handle_id = handle_id_of(message)
        if handle_id is not None and handle_id in self._plugins:
            return self._plugins[handle_id]
        # Replies such as detach's `success` carry no handle id.
        transaction_id = message.get("transaction")
        if transaction_id:
            for plugin in self._plugins.values():
                if transaction_id in plugin.transactions:
                    return plugin
        return None

    def _add_plugin(self, plugin: Plugin) -> None:
        self._plugins[plugin.id] = plugin
        plugin.once("detach", lambda: self._remove_plugin(plugin))

    def _remove_plugin(self, plugin: Plugin) -> None:
        if self._plugins.get(plugin.id) is plugin:
            del self._plugins[plugin.id]

    async def _keepalive_loop(self, interval: float) -> None:
        while not self._destroyed:
            await asyncio.sleep(interval)
            try:
                await self.keepalive()
            except SessionDestroyedError:
                return
            except JanusClientError as exc:
                self._log.warning("session.keepalive_failed", error=str(exc))

    def _on_connection_destroy(self, reason: Optional[BaseException] = None) -> None:
        self._destroy(reason or ConnectivityError(f"Connection {self._connection.id} was destroyed"))

    def _destroy(self, reason: BaseException) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        self.stop_keepalive()
        self._connection.off("message", self.process_income_message)
        self._connection.off("destroy", self._on_connection_destroy)
        self._transactions.cancel_all(reason)
        self._log.info("session.destroyed", reason=str(reason), plugins=len(self._plugins))
        self.emit("destroy", reason)
        self._plugins.clear()


def _current_task() -> Optional[asyncio.Task[Any]]:
    with contextlib.suppress(RuntimeError):
        return asyncio.current_task()
    return None

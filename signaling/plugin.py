"""
signaling/plugin.py — Plugin Handles

A Plugin is one gateway handle attached to a Session. It sends requests
scoped to its handle id, owns the transactions of those requests, and
receives whatever the session routes to it.

Lifecycle:
    attached ──detach sent──▶ detaching ──success──▶ detached
    detaching ──error / no reply──▶ attached
    attached ──gateway pushes `detached`──▶ detached
    attached ──session destroyed──▶ detached

`detached` is terminal. Events: `message` (any push for this handle) and
`detach` (emitted exactly once, on entering `detached`).

Specialised handles register a subclass by plugin name:

    @register_plugin("janus.plugin.streaming")
    class StreamingPlugin(Plugin):
        ...

Plugin.create() falls back to the base Plugin for unregistered names.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Optional, Type, TypeVar

from exceptions import PreconditionError, ProtocolError
from observability.logger import get_logger
from signaling.events import EventEmitter
from signaling.protocol import JanusType, make_request, plugin_data_of
from signaling.transaction import Transaction, TransactionTable

if TYPE_CHECKING:
    from signaling.session import Session

P = TypeVar("P", bound="Plugin")


class PluginState(str, Enum):
    ATTACHED  = "attached"
    DETACHING = "detaching"
    DETACHED  = "detached"


class Plugin(EventEmitter):
    """Base handle. Also the fallback for plugin names nobody registered."""

    _registry: ClassVar[dict[str, Type["Plugin"]]] = {}

    def __init__(self, session: "Session", name: str, handle_id: Any) -> None:
        super().__init__()
        self._session = session
        self._name = name
        self._id = handle_id
        self._state = PluginState.ATTACHED
        self._transactions = TransactionTable(
            owner=f"plugin:{handle_id}",
            timeout=session.transaction_timeout,
        )
        self._detach_transaction: Optional[Transaction] = None
        self._log = get_logger(__name__, plugin=name, handle_id=handle_id)
        session.on("destroy", self._on_session_destroy)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._name} id={self._id} {self._state.value}>"

    # ── Registry ──────────────────────────────────────────────────────────────

    @classmethod
    def register(cls, name: str, plugin_class: Type["Plugin"]) -> None:
        """Use `plugin_class` for every handle attached under `name`."""
        cls._registry[name] = plugin_class

    @classmethod
    def unregister(cls, name: str) -> None:
        cls._registry.pop(name, None)

    @classmethod
    def create(cls, session: "Session", name: str, handle_id: Any) -> "Plugin":
        """Instantiate the class registered for `name`, or the base Plugin."""
        plugin_class = cls._registry.get(name, Plugin)
        return plugin_class(session, name, handle_id)

    # ── Identity / state ──────────────────────────────────────────────────────

    @property
    def id(self) -> Any:
        return self._id

    def get_id(self) -> Any:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def session(self) -> "Session":
        return self._session

    @property
    def state(self) -> PluginState:
        return self._state

    @property
    def is_detached(self) -> bool:
        return self._state is PluginState.DETACHED

    @property
    def transactions(self) -> TransactionTable:
        return self._transactions

    def add_transaction(self, transaction: Transaction) -> Transaction:
        return self._transactions.add(transaction)

    # ── Outbound ──────────────────────────────────────────────────────────────

    async def send(self, message: dict[str, Any], *, expect_reply: bool = True) -> Any:
        """
        Send `message` on this handle.

        `handle_id` is always overwritten with this plugin's id. Returns the
        correlated reply when `expect_reply`, else None once sent.
        Raises PreconditionError once the plugin is detached.
        """
        if self._state is PluginState.DETACHED:
            raise PreconditionError(f"Plugin {self._id} is detached")
        message["handle_id"] = self._id
        return await self._session.send(message, expect_reply=expect_reply)

    async def send_request(
        self,
        body: dict[str, Any],
        jsep: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Send a plugin request and return the whole reply (jsep included).

        Raises ProtocolError when the plugin answers with an error payload.
        """
        response = await self.send(make_request(JanusType.MESSAGE, body=body, jsep=jsep))
        data = plugin_data_of(response)
        if "error_code" in data or "error" in data:
            raise ProtocolError.from_plugin_data(data)
        return response

    async def send_message(
        self,
        body: dict[str, Any],
        jsep: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send a plugin request and return only its plugin data."""
        return plugin_data_of(await self.send_request(body, jsep))

    async def detach(self) -> Any:
        """
        Ask the gateway to drop this handle.

        A detach already in flight is awaited instead of sent twice.
        Raises PreconditionError if the plugin is already detached.
        """
        if self._state is PluginState.DETACHED:
            raise PreconditionError(f"Plugin {self._id} is already detached")
        if self._state is PluginState.DETACHING and self._detach_transaction is not None:
            return await asyncio.shield(self._detach_transaction.future)
        return await self.send(make_request(JanusType.DETACH))

    def process_outcome_message(self, message: dict[str, Any]) -> Optional[Transaction]:
        """
        Pre-send hook, called by the session for messages on this handle.

        Returns the transaction it registered for `message`, if any.
        """
        if message.get("janus") == JanusType.DETACH.value:
            return self._on_detach(message)
        return None

    # ── Inbound ───────────────────────────────────────────────────────────────

    def process_income_message(self, message: dict[str, Any]) -> None:
        """Entry point for every inbound message addressed to this handle."""
        if self._state is PluginState.DETACHED:
            self._log.debug("plugin.message_after_detach", janus=message.get("janus"))
            return
        message = self._transactions.dispatch(message)
        if message is None:
            return
        if message.get("janus") == JanusType.DETACHED.value:
            self._on_detached(message)
            return
        self.emit("message", message)

    # ── Callbacks ─────────────────────────────────────────────────────────────

    def _on_detach(self, message: dict[str, Any]) -> Transaction:
        if not message.get("transaction"):
            message["transaction"] = self._transactions.new_id()
        transaction = Transaction(
            message["transaction"],
            self._on_detach_response,
            request=message,
        )
        self.add_transaction(transaction)
        transaction.future.add_done_callback(self._on_detach_settled)
        self._detach_transaction = transaction
        self._state = PluginState.DETACHING
        self._log.debug("plugin.detaching", transaction=transaction.id)
        return transaction

    def _on_detach_response(self, message: dict[str, Any]) -> dict[str, Any]:
        if message.get("janus") == JanusType.ERROR.value:
            self._rollback_detach()
            raise ProtocolError.from_message(message)
        self._detach()
        return message

    def _on_detach_settled(self, future: Any) -> None:
        # Rejections that never reached _on_detach_response (timeout, send failure).
        # Callers await it through asyncio.shield, so their cancellation never lands here.
        if self._state is PluginState.DETACHING and (future.cancelled() or future.exception()):
            self._rollback_detach()

    def _rollback_detach(self) -> None:
        if self._state is PluginState.DETACHING:
            self._state = PluginState.ATTACHED
            self._log.info("plugin.detach_rolled_back")
        self._detach_transaction = None

    def _on_detached(self, message: dict[str, Any]) -> None:
        # The gateway already dropped the handle; a pending detach() succeeded.
        if self._detach_transaction is not None:
            self._detach_transaction.resolve(message)
        self._detach()

    def _on_session_destroy(self, reason: Optional[BaseException] = None) -> None:
        self._detach(reason)

    def _detach(self, reason: Optional[BaseException] = None) -> None:
        """Release local state and emit `detach`. No round-trip."""
        if self._state is PluginState.DETACHED:
            return
        self._state = PluginState.DETACHED
        self._detach_transaction = None
        self._session.off("destroy", self._on_session_destroy)
        self._transactions.cancel_all(
            reason or PreconditionError(f"Plugin {self._id} was detached")
        )
        self._log.info("plugin.detached")
        self.emit("detach")


PluginClass = Callable[[Type[P]], Type[P]]


def register_plugin(name: str) -> PluginClass:
    """Class decorator form of Plugin.register()."""

    def decorator(plugin_class: Type[P]) -> Type[P]:
        Plugin.register(name, plugin_class)
        return plugin_class

    return decorator

"""
signaling/protocol.py — Janus Message Protocol

Every message is a JSON object with a `janus` discriminator. Requests carry
a `transaction` id that the gateway echoes on the correlated reply; scoped
messages carry `session_id` and `handle_id` (the gateway names the handle
`sender` on what it pushes).

This module knows the message kinds, which reply kinds settle which request
(ResponsePolicy), and how messages go on and off the wire.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


# ─────────────────────────────────────────────────────────────────────────────
# Message kinds
# ─────────────────────────────────────────────────────────────────────────────

class JanusType(str, Enum):
    """Values of the `janus` field this client sends or understands."""

    # Client → Gateway
    CREATE           = "create"
    DESTROY          = "destroy"
    ATTACH           = "attach"
    DETACH           = "detach"
    MESSAGE          = "message"
    KEEPALIVE        = "keepalive"
    INFO             = "info"

    # Gateway → Client
    SUCCESS          = "success"
    ERROR            = "error"
    ACK              = "ack"
    EVENT            = "event"
    SERVER_INFO      = "server_info"
    DETACHED         = "detached"
    TIMEOUT          = "timeout"
    WEBRTCUP         = "webrtcup"
    MEDIA            = "media"
    SLOWLINK         = "slowlink"
    HANGUP           = "hangup"


# ─────────────────────────────────────────────────────────────────────────────
# Response policies
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ResponsePolicy:
    """
    Which reply kinds settle a transaction.

    `error` is always terminal. Kinds in `success` resolve the transaction,
    kinds in `provisional` leave it pending, anything else is ignored.
    """
    success: tuple[str, ...] = (JanusType.SUCCESS.value,)
    provisional: tuple[str, ...] = (JanusType.ACK.value,)

    def is_terminal(self, kind: Optional[str]) -> bool:
        return kind == JanusType.ERROR.value or kind in self.success

    def is_provisional(self, kind: Optional[str]) -> bool:
        return kind in self.provisional


DEFAULT_POLICY = ResponsePolicy()

# Plugin messages are acked first; the plugin answers with `event`
# (asynchronous requests) or `success` (synchronous ones).
PLUGIN_MESSAGE_POLICY = ResponsePolicy(
    success=(JanusType.SUCCESS.value, JanusType.EVENT.value),
)

# The gateway answers a keep-alive with a bare `ack`.
KEEPALIVE_POLICY = ResponsePolicy(success=(JanusType.ACK.value,), provisional=())

SERVER_INFO_POLICY = ResponsePolicy(success=(JanusType.SERVER_INFO.value,), provisional=())

_POLICIES: dict[str, ResponsePolicy] = {
    JanusType.MESSAGE.value:   PLUGIN_MESSAGE_POLICY,
    JanusType.KEEPALIVE.value: KEEPALIVE_POLICY,
    JanusType.INFO.value:      SERVER_INFO_POLICY,
}


def response_policy_for(request: dict[str, Any]) -> ResponsePolicy:
    """Return the policy that settles replies to `request`."""
    return _POLICIES.get(request.get("janus"), DEFAULT_POLICY)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def new_transaction_id() -> str:
    """Return a fresh opaque transaction id."""
    return uuid.uuid4().hex[:12]


def make_request(kind: JanusType | str, **fields: Any) -> dict[str, Any]:
    """Build a request envelope, dropping None-valued fields."""
    message: dict[str, Any] = {"janus": JanusType(kind).value}
    message.update({k: v for k, v in fields.items() if v is not None})
    return message


def handle_id_of(message: dict[str, Any]) -> Any:
    """The handle a message is about: `sender` on pushes, `handle_id` otherwise."""
    sender = message.get("sender")
    return sender if sender is not None else message.get("handle_id")


def plugin_data_of(message: dict[str, Any]) -> dict[str, Any]:
    """Extract `plugindata.data` from a plugin reply (empty dict when absent)."""
    return (message.get("plugindata") or {}).get("data") or {}


def encode(message: dict[str, Any]) -> str:
    """Serialize a message for the wire."""
    return json.dumps(message)


def decode(raw: str | bytes) -> dict[str, Any]:
    """
    Parse one wire frame. Raises ValueError if it is not a JSON object.
    """
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError(f"expected a JSON object, got {type(message).__name__}")
    return message

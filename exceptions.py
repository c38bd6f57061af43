"""
exceptions.py — Janus Client Unified Error Hierarchy

All client-specific exceptions live here. Every layer of the stack
raises typed subclasses of JanusClientError — never bare Exception.

Import from here, not from individual modules:
    from exceptions import ProtocolError, PreconditionError

Hierarchy:
    JanusClientError
    ├── ConnectivityError
    │   ├── SessionDestroyedError
    │   └── TransactionTimeoutError
    ├── ProtocolError
    ├── PreconditionError
    └── DuplicateIdError
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional


# ─────────────────────────────────────────────────────────────────────────────
# Gateway API error codes
# ─────────────────────────────────────────────────────────────────────────────

class ErrorCode(IntEnum):
    """Numeric error codes documented by the Janus core API."""

    UNAUTHORIZED               = 403
    UNAUTHORIZED_PLUGIN        = 405
    TRANSPORT_SPECIFIC         = 450
    MISSING_REQUEST            = 452
    UNKNOWN_REQUEST            = 453
    INVALID_JSON               = 454
    INVALID_JSON_OBJECT        = 455
    MISSING_MANDATORY_ELEMENT  = 456
    INVALID_REQUEST_PATH       = 457
    SESSION_NOT_FOUND          = 458
    HANDLE_NOT_FOUND           = 459
    PLUGIN_NOT_FOUND           = 460
    PLUGIN_ATTACH              = 461
    PLUGIN_MESSAGE             = 462
    PLUGIN_DETACH              = 463
    JSEP_UNKNOWN_TYPE          = 464
    JSEP_INVALID_SDP           = 465
    TRICKLE_INVALID_STREAM     = 466
    INVALID_ELEMENT_TYPE       = 467
    SESSION_CONFLICT           = 468
    UNEXPECTED_ANSWER          = 469
    TOKEN_NOT_FOUND            = 470
    WEBRTC_STATE               = 471
    NOT_ACCEPTING_SESSIONS     = 472
    UNKNOWN                    = 490


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class JanusClientError(Exception):
    """Base class for all client exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Connectivity
# ─────────────────────────────────────────────────────────────────────────────

class ConnectivityError(JanusClientError):
    """
    The connection failed to open, failed to send, or was destroyed while
    operations were pending.
    """


class SessionDestroyedError(ConnectivityError):
    """The owning session was destroyed (explicitly or by gateway timeout)."""


class TransactionTimeoutError(ConnectivityError):
    """No correlated response arrived within the transaction's bounded wait."""

    def __init__(self, transaction_id: str, timeout: float, message: str = "") -> None:
        self.transaction_id = transaction_id
        self.timeout = timeout
        super().__init__(
            message or f"Transaction '{transaction_id}' got no response within {timeout:g}s"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Protocol
# ─────────────────────────────────────────────────────────────────────────────

class ProtocolError(JanusClientError):
    """
    The gateway answered with an error.

    `code` and `reason` are carried exactly as the gateway sent them.
    """

    def __init__(self, code: Optional[int], reason: str, message: str = "") -> None:
        self.code = code
        self.reason = reason
        super().__init__(message or f"Gateway error {code}: {reason}")

    @property
    def known_code(self) -> Optional[ErrorCode]:
        """The documented ErrorCode for `code`, or None for plugin-specific codes."""
        try:
            return ErrorCode(self.code)
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> "ProtocolError":
        """Build from a `{"janus": "error", "error": {code, reason}}` envelope."""
        error = message.get("error") or {}
        return cls(error.get("code"), error.get("reason") or "unknown error")

    @classmethod
    def from_plugin_data(cls, data: dict[str, Any]) -> "ProtocolError":
        """Build from a plugin payload carrying `error_code` / `error`."""
        return cls(data.get("error_code"), data.get("error") or "unknown plugin error")


# ─────────────────────────────────────────────────────────────────────────────
# Lifecycle misuse
# ─────────────────────────────────────────────────────────────────────────────

class PreconditionError(JanusClientError):
    """Operation attempted on a detached plugin, a destroyed owner, or mid-detach."""


class DuplicateIdError(JanusClientError):
    """A transaction id is already live in its table."""

    def __init__(self, transaction_id: str, message: str = "") -> None:
        self.transaction_id = transaction_id
        super().__init__(message or f"Transaction id '{transaction_id}' is already in use")


# ─────────────────────────────────────────────────────────────────────────────
# Convenience: all public names
# ─────────────────────────────────────────────────────────────────────────────

__all__ = [
    "ErrorCode",
    "JanusClientError",
    # Connectivity
    "ConnectivityError",
    "SessionDestroyedError",
    "TransactionTimeoutError",
    # Protocol
    "ProtocolError",
    # Lifecycle
    "PreconditionError",
    "DuplicateIdError",
]

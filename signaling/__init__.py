"""
signaling/ — Janus Signaling Control Plane

Client-side correlation and lifecycle layer for the Janus WebRTC gateway:
one Connection carries Sessions, each Session carries Plugin handles, and
every request is matched to its asynchronous reply by a Transaction.

    client = Client("ws://127.0.0.1:8188")
    connection = await client.create_connection("conn-1")
    session = await Session.create(connection)
    streaming = await session.attach_plugin("janus.plugin.streaming")
    mountpoints = await streaming.list()
"""

from signaling.protocol import JanusType, ResponsePolicy
from signaling.events import EventEmitter
from signaling.transaction import Transaction, TransactionTable
from signaling.plugin import Plugin, PluginState, register_plugin
from signaling.plugins import StreamingPlugin
from signaling.session import Session
from signaling.connection import Connection, WebSocketConnection, create_connection
from signaling.client import Client

__all__ = [
    "JanusType",
    "ResponsePolicy",
    "EventEmitter",
    "Transaction",
    "TransactionTable",
    "Plugin",
    "PluginState",
    "register_plugin",
    "StreamingPlugin",
    "Session",
    "Connection",
    "WebSocketConnection",
    "create_connection",
    "Client",
]

"""
signaling/plugins/streaming.py — Streaming plugin handle

Requests understood by janus.plugin.streaming. `list` and `info` are
answered synchronously; `watch`, `start`, `pause`, `stop` and `switch` are
acked first and answered by an `event`. SDP in the gateway's `jsep` is
passed through untouched.
"""

from __future__ import annotations

from typing import Any, Optional

from signaling.plugin import Plugin, register_plugin


@register_plugin("janus.plugin.streaming")
class StreamingPlugin(Plugin):
    NAME = "janus.plugin.streaming"

    async def list(self) -> list[dict[str, Any]]:
        """Return the mountpoints the gateway exposes."""
        data = await self.send_message({"request": "list"})
        return data.get("list", [])

    async def info(self, mountpoint_id: Any, secret: Optional[str] = None) -> dict[str, Any]:
        body: dict[str, Any] = {"request": "info", "id": mountpoint_id}
        if secret is not None:
            body["secret"] = secret
        data = await self.send_message(body)
        return data.get("info", {})

    async def watch(self, mountpoint_id: Any, **options: Any) -> dict[str, Any]:
        """
        Start watching a mountpoint.

        Returns the whole event so the caller can answer the `jsep` offer.
        """
        return await self.send_request({"request": "watch", "id": mountpoint_id, **options})

    async def start(self, jsep: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        return await self.send_message({"request": "start"}, jsep)

    async def pause(self) -> dict[str, Any]:
        return await self.send_message({"request": "pause"})

    async def stop(self) -> dict[str, Any]:
        return await self.send_message({"request": "stop"})

    async def switch(self, mountpoint_id: Any) -> dict[str, Any]:
        return await self.send_message({"request": "switch", "id": mountpoint_id})

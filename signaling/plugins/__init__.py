"""
signaling/plugins/ — Registered plugin handles

Importing this package registers every specialised handle with
Plugin.create(). Names nobody registered still get the base Plugin.
"""

from signaling.plugins.streaming import StreamingPlugin

__all__ = [
    "StreamingPlugin",
]

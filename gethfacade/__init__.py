"""
Geth Facade

Ethereum-style JSON-RPC (eth_/net_/web3_) over HTTP and WebSocket,
served from a pluggable backend.
"""

from .constants import FACADE_VERSION as __version__
from .backend import Backend, MemoryBackend, ReadBackend, SubscriptionBackend
from .facade import FacadeServer

__all__ = [
    "__version__",
    "Backend",
    "ReadBackend",
    "SubscriptionBackend",
    "MemoryBackend",
    "FacadeServer",
]

"""
Backend capability and implementations.
"""

from .base import Backend, ReadBackend, StopHandle, StreamPair, SubscriptionBackend
from .memory import MemoryBackend
from .stream import SubscriptionStream
from .types import (
    AccessTuple,
    Block,
    BlockHeader,
    CallMsg,
    FilterQuery,
    Log,
    Receipt,
    SyncStatus,
    Transaction,
    Withdrawal,
)

__all__ = [
    "Backend",
    "ReadBackend",
    "SubscriptionBackend",
    "StopHandle",
    "StreamPair",
    "SubscriptionStream",
    "MemoryBackend",
    "AccessTuple",
    "Block",
    "BlockHeader",
    "CallMsg",
    "FilterQuery",
    "Log",
    "Receipt",
    "SyncStatus",
    "Transaction",
    "Withdrawal",
]

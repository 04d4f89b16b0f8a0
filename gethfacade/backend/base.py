"""
Backend Capability Interface

The facade takes exactly one dependency on blockchain semantics: an object
implementing these abstract classes. ``ReadBackend`` covers every query the
dispatcher serves; ``SubscriptionBackend`` adds the three streams used by
WebSocket subscriptions. ``Backend`` combines both.

All operations are coroutines. Lookups of unknown entities return ``None``
(rendered as JSON ``null``); genuine failures raise ``BackendError``.
Implementations are shared by every transport and connection and must be
safe for concurrent use.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable, List, Optional, Tuple, TypeVar

from .types import Block, CallMsg, FilterQuery, Log, Receipt, SyncStatus, Transaction

T = TypeVar("T")

# Stop-handle: invoking it terminates the matching stream
StopHandle = Callable[[], None]

# What every subscribe_* operation returns
StreamPair = Tuple[AsyncIterator[T], StopHandle]


class ReadBackend(ABC):
    """Query capability consumed by the JSON-RPC dispatcher."""

    # -- lifecycle (optional) -----------------------------------------------

    async def start(self) -> None:
        """Awaited by the facade before its listeners start."""

    async def stop(self) -> None:
        """Awaited by the facade after its listeners have stopped."""

    # -- chain info ---------------------------------------------------------

    @abstractmethod
    async def chain_id(self) -> int:
        """EIP-155 chain id."""

    @abstractmethod
    async def client_version(self) -> str:
        """Human-readable client version string."""

    @abstractmethod
    async def block_number(self) -> int:
        """Height of the most recent block."""

    @abstractmethod
    async def gas_price(self) -> int:
        """Suggested gas price in wei."""

    # -- blocks -------------------------------------------------------------

    @abstractmethod
    async def block_by_number(self, number: int, full_tx: bool) -> Optional[Block]:
        ...

    @abstractmethod
    async def block_by_hash(self, block_hash: bytes, full_tx: bool) -> Optional[Block]:
        ...

    @abstractmethod
    async def block_transaction_count_by_number(self, number: int) -> Optional[int]:
        ...

    @abstractmethod
    async def block_transaction_count_by_hash(self, block_hash: bytes) -> Optional[int]:
        ...

    # -- accounts -----------------------------------------------------------

    @abstractmethod
    async def balance(self, address: bytes, block: int) -> int:
        """Balance in wei at ``block``."""

    @abstractmethod
    async def get_code(self, address: bytes, block: int) -> bytes:
        ...

    @abstractmethod
    async def get_storage_at(self, address: bytes, key: bytes, block: int) -> bytes:
        """Raw 32-byte storage word."""

    @abstractmethod
    async def get_transaction_count(self, address: bytes, block: int) -> int:
        ...

    # -- execution ----------------------------------------------------------

    @abstractmethod
    async def call(self, msg: CallMsg, block: int) -> bytes:
        """Execute ``msg`` without persisting state and return its output."""

    @abstractmethod
    async def estimate_gas(self, msg: CallMsg) -> int:
        ...

    @abstractmethod
    async def send_raw_transaction(self, raw: bytes) -> bytes:
        """Submit a signed transaction; returns its 32-byte hash."""

    # -- transactions -------------------------------------------------------

    @abstractmethod
    async def transaction_by_hash(self, tx_hash: bytes) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def transaction_by_block_number_and_index(self, number: int, index: int) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def transaction_by_block_hash_and_index(self, block_hash: bytes, index: int) -> Optional[Transaction]:
        ...

    @abstractmethod
    async def receipt_by_hash(self, tx_hash: bytes) -> Optional[Receipt]:
        ...

    @abstractmethod
    async def get_logs(self, query: FilterQuery) -> List[Log]:
        ...

    # -- network ------------------------------------------------------------

    @abstractmethod
    async def peer_count(self) -> int:
        ...

    @abstractmethod
    async def listening(self) -> bool:
        ...

    @abstractmethod
    async def syncing(self) -> Optional[SyncStatus]:
        """``None`` when fully synced."""

    # -- mining / uncles (PoW-era surface) ----------------------------------

    @abstractmethod
    async def mining(self) -> bool:
        ...

    @abstractmethod
    async def hashrate(self) -> int:
        ...

    @abstractmethod
    async def uncle_count_by_block_number(self, number: int) -> Optional[int]:
        ...

    @abstractmethod
    async def uncle_count_by_block_hash(self, block_hash: bytes) -> Optional[int]:
        ...

    @abstractmethod
    async def uncle_by_block_number_and_index(self, number: int, index: int) -> Optional[Block]:
        ...

    @abstractmethod
    async def uncle_by_block_hash_and_index(self, block_hash: bytes, index: int) -> Optional[Block]:
        ...


class SubscriptionBackend(ABC):
    """
    Streaming capability used by ``eth_subscribe``.

    Each call returns a fresh ``(stream, stop)`` pair. The stream ends once
    ``stop`` is invoked (or the backend shuts the subscription down itself);
    ``stop`` must be idempotent.
    """

    @abstractmethod
    async def subscribe_new_heads(self) -> StreamPair[Block]:
        ...

    @abstractmethod
    async def subscribe_logs(self, query: Optional[FilterQuery]) -> StreamPair[Log]:
        ...

    @abstractmethod
    async def subscribe_pending_transactions(self) -> StreamPair[bytes]:
        """Stream of pending transaction hashes."""


class Backend(ReadBackend, SubscriptionBackend):
    """Full capability bundle: queries plus subscriptions."""

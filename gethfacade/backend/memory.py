"""
In-Memory Development Backend

A self-contained chain simulation used as the default backend of the
command line and as a realistic collaborator in tests. It seals a block every
``block_time`` seconds from an asyncio ticker, keeps sealed blocks,
transactions and receipts in memory, and feeds the three subscription kinds.

It does not execute anything: raw transactions are accepted as opaque bytes,
identified by their keccak-256 hash and mined into the next block with a
fixed transfer gas cost.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Dict, List, Optional, Set

from eth_hash.auto import keccak

from ..constants import (
    DEFAULT_CHAIN_ID,
    ETHER,
    MEMORY_BLOCK_TIME,
    MEMORY_GAS_LIMIT,
    MEMORY_GAS_PRICE,
    TRANSFER_GAS,
)
from ..exceptions import BackendError
from ..logger import get_logger
from .base import Backend, StreamPair
from .stream import SubscriptionStream
from .types import (
    Block,
    BlockHeader,
    CallMsg,
    FilterQuery,
    Log,
    Receipt,
    SyncStatus,
    Transaction,
)

logger = get_logger(__name__)

MEMORY_CLIENT_VERSION = "memory-backend/0.1.0 (mock)"

# Pre-funded development accounts
GENESIS_BALANCES: Dict[bytes, int] = {
    bytes.fromhex("31fcb3c05f73242aedd88b024e33d25a81fe67db"): 100 * ETHER,
    bytes.fromhex("a2902c128d42a64f371457b82bb6abb05b9b8bf1"): 150 * ETHER,
}


class MemoryBackend(Backend):
    """
    Mock chain with a ticking block counter.

    Every read returns data from the sealed blocks; nothing blocks on I/O.
    Mutable state is guarded by a ``threading.Lock`` so the backend can be
    shared by every connection and also be driven from other threads.
    """

    def __init__(
        self,
        chain_id: int = DEFAULT_CHAIN_ID,
        block_time: float = MEMORY_BLOCK_TIME,
        balances: Optional[Dict[bytes, int]] = None,
    ):
        self._chain_id = chain_id
        self.block_time = block_time
        self._balances = dict(GENESIS_BALANCES if balances is None else balances)

        self._lock = threading.Lock()
        self._blocks: List[Block] = []
        self._blocks_by_hash: Dict[bytes, Block] = {}
        self._transactions: Dict[bytes, Transaction] = {}
        self._receipts: Dict[bytes, Receipt] = {}
        self._logs: List[Log] = []
        self._pending: List[Transaction] = []

        self._head_streams: Set[SubscriptionStream] = set()
        self._log_streams: Dict[SubscriptionStream, Optional[FilterQuery]] = {}
        self._pending_streams: Set[SubscriptionStream] = set()

        self._ticker: Optional[asyncio.Task] = None

        self._append_block(self._build_block(0, bytes(32), []))

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Launch the block ticker on the running loop."""
        if self._ticker is not None:
            return
        self._ticker = asyncio.create_task(self._tick_loop())
        logger.info(f"Memory backend started (chain_id={self._chain_id}, block_time={self.block_time}s)")

    async def stop(self) -> None:
        """Cancel the ticker and end every live stream."""
        if self._ticker is not None:
            self._ticker.cancel()
            try:
                await self._ticker
            except asyncio.CancelledError:
                pass
            self._ticker = None

        with self._lock:
            streams = list(self._head_streams) + list(self._log_streams) + list(self._pending_streams)
        for stream in streams:
            stream.close()
        logger.info("Memory backend stopped")

    @property
    def running(self) -> bool:
        return self._ticker is not None

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.block_time)
            block = self.seal_block()
            logger.debug(f"Sealed block {block.number} ({len(block.transactions)} txs)")

    # -- chain mutation -----------------------------------------------------

    def _build_block(self, number: int, parent_hash: bytes, transactions: List[Transaction]) -> Block:
        timestamp = int(time.time())
        block_hash = keccak(
            parent_hash
            + number.to_bytes(8, "big")
            + timestamp.to_bytes(8, "big")
            + b"".join(tx.hash for tx in transactions)
        )
        header = BlockHeader(
            number=number,
            hash=block_hash,
            parent_hash=parent_hash,
            state_root=keccak(b"state" + block_hash),
            receipts_root=keccak(b"receipts" + block_hash),
            gas_limit=MEMORY_GAS_LIMIT,
            gas_used=TRANSFER_GAS * len(transactions),
            timestamp=timestamp,
            base_fee_per_gas=MEMORY_GAS_PRICE,
        )
        return Block(header=header, transactions=transactions)

    def _append_block(self, block: Block) -> None:
        self._blocks.append(block)
        self._blocks_by_hash[block.hash] = block

    def seal_block(self) -> Block:
        """Seal the pending pool into a new block and announce it."""
        with self._lock:
            parent = self._blocks[-1]
            pending, self._pending = self._pending, []
            block = self._build_block(parent.number + 1, parent.hash, pending)

            cumulative = 0
            for index, tx in enumerate(pending):
                tx.block_hash = block.hash
                tx.block_number = block.number
                tx.transaction_index = index
                cumulative += TRANSFER_GAS
                self._receipts[tx.hash] = Receipt(
                    transaction_hash=tx.hash,
                    status=1,
                    cumulative_gas_used=cumulative,
                    gas_used=TRANSFER_GAS,
                    type=tx.type,
                    block_hash=block.hash,
                    block_number=block.number,
                    transaction_index=index,
                    effective_gas_price=tx.gas_price,
                )

            self._append_block(block)
            streams = list(self._head_streams)

        for stream in streams:
            stream.publish(block)
        return block

    def emit_log(self, log: Log) -> int:
        """
        Record a log and push it to every matching ``logs`` stream.

        Returns the number of streams the log was delivered to.
        """
        with self._lock:
            self._logs.append(log)
            targets = [s for s, q in self._log_streams.items() if q is None or q.matches(log)]

        delivered = 0
        for stream in targets:
            if stream.publish(log):
                delivered += 1
        return delivered

    def _resolve(self, number: int) -> Optional[Block]:
        with self._lock:
            if 0 <= number < len(self._blocks):
                return self._blocks[number]
        return None

    # -- chain info ---------------------------------------------------------

    async def chain_id(self) -> int:
        return self._chain_id

    async def client_version(self) -> str:
        return MEMORY_CLIENT_VERSION

    async def block_number(self) -> int:
        with self._lock:
            return self._blocks[-1].number

    async def gas_price(self) -> int:
        return MEMORY_GAS_PRICE

    # -- blocks -------------------------------------------------------------

    async def block_by_number(self, number: int, full_tx: bool) -> Optional[Block]:
        return self._resolve(number)

    async def block_by_hash(self, block_hash: bytes, full_tx: bool) -> Optional[Block]:
        with self._lock:
            return self._blocks_by_hash.get(block_hash)

    async def block_transaction_count_by_number(self, number: int) -> Optional[int]:
        block = self._resolve(number)
        return None if block is None else len(block.transactions)

    async def block_transaction_count_by_hash(self, block_hash: bytes) -> Optional[int]:
        block = await self.block_by_hash(block_hash, False)
        return None if block is None else len(block.transactions)

    # -- accounts -----------------------------------------------------------

    async def balance(self, address: bytes, block: int) -> int:
        return self._balances.get(address, 0)

    async def get_code(self, address: bytes, block: int) -> bytes:
        return b""

    async def get_storage_at(self, address: bytes, key: bytes, block: int) -> bytes:
        return bytes(32)

    async def get_transaction_count(self, address: bytes, block: int) -> int:
        return 0

    # -- execution ----------------------------------------------------------

    async def call(self, msg: CallMsg, block: int) -> bytes:
        return b""

    async def estimate_gas(self, msg: CallMsg) -> int:
        return TRANSFER_GAS

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        if not raw:
            raise BackendError("empty transaction")

        tx_hash = keccak(raw)
        with self._lock:
            if tx_hash in self._transactions:
                raise BackendError("already known")
            tx = Transaction(
                hash=tx_hash,
                input=raw,
                gas=TRANSFER_GAS,
                gas_price=MEMORY_GAS_PRICE,
                chain_id=self._chain_id,
            )
            self._transactions[tx_hash] = tx
            self._pending.append(tx)
            streams = list(self._pending_streams)

        logger.debug(f"Accepted raw transaction 0x{tx_hash.hex()}")
        for stream in streams:
            stream.publish(tx_hash)
        return tx_hash

    # -- transactions -------------------------------------------------------

    async def transaction_by_hash(self, tx_hash: bytes) -> Optional[Transaction]:
        with self._lock:
            return self._transactions.get(tx_hash)

    async def transaction_by_block_number_and_index(self, number: int, index: int) -> Optional[Transaction]:
        block = self._resolve(number)
        if block is None or index >= len(block.transactions):
            return None
        return block.transactions[index]

    async def transaction_by_block_hash_and_index(self, block_hash: bytes, index: int) -> Optional[Transaction]:
        block = await self.block_by_hash(block_hash, True)
        if block is None or index >= len(block.transactions):
            return None
        return block.transactions[index]

    async def receipt_by_hash(self, tx_hash: bytes) -> Optional[Receipt]:
        with self._lock:
            return self._receipts.get(tx_hash)

    async def get_logs(self, query: FilterQuery) -> List[Log]:
        with self._lock:
            return [log for log in self._logs if query.matches(log)]

    # -- network ------------------------------------------------------------

    async def peer_count(self) -> int:
        return 0

    async def listening(self) -> bool:
        return True

    async def syncing(self) -> Optional[SyncStatus]:
        return None

    # -- mining / uncles ----------------------------------------------------

    async def mining(self) -> bool:
        return False

    async def hashrate(self) -> int:
        return 0

    async def uncle_count_by_block_number(self, number: int) -> Optional[int]:
        return None if self._resolve(number) is None else 0

    async def uncle_count_by_block_hash(self, block_hash: bytes) -> Optional[int]:
        return None if await self.block_by_hash(block_hash, False) is None else 0

    async def uncle_by_block_number_and_index(self, number: int, index: int) -> Optional[Block]:
        return None

    async def uncle_by_block_hash_and_index(self, block_hash: bytes, index: int) -> Optional[Block]:
        return None

    # -- subscriptions ------------------------------------------------------

    def _forget_stream(self, stream: SubscriptionStream) -> None:
        with self._lock:
            self._head_streams.discard(stream)
            self._log_streams.pop(stream, None)
            self._pending_streams.discard(stream)

    async def subscribe_new_heads(self) -> StreamPair[Block]:
        stream: SubscriptionStream[Block] = SubscriptionStream(on_close=self._forget_stream)
        with self._lock:
            self._head_streams.add(stream)
        return stream, stream.close

    async def subscribe_logs(self, query: Optional[FilterQuery]) -> StreamPair[Log]:
        stream: SubscriptionStream[Log] = SubscriptionStream(on_close=self._forget_stream)
        with self._lock:
            self._log_streams[stream] = query
        return stream, stream.close

    async def subscribe_pending_transactions(self) -> StreamPair[bytes]:
        stream: SubscriptionStream[bytes] = SubscriptionStream(on_close=self._forget_stream)
        with self._lock:
            self._pending_streams.add(stream)
        return stream, stream.close

    def subscriber_count(self) -> int:
        """Number of live streams across all kinds."""
        with self._lock:
            return len(self._head_streams) + len(self._log_streams) + len(self._pending_streams)

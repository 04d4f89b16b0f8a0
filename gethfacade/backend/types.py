"""
Backend Domain Types

Raw representations exchanged between the dispatcher and a backend.
Hashes, addresses, topics and payloads are ``bytes``; every numeric field is
a plain unsigned ``int``. Conversion to the JSON-RPC hex shape happens in
``gethfacade.rpc.encoding``.

Optional fields (EIP-1559 fee caps, EIP-4844 blob data, access lists) are
``None`` when the backend does not populate them and are then omitted from
the encoded output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class AccessTuple:
    """EIP-2930 access list entry."""
    address: bytes
    storage_keys: List[bytes] = field(default_factory=list)


@dataclass
class Withdrawal:
    """EIP-4895 beacon chain withdrawal."""
    index: int
    validator_index: int
    address: bytes
    amount: int


@dataclass
class Transaction:
    """A signed transaction, pending or mined."""
    hash: bytes
    from_address: bytes = b""
    to: Optional[bytes] = None  # None for contract creation
    input: bytes = b""
    nonce: int = 0
    value: int = 0
    gas: int = 0
    gas_price: int = 0
    type: int = 0
    v: int = 0
    r: int = 0
    s: int = 0

    # Inclusion data, None while pending
    block_hash: Optional[bytes] = None
    block_number: Optional[int] = None
    transaction_index: Optional[int] = None
    chain_id: Optional[int] = None

    # EIP-2930 / EIP-1559 / EIP-4844
    access_list: Optional[List[AccessTuple]] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    max_fee_per_blob_gas: Optional[int] = None
    blob_versioned_hashes: Optional[List[bytes]] = None


@dataclass
class BlockHeader:
    """Block header fields."""
    number: int
    hash: bytes
    parent_hash: bytes = bytes(32)
    state_root: bytes = bytes(32)
    receipts_root: bytes = bytes(32)
    logs_bloom: bytes = bytes(256)
    miner: bytes = bytes(20)
    gas_limit: int = 0
    gas_used: int = 0
    timestamp: int = 0
    mix_hash: bytes = bytes(32)
    base_fee_per_gas: Optional[int] = None
    extra_data: bytes = b""
    blob_gas_used: Optional[int] = None
    excess_blob_gas: Optional[int] = None


@dataclass
class Block:
    """A block: header plus body."""
    header: BlockHeader
    transactions: List[Transaction] = field(default_factory=list)
    uncles: List[bytes] = field(default_factory=list)
    withdrawals: List[Withdrawal] = field(default_factory=list)

    @property
    def number(self) -> int:
        return self.header.number

    @property
    def hash(self) -> bytes:
        return self.header.hash


@dataclass
class Log:
    """An event log emitted during transaction execution."""
    address: bytes
    topics: List[bytes] = field(default_factory=list)
    data: bytes = b""
    block_number: int = 0
    block_hash: bytes = bytes(32)
    transaction_hash: bytes = bytes(32)
    transaction_index: int = 0
    log_index: int = 0
    removed: bool = False


@dataclass
class Receipt:
    """Execution receipt of a mined transaction."""
    transaction_hash: bytes
    status: int = 1
    cumulative_gas_used: int = 0
    gas_used: int = 0
    logs: List[Log] = field(default_factory=list)
    contract_address: bytes = b""
    type: int = 0
    block_hash: bytes = bytes(32)
    block_number: int = 0
    transaction_index: int = 0

    # Optional extras some backends can provide
    from_address: Optional[bytes] = None
    to: Optional[bytes] = None
    effective_gas_price: Optional[int] = None
    logs_bloom: Optional[bytes] = None


@dataclass
class CallMsg:
    """
    Message for ``eth_call`` / ``eth_estimateGas``.

    Keys missing from the request are zero-valued.
    """
    from_address: bytes = b""
    to: bytes = b""
    data: bytes = b""
    value: int = 0
    gas: int = 0
    gas_price: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0


@dataclass
class FilterQuery:
    """
    Log filter criteria.

    ``topics`` is positional: entry *i* is either ``None`` (wildcard) or a
    list of alternatives for topic *i*. Alternatives within a position are
    OR-ed; positions are AND-ed. ``from_block``/``to_block`` of ``None`` mean
    unbounded.
    """
    from_block: Optional[int] = None
    to_block: Optional[int] = None
    addresses: List[bytes] = field(default_factory=list)
    topics: List[Optional[List[bytes]]] = field(default_factory=list)
    block_hash: Optional[bytes] = None

    def matches(self, log: Log) -> bool:
        """Check whether ``log`` satisfies this filter."""
        if self.block_hash is not None:
            if log.block_hash != self.block_hash:
                return False
        else:
            if self.from_block is not None and log.block_number < self.from_block:
                return False
            if self.to_block is not None and log.block_number > self.to_block:
                return False

        if self.addresses and log.address not in self.addresses:
            return False

        for i, alternatives in enumerate(self.topics):
            if not alternatives:
                continue  # wildcard
            if i >= len(log.topics):
                return False
            if log.topics[i] not in alternatives:
                return False

        return True


@dataclass
class SyncStatus:
    """Progress report returned while the backend is catching up."""
    starting_block: int
    current_block: int
    highest_block: int

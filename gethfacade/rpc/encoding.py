"""
Hex Encoding and Parameter Coercion

Two directions live here:

* Coercers turn positional JSON-RPC params into backend types. Structural
  mismatches (wrong JSON type, non-object where an object is expected) raise
  ``TypeError``; undecodable hex raises ``HexDecodeError`` and unknown block
  tags raise ``UnsupportedBlockTagError``.
* Encoders turn backend entities into the JSON-RPC shape. They are pure and
  never fail on well-typed input.

Hex conventions: quantities are ``0x`` + lowercase hex without leading zeros
(``"0x0"`` for zero); byte strings keep every byte (``2*len + 2`` chars).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from ..backend.types import (
    AccessTuple,
    Block,
    CallMsg,
    FilterQuery,
    Log,
    Receipt,
    SyncStatus,
    Transaction,
    Withdrawal,
)
from ..constants import (
    BLOCK_TAG_EARLIEST,
    BLOCK_TAG_LATEST,
    SYMBOLIC_BLOCK_TAGS,
    VALID_HEX_PATTERN,
    VALID_QUANTITY_PATTERN,
)
from ..exceptions import HexDecodeError, UnsupportedBlockTagError

# A parsed block tag: a concrete height or one of SYMBOLIC_BLOCK_TAGS
BlockTag = Union[int, str]


# ─── Primitive hex codec ──────────────────────────────────────────────────────

def encode_quantity(value: int) -> str:
    """Integer → canonical 0x-prefixed hex."""
    return hex(value)


def encode_data(value: bytes) -> str:
    """Bytes → 0x-prefixed lowercase hex, every byte kept."""
    return "0x" + bytes(value).hex()


def _strip_0x(h: str) -> str:
    """Remove 0x prefix if present."""
    return h[2:] if h.startswith("0x") or h.startswith("0X") else h


def _require_str(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected {what} string, got {type(value).__name__}")
    return value


def decode_data(value: Any) -> bytes:
    """Hex string (prefix optional) → bytes."""
    raw = _strip_0x(_require_str(value, "hex"))
    if not VALID_HEX_PATTERN.match(raw):
        raise HexDecodeError(f"invalid hex string: {value!r}")
    if len(raw) % 2:
        raise HexDecodeError(f"hex string has odd length: {value!r}")
    return bytes.fromhex(raw)


def decode_quantity(value: Any) -> int:
    """0x-prefixed hex string → int. Unprefixed decimal is rejected."""
    raw = _require_str(value, "quantity")
    if not VALID_QUANTITY_PATTERN.match(raw):
        raise HexDecodeError(f"invalid hex quantity: {value!r}")
    return int(raw[2:], 16)


def decode_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {type(value).__name__}")
    return value


# ─── Block tags ───────────────────────────────────────────────────────────────

def parse_block_tag(value: Any) -> BlockTag:
    """
    Parse a block selector.

    Returns the lower-cased symbolic name for ``latest``/``earliest``/
    ``pending``/``safe``/``finalized`` (the empty string counts as
    ``latest``) or the integer height for a hex number.
    """
    tag = _require_str(value, "block tag")
    lowered = tag.lower()
    if lowered == "":
        return BLOCK_TAG_LATEST
    if lowered in SYMBOLIC_BLOCK_TAGS:
        return lowered
    if lowered.startswith("0x"):
        return decode_quantity(tag)
    raise UnsupportedBlockTagError(f"unsupported block tag: {tag!r}")


def _filter_bound(value: Any) -> Optional[int]:
    """Filter range bound: hex height, earliest → 0, other tags → open."""
    if value is None:
        return None
    tag = parse_block_tag(value)
    if isinstance(tag, int):
        return tag
    if tag == BLOCK_TAG_EARLIEST:
        return 0
    return None


# ─── Request objects ──────────────────────────────────────────────────────────

_CALL_QUANTITY_FIELDS = (
    ("value", "value"),
    ("gas", "gas"),
    ("gasPrice", "gas_price"),
    ("maxFeePerGas", "max_fee_per_gas"),
    ("maxPriorityFeePerGas", "max_priority_fee_per_gas"),
)


def to_call_msg(value: Any) -> CallMsg:
    """
    Coerce an ``eth_call`` / ``eth_estimateGas`` call object.

    ``input`` and ``data`` are synonyms; ``input`` wins when both are given.
    Missing (or null) keys stay zero-valued.
    """
    if not isinstance(value, dict):
        raise TypeError("call object must be a JSON object")

    msg = CallMsg()
    if value.get("from") is not None:
        msg.from_address = decode_data(value["from"])
    if value.get("to") is not None:
        msg.to = decode_data(value["to"])

    payload = value.get("input")
    if payload is None:
        payload = value.get("data")
    if payload is not None:
        msg.data = decode_data(payload)

    for key, attr in _CALL_QUANTITY_FIELDS:
        if value.get(key) is not None:
            setattr(msg, attr, decode_quantity(value[key]))
    return msg


def _topic_slot(value: Any) -> Optional[List[bytes]]:
    if value is None:
        return None
    if isinstance(value, list):
        alternatives = [decode_data(t) for t in value if t is not None]
        return alternatives or None
    return [decode_data(value)]


def to_filter_query(value: Any) -> FilterQuery:
    """Coerce an ``eth_getLogs`` / ``logs`` subscription filter object."""
    if not isinstance(value, dict):
        raise TypeError("filter must be a JSON object")

    query = FilterQuery(
        from_block=_filter_bound(value.get("fromBlock")),
        to_block=_filter_bound(value.get("toBlock")),
    )

    address = value.get("address")
    if isinstance(address, list):
        query.addresses = [decode_data(a) for a in address]
    elif address is not None:
        query.addresses = [decode_data(address)]

    topics = value.get("topics")
    if topics is not None:
        if not isinstance(topics, list):
            raise TypeError("topics must be an array")
        query.topics = [_topic_slot(t) for t in topics]

    if value.get("blockHash") is not None:
        query.block_hash = decode_data(value["blockHash"])
    return query


# ─── Entity encoders ──────────────────────────────────────────────────────────

def encode_access_list(access_list: List[AccessTuple]) -> List[Dict[str, Any]]:
    return [
        {
            "address": encode_data(t.address),
            "storageKeys": [encode_data(k) for k in t.storage_keys],
        }
        for t in access_list
    ]


def encode_transaction(tx: Transaction) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "hash": encode_data(tx.hash),
        "from": encode_data(tx.from_address),
        "to": encode_data(tx.to) if tx.to is not None else None,
        "input": encode_data(tx.input),
        "value": encode_quantity(tx.value),
        "nonce": encode_quantity(tx.nonce),
        "gas": encode_quantity(tx.gas),
        "gasPrice": encode_quantity(tx.gas_price),
        "type": encode_quantity(tx.type),
        "r": encode_quantity(tx.r),
        "s": encode_quantity(tx.s),
        "v": encode_quantity(tx.v),
    }

    if tx.block_hash is not None:
        result["blockHash"] = encode_data(tx.block_hash)
    if tx.block_number is not None:
        result["blockNumber"] = encode_quantity(tx.block_number)
    if tx.transaction_index is not None:
        result["transactionIndex"] = encode_quantity(tx.transaction_index)
    if tx.chain_id is not None:
        result["chainId"] = encode_quantity(tx.chain_id)

    # EIP-1559
    if tx.max_fee_per_gas is not None:
        result["maxFeePerGas"] = encode_quantity(tx.max_fee_per_gas)
    if tx.max_priority_fee_per_gas is not None:
        result["maxPriorityFeePerGas"] = encode_quantity(tx.max_priority_fee_per_gas)

    # EIP-4844
    if tx.max_fee_per_blob_gas is not None:
        result["maxFeePerBlobGas"] = encode_quantity(tx.max_fee_per_blob_gas)
    if tx.blob_versioned_hashes:
        result["blobVersionedHashes"] = [encode_data(h) for h in tx.blob_versioned_hashes]

    # EIP-2930
    if tx.access_list:
        result["accessList"] = encode_access_list(tx.access_list)

    return result


def encode_withdrawal(w: Withdrawal) -> Dict[str, Any]:
    return {
        "index": encode_quantity(w.index),
        "validatorIndex": encode_quantity(w.validator_index),
        "address": encode_data(w.address),
        "amount": encode_quantity(w.amount),
    }


def encode_header(block: Block) -> Dict[str, Any]:
    """Header-shaped block object (used for ``newHeads`` notifications)."""
    h = block.header
    result: Dict[str, Any] = {
        "number": encode_quantity(h.number),
        "hash": encode_data(h.hash),
        "parentHash": encode_data(h.parent_hash),
        "stateRoot": encode_data(h.state_root),
        "receiptsRoot": encode_data(h.receipts_root),
        "logsBloom": encode_data(h.logs_bloom),
        "miner": encode_data(h.miner),
        "gasLimit": encode_quantity(h.gas_limit),
        "gasUsed": encode_quantity(h.gas_used),
        "timestamp": encode_quantity(h.timestamp),
        "mixHash": encode_data(h.mix_hash),
        "extraData": encode_data(h.extra_data),
    }
    if h.base_fee_per_gas is not None:
        result["baseFeePerGas"] = encode_quantity(h.base_fee_per_gas)
    if h.blob_gas_used is not None:
        result["blobGasUsed"] = encode_quantity(h.blob_gas_used)
    if h.excess_blob_gas is not None:
        result["excessBlobGas"] = encode_quantity(h.excess_blob_gas)
    return result


def encode_block(block: Block, full_tx: bool) -> Dict[str, Any]:
    """Full block object; ``transactions`` holds hashes or tx objects per ``full_tx``."""
    result = encode_header(block)
    if full_tx:
        result["transactions"] = [encode_transaction(tx) for tx in block.transactions]
    else:
        result["transactions"] = [encode_data(tx.hash) for tx in block.transactions]
    result["uncles"] = [encode_data(u) for u in block.uncles]
    result["withdrawals"] = [encode_withdrawal(w) for w in block.withdrawals]
    return result


def encode_log(log: Log) -> Dict[str, Any]:
    return {
        "address": encode_data(log.address),
        "topics": [encode_data(t) for t in log.topics],
        "data": encode_data(log.data),
        "blockNumber": encode_quantity(log.block_number),
        "blockHash": encode_data(log.block_hash),
        "transactionHash": encode_data(log.transaction_hash),
        "transactionIndex": encode_quantity(log.transaction_index),
        "logIndex": encode_quantity(log.log_index),
        "removed": log.removed,
    }


def encode_logs(logs: List[Log]) -> List[Dict[str, Any]]:
    return [encode_log(log) for log in logs]


def encode_receipt(receipt: Receipt) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "transactionHash": encode_data(receipt.transaction_hash),
        "status": "0x1" if receipt.status else "0x0",
        "cumulativeGasUsed": encode_quantity(receipt.cumulative_gas_used),
        "gasUsed": encode_quantity(receipt.gas_used),
        "blockNumber": encode_quantity(receipt.block_number),
        "blockHash": encode_data(receipt.block_hash),
        "transactionIndex": encode_quantity(receipt.transaction_index),
        "type": encode_quantity(receipt.type),
        "logs": encode_logs(receipt.logs),
    }
    if receipt.contract_address:
        result["contractAddress"] = encode_data(receipt.contract_address)
    if receipt.from_address is not None:
        result["from"] = encode_data(receipt.from_address)
    if receipt.to is not None:
        result["to"] = encode_data(receipt.to)
    if receipt.effective_gas_price is not None:
        result["effectiveGasPrice"] = encode_quantity(receipt.effective_gas_price)
    if receipt.logs_bloom is not None:
        result["logsBloom"] = encode_data(receipt.logs_bloom)
    return result


def encode_sync_status(status: Optional[SyncStatus]) -> Union[bool, Dict[str, str]]:
    if status is None:
        return False
    return {
        "startingBlock": encode_quantity(status.starting_block),
        "currentBlock": encode_quantity(status.current_block),
        "highestBlock": encode_quantity(status.highest_block),
    }

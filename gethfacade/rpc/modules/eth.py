"""
eth_* RPC Methods

Ethereum JSON-RPC namespace served from a ``ReadBackend``. Each method
declares its positional parameters; the dispatcher coerces them before the
handler runs, so handlers only deal with backend types and encode results.

Block tags arrive already parsed (an ``int`` height or a symbolic name) and
are resolved here: ``latest``, ``pending``, ``safe`` and ``finalized`` map to
the backend head, ``earliest`` to zero.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from ...constants import BLOCK_TAG_EARLIEST, BLOCK_TAG_LATEST
from ..encoding import (
    BlockTag,
    decode_bool,
    decode_data,
    decode_quantity,
    encode_block,
    encode_data,
    encode_logs,
    encode_quantity,
    encode_receipt,
    encode_sync_status,
    encode_transaction,
    parse_block_tag,
    to_call_msg,
    to_filter_query,
)
from ..server import Param, RPCModule, rpc_method

# Shared parameter declarations
ADDRESS = Param("address", decode_data)
BLOCK = Param("block", parse_block_tag)
BLOCK_HASH = Param("blockHash", decode_data)
TX_HASH = Param("txHash", decode_data)
INDEX = Param("index", decode_quantity)
FULL_TX = Param("fullTx", decode_bool, required=False, default=False)


class EthModule(RPCModule):
    """
    Ethereum RPC methods (eth_* namespace).

    Unknown entities come back from the backend as ``None`` and are returned
    as JSON ``null``.
    """

    namespace = "eth"

    async def _resolve_block_tag(self, tag: BlockTag) -> int:
        """Convert a parsed block tag to an integer height."""
        if isinstance(tag, int):
            return tag
        if tag == BLOCK_TAG_EARLIEST:
            return 0
        return await self.backend.block_number()

    # ══════════════════════════════════════════════════════════════════════════
    #  CHAIN INFO
    # ══════════════════════════════════════════════════════════════════════════

    @rpc_method
    async def chainId(self) -> str:
        """Returns the chain ID (EIP-695)."""
        return encode_quantity(await self.backend.chain_id())

    @rpc_method
    async def blockNumber(self) -> str:
        """Returns the number of the most recent block."""
        return encode_quantity(await self.backend.block_number())

    @rpc_method
    async def gasPrice(self) -> str:
        return encode_quantity(await self.backend.gas_price())

    @rpc_method
    async def syncing(self) -> Union[bool, Dict[str, str]]:
        """Returns ``False`` when caught up, else a progress object."""
        return encode_sync_status(await self.backend.syncing())

    @rpc_method
    async def mining(self) -> bool:
        return await self.backend.mining()

    @rpc_method
    async def hashrate(self) -> str:
        return encode_quantity(await self.backend.hashrate())

    # ══════════════════════════════════════════════════════════════════════════
    #  BLOCKS
    # ══════════════════════════════════════════════════════════════════════════

    @rpc_method(params=[BLOCK, FULL_TX])
    async def getBlockByNumber(self, block: BlockTag, full_tx: bool) -> Optional[Dict[str, Any]]:
        number = await self._resolve_block_tag(block)
        result = await self.backend.block_by_number(number, full_tx)
        return None if result is None else encode_block(result, full_tx)

    @rpc_method(params=[BLOCK_HASH, FULL_TX])
    async def getBlockByHash(self, block_hash: bytes, full_tx: bool) -> Optional[Dict[str, Any]]:
        result = await self.backend.block_by_hash(block_hash, full_tx)
        return None if result is None else encode_block(result, full_tx)

    @rpc_method(params=[BLOCK])
    async def getBlockTransactionCountByNumber(self, block: BlockTag) -> Optional[str]:
        number = await self._resolve_block_tag(block)
        count = await self.backend.block_transaction_count_by_number(number)
        return None if count is None else encode_quantity(count)

    @rpc_method(params=[BLOCK_HASH])
    async def getBlockTransactionCountByHash(self, block_hash: bytes) -> Optional[str]:
        count = await self.backend.block_transaction_count_by_hash(block_hash)
        return None if count is None else encode_quantity(count)

    @rpc_method(params=[BLOCK])
    async def getUncleCountByBlockNumber(self, block: BlockTag) -> Optional[str]:
        number = await self._resolve_block_tag(block)
        count = await self.backend.uncle_count_by_block_number(number)
        return None if count is None else encode_quantity(count)

    @rpc_method(params=[BLOCK_HASH])
    async def getUncleCountByBlockHash(self, block_hash: bytes) -> Optional[str]:
        count = await self.backend.uncle_count_by_block_hash(block_hash)
        return None if count is None else encode_quantity(count)

    @rpc_method(params=[BLOCK, INDEX])
    async def getUncleByBlockNumberAndIndex(self, block: BlockTag, index: int) -> Optional[Dict[str, Any]]:
        number = await self._resolve_block_tag(block)
        uncle = await self.backend.uncle_by_block_number_and_index(number, index)
        return None if uncle is None else encode_block(uncle, False)

    @rpc_method(params=[BLOCK_HASH, INDEX])
    async def getUncleByBlockHashAndIndex(self, block_hash: bytes, index: int) -> Optional[Dict[str, Any]]:
        uncle = await self.backend.uncle_by_block_hash_and_index(block_hash, index)
        return None if uncle is None else encode_block(uncle, False)

    # ══════════════════════════════════════════════════════════════════════════
    #  TRANSACTIONS
    # ══════════════════════════════════════════════════════════════════════════

    @rpc_method(params=[TX_HASH])
    async def getTransactionByHash(self, tx_hash: bytes) -> Optional[Dict[str, Any]]:
        tx = await self.backend.transaction_by_hash(tx_hash)
        return None if tx is None else encode_transaction(tx)

    @rpc_method(params=[BLOCK, INDEX])
    async def getTransactionByBlockNumberAndIndex(self, block: BlockTag, index: int) -> Optional[Dict[str, Any]]:
        number = await self._resolve_block_tag(block)
        tx = await self.backend.transaction_by_block_number_and_index(number, index)
        return None if tx is None else encode_transaction(tx)

    @rpc_method(params=[BLOCK_HASH, INDEX])
    async def getTransactionByBlockHashAndIndex(self, block_hash: bytes, index: int) -> Optional[Dict[str, Any]]:
        tx = await self.backend.transaction_by_block_hash_and_index(block_hash, index)
        return None if tx is None else encode_transaction(tx)

    @rpc_method(params=[TX_HASH])
    async def getTransactionReceipt(self, tx_hash: bytes) -> Optional[Dict[str, Any]]:
        receipt = await self.backend.receipt_by_hash(tx_hash)
        return None if receipt is None else encode_receipt(receipt)

    @rpc_method(params=[ADDRESS, BLOCK])
    async def getTransactionCount(self, address: bytes, block: BlockTag) -> str:
        number = await self._resolve_block_tag(block)
        return encode_quantity(await self.backend.get_transaction_count(address, number))

    @rpc_method(params=[Param("data", decode_data)])
    async def sendRawTransaction(self, raw: bytes) -> str:
        """Submit a signed transaction; returns its hash."""
        return encode_data(await self.backend.send_raw_transaction(raw))

    # ══════════════════════════════════════════════════════════════════════════
    #  STATE
    # ══════════════════════════════════════════════════════════════════════════

    @rpc_method(params=[ADDRESS, BLOCK])
    async def getBalance(self, address: bytes, block: BlockTag) -> str:
        """Returns the balance of an account in wei."""
        number = await self._resolve_block_tag(block)
        return encode_quantity(await self.backend.balance(address, number))

    @rpc_method(params=[ADDRESS, BLOCK])
    async def getCode(self, address: bytes, block: BlockTag) -> str:
        number = await self._resolve_block_tag(block)
        return encode_data(await self.backend.get_code(address, number))

    @rpc_method(params=[ADDRESS, Param("key", decode_data), BLOCK])
    async def getStorageAt(self, address: bytes, key: bytes, block: BlockTag) -> str:
        """Returns the raw 32-byte storage word at ``key``."""
        number = await self._resolve_block_tag(block)
        return encode_data(await self.backend.get_storage_at(address, key, number))

    # ══════════════════════════════════════════════════════════════════════════
    #  EXECUTION
    # ══════════════════════════════════════════════════════════════════════════

    @rpc_method(params=[
        Param("transaction", to_call_msg),
        Param("block", parse_block_tag, required=False, default=BLOCK_TAG_LATEST),
    ])
    async def call(self, msg, block: BlockTag) -> str:
        """Executes a message call without creating a transaction."""
        number = await self._resolve_block_tag(block)
        return encode_data(await self.backend.call(msg, number))

    @rpc_method(params=[Param("transaction", to_call_msg)])
    async def estimateGas(self, msg) -> str:
        return encode_quantity(await self.backend.estimate_gas(msg))

    # ══════════════════════════════════════════════════════════════════════════
    #  LOGS
    # ══════════════════════════════════════════════════════════════════════════

    @rpc_method(params=[Param("filter", to_filter_query)])
    async def getLogs(self, query) -> List[Dict[str, Any]]:
        """Returns logs matching the filter."""
        return encode_logs(await self.backend.get_logs(query))

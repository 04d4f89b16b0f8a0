"""
Hex codec, parameter coercion and entity encoder tests.
"""

import pytest

from gethfacade.backend.types import (
    AccessTuple,
    Block,
    BlockHeader,
    FilterQuery,
    Log,
    Receipt,
    SyncStatus,
    Transaction,
    Withdrawal,
)
from gethfacade.exceptions import HexDecodeError, UnsupportedBlockTagError
from gethfacade.rpc.encoding import (
    decode_bool,
    decode_data,
    decode_quantity,
    encode_block,
    encode_data,
    encode_header,
    encode_log,
    encode_quantity,
    encode_receipt,
    encode_sync_status,
    encode_transaction,
    parse_block_tag,
    to_call_msg,
    to_filter_query,
)

ADDR = bytes.fromhex("31fcb3c05f73242aedd88b024e33d25a81fe67db")
TOPIC_A = b"\xaa" * 32
TOPIC_B = b"\xbb" * 32


def _block(**header_overrides) -> Block:
    header = BlockHeader(number=5, hash=b"\x11" * 32, gas_limit=30_000_000, timestamp=1_700_000_000)
    for key, value in header_overrides.items():
        setattr(header, key, value)
    tx = Transaction(hash=b"\x22" * 32, from_address=ADDR, to=b"\x33" * 20, value=10, v=27, r=1, s=2)
    return Block(header=header, transactions=[tx])


# ===================================================================
# Hex codec
# ===================================================================

class TestQuantity:
    def test_zero_is_canonical(self):
        assert encode_quantity(0) == "0x0"

    @pytest.mark.parametrize("value", [1, 15, 16, 255, 256, 11155111, 2 ** 64, 100 * 10 ** 18])
    def test_no_leading_zeros_and_reparse(self, value):
        encoded = encode_quantity(value)
        assert encoded.startswith("0x")
        assert encoded[2] != "0"
        assert encoded == encoded.lower()
        assert decode_quantity(encoded) == value

    def test_known_values(self):
        assert encode_quantity(11155111) == "0xaa36a7"
        assert encode_quantity(100 * 10 ** 18) == "0x56bc75e2d63100000"

    def test_decode_accepts_uppercase_digits(self):
        assert decode_quantity("0xFF") == 255

    def test_decode_rejects_unprefixed_decimal(self):
        with pytest.raises(HexDecodeError):
            decode_quantity("100")

    def test_decode_rejects_bare_prefix(self):
        with pytest.raises(HexDecodeError):
            decode_quantity("0x")

    @pytest.mark.parametrize("value", ["0xzz", "0x 1", "0x1_0", "-0x1"])
    def test_decode_rejects_malformed(self, value):
        with pytest.raises(HexDecodeError):
            decode_quantity(value)

    def test_decode_rejects_non_string(self):
        with pytest.raises(TypeError):
            decode_quantity(16)


class TestData:
    def test_length_preserved(self):
        assert encode_data(bytes(32)) == "0x" + "00" * 32
        assert len(encode_data(bytes(32))) == 66

    def test_empty(self):
        assert encode_data(b"") == "0x"
        assert decode_data("0x") == b""

    def test_decode_mixed_case_and_optional_prefix(self):
        assert decode_data("0xABcd") == b"\xab\xcd"
        assert decode_data("0XABCD") == b"\xab\xcd"
        assert decode_data("abcd") == b"\xab\xcd"

    def test_round_trip(self):
        raw = bytes(range(256))
        encoded = encode_data(raw)
        assert len(encoded) == 2 * len(raw) + 2
        assert decode_data(encoded) == raw

    def test_non_hex_character(self):
        with pytest.raises(HexDecodeError):
            decode_data("0xzz")

    def test_odd_length(self):
        with pytest.raises(HexDecodeError):
            decode_data("0xabc")

    def test_whitespace_rejected(self):
        with pytest.raises(HexDecodeError):
            decode_data("0xab cd")

    def test_non_string(self):
        with pytest.raises(TypeError):
            decode_data(123)


class TestBool:
    def test_accepts_json_booleans(self):
        assert decode_bool(True) is True
        assert decode_bool(False) is False

    @pytest.mark.parametrize("value", ["true", 1, 0, "0x1"])
    def test_rejects_other_types(self, value):
        with pytest.raises(TypeError):
            decode_bool(value)


# ===================================================================
# Block tags
# ===================================================================

class TestBlockTag:
    @pytest.mark.parametrize("tag", ["latest", "earliest", "pending", "safe", "finalized"])
    def test_symbolic(self, tag):
        assert parse_block_tag(tag) == tag

    def test_case_insensitive(self):
        assert parse_block_tag("Latest") == "latest"
        assert parse_block_tag("FINALIZED") == "finalized"

    def test_empty_is_latest(self):
        assert parse_block_tag("") == "latest"

    def test_hex_number(self):
        assert parse_block_tag("0x0") == 0
        assert parse_block_tag("0x10") == 16

    def test_unknown_tag(self):
        with pytest.raises(UnsupportedBlockTagError):
            parse_block_tag("newest")

    def test_unprefixed_number_is_unsupported(self):
        with pytest.raises(UnsupportedBlockTagError):
            parse_block_tag("16")

    def test_malformed_hex(self):
        with pytest.raises(HexDecodeError):
            parse_block_tag("0xgg")

    def test_non_string(self):
        with pytest.raises(TypeError):
            parse_block_tag(16)


# ===================================================================
# Call objects and filters
# ===================================================================

class TestCallMsg:
    def test_missing_keys_are_zero(self):
        msg = to_call_msg({})
        assert msg.from_address == b""
        assert msg.to == b""
        assert msg.data == b""
        assert msg.value == 0
        assert msg.gas == 0
        assert msg.gas_price == 0

    def test_all_fields(self):
        msg = to_call_msg({
            "from": "0x" + ADDR.hex(),
            "to": "0x" + "33" * 20,
            "data": "0x1234",
            "value": "0xa",
            "gas": "0x5208",
            "gasPrice": "0x3b9aca00",
            "maxFeePerGas": "0x2",
            "maxPriorityFeePerGas": "0x1",
        })
        assert msg.from_address == ADDR
        assert msg.to == b"\x33" * 20
        assert msg.data == b"\x12\x34"
        assert msg.value == 10
        assert msg.gas == 21000
        assert msg.gas_price == 1_000_000_000
        assert msg.max_fee_per_gas == 2
        assert msg.max_priority_fee_per_gas == 1

    def test_input_and_data_are_synonyms(self):
        assert to_call_msg({"input": "0xbeef"}).data == to_call_msg({"data": "0xbeef"}).data

    def test_input_preferred_over_data(self):
        assert to_call_msg({"input": "0x01", "data": "0x02"}).data == b"\x01"

    def test_null_values_are_missing(self):
        msg = to_call_msg({"to": None, "value": None, "input": None, "data": "0x02"})
        assert msg.to == b""
        assert msg.value == 0
        assert msg.data == b"\x02"

    def test_not_an_object(self):
        with pytest.raises(TypeError):
            to_call_msg(["0x01"])

    def test_bad_hex(self):
        with pytest.raises(HexDecodeError):
            to_call_msg({"to": "0xnothex"})


class TestFilterQuery:
    def test_single_address_promoted(self):
        query = to_filter_query({"address": "0x" + ADDR.hex()})
        assert query.addresses == [ADDR]

    def test_address_list(self):
        query = to_filter_query({"address": ["0x" + ADDR.hex(), "0x" + "33" * 20]})
        assert query.addresses == [ADDR, b"\x33" * 20]

    def test_topics_keep_positions(self):
        query = to_filter_query({
            "topics": [None, "0x" + TOPIC_A.hex(), ["0x" + TOPIC_A.hex(), "0x" + TOPIC_B.hex()], []],
        })
        assert query.topics == [None, [TOPIC_A], [TOPIC_A, TOPIC_B], None]

    def test_block_range(self):
        query = to_filter_query({"fromBlock": "0x5", "toBlock": "0xa"})
        assert (query.from_block, query.to_block) == (5, 10)

    def test_symbolic_bounds(self):
        query = to_filter_query({"fromBlock": "earliest", "toBlock": "latest"})
        assert query.from_block == 0
        assert query.to_block is None

    def test_block_hash(self):
        query = to_filter_query({"blockHash": "0x" + "11" * 32})
        assert query.block_hash == b"\x11" * 32

    def test_empty_filter(self):
        query = to_filter_query({})
        assert query == FilterQuery()

    def test_not_an_object(self):
        with pytest.raises(TypeError):
            to_filter_query("0x1")

    def test_topics_not_a_list(self):
        with pytest.raises(TypeError):
            to_filter_query({"topics": "0x" + TOPIC_A.hex()})

    def test_unknown_tag(self):
        with pytest.raises(UnsupportedBlockTagError):
            to_filter_query({"fromBlock": "genesis"})


class TestFilterMatching:
    def _log(self, **kwargs) -> Log:
        defaults = dict(address=ADDR, topics=[TOPIC_A, TOPIC_B], block_number=7, block_hash=b"\x11" * 32)
        defaults.update(kwargs)
        return Log(**defaults)

    def test_empty_filter_matches_everything(self):
        assert FilterQuery().matches(self._log())

    def test_address_set(self):
        assert FilterQuery(addresses=[ADDR]).matches(self._log())
        assert not FilterQuery(addresses=[b"\x00" * 20]).matches(self._log())

    def test_wildcard_position(self):
        assert FilterQuery(topics=[None, [TOPIC_B]]).matches(self._log())

    def test_positional_conjunction(self):
        assert FilterQuery(topics=[[TOPIC_A], [TOPIC_B]]).matches(self._log())
        assert not FilterQuery(topics=[[TOPIC_B], [TOPIC_B]]).matches(self._log())

    def test_disjunction_within_position(self):
        assert FilterQuery(topics=[[TOPIC_B, TOPIC_A]]).matches(self._log())

    def test_more_positions_than_topics(self):
        assert not FilterQuery(topics=[None, None, [TOPIC_A]]).matches(self._log())

    def test_block_range(self):
        assert FilterQuery(from_block=7, to_block=7).matches(self._log())
        assert not FilterQuery(from_block=8).matches(self._log())
        assert not FilterQuery(to_block=6).matches(self._log())

    def test_block_hash_overrides_range(self):
        assert FilterQuery(block_hash=b"\x11" * 32, from_block=100).matches(self._log())
        assert not FilterQuery(block_hash=b"\x12" * 32).matches(self._log())


# ===================================================================
# Entity encoders
# ===================================================================

class TestBlockEncoding:
    def test_hash_only_transactions(self):
        encoded = encode_block(_block(), full_tx=False)
        assert encoded["transactions"] == ["0x" + "22" * 32]

    def test_full_transactions(self):
        encoded = encode_block(_block(), full_tx=True)
        assert encoded["transactions"][0]["hash"] == "0x" + "22" * 32
        assert encoded["transactions"][0]["value"] == "0xa"

    def test_required_fields(self):
        encoded = encode_block(_block(), full_tx=False)
        for key in (
            "number", "hash", "parentHash", "stateRoot", "receiptsRoot", "logsBloom",
            "miner", "gasLimit", "gasUsed", "timestamp", "mixHash", "extraData",
            "transactions", "uncles", "withdrawals",
        ):
            assert key in encoded
        assert encoded["number"] == "0x5"
        assert encoded["gasUsed"] == "0x0"
        assert len(encoded["logsBloom"]) == 2 + 512
        assert encoded["extraData"] == "0x"
        assert encoded["uncles"] == []
        assert encoded["withdrawals"] == []

    def test_optional_fields_gated(self):
        plain = encode_block(_block(), full_tx=False)
        assert "baseFeePerGas" not in plain
        assert "blobGasUsed" not in plain
        assert "excessBlobGas" not in plain

        rich = encode_block(_block(base_fee_per_gas=7, blob_gas_used=0, excess_blob_gas=3), full_tx=False)
        assert rich["baseFeePerGas"] == "0x7"
        assert rich["blobGasUsed"] == "0x0"
        assert rich["excessBlobGas"] == "0x3"

    def test_withdrawals(self):
        block = _block()
        block.withdrawals = [Withdrawal(index=1, validator_index=2, address=ADDR, amount=3)]
        encoded = encode_block(block, full_tx=False)
        assert encoded["withdrawals"] == [{
            "index": "0x1",
            "validatorIndex": "0x2",
            "address": "0x" + ADDR.hex(),
            "amount": "0x3",
        }]

    def test_header_shape(self):
        header = encode_header(_block())
        assert header["number"] == "0x5"
        assert "transactions" not in header
        assert "uncles" not in header
        assert "withdrawals" not in header


class TestTransactionEncoding:
    def test_legacy_fields(self):
        encoded = encode_transaction(Transaction(hash=b"\x22" * 32, from_address=ADDR, to=b"\x33" * 20, v=27, r=1, s=2))
        assert encoded["hash"] == "0x" + "22" * 32
        assert encoded["from"] == "0x" + ADDR.hex()
        assert encoded["to"] == "0x" + "33" * 20
        assert encoded["input"] == "0x"
        assert encoded["nonce"] == "0x0"
        assert encoded["type"] == "0x0"
        assert (encoded["v"], encoded["r"], encoded["s"]) == ("0x1b", "0x1", "0x2")
        for key in ("maxFeePerGas", "maxPriorityFeePerGas", "maxFeePerBlobGas", "blobVersionedHashes", "accessList"):
            assert key not in encoded

    def test_contract_creation_has_null_to(self):
        assert encode_transaction(Transaction(hash=b"\x22" * 32))["to"] is None

    def test_typed_fields_present_when_populated(self):
        tx = Transaction(
            hash=b"\x22" * 32,
            type=3,
            max_fee_per_gas=100,
            max_priority_fee_per_gas=2,
            max_fee_per_blob_gas=5,
            blob_versioned_hashes=[b"\x01" * 32],
            access_list=[AccessTuple(address=ADDR, storage_keys=[bytes(32)])],
        )
        encoded = encode_transaction(tx)
        assert encoded["type"] == "0x3"
        assert encoded["maxFeePerGas"] == "0x64"
        assert encoded["maxPriorityFeePerGas"] == "0x2"
        assert encoded["maxFeePerBlobGas"] == "0x5"
        assert encoded["blobVersionedHashes"] == ["0x" + "01" * 32]
        assert encoded["accessList"] == [{"address": "0x" + ADDR.hex(), "storageKeys": ["0x" + "00" * 32]}]

    def test_inclusion_fields(self):
        tx = Transaction(hash=b"\x22" * 32, block_hash=b"\x11" * 32, block_number=5, transaction_index=0)
        encoded = encode_transaction(tx)
        assert encoded["blockNumber"] == "0x5"
        assert encoded["transactionIndex"] == "0x0"


class TestReceiptAndLogEncoding:
    def test_receipt(self):
        receipt = Receipt(
            transaction_hash=b"\x22" * 32,
            status=1,
            cumulative_gas_used=42000,
            gas_used=21000,
            block_number=5,
            logs=[Log(address=ADDR, topics=[TOPIC_A], data=b"\x01")],
        )
        encoded = encode_receipt(receipt)
        assert encoded["status"] == "0x1"
        assert encoded["cumulativeGasUsed"] == "0xa410"
        assert encoded["gasUsed"] == "0x5208"
        assert encoded["blockNumber"] == "0x5"
        assert encoded["logs"][0]["topics"] == ["0x" + TOPIC_A.hex()]
        assert "contractAddress" not in encoded

    def test_failed_receipt_with_contract(self):
        encoded = encode_receipt(Receipt(transaction_hash=b"\x22" * 32, status=0, contract_address=ADDR))
        assert encoded["status"] == "0x0"
        assert encoded["contractAddress"] == "0x" + ADDR.hex()

    def test_log(self):
        encoded = encode_log(Log(address=ADDR, topics=[TOPIC_A, TOPIC_B], data=b"", log_index=3, removed=True))
        assert encoded["address"] == "0x" + ADDR.hex()
        assert encoded["topics"] == ["0x" + TOPIC_A.hex(), "0x" + TOPIC_B.hex()]
        assert encoded["data"] == "0x"
        assert encoded["logIndex"] == "0x3"
        assert encoded["removed"] is True


class TestSyncStatusEncoding:
    def test_not_syncing(self):
        assert encode_sync_status(None) is False

    def test_syncing(self):
        assert encode_sync_status(SyncStatus(starting_block=0, current_block=5, highest_block=16)) == {
            "startingBlock": "0x0",
            "currentBlock": "0x5",
            "highestBlock": "0x10",
        }

import pytest

from freshmarkets.domain.decoding import (
    PAIR_CREATED,
    TRANSFER,
    decode_address,
    decode_pair_created,
    decode_transfer,
    decode_uint,
    encode_call,
    format_units,
)
from freshmarkets.domain.errors import MalformedEvent, RpcFailure
from freshmarkets.domain.models import EventLog

from conftest import addr, pair_created_log, ret_uint, transfer_log, word


def test_topic0_constants():
    assert PAIR_CREATED.signature == "PairCreated(address,address,address,uint256)"
    assert PAIR_CREATED.topic0 == "0x0d3648bd0f6ba80134a33ba9275ac585d9d315f0ad8355cddefde31afa28d0e9"
    assert TRANSFER.topic0 == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def test_decode_pair_created_named_fields():
    factory, t0, t1, pair = addr(0xAA), addr(1), addr(2), addr(3)
    ev = decode_pair_created(pair_created_log(factory, t0, t1, pair, block=77))
    assert (ev.token0, ev.token1, ev.pair) == (t0, t1, pair)
    assert ev.block_number == 77
    assert ev.factory == factory


def test_decode_transfer():
    ev = decode_transfer(transfer_log(addr(9), addr(1), addr(2), 12345))
    assert (ev.sender, ev.recipient, ev.value) == (addr(1), addr(2), 12345)


@pytest.mark.parametrize("mutate", [
    lambda l: EventLog(l.address, l.topics[:2], l.data_hex, l.block_number, l.tx_hash, l.log_index),
    lambda l: EventLog(l.address, (), l.data_hex, l.block_number, l.tx_hash, l.log_index),
    lambda l: EventLog(l.address, l.topics, "0x" + word(1), l.block_number, l.tx_hash, l.log_index),
    lambda l: EventLog(l.address, l.topics, "0xzz", l.block_number, l.tx_hash, l.log_index),
    lambda l: EventLog(l.address, (TRANSFER.topic0,) + l.topics[1:], l.data_hex, l.block_number, l.tx_hash, l.log_index),
])
def test_malformed_pair_created_rejected(mutate):
    good = pair_created_log(addr(0xAA), addr(1), addr(2), addr(3), block=1)
    with pytest.raises(MalformedEvent):
        decode_pair_created(mutate(good))


def test_transfer_with_indexed_value_is_malformed():
    # ERC-721 style: four topics and no data
    l = transfer_log(addr(9), addr(1), addr(2), 1)
    nft = EventLog(l.address, l.topics + ("0x" + word(1),), "0x", l.block_number, l.tx_hash, l.log_index)
    with pytest.raises(MalformedEvent):
        decode_transfer(nft)


def test_encode_call_pads_address_args():
    data = encode_call("balanceOf(address)", [addr(0xAB)])
    assert data.startswith("0x70a08231")
    assert data.endswith("ab" * 20)
    assert len(data) == 2 + 8 + 64
    assert encode_call("decimals()") == "0x313ce567"


def test_decode_return_words():
    assert decode_uint(ret_uint(5, 7), 1) == 7
    assert decode_address(bytes.fromhex(word(0)[:24] + "ab" * 20)) == addr(0xAB)
    with pytest.raises(RpcFailure):
        decode_uint(b"")


@pytest.mark.parametrize("value,decimals,expected", [
    (10**18, 18, "1.0"),
    (1_500_000, 6, "1.5"),
    (123, 6, "0.000123"),
    (0, 18, "0.0"),
    (42, 0, "42.0"),
    (10**30 + 1, 18, "1000000000000.000000000000000001"),
])
def test_format_units(value, decimals, expected):
    assert format_units(value, decimals) == expected

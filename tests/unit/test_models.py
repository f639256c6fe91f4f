"""
Unit tests for core data models.
"""

from dataclasses import FrozenInstanceError

import pytest

from privacy_pools.core.models import (
    NATIVE_ASSET,
    AspTree,
    AssetInfo,
    PoolDeposited,
    PoolInfo,
    address_to_hex,
    hex_to_int,
    parse_big_int,
)


def test_address_to_hex_pads():
    assert address_to_hex(0xAB) == "0x" + "0" * 38 + "ab"


def test_address_to_hex_rejects_oversized():
    with pytest.raises(ValueError):
        address_to_hex(1 << 160)


def test_hex_to_int():
    assert hex_to_int("0xff") == 255
    assert hex_to_int(7) == 7


@pytest.mark.parametrize("raw,expected", [
    (12, 12),
    ("12", 12),
    (" 0x1F ", 31),
    ("0X10", 16),
])
def test_parse_big_int(raw, expected):
    assert parse_big_int(raw) == expected


@pytest.mark.parametrize("raw", [True, None, 1.5, "twelve", ""])
def test_parse_big_int_rejects(raw):
    with pytest.raises(ValueError):
        parse_big_int(raw)


def test_event_position_orders_by_block_then_log():
    a = PoolDeposited(block_number=5, transaction_hash=1, log_index=9, depositor=0,
                      commitment=1, label=1, value=1, precommitment=1)
    b = PoolDeposited(block_number=6, transaction_hash=2, log_index=0, depositor=0,
                      commitment=2, label=2, value=1, precommitment=2)
    assert a.position < b.position
    assert a.kind == "PoolDeposited"


def test_events_are_frozen():
    event = PoolDeposited(block_number=5, transaction_hash=1, log_index=0, depositor=0,
                          commitment=1, label=1, value=1, precommitment=1)
    with pytest.raises(FrozenInstanceError):
        event.value = 2


def test_pool_info_resolution():
    assert not PoolInfo(address=1, registered_block=1, asset=2).is_resolved
    assert PoolInfo(address=1, registered_block=1, asset=2, scope=3).is_resolved


def test_asset_display_amount():
    usdc = AssetInfo(address=1, name="USD Coin", symbol="USDC", decimals=6)
    assert usdc.to_display(2_500_000) == pytest.approx(2.5)
    assert NATIVE_ASSET.to_display(10**18) == pytest.approx(1.0)


def test_asp_tree_membership():
    tree = AspTree(root=9, leaves=(1, 2, 3), block_number=4)
    assert tree.contains(2)
    assert not tree.contains(9)

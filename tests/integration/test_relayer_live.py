"""
Integration tests for privacy_pools.relayer against a live relayer.

Skipped unless PRIVACY_POOLS_LIVE_RELAYER_URL points at a relayer.

Run:  PRIVACY_POOLS_LIVE_RELAYER_URL=https://... pytest tests/integration/ -v -m integration
"""

import asyncio
import os

import pytest

from privacy_pools.core.models import NATIVE_ASSET_ADDRESS
from privacy_pools.relayer.auction import RelayerAuction, validate_withdrawal_data
from privacy_pools.relayer.client import RelayerClient

pytestmark = pytest.mark.integration

RELAYER_URL = os.environ.get("PRIVACY_POOLS_LIVE_RELAYER_URL")
CHAIN_ID = int(os.environ.get("PRIVACY_POOLS_LIVE_CHAIN_ID", "11155111"))
RECIPIENT = 0x00000000000000000000000000000000DEADBEEF

requires_relayer = pytest.mark.skipif(not RELAYER_URL, reason="PRIVACY_POOLS_LIVE_RELAYER_URL not set")


@requires_relayer
def test_fee_details():
    async def run():
        async with RelayerClient(timeout=30.0) as client:
            return await client.get_fees(RELAYER_URL, CHAIN_ID, NATIVE_ASSET_ADDRESS)

    fees = asyncio.run(run())
    assert 0 <= fees.fee_bps <= 10_000
    assert fees.chain_id == CHAIN_ID


@requires_relayer
def test_quote_commits_to_recipient():
    async def run():
        async with RelayerClient(timeout=30.0) as client:
            return await client.get_quote(RELAYER_URL, CHAIN_ID, NATIVE_ASSET_ADDRESS, 10**16, RECIPIENT)

    quote = asyncio.run(run())
    data = validate_withdrawal_data(quote, RECIPIENT)
    assert data.relay_fee_bps <= quote.fee_bps


@requires_relayer
def test_single_relayer_auction():
    async def run():
        async with RelayerClient(timeout=30.0) as client:
            auction = RelayerAuction(client, {"live": RELAYER_URL})
            return await auction.get_best_quote(CHAIN_ID, NATIVE_ASSET_ADDRESS, 10**16, RECIPIENT)

    best = asyncio.run(run())
    assert best.relayer_id == "live"

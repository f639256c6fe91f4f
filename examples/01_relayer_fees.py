#!/usr/bin/env python3
"""
Example 01: Compare relayer fees.

Asks every configured relayer for a quote on a native-asset withdrawal and
prints the auction winner. No keys or chain access required.

Usage:
    PRIVACY_POOLS_RELAYERS='{"a": "https://relayer-a.example"}' python examples/01_relayer_fees.py
    python examples/01_relayer_fees.py 11155111 0xYourRecipient
"""

import asyncio
import logging
import sys

from privacy_pools import AllRelayersFailedError, PrivacyPoolsConfig
from privacy_pools.core.models import NATIVE_ASSET_ADDRESS
from privacy_pools.relayer import RelayerAuction, RelayerClient

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

chain_id = int(sys.argv[1]) if len(sys.argv) > 1 else 11155111
recipient = int(sys.argv[2], 16) if len(sys.argv) > 2 else 0xDEADBEEF
config = PrivacyPoolsConfig.from_env()


async def main() -> None:
    async with RelayerClient(timeout=config.http_timeout) as client:
        print("=== Fee details ===")
        for relayer_id, url in config.relayers.items():
            fees = await client.get_fees(url, chain_id, NATIVE_ASSET_ADDRESS)
            print(f"{relayer_id:12} {fees.fee_bps:>5} bps  min {fees.min_withdraw_amount}")

        print("\n=== Auction ===")
        auction = RelayerAuction(client, config.relayers, max_relay_fee_bps=config.max_relay_fee_bps)
        try:
            best = await auction.get_best_quote(chain_id, NATIVE_ASSET_ADDRESS, 10**17, recipient)
        except AllRelayersFailedError as e:
            for relayer_id, reason in e.failures.items():
                print(f"{relayer_id}: {reason}")
            return
        print(f"Winner:  {best.relayer_id} ({best.relayer_url})")
        print(f"Fee:     {best.fee_bps} bps")
        print(f"Expires: {best.quote.fee_commitment.expiration}")


asyncio.run(main())

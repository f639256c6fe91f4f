"""
Relayer fee auction.

Every configured relayer is asked for a quote concurrently. A relayer that
errors, times out or returns a quote failing validation is dropped from the
auction; the cheapest surviving quote (lowest feeBPS, first-seen on ties)
wins.

Quote validation decodes the relayer's committed withdrawal data and checks:
- the committed recipient is the requested recipient
- the committed relay fee does not exceed the quoted feeBPS
- the committed relay fee does not exceed the configured ceiling (if any)
- the fee commitment has not expired
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.relayer.client import RelayerClient
from privacy_pools.relayer.models import QuoteResponse, RelayData

logger = logging.getLogger("privacy_pools.relayer")


class NoRelayersAvailableError(PrivacyPoolsError):
    """Raised when the auction is started without any relayer configured."""
    pass


class AllRelayersFailedError(PrivacyPoolsError):
    """Raised when every relayer errored or returned an invalid quote."""

    def __init__(self, failures: Mapping[str, str]) -> None:
        self.failures = dict(failures)
        detail = "; ".join(f"{rid}: {reason}" for rid, reason in self.failures.items())
        super().__init__(f"All {len(self.failures)} relayers failed to quote ({detail})")


class QuoteValidationError(PrivacyPoolsError):
    """Raised when a quote's committed withdrawal data does not match the request."""
    pass


@dataclass(frozen=True)
class QuoteResult:
    """A validated quote and the relayer that issued it."""
    relayer_id: str
    relayer_url: str
    quote: QuoteResponse
    relay_data: RelayData

    @property
    def fee_bps(self) -> int:
        return self.quote.fee_bps

    @property
    def withdrawal_data(self) -> bytes:
        """Raw withdrawal data the proof context must bind."""
        return self.relay_data.encode()


def validate_withdrawal_data(
    quote: QuoteResponse,
    recipient: int,
    max_relay_fee_bps: int | None = None,
    now_ms: int | None = None,
) -> RelayData:
    """
    Check a quote's fee commitment against what was requested.

    Args:
        quote: quote returned by a relayer.
        recipient: recipient the caller asked for.
        max_relay_fee_bps: absolute fee ceiling, if configured.
        now_ms: current time in milliseconds (defaults to the wall clock).

    Returns:
        The decoded withdrawal data.

    Raises:
        QuoteValidationError: if any check fails.
    """
    commitment = quote.fee_commitment
    try:
        data = RelayData.decode(commitment.withdrawal_data)
    except ValueError as e:
        raise QuoteValidationError(f"Undecodable withdrawalData: {e}") from e

    if data.recipient != recipient:
        raise QuoteValidationError(
            f"Committed recipient 0x{data.recipient:040x} differs from requested 0x{recipient:040x}"
        )
    if data.relay_fee_bps > quote.fee_bps:
        raise QuoteValidationError(
            f"Committed relay fee {data.relay_fee_bps} bps exceeds quoted {quote.fee_bps} bps"
        )
    if max_relay_fee_bps is not None and data.relay_fee_bps > max_relay_fee_bps:
        raise QuoteValidationError(
            f"Committed relay fee {data.relay_fee_bps} bps exceeds ceiling {max_relay_fee_bps} bps"
        )
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if commitment.expiration <= now_ms:
        raise QuoteValidationError(f"Fee commitment expired at {commitment.expiration} (now {now_ms})")
    return data


class RelayerAuction:
    """
    Picks the cheapest valid relayer quote.

    Usage:
        auction = RelayerAuction(client, {"fast": "https://a.example", "cheap": "https://b.example"})
        best = await auction.get_best_quote(chain_id=1, asset=asset, amount=10**18, recipient=me)
    """

    def __init__(
        self,
        client: RelayerClient,
        relayers: Mapping[str, str],
        max_relay_fee_bps: int | None = None,
        extra_gas: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.relayers = dict(relayers)
        self.max_relay_fee_bps = max_relay_fee_bps
        self.extra_gas = extra_gas
        self._clock = clock

    async def get_best_quote(
        self,
        chain_id: int,
        asset: int,
        amount: int,
        recipient: int,
        relayers: Mapping[str, str] | None = None,
    ) -> QuoteResult:
        """
        Run the auction.

        Args:
            relayers: relayer id -> URL; defaults to the configured relayers.
                      Iteration order breaks fee ties.

        Raises:
            NoRelayersAvailableError: if no relayer is configured.
            AllRelayersFailedError: if no relayer produced a valid quote.
        """
        candidates = dict(relayers) if relayers is not None else self.relayers
        if not candidates:
            raise NoRelayersAvailableError("No relayers configured")

        outcomes = await asyncio.gather(*(
            self._quote(relayer_id, url, chain_id, asset, amount, recipient)
            for relayer_id, url in candidates.items()
        ))

        valid: list[QuoteResult] = []
        failures: dict[str, str] = {}
        for relayer_id, outcome in zip(candidates, outcomes):
            if isinstance(outcome, QuoteResult):
                valid.append(outcome)
            else:
                failures[relayer_id] = outcome

        if not valid:
            raise AllRelayersFailedError(failures)

        best = min(valid, key=lambda result: result.fee_bps)
        logger.info(
            f"Relayer {best.relayer_id} won the auction at {best.fee_bps} bps "
            f"({len(valid)} valid of {len(candidates)})"
        )
        return best

    async def _quote(
        self,
        relayer_id: str,
        url: str,
        chain_id: int,
        asset: int,
        amount: int,
        recipient: int,
    ) -> QuoteResult | str:
        try:
            quote = await self.client.get_quote(url, chain_id, asset, amount, recipient, self.extra_gas)
            data = validate_withdrawal_data(
                quote, recipient, self.max_relay_fee_bps, now_ms=int(self._clock() * 1000)
            )
        except Exception as e:
            logger.warning(f"Relayer {relayer_id} excluded from auction: {e}")
            return str(e)
        return QuoteResult(relayer_id=relayer_id, relayer_url=url, quote=quote, relay_data=data)

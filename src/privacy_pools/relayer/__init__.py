"""
privacy_pools.relayer — Relayer HTTP client and fee auction.

Provides:
- RelayerClient: /quote, /request and /details over httpx
- RelayerAuction: concurrent quoting with fee-commitment validation
- Wire models for every relayer request and response
"""

from privacy_pools.relayer.auction import (
    AllRelayersFailedError,
    NoRelayersAvailableError,
    QuoteResult,
    QuoteValidationError,
    RelayerAuction,
    validate_withdrawal_data,
)
from privacy_pools.relayer.client import RelayerClient, RelayerError
from privacy_pools.relayer.models import (
    FeeCommitment,
    FeesResponse,
    QuoteResponse,
    RelayData,
    RelayRequest,
    RelayResponse,
)

__all__ = [
    "AllRelayersFailedError",
    "FeeCommitment",
    "FeesResponse",
    "NoRelayersAvailableError",
    "QuoteResponse",
    "QuoteResult",
    "QuoteValidationError",
    "RelayData",
    "RelayRequest",
    "RelayResponse",
    "RelayerAuction",
    "RelayerClient",
    "RelayerError",
    "validate_withdrawal_data",
]

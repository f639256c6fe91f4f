"""
RelayerClient: async HTTP client for Privacy Pools relayers.

Endpoints (relative to each relayer's base URL):
    POST /quote     fee quote with a signed fee commitment
    POST /request   relay a proven withdrawal
    GET  /details   static fee configuration for an asset
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.models import address_to_hex
from privacy_pools.relayer.models import (
    FeesResponse,
    QuoteRequest,
    QuoteResponse,
    RelayRequest,
    RelayResponse,
    int_to_hex,
)


class RelayerError(PrivacyPoolsError):
    """Raised when a relayer is unreachable, answers badly or refuses to relay."""
    pass


class RelayerClient:
    """
    Async client shared by every relayer the account talks to.

    Usage:
        async with RelayerClient() as client:
            quote = await client.get_quote("https://relayer.example", 1, asset, 10**18, recipient)
    """

    def __init__(self, timeout: float = 15.0, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_quote(
        self,
        relayer_url: str,
        chain_id: int,
        asset: int,
        amount: int,
        recipient: int,
        extra_gas: bool = False,
    ) -> QuoteResponse:
        """
        Ask a relayer to quote a withdrawal of `amount` of `asset` to `recipient`.

        Raises:
            RelayerError: on transport failure, non-200 status or a malformed response.
        """
        body = QuoteRequest(
            chain_id=int_to_hex(chain_id),
            amount=int_to_hex(amount),
            asset=address_to_hex(asset),
            recipient=address_to_hex(recipient),
            extra_gas=extra_gas,
        )
        data = await self._request("POST", self._url(relayer_url, "/quote"), json=body.to_wire())
        return self._parse(QuoteResponse, data, relayer_url)

    async def relay(self, relayer_url: str, request: RelayRequest) -> RelayResponse:
        """
        Submit a proven withdrawal for relaying.

        Raises:
            RelayerError: if the request fails or the relayer reports success=false.
        """
        data = await self._request(
            "POST", self._url(relayer_url, "/request"), json=request.to_wire(), allow_error_body=True
        )
        response = self._parse(RelayResponse, data, relayer_url)
        if not response.success:
            raise RelayerError(f"Relayer {relayer_url} refused the withdrawal: {response.error or 'unknown error'}")
        return response

    async def get_fees(self, relayer_url: str, chain_id: int, asset: int) -> FeesResponse:
        """Return the relayer's fee configuration for `asset` on `chain_id`."""
        params = {"assetAddress": address_to_hex(asset), "chainId": str(chain_id)}
        data = await self._request("GET", self._url(relayer_url, "/details"), params=params)
        return self._parse(FeesResponse, data, relayer_url)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _url(relayer_url: str, path: str) -> str:
        return f"{relayer_url.rstrip('/')}{path}"

    async def _request(self, method: str, url: str, allow_error_body: bool = False, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RelayerError(f"Relayer request to {url} failed: {e}") from e

        if response.status_code != 200 and not allow_error_body:
            raise RelayerError(f"Relayer error {response.status_code} for {url}: {response.text}")
        try:
            return response.json()
        except ValueError as e:
            raise RelayerError(f"Relayer error {response.status_code} for {url}: {response.text}") from e

    @staticmethod
    def _parse(model: type[BaseModel], data: Any, relayer_url: str) -> Any:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RelayerError(f"Malformed response from relayer {relayer_url}: {e}") from e

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> RelayerClient:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

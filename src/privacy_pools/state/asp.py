"""
AspService: downloads Association Set Provider trees from an IPFS gateway.

The ASP publishes its tree as a JSON array of levels, leaves first and the
root level last:

    [[label_0, label_1, ...], [...], ..., [root]]

Numbers may be JSON integers, decimal strings or 0x-prefixed hex strings.
The service only parses the document; validating the root against the
on-chain RootUpdated event is the sync pipeline's job.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.models import parse_big_int

logger = logging.getLogger("privacy_pools.asp")

DEFAULT_GATEWAY_URL = "https://ipfs.io/ipfs/"


class AspServiceError(PrivacyPoolsError):
    """Raised when an ASP tree cannot be downloaded or parsed."""
    pass


class AspTreeDocument(BaseModel):
    """Parsed ASP tree document."""

    levels: list[list[int]]

    @field_validator("levels", mode="before")
    @classmethod
    def _parse_levels(cls, value: Any) -> list[list[int]]:
        if not isinstance(value, list) or not value:
            raise ValueError("ASP tree document must be a non-empty list of levels")
        return [[parse_big_int(item) for item in level] for level in value]

    @property
    def leaves(self) -> list[int]:
        return self.levels[0]

    @property
    def declared_root(self) -> int | None:
        """Root as published in the document's last level, if present."""
        top = self.levels[-1]
        return top[0] if len(top) == 1 else None


class AspService:
    """
    Fetches ASP trees by IPFS CID.

    Usage:
        async with AspService() as asp:
            doc = await asp.get_asp_tree("bafy...")
    """

    def __init__(
        self,
        gateway_url: str = DEFAULT_GATEWAY_URL,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.gateway_url = gateway_url if gateway_url.endswith("/") else f"{gateway_url}/"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def get_asp_tree(self, ipfs_cid: str) -> AspTreeDocument:
        """
        Download and parse the ASP tree published under `ipfs_cid`.

        Raises:
            AspServiceError: on transport failure, non-200 status or a malformed document.
        """
        if not ipfs_cid:
            raise AspServiceError("RootUpdated event carries no IPFS CID")

        url = f"{self.gateway_url}{ipfs_cid}"
        logger.debug(f"Downloading ASP tree from {url}")
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise AspServiceError(f"ASP gateway request failed for {url}: {e}") from e
        if response.status_code != 200:
            raise AspServiceError(f"ASP gateway error {response.status_code} for {url}: {response.text}")

        try:
            return AspTreeDocument(levels=response.json())
        except (ValueError, ValidationError) as e:
            raise AspServiceError(f"Malformed ASP tree document at {url}: {e}") from e

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> AspService:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

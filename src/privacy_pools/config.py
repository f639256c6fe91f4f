"""
Account configuration.

Everything an account needs besides its collaborators: which entrypoint to
use on each chain, which relayers take part in the fee auction, where ASP
trees are downloaded from and how strict quote validation is.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.models import parse_big_int
from privacy_pools.state.asp import DEFAULT_GATEWAY_URL

ENV_PREFIX = "PRIVACY_POOLS_"


class ConfigError(PrivacyPoolsError, ValueError):
    """Raised on a missing or malformed configuration value."""
    pass


@dataclass
class PrivacyPoolsConfig:
    """
    Configuration for a PrivacyPoolsAccount.

    Args:
        account_index:       BIP32 account level of every derived secret
        chains_entrypoints:  chain id -> entrypoint contract address
        relayers:            relayer id -> base URL; order breaks fee ties
        asp_gateway_url:     IPFS gateway serving ASP tree documents
        http_timeout:        seconds, for relayer and gateway requests
        max_relay_fee_bps:   reject quotes committing to a higher relay fee
        extra_gas:           ask relayers for a native-token gas drop
    """
    account_index: int = 0
    chains_entrypoints: dict[int, int] = field(default_factory=dict)
    relayers: dict[str, str] = field(default_factory=dict)
    asp_gateway_url: str = DEFAULT_GATEWAY_URL
    http_timeout: float = 15.0
    max_relay_fee_bps: int | None = None
    extra_gas: bool = False

    def __post_init__(self) -> None:
        if self.account_index < 0:
            raise ConfigError("account_index must be non-negative")
        if self.http_timeout <= 0:
            raise ConfigError("http_timeout must be positive")
        if self.max_relay_fee_bps is not None and not 0 <= self.max_relay_fee_bps <= 10_000:
            raise ConfigError("max_relay_fee_bps must be between 0 and 10000")

    def entrypoint_for(self, chain_id: int) -> int:
        """Entrypoint address configured for `chain_id`."""
        try:
            return self.chains_entrypoints[chain_id]
        except KeyError:
            raise ConfigError(f"No entrypoint configured for chain {chain_id}") from None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> PrivacyPoolsConfig:
        """
        Build a config from PRIVACY_POOLS_* environment variables.

        Variables:
            PRIVACY_POOLS_ACCOUNT_INDEX       int
            PRIVACY_POOLS_ENTRYPOINTS         JSON object {"<chain id>": "0x<address>"}
            PRIVACY_POOLS_RELAYERS            JSON object {"<id>": "<url>"}
            PRIVACY_POOLS_ASP_GATEWAY         URL
            PRIVACY_POOLS_HTTP_TIMEOUT        float seconds
            PRIVACY_POOLS_MAX_RELAY_FEE_BPS   int
            PRIVACY_POOLS_EXTRA_GAS           true / false

        Raises:
            ConfigError: if a variable is malformed.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, Any] = {}

        if (raw := env.get(f"{ENV_PREFIX}ACCOUNT_INDEX")) is not None:
            kwargs["account_index"] = _parse(int, raw, "ACCOUNT_INDEX")
        if (raw := env.get(f"{ENV_PREFIX}ENTRYPOINTS")) is not None:
            entries = _json_object(raw, "ENTRYPOINTS")
            kwargs["chains_entrypoints"] = {
                _parse(int, chain, "ENTRYPOINTS"): _parse(parse_big_int, address, "ENTRYPOINTS")
                for chain, address in entries.items()
            }
        if (raw := env.get(f"{ENV_PREFIX}RELAYERS")) is not None:
            entries = _json_object(raw, "RELAYERS")
            if not all(isinstance(url, str) for url in entries.values()):
                raise ConfigError(f"{ENV_PREFIX}RELAYERS values must be URL strings")
            kwargs["relayers"] = dict(entries)
        if (raw := env.get(f"{ENV_PREFIX}ASP_GATEWAY")) is not None:
            kwargs["asp_gateway_url"] = raw
        if (raw := env.get(f"{ENV_PREFIX}HTTP_TIMEOUT")) is not None:
            kwargs["http_timeout"] = _parse(float, raw, "HTTP_TIMEOUT")
        if (raw := env.get(f"{ENV_PREFIX}MAX_RELAY_FEE_BPS")) is not None:
            kwargs["max_relay_fee_bps"] = _parse(int, raw, "MAX_RELAY_FEE_BPS")
        if (raw := env.get(f"{ENV_PREFIX}EXTRA_GAS")) is not None:
            if raw.strip().lower() not in ("true", "false", "1", "0"):
                raise ConfigError(f"{ENV_PREFIX}EXTRA_GAS must be true or false, got {raw!r}")
            kwargs["extra_gas"] = raw.strip().lower() in ("true", "1")

        return cls(**kwargs)


def _parse(kind: Any, raw: Any, name: str) -> Any:
    try:
        return kind(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{ENV_PREFIX}{name}: invalid value {raw!r}: {e}") from e


def _json_object(raw: str, name: str) -> dict[str, Any]:
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} is not valid JSON: {e}") from e
    if not isinstance(value, dict):
        raise ConfigError(f"{ENV_PREFIX}{name} must be a JSON object")
    return value

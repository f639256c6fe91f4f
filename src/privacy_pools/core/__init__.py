"""core module init"""
from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.keystore import Bip32Keystore, Keystore, KeystoreError, parse_path
from privacy_pools.core.log_source import EntrypointEventBatch, LogSource, PoolEventBatch
from privacy_pools.core.models import (
    NATIVE_ASSET,
    NATIVE_ASSET_ADDRESS,
    AspTree,
    AssetInfo,
    ChainEvent,
    EntrypointDeposited,
    PoolDeposited,
    PoolInfo,
    PoolRegistered,
    PoolWoundDown,
    Ragequit,
    RootUpdated,
    Withdrawn,
    address_to_hex,
    hex_to_int,
    parse_big_int,
)

__all__ = [
    "NATIVE_ASSET",
    "NATIVE_ASSET_ADDRESS",
    "AspTree",
    "AssetInfo",
    "Bip32Keystore",
    "ChainEvent",
    "EntrypointDeposited",
    "EntrypointEventBatch",
    "Keystore",
    "KeystoreError",
    "LogSource",
    "PoolDeposited",
    "PoolEventBatch",
    "PoolInfo",
    "PoolRegistered",
    "PoolWoundDown",
    "PrivacyPoolsError",
    "Ragequit",
    "RootUpdated",
    "Withdrawn",
    "address_to_hex",
    "hex_to_int",
    "parse_big_int",
    "parse_path",
]

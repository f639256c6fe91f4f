"""
Core data models for Privacy Pools on-chain facts.

Every event is decoded once, at the log-source boundary, into one of a small
closed set of frozen dataclasses. Addresses, hashes and amounts are plain
Python ints throughout; hex strings only appear on the wire.

Entrypoint events:  EntrypointDeposited, RootUpdated, PoolRegistered, PoolWoundDown
Pool events:        PoolDeposited, Withdrawn, Ragequit
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

# Sentinel address used by the entrypoint for the chain's native asset
NATIVE_ASSET_ADDRESS = 0xEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEEE


def address_to_hex(address: int) -> str:
    """Render a 20-byte address as a 0x-prefixed, zero-padded hex string."""
    if not 0 <= address < 1 << 160:
        raise ValueError(f"Address out of range: 0x{address:x}")
    return f"0x{address:040x}"


def hex_to_int(value: str | int) -> int:
    """Parse a 0x-prefixed hex string (or pass an int through)."""
    if isinstance(value, int):
        return value
    return int(value, 16)


def parse_big_int(value: Any) -> int:
    """
    Parse a wire-format big integer.

    Accepts ints, decimal strings and 0x-prefixed hex strings. Booleans and
    anything else raise ValueError.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        return int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    raise ValueError(f"Not a number: {value!r}")


# ==============================================================================
# Events
# ==============================================================================


@dataclass(frozen=True)
class ChainEvent:
    """Position of a log on chain; shared by every event kind."""
    kind: ClassVar[str] = "ChainEvent"

    block_number: int
    transaction_hash: int
    log_index: int

    @property
    def position(self) -> tuple[int, int]:
        """Total order of logs within a chain."""
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class EntrypointDeposited(ChainEvent):
    """Entrypoint `Deposited(depositor, pool, commitment, amount)`."""
    kind: ClassVar[str] = "EntrypointDeposited"

    depositor: int
    pool: int
    commitment: int
    value: int


@dataclass(frozen=True)
class RootUpdated(ChainEvent):
    """Entrypoint `RootUpdated(root, ipfsCID, timestamp)`: a new ASP tree was published."""
    kind: ClassVar[str] = "RootUpdated"

    root: int
    ipfs_cid: str
    timestamp: int


@dataclass(frozen=True)
class PoolRegistered(ChainEvent):
    """
    Entrypoint `PoolRegistered(pool, asset, scope)`.

    `asset` and `scope` may be None when the log source cannot decode them;
    the sync pipeline then resolves them from the pool contract.
    """
    kind: ClassVar[str] = "PoolRegistered"

    pool: int
    asset: int | None = None
    scope: int | None = None


@dataclass(frozen=True)
class PoolWoundDown(ChainEvent):
    """Entrypoint `PoolWindDown(pool)`: the pool no longer accepts deposits."""
    kind: ClassVar[str] = "PoolWoundDown"

    pool: int


@dataclass(frozen=True)
class PoolDeposited(ChainEvent):
    """Pool `Deposited(depositor, commitment, label, value, precommitment)`."""
    kind: ClassVar[str] = "PoolDeposited"

    depositor: int
    commitment: int
    label: int
    value: int
    precommitment: int
    pool: int = 0


@dataclass(frozen=True)
class Withdrawn(ChainEvent):
    """Pool `Withdrawn(processooor, value, spentNullifier, newCommitment)`."""
    kind: ClassVar[str] = "Withdrawn"

    processooor: int
    value: int
    spent_nullifier: int
    new_commitment: int
    pool: int = 0


@dataclass(frozen=True)
class Ragequit(ChainEvent):
    """Pool `Ragequit(ragequitter, commitment, label, value)`."""
    kind: ClassVar[str] = "Ragequit"

    ragequitter: int
    commitment: int
    label: int
    value: int
    pool: int = 0


EntrypointEvent = Union[EntrypointDeposited, RootUpdated, PoolRegistered, PoolWoundDown]
PoolEvent = Union[PoolDeposited, Withdrawn, Ragequit]


# ==============================================================================
# Static metadata
# ==============================================================================


@dataclass(frozen=True)
class PoolInfo:
    """A pool registered on the entrypoint, with its immutable contract state."""
    address: int
    registered_block: int
    asset: int | None = None
    scope: int | None = None
    wound_down_at_block: int | None = None

    @property
    def is_resolved(self) -> bool:
        """True once asset and scope are known."""
        return self.asset is not None and self.scope is not None


@dataclass(frozen=True)
class AssetInfo:
    """ERC20 (or native) asset metadata."""
    address: int
    name: str
    symbol: str
    decimals: int

    def to_display(self, amount: int) -> float:
        """Human-readable amount adjusted for decimals."""
        return amount / (10 ** self.decimals) if self.decimals else float(amount)


NATIVE_ASSET = AssetInfo(address=NATIVE_ASSET_ADDRESS, name="Ether", symbol="ETH", decimals=18)


@dataclass(frozen=True)
class AspTree:
    """A validated Association Set Provider tree snapshot."""
    root: int
    leaves: tuple[int, ...]
    block_number: int
    ipfs_cid: str = ""
    _leaf_set: frozenset[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_leaf_set", frozenset(self.leaves))

    def contains(self, label: int) -> bool:
        """True if `label` is approved by the ASP."""
        return label in self._leaf_set

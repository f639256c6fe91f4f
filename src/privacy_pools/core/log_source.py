"""
Log source contract consumed by the sync pipeline.

The SDK does not speak JSON-RPC or ABI itself. A log source wraps whatever
provider the host application uses and hands back already-decoded events
(see privacy_pools.core.models). Each fetch returns an EventBatch whose
`to_block` is the last block the source has confirmed for that range, which
is what the sync cursor advances to.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from privacy_pools.core.models import (
    AssetInfo,
    EntrypointDeposited,
    PoolDeposited,
    PoolRegistered,
    PoolWoundDown,
    Ragequit,
    RootUpdated,
    Withdrawn,
)


@dataclass
class EntrypointEventBatch:
    """Decoded entrypoint logs for [from_block, to_block]."""
    from_block: int
    to_block: int
    deposited: list[EntrypointDeposited] = field(default_factory=list)
    root_updated: list[RootUpdated] = field(default_factory=list)
    pool_registered: list[PoolRegistered] = field(default_factory=list)
    pool_wound_down: list[PoolWoundDown] = field(default_factory=list)


@dataclass
class PoolEventBatch:
    """Decoded logs of one pool for [from_block, to_block]."""
    pool: int
    from_block: int
    to_block: int
    deposited: list[PoolDeposited] = field(default_factory=list)
    withdrawn: list[Withdrawn] = field(default_factory=list)
    ragequit: list[Ragequit] = field(default_factory=list)


class LogSource(Protocol):
    """
    Read-only chain access needed to rebuild an account's state.

    Every method is a coroutine; implementations raise their own exceptions,
    which the sync pipeline treats as a failed stage (or a skipped pool for
    get_pool_events).
    """

    async def get_block_number(self) -> int: ...

    async def get_entrypoint_events(
        self, entrypoint: int, from_block: int, to_block: int
    ) -> EntrypointEventBatch: ...

    async def get_pool_events(
        self, pool: int, from_block: int, to_block: int
    ) -> PoolEventBatch: ...

    async def get_pool_asset(self, pool: int) -> int: ...

    async def get_pool_scope(self, pool: int) -> int: ...

    async def get_asset(self, asset: int) -> AssetInfo: ...

"""
Event sync pipeline: brings one StateStore up to the chain head.

Stages, in order (each consumes what the previous one staged):

    IDLE
     └─ SYNCING_POOLS   entrypoint events since the cursor; register pools,
                        resolve missing asset/scope from the pool contract
     └─ SYNCING_EVENTS  pool events, one concurrent fetch per pool
     └─ SYNCING_ASSETS  metadata for pool assets not yet cached
     └─ SYNCING_ASP     ASP tree, only when the latest RootUpdated differs
    IDLE

The global cursor records how far the entrypoint range is confirmed; each
pool has its own cursor. Everything is staged in a single StoreBatch and
committed at the end, so a failed stage leaves the store exactly as it was.
A failed pool fetch is not a stage failure: the pool keeps its own cursor and
is retried on the next call.

sync() calls on one synchronizer are serialized by an asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.log_source import LogSource, PoolEventBatch
from privacy_pools.core.models import NATIVE_ASSET, NATIVE_ASSET_ADDRESS, AspTree, AssetInfo, PoolInfo
from privacy_pools.crypto.merkle import LeanMerkleTree, MerkleProofGenerator
from privacy_pools.state.asp import AspService
from privacy_pools.state.store import StateStore, StoreBatch

logger = logging.getLogger("privacy_pools.sync")


class AspRootMismatchError(PrivacyPoolsError):
    """Raised when a downloaded ASP tree does not hash to the on-chain root."""

    def __init__(self, expected: int, actual: int, ipfs_cid: str) -> None:
        self.expected = expected
        self.actual = actual
        self.ipfs_cid = ipfs_cid
        super().__init__(
            f"ASP tree {ipfs_cid} root mismatch: on-chain 0x{expected:x}, computed 0x{actual:x}"
        )


class SyncStage(str, Enum):
    IDLE = "idle"
    SYNCING_POOLS = "syncing_pools"
    SYNCING_EVENTS = "syncing_events"
    SYNCING_ASSETS = "syncing_assets"
    SYNCING_ASP = "syncing_asp"


@dataclass
class SyncResult:
    """Summary of one sync() call."""
    from_block: int
    last_synced_block: int
    head: int
    version: int
    new_pools: int = 0
    new_deposits: int = 0
    new_withdrawals: int = 0
    new_ragequits: int = 0
    new_assets: int = 0
    asp_updated: bool = False
    failed_pools: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        """True when every pool was fetched successfully."""
        return not self.failed_pools


class EventSynchronizer:
    """
    Incremental sync of one (chain, entrypoint) store.

    Usage:
        sync = EventSynchronizer(store, log_source, asp_service=AspService())
        result = await sync.sync()
        if not result.complete:
            ...  # some pools will be retried next call
    """

    def __init__(
        self,
        store: StateStore,
        log_source: LogSource,
        asp_service: AspService | None = None,
        merkle: MerkleProofGenerator | None = None,
    ) -> None:
        self.store = store
        self.log_source = log_source
        self.asp_service = asp_service
        self.merkle = merkle or LeanMerkleTree()
        self.stage = SyncStage.IDLE
        self._lock = asyncio.Lock()

    async def sync(self) -> SyncResult:
        """
        Fetch and register everything new since the last confirmed block.

        Idempotent: with no new chain activity the store version is unchanged.

        Raises:
            AspRootMismatchError: if the ASP tree fails root validation.
            Exception: whatever the log source or ASP service raised for a
                       non-pool stage; nothing is committed in that case.
        """
        async with self._lock:
            try:
                return await self._run()
            finally:
                self.stage = SyncStage.IDLE

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _run(self) -> SyncResult:
        batch = self.store.begin()
        base = batch.base
        head = await self.log_source.get_block_number()
        from_block = base.last_synced_block + 1
        result = SyncResult(
            from_block=from_block,
            last_synced_block=base.last_synced_block,
            head=head,
            version=base.version,
        )
        # Only the entrypoint range moves the global cursor; pools carry their own
        confirmed = base.last_synced_block

        self.stage = SyncStage.SYNCING_POOLS
        confirmed = max(confirmed, await self._sync_entrypoint(batch, from_block, head, result))
        await self._resolve_pools(batch)

        self.stage = SyncStage.SYNCING_EVENTS
        await self._sync_pool_events(batch, head, result)

        self.stage = SyncStage.SYNCING_ASSETS
        await self._sync_assets(batch, result)

        self.stage = SyncStage.SYNCING_ASP
        await self._sync_asp(batch, result)

        batch.set_last_synced_block(confirmed)
        state = self.store.commit(batch)
        result.last_synced_block = state.last_synced_block
        result.version = state.version

        if state.version != base.version:
            logger.info(
                f"Synced {self.store.key} blocks {from_block}..{state.last_synced_block}: "
                f"{result.new_pools} pools, {result.new_deposits} deposits, "
                f"{result.new_withdrawals} withdrawals, {result.new_ragequits} ragequits"
            )
        return result

    async def _sync_entrypoint(self, batch: StoreBatch, from_block: int, head: int, result: SyncResult) -> int:
        if from_block > head:
            return 0

        events = await self.log_source.get_entrypoint_events(self.store.key.entrypoint, from_block, head)

        known_before = len(batch.pools())
        wound_down = {e.pool: e.block_number for e in events.pool_wound_down}
        batch.register_pools(
            PoolInfo(
                address=e.pool,
                registered_block=e.block_number,
                asset=e.asset,
                scope=e.scope,
                wound_down_at_block=wound_down.get(e.pool),
            )
            for e in events.pool_registered
        )
        pools = batch.pools()
        batch.register_pools(
            replace(pools[address], wound_down_at_block=block)
            for address, block in wound_down.items()
            if address in pools
        )
        result.new_pools = len(batch.pools()) - known_before

        batch.register_entrypoint_deposits(events.deposited)
        for event in events.root_updated:
            batch.register_root_update(event)
        return events.to_block

    async def _resolve_pools(self, batch: StoreBatch) -> None:
        unresolved = [pool for pool in batch.pools().values() if not pool.is_resolved]
        if not unresolved:
            return
        resolved = await asyncio.gather(*(self._resolve_pool(pool) for pool in unresolved))
        batch.register_pools(resolved)

    async def _resolve_pool(self, pool: PoolInfo) -> PoolInfo:
        asset = pool.asset if pool.asset is not None else await self.log_source.get_pool_asset(pool.address)
        scope = pool.scope if pool.scope is not None else await self.log_source.get_pool_scope(pool.address)
        return replace(pool, asset=asset, scope=scope)

    async def _sync_pool_events(self, batch: StoreBatch, head: int, result: SyncResult) -> None:
        jobs = []
        for pool in batch.pools().values():
            cursor = batch.pool_cursor(pool.address)
            start = max(cursor + 1 if cursor is not None else 0, pool.registered_block)
            if start <= head:
                jobs.append((pool, start))
        if not jobs:
            return

        fetched = await asyncio.gather(*(self._fetch_pool(pool.address, start, head) for pool, start in jobs))

        for (pool, _), events in zip(jobs, fetched):
            if events is None:
                result.failed_pools.append(pool.address)
                continue
            address = pool.address
            result.new_deposits += batch.register_deposits(
                e if e.pool == address else replace(e, pool=address) for e in events.deposited
            )
            result.new_withdrawals += batch.register_withdrawals(
                e if e.pool == address else replace(e, pool=address) for e in events.withdrawn
            )
            result.new_ragequits += batch.register_ragequits(
                e if e.pool == address else replace(e, pool=address) for e in events.ragequit
            )
            batch.set_pool_cursor(address, events.to_block)

    async def _fetch_pool(self, pool: int, from_block: int, to_block: int) -> PoolEventBatch | None:
        try:
            return await self.log_source.get_pool_events(pool, from_block, to_block)
        except Exception as e:
            logger.warning(f"Event fetch for pool 0x{pool:x} failed, retrying on next sync: {e}")
            return None

    async def _sync_assets(self, batch: StoreBatch, result: SyncResult) -> None:
        cached = batch.assets()
        missing = sorted({
            pool.asset for pool in batch.pools().values()
            if pool.asset is not None and pool.asset not in cached
        })
        if not missing:
            return
        assets = await asyncio.gather(*(self._fetch_asset(address) for address in missing))
        result.new_assets = batch.register_assets(assets)

    async def _fetch_asset(self, address: int) -> AssetInfo:
        if address == NATIVE_ASSET_ADDRESS:
            return NATIVE_ASSET
        return await self.log_source.get_asset(address)

    async def _sync_asp(self, batch: StoreBatch, result: SyncResult) -> None:
        latest = batch.last_root_update
        if latest is None:
            return
        cached = batch.asp
        if cached is not None and cached.root == latest.root and cached.block_number == latest.block_number:
            return
        if self.asp_service is None:
            logger.debug(f"No ASP service configured; ASP root 0x{latest.root:x} not fetched")
            return

        document = await self.asp_service.get_asp_tree(latest.ipfs_cid)
        computed = self.merkle.compute_root(document.leaves)
        declared = document.declared_root
        for actual in (computed, declared):
            if actual is not None and actual != latest.root:
                logger.error(
                    f"Rejecting ASP tree {latest.ipfs_cid} for {self.store.key}: "
                    f"expected root 0x{latest.root:x}, got 0x{actual:x}"
                )
                raise AspRootMismatchError(latest.root, actual, latest.ipfs_cid)

        batch.register_asp_tree(AspTree(
            root=latest.root,
            leaves=tuple(document.leaves),
            block_number=latest.block_number,
            ipfs_cid=latest.ipfs_cid,
        ))
        result.asp_updated = True

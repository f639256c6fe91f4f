"""
Per-chain state store.

One StateStore holds every public fact observed for a (chain id, entrypoint)
pair: deposits keyed by precommitment, withdrawals keyed by spent nullifier
hash, ragequits keyed by label, entrypoint deposits keyed by commitment,
pools, assets, the ASP tree and the sync cursors.

Architecture:
    StateStore._state ── immutable ChainState snapshot (version N)
         │
    StoreBatch ── staged copy-on-write registrations
         │ commit()
         ▼
    StateStore._state ── new ChainState snapshot (version N+1)

Readers only ever see whole snapshots, so a batch of registrations is
applied atomically. Facts are append-only: registering an already-known key
keeps the first observation. Nothing is ever deleted.

Only the sync pipeline registers facts; everything else reads snapshots.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.models import (
    AspTree,
    AssetInfo,
    EntrypointDeposited,
    PoolDeposited,
    PoolInfo,
    Ragequit,
    RootUpdated,
    Withdrawn,
)


class StoreError(PrivacyPoolsError):
    """Raised on an invalid store update (cursor regression, stale batch)."""
    pass


@dataclass(frozen=True)
class ChainKey:
    """Identity of a per-chain store."""
    chain_id: int
    entrypoint: int

    def __str__(self) -> str:
        return f"{self.chain_id}:0x{self.entrypoint:040x}"


def _frozen(mapping: Mapping[Any, Any] | None = None) -> Mapping[Any, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class ChainState:
    """Immutable snapshot of everything known about one (chain, entrypoint)."""
    key: ChainKey
    version: int = 0
    last_synced_block: int = 0
    deposits: Mapping[int, PoolDeposited] = field(default_factory=_frozen)
    withdrawals: Mapping[int, Withdrawn] = field(default_factory=_frozen)
    ragequits: Mapping[int, Ragequit] = field(default_factory=_frozen)
    entrypoint_deposits: Mapping[int, EntrypointDeposited] = field(default_factory=_frozen)
    pools: Mapping[int, PoolInfo] = field(default_factory=_frozen)
    pool_cursors: Mapping[int, int] = field(default_factory=_frozen)
    assets: Mapping[int, AssetInfo] = field(default_factory=_frozen)
    asp: AspTree | None = None
    last_root_update: RootUpdated | None = None

    @property
    def chain_id(self) -> int:
        return self.key.chain_id

    @property
    def entrypoint(self) -> int:
        return self.key.entrypoint

    def pool_cursor(self, pool: int) -> int | None:
        """Last block confirmed for `pool`, or None if never fetched."""
        return self.pool_cursors.get(pool)

    def is_asp_current(self) -> bool:
        """True when the cached ASP tree matches the latest RootUpdated event."""
        if self.last_root_update is None:
            return True
        if self.asp is None:
            return False
        return (
            self.asp.root == self.last_root_update.root
            and self.asp.block_number == self.last_root_update.block_number
        )

    def state_leaves(self, pool: int) -> list[int]:
        """
        State-tree leaves of `pool` in insertion order.

        Every deposit inserts its commitment and every withdrawal inserts its
        change commitment, ordered by (block, log index).
        """
        inserts: list[tuple[tuple[int, int], int]] = []
        for deposit in self.deposits.values():
            if deposit.pool == pool:
                inserts.append((deposit.position, deposit.commitment))
        for withdrawal in self.withdrawals.values():
            if withdrawal.pool == pool:
                inserts.append((withdrawal.position, withdrawal.new_commitment))
        inserts.sort(key=lambda item: item[0])
        return [leaf for _, leaf in inserts]

    def asp_leaves(self) -> list[int]:
        """Approved labels of the cached ASP tree."""
        return list(self.asp.leaves) if self.asp is not None else []


class StoreBatch:
    """
    Staged registrations against a base snapshot.

    Usage:
        batch = store.begin()
        batch.register_deposits(events)
        batch.set_last_synced_block(1234)
        store.commit(batch)
    """

    def __init__(self, base: ChainState) -> None:
        self.base = base
        self._staged: dict[str, dict[Any, Any]] = {}
        self._scalars: dict[str, Any] = {}

    def _table(self, name: str) -> dict[Any, Any]:
        table = self._staged.get(name)
        if table is None:
            table = dict(getattr(self.base, name))
            self._staged[name] = table
        return table

    def _append(self, name: str, items: Iterable[tuple[Any, Any]]) -> int:
        table = self._table(name)
        added = 0
        for key, value in items:
            if key not in table:
                table[key] = value
                added += 1
        return added

    @property
    def has_changes(self) -> bool:
        """True if committing would change the snapshot."""
        for name, table in self._staged.items():
            if len(table) != len(getattr(self.base, name)) or table != dict(getattr(self.base, name)):
                return True
        return any(getattr(self.base, name) != value for name, value in self._scalars.items())

    # ------------------------------------------------------------------
    # Registrations
    # ------------------------------------------------------------------

    def register_deposits(self, deposits: Iterable[PoolDeposited]) -> int:
        """Register pool deposits keyed by precommitment. Returns the number added."""
        return self._append("deposits", ((d.precommitment, d) for d in deposits))

    def register_withdrawals(self, withdrawals: Iterable[Withdrawn]) -> int:
        """Register withdrawals keyed by spent nullifier hash."""
        return self._append("withdrawals", ((w.spent_nullifier, w) for w in withdrawals))

    def register_ragequits(self, ragequits: Iterable[Ragequit]) -> int:
        """Register ragequits keyed by label."""
        return self._append("ragequits", ((r.label, r) for r in ragequits))

    def register_entrypoint_deposits(self, deposits: Iterable[EntrypointDeposited]) -> int:
        """Register entrypoint deposits keyed by commitment."""
        return self._append("entrypoint_deposits", ((d.commitment, d) for d in deposits))

    def register_pools(self, pools: Iterable[PoolInfo]) -> None:
        """
        Register pools. Known pools only gain information: asset, scope and
        wind-down block are filled in when missing, never overwritten.
        """
        table = self._table("pools")
        for pool in pools:
            known = table.get(pool.address)
            if known is None:
                table[pool.address] = pool
                continue
            table[pool.address] = replace(
                known,
                asset=known.asset if known.asset is not None else pool.asset,
                scope=known.scope if known.scope is not None else pool.scope,
                wound_down_at_block=(
                    known.wound_down_at_block
                    if known.wound_down_at_block is not None
                    else pool.wound_down_at_block
                ),
            )

    def register_assets(self, assets: Iterable[AssetInfo]) -> int:
        """Register asset metadata keyed by address."""
        return self._append("assets", ((a.address, a) for a in assets))

    def register_root_update(self, event: RootUpdated) -> None:
        """Remember the newest RootUpdated event (older ones are ignored)."""
        current = self._scalars.get("last_root_update", self.base.last_root_update)
        if current is None or event.position > current.position:
            self._scalars["last_root_update"] = event

    def register_asp_tree(self, tree: AspTree) -> None:
        """Replace the cached ASP tree with a validated one."""
        self._scalars["asp"] = tree

    def set_pool_cursor(self, pool: int, block: int) -> None:
        """Advance the confirmed block of one pool."""
        table = self._table("pool_cursors")
        current = table.get(pool)
        if current is not None and block < current:
            raise StoreError(f"Pool 0x{pool:x} cursor cannot move back from {current} to {block}")
        table[pool] = block

    def set_last_synced_block(self, block: int) -> None:
        """Advance the store's sync cursor (monotonically non-decreasing)."""
        current = self._scalars.get("last_synced_block", self.base.last_synced_block)
        if block < current:
            raise StoreError(f"Sync cursor cannot move back from {current} to {block}")
        self._scalars["last_synced_block"] = block

    # ------------------------------------------------------------------
    # Reads through the batch (staged values win)
    # ------------------------------------------------------------------

    def pools(self) -> Mapping[int, PoolInfo]:
        return self._staged.get("pools", self.base.pools)

    def assets(self) -> Mapping[int, AssetInfo]:
        return self._staged.get("assets", self.base.assets)

    def pool_cursor(self, pool: int) -> int | None:
        return self._staged.get("pool_cursors", self.base.pool_cursors).get(pool)

    @property
    def last_root_update(self) -> RootUpdated | None:
        return self._scalars.get("last_root_update", self.base.last_root_update)

    @property
    def asp(self) -> AspTree | None:
        return self._scalars.get("asp", self.base.asp)

    def build(self) -> ChainState:
        """The snapshot this batch would produce (version bumped once)."""
        changes: dict[str, Any] = {name: _frozen(table) for name, table in self._staged.items()}
        changes.update(self._scalars)
        return replace(self.base, version=self.base.version + 1, **changes)


class StateStore:
    """
    Store for one (chain id, entrypoint) pair.

    Usage:
        store = StateStore(ChainKey(1, entrypoint))
        with store.batch() as batch:
            batch.register_deposits(events)
        state = store.snapshot
    """

    def __init__(self, key: ChainKey) -> None:
        self.key = key
        self._state = ChainState(key=key)
        self._lock = threading.Lock()

    @property
    def snapshot(self) -> ChainState:
        """Current immutable snapshot."""
        return self._state

    @property
    def version(self) -> int:
        return self._state.version

    @property
    def last_synced_block(self) -> int:
        return self._state.last_synced_block

    def begin(self) -> StoreBatch:
        """Start staging registrations against the current snapshot."""
        return StoreBatch(self._state)

    def commit(self, batch: StoreBatch) -> ChainState:
        """
        Atomically publish a batch.

        Raises:
            StoreError: if another batch was committed since `batch` began.
        """
        with self._lock:
            if batch.base is not self._state:
                raise StoreError(
                    f"Stale batch for {self.key}: based on version {batch.base.version}, "
                    f"store is at {self._state.version}"
                )
            if batch.has_changes:
                self._state = batch.build()
            return self._state

    @contextmanager
    def batch(self) -> Iterator[StoreBatch]:
        """Stage registrations and commit them on clean exit (discard on error)."""
        staged = self.begin()
        yield staged
        self.commit(staged)

    # ------------------------------------------------------------------
    # Single-shot registrations
    # ------------------------------------------------------------------

    def register_deposits(self, deposits: Iterable[PoolDeposited]) -> None:
        with self.batch() as b:
            b.register_deposits(deposits)

    def register_withdrawals(self, withdrawals: Iterable[Withdrawn]) -> None:
        with self.batch() as b:
            b.register_withdrawals(withdrawals)

    def register_ragequits(self, ragequits: Iterable[Ragequit]) -> None:
        with self.batch() as b:
            b.register_ragequits(ragequits)

    def register_pools(self, pools: Iterable[PoolInfo]) -> None:
        with self.batch() as b:
            b.register_pools(pools)

    def register_assets(self, assets: Iterable[AssetInfo]) -> None:
        with self.batch() as b:
            b.register_assets(assets)

    def register_asp_tree(self, tree: AspTree) -> None:
        with self.batch() as b:
            b.register_asp_tree(tree)

    def set_last_synced_block(self, block: int) -> None:
        with self.batch() as b:
            b.set_last_synced_block(block)


class StoreRegistry:
    """
    Owns one StateStore per ChainKey, created on first access.

    The registry belongs to an account object; there is no module-level store.
    """

    def __init__(self) -> None:
        self._stores: dict[ChainKey, StateStore] = {}

    def get(self, chain_id: int, entrypoint: int) -> StateStore:
        key = ChainKey(chain_id, entrypoint)
        store = self._stores.get(key)
        if store is None:
            store = StateStore(key)
            self._stores[key] = store
        return store

    def keys(self) -> list[ChainKey]:
        return list(self._stores)

    def __contains__(self, key: object) -> bool:
        return key in self._stores

    def __len__(self) -> int:
        return len(self._stores)

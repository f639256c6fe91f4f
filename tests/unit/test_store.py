"""
Unit tests for privacy_pools.state.store — copy-on-write per-chain store.
"""

import pytest

from fakes import CHAIN_ID, ENTRYPOINT, OTHER_POOL, POOL
from privacy_pools.core.models import AspTree, PoolDeposited, PoolInfo, RootUpdated
from privacy_pools.state.store import ChainKey, StateStore, StoreError, StoreRegistry


def _deposit(precommitment, value=100, block=10, log_index=0, pool=POOL):
    return PoolDeposited(
        block_number=block, transaction_hash=block, log_index=log_index,
        depositor=1, commitment=precommitment + 1, label=precommitment + 2,
        value=value, precommitment=precommitment, pool=pool,
    )


class TestStateStore:
    """Append-only registration with atomic snapshots."""

    def test_starts_empty(self, store):
        state = store.snapshot
        assert state.version == 0
        assert state.last_synced_block == 0
        assert dict(state.deposits) == {}
        assert state.asp is None

    def test_register_bumps_version_once_per_batch(self, store):
        with store.batch() as batch:
            batch.register_deposits([_deposit(1), _deposit(2)])
            batch.set_last_synced_block(50)
        assert store.version == 1
        assert set(store.snapshot.deposits) == {1, 2}

    def test_first_observation_wins(self, store):
        store.register_deposits([_deposit(1, value=100)])
        store.register_deposits([_deposit(1, value=999)])
        assert store.snapshot.deposits[1].value == 100

    def test_no_change_no_version_bump(self, store):
        store.register_deposits([_deposit(1)])
        version = store.version
        store.register_deposits([_deposit(1)])
        store.set_last_synced_block(0)
        assert store.version == version

    def test_snapshots_are_immutable(self, store):
        store.register_deposits([_deposit(1)])
        before = store.snapshot
        store.register_deposits([_deposit(2)])
        assert set(before.deposits) == {1}
        with pytest.raises(TypeError):
            before.deposits[3] = _deposit(3)

    def test_readers_never_see_partial_batch(self, store):
        with store.batch() as batch:
            batch.register_deposits([_deposit(1)])
            assert dict(store.snapshot.deposits) == {}
            batch.register_deposits([_deposit(2)])
        assert set(store.snapshot.deposits) == {1, 2}

    def test_failed_batch_discarded(self, store):
        with pytest.raises(RuntimeError):
            with store.batch() as batch:
                batch.register_deposits([_deposit(1)])
                raise RuntimeError("stage failed")
        assert store.version == 0
        assert dict(store.snapshot.deposits) == {}

    def test_cursor_regression_rejected(self, store):
        store.set_last_synced_block(100)
        with pytest.raises(StoreError, match="cannot move back"):
            store.set_last_synced_block(99)
        assert store.last_synced_block == 100

    def test_pool_cursor_regression_rejected(self, store):
        batch = store.begin()
        batch.set_pool_cursor(POOL, 20)
        with pytest.raises(StoreError):
            batch.set_pool_cursor(POOL, 19)

    def test_stale_batch_rejected(self, store):
        stale = store.begin()
        store.register_deposits([_deposit(1)])
        stale.register_deposits([_deposit(2)])
        with pytest.raises(StoreError, match="Stale batch"):
            store.commit(stale)


class TestPools:
    def test_known_pool_only_gains_information(self, store):
        store.register_pools([PoolInfo(address=POOL, registered_block=5)])
        store.register_pools([PoolInfo(address=POOL, registered_block=9, asset=0xE, scope=3)])
        pool = store.snapshot.pools[POOL]
        assert pool.registered_block == 5
        assert (pool.asset, pool.scope) == (0xE, 3)
        assert pool.is_resolved

    def test_resolved_fields_not_overwritten(self, store):
        store.register_pools([PoolInfo(address=POOL, registered_block=5, asset=0xE, scope=3)])
        store.register_pools([PoolInfo(address=POOL, registered_block=5, asset=0xF, scope=4, wound_down_at_block=8)])
        pool = store.snapshot.pools[POOL]
        assert (pool.asset, pool.scope, pool.wound_down_at_block) == (0xE, 3, 8)


class TestDerivedState:
    def test_state_leaves_ordered_by_position(self, store):
        store.register_deposits([
            _deposit(30, block=12, log_index=0),
            _deposit(10, block=10, log_index=5),
            _deposit(20, block=10, log_index=9),
            _deposit(40, block=11, pool=OTHER_POOL),
        ])
        assert store.snapshot.state_leaves(POOL) == [11, 21, 31]
        assert store.snapshot.state_leaves(OTHER_POOL) == [41]

    def test_asp_currency(self, store):
        assert store.snapshot.is_asp_current()
        event = RootUpdated(block_number=7, transaction_hash=7, log_index=0, root=99, ipfs_cid="cid", timestamp=0)
        with store.batch() as batch:
            batch.register_root_update(event)
        assert not store.snapshot.is_asp_current()
        store.register_asp_tree(AspTree(root=99, leaves=(99,), block_number=7, ipfs_cid="cid"))
        assert store.snapshot.is_asp_current()
        assert store.snapshot.asp_leaves() == [99]

    def test_older_root_update_ignored(self, store):
        newer = RootUpdated(block_number=9, transaction_hash=9, log_index=0, root=2, ipfs_cid="b", timestamp=0)
        older = RootUpdated(block_number=3, transaction_hash=3, log_index=0, root=1, ipfs_cid="a", timestamp=0)
        with store.batch() as batch:
            batch.register_root_update(newer)
            batch.register_root_update(older)
        assert store.snapshot.last_root_update == newer


class TestStoreRegistry:
    def test_one_store_per_key(self):
        registry = StoreRegistry()
        a = registry.get(CHAIN_ID, ENTRYPOINT)
        assert registry.get(CHAIN_ID, ENTRYPOINT) is a
        assert registry.get(CHAIN_ID + 1, ENTRYPOINT) is not a
        assert len(registry) == 2
        assert ChainKey(CHAIN_ID, ENTRYPOINT) in registry

    def test_stores_are_independent(self):
        registry = StoreRegistry()
        registry.get(1, ENTRYPOINT).register_deposits([_deposit(1)])
        assert dict(registry.get(2, ENTRYPOINT).snapshot.deposits) == {}

    def test_chain_key_str(self):
        assert str(ChainKey(1, 0xAB)) == "1:0x" + "0" * 38 + "ab"
        assert isinstance(StateStore(ChainKey(1, 2)).snapshot.key, ChainKey)

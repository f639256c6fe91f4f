"""
Unit tests for privacy_pools.state.sync — incremental event sync.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from fakes import ETH, OTHER_POOL, POOL, USDC, FakeAspService, FakeLogSource
from privacy_pools.core.models import NATIVE_ASSET
from privacy_pools.state.sync import AspRootMismatchError, EventSynchronizer, SyncStage


def _sync(synchronizer):
    return asyncio.run(synchronizer.sync())


@pytest.fixture
def source(chain):
    return FakeLogSource(chain)


@pytest.fixture
def asp(chain):
    return FakeAspService(chain)


@pytest.fixture
def synchronizer(store, source, asp):
    return EventSynchronizer(store, source, asp_service=asp)


# ==============================================================================
# Cursor and idempotence
# ==============================================================================


class TestIncrementalSync:
    def test_initial_sync_registers_everything(self, chain, store, synchronizer):
        chain.deposit(0, 1000)
        chain.foreign_deposit(500)
        result = _sync(synchronizer)

        state = store.snapshot
        assert result.from_block == 1
        assert result.new_pools == 1
        assert result.new_deposits == 2
        assert result.complete
        assert state.last_synced_block == chain.head
        assert len(state.deposits) == 2
        assert len(state.entrypoint_deposits) == 2
        assert state.pools[POOL].scope == chain.pools[POOL].scope

    def test_idempotent_without_new_blocks(self, chain, store, synchronizer):
        chain.deposit(0, 1000)
        _sync(synchronizer)
        version, cursor = store.version, store.last_synced_block

        result = _sync(synchronizer)

        assert store.version == version
        assert store.last_synced_block == cursor
        assert result.new_deposits == 0

    def test_sync_resumes_from_cursor(self, chain, store, source, synchronizer):
        chain.deposit(0, 1000)
        _sync(synchronizer)
        first_head = chain.head

        chain.deposit(1, 2000)
        source.calls.clear()
        result = _sync(synchronizer)

        assert result.from_block == first_head + 1
        assert result.new_deposits == 1
        assert ("entrypoint", first_head + 1, chain.head) in source.calls
        assert ("pool", POOL, first_head + 1, chain.head) in source.calls
        assert len(store.snapshot.deposits) == 2

    def test_empty_blocks_advance_cursor(self, chain, store, synchronizer):
        _sync(synchronizer)
        chain.mine(20)
        _sync(synchronizer)
        assert store.last_synced_block == chain.head

    def test_pool_events_tagged_with_pool(self, chain, store, synchronizer):
        event = chain.deposit(0, 1000)
        chain.withdraw(0, 100)
        _sync(synchronizer)

        state = store.snapshot
        assert state.deposits[event.precommitment].pool == POOL
        assert all(w.pool == POOL for w in state.withdrawals.values())

    def test_pool_fetch_starts_at_registration(self, chain, source, synchronizer):
        registered = chain.pools[POOL].registered_block
        _sync(synchronizer)
        assert ("pool", POOL, registered, chain.head) in source.calls

    def test_stage_back_to_idle(self, synchronizer):
        _sync(synchronizer)
        assert synchronizer.stage is SyncStage.IDLE

    def test_wind_down_recorded(self, chain, store, synchronizer):
        _sync(synchronizer)
        event = chain.wind_down(POOL)
        _sync(synchronizer)
        assert store.snapshot.pools[POOL].wound_down_at_block == event.block_number

    def test_lagging_entrypoint_range_not_skipped(self, chain, store, source, synchronizer):
        """Pool fetches reaching the head must not move the entrypoint cursor."""
        chain.deposit(0, 1000)
        source.entrypoint_confirmed = chain.head
        confirmed = chain.head
        chain.register_pool(OTHER_POOL, USDC)
        chain.deposit(1, 50, pool=OTHER_POOL)
        chain.deposit(2, 70, pool=POOL)

        _sync(synchronizer)

        assert store.last_synced_block == confirmed
        assert OTHER_POOL not in store.snapshot.pools
        assert store.snapshot.pool_cursor(POOL) == chain.head

        source.entrypoint_confirmed = None
        source.calls.clear()
        _sync(synchronizer)

        state = store.snapshot
        assert ("entrypoint", confirmed + 1, chain.head) in source.calls
        assert OTHER_POOL in state.pools
        assert state.last_synced_block == chain.head
        assert len(state.deposits) == 3
        assert len(state.entrypoint_deposits) == 3


# ==============================================================================
# Failure handling
# ==============================================================================


class TestPartialFailure:
    """A failing pool keeps its cursor and is retried; the others commit."""

    def test_failed_pool_retried(self, chain, store, source, synchronizer, caplog):
        chain.register_pool(OTHER_POOL, USDC)
        chain.deposit(0, 1000, pool=POOL)
        chain.deposit(1, 50, pool=OTHER_POOL)
        source.failing_pools.add(OTHER_POOL)

        with caplog.at_level(logging.WARNING, logger="privacy_pools.sync"):
            result = _sync(synchronizer)

        assert result.failed_pools == [OTHER_POOL]
        assert not result.complete
        assert len(store.snapshot.deposits) == 1
        assert store.snapshot.pool_cursor(OTHER_POOL) is None
        assert store.snapshot.pool_cursor(POOL) == chain.head
        assert "retrying on next sync" in caplog.text

        source.failing_pools.clear()
        source.calls.clear()
        result = _sync(synchronizer)

        registered = chain.pools[OTHER_POOL].registered_block
        assert result.complete
        assert ("pool", OTHER_POOL, registered, chain.head) in source.calls
        assert len(store.snapshot.deposits) == 2

    def test_entrypoint_failure_commits_nothing(self, chain, store, source, synchronizer):
        chain.deposit(0, 1000)
        source.get_entrypoint_events = AsyncMock(side_effect=ConnectionError("rpc down"))

        with pytest.raises(ConnectionError):
            _sync(synchronizer)

        source.get_entrypoint_events.assert_awaited_once()
        assert store.version == 0
        assert store.last_synced_block == 0
        assert synchronizer.stage is SyncStage.IDLE


# ==============================================================================
# Metadata
# ==============================================================================


class TestMetadata:
    def test_unresolved_pool_resolved_once(self, chain, store, source, synchronizer):
        chain.register_pool(OTHER_POOL, USDC, include_metadata=False)
        _sync(synchronizer)

        pool = store.snapshot.pools[OTHER_POOL]
        assert pool.is_resolved
        assert pool.asset == USDC
        assert ("asset_of", OTHER_POOL) in source.calls
        assert ("scope_of", OTHER_POOL) in source.calls

        source.calls.clear()
        chain.mine()
        _sync(synchronizer)
        assert ("scope_of", OTHER_POOL) not in source.calls

    def test_native_asset_resolved_locally(self, store, source, synchronizer):
        _sync(synchronizer)
        assert store.snapshot.assets[ETH] == NATIVE_ASSET
        assert ("asset", ETH) not in source.calls

    def test_erc20_asset_fetched_once(self, chain, store, source, synchronizer):
        chain.register_pool(OTHER_POOL, USDC)
        result = _sync(synchronizer)
        assert result.new_assets == 2
        assert store.snapshot.assets[USDC].decimals == 6

        chain.mine()
        _sync(synchronizer)
        assert source.calls.count(("asset", USDC)) == 1


# ==============================================================================
# ASP
# ==============================================================================


class TestAspSync:
    def test_asp_fetched_and_cached(self, chain, store, asp, synchronizer):
        event = chain.publish_asp([11, 22, 33])
        result = _sync(synchronizer)

        assert result.asp_updated
        assert store.snapshot.asp.root == event.root
        assert store.snapshot.asp_leaves() == [11, 22, 33]
        assert store.snapshot.is_asp_current()

        chain.mine()
        _sync(synchronizer)
        assert asp.requests == ["bafy-asp"]

    def test_new_root_refetched(self, chain, store, asp, synchronizer):
        chain.publish_asp([11], ipfs_cid="first")
        _sync(synchronizer)
        chain.publish_asp([11, 22], ipfs_cid="second")
        _sync(synchronizer)

        assert asp.requests == ["first", "second"]
        assert store.snapshot.asp_leaves() == [11, 22]

    def test_tampered_leaves_rejected(self, chain, store, synchronizer, caplog):
        chain.deposit(0, 1000)
        chain.publish_asp([11, 22])
        chain.asp_documents["bafy-asp"][0] = [11, 23]

        with caplog.at_level(logging.ERROR, logger="privacy_pools.sync"):
            with pytest.raises(AspRootMismatchError) as excinfo:
                _sync(synchronizer)

        assert excinfo.value.ipfs_cid == "bafy-asp"
        assert "Rejecting ASP tree" in caplog.text
        assert store.version == 0
        assert dict(store.snapshot.deposits) == {}

    def test_declared_root_mismatch_rejected(self, chain, store, synchronizer):
        chain.publish_asp([11, 22], declared_root=999)
        with pytest.raises(AspRootMismatchError) as excinfo:
            _sync(synchronizer)
        assert excinfo.value.actual == 999
        assert store.snapshot.asp is None

    def test_mismatch_keeps_trusted_tree(self, chain, store, asp, synchronizer):
        chain.publish_asp([11, 22], ipfs_cid="trusted")
        _sync(synchronizer)
        trusted = store.snapshot.asp
        update = store.snapshot.last_root_update
        version = store.version

        chain.publish_asp([11, 22, 33], ipfs_cid="tampered")
        chain.asp_documents["tampered"][0] = [11, 22, 34]
        with pytest.raises(AspRootMismatchError):
            _sync(synchronizer)

        state = store.snapshot
        assert asp.requests == ["trusted", "tampered"]
        assert state.asp == trusted
        assert state.last_root_update == update
        assert state.is_asp_current()
        assert store.version == version

    def test_without_asp_service_tree_left_stale(self, chain, store, source):
        chain.publish_asp([11])
        _sync(EventSynchronizer(store, source))
        assert store.snapshot.asp is None
        assert not store.snapshot.is_asp_current()

"""
privacy_pools.state — Per-chain state and its sync pipeline.

Provides:
- StateStore: copy-on-write, append-only store of on-chain facts per (chain, entrypoint)
- StoreRegistry: owner of one store per ChainKey
- EventSynchronizer: staged, atomic incremental sync from a LogSource
- AspService: ASP tree download from an IPFS gateway
"""

from privacy_pools.state.asp import AspService, AspServiceError, AspTreeDocument
from privacy_pools.state.store import ChainKey, ChainState, StateStore, StoreBatch, StoreError, StoreRegistry
from privacy_pools.state.sync import AspRootMismatchError, EventSynchronizer, SyncResult, SyncStage

__all__ = [
    "AspRootMismatchError",
    "AspService",
    "AspServiceError",
    "AspTreeDocument",
    "ChainKey",
    "ChainState",
    "EventSynchronizer",
    "StateStore",
    "StoreBatch",
    "StoreError",
    "StoreRegistry",
    "SyncResult",
    "SyncStage",
]

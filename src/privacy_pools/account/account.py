"""
PrivacyPoolsAccount: one key, many chains.

The account owns every per-chain collaborator, keyed by ChainKey:

    PrivacyPoolsAccount
      ├── StoreRegistry         ChainKey -> StateStore
      ├── EventSynchronizer     one per ChainKey
      ├── AccountView           one per ChainKey
      └── RelayerAuction        shared, configured relayers

Nothing is global: dropping the account drops all of its state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from privacy_pools.account.views import AccountView, DepositBalance, Note, OwnedDeposit
from privacy_pools.account.withdrawal import Prover, WithdrawalBundle, WithdrawalPreparer
from privacy_pools.config import ConfigError, PrivacyPoolsConfig
from privacy_pools.core.keystore import Keystore
from privacy_pools.core.log_source import LogSource
from privacy_pools.crypto.derivation import Secret, SecretDeriver
from privacy_pools.crypto.field import DEFAULT_HASHER, HashToField
from privacy_pools.crypto.merkle import LeanMerkleTree, MerkleProofGenerator
from privacy_pools.relayer.auction import QuoteResult, RelayerAuction
from privacy_pools.relayer.client import RelayerClient
from privacy_pools.relayer.models import RelayResponse
from privacy_pools.state.asp import AspService
from privacy_pools.state.store import ChainKey, StateStore, StoreRegistry
from privacy_pools.state.sync import EventSynchronizer, SyncResult


class PrivacyPoolsAccount:
    """
    High-level account API.

    Usage:
        account = PrivacyPoolsAccount(
            keystore=Bip32Keystore.from_mnemonic(words),
            log_sources={1: my_log_source},
            config=PrivacyPoolsConfig.from_env(),
            prover=my_prover,
        )
        await account.sync(1)
        print(account.balances(1))
        bundle = await account.prepare_withdrawal(1, asset, 10**18, recipient)
        await account.broadcast_withdrawal(bundle)
    """

    def __init__(
        self,
        keystore: Keystore,
        log_sources: Mapping[int, LogSource],
        config: PrivacyPoolsConfig | None = None,
        prover: Prover | None = None,
        relayer_client: RelayerClient | None = None,
        asp_service: AspService | None = None,
        hasher: HashToField = DEFAULT_HASHER,
        merkle: MerkleProofGenerator | None = None,
    ) -> None:
        self.config = config or PrivacyPoolsConfig()
        self.log_sources = dict(log_sources)
        self.prover = prover
        self.hasher = hasher
        self.merkle = merkle or LeanMerkleTree(hasher)
        self.deriver = SecretDeriver(keystore, self.config.account_index, hasher)
        self.relayer_client = relayer_client or RelayerClient(timeout=self.config.http_timeout)
        self.asp_service = asp_service or AspService(
            gateway_url=self.config.asp_gateway_url,
            timeout=self.config.http_timeout,
        )
        self.auction = RelayerAuction(
            self.relayer_client,
            self.config.relayers,
            max_relay_fee_bps=self.config.max_relay_fee_bps,
            extra_gas=self.config.extra_gas,
        )
        self.stores = StoreRegistry()
        self._synchronizers: dict[ChainKey, EventSynchronizer] = {}
        self._views: dict[ChainKey, AccountView] = {}

    # ------------------------------------------------------------------
    # Per-chain collaborators
    # ------------------------------------------------------------------

    def store(self, chain_id: int) -> StateStore:
        return self.stores.get(chain_id, self.config.entrypoint_for(chain_id))

    def view(self, chain_id: int) -> AccountView:
        store = self.store(chain_id)
        view = self._views.get(store.key)
        if view is None:
            view = AccountView(store, self.deriver, self.merkle, self.hasher)
            self._views[store.key] = view
        return view

    def synchronizer(self, chain_id: int) -> EventSynchronizer:
        store = self.store(chain_id)
        synchronizer = self._synchronizers.get(store.key)
        if synchronizer is None:
            log_source = self.log_sources.get(chain_id)
            if log_source is None:
                raise ConfigError(f"No log source configured for chain {chain_id}")
            synchronizer = EventSynchronizer(store, log_source, self.asp_service, self.merkle)
            self._synchronizers[store.key] = synchronizer
        return synchronizer

    # ------------------------------------------------------------------
    # Sync and views
    # ------------------------------------------------------------------

    async def sync(self, chain_id: int) -> SyncResult:
        """Bring the chain's store up to the current head."""
        return await self.synchronizer(chain_id).sync()

    def balances(self, chain_id: int, assets: Iterable[int] | None = None) -> dict[int, int]:
        """Spendable balance per asset (as of the last sync)."""
        return self.view(chain_id).asset_balances(assets)

    def deposit_balances(self, chain_id: int) -> dict[int, DepositBalance]:
        return self.view(chain_id).deposit_balances()

    def my_deposits(self, chain_id: int) -> list[OwnedDeposit]:
        return self.view(chain_id).my_deposits()

    def select_note(self, chain_id: int, asset: int, amount: int) -> Note:
        return self.view(chain_id).select_note(asset, amount)

    def next_deposit_secret(self, chain_id: int) -> Secret:
        """Secret (and precommitment) to use for the next deposit on `chain_id`."""
        return self.view(chain_id).next_deposit_secret()

    # ------------------------------------------------------------------
    # Withdrawals
    # ------------------------------------------------------------------

    async def get_best_quote(self, chain_id: int, asset: int, amount: int, recipient: int) -> QuoteResult:
        return await self.auction.get_best_quote(chain_id, asset, amount, recipient)

    async def prepare_withdrawal(
        self, chain_id: int, asset: int, amount: int, recipient: int, sync: bool = True
    ) -> WithdrawalBundle:
        """
        Sync (unless told not to), then select, prove and quote a withdrawal.

        Raises:
            ConfigError: if no prover is configured.
        """
        if self.prover is None:
            raise ConfigError("A prover is required to prepare withdrawals")
        if sync:
            await self.sync(chain_id)
        preparer = WithdrawalPreparer(self.view(chain_id), self.prover, self.auction, self.hasher)
        return await preparer.prepare_withdrawal(asset, amount, recipient)

    async def broadcast_withdrawal(self, bundle: WithdrawalBundle) -> RelayResponse:
        """Send a prepared withdrawal to the relayer that won its auction."""
        return await self.relayer_client.relay(bundle.quote.relayer_url, bundle.relay_request())

    async def aclose(self) -> None:
        """Close HTTP clients owned by the account."""
        await self.relayer_client.aclose()
        await self.asp_service.aclose()

    async def __aenter__(self) -> PrivacyPoolsAccount:
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.aclose()

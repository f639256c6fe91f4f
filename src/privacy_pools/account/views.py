"""
Account discovery and balance views.

Ownership is never stored. It is re-derived from the keystore every time:

1. Deposits:    for i = 0, 1, 2, ... derive precommitment(i) and look it up
                in the store; the first miss ends the scan.
2. Withdrawals: for each owned deposit, for k = 0, 1, 2, ... derive the
                nullifier hash of lineage note k; the first miss ends the scan.
3. Balance:     deposit.value - sum(withdrawal values), or 0 once the label
                has been ragequit.

A gap in either scan hides everything after it, so views are only as good as
the last sync. Every view is recomputed only when the store snapshot version
changes.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.models import EntrypointDeposited, PoolDeposited, Ragequit, Withdrawn
from privacy_pools.crypto.commitment import commitment_of, nullifier_hash_of
from privacy_pools.crypto.derivation import Secret, SecretDeriver
from privacy_pools.crypto.field import DEFAULT_HASHER, HashToField
from privacy_pools.crypto.merkle import LeanMerkleTree, MerkleProof, MerkleProofGenerator
from privacy_pools.state.store import ChainState, StateStore


class InsufficientNoteError(PrivacyPoolsError):
    """Raised when no single note can cover the requested amount."""

    def __init__(self, asset: int, amount: int, total_balance: int) -> None:
        self.asset = asset
        self.amount = amount
        self.total_balance = total_balance
        super().__init__(
            f"No single note of asset 0x{asset:x} holds {amount} "
            f"(aggregate balance {total_balance})"
        )


class OverspendError(PrivacyPoolsError):
    """Raised when a withdrawal amount exceeds the spent note's value."""
    pass


# ==============================================================================
# View types
# ==============================================================================


@dataclass(frozen=True)
class OwnedDeposit:
    """A pool deposit discovered at `index` of the account's derivation tree."""
    index: int
    event: PoolDeposited
    asset: int | None = None

    @property
    def precommitment(self) -> int:
        return self.event.precommitment

    @property
    def label(self) -> int:
        return self.event.label

    @property
    def value(self) -> int:
        return self.event.value

    @property
    def pool(self) -> int:
        return self.event.pool


@dataclass(frozen=True)
class DepositBalance:
    """Derived spendable balance of one owned deposit."""
    deposit: OwnedDeposit
    withdrawals: tuple[Withdrawn, ...]
    ragequit: Ragequit | None
    balance: int

    @property
    def withdrawn(self) -> int:
        return sum(w.value for w in self.withdrawals)


@dataclass(frozen=True)
class Note:
    """
    The current unspent note of a deposit lineage.

    `precommitment` belongs to lineage position `withdraw_index`, so
    H(value, label, precommitment) is the note's state-tree leaf.
    """
    precommitment: int
    label: int
    value: int
    deposit_index: int
    withdraw_index: int
    asset: int | None = None
    pool: int = 0


# ==============================================================================
# AccountView
# ==============================================================================


class AccountView:
    """
    Derived, memoized views of one account over one StateStore.

    Usage:
        view = AccountView(store, SecretDeriver(keystore))
        view.my_deposits()
        view.asset_balances()
        note = view.select_note(asset, 10**18)
    """

    def __init__(
        self,
        store: StateStore,
        deriver: SecretDeriver,
        merkle: MerkleProofGenerator | None = None,
        hasher: HashToField = DEFAULT_HASHER,
    ) -> None:
        self.store = store
        self.deriver = deriver
        self.hasher = hasher
        self.merkle = merkle or LeanMerkleTree(hasher)
        self._secrets: dict[tuple[int, int], Secret] = {}
        self._memo: dict[str, Any] = {}
        self._memo_version: int | None = None

    @property
    def chain_id(self) -> int:
        return self.store.key.chain_id

    @property
    def entrypoint(self) -> int:
        return self.store.key.entrypoint

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def secret(self, deposit_index: int, withdraw_index: int = 0) -> Secret:
        """Secret of lineage note `withdraw_index` of deposit `deposit_index`."""
        key = (deposit_index, withdraw_index)
        cached = self._secrets.get(key)
        if cached is None:
            cached = self.deriver.derive(self.chain_id, self.entrypoint, deposit_index, withdraw_index)
            self._secrets[key] = cached
        return cached

    def _cached(self, name: str, compute: Callable[[ChainState], Any], state: ChainState | None = None) -> Any:
        # Nested views pass their snapshot so one result never mixes two versions
        if state is None:
            state = self.store.snapshot
        if state.version != self._memo_version:
            self._memo = {}
            self._memo_version = state.version
        if name not in self._memo:
            self._memo[name] = compute(state)
        return self._memo[name]

    @staticmethod
    def _asset_of(state: ChainState, deposit: PoolDeposited) -> int | None:
        pool = state.pools.get(deposit.pool)
        if pool is None:
            entry = state.entrypoint_deposits.get(deposit.commitment)
            pool = state.pools.get(entry.pool) if entry is not None else None
        return pool.asset if pool is not None else None

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def my_deposits(self) -> list[OwnedDeposit]:
        """Owned deposits in index order (prefix scan, stops at the first gap)."""
        return self._cached("deposits", self._scan_deposits)

    def _scan_deposits(self, state: ChainState) -> list[OwnedDeposit]:
        found: list[OwnedDeposit] = []
        index = 0
        while True:
            event = state.deposits.get(self.secret(index).precommitment)
            if event is None:
                return found
            found.append(OwnedDeposit(index=index, event=event, asset=self._asset_of(state, event)))
            index += 1

    def my_withdrawals(self) -> dict[int, list[Withdrawn]]:
        """Withdrawals of each owned deposit, keyed by deposit precommitment, in lineage order."""
        return self._cached("withdrawals", self._scan_withdrawals)

    def _scan_withdrawals(self, state: ChainState) -> dict[int, list[Withdrawn]]:
        grouped: dict[int, list[Withdrawn]] = {}
        for deposit in self._cached("deposits", self._scan_deposits, state):
            lineage: list[Withdrawn] = []
            while True:
                spent = nullifier_hash_of(self.secret(deposit.index, len(lineage)), self.hasher)
                withdrawal = state.withdrawals.get(spent)
                if withdrawal is None:
                    break
                lineage.append(withdrawal)
            grouped[deposit.precommitment] = lineage
        return grouped

    def my_ragequits(self) -> dict[int, Ragequit]:
        """Ragequit of each owned deposit that has one, keyed by deposit precommitment."""
        return self._cached("ragequits", self._scan_ragequits)

    def _scan_ragequits(self, state: ChainState) -> dict[int, Ragequit]:
        return {
            d.precommitment: state.ragequits[d.label]
            for d in self._cached("deposits", self._scan_deposits, state)
            if d.label in state.ragequits
        }

    def my_entrypoint_deposits(self) -> dict[int, EntrypointDeposited]:
        """Entrypoint-side deposit event of each owned deposit, keyed by precommitment."""
        def compute(state: ChainState) -> dict[int, EntrypointDeposited]:
            return {
                d.precommitment: state.entrypoint_deposits[d.event.commitment]
                for d in self._cached("deposits", self._scan_deposits, state)
                if d.event.commitment in state.entrypoint_deposits
            }
        return self._cached("entrypoint_deposits", compute)

    def deposit_count(self) -> int:
        return len(self.my_deposits())

    def next_deposit_secret(self) -> Secret:
        """Secret for the account's next deposit (index = number of discovered deposits)."""
        return self.secret(self.deposit_count())

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def deposit_balances(self) -> dict[int, DepositBalance]:
        """Balance of every owned deposit, keyed by precommitment, in deposit order."""
        return self._cached("balances", self._compute_balances)

    def _compute_balances(self, state: ChainState) -> dict[int, DepositBalance]:
        withdrawals = self._cached("withdrawals", self._scan_withdrawals, state)
        ragequits = self._cached("ragequits", self._scan_ragequits, state)
        balances: dict[int, DepositBalance] = {}
        for deposit in self._cached("deposits", self._scan_deposits, state):
            lineage = tuple(withdrawals.get(deposit.precommitment, ()))
            ragequit = ragequits.get(deposit.precommitment)
            if ragequit is not None:
                balance = 0
            else:
                balance = deposit.value - sum(w.value for w in lineage)
            balances[deposit.precommitment] = DepositBalance(
                deposit=deposit,
                withdrawals=lineage,
                ragequit=ragequit,
                balance=balance,
            )
        return balances

    def asset_balances(self, assets: Iterable[int] | None = None) -> dict[int, int]:
        """
        Spendable balance per asset.

        Args:
            assets: assets to report. Requested assets without any owned
                    deposit report 0. None reports every asset with deposits.
        """
        totals: dict[int, int] = {}
        for entry in self.deposit_balances().values():
            asset = entry.deposit.asset
            if asset is not None:
                totals[asset] = totals.get(asset, 0) + entry.balance
        if assets is None:
            return totals
        return {asset: totals.get(asset, 0) for asset in assets}

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    def select_note(self, asset: int, min_amount: int) -> Note:
        """
        Smallest single note of `asset` holding at least `min_amount`.

        Ties go to the earliest deposit.

        Raises:
            InsufficientNoteError: if no single note qualifies, even when the
                                   aggregate balance would.
        """
        candidates = [
            entry for entry in self.deposit_balances().values()
            if entry.deposit.asset == asset and entry.balance > 0 and entry.balance >= min_amount
        ]
        if not candidates:
            total = self.asset_balances([asset])[asset]
            raise InsufficientNoteError(asset, min_amount, total)

        best = min(candidates, key=lambda entry: entry.balance)
        withdraw_index = len(best.withdrawals)
        return Note(
            precommitment=self.secret(best.deposit.index, withdraw_index).precommitment,
            label=best.deposit.label,
            value=best.balance,
            deposit_index=best.deposit.index,
            withdraw_index=withdraw_index,
            asset=asset,
            pool=best.deposit.pool,
        )

    def existing_note_secrets(self, note: Note) -> Secret:
        """Secrets needed to spend `note`."""
        return self.secret(note.deposit_index, note.withdraw_index)

    def next_note(self, note: Note, withdraw_amount: int) -> tuple[Note, Secret]:
        """
        Change note left after withdrawing `withdraw_amount` from `note`.

        Raises:
            OverspendError: if withdraw_amount exceeds the note's value.
        """
        if withdraw_amount < 0:
            raise ValueError("withdraw_amount must be non-negative")
        if withdraw_amount > note.value:
            raise OverspendError(f"Cannot withdraw {withdraw_amount} from a note worth {note.value}")

        secret = self.secret(note.deposit_index, note.withdraw_index + 1)
        change = Note(
            precommitment=secret.precommitment,
            label=note.label,
            value=note.value - withdraw_amount,
            deposit_index=note.deposit_index,
            withdraw_index=note.withdraw_index + 1,
            asset=note.asset,
            pool=note.pool,
        )
        return change, secret

    # ------------------------------------------------------------------
    # Merkle proofs
    # ------------------------------------------------------------------

    def state_leaves(self, pool: int) -> list[int]:
        return self._cached(f"state_leaves:{pool}", lambda state: state.state_leaves(pool))

    def asp_leaves(self) -> list[int]:
        return self._cached("asp_leaves", lambda state: state.asp_leaves())

    def state_merkle_proof(self, note: Note) -> MerkleProof:
        """Inclusion proof of the note's commitment in its pool's state tree."""
        leaf = commitment_of(note.value, note.label, note.precommitment, self.hasher)
        return self.merkle.generate_proof(self.state_leaves(note.pool), leaf)

    def asp_merkle_proof(self, label: int) -> MerkleProof:
        """Inclusion proof of `label` in the cached ASP tree."""
        return self.merkle.generate_proof(self.asp_leaves(), label)

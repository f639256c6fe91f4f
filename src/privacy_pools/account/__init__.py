"""
privacy_pools.account — What the key owns, and how to spend it.

Provides:
- AccountView: deposit/withdrawal discovery, balances, note selection
- WithdrawalPreparer: Merkle proofs, context, prover and relayer auction
- PrivacyPoolsAccount: multi-chain facade owning stores, syncs and views
"""

from privacy_pools.account.account import PrivacyPoolsAccount
from privacy_pools.account.views import (
    AccountView,
    DepositBalance,
    InsufficientNoteError,
    Note,
    OverspendError,
    OwnedDeposit,
)
from privacy_pools.account.withdrawal import (
    ProofResult,
    Prover,
    WithdrawalBundle,
    WithdrawalError,
    WithdrawalPreparer,
)

__all__ = [
    "AccountView",
    "DepositBalance",
    "InsufficientNoteError",
    "Note",
    "OverspendError",
    "OwnedDeposit",
    "PrivacyPoolsAccount",
    "ProofResult",
    "Prover",
    "WithdrawalBundle",
    "WithdrawalError",
    "WithdrawalPreparer",
]

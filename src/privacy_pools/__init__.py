"""
privacy-pools-sdk: Python SDK for Privacy Pools accounts.

Usage:
    from privacy_pools import Bip32Keystore, PrivacyPoolsAccount, PrivacyPoolsConfig
    from privacy_pools.relayer import RelayerClient
"""

from privacy_pools.account import (
    AccountView,
    InsufficientNoteError,
    Note,
    OverspendError,
    PrivacyPoolsAccount,
    WithdrawalBundle,
    WithdrawalError,
)
from privacy_pools.config import ConfigError, PrivacyPoolsConfig
from privacy_pools.core import Bip32Keystore, KeystoreError, LogSource, PrivacyPoolsError
from privacy_pools.crypto import DerivationError, FieldElementError, MerkleProofError, Secret, SecretDeriver
from privacy_pools.relayer import (
    AllRelayersFailedError,
    NoRelayersAvailableError,
    QuoteValidationError,
    RelayerError,
)
from privacy_pools.state import AspRootMismatchError, AspServiceError, StateStore, StoreError

__version__ = "0.1.0"
__all__ = [
    "PrivacyPoolsAccount",
    "PrivacyPoolsConfig",
    "AccountView",
    "Bip32Keystore",
    "LogSource",
    "Note",
    "Secret",
    "SecretDeriver",
    "StateStore",
    "WithdrawalBundle",
    # Errors
    "PrivacyPoolsError",
    "AllRelayersFailedError",
    "AspRootMismatchError",
    "AspServiceError",
    "ConfigError",
    "DerivationError",
    "FieldElementError",
    "InsufficientNoteError",
    "KeystoreError",
    "MerkleProofError",
    "NoRelayersAvailableError",
    "OverspendError",
    "QuoteValidationError",
    "RelayerError",
    "StoreError",
    "WithdrawalError",
]

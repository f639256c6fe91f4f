"""
Deterministic secret derivation for Privacy Pools notes.

Every note an account will ever own is addressable by position:

    m / 28784' / 1' / account' / kind' / deposit' [ / withdraw' ]
    └──── PRIVACY_POOLS_PATH ────┘       │
                                         └── 0 = salt, 1 = nullifier

Lineage position 0 (the deposit itself) stops at the deposit index; the change
note created by the w-th withdrawal (w >= 1) appends the withdraw index.

For each position two sub-keys are derived (salt path and nullifier path) and
each is folded with the deployment coordinates:

    nullifier     = H(chainId, entrypoint, K_nullifier mod p)
    salt          = H(chainId, entrypoint, K_salt mod p)
    precommitment = H(nullifier, salt)

so identical indices on another chain or entrypoint yield unrelated secrets.

Derivation is a pure function of (keystore, account, chain, entrypoint,
indices): no store is read or written and nothing is random.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.core.keystore import Keystore
from privacy_pools.crypto.field import DEFAULT_HASHER, HashToField, reduce_to_field, to_field

PRIVACY_POOLS_PATH = "m/28784'/1'"


class DerivationError(PrivacyPoolsError):
    """Raised when the keystore rejects a derivation path."""
    pass


class SecretKind(IntEnum):
    SALT = 0
    NULLIFIER = 1


@dataclass(frozen=True)
class DerivationIndex:
    """Position of one secret in the account's derivation tree."""
    account_index: int
    secret_kind: SecretKind
    deposit_index: int
    withdraw_index: int | None = None

    def __post_init__(self) -> None:
        for name in ("account_index", "deposit_index"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")
        if self.withdraw_index is not None and self.withdraw_index < 0:
            raise ValueError("withdraw_index must be non-negative")

    @property
    def path(self) -> str:
        """Hardened derivation path for this position."""
        path = (
            f"{PRIVACY_POOLS_PATH}/{self.account_index}'/"
            f"{int(self.secret_kind)}'/{self.deposit_index}'"
        )
        if self.withdraw_index:
            path += f"/{self.withdraw_index}'"
        return path


@dataclass(frozen=True)
class Secret:
    """The secret triple behind one note."""
    nullifier: int
    salt: int
    precommitment: int


class SecretDeriver:
    """
    Derives note secrets from a keystore.

    Usage:
        deriver = SecretDeriver(keystore, account_index=0)
        secret = deriver.derive(chain_id=1, entrypoint=0x6818..., deposit_index=0)
        change = deriver.derive(1, 0x6818..., deposit_index=0, withdraw_index=1)
    """

    def __init__(self, keystore: Keystore, account_index: int = 0, hasher: HashToField = DEFAULT_HASHER) -> None:
        if account_index < 0:
            raise ValueError("account_index must be non-negative")
        self.keystore = keystore
        self.account_index = account_index
        self.hasher = hasher

    def derive(
        self,
        chain_id: int,
        entrypoint: int,
        deposit_index: int,
        withdraw_index: int | None = None,
    ) -> Secret:
        """
        Derive the (nullifier, salt, precommitment) of a note.

        Args:
            chain_id: EVM chain id.
            entrypoint: entrypoint contract address.
            deposit_index: position of the deposit in the account.
            withdraw_index: position within the deposit's lineage
                            (None or 0 is the deposit note itself).

        Raises:
            DerivationError: if the keystore rejects a path.
        """
        to_field(chain_id, "chain_id")
        to_field(entrypoint, "entrypoint")

        nullifier = self._fold(chain_id, entrypoint, SecretKind.NULLIFIER, deposit_index, withdraw_index)
        salt = self._fold(chain_id, entrypoint, SecretKind.SALT, deposit_index, withdraw_index)
        return Secret(
            nullifier=nullifier,
            salt=salt,
            precommitment=self.hasher([nullifier, salt]),
        )

    def derive_deposit(self, chain_id: int, entrypoint: int, deposit_index: int) -> Secret:
        """Secret of the note created by the deposit at `deposit_index`."""
        return self.derive(chain_id, entrypoint, deposit_index)

    def _fold(
        self,
        chain_id: int,
        entrypoint: int,
        kind: SecretKind,
        deposit_index: int,
        withdraw_index: int | None,
    ) -> int:
        index = DerivationIndex(self.account_index, kind, deposit_index, withdraw_index)
        try:
            key_material = self.keystore.derive_at_path(index.path)
        except Exception as err:
            raise DerivationError(f"Keystore rejected path {index.path}: {err}") from err
        if not key_material:
            raise DerivationError(f"Keystore returned empty key material for {index.path}")
        return self.hasher([chain_id, entrypoint, reduce_to_field(key_material)])

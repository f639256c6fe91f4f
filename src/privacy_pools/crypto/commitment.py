"""
Commitment engine: the hashes that appear on chain.

    precommitment   = H(nullifier, salt)
    commitment      = H(value, label, precommitment)
    nullifier hash  = H(nullifier)
    context         = H(processooor, H_data(withdrawal data), scope)

All functions are pure and total over valid field elements; anything outside
the field raises FieldElementError instead of being wrapped.
"""

from __future__ import annotations

import hashlib

from privacy_pools.crypto.derivation import Secret
from privacy_pools.crypto.field import DEFAULT_HASHER, HashToField, reduce_to_field, to_field


def precommitment_of(nullifier: int, salt: int, hasher: HashToField = DEFAULT_HASHER) -> int:
    """Precommitment published with a deposit."""
    return hasher([to_field(nullifier, "nullifier"), to_field(salt, "salt")])


def commitment_of(value: int, label: int, precommitment: int, hasher: HashToField = DEFAULT_HASHER) -> int:
    """
    State-tree leaf of a note.

    Args:
        value: note value in the asset's base units.
        label: lineage label assigned by the pool at deposit time.
        precommitment: H(nullifier, salt) of the note's secret.
    """
    return hasher([
        to_field(value, "value"),
        to_field(label, "label"),
        to_field(precommitment, "precommitment"),
    ])


def note_commitment(note, hasher: HashToField = DEFAULT_HASHER) -> int:
    """commitment_of() for any object exposing value / label / precommitment."""
    return commitment_of(note.value, note.label, note.precommitment, hasher)


def nullifier_hash_of(secret: Secret | int, hasher: HashToField = DEFAULT_HASHER) -> int:
    """Public spend marker revealed when the note is withdrawn."""
    nullifier = secret.nullifier if isinstance(secret, Secret) else secret
    return hasher([to_field(nullifier, "nullifier")])


def withdrawal_data_digest(data: bytes) -> int:
    """BLAKE2b-256 digest of opaque withdrawal data, reduced into the field."""
    return reduce_to_field(hashlib.blake2b(data, digest_size=32).digest())


def context_of(processooor: int, data: bytes, scope: int, hasher: HashToField = DEFAULT_HASHER) -> int:
    """
    Context binding a withdrawal proof to its processor, relay data and pool.

    Args:
        processooor: address allowed to process the withdrawal (entrypoint when relayed).
        data: withdrawal data committed by the relayer (recipient, fee recipient, fee).
        scope: pool scope (domain separator).
    """
    return hasher([
        to_field(processooor, "processooor"),
        withdrawal_data_digest(data),
        to_field(scope, "scope"),
    ])

"""
Field arithmetic for the Privacy Pools circuits.

Provides:
- SNARK_SCALAR_FIELD: the BN254 scalar field modulus every circuit value lives in
- to_field: strict validation of a field element (never wraps or truncates)
- reduce_to_field: explicit reduction of key material / digests into the field
- HashToField: the protocol every hash-to-field implementation satisfies
- Blake2bFieldHasher: default hash-to-field implementation

Mathematical foundation:
    All protocol hashing (secrets, precommitments, commitments, nullifier
    hashes, Merkle nodes, context) maps a sequence of field elements to one
    field element. On-chain deployments use Poseidon; any implementation of
    HashToField can be injected wherever a hasher is accepted.

    The default Blake2bFieldHasher hashes the 32-byte big-endian encoding of
    each input with BLAKE2b-256 under a domain-separation personalisation and
    reduces the digest modulo the field.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence
from typing import Protocol

from privacy_pools.core.errors import PrivacyPoolsError

# BN254 (alt_bn128) scalar field modulus
SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034712183448031409208549617

FIELD_BYTES = 32


class FieldElementError(PrivacyPoolsError, ValueError):
    """Raised when a value is not a valid element of the SNARK scalar field."""
    pass


def to_field(value: int, label: str = "value") -> int:
    """
    Validate that `value` is a canonical field element.

    Args:
        value: candidate field element.
        label: name used in the error message.

    Returns:
        The value unchanged.

    Raises:
        FieldElementError: if value is not an int or lies outside [0, p).
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise FieldElementError(f"Invalid {label}: expected int, got {type(value).__name__}")
    if value < 0:
        raise FieldElementError(f"Invalid {label}: negative values are not field elements")
    if value >= SNARK_SCALAR_FIELD:
        raise FieldElementError(
            f"Invalid {label}: 0x{value:x} is not below the SNARK scalar field modulus"
        )
    return value


def reduce_to_field(data: bytes) -> int:
    """Interpret raw bytes (key material, digests) as a big-endian integer mod p."""
    return int.from_bytes(data, "big") % SNARK_SCALAR_FIELD


def field_to_bytes(value: int) -> bytes:
    """32-byte big-endian encoding of a validated field element."""
    return to_field(value).to_bytes(FIELD_BYTES, "big")


class HashToField(Protocol):
    """Deterministic map from a sequence of field elements to one field element."""

    def __call__(self, inputs: Sequence[int]) -> int: ...


class Blake2bFieldHasher:
    """
    Default hash-to-field: BLAKE2b-256(person || len || e_0 || ... || e_n) mod p.

    Usage:
        hasher = Blake2bFieldHasher()
        h = hasher([1, 2, 3])
    """

    def __init__(self, person: bytes = b"privacy-pools") -> None:
        if len(person) > hashlib.blake2b.PERSON_SIZE:
            raise ValueError(f"Personalisation must be at most {hashlib.blake2b.PERSON_SIZE} bytes")
        self.person = person

    def __call__(self, inputs: Sequence[int]) -> int:
        if not inputs:
            raise FieldElementError("hash-to-field requires at least one input")
        h = hashlib.blake2b(digest_size=32, person=self.person)
        h.update(len(inputs).to_bytes(4, "big"))
        for i, value in enumerate(inputs):
            h.update(field_to_bytes(to_field(value, f"input[{i}]")))
        return reduce_to_field(h.digest())

    def __repr__(self) -> str:
        return f"Blake2bFieldHasher(person={self.person!r})"


DEFAULT_HASHER: HashToField = Blake2bFieldHasher()

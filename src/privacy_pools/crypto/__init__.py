"""
privacy_pools.crypto — Field arithmetic and note cryptography.

Provides:
- SNARK scalar field validation and the pluggable hash-to-field function
- Deterministic per-note secret derivation (nullifier, salt, precommitment)
- Commitments, nullifier hashes and withdrawal context hashing
- Lean incremental Merkle tree inclusion proofs
"""

from privacy_pools.crypto.commitment import (
    commitment_of,
    context_of,
    note_commitment,
    nullifier_hash_of,
    precommitment_of,
)
from privacy_pools.crypto.derivation import (
    PRIVACY_POOLS_PATH,
    DerivationError,
    DerivationIndex,
    Secret,
    SecretDeriver,
    SecretKind,
)
from privacy_pools.crypto.field import (
    DEFAULT_HASHER,
    SNARK_SCALAR_FIELD,
    Blake2bFieldHasher,
    FieldElementError,
    HashToField,
    to_field,
)
from privacy_pools.crypto.merkle import (
    LeanMerkleTree,
    MerkleProof,
    MerkleProofError,
    MerkleProofGenerator,
)

__all__ = [
    # Field
    "SNARK_SCALAR_FIELD",
    "DEFAULT_HASHER",
    "Blake2bFieldHasher",
    "FieldElementError",
    "HashToField",
    "to_field",
    # Derivation
    "PRIVACY_POOLS_PATH",
    "DerivationError",
    "DerivationIndex",
    "Secret",
    "SecretDeriver",
    "SecretKind",
    # Commitments
    "commitment_of",
    "context_of",
    "note_commitment",
    "nullifier_hash_of",
    "precommitment_of",
    # Merkle
    "LeanMerkleTree",
    "MerkleProof",
    "MerkleProofError",
    "MerkleProofGenerator",
]

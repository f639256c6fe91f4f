"""
Unit tests for privacy_pools.crypto.commitment — on-chain hashes.
"""

import pytest

from privacy_pools.account.views import Note
from privacy_pools.crypto.commitment import (
    commitment_of,
    context_of,
    note_commitment,
    nullifier_hash_of,
    precommitment_of,
    withdrawal_data_digest,
)
from privacy_pools.crypto.derivation import Secret
from privacy_pools.crypto.field import SNARK_SCALAR_FIELD, Blake2bFieldHasher, FieldElementError


class TestCommitment:
    def test_deterministic(self):
        assert commitment_of(10, 20, 30) == commitment_of(10, 20, 30)

    def test_every_field_matters(self):
        base = commitment_of(10, 20, 30)
        assert commitment_of(11, 20, 30) != base
        assert commitment_of(10, 21, 30) != base
        assert commitment_of(10, 20, 31) != base

    def test_argument_order_matters(self):
        assert commitment_of(10, 20, 30) != commitment_of(20, 10, 30)

    def test_note_commitment(self):
        note = Note(precommitment=30, label=20, value=10, deposit_index=0, withdraw_index=0)
        assert note_commitment(note) == commitment_of(10, 20, 30)

    def test_value_out_of_field_rejected(self):
        with pytest.raises(FieldElementError, match="value"):
            commitment_of(SNARK_SCALAR_FIELD, 1, 1)

    def test_custom_hasher(self):
        other = Blake2bFieldHasher(b"other")
        assert commitment_of(1, 2, 3, other) != commitment_of(1, 2, 3)


class TestNullifierHash:
    def test_secret_and_int_agree(self):
        secret = Secret(nullifier=42, salt=7, precommitment=precommitment_of(42, 7))
        assert nullifier_hash_of(secret) == nullifier_hash_of(42)

    def test_hash_hides_nullifier(self):
        assert nullifier_hash_of(42) != 42

    def test_rejects_negative(self):
        with pytest.raises(FieldElementError):
            nullifier_hash_of(-1)


class TestContext:
    def test_binds_every_input(self):
        base = context_of(0xE1, b"\x01" * 96, 5)
        assert context_of(0xE2, b"\x01" * 96, 5) != base
        assert context_of(0xE1, b"\x02" * 96, 5) != base
        assert context_of(0xE1, b"\x01" * 96, 6) != base

    def test_data_digest_in_field(self):
        assert 0 <= withdrawal_data_digest(b"\xff" * 96) < SNARK_SCALAR_FIELD

    def test_empty_data_allowed(self):
        assert context_of(1, b"", 1) == context_of(1, b"", 1)

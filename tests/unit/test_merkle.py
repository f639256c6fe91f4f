"""
Unit tests for privacy_pools.crypto.merkle — LeanIMT proofs.
"""

import pytest

from privacy_pools.crypto.field import DEFAULT_HASHER
from privacy_pools.crypto.merkle import LeanMerkleTree, MerkleProof, MerkleProofError

H = DEFAULT_HASHER


class TestComputeRoot:
    def test_empty_tree(self):
        assert LeanMerkleTree().compute_root([]) == 0

    def test_single_leaf_is_root(self):
        assert LeanMerkleTree().compute_root([77]) == 77

    def test_two_leaves(self):
        assert LeanMerkleTree().compute_root([1, 2]) == H([1, 2])

    def test_odd_node_promoted(self):
        # [1, 2, 3]: 3 has no sibling and is promoted unchanged
        assert LeanMerkleTree().compute_root([1, 2, 3]) == H([H([1, 2]), 3])

    def test_five_leaves(self):
        left = H([H([1, 2]), H([3, 4])])
        assert LeanMerkleTree().compute_root([1, 2, 3, 4, 5]) == H([left, 5])


class TestGenerateProof:
    """Proofs carry only the siblings that exist."""

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 8, 13])
    def test_every_leaf_verifies(self, size):
        tree = LeanMerkleTree()
        leaves = [100 + i for i in range(size)]
        root = tree.compute_root(leaves)
        for leaf in leaves:
            proof = tree.generate_proof(leaves, leaf)
            assert proof.root == root
            assert tree.verify_proof(proof)

    def test_promoted_leaf_has_short_proof(self):
        proof = LeanMerkleTree().generate_proof([1, 2, 3], 3)
        assert proof.siblings == (H([1, 2]),)
        assert proof.index == 1
        assert proof.depth == 1

    def test_left_leaf_index_zero(self):
        proof = LeanMerkleTree().generate_proof([1, 2, 3, 4], 1)
        assert proof.index == 0
        assert proof.siblings == (2, H([3, 4]))

    def test_right_leaf_index_bits(self):
        proof = LeanMerkleTree().generate_proof([1, 2, 3, 4], 4)
        assert proof.index == 0b11

    def test_missing_leaf(self):
        with pytest.raises(MerkleProofError, match="not found"):
            LeanMerkleTree().generate_proof([1, 2, 3], 9)

    def test_tampered_proof_fails(self):
        tree = LeanMerkleTree()
        proof = tree.generate_proof([1, 2, 3, 4], 2)
        forged = MerkleProof(index=proof.index, root=proof.root, leaf=5, siblings=proof.siblings)
        assert not tree.verify_proof(forged)

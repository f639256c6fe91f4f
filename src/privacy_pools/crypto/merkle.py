"""
Merkle inclusion proofs over field-element leaves.

Both trees the withdrawal circuit consumes (pool state tree, ASP tree) are
Lean incremental Merkle trees:

1. Parent hashing: H(left, right) with the protocol hash-to-field
2. A node without a right sibling is promoted to the next level unchanged
3. Single leaf: root = leaf
4. Empty tree: root = 0

Proofs only contain the siblings that actually exist; bit i of `index` tells
whether the i-th sibling sits on the left.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from privacy_pools.core.errors import PrivacyPoolsError
from privacy_pools.crypto.field import DEFAULT_HASHER, HashToField, to_field


class MerkleProofError(PrivacyPoolsError):
    """Raised when a proof is requested for a leaf that is not in the tree."""
    pass


@dataclass(frozen=True)
class MerkleProof:
    """Inclusion proof of `leaf` under `root`."""
    index: int
    root: int
    leaf: int
    siblings: tuple[int, ...]

    @property
    def depth(self) -> int:
        """Number of hashing steps from leaf to root."""
        return len(self.siblings)


class MerkleProofGenerator(Protocol):
    """Builds inclusion proofs over caller-supplied leaves."""

    def generate_proof(self, leaves: Sequence[int], target: int) -> MerkleProof: ...

    def compute_root(self, leaves: Sequence[int]) -> int: ...


class LeanMerkleTree:
    """
    Default proof generator (LeanIMT semantics).

    Usage:
        tree = LeanMerkleTree()
        root = tree.compute_root(leaves)
        proof = tree.generate_proof(leaves, leaves[3])
        assert tree.verify_proof(proof)
    """

    def __init__(self, hasher: HashToField = DEFAULT_HASHER) -> None:
        self.hasher = hasher

    def _levels(self, leaves: Sequence[int]) -> list[list[int]]:
        level = [to_field(leaf, "leaf") for leaf in leaves]
        levels = [level]
        while len(level) > 1:
            parents = []
            for i in range(0, len(level), 2):
                if i + 1 < len(level):
                    parents.append(self.hasher([level[i], level[i + 1]]))
                else:
                    parents.append(level[i])
            level = parents
            levels.append(level)
        return levels

    def compute_root(self, leaves: Sequence[int]) -> int:
        """Root of the tree built from `leaves` (0 for an empty tree)."""
        if not leaves:
            return 0
        return self._levels(leaves)[-1][0]

    def generate_proof(self, leaves: Sequence[int], target: int) -> MerkleProof:
        """
        Inclusion proof of the first occurrence of `target` in `leaves`.

        Raises:
            MerkleProofError: if target is not a leaf.
        """
        try:
            position = list(leaves).index(target)
        except ValueError:
            raise MerkleProofError(f"Leaf 0x{target:x} not found among {len(leaves)} leaves") from None

        levels = self._levels(leaves)
        siblings: list[int] = []
        index = 0
        node_index = position
        for level in levels[:-1]:
            is_right = node_index & 1
            sibling_index = node_index - 1 if is_right else node_index + 1
            if sibling_index < len(level):
                if is_right:
                    index |= 1 << len(siblings)
                siblings.append(level[sibling_index])
            node_index >>= 1

        return MerkleProof(index=index, root=levels[-1][0], leaf=target, siblings=tuple(siblings))

    def verify_proof(self, proof: MerkleProof) -> bool:
        """Recompute the root from a proof and compare."""
        node = proof.leaf
        for i, sibling in enumerate(proof.siblings):
            if (proof.index >> i) & 1:
                node = self.hasher([sibling, node])
            else:
                node = self.hasher([node, sibling])
        return node == proof.root

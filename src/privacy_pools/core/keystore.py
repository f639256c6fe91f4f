"""
Keystore: raw key material derivation at hierarchical paths.

The SDK never stores or handles the user's seed directly. Secret derivation
only asks a keystore for "the key material at path P". Any object with a
`derive_at_path(path) -> bytes` method can be used (hardware wallet bridge,
remote signer, browser extension...).

Bip32Keystore is the reference implementation: BIP32 private-key derivation
over secp256k1, seeded from raw entropy or a BIP39 mnemonic phrase.

Paths use the usual notation: m/28784'/1'/0'/1'/7' (apostrophe or "h" marks a
hardened index).
"""

from __future__ import annotations

import hashlib
import hmac
import unicodedata
from typing import Protocol

import ecdsa

from privacy_pools.core.errors import PrivacyPoolsError

HARDENED_OFFSET = 0x80000000

# secp256k1 group order
SECP256K1_N = ecdsa.SECP256k1.order

_BIP32_SEED_KEY = b"Bitcoin seed"
_BIP39_ITERATIONS = 2048


class KeystoreError(PrivacyPoolsError):
    """Raised when the keystore refuses or fails to derive a path."""
    pass


class Keystore(Protocol):
    """Anything that can derive deterministic raw key material at a path."""

    def derive_at_path(self, path: str) -> bytes: ...


def parse_path(path: str) -> tuple[int, ...]:
    """
    Parse a derivation path into child indices.

    Args:
        path: e.g. "m/28784'/1'/0'" ("m" alone is the master node).

    Returns:
        tuple of child indices, hardened indices offset by 2^31.

    Raises:
        KeystoreError: if the path is malformed.
    """
    parts = path.strip().split("/")
    if not parts or parts[0] != "m":
        raise KeystoreError(f"Derivation path must start with 'm': {path!r}")

    indices: list[int] = []
    for part in parts[1:]:
        hardened = part.endswith(("'", "h", "H"))
        raw = part[:-1] if hardened else part
        if not raw.isdigit():
            raise KeystoreError(f"Invalid path component {part!r} in {path!r}")
        index = int(raw)
        if index >= HARDENED_OFFSET:
            raise KeystoreError(f"Path component {part!r} out of range in {path!r}")
        indices.append(index + HARDENED_OFFSET if hardened else index)
    return tuple(indices)


def format_path(indices: tuple[int, ...]) -> str:
    """Inverse of parse_path (hardened indices rendered with an apostrophe)."""
    parts = ["m"]
    for index in indices:
        if index >= HARDENED_OFFSET:
            parts.append(f"{index - HARDENED_OFFSET}'")
        else:
            parts.append(str(index))
    return "/".join(parts)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """BIP39 seed stretch: PBKDF2-HMAC-SHA512(mnemonic, "mnemonic" + passphrase, 2048)."""
    normalized = unicodedata.normalize("NFKD", " ".join(mnemonic.split()))
    salt = unicodedata.normalize("NFKD", "mnemonic" + passphrase)
    return hashlib.pbkdf2_hmac(
        "sha512", normalized.encode("utf-8"), salt.encode("utf-8"), _BIP39_ITERATIONS
    )


def _compressed_public_key(private_key: int) -> bytes:
    signing_key = ecdsa.SigningKey.from_secret_exponent(private_key, curve=ecdsa.SECP256k1)
    return signing_key.get_verifying_key().to_string("compressed")


class Bip32Keystore:
    """
    BIP32 keystore over secp256k1.

    derive_at_path() returns the 32-byte private key of the node at `path`.
    Intermediate nodes are cached, so scanning many sibling paths only pays
    for the last derivation step.

    Usage:
        keystore = Bip32Keystore.from_mnemonic("abandon abandon ... about")
        key = keystore.derive_at_path("m/28784'/1'/0'/0'/0'")

        # Restrict which subtree callers may touch
        keystore = Bip32Keystore.from_seed(seed, allowed_prefix="m/28784'/1'")
    """

    def __init__(self, master_key: int, chain_code: bytes, allowed_prefix: str | None = None) -> None:
        if not 0 < master_key < SECP256K1_N:
            raise KeystoreError("Master key is outside the secp256k1 scalar range")
        if len(chain_code) != 32:
            raise KeystoreError(f"Chain code must be 32 bytes, got {len(chain_code)}")
        self._allowed_prefix = parse_path(allowed_prefix) if allowed_prefix else None
        self._nodes: dict[tuple[int, ...], tuple[int, bytes]] = {(): (master_key, chain_code)}

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_seed(cls, seed: bytes, allowed_prefix: str | None = None) -> Bip32Keystore:
        """Create the master node from 16-64 bytes of seed entropy."""
        if not 16 <= len(seed) <= 64:
            raise KeystoreError(f"Seed must be 16-64 bytes, got {len(seed)}")
        digest = hmac.new(_BIP32_SEED_KEY, seed, hashlib.sha512).digest()
        return cls(int.from_bytes(digest[:32], "big"), digest[32:], allowed_prefix=allowed_prefix)

    @classmethod
    def from_mnemonic(
        cls, mnemonic: str, passphrase: str = "", allowed_prefix: str | None = None
    ) -> Bip32Keystore:
        """Create the master node from a BIP39 mnemonic phrase (wordlist not checked)."""
        if not mnemonic.strip():
            raise KeystoreError("Mnemonic must not be empty")
        return cls.from_seed(mnemonic_to_seed(mnemonic, passphrase), allowed_prefix=allowed_prefix)

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def derive_at_path(self, path: str) -> bytes:
        """
        Derive the private key at `path`.

        Raises:
            KeystoreError: malformed path, path outside the allowed prefix,
                           or (with negligible probability) an invalid child.
        """
        indices = parse_path(path)
        if self._allowed_prefix is not None and indices[: len(self._allowed_prefix)] != self._allowed_prefix:
            raise KeystoreError(
                f"Path {path!r} is outside the allowed subtree {format_path(self._allowed_prefix)!r}"
            )
        key, _ = self._node(indices)
        return key.to_bytes(32, "big")

    def _node(self, indices: tuple[int, ...]) -> tuple[int, bytes]:
        cached = self._nodes.get(indices)
        if cached is not None:
            return cached
        parent_key, parent_chain = self._node(indices[:-1])
        node = self._child(parent_key, parent_chain, indices[-1])
        self._nodes[indices] = node
        return node

    @staticmethod
    def _child(parent_key: int, parent_chain: bytes, index: int) -> tuple[int, bytes]:
        if index >= HARDENED_OFFSET:
            data = b"\x00" + parent_key.to_bytes(32, "big")
        else:
            data = _compressed_public_key(parent_key)
        data += index.to_bytes(4, "big")

        digest = hmac.new(parent_chain, data, hashlib.sha512).digest()
        tweak = int.from_bytes(digest[:32], "big")
        child_key = (tweak + parent_key) % SECP256K1_N
        if tweak >= SECP256K1_N or child_key == 0:
            raise KeystoreError(f"Invalid child at index {index}; use the next index")
        return child_key, digest[32:]

    def __repr__(self) -> str:
        prefix = format_path(self._allowed_prefix) if self._allowed_prefix is not None else None
        return f"Bip32Keystore(allowed_prefix={prefix!r})"

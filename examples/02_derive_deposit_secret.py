#!/usr/bin/env python3
"""
Example 02: Derive deposit secrets.

Shows the precommitments an account would use for its first deposits on a
chain. Everything is derived from the mnemonic; nothing touches the network.

Usage:
    python examples/02_derive_deposit_secret.py
    PRIVACY_POOLS_MNEMONIC="word1 word2 ..." python examples/02_derive_deposit_secret.py
"""

import os

from privacy_pools import Bip32Keystore, SecretDeriver
from privacy_pools.crypto.derivation import PRIVACY_POOLS_PATH

# BIP39 test mnemonic; never hold funds with it
DEFAULT_MNEMONIC = " ".join(["abandon"] * 11 + ["about"])
CHAIN_ID = 11155111
ENTRYPOINT = 0x6818809EEFCE719E480A7526D76BD3E561526B46

mnemonic = os.environ.get("PRIVACY_POOLS_MNEMONIC", DEFAULT_MNEMONIC)

# Restrict the keystore to the protocol subtree
keystore = Bip32Keystore.from_mnemonic(mnemonic, allowed_prefix=PRIVACY_POOLS_PATH)
deriver = SecretDeriver(keystore)

print(f"=== Deposit secrets on chain {CHAIN_ID} ===")
for index in range(3):
    secret = deriver.derive_deposit(CHAIN_ID, ENTRYPOINT, index)
    print(f"deposit {index}: precommitment 0x{secret.precommitment:064x}")

print("\n=== Change notes of deposit 0 ===")
for withdraw_index in range(1, 3):
    secret = deriver.derive(CHAIN_ID, ENTRYPOINT, 0, withdraw_index)
    print(f"withdrawal {withdraw_index}: precommitment 0x{secret.precommitment:064x}")

import pytest

from fakes import CHAIN_ID, ENTRYPOINT, ETH, POOL, SEED, ChainBuilder
from privacy_pools.core.keystore import Bip32Keystore
from privacy_pools.crypto.derivation import SecretDeriver
from privacy_pools.state.store import ChainKey, StateStore


@pytest.fixture
def keystore():
    return Bip32Keystore.from_seed(SEED)


@pytest.fixture
def deriver(keystore):
    return SecretDeriver(keystore)


@pytest.fixture
def chain(deriver):
    """A chain with one registered ETH pool."""
    builder = ChainBuilder(deriver)
    builder.register_pool(POOL, ETH)
    return builder


@pytest.fixture
def store():
    return StateStore(ChainKey(CHAIN_ID, ENTRYPOINT))

"""
Shared pytest fixtures for the key chain test suite.
"""

import threading

import pytest

from keychain_core.crypter import KeyCrypterScrypt
from keychain_core.eckey import ECKey
from keychain_core.keychain import BasicKeyChain

# Real scrypt, just cheap enough to run hundreds of times.
FAST_SCRYPT_N = 1024


class RecordingListener:
    """Collects every on_keys_added batch it receives."""

    def __init__(self):
        self.batches: list[list[ECKey]] = []
        self.called = threading.Event()

    def on_keys_added(self, keys):
        self.batches.append(list(keys))
        self.called.set()


@pytest.fixture
def crypter():
    """Scrypt crypter with a low cost parameter."""
    return KeyCrypterScrypt(n=FAST_SCRYPT_N)


@pytest.fixture
def aes_key(crypter):
    return crypter.derive_key("pw")


@pytest.fixture
def chain():
    """Fresh, empty plaintext chain."""
    return BasicKeyChain()


@pytest.fixture
def keys():
    """Three distinct keys with distinct creation times."""
    return [ECKey.generate(creation_time_seconds=1_600_000_000 + i * 60) for i in range(3)]


@pytest.fixture
def populated_chain(chain, keys):
    chain.import_keys(keys)
    return chain


@pytest.fixture
def encrypted_chain(populated_chain, crypter, aes_key):
    return populated_chain.to_encrypted_with_key(crypter, aes_key)


@pytest.fixture
def listener():
    return RecordingListener()

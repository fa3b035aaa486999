"""
Tests for keychain_core.keychain: the dual-indexed key registry.

Covers:
  - Lookup by public key and by public key hash
  - Import de-duplication and encryption-state checks
  - Removal, including a broken index pair
  - get_key auto-generation and its notification
  - Earliest creation time
  - Bloom filter export
  - Concurrent imports
"""

import threading

import pytest

from keychain_core.bloom import BloomFilter
from keychain_core.eckey import ECKey
from keychain_core.errors import (
    EncryptionMismatchError,
    InconsistentStateError,
    InvalidStateError,
)
from keychain_core.keychain import UNKNOWN_CREATION_TIME, BasicKeyChain, KeyPurpose
from keychain_core.listeners import SAME_THREAD


class TestLookup:
    def test_find_by_hash_and_pubkey(self, populated_chain, keys):
        for key in keys:
            assert populated_chain.find_key_from_pub_hash(key.pub_key_hash) is key
            assert populated_chain.find_key_from_pub_key(key.pub_key) is key
            assert populated_chain.has_key(key)

    def test_absent_key(self, populated_chain):
        other = ECKey.generate()
        assert populated_chain.find_key_from_pub_hash(other.pub_key_hash) is None
        assert populated_chain.find_key_from_pub_key(other.pub_key) is None
        assert not populated_chain.has_key(other)

    def test_get_keys_in_insertion_order(self, populated_chain, keys):
        assert populated_chain.get_keys() == keys

    def test_get_keys_is_a_copy(self, populated_chain):
        populated_chain.get_keys().clear()
        assert populated_chain.num_keys() == 3


class TestImport:
    def test_import_returns_added(self, chain, keys):
        assert chain.import_keys(keys) == keys
        assert chain.num_keys() == 3
        assert len(chain) == 3

    def test_duplicates_skipped(self, populated_chain, keys):
        extra = ECKey.generate()
        assert populated_chain.import_keys(keys + [extra]) == [extra]
        assert populated_chain.num_keys() == 4

    def test_import_single(self, chain):
        key = ECKey.generate()
        assert chain.import_key(key) is True
        assert chain.import_key(key) is False

    def test_encrypted_key_into_plain_chain(self, chain, crypter, aes_key):
        enc = ECKey.generate().encrypt(crypter, aes_key)
        plain = ECKey.generate()
        with pytest.raises(EncryptionMismatchError):
            chain.import_keys([plain, enc])
        # nothing imported, not even the valid key
        assert chain.num_keys() == 0

    def test_plain_key_into_encrypted_chain(self, encrypted_chain):
        before = encrypted_chain.get_keys()
        with pytest.raises(EncryptionMismatchError):
            encrypted_chain.import_key(ECKey.generate())
        assert encrypted_chain.get_keys() == before

    def test_import_notifies_once_per_batch(self, chain, keys, listener):
        chain.add_event_listener(listener, SAME_THREAD)
        chain.import_keys(keys)
        chain.import_keys(keys)  # all duplicates: no notification
        assert listener.batches == [keys]


class TestRemove:
    def test_remove_from_both_indexes(self, populated_chain, keys):
        key = keys[1]
        assert populated_chain.remove_key(key) is True
        assert populated_chain.find_key_from_pub_hash(key.pub_key_hash) is None
        assert populated_chain.find_key_from_pub_key(key.pub_key) is None
        assert populated_chain.num_keys() == 2

    def test_remove_absent(self, populated_chain):
        assert populated_chain.remove_key(ECKey.generate()) is False

    def test_remove_from_one_index_only_is_inconsistent(self, populated_chain, keys):
        del populated_chain._hash_to_keys[keys[0].pub_key_hash]
        with pytest.raises(InconsistentStateError):
            populated_chain.remove_key(keys[0])


class TestGetKey:
    def test_fresh_chain_generates_one_key(self, chain, listener):
        chain.add_event_listener(listener, SAME_THREAD)
        key = chain.get_key(KeyPurpose.RECEIVE_FUNDS)
        assert chain.num_keys() == 1
        assert listener.batches == [[key]]
        assert key.has_private_key

    def test_same_key_every_time(self, chain):
        first = chain.get_key(KeyPurpose.RECEIVE_FUNDS)
        assert chain.get_key(KeyPurpose.CHANGE) is first
        assert chain.get_key(KeyPurpose.AUTHENTICATION) is first
        assert chain.num_keys() == 1

    def test_returns_first_inserted(self, populated_chain, keys):
        assert populated_chain.get_key(KeyPurpose.REFUND) is keys[0]

    def test_first_inserted_survives_later_imports(self, populated_chain, keys):
        populated_chain.import_keys([ECKey.generate() for _ in range(5)])
        assert populated_chain.get_key() is keys[0]

    def test_empty_encrypted_chain_refuses(self, crypter):
        with pytest.raises(InvalidStateError):
            BasicKeyChain(crypter).get_key(KeyPurpose.RECEIVE_FUNDS)


class TestCreationTime:
    def test_empty_chain_is_unknown(self, chain):
        assert chain.get_earliest_key_creation_time() == UNKNOWN_CREATION_TIME

    def test_minimum(self, chain):
        chain.import_keys([
            ECKey.generate(creation_time_seconds=500),
            ECKey.generate(creation_time_seconds=100),
            ECKey.generate(creation_time_seconds=300),
        ])
        assert chain.get_earliest_key_creation_time() == 100


class TestFilter:
    def test_entry_count(self, populated_chain):
        assert populated_chain.num_bloom_filter_entries() == 6

    def test_filter_contains_all_keys_and_hashes(self, populated_chain, keys):
        f = populated_chain.get_filter(
            populated_chain.num_bloom_filter_entries(), 0.001, 12345,
        )
        assert isinstance(f, BloomFilter)
        for key in keys:
            assert f.contains(key.pub_key)
            assert f.contains(key.pub_key_hash)
        assert f.tweak == 12345

    def test_filter_does_not_mutate(self, populated_chain, keys):
        populated_chain.get_filter(6, 0.001, 1)
        assert populated_chain.get_keys() == keys

    def test_encrypted_chain_filter(self, encrypted_chain, keys):
        f = encrypted_chain.get_filter(6, 0.001, 9)
        assert all(f.contains(k.pub_key_hash) for k in keys)


class TestConcurrency:
    def test_concurrent_imports(self, chain):
        batches = [[ECKey.generate() for _ in range(10)] for _ in range(4)]
        errors = []

        def importer(batch):
            try:
                for key in batch:
                    chain.import_key(key)
            except Exception as e:
                errors.append(e)

        def reader():
            try:
                for _ in range(200):
                    for key in chain.get_keys():
                        assert chain.find_key_from_pub_hash(key.pub_key_hash) is key
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=importer, args=(b,)) for b in batches]
        threads.append(threading.Thread(target=reader))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert chain.num_keys() == 40
        assert len(chain._hash_to_keys) == len(chain._pubkey_to_keys) == 40

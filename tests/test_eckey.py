"""Tests for keychain_core.eckey: immutable keys and their encryption."""

import time

import pytest

from keychain_core.crypter import EncryptedData, EncryptionType, KeyCrypterScrypt
from keychain_core.crypto_utils import compress_public_key, hash160, sha256
from keychain_core.eckey import ECKey
from keychain_core.errors import KeyCrypterError

from conftest import FAST_SCRYPT_N


class TestConstruction:
    def test_generate(self):
        before = int(time.time())
        key = ECKey.generate()
        assert len(key.secret_bytes) == 32
        assert len(key.pub_key) == 65
        assert key.pub_key_hash == hash160(key.pub_key)
        assert key.creation_time_seconds >= before
        assert not key.is_encrypted
        assert not key.is_watching
        assert key.encryption_type is EncryptionType.UNENCRYPTED

    def test_from_private(self):
        key = ECKey.generate()
        again = ECKey.from_private(key.secret_bytes)
        assert again.pub_key == key.pub_key

    def test_from_private_compressed(self):
        key = ECKey.generate()
        compressed = ECKey.from_private(key.secret_bytes, compressed=True)
        assert compressed.is_compressed
        assert compressed.pub_key == compress_public_key(key.pub_key)
        assert compressed.pub_key_hash != key.pub_key_hash

    def test_public_only_is_watching(self):
        key = ECKey.from_public_only(ECKey.generate().pub_key)
        assert key.is_watching
        assert key.secret_bytes is None
        assert not key.has_private_key

    def test_public_key_required(self):
        with pytest.raises(ValueError):
            ECKey(b"")

    def test_not_both_clear_and_encrypted(self, crypter):
        data = EncryptedData(b"\x00" * 16, b"\x00" * 48)
        with pytest.raises(ValueError):
            ECKey(b"\x04" + b"\x01" * 64, priv=b"\x01" * 32, encrypted_data=data,
                  key_crypter=crypter)

    def test_equality(self):
        key = ECKey.generate(creation_time_seconds=100)
        same = ECKey.from_private_and_precalculated_public(
            key.secret_bytes, key.pub_key, creation_time_seconds=100,
        )
        assert key == same
        assert hash(key) == hash(same)
        assert key != ECKey.generate(creation_time_seconds=100)


class TestEncryption:
    def test_encrypt_produces_new_key(self, crypter, aes_key):
        key = ECKey.generate()
        enc = key.encrypt(crypter, aes_key)
        assert enc is not key
        assert enc.is_encrypted
        assert enc.secret_bytes is None
        assert enc.pub_key == key.pub_key
        assert enc.creation_time_seconds == key.creation_time_seconds
        assert enc.key_crypter is crypter
        assert enc.encryption_type is EncryptionType.ENCRYPTED_SCRYPT_AES
        # original untouched
        assert key.secret_bytes is not None and not key.is_encrypted

    def test_decrypt_restores_key(self, crypter, aes_key):
        key = ECKey.generate()
        assert key.encrypt(crypter, aes_key).decrypt(crypter, aes_key) == key

    def test_decrypt_wrong_key_raises(self, crypter, aes_key):
        enc = ECKey.generate().encrypt(crypter, aes_key)
        with pytest.raises(KeyCrypterError):
            enc.decrypt(crypter, crypter.derive_key("not the password"))

    def test_decrypt_with_other_crypter_raises(self, crypter, aes_key):
        enc = ECKey.generate().encrypt(crypter, aes_key)
        other = KeyCrypterScrypt(n=FAST_SCRYPT_N)
        with pytest.raises(KeyCrypterError):
            enc.decrypt(other, aes_key)

    def test_decrypt_plain_key_raises(self, crypter, aes_key):
        with pytest.raises(KeyCrypterError):
            ECKey.generate().decrypt(crypter, aes_key)

    def test_encrypt_watching_key_raises(self, crypter, aes_key):
        watching = ECKey.from_public_only(ECKey.generate().pub_key)
        with pytest.raises(KeyCrypterError):
            watching.encrypt(crypter, aes_key)

    def test_encryption_is_reversible(self, crypter, aes_key):
        key = ECKey.generate()
        enc = key.encrypt(crypter, aes_key)
        assert ECKey.encryption_is_reversible(key, enc, crypter, aes_key)
        assert not ECKey.encryption_is_reversible(
            key, enc, crypter, crypter.derive_key("other"),
        )

    def test_compressed_key_roundtrip(self, crypter, aes_key):
        key = ECKey.from_private(ECKey.generate().secret_bytes, compressed=True)
        assert key.encrypt(crypter, aes_key).decrypt(crypter, aes_key) == key


class TestSigning:
    def test_sign_verify(self):
        key = ECKey.generate()
        digest = sha256(b"pay alice")
        assert key.verify(digest, key.sign(digest))

    def test_encrypted_key_needs_aes_key(self, crypter, aes_key):
        key = ECKey.generate()
        enc = key.encrypt(crypter, aes_key)
        digest = sha256(b"pay bob")
        with pytest.raises(KeyCrypterError):
            enc.sign(digest)
        assert key.verify(digest, enc.sign(digest, aes_key))

    def test_watching_key_cannot_sign(self):
        watching = ECKey.from_public_only(ECKey.generate().pub_key)
        with pytest.raises(ValueError):
            watching.sign(sha256(b"x"))

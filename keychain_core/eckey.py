"""
Immutable secp256k1 key as held by the key chain.

An ECKey always knows its public key.  Its private key is in exactly one of
three states: present in the clear, present only as ``EncryptedData``
(readable through ``decrypt`` with the right AES key), or absent (a watching
key).  ``encrypt`` / ``decrypt`` return new keys; a key never changes after
construction.
"""

from __future__ import annotations

import logging
import time

from keychain_core.crypter import EncryptedData, EncryptionType, KeyCrypter
from keychain_core.crypto_utils import (
    COMPRESSED_PUBLIC_KEY_LENGTH,
    generate_keypair,
    hash160,
    public_key_from_private,
    sign,
    verify,
)
from keychain_core.errors import KeyCrypterError

logger = logging.getLogger("keychain_eckey")


class ECKey:
    """secp256k1 key-pair, possibly encrypted or public-only."""

    __slots__ = (
        "_priv", "_pub", "_pub_hash", "_encrypted_data", "_key_crypter",
        "_creation_time_seconds",
    )

    def __init__(
        self,
        pub: bytes,
        priv: bytes | None = None,
        encrypted_data: EncryptedData | None = None,
        key_crypter: KeyCrypter | None = None,
        creation_time_seconds: int = 0,
    ):
        if not pub:
            raise ValueError("Public key is required")
        if priv is not None and encrypted_data is not None:
            raise ValueError("A key holds either clear or encrypted private bytes, not both")
        if encrypted_data is not None and key_crypter is None:
            raise ValueError("Encrypted keys need the crypter that encrypted them")
        self._pub = bytes(pub)
        self._pub_hash = hash160(self._pub)
        self._priv = bytes(priv) if priv is not None else None
        self._encrypted_data = encrypted_data
        self._key_crypter = key_crypter if encrypted_data is not None else None
        self._creation_time_seconds = int(creation_time_seconds)

    # ---- factory methods ----

    @classmethod
    def generate(cls, creation_time_seconds: int | None = None) -> ECKey:
        """Create a brand-new random key, stamped with the current time."""
        priv, pub = generate_keypair()
        if creation_time_seconds is None:
            creation_time_seconds = int(time.time())
        return cls(pub, priv=priv, creation_time_seconds=creation_time_seconds)

    @classmethod
    def from_private(cls, priv: bytes, compressed: bool = False,
                     creation_time_seconds: int = 0) -> ECKey:
        pub = public_key_from_private(priv, compressed=compressed)
        return cls(pub, priv=priv, creation_time_seconds=creation_time_seconds)

    @classmethod
    def from_private_and_precalculated_public(cls, priv: bytes, pub: bytes,
                                              creation_time_seconds: int = 0) -> ECKey:
        """Skip the (slow) public key derivation when the caller already has it."""
        return cls(pub, priv=priv, creation_time_seconds=creation_time_seconds)

    @classmethod
    def from_public_only(cls, pub: bytes, creation_time_seconds: int = 0) -> ECKey:
        return cls(pub, creation_time_seconds=creation_time_seconds)

    @classmethod
    def from_encrypted(cls, encrypted_data: EncryptedData, key_crypter: KeyCrypter,
                       pub: bytes, creation_time_seconds: int = 0) -> ECKey:
        return cls(pub, encrypted_data=encrypted_data, key_crypter=key_crypter,
                   creation_time_seconds=creation_time_seconds)

    # ---- accessors ----

    @property
    def pub_key(self) -> bytes:
        return self._pub

    @property
    def pub_key_hash(self) -> bytes:
        return self._pub_hash

    @property
    def secret_bytes(self) -> bytes | None:
        """Clear private key bytes, or None if encrypted / watching."""
        return self._priv

    @property
    def encrypted_data(self) -> EncryptedData | None:
        return self._encrypted_data

    @property
    def key_crypter(self) -> KeyCrypter | None:
        return self._key_crypter

    @property
    def creation_time_seconds(self) -> int:
        return self._creation_time_seconds

    @property
    def is_encrypted(self) -> bool:
        return self._encrypted_data is not None

    @property
    def has_private_key(self) -> bool:
        return self._priv is not None

    @property
    def is_watching(self) -> bool:
        return self._priv is None and self._encrypted_data is None

    @property
    def is_compressed(self) -> bool:
        return len(self._pub) == COMPRESSED_PUBLIC_KEY_LENGTH

    @property
    def encryption_type(self) -> EncryptionType:
        if self._key_crypter is None:
            return EncryptionType.UNENCRYPTED
        return self._key_crypter.encryption_type

    # ---- encryption ----

    def encrypt(self, key_crypter: KeyCrypter, aes_key: bytes) -> ECKey:
        """Return an encrypted copy of this key."""
        if self._priv is None:
            raise KeyCrypterError("Cannot encrypt a key without a private key")
        encrypted = key_crypter.encrypt(self._priv, aes_key)
        return ECKey.from_encrypted(encrypted, key_crypter, self._pub,
                                    creation_time_seconds=self._creation_time_seconds)

    def decrypt(self, key_crypter: KeyCrypter, aes_key: bytes) -> ECKey:
        """Return a clear copy of this key.

        Raises KeyCrypterError if the key is not encrypted, was encrypted by a
        different crypter, or *aes_key* does not reproduce this public key.
        """
        if self._encrypted_data is None:
            raise KeyCrypterError("This key is not encrypted")
        if self._key_crypter is not None and self._key_crypter != key_crypter:
            raise KeyCrypterError("The key crypter differs from the one that encrypted this key")
        priv = key_crypter.decrypt(self._encrypted_data, aes_key)
        try:
            pub = public_key_from_private(priv, compressed=self.is_compressed)
        except ValueError as exc:
            raise KeyCrypterError("Provided AES key is wrong") from exc
        if pub != self._pub:
            raise KeyCrypterError("Provided AES key is wrong")
        return ECKey(pub, priv=priv, creation_time_seconds=self._creation_time_seconds)

    @staticmethod
    def encryption_is_reversible(original: ECKey, encrypted: ECKey,
                                 key_crypter: KeyCrypter, aes_key: bytes) -> bool:
        """Check that *encrypted* decrypts back to *original*'s private key."""
        try:
            reborn = encrypted.decrypt(key_crypter, aes_key)
        except KeyCrypterError as exc:
            logger.error(f"Key {original.pub_key_hash.hex()} failed to decrypt: {exc}")
            return False
        if reborn.secret_bytes != original.secret_bytes:
            logger.error(f"Key {original.pub_key_hash.hex()} decrypted to different bytes")
            return False
        return True

    # ---- signing ----

    def sign(self, digest: bytes, aes_key: bytes | None = None) -> bytes:
        """Sign a 32-byte digest, decrypting first when the key is encrypted."""
        key = self
        if self.is_encrypted:
            if aes_key is None:
                raise KeyCrypterError("This key is encrypted but no AES key was supplied")
            key = self.decrypt(self._key_crypter, aes_key)
        if key.secret_bytes is None:
            raise ValueError("Watching keys cannot sign")
        return sign(key.secret_bytes, digest)

    def verify(self, digest: bytes, signature: bytes) -> bool:
        return verify(self._pub, digest, signature)

    # ---- dunder ----

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ECKey):
            return NotImplemented
        return (
            self._pub == other._pub
            and self._priv == other._priv
            and self._encrypted_data == other._encrypted_data
            and self._creation_time_seconds == other._creation_time_seconds
        )

    def __hash__(self) -> int:
        return hash(self._pub)

    def __repr__(self) -> str:
        if self.is_encrypted:
            state = "encrypted"
        elif self.is_watching:
            state = "watching"
        else:
            state = "private"
        return f"ECKey(pub={self._pub.hex()}, {state}, created={self._creation_time_seconds})"

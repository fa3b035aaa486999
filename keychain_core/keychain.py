"""
BasicKeyChain: the simplest possible key chain.

Keys can be imported into it and it acts as a dumb bag of keys, indexed by
both public key and public key hash.  Left to its own devices it always
hands out the same (first) key, generating one when the chain is empty.

Encryption never happens in place.  ``to_encrypted`` / ``to_decrypted``
build a complete new chain in the other state or raise, leaving the source
chain exactly as it was, so a failed attempt can simply be retried.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from enum import Enum
from typing import Iterable

from keychain_core.bloom import BloomFilter
from keychain_core.crypter import KeyCrypter, KeyCrypterScrypt, ScryptParameters
from keychain_core.eckey import ECKey
from keychain_core.errors import (
    EncryptionMismatchError,
    EncryptionVerificationError,
    InconsistentStateError,
    InvalidStateError,
    KeyCrypterError,
    NonEmptyTargetError,
    UnreadableDataError,
    WrongPasswordError,
)
from keychain_core.guard import ChainLock
from keychain_core.listeners import EventNotifier, KeyChainEventListener
from keychain_core.serialization import KeyRecord, deserialize_key, serialize_keys

logger = logging.getLogger("keychain_chain")

# Returned by get_earliest_key_creation_time() for an empty chain.
UNKNOWN_CREATION_TIME = 2**63 - 1


class KeyPurpose(Enum):
    RECEIVE_FUNDS = "receive_funds"
    CHANGE = "change"
    REFUND = "refund"
    AUTHENTICATION = "authentication"


class BasicKeyChain:
    """Bag of imported keys with an all-or-nothing encryption lifecycle."""

    def __init__(self, key_crypter: KeyCrypter | None = None):
        self._lock = ChainLock("BasicKeyChain")
        self._key_crypter = key_crypter
        # insertion ordered; both always hold the same keys
        self._hash_to_keys: dict[bytes, ECKey] = {}
        self._pubkey_to_keys: dict[bytes, ECKey] = {}
        self._notifier = EventNotifier(self._lock)

    @property
    def key_crypter(self) -> KeyCrypter | None:
        """The crypter in use, or None if the chain is not encrypted."""
        with self._lock:
            return self._key_crypter

    @property
    def is_encrypted(self) -> bool:
        with self._lock:
            return self._key_crypter is not None

    # ---- lookup / mutation ----

    def get_key(self, purpose: KeyPurpose = KeyPurpose.RECEIVE_FUNDS) -> ECKey:
        """Return the first key, creating one if a plaintext chain is empty.

        *purpose* is accepted for interface compatibility and ignored: this
        chain always returns the same key.
        """
        with self._lock:
            if not self._hash_to_keys:
                if self._key_crypter is not None:
                    # a generated key would need a password we do not have
                    raise InvalidStateError("Cannot generate a key in an empty encrypted chain")
                key = ECKey.generate()
                self._import_key_locked(key)
                logger.debug(f"Generated key {key.pub_key_hash.hex()} for empty chain")
                self._notifier.queue_on_keys_added([key])
            return next(iter(self._hash_to_keys.values()))

    def get_keys(self) -> list[ECKey]:
        """Return a copy of the keys, in insertion order."""
        with self._lock:
            return list(self._hash_to_keys.values())

    def import_keys(self, keys: Iterable[ECKey]) -> list[ECKey]:
        """Import *keys*, skipping ones already present.

        Every key is checked before any is imported, so an encryption
        mismatch leaves the chain unchanged.  Returns the keys actually added.
        """
        keys = list(keys)
        with self._lock:
            for key in keys:
                self._check_key_encryption_state_matches(key)
            added: list[ECKey] = []
            for key in keys:
                if key.pub_key in self._pubkey_to_keys:
                    continue
                self._import_key_locked(key)
                added.append(key)
            if added:
                logger.debug(f"Imported {len(added)} of {len(keys)} keys")
                self._notifier.queue_on_keys_added(added)
            return added

    def import_key(self, key: ECKey) -> bool:
        return bool(self.import_keys([key]))

    def _check_key_encryption_state_matches(self, key: ECKey) -> None:
        if self._key_crypter is None and key.is_encrypted:
            raise EncryptionMismatchError("Key is encrypted but chain is not")
        if self._key_crypter is not None and not key.is_encrypted:
            raise EncryptionMismatchError("Key is not encrypted but chain is")

    def _import_key_locked(self, key: ECKey) -> None:
        self._pubkey_to_keys[key.pub_key] = key
        self._hash_to_keys[key.pub_key_hash] = key

    def find_key_from_pub_hash(self, pub_key_hash: bytes) -> ECKey | None:
        with self._lock:
            return self._hash_to_keys.get(bytes(pub_key_hash))

    def find_key_from_pub_key(self, pub_key: bytes) -> ECKey | None:
        with self._lock:
            return self._pubkey_to_keys.get(bytes(pub_key))

    def has_key(self, key: ECKey) -> bool:
        return self.find_key_from_pub_key(key.pub_key) is not None

    def num_keys(self) -> int:
        with self._lock:
            return len(self._pubkey_to_keys)

    def __len__(self) -> int:
        return self.num_keys()

    def remove_key(self, key: ECKey) -> bool:
        """Remove *key* from the chain.

        Be very careful with this: losing a private key destroys the money
        associated with it.  Returns whether the key was present.
        """
        with self._lock:
            a = self._hash_to_keys.pop(key.pub_key_hash, None) is not None
            b = self._pubkey_to_keys.pop(key.pub_key, None) is not None
            if a != b:
                raise InconsistentStateError(
                    f"Key {key.pub_key_hash.hex()} was present in only one index"
                )
            if a:
                logger.debug(f"Removed key {key.pub_key_hash.hex()}")
            return a

    def get_earliest_key_creation_time(self) -> int:
        """Earliest creation time in seconds, or UNKNOWN_CREATION_TIME if empty."""
        with self._lock:
            return min(
                (key.creation_time_seconds for key in self._hash_to_keys.values()),
                default=UNKNOWN_CREATION_TIME,
            )

    # ---- serialisation ----

    def serialize_to_records(self) -> list[KeyRecord]:
        with self._lock:
            return serialize_keys(self._hash_to_keys.values())

    @classmethod
    def from_records_unencrypted(cls, records: Iterable[KeyRecord]) -> BasicKeyChain:
        """New plaintext chain holding the recognised keys in *records*."""
        chain = cls()
        chain.deserialize_from_records(records)
        return chain

    @classmethod
    def from_records_encrypted(cls, records: Iterable[KeyRecord],
                               key_crypter: KeyCrypter) -> BasicKeyChain:
        """New encrypted chain bound to *key_crypter* holding the keys in *records*."""
        if key_crypter is None:
            raise ValueError("key_crypter is required")
        chain = cls(key_crypter)
        chain.deserialize_from_records(records)
        return chain

    def deserialize_from_records(self, records: Iterable[KeyRecord]) -> None:
        """Populate this empty chain from *records*; unknown record types are skipped.

        Every record is decoded and checked before any key is added, so a
        malformed record leaves the chain empty.
        """
        with self._lock:
            if self._hash_to_keys:
                raise NonEmptyTargetError("Tried to deserialize into a non-empty chain")
            decoded: list[ECKey] = []
            skipped = 0
            for record in records:
                key = deserialize_key(record, self._key_crypter)
                if key is None:
                    skipped += 1
                    continue
                try:
                    self._check_key_encryption_state_matches(key)
                except EncryptionMismatchError as exc:
                    raise UnreadableDataError(str(exc)) from exc
                decoded.append(key)
            for key in decoded:
                self._import_key_locked(key)
            if skipped:
                logger.warning(f"Skipped {skipped} key records of unknown type")

    # ---- event listeners ----

    def add_event_listener(self, listener: KeyChainEventListener,
                           executor: Executor | None = None) -> None:
        """Register *listener*; callbacks run on *executor* (default: the user thread)."""
        self._notifier.add(listener, executor)

    def remove_event_listener(self, listener: KeyChainEventListener) -> bool:
        return self._notifier.remove(listener)

    # ---- encryption ----

    def to_encrypted(self, password: str,
                     parameters: ScryptParameters | None = None) -> BasicKeyChain:
        """Encrypt with a fresh scrypt crypter derived from *password*."""
        if not password:
            raise ValueError("Password must not be empty")
        crypter = KeyCrypterScrypt(parameters)
        return self.to_encrypted_with_key(crypter, crypter.derive_key(password))

    def to_encrypted_with_key(self, key_crypter: KeyCrypter, aes_key: bytes) -> BasicKeyChain:
        """Return a new chain holding an encrypted copy of every key.

        Each encrypted key is decrypted again before it is accepted; if any
        key fails that check, or cannot be encrypted at all (a watching key
        has no private key), EncryptionVerificationError is raised, no chain
        is returned and this chain is unchanged.
        """
        if key_crypter is None:
            raise ValueError("key_crypter is required")
        with self._lock:
            if self._key_crypter is not None:
                raise InvalidStateError("Key chain is already encrypted")
            encrypted = BasicKeyChain(key_crypter)
            for key in self._hash_to_keys.values():
                try:
                    encrypted_key = key.encrypt(key_crypter, aes_key)
                except KeyCrypterError as exc:
                    raise EncryptionVerificationError(
                        f"The key {key.pub_key_hash.hex()} could not be encrypted "
                        f"so aborting wallet encryption: {exc}"
                    ) from exc
                # losing the only copy of a private key is unrecoverable
                if not ECKey.encryption_is_reversible(key, encrypted_key, key_crypter, aes_key):
                    raise EncryptionVerificationError(
                        f"The key {key.pub_key_hash.hex()} cannot be successfully decrypted "
                        "after encryption so aborting wallet encryption."
                    )
                encrypted._import_key_locked(encrypted_key)
            logger.info(f"Encrypted key chain ({len(self._hash_to_keys)} keys)")
            return encrypted

    def to_decrypted(self, password: str) -> BasicKeyChain:
        crypter = self.key_crypter
        if crypter is None:
            raise InvalidStateError("Key chain is already decrypted")
        return self.to_decrypted_with_key(crypter.derive_key(password))

    def to_decrypted_with_key(self, aes_key: bytes) -> BasicKeyChain:
        """Return a new plaintext chain; raises WrongPasswordError for a bad key."""
        with self._lock:
            if self._key_crypter is None:
                raise InvalidStateError("Key chain is already decrypted")
            if not self.check_aes_key(aes_key):
                raise WrongPasswordError("Password/key was incorrect.")
            decrypted = BasicKeyChain()
            for key in self._hash_to_keys.values():
                decrypted._import_key_locked(key.decrypt(self._key_crypter, aes_key))
            logger.info(f"Decrypted key chain ({len(self._hash_to_keys)} keys)")
            return decrypted

    def check_password(self, password: str) -> bool:
        """Whether *password* is correct for this chain.

        Raises InvalidStateError if the chain is not encrypted.
        """
        if password is None:
            raise ValueError("password is required")
        crypter = self.key_crypter
        if crypter is None:
            raise InvalidStateError("Key chain not encrypted")
        return self.check_aes_key(crypter.derive_key(password))

    def check_aes_key(self, aes_key: bytes) -> bool:
        """Whether *aes_key* decrypts the first encrypted key in the chain.

        The plaintext check comes first: a plaintext chain raises
        InvalidStateError even when it is empty.  An empty encrypted chain
        returns False.
        """
        with self._lock:
            if self._key_crypter is None:
                raise InvalidStateError("Key chain is not encrypted")
            if not self._hash_to_keys:
                return False
            first = next((k for k in self._hash_to_keys.values() if k.is_encrypted), None)
            if first is None:
                raise InconsistentStateError("No encrypted keys in the chain")
            try:
                reborn = first.decrypt(self._key_crypter, aes_key)
            except (KeyCrypterError, ValueError):
                return False
            return reborn.pub_key == first.pub_key

    # ---- bloom filtering ----

    def get_filter(self, size: int, false_positive_rate: float, tweak: int) -> BloomFilter:
        """Bloom filter matching every key's public key and public key hash."""
        bloom = BloomFilter(size, false_positive_rate, tweak)
        with self._lock:
            for key in self._hash_to_keys.values():
                bloom.insert(key.pub_key)
                bloom.insert(key.pub_key_hash)
        return bloom

    def num_bloom_filter_entries(self) -> int:
        return self.num_keys() * 2

    def __repr__(self) -> str:
        state = "encrypted" if self._key_crypter is not None else "plaintext"
        return f"BasicKeyChain({len(self._pubkey_to_keys)} keys, {state})"

"""
Conversion between keys and persisted key records.

A record carries the key type tag, a millisecond creation timestamp, the
public key and either the clear secret (``ORIGINAL``) or the encrypted
payload (``ENCRYPTED_SCRYPT_AES``).  Records with unrecognised type tags are
skipped when read so that newer writers do not break older readers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from keychain_core.crypter import EncryptedData, EncryptionType, KeyCrypter
from keychain_core.eckey import ECKey
from keychain_core.errors import UnreadableDataError

TYPE_ORIGINAL = "ORIGINAL"
TYPE_ENCRYPTED_SCRYPT_AES = "ENCRYPTED_SCRYPT_AES"
KNOWN_TYPES = (TYPE_ORIGINAL, TYPE_ENCRYPTED_SCRYPT_AES)


@dataclass(frozen=True)
class EncryptedDataRecord:
    initialisation_vector: bytes
    encrypted_private_key: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "initialisation_vector": self.initialisation_vector.hex(),
            "encrypted_private_key": self.encrypted_private_key.hex(),
        }

    @staticmethod
    def from_dict(data: dict[str, str]) -> EncryptedDataRecord:
        return EncryptedDataRecord(
            initialisation_vector=bytes.fromhex(data["initialisation_vector"]),
            encrypted_private_key=bytes.fromhex(data["encrypted_private_key"]),
        )


@dataclass(frozen=True)
class KeyRecord:
    """One persisted key."""
    type: str
    creation_timestamp: int = 0           # milliseconds
    public_key: bytes | None = None
    secret_bytes: bytes | None = None
    encrypted_data: EncryptedDataRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "type": self.type,
            "creation_timestamp": self.creation_timestamp,
        }
        if self.public_key is not None:
            out["public_key"] = self.public_key.hex()
        if self.secret_bytes is not None:
            out["secret_bytes"] = self.secret_bytes.hex()
        if self.encrypted_data is not None:
            out["encrypted_data"] = self.encrypted_data.to_dict()
        return out

    @staticmethod
    def from_dict(data: dict[str, Any]) -> KeyRecord:
        try:
            public_key = data.get("public_key")
            secret = data.get("secret_bytes")
            encrypted = data.get("encrypted_data")
            return KeyRecord(
                type=str(data["type"]),
                creation_timestamp=int(data.get("creation_timestamp", 0)),
                public_key=bytes.fromhex(public_key) if public_key is not None else None,
                secret_bytes=bytes.fromhex(secret) if secret is not None else None,
                encrypted_data=EncryptedDataRecord.from_dict(encrypted) if encrypted else None,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UnreadableDataError(f"Malformed key record: {exc}") from exc


def serialize_key(key: ECKey) -> KeyRecord:
    timestamp = key.creation_time_seconds * 1000
    if key.is_encrypted and key.encrypted_data is not None:
        if key.encryption_type is not EncryptionType.ENCRYPTED_SCRYPT_AES:
            raise ValueError(f"Unsupported encryption type {key.encryption_type}")
        data = key.encrypted_data
        return KeyRecord(
            type=TYPE_ENCRYPTED_SCRYPT_AES,
            creation_timestamp=timestamp,
            public_key=key.pub_key,
            encrypted_data=EncryptedDataRecord(
                initialisation_vector=data.initialisation_vector,
                encrypted_private_key=data.encrypted_bytes,
            ),
        )
    # secret may be missing for watching keys
    return KeyRecord(
        type=TYPE_ORIGINAL,
        creation_timestamp=timestamp,
        public_key=key.pub_key,
        secret_bytes=key.secret_bytes,
    )


def serialize_keys(keys: Iterable[ECKey]) -> list[KeyRecord]:
    return [serialize_key(key) for key in keys]


def deserialize_key(record: KeyRecord, key_crypter: KeyCrypter | None) -> ECKey | None:
    """Rebuild the key for *record*; None for record types this code does not know."""
    if record.type not in KNOWN_TYPES:
        return None
    if not record.public_key:
        raise UnreadableDataError("Public key missing")
    created = (record.creation_timestamp + 500) // 1000
    if record.type == TYPE_ENCRYPTED_SCRYPT_AES:
        if key_crypter is None:
            raise UnreadableDataError(
                "Encrypted key found but no key crypter was supplied for deserialisation"
            )
        if record.encrypted_data is None:
            raise UnreadableDataError("Encrypted private key data missing")
        encrypted = EncryptedData(
            record.encrypted_data.initialisation_vector,
            record.encrypted_data.encrypted_private_key,
        )
        return ECKey.from_encrypted(encrypted, key_crypter, record.public_key,
                                    creation_time_seconds=created)
    if record.secret_bytes is not None:
        return ECKey.from_private_and_precalculated_public(
            record.secret_bytes, record.public_key, creation_time_seconds=created,
        )
    return ECKey.from_public_only(record.public_key, creation_time_seconds=created)

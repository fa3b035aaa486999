"""
Password based encryption of private keys.

``KeyCrypterScrypt`` derives a 256-bit AES key from a password with scrypt
and encrypts private key bytes with AES-256-CBC (PKCS#7 padding, random
16-byte IV per key).  Deriving the key is deliberately slow, so callers
derive once and pass the resulting AES key around.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from Crypto.Cipher import AES
from Crypto.Protocol.KDF import scrypt
from Crypto.Util.Padding import pad, unpad

from keychain_core.errors import KeyCrypterError

AES_KEY_LENGTH = 32
IV_LENGTH = 16
SALT_LENGTH = 8

DEFAULT_SCRYPT_N = 16384
DEFAULT_SCRYPT_R = 8
DEFAULT_SCRYPT_P = 1


class EncryptionType(Enum):
    UNENCRYPTED = "UNENCRYPTED"
    ENCRYPTED_SCRYPT_AES = "ENCRYPTED_SCRYPT_AES"


@dataclass(frozen=True)
class EncryptedData:
    """An encrypted private key together with the IV it was encrypted under."""
    initialisation_vector: bytes
    encrypted_bytes: bytes

    def __repr__(self) -> str:
        return (
            f"EncryptedData(iv={self.initialisation_vector.hex()}, "
            f"len={len(self.encrypted_bytes)})"
        )


class KeyCrypter(Protocol):
    @property
    def encryption_type(self) -> EncryptionType:
        ...

    def derive_key(self, password: str) -> bytes:
        ...

    def encrypt(self, plain_bytes: bytes, aes_key: bytes) -> EncryptedData:
        ...

    def decrypt(self, data: EncryptedData, aes_key: bytes) -> bytes:
        ...


@dataclass(frozen=True)
class ScryptParameters:
    """Scrypt salt and cost parameters; persisted alongside encrypted keys."""
    salt: bytes
    n: int = DEFAULT_SCRYPT_N
    r: int = DEFAULT_SCRYPT_R
    p: int = DEFAULT_SCRYPT_P

    def __post_init__(self):
        if self.n < 2 or self.n & (self.n - 1):
            raise ValueError(f"scrypt n must be a power of two > 1, got {self.n}")
        if self.r < 1 or self.p < 1:
            raise ValueError("scrypt r and p must be positive")

    def to_dict(self) -> dict:
        return {"salt": self.salt.hex(), "n": self.n, "r": self.r, "p": self.p}

    @classmethod
    def from_dict(cls, data: dict) -> ScryptParameters:
        return cls(
            salt=bytes.fromhex(data["salt"]),
            n=int(data.get("n", DEFAULT_SCRYPT_N)),
            r=int(data.get("r", DEFAULT_SCRYPT_R)),
            p=int(data.get("p", DEFAULT_SCRYPT_P)),
        )


class KeyCrypterScrypt:
    """Scrypt key derivation + AES-256-CBC private key encryption."""

    def __init__(
        self,
        parameters: ScryptParameters | None = None,
        *,
        n: int = DEFAULT_SCRYPT_N,
        r: int = DEFAULT_SCRYPT_R,
        p: int = DEFAULT_SCRYPT_P,
    ):
        if parameters is None:
            parameters = ScryptParameters(salt=os.urandom(SALT_LENGTH), n=n, r=r, p=p)
        self.parameters = parameters

    @property
    def encryption_type(self) -> EncryptionType:
        return EncryptionType.ENCRYPTED_SCRYPT_AES

    def derive_key(self, password: str) -> bytes:
        """Derive the 32-byte AES key for *password*. Slow by design of scrypt."""
        if not password:
            raise ValueError("Password must not be empty")
        params = self.parameters
        try:
            return scrypt(
                password.encode("utf-8"), params.salt, AES_KEY_LENGTH,
                N=params.n, r=params.r, p=params.p,
            )
        except ValueError as exc:
            raise KeyCrypterError(f"Could not derive key from password: {exc}") from exc

    def encrypt(self, plain_bytes: bytes, aes_key: bytes) -> EncryptedData:
        _check_aes_key(aes_key)
        iv = os.urandom(IV_LENGTH)
        cipher = AES.new(aes_key, AES.MODE_CBC, iv=iv)
        return EncryptedData(iv, cipher.encrypt(pad(plain_bytes, AES.block_size)))

    def decrypt(self, data: EncryptedData, aes_key: bytes) -> bytes:
        """Decrypt *data*. Raises KeyCrypterError on a wrong key or corrupt data."""
        _check_aes_key(aes_key)
        try:
            cipher = AES.new(aes_key, AES.MODE_CBC, iv=data.initialisation_vector)
            return unpad(cipher.decrypt(data.encrypted_bytes), AES.block_size)
        except ValueError as exc:
            raise KeyCrypterError("Could not decrypt bytes") from exc

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyCrypterScrypt):
            return NotImplemented
        return self.parameters == other.parameters

    def __hash__(self) -> int:
        return hash(self.parameters)

    def __repr__(self) -> str:
        p = self.parameters
        return f"KeyCrypterScrypt(n={p.n}, r={p.r}, p={p.p}, salt={p.salt.hex()})"


def _check_aes_key(aes_key: bytes) -> None:
    if len(aes_key) != AES_KEY_LENGTH:
        raise ValueError(f"AES key must be {AES_KEY_LENGTH} bytes, got {len(aes_key)}")

"""
Hashing and secp256k1 helpers used by the key chain.

  - SHA-256 / double-SHA-256 / RIPEMD-160 / Hash160
  - ECDSA key-pair generation and public key derivation
  - Compressed / uncompressed public key encodings
  - Deterministic (RFC 6979) signing and verification
"""

from __future__ import annotations

import hashlib

from Crypto.Hash import RIPEMD160
from ecdsa import BadSignatureError, SECP256k1, SigningKey, VerifyingKey
from ecdsa.keys import MalformedPointError
from ecdsa.util import sigdecode_der, sigencode_der_canonize

PRIVATE_KEY_LENGTH = 32
UNCOMPRESSED_PUBLIC_KEY_LENGTH = 65
COMPRESSED_PUBLIC_KEY_LENGTH = 33


# ===================================================================
#  Hashing
# ===================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256d(data: bytes) -> bytes:
    """Double SHA-256, the Bitcoin message / transaction hash."""
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def ripemd160(data: bytes) -> bytes:
    return RIPEMD160.new(data).digest()


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data)): the 20-byte public key hash."""
    return ripemd160(sha256(data))


# ===================================================================
#  Keys
# ===================================================================

def generate_keypair() -> tuple[bytes, bytes]:
    """Generate a fresh secp256k1 key-pair.

    Returns (32-byte private key, 65-byte uncompressed public key).
    """
    sk = SigningKey.generate(curve=SECP256k1)
    return sk.to_string(), b"\x04" + sk.get_verifying_key().to_string()


def public_key_from_private(private_key: bytes, compressed: bool = False) -> bytes:
    """Derive the public key for *private_key*.

    Raises ValueError if the bytes are not a valid secp256k1 scalar.
    """
    if len(private_key) != PRIVATE_KEY_LENGTH:
        raise ValueError(f"Private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(private_key)}")
    try:
        sk = SigningKey.from_string(private_key, curve=SECP256k1)
    except MalformedPointError as exc:
        raise ValueError("Private key is out of range for secp256k1") from exc
    vk = sk.get_verifying_key()
    return vk.to_string("compressed" if compressed else "uncompressed")


def compress_public_key(public_key: bytes) -> bytes:
    """Return the 33-byte compressed form of a (possibly compressed) public key."""
    if len(public_key) == COMPRESSED_PUBLIC_KEY_LENGTH:
        return public_key
    if len(public_key) != UNCOMPRESSED_PUBLIC_KEY_LENGTH or public_key[0] != 0x04:
        raise ValueError("Not an uncompressed secp256k1 public key")
    x, y = public_key[1:33], public_key[33:]
    prefix = b"\x02" if y[-1] % 2 == 0 else b"\x03"
    return prefix + x


def is_valid_public_key(public_key: bytes) -> bool:
    try:
        VerifyingKey.from_string(public_key, curve=SECP256k1)
    except (MalformedPointError, ValueError):
        return False
    return True


# ===================================================================
#  Signatures
# ===================================================================

def sign(private_key: bytes, digest: bytes) -> bytes:
    """Sign a 32-byte digest; returns a low-S DER signature."""
    sk = SigningKey.from_string(private_key, curve=SECP256k1)
    return sk.sign_digest_deterministic(
        digest, hashfunc=hashlib.sha256, sigencode=sigencode_der_canonize,
    )


def verify(public_key: bytes, digest: bytes, signature: bytes) -> bool:
    try:
        vk = VerifyingKey.from_string(public_key, curve=SECP256k1)
        return vk.verify_digest(signature, digest, sigdecode=sigdecode_der)
    except (BadSignatureError, MalformedPointError, ValueError):
        return False

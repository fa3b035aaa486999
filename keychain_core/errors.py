"""
Exception hierarchy for the key chain.

Bad arguments (empty passwords, wrong-sized byte strings) are reported as
plain ``ValueError``; everything below describes a key chain condition.
"""

from __future__ import annotations


class KeyChainError(Exception):
    """Base class for all key chain errors."""


class KeyCrypterError(KeyChainError):
    """A key could not be encrypted or decrypted."""


class EncryptionMismatchError(KeyCrypterError):
    """A key's encryption state disagrees with the chain it is imported into."""


class WrongPasswordError(KeyCrypterError):
    """The password / AES key does not decrypt the chain."""


class EncryptionVerificationError(KeyCrypterError):
    """An encrypted key could not be decrypted back to the original."""


class InvalidStateError(KeyChainError):
    """The operation is not valid for the chain's current mode."""


class NonEmptyTargetError(InvalidStateError):
    """Records were deserialised into a chain that already holds keys."""


class InconsistentStateError(KeyChainError):
    """An internal invariant was broken. This is a bug, not bad input."""


class UnreadableDataError(KeyChainError):
    """Persisted key records are malformed."""

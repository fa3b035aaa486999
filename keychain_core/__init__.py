"""
keychain - key management core of a cryptocurrency wallet.

Key features:
- Dual-indexed key chain (by public key and by public key hash)
- All-or-nothing scrypt + AES encryption and decryption of every key
- Asynchronous "keys added" notifications to registered listeners
- Persisted key records with SQLite storage
- BIP-37 bloom filter export for light-client queries
"""

__version__ = "1.0.0"
__all__ = [
    "bloom",
    "cli",
    "config",
    "crypter",
    "crypto_utils",
    "eckey",
    "errors",
    "guard",
    "keychain",
    "listeners",
    "logging_config",
    "serialization",
    "storage",
]

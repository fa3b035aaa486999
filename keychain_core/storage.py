"""
SQLite-based persistence for key chains.

Stores the ordered key records of one chain plus, for an encrypted chain,
the scrypt parameters needed to derive its AES key again.

Usage:
    with KeyChainStore("data/keychain.db") as store:
        store.save_key_chain(chain)
        chain = store.load_key_chain()
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from keychain_core.crypter import KeyCrypterScrypt, ScryptParameters
from keychain_core.keychain import BasicKeyChain
from keychain_core.serialization import EncryptedDataRecord, KeyRecord

logger = logging.getLogger("keychain_storage")


class KeyChainStore:
    """Thin SQLite wrapper for persisting a key chain."""

    CURRENT_SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "data/keychain.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        try:
            self._create_tables()
            self._ensure_schema_version()
        except Exception:
            self._conn.close()
            raise
        logger.info(f"Key store opened: {db_path}")

    # ── schema ───────────────────────────────────────────────────

    def _create_tables(self) -> None:
        c = self._conn
        c.execute("""
            CREATE TABLE IF NOT EXISTS keys (
                position               INTEGER PRIMARY KEY,
                type                   TEXT NOT NULL,
                creation_timestamp     INTEGER NOT NULL DEFAULT 0,
                public_key             BLOB,
                secret_bytes           BLOB,
                initialisation_vector  BLOB,
                encrypted_private_key  BLOB
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS scrypt_parameters (
                id   INTEGER PRIMARY KEY CHECK (id = 1),
                salt BLOB NOT NULL,
                n    INTEGER NOT NULL,
                r    INTEGER NOT NULL,
                p    INTEGER NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            )
        """)
        c.commit()

    def _ensure_schema_version(self) -> None:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (id, version) VALUES (1, ?)",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row["version"] > self.CURRENT_SCHEMA_VERSION:
            raise RuntimeError(
                f"Key store schema v{row['version']} is newer than this software "
                f"(v{self.CURRENT_SCHEMA_VERSION})."
            )

    # ── records ──────────────────────────────────────────────────

    def save_records(self, records: list[KeyRecord],
                     parameters: ScryptParameters | None = None) -> None:
        """Replace the stored chain with *records* in a single transaction."""
        c = self._conn
        try:
            c.execute("BEGIN IMMEDIATE")
            c.execute("DELETE FROM keys")
            c.execute("DELETE FROM scrypt_parameters")
            for position, record in enumerate(records):
                enc = record.encrypted_data
                c.execute(
                    """INSERT INTO keys
                       (position, type, creation_timestamp, public_key, secret_bytes,
                        initialisation_vector, encrypted_private_key)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (position, record.type, record.creation_timestamp,
                     record.public_key, record.secret_bytes,
                     enc.initialisation_vector if enc else None,
                     enc.encrypted_private_key if enc else None),
                )
            if parameters is not None:
                c.execute(
                    "INSERT INTO scrypt_parameters (id, salt, n, r, p) VALUES (1, ?, ?, ?, ?)",
                    (parameters.salt, parameters.n, parameters.r, parameters.p),
                )
            c.execute("COMMIT")
        except Exception:
            if c.in_transaction:
                c.execute("ROLLBACK")
            raise
        logger.debug(f"Saved {len(records)} key records")

    def load_records(self) -> list[KeyRecord]:
        rows = self._conn.execute("SELECT * FROM keys ORDER BY position").fetchall()
        records = []
        for row in rows:
            enc = None
            if row["initialisation_vector"] is not None and row["encrypted_private_key"] is not None:
                enc = EncryptedDataRecord(
                    initialisation_vector=bytes(row["initialisation_vector"]),
                    encrypted_private_key=bytes(row["encrypted_private_key"]),
                )
            records.append(KeyRecord(
                type=row["type"],
                creation_timestamp=row["creation_timestamp"],
                public_key=bytes(row["public_key"]) if row["public_key"] is not None else None,
                secret_bytes=bytes(row["secret_bytes"]) if row["secret_bytes"] is not None else None,
                encrypted_data=enc,
            ))
        return records

    def load_scrypt_parameters(self) -> ScryptParameters | None:
        row = self._conn.execute(
            "SELECT salt, n, r, p FROM scrypt_parameters WHERE id = 1"
        ).fetchone()
        if row is None:
            return None
        return ScryptParameters(salt=bytes(row["salt"]), n=row["n"], r=row["r"], p=row["p"])

    # ── chains ───────────────────────────────────────────────────

    def save_key_chain(self, chain: BasicKeyChain) -> None:
        crypter = chain.key_crypter
        parameters = None
        if crypter is not None:
            if not isinstance(crypter, KeyCrypterScrypt):
                raise ValueError(f"Cannot persist parameters of {type(crypter).__name__}")
            parameters = crypter.parameters
        self.save_records(chain.serialize_to_records(), parameters)

    def load_key_chain(self) -> BasicKeyChain:
        """Rebuild the stored chain; it is encrypted iff scrypt parameters were saved."""
        records = self.load_records()
        parameters = self.load_scrypt_parameters()
        if parameters is None:
            return BasicKeyChain.from_records_unencrypted(records)
        return BasicKeyChain.from_records_encrypted(records, KeyCrypterScrypt(parameters))

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

"""
TOML-based configuration for the key chain tools.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Usage:
    from keychain_core.config import load_config
    cfg = load_config("keychain.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]

from keychain_core.crypter import (
    DEFAULT_SCRYPT_N,
    DEFAULT_SCRYPT_P,
    DEFAULT_SCRYPT_R,
    KeyCrypterScrypt,
)


@dataclass
class ScryptConfig:
    """Cost parameters for newly encrypted chains.

    Existing chains keep the parameters they were encrypted with; these only
    apply when a chain is encrypted from scratch.
    """
    n: int = DEFAULT_SCRYPT_N
    r: int = DEFAULT_SCRYPT_R
    p: int = DEFAULT_SCRYPT_P

    def new_crypter(self) -> KeyCrypterScrypt:
        """A crypter with these costs and a fresh random salt."""
        return KeyCrypterScrypt(n=self.n, r=self.r, p=self.p)


@dataclass
class StorageConfig:
    """Persistence settings."""
    path: str = "data/keychain.db"


@dataclass
class FilterConfig:
    """Bloom filter export defaults."""
    false_positive_rate: float = 0.0005


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class KeyChainConfig:
    """Top-level configuration container."""
    scrypt: ScryptConfig = field(default_factory=ScryptConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> KeyChainConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        KEYCHAIN_DB_PATH    -> storage.path
        KEYCHAIN_SCRYPT_N   -> scrypt.n
        KEYCHAIN_SCRYPT_R   -> scrypt.r
        KEYCHAIN_SCRYPT_P   -> scrypt.p
        KEYCHAIN_LOG_LEVEL  -> logging.level
        KEYCHAIN_LOG_FMT    -> logging.format
    """
    cfg = KeyChainConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("scrypt", cfg.scrypt),
                ("storage", cfg.storage),
                ("filter", cfg.filter),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("KEYCHAIN_DB_PATH"):
        cfg.storage.path = v
    if v := os.environ.get("KEYCHAIN_SCRYPT_N"):
        cfg.scrypt.n = int(v)
    if v := os.environ.get("KEYCHAIN_SCRYPT_R"):
        cfg.scrypt.r = int(v)
    if v := os.environ.get("KEYCHAIN_SCRYPT_P"):
        cfg.scrypt.p = int(v)
    if v := os.environ.get("KEYCHAIN_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("KEYCHAIN_LOG_FMT"):
        cfg.logging.format = v

    return cfg

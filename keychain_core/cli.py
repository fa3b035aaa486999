"""
Command-line access to a stored key chain.

Usage:
    keychain new --count 3
    keychain list
    keychain encrypt --password hunter2
    keychain check-password --password hunter2
    keychain decrypt --password hunter2
    keychain filter --tweak 12345

Settings come from ``--config`` (TOML) and ``KEYCHAIN_*`` environment
variables; ``--db`` and ``--log-level`` override both.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys

from keychain_core.config import KeyChainConfig, load_config
from keychain_core.eckey import ECKey
from keychain_core.errors import KeyChainError
from keychain_core.keychain import UNKNOWN_CREATION_TIME, BasicKeyChain, KeyPurpose
from keychain_core.listeners import shutdown_user_thread
from keychain_core.logging_config import setup_logging_from_config
from keychain_core.storage import KeyChainStore

logger = logging.getLogger("keychain_cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="keychain", description="Basic key chain tool")
    p.add_argument("--config", default=None, help="Path to keychain.toml config file")
    p.add_argument("--db", default=None, help="Key store database path")
    p.add_argument("--log-level", default=None, help="Logging level")
    sub = p.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="Generate and store fresh keys")
    new.add_argument("--count", type=int, default=1)

    sub.add_parser("list", help="List stored keys")

    for name, text in [
        ("encrypt", "Encrypt the stored chain"),
        ("decrypt", "Decrypt the stored chain"),
        ("check-password", "Check a password against the stored chain"),
    ]:
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("--password", required=True)

    flt = sub.add_parser("filter", help="Print a bloom filter for the stored keys")
    flt.add_argument("--fp-rate", type=float, default=None)
    flt.add_argument("--tweak", type=int,
                     default=int.from_bytes(os.urandom(4), "big"))
    return p.parse_args(argv)


def _cmd_new(chain: BasicKeyChain, args, cfg, store) -> int:
    if chain.is_encrypted:
        # fresh keys would have to be stored unencrypted
        logger.error("Chain is encrypted; decrypt it before adding keys")
        return 1
    if chain.num_keys() == 0 and args.count > 0:
        chain.get_key(KeyPurpose.RECEIVE_FUNDS)
        remaining = args.count - 1
    else:
        remaining = args.count
    chain.import_keys(ECKey.generate() for _ in range(remaining))
    store.save_key_chain(chain)
    print(f"{chain.num_keys()} keys stored")
    return 0


def _cmd_list(chain: BasicKeyChain, args, cfg, store) -> int:
    for key in chain.get_keys():
        state = "encrypted" if key.is_encrypted else ("watching" if key.is_watching else "private")
        print(f"{key.pub_key_hash.hex()}  {key.pub_key.hex()}  {state}  {key.creation_time_seconds}")
    earliest = chain.get_earliest_key_creation_time()
    if earliest != UNKNOWN_CREATION_TIME:
        print(f"earliest key: {earliest}")
    return 0


def _cmd_encrypt(chain: BasicKeyChain, args, cfg, store) -> int:
    crypter = cfg.scrypt.new_crypter()
    encrypted = chain.to_encrypted_with_key(crypter, crypter.derive_key(args.password))
    store.save_key_chain(encrypted)
    print(f"Encrypted {encrypted.num_keys()} keys")
    return 0


def _cmd_decrypt(chain: BasicKeyChain, args, cfg, store) -> int:
    decrypted = chain.to_decrypted(args.password)
    store.save_key_chain(decrypted)
    print(f"Decrypted {decrypted.num_keys()} keys")
    return 0


def _cmd_check_password(chain: BasicKeyChain, args, cfg, store) -> int:
    ok = chain.check_password(args.password)
    print("password OK" if ok else "wrong password")
    return 0 if ok else 1


def _cmd_filter(chain: BasicKeyChain, args, cfg, store) -> int:
    fp_rate = args.fp_rate if args.fp_rate is not None else cfg.filter.false_positive_rate
    bloom = chain.get_filter(chain.num_bloom_filter_entries(), fp_rate, args.tweak)
    print(json.dumps(bloom.to_dict(), indent=2))
    return 0


_COMMANDS = {
    "new": _cmd_new,
    "list": _cmd_list,
    "encrypt": _cmd_encrypt,
    "decrypt": _cmd_decrypt,
    "check-password": _cmd_check_password,
    "filter": _cmd_filter,
}


def run(args: argparse.Namespace, cfg: KeyChainConfig) -> int:
    with KeyChainStore(cfg.storage.path) as store:
        try:
            chain = store.load_key_chain()
            return _COMMANDS[args.command](chain, args, cfg, store)
        except KeyChainError as exc:
            logger.error(f"{args.command} failed: {exc}")
            return 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    cfg = load_config(args.config)
    if args.db:
        cfg.storage.path = args.db
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    setup_logging_from_config(cfg.logging)
    try:
        return run(args, cfg)
    finally:
        # deliver queued listener callbacks before the process exits
        shutdown_user_thread()


if __name__ == "__main__":
    sys.exit(main())

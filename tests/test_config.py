"""
Tests for keychain_core.config: TOML loading and environment overrides.
"""

import os
import tempfile
import unittest
from unittest import mock

from keychain_core.config import KeyChainConfig, ScryptConfig, load_config
from keychain_core.crypter import DEFAULT_SCRYPT_N, KeyCrypterScrypt


class TestDefaults(unittest.TestCase):

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_no_file(self):
        cfg = load_config()
        self.assertIsInstance(cfg, KeyChainConfig)
        self.assertEqual(cfg.scrypt.n, DEFAULT_SCRYPT_N)
        self.assertEqual(cfg.storage.path, "data/keychain.db")
        self.assertEqual(cfg.filter.false_positive_rate, 0.0005)
        self.assertEqual(cfg.logging.level, "INFO")

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_missing_file_ignored(self):
        cfg = load_config("/nonexistent/keychain.toml")
        self.assertEqual(cfg.scrypt.n, DEFAULT_SCRYPT_N)


class TestTomlFile(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.tmpdir.name, "keychain.toml")
        with open(self.path, "w") as f:
            f.write(
                "[scrypt]\nn = 2048\nr = 4\n\n"
                "[storage]\npath = \"/tmp/k.db\"\n\n"
                "[filter]\nfalse-positive-rate = 0.01\n\n"
                "[logging]\nlevel = \"DEBUG\"\nformat = \"json\"\n"
                "[unknown]\nx = 1\n"
            )

    def tearDown(self):
        self.tmpdir.cleanup()

    @mock.patch.dict(os.environ, {}, clear=True)
    def test_sections_merged(self):
        cfg = load_config(self.path)
        self.assertEqual(cfg.scrypt.n, 2048)
        self.assertEqual(cfg.scrypt.r, 4)
        self.assertEqual(cfg.scrypt.p, 1)
        self.assertEqual(cfg.storage.path, "/tmp/k.db")
        self.assertEqual(cfg.filter.false_positive_rate, 0.01)
        self.assertEqual(cfg.logging.format, "json")

    @mock.patch.dict(os.environ, {
        "KEYCHAIN_SCRYPT_N": "4096",
        "KEYCHAIN_DB_PATH": "/var/k.db",
        "KEYCHAIN_LOG_LEVEL": "warning",
    }, clear=True)
    def test_env_overrides_file(self):
        cfg = load_config(self.path)
        self.assertEqual(cfg.scrypt.n, 4096)
        self.assertEqual(cfg.scrypt.r, 4)
        self.assertEqual(cfg.storage.path, "/var/k.db")
        self.assertEqual(cfg.logging.level, "WARNING")


class TestScryptConfig(unittest.TestCase):

    def test_new_crypter_uses_costs(self):
        crypter = ScryptConfig(n=1024, r=2, p=1).new_crypter()
        self.assertIsInstance(crypter, KeyCrypterScrypt)
        self.assertEqual(crypter.parameters.n, 1024)
        self.assertEqual(crypter.parameters.r, 2)

    def test_fresh_salt_each_time(self):
        cfg = ScryptConfig(n=1024)
        self.assertNotEqual(cfg.new_crypter().parameters.salt,
                            cfg.new_crypter().parameters.salt)


if __name__ == "__main__":
    unittest.main()

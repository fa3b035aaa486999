"""
BIP-37 Bloom filter.

Lets a light client ask peers for the transactions matching its keys
without revealing exactly which keys it holds: the filter also matches a
tunable fraction of unrelated data.
"""

from __future__ import annotations

import math
import struct
from enum import IntEnum

MAX_FILTER_SIZE = 36_000   # bytes
MAX_HASH_FUNCS = 50
_SEED_MULTIPLIER = 0xFBA4C795


class BloomUpdate(IntEnum):
    UPDATE_NONE = 0
    UPDATE_ALL = 1
    UPDATE_P2PUBKEY_ONLY = 2


def murmur3_32(data: bytes, seed: int) -> int:
    """MurmurHash3 (x86, 32-bit) as specified by BIP-37."""
    c1, c2 = 0xCC9E2D51, 0x1B873593
    h1 = seed & 0xFFFFFFFF
    n_blocks = len(data) // 4

    for (k1,) in struct.iter_unpack("<I", data[: n_blocks * 4]):
        k1 = (k1 * c1) & 0xFFFFFFFF
        k1 = ((k1 << 15) | (k1 >> 17)) & 0xFFFFFFFF
        k1 = (k1 * c2) & 0xFFFFFFFF
        h1 ^= k1
        h1 = ((h1 << 13) | (h1 >> 19)) & 0xFFFFFFFF
        h1 = (h1 * 5 + 0xE6546B64) & 0xFFFFFFFF

    tail = data[n_blocks * 4:]
    k1 = 0
    if len(tail) >= 3:
        k1 ^= tail[2] << 16
    if len(tail) >= 2:
        k1 ^= tail[1] << 8
    if tail:
        k1 ^= tail[0]
        k1 = (k1 * c1) & 0xFFFFFFFF
        k1 = ((k1 << 15) | (k1 >> 17)) & 0xFFFFFFFF
        k1 = (k1 * c2) & 0xFFFFFFFF
        h1 ^= k1

    # finalisation mix
    h1 ^= len(data)
    h1 ^= h1 >> 16
    h1 = (h1 * 0x85EBCA6B) & 0xFFFFFFFF
    h1 ^= h1 >> 13
    h1 = (h1 * 0xC2B2AE35) & 0xFFFFFFFF
    h1 ^= h1 >> 16
    return h1


class BloomFilter:
    """
    Probabilistic set of byte strings.

    Sized for *elements* insertions at *false_positive_rate*; *tweak* is a
    random per-filter nonce so filters for the same keys differ between uses.
    """

    def __init__(
        self,
        elements: int,
        false_positive_rate: float,
        tweak: int,
        update_flag: BloomUpdate = BloomUpdate.UPDATE_P2PUBKEY_ONLY,
    ):
        if elements < 0:
            raise ValueError("elements must be non-negative")
        if not 0.0 < false_positive_rate < 1.0:
            raise ValueError("false_positive_rate must be between 0 and 1")
        elements = max(elements, 1)
        ln2 = math.log(2)
        size = int(-1 / (ln2 ** 2) * elements * math.log(false_positive_rate) / 8)
        size = max(1, min(size, MAX_FILTER_SIZE))
        self._data = bytearray(size)
        hash_funcs = int(size * 8 / elements * ln2)
        self.hash_funcs = max(1, min(hash_funcs, MAX_HASH_FUNCS))
        self.tweak = tweak & 0xFFFFFFFF
        self.update_flag = update_flag

    def _bit_index(self, hash_num: int, data: bytes) -> int:
        seed = (hash_num * _SEED_MULTIPLIER + self.tweak) & 0xFFFFFFFF
        return murmur3_32(data, seed) % (len(self._data) * 8)

    def insert(self, data: bytes) -> None:
        for i in range(self.hash_funcs):
            idx = self._bit_index(i, data)
            self._data[idx >> 3] |= 1 << (idx & 7)

    def contains(self, data: bytes) -> bool:
        for i in range(self.hash_funcs):
            idx = self._bit_index(i, data)
            if not self._data[idx >> 3] & (1 << (idx & 7)):
                return False
        return True

    def __contains__(self, data: bytes) -> bool:
        return self.contains(data)

    @property
    def data(self) -> bytes:
        return bytes(self._data)

    def to_dict(self) -> dict:
        """Fields of a ``filterload`` message, hex encoded."""
        return {
            "data": self._data.hex(),
            "hash_funcs": self.hash_funcs,
            "tweak": self.tweak,
            "flags": int(self.update_flag),
        }

    def __repr__(self) -> str:
        return (
            f"BloomFilter(size={len(self._data)}, hash_funcs={self.hash_funcs}, "
            f"tweak={self.tweak})"
        )

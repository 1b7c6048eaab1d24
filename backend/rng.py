"""
Randomness sources for the holdco engine.

Every stochastic function takes an explicit ``rng`` argument. The orchestrator
decides whether that is a seeded generator (replayable games, tests) or an
ambient one backed by ``random.Random``.

Seed derivation:
    master seed -> derive_round_seed(seed, round) -> derive_stream_seed(round_seed, stream)
Each round gets fresh per-stream generators so one stream's draw count
never shifts another stream's sequence.
"""

import random
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar, Union

T = TypeVar("T")

STREAM_IDS = ("deals", "events", "simulation", "market", "cosmetic")

_MASK32 = 0xFFFFFFFF


def _to_int32(value: int) -> int:
    value &= _MASK32
    return value - 0x100000000 if value & 0x80000000 else value


def _imul(a: int, b: int) -> int:
    return _to_int32((a & _MASK32) * (b & _MASK32))


def _urshift(value: int, bits: int) -> int:
    return (value & _MASK32) >> bits


def _hash_string(key: str) -> int:
    total = 0
    for ch in key:
        total = _to_int32(total * 31 + ord(ch))
    return total


def _hash_two(a: int, b: int) -> int:
    """Mix two 32-bit integers into one."""
    h = _to_int32(a ^ _to_int32(b * 0x9E3779B9))
    h = _imul(h ^ _urshift(h, 16), 0x85EBCA6B)
    h = _imul(h ^ _urshift(h, 13), 0xC2B2AE35)
    return _to_int32(h ^ _urshift(h, 16))


def derive_round_seed(master_seed: int, round_number: int) -> int:
    return _hash_two(master_seed, round_number)


def derive_stream_seed(round_seed: int, stream_id: str) -> int:
    return _hash_two(round_seed, _hash_string(stream_id))


class RandomSource:
    """Common helpers layered over a single ``next()`` primitive returning [0, 1)."""

    def next(self) -> float:
        raise NotImplementedError

    def next_int(self, low: int, high: int) -> int:
        """Integer in [low, high], inclusive."""
        return int(self.next() * (high - low + 1)) + low

    def next_in_range(self, bounds: Tuple[float, float]) -> float:
        return bounds[0] + self.next() * (bounds[1] - bounds[0])

    def pick(self, items: Sequence[T]) -> Optional[T]:
        if not items:
            return None
        return items[int(self.next() * len(items))]

    def shuffle(self, items: List[T]) -> List[T]:
        """Fisher-Yates in place; returns the same list."""
        for i in range(len(items) - 1, 0, -1):
            j = int(self.next() * (i + 1))
            items[i], items[j] = items[j], items[i]
        return items


class SeededRng(RandomSource):
    """Mulberry32: deterministic 32-bit PRNG. Same seed, same sequence."""

    def __init__(self, seed: int):
        self.state = _to_int32(seed)

    def next(self) -> float:
        self.state = _to_int32(self.state + 0x6D2B79F5)
        t = _imul(self.state ^ _urshift(self.state, 15), 1 | self.state)
        t = _to_int32(t + _imul(t ^ _urshift(t, 7), 61 | t)) ^ t
        return ((t ^ _urshift(t, 14)) & _MASK32) / 4294967296

    def fork(self, key: Union[str, int]) -> "SeededRng":
        """Independent child generator for per-entity isolation."""
        key_seed = key if isinstance(key, int) else _hash_string(key)
        return SeededRng(_hash_two(self.state, key_seed))


class AmbientRng(RandomSource):
    """Non-replayable source for casual games."""

    def __init__(self, seed: Optional[int] = None):
        self._random = random.Random(seed)

    def next(self) -> float:
        return self._random.random()

    def fork(self, key: Union[str, int]) -> "AmbientRng":
        return AmbientRng(self._random.getrandbits(32))


class FixedRng(RandomSource):
    """Replays a fixed sequence of draws, cycling when exhausted."""

    def __init__(self, values: Union[float, Sequence[float]] = 0.5):
        if isinstance(values, (int, float)):
            values = [values]
        if not values:
            raise ValueError("FixedRng needs at least one value")
        for v in values:
            if not (0.0 <= v < 1.0):
                raise ValueError(f"FixedRng values must be in [0, 1), got {v}")
        self.values = list(values)
        self.calls = 0

    def next(self) -> float:
        value = self.values[self.calls % len(self.values)]
        self.calls += 1
        return value

    def fork(self, key: Union[str, int]) -> "FixedRng":
        return FixedRng(self.values)


def create_rng_streams(master_seed: int, round_number: int) -> Dict[str, SeededRng]:
    """All five named streams for a seed and round."""
    round_seed = derive_round_seed(master_seed, round_number)
    return {stream: SeededRng(derive_stream_seed(round_seed, stream)) for stream in STREAM_IDS}


def generate_random_seed() -> int:
    return random.getrandbits(31)

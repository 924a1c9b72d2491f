"""
Crash-line commitment.

The whole trajectory of a round is fixed when the bet is placed: one draw per
line, the first draw that falls under that line's crash chance becomes the
crash line.  Later ``step`` calls only reveal it, so the outcome cannot be
steered once a player has committed money, and an LCG round can be replayed
from its stored seed.

The LCG is weak and predictable from its seed.  ``SystemSource`` can be
selected through ``ROADGAME_RNG=system`` when replayability is not needed.
"""

import random
import time
import zlib
from typing import Callable, Protocol

from . import settings
from .difficulty import DifficultyProfile

SEED_MASK = (1 << 64) - 1
LCG_MULTIPLIER = 9301
LCG_INCREMENT = 49297
LCG_MODULUS = 233280


class CrashRandom(Protocol):
    def random(self) -> float:
        """Return the next draw in [0, 1)."""


class LinearCongruential:
    def __init__(self, seed: int):
        self.state = seed

    def random(self) -> float:
        self.state = (self.state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self.state / LCG_MODULUS


class SystemSource:
    """OS entropy; the seed is ignored so rounds cannot be replayed."""

    def __init__(self, seed: int | None = None):
        self._rng = random.SystemRandom()

    def random(self) -> float:
        return self._rng.random()


RNG_SOURCES: dict[str, Callable[[int], CrashRandom]] = {
    "lcg": LinearCongruential,
    "system": SystemSource,
}


def derive_seed(player_id: str, now_ns: int | None = None) -> int:
    """Clock plus a process-stable hash of the player, so simultaneous rounds differ."""
    if now_ns is None:
        now_ns = time.time_ns()
    return (now_ns + zlib.crc32(player_id.encode("utf-8"))) & SEED_MASK


def generate_crash_line(profile: DifficultyProfile, rng: CrashRandom) -> int:
    for line in range(1, profile.total_lines + 1):
        if rng.random() < profile.crash_chance(line):
            return line
    return profile.total_lines + 1


def replay_crash_line(seed: int, profile: DifficultyProfile) -> int:
    return generate_crash_line(profile, LinearCongruential(seed))


class OutcomeGenerator:
    def __init__(self, rng_factory: Callable[[int], CrashRandom] | None = None, rng_name: str | None = None):
        if rng_factory is None:
            rng_name = rng_name or settings.RNG_MODE
            if rng_name not in RNG_SOURCES:
                raise ValueError(f"Unknown RNG source: {rng_name}")
            rng_factory = RNG_SOURCES[rng_name]
        self.rng_factory = rng_factory
        self.rng_name = rng_name or getattr(rng_factory, "__name__", "custom")

    def commit(self, player_id: str, profile: DifficultyProfile) -> tuple[int, int]:
        """Return ``(seed, crash_line)`` for a new round."""
        seed = derive_seed(player_id)
        return seed, generate_crash_line(profile, self.rng_factory(seed))

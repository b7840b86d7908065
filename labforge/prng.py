from __future__ import annotations

import random
import re
import secrets
from collections.abc import Callable

# Largest seed we hand out or accept (2^53 - 1) so seeds survive a JSON round-trip to JS clients.
MAX_SEED = 2**53 - 1

_MASK32 = 0xFFFFFFFF
_SEED_RE = re.compile(r"[+-]?[0-9]+")

RandomStream = Callable[[], float]


def create_stream(seed: int) -> RandomStream:
    """Mulberry32 stream: each call returns the next value in [0, 1).

    Only the low 32 bits of `seed` are used. The stream cannot be rewound;
    re-seed to restart it.
    """

    state = seed & _MASK32

    def _next() -> float:
        nonlocal state
        state = (state + 0x6D2B79F5) & _MASK32
        t = ((state ^ (state >> 15)) * (state | 1)) & _MASK32
        t = ((t + (((t ^ (t >> 7)) * (t | 61)) & _MASK32)) & _MASK32) ^ t
        return ((t ^ (t >> 14)) & _MASK32) / 4294967296

    return _next


def generate_random_seed() -> int:
    """Return a seed in [0, MAX_SEED].

    Uses the OS entropy source when available; callers must not rely on it being
    cryptographically strong.
    """

    try:
        hi = secrets.randbits(32)
        lo = secrets.randbits(32)
    except NotImplementedError:
        return random.randint(0, MAX_SEED)
    return (hi * 0x100000000 + lo) % MAX_SEED


def parse_seed(text: str | None) -> int | None:
    """Parse a user-supplied seed. Returns None if missing, non-integer or out of range."""

    if text is None:
        return None
    raw = text.strip()
    # ASCII only: int() also accepts underscores and non-ASCII digits.
    if _SEED_RE.fullmatch(raw) is None:
        return None
    value = int(raw)
    if value < 0 or value > MAX_SEED:
        return None
    return value


def uniform(stream: RandomStream, low: float, high: float) -> float:
    return low + stream() * (high - low)

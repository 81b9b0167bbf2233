"""Human-speakable one-time codes of the form ``WORD-NNNN-WORD``.

26 x 26 x 9000 (about 6.1M) combinations: enough to resist casual guessing
inside a five minute TTL behind the rate limiter, not a cryptographic secret.
"""

from __future__ import annotations

import random
import secrets

NATO_ALPHABET: tuple[str, ...] = (
    "ALPHA", "BRAVO", "CHARLIE", "DELTA", "ECHO", "FOXTROT", "GOLF", "HOTEL",
    "INDIA", "JULIET", "KILO", "LIMA", "MIKE", "NOVEMBER", "OSCAR", "PAPA",
    "QUEBEC", "ROMEO", "SIERRA", "TANGO", "UNIFORM", "VICTOR", "WHISKEY",
    "XRAY", "YANKEE", "ZULU",
)

CODE_MIN = 1000
CODE_MAX = 9999

_system_random = secrets.SystemRandom()


def generate_code(rng: random.Random | None = None) -> str:
    """Return a fresh code such as ``ALPHA-4821-ROMEO``."""
    rng = rng or _system_random
    first = rng.choice(NATO_ALPHABET)
    second = rng.choice(NATO_ALPHABET)
    number = rng.randint(CODE_MIN, CODE_MAX)
    return f"{first}-{number}-{second}"


def normalize_code(text: str) -> str:
    """Canonical form of a code typed or pasted by a human."""
    return text.strip().upper()

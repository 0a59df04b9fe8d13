"""
Verification codes.

A code is one decimal integer ``prefix * 1_000_000 + bucket * 1_000 + suffix``:

- prefix in [200, 998]: drawn at or above the agent's minimum prefix for a
  pass, below it for a fail
- bucket in [0, 999]: the 0-100,000 score divided by 100
- suffix in [0, 999]: random per submission

A teacher enters ``minimum prefix * 1_000_000`` as the "minimum accepted
value" in their LMS, which then separates passes from fails by plain numeric
comparison without ever seeing the score.
"""

import random
from typing import NamedTuple, Optional

from feedback_agent.config.constants import (
    HASH_MODULUS,
    MAX_SCORE,
    PREFIX_MAX,
    PREFIX_MIN,
    SCORE_BUCKET_DIVISOR,
    SCORE_BUCKET_MULTIPLIER,
    SENTINEL_CODE,
)
from feedback_agent.core.exceptions import InvalidInputError

PREFIX_MULTIPLIER = 1_000_000
MAX_BUCKET = 999
MAX_SUFFIX = 999


class DecodedCode(NamedTuple):
    prefix: int
    bucket: int
    suffix: int


def hash_seed(seed: str) -> int:
    """Rolling hash ``h = (h * 31 + ord(c)) mod (2**31 - 1)``."""
    value = 0
    for char in seed:
        value = (value * 31 + ord(char)) % HASH_MODULUS
    return value


def derive_prefix(agent_id: str) -> int:
    """Stable prefix for an agent that has none assigned."""
    return PREFIX_MIN + hash_seed(agent_id) % (PREFIX_MAX - PREFIX_MIN + 1)


def normalize_prefix(prefix) -> Optional[int]:
    """Round to an int in [200, 998], or None when unusable."""
    if isinstance(prefix, bool) or not isinstance(prefix, (int, float)) or prefix != prefix:
        return None
    rounded = round(prefix)
    return rounded if PREFIX_MIN <= rounded <= PREFIX_MAX else None


def _clamp_int(value: float, low: int, high: int) -> int:
    return min(high, max(low, round(value)))


def score_bucket(score: float) -> int:
    return min(MAX_BUCKET, _clamp_int(score, 0, MAX_SCORE) // SCORE_BUCKET_DIVISOR)


def encode(prefix: int, bucket: int, suffix: int) -> int:
    clean_prefix = normalize_prefix(prefix) or PREFIX_MIN
    return (
        clean_prefix * PREFIX_MULTIPLIER
        + _clamp_int(bucket, 0, MAX_BUCKET) * SCORE_BUCKET_MULTIPLIER
        + _clamp_int(suffix, 0, MAX_SUFFIX)
    )


def decode(code: int | str) -> DecodedCode:
    """Split a (non-escalated) code back into its fields."""
    if str(code) == SENTINEL_CODE:
        raise InvalidInputError("The human-review sentinel code carries no fields")
    value = int(code)
    return DecodedCode(
        prefix=value // PREFIX_MULTIPLIER,
        bucket=(value % PREFIX_MULTIPLIER) // SCORE_BUCKET_MULTIPLIER,
        suffix=value % SCORE_BUCKET_MULTIPLIER,
    )


def prefix_at_or_above(min_prefix: int, rng: random.Random) -> int:
    low = min(PREFIX_MAX, max(PREFIX_MIN, min_prefix))
    return rng.randint(low, PREFIX_MAX)


def prefix_below(min_prefix: int, rng: random.Random) -> int:
    """
    A prefix strictly below the minimum.

    When the minimum is already the lowest prefix there is no room below
    it and the lowest prefix is returned.
    """
    ceiling = min(PREFIX_MAX, max(PREFIX_MIN, min_prefix))
    if ceiling <= PREFIX_MIN:
        return PREFIX_MIN
    return rng.randint(PREFIX_MIN, ceiling - 1)


def generate_code(score: float, passed: bool, min_prefix: int, rng: Optional[random.Random] = None) -> str:
    """Verification code for one graded submission."""
    rng = rng or random.SystemRandom()
    prefix = prefix_at_or_above(min_prefix, rng) if passed else prefix_below(min_prefix, rng)
    return str(encode(prefix, score_bucket(score), rng.randint(0, MAX_SUFFIX)))


def escalate(code: str) -> str:
    """Mark a code for manual review by appending a zero."""
    return str(int(code) * 10)


def get_minimum_accepted_value(prefix: int) -> int:
    """Lowest code an LMS should accept as a pass for this minimum prefix."""
    clean = normalize_prefix(prefix)
    if clean is None:
        raise InvalidInputError(f"Prefix must be an integer in [{PREFIX_MIN}, {PREFIX_MAX}], got {prefix!r}")
    return clean * PREFIX_MULTIPLIER


def get_maximum_accepted_value() -> int:
    return PREFIX_MAX * PREFIX_MULTIPLIER + MAX_BUCKET * SCORE_BUCKET_MULTIPLIER + MAX_SUFFIX

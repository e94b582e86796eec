"""Confidence estimation for learned patterns.

Confidence is the Wilson score lower bound (95%) of the success rate,
computed after folding in a neutral prior worth z^2 successes. The prior
is the exact amount that makes an unobserved pattern score 0.5, so:

- ``calculate_confidence(0, 0) == 0.5`` (the creation default)
- a first success raises confidence above 0.5 (about 0.56)
- every additional success raises it, every failure lowers it
- with many observations the prior washes out and the value converges
  to the plain Wilson lower bound

The plain bound is exposed as :func:`wilson_lower_bound`.
"""

from __future__ import annotations

import math

Z_95 = 1.96
PRIOR_SUCCESSES = Z_95 * Z_95
DEFAULT_CONFIDENCE = 0.5


def wilson_lower_bound(successes: float, failures: float, z: float = Z_95) -> float:
    """Lower bound of the Wilson score interval for ``successes / total``.

    Returns 0.5 when there are no observations. The result is clamped
    to [0, 1].
    """
    n = successes + failures
    if n <= 0:
        return DEFAULT_CONFIDENCE
    p = successes / n
    z2 = z * z
    denominator = 1 + z2 / n
    center = p + z2 / (2 * n)
    spread = z * math.sqrt((p * (1 - p) + z2 / (4 * n)) / n)
    return max(0.0, min(1.0, (center - spread) / denominator))


def calculate_confidence(success_count: int, fail_count: int) -> float:
    """Confidence score for a pattern with the given outcome counts.

    Args:
        success_count: Successful uses (>= 0).
        fail_count: Failed uses (>= 0).

    Returns:
        Confidence in [0, 1], monotonically non-decreasing in
        success_count and non-increasing in fail_count.

    Raises:
        ValueError: If either count is negative.
    """
    if success_count < 0 or fail_count < 0:
        raise ValueError("outcome counts must be non-negative")
    if success_count == 0 and fail_count == 0:
        return DEFAULT_CONFIDENCE
    return wilson_lower_bound(success_count + PRIOR_SUCCESSES, fail_count)

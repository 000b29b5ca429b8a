"""
Logprob Confidence

Derives a 10..100 confidence score for an AI grading from the per-token
log-probabilities of the completion.
"""

import math
from typing import Optional, Sequence

import numpy as np

from learnhub.common.utils import clamp, round_half_up

DEFAULT_CONFIDENCE = 75
MIN_CONFIDENCE = 10
MAX_CONFIDENCE = 100


def confidence_from_logprobs(logprobs: Optional[Sequence[float]]) -> int:
    """
    Compute a confidence score from token log-probabilities.

    The mean log-probability gives the base probability. High token-to-token
    variance lowers it (never below 70% of the base) and responses shorter
    than 50 tokens are scaled down proportionally.

    Args:
        logprobs: Log-probability of each generated token

    Returns:
        Confidence between 10 and 100; 75 when no log-probabilities are available
    """
    if not logprobs:
        return DEFAULT_CONFIDENCE

    values = np.asarray(list(logprobs), dtype=float)
    values = values[np.isfinite(values)]
    if values.size == 0:
        return DEFAULT_CONFIDENCE

    base = clamp(math.exp(float(values.mean())) * 100, MIN_CONFIDENCE, MAX_CONFIDENCE)
    variance = float(values.var()) if values.size > 1 else 0.0
    variance_adjustment = max(0.7, 1 - variance * 0.3)
    length_factor = min(1.0, values.size / 50)

    return int(clamp(round_half_up(base * variance_adjustment * length_factor), MIN_CONFIDENCE, MAX_CONFIDENCE))

"""
Utility functions for fading channel processing.
"""

from typing import Sequence

import numpy as np


def db_to_linear(db: float) -> float:
    """Convert dB to linear power scale."""
    return 10 ** (db / 10)


def signal_power_db(signal: np.ndarray) -> float:
    """Mean power of a sample sequence in dB (floored for silent input)."""
    if len(signal) == 0:
        return float("-inf")
    power = np.mean(np.abs(signal) ** 2)
    return float(10 * np.log10(power + 1e-12))


def rms_delay_spread(delays_s: Sequence[float], powers: Sequence[float]) -> float:
    """
    Power-weighted RMS delay spread in seconds.

    Args:
        delays_s: Path delays in seconds
        powers: Linear path powers (need not be normalized)

    Returns:
        RMS delay spread, 0 for a single path
    """
    delays = np.asarray(delays_s, dtype=np.float64)
    weights = np.asarray(powers, dtype=np.float64)

    if len(delays) <= 1 or np.sum(weights) <= 0:
        return 0.0

    weights = weights / np.sum(weights)
    mean_delay = np.sum(weights * delays)
    return float(np.sqrt(np.sum(weights * (delays - mean_delay) ** 2)))

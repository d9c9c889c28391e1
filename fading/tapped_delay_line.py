"""
Tapped delay line (TDL) convolver.

Sums delayed copies of the working signal, each weighted by a fixed
complex tap (static profiles) or by a per-sample fading gain (dynamic
profiles). Delays are integer samples, so the line has no interpolation
filter and no intrinsic latency.
"""

import logging
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)


class TappedDelayLine:
    """
    Integer-sample tapped delay line.

    Samples before the start of the signal are treated as zero.
    """

    # Latency of the channel filter [samples]
    FILTER_DELAY = 0

    def __init__(self, delays_samples: Sequence[int]):
        """
        Initialize delay line.

        Args:
            delays_samples: Quantized, non-negative path delays
        """
        delays = np.asarray(delays_samples)
        if delays.ndim != 1 or len(delays) == 0:
            raise ValueError("Delay line needs a 1-D, non-empty delay vector")
        if not np.issubdtype(delays.dtype, np.integer):
            raise ValueError(f"Delays must be integer samples, got dtype {delays.dtype}")
        if np.any(delays < 0):
            raise ValueError(f"Delays must be non-negative, got {delays}")

        self.delays = delays.astype(np.int64)
        logger.debug(f"Delay line: {self.num_taps} taps, max delay {self.max_delay} samples")

    @property
    def num_taps(self) -> int:
        return len(self.delays)

    @property
    def max_delay(self) -> int:
        return int(np.max(self.delays))

    def apply_static(self, signal: np.ndarray, weights: np.ndarray) -> np.ndarray:
        """
        y[n] = sum_p w_p * x[n - d_p] over the whole signal.

        Args:
            signal: Working signal
            weights: One complex weight per tap

        Returns:
            Convolved signal, same length as input
        """
        weights = np.asarray(weights)
        if weights.shape != (self.num_taps,):
            raise ValueError(
                f"Expected {self.num_taps} tap weights, got shape {weights.shape}"
            )

        num_samples = len(signal)
        output = np.zeros(num_samples, dtype=np.complex128)

        for delay, weight in zip(self.delays, weights):
            if delay >= num_samples:
                continue
            output[delay:] += weight * signal[:num_samples - delay]

        return output

    def apply_dynamic(
        self,
        signal: np.ndarray,
        gains: np.ndarray,
        start: int
    ) -> np.ndarray:
        """
        y[n] = sum_p g_p[n] * x[n - d_p] for n in [start, start + len(gains)).

        Args:
            signal: Full working signal (earlier samples feed the delays)
            gains: Fading gains, shape (span, num_taps), row i belongs to n = start + i
            start: Global index of the first output sample

        Returns:
            Output for the requested span
        """
        if gains.ndim != 2 or gains.shape[1] != self.num_taps:
            raise ValueError(
                f"Expected gains with {self.num_taps} columns, got shape {gains.shape}"
            )

        span = gains.shape[0]
        stop = start + span
        if start < 0 or stop > len(signal):
            raise ValueError(
                f"Span [{start}, {stop}) outside signal of {len(signal)} samples"
            )

        output = np.zeros(span, dtype=np.complex128)

        for p, delay in enumerate(self.delays):
            output += gains[:, p] * self._delayed_slice(signal, start, stop, delay)

        return output

    @staticmethod
    def _delayed_slice(signal: np.ndarray, start: int, stop: int, delay: int) -> np.ndarray:
        """x[n - delay] for n in [start, stop), zero-filled before the signal start."""
        src_start = start - delay
        src_stop = stop - delay

        if src_start >= 0:
            return signal[src_start:src_stop]

        zeros = np.zeros(min(-src_start, stop - start), dtype=signal.dtype)
        if src_stop <= 0:
            return zeros
        return np.concatenate([zeros, signal[:src_stop]])

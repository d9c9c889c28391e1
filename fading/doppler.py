"""
Doppler fading process generator.

PURPOSE:
Synthesizes, for every path of a dynamic profile, a complex gain sequence
whose autocorrelation follows the classical (Jakes) Doppler spectrum, with
an optional deterministic line-of-sight component (Rician fading).

MODEL:
    diffuse(n) = 1/sqrt(N) * sum_i exp(j * (2*pi * fd * cos(theta_i) * n/fs + phi_i))
    gain(n)    = a * (diffuse(n) / sqrt(K+1)
                      + sqrt(K/(K+1)) * exp(j * (2*pi * f_los * n/fs + phi_los)))

    N = 8 sinusoids per path, a = normalized path amplitude, n = GLOBAL
    sample index. K = inf keeps only the LOS term.

NOTES:
- Every sample is a closed-form function of its global index, so the only
  state carried between segments is the index of the next sample
  (SegmentState). Splitting a run into segments never changes the output.
- Angles and phases come from a versioned DrawSource keyed by
  (seed, path, sinusoid), so no two paths share a draw.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy import special

from fading.config import NUM_SINUSOIDS
from fading.profiles import DynamicProfile

logger = logging.getLogger(__name__)


# ============================================================================
# DETERMINISTIC DRAWS
# ============================================================================


class DrawSource:
    """
    Seeded source of per-path, per-sinusoid random draws.

    Mapping (version 1): the draws of sinusoid i of path p come from
    numpy Generator(PCG64(SeedSequence(entropy=seed, spawn_key=(1, p, i)))).
    The first random() is the angle offset u in [0, 1), the second is the
    phase fraction v in [0, 1).
    """

    NAME = "pcg64-seedseq"
    VERSION = 1

    def __init__(self, seed: int):
        if seed < 0:
            raise ValueError(f"Seed must be non-negative, got {seed}")
        self.seed = int(seed)

    def __repr__(self) -> str:
        return f"DrawSource({self.NAME} v{self.VERSION}, seed={self.seed})"

    def draw(self, path_index: int, sinusoid_index: int) -> Tuple[float, float]:
        """Return (u, v) for one sinusoid of one path."""
        seq = np.random.SeedSequence(
            entropy=self.seed,
            spawn_key=(self.VERSION, path_index, sinusoid_index)
        )
        rng = np.random.Generator(np.random.PCG64(seq))
        u, v = rng.random(2)
        return float(u), float(v)

    def sinusoid_parameters(
        self,
        path_index: int,
        num_sinusoids: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Arrival angles and initial phases for one path.

        Angles are spread one per sector of width 2*pi/N so the Doppler
        frequencies sample the whole circle.
        """
        angles = np.empty(num_sinusoids)
        phases = np.empty(num_sinusoids)

        for i in range(num_sinusoids):
            u, v = self.draw(path_index, i)
            angles[i] = 2 * np.pi * (i + u) / num_sinusoids
            phases[i] = 2 * np.pi * v

        return angles, phases


# ============================================================================
# SEGMENT STATE
# ============================================================================


@dataclass(frozen=True)
class SegmentState:
    """Continuation point of the fading process: the next global sample index."""
    next_sample: int = 0

    def __post_init__(self):
        if self.next_sample < 0:
            raise ValueError(f"Sample index must be non-negative, got {self.next_sample}")

    def advance(self, num_samples: int) -> "SegmentState":
        return SegmentState(next_sample=self.next_sample + num_samples)


# ============================================================================
# GENERATOR
# ============================================================================


@dataclass(frozen=True)
class _PathOscillators:
    """Precomputed sinusoid bank for one path."""
    amplitude: float
    diffuse_scale: float
    los_scale: float
    omegas: np.ndarray          # rad/sample, one per sinusoid
    phases: np.ndarray
    los_omega: float
    los_phase: float


class DopplerProcessGenerator:
    """
    Sum-of-sinusoids fading process for every path of a dynamic profile.
    """

    def __init__(
        self,
        profile: DynamicProfile,
        sample_rate_hz: float,
        max_doppler_hz: float,
        draw_source: DrawSource,
        num_sinusoids: int = NUM_SINUSOIDS
    ):
        """
        Initialize generator.

        Args:
            profile: Dynamic channel profile
            sample_rate_hz: Sample rate
            max_doppler_hz: Maximum Doppler shift of the diffuse component
            draw_source: Source of angle/phase draws
            num_sinusoids: Sinusoids per path
        """
        if sample_rate_hz <= 0:
            raise ValueError(f"Sample rate must be positive, got {sample_rate_hz}")
        if max_doppler_hz <= 0:
            raise ValueError(f"Maximum Doppler must be positive, got {max_doppler_hz}")
        if num_sinusoids < 1:
            raise ValueError(f"Need at least one sinusoid, got {num_sinusoids}")

        self.profile = profile
        self.sample_rate = sample_rate_hz
        self.max_doppler_hz = max_doppler_hz
        self.draw_source = draw_source
        self.num_sinusoids = num_sinusoids
        self.oscillators = self._build_oscillators()

        logger.debug(
            f"Doppler generator: {profile.num_paths} paths, fd={max_doppler_hz:.4f} Hz, "
            f"{num_sinusoids} sinusoids, {draw_source!r}"
        )

    @property
    def num_paths(self) -> int:
        return self.profile.num_paths

    def _build_oscillators(self) -> List[_PathOscillators]:
        amplitudes = self.profile.normalized_amplitudes()
        oscillators = []

        for index, path in enumerate(self.profile.paths):
            angles, phases = self.draw_source.sinusoid_parameters(index, self.num_sinusoids)
            omegas = 2 * np.pi * self.max_doppler_hz * np.cos(angles) / self.sample_rate

            k = path.k_factor
            if math.isinf(k):
                diffuse_scale, los_scale = 0.0, 1.0
            else:
                diffuse_scale = 1 / math.sqrt(k + 1)
                los_scale = math.sqrt(k / (k + 1))

            oscillators.append(_PathOscillators(
                amplitude=float(amplitudes[index]),
                diffuse_scale=diffuse_scale,
                los_scale=los_scale,
                omegas=omegas,
                phases=phases,
                los_omega=2 * np.pi * path.direct_doppler_hz / self.sample_rate,
                los_phase=path.direct_phase_rad
            ))

        return oscillators

    def path_gains(self, path_index: int, start: int, length: int) -> np.ndarray:
        """
        Gain sequence of one path for global samples [start, start + length).
        """
        osc = self.oscillators[path_index]
        n = np.arange(start, start + length, dtype=np.float64)
        gains = np.zeros(length, dtype=np.complex128)

        if osc.diffuse_scale > 0:
            diffuse = np.zeros(length, dtype=np.complex128)
            for omega, phase in zip(osc.omegas, osc.phases):
                diffuse += np.exp(1j * (omega * n + phase))
            gains += diffuse * (osc.diffuse_scale / np.sqrt(self.num_sinusoids))

        if osc.los_scale > 0:
            gains += osc.los_scale * np.exp(1j * (osc.los_omega * n + osc.los_phase))

        return osc.amplitude * gains

    def generate(
        self,
        state: SegmentState,
        length: int,
        executor: Optional[Executor] = None
    ) -> Tuple[np.ndarray, SegmentState]:
        """
        Extend every path's gain sequence by `length` samples.

        Args:
            state: Continuation point from the previous segment
            length: Number of samples to produce
            executor: Optional pool for per-path generation

        Returns:
            Tuple of (gains with shape (length, num_paths), next state)
        """
        if length < 0:
            raise ValueError(f"Length must be non-negative, got {length}")

        start = state.next_sample
        gains = np.empty((length, self.num_paths), dtype=np.complex128)

        if executor is None:
            columns = [self.path_gains(p, start, length) for p in range(self.num_paths)]
        else:
            columns = list(executor.map(
                lambda p: self.path_gains(p, start, length),
                range(self.num_paths)
            ))

        for p, column in enumerate(columns):
            gains[:, p] = column

        return gains, state.advance(length)


# ============================================================================
# REFERENCE STATISTICS
# ============================================================================


def classical_autocorrelation(
    lags: np.ndarray,
    max_doppler_hz: float,
    sample_rate_hz: float
) -> np.ndarray:
    """
    Normalized autocorrelation of the classical Doppler spectrum, J0(2*pi*fd*tau).

    Args:
        lags: Lags in samples
        max_doppler_hz: Maximum Doppler shift
        sample_rate_hz: Sample rate

    Returns:
        Autocorrelation at each lag
    """
    tau = np.asarray(lags, dtype=np.float64) / sample_rate_hz
    return special.j0(2 * np.pi * max_doppler_hz * tau)

"""
Channel profiles for the fading channel simulator.

A profile is either a STATIC set of fixed complex taps (ETSI RL20 / RC20)
or a DYNAMIC set of Doppler-faded paths, each with an optional Rician
line-of-sight component. The catalogue below holds the tabulated
parameters of every supported channel model.

USAGE:
    from fading.profiles import get_profile

    profile = get_profile("TDL-A", max_doppler_hz=32.4, delay_spread_s=300e-9)
    delays = quantize_delays(profile.delays_s, 6.912e6)

REFERENCES:
- ETSI EN 300 744 V1.6.1, Annex B, Table B.1 (RL20, RC20)
- COST 207 Final Report, Table 2.4.2d (TU-6)
- 3GPP TR 38.901 V16.1.0, Tables 7.7.2-1 .. 7.7.2-5 (TDL-A .. TDL-E)
- Ahn et al., "Characterization and Modeling of UHF Wireless Channel in
  Terrestrial SFN Environments: Urban Fading Profiles", IEEE Trans.
  Broadcasting, 2022 (Seoul-S1..S3, India-Rural, India-Urban)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import ClassVar, Optional, Sequence, Tuple, Union

import numpy as np

from fading.config import ChannelModel, ProfileKind
from fading.utils import db_to_linear

INF = math.inf


# ============================================================================
# DATA STRUCTURES
# ============================================================================


@dataclass(frozen=True)
class Path:
    """Single faded path of a dynamic profile."""
    delay_s: float                   # Delay relative to the reference path
    avg_gain_db: float               # Average path power [dB]
    k_factor: float = 0.0            # Rician K (linear), inf for pure LOS
    direct_doppler_hz: float = 0.0   # Doppler of the LOS component
    direct_phase_rad: float = 0.0    # Initial phase of the LOS component

    def __post_init__(self):
        if math.isnan(self.delay_s) or math.isinf(self.delay_s):
            raise ValueError(f"Path delay must be finite, got {self.delay_s}")
        if not math.isfinite(self.avg_gain_db):
            raise ValueError(f"Path gain must be finite, got {self.avg_gain_db}")
        if math.isnan(self.k_factor) or self.k_factor < 0:
            raise ValueError(f"K-factor must be non-negative, got {self.k_factor}")

    @property
    def is_line_of_sight(self) -> bool:
        return math.isinf(self.k_factor)


@dataclass(frozen=True)
class StaticTap:
    """Fixed tap with complex weight gain * exp(-j * phase)."""
    delay_s: float
    gain: float
    phase_rad: float = 0.0

    def __post_init__(self):
        if not math.isfinite(self.delay_s):
            raise ValueError(f"Tap delay must be finite, got {self.delay_s}")
        if not math.isfinite(self.gain) or self.gain < 0:
            raise ValueError(f"Tap gain must be finite and non-negative, got {self.gain}")
        if not math.isfinite(self.phase_rad):
            raise ValueError(f"Tap phase must be finite, got {self.phase_rad}")

    @property
    def weight(self) -> complex:
        return self.gain * np.exp(-1j * self.phase_rad)


@dataclass(frozen=True)
class StaticProfile:
    """Time-invariant tapped delay line."""
    taps: Tuple[StaticTap, ...]
    name: str = "custom"
    tabulated_gain_db: Optional[Tuple[float, ...]] = None   # Reported gains, before normalization

    kind: ClassVar[ProfileKind] = ProfileKind.STATIC

    def __post_init__(self):
        object.__setattr__(self, "taps", tuple(self.taps))
        if not self.taps:
            raise ValueError("Channel profile must contain at least one path")
        if self.tabulated_gain_db is not None:
            object.__setattr__(self, "tabulated_gain_db", tuple(self.tabulated_gain_db))
            if len(self.tabulated_gain_db) != len(self.taps):
                raise ValueError(
                    f"Expected {len(self.taps)} tabulated gains, got {len(self.tabulated_gain_db)}"
                )

    @property
    def num_paths(self) -> int:
        return len(self.taps)

    @property
    def delays_s(self) -> np.ndarray:
        return np.array([tap.delay_s for tap in self.taps], dtype=np.float64)

    @property
    def linear_powers(self) -> np.ndarray:
        return np.array([tap.gain ** 2 for tap in self.taps], dtype=np.float64)

    @property
    def avg_path_gain_db(self) -> np.ndarray:
        if self.tabulated_gain_db is not None:
            return np.array(self.tabulated_gain_db, dtype=np.float64)
        with np.errstate(divide="ignore"):
            return 10 * np.log10(self.linear_powers)

    def weights(self) -> np.ndarray:
        """Complex tap weights in path order."""
        return np.array([tap.weight for tap in self.taps], dtype=np.complex128)


@dataclass(frozen=True)
class DynamicProfile:
    """Doppler-faded tapped delay line with optional LOS components."""
    paths: Tuple[Path, ...]
    name: str = "custom"

    kind: ClassVar[ProfileKind] = ProfileKind.DYNAMIC

    def __post_init__(self):
        object.__setattr__(self, "paths", tuple(self.paths))
        if not self.paths:
            raise ValueError("Channel profile must contain at least one path")

    @property
    def num_paths(self) -> int:
        return len(self.paths)

    @property
    def delays_s(self) -> np.ndarray:
        return np.array([p.delay_s for p in self.paths], dtype=np.float64)

    @property
    def avg_path_gain_db(self) -> np.ndarray:
        return np.array([p.avg_gain_db for p in self.paths], dtype=np.float64)

    @property
    def linear_powers(self) -> np.ndarray:
        return db_to_linear(self.avg_path_gain_db)

    @property
    def k_factors(self) -> np.ndarray:
        return np.array([p.k_factor for p in self.paths], dtype=np.float64)

    def normalized_amplitudes(self) -> np.ndarray:
        """Per-path amplitudes scaled so the total average power is 1."""
        powers = self.linear_powers
        total = np.sum(powers)
        if total <= 0:
            raise ValueError(f"Profile {self.name} has no power")
        return np.sqrt(powers / total)


ChannelProfile = Union[StaticProfile, DynamicProfile]


# ============================================================================
# DELAY QUANTIZATION
# ============================================================================


def delay_origin_offset(delays_s: Sequence[float]) -> float:
    """Most negative delay, or 0 when every delay is already non-negative."""
    return min(0.0, float(np.min(delays_s)))


def quantize_delays(delays_s: Sequence[float], sample_rate_hz: float) -> np.ndarray:
    """
    Shift delays to a non-negative origin and round to integer samples.

    Rounding is half up. Paths may share a sample delay.
    """
    delays = np.asarray(delays_s, dtype=np.float64)
    shifted = delays - delay_origin_offset(delays)
    samples = np.floor(shifted / (1.0 / sample_rate_hz) + 0.5).astype(np.int64)

    if np.any(samples < 0):
        raise ValueError(f"Negative quantized delay after origin shift: {samples}")

    return samples


# ============================================================================
# CATALOGUE TABLES
# ============================================================================


@dataclass(frozen=True)
class _StaticTable:
    amplitudes: Tuple[float, ...]
    delays_us: Tuple[float, ...]
    phases_rad: Tuple[float, ...]
    los_k_factor: Optional[float] = None   # Adds a direct tap at delay 0

    def build(self, name: str) -> StaticProfile:
        amplitudes = list(self.amplitudes)
        delays_us = list(self.delays_us)
        phases = list(self.phases_rad)

        if self.los_k_factor is not None:
            los = math.sqrt(self.los_k_factor * sum(a ** 2 for a in amplitudes))
            amplitudes.insert(0, los)
            delays_us.insert(0, 0.0)
            phases.insert(0, 0.0)

        norm = math.sqrt(sum(a ** 2 for a in amplitudes))
        taps = tuple(
            StaticTap(delay_s=d * 1e-6, gain=a / norm, phase_rad=ph)
            for a, d, ph in zip(amplitudes, delays_us, phases)
        )
        gains_db = tuple(10 * math.log10(a ** 2) for a in amplitudes)
        return StaticProfile(taps=taps, name=name, tabulated_gain_db=gains_db)


@dataclass(frozen=True)
class _DynamicTable:
    gains_db: Tuple[float, ...]
    delays: Tuple[float, ...]                   # us, or normalized for TDL
    k_factors: Optional[Tuple[float, ...]] = None
    doppler_ratios: Optional[Tuple[float, ...]] = None   # x max Doppler
    normalized_delays: bool = False

    def build(
        self,
        name: str,
        max_doppler_hz: float,
        delay_spread_s: Optional[float]
    ) -> DynamicProfile:
        n = len(self.gains_db)
        scale = delay_spread_s if self.normalized_delays else 1e-6
        k_factors = self.k_factors or (0.0,) * n
        ratios = self.doppler_ratios or (0.0,) * n

        paths = tuple(
            Path(
                delay_s=d * scale,
                avg_gain_db=g,
                k_factor=k,
                direct_doppler_hz=r * max_doppler_hz,
                direct_phase_rad=0.0
            )
            for g, d, k, r in zip(self.gains_db, self.delays, k_factors, ratios)
        )
        return DynamicProfile(paths=paths, name=name)


_RL20_AMPLITUDES = (
    0.057662, 0.176809, 0.407163, 0.303585, 0.258782,
    0.061831, 0.150340, 0.051534, 0.185074, 0.400967,
    0.295723, 0.350825, 0.262909, 0.225894, 0.170996,
    0.149723, 0.240140, 0.116587, 0.221155, 0.259730,
)
_RL20_DELAYS_US = (
    1.003019, 5.422091, 0.518650, 2.751772, 0.602895,
    1.016585, 0.143556, 0.153832, 3.324866, 1.935570,
    0.429948, 3.228872, 0.848831, 0.073883, 0.203952,
    0.194207, 0.924450, 1.381320, 0.640512, 1.368671,
)
_RL20_PHASES = (
    4.855121, 3.419109, 5.864470, 2.215894, 3.758058,
    5.430202, 3.952093, 1.093586, 5.775198, 0.154459,
    5.928383, 3.053023, 0.628578, 2.128544, 1.099463,
    3.462951, 3.664773, 2.833799, 3.334290, 0.393889,
)

CATALOGUE = MappingProxyType({
    ChannelModel.RL20: _StaticTable(
        amplitudes=_RL20_AMPLITUDES,
        delays_us=_RL20_DELAYS_US,
        phases_rad=_RL20_PHASES,
    ),
    ChannelModel.RC20: _StaticTable(
        amplitudes=_RL20_AMPLITUDES,
        delays_us=_RL20_DELAYS_US,
        phases_rad=_RL20_PHASES,
        los_k_factor=10.0,
    ),
    ChannelModel.TU6: _DynamicTable(
        gains_db=(-3.0, 0.0, -2.0, -6.0, -8.0, -10.0),
        delays=(0.0, 0.2, 0.5, 1.6, 2.3, 5.0),
    ),
    ChannelModel.TDL_A: _DynamicTable(
        gains_db=(
            -13.4, 0.0, -2.2, -4.0, -6.0, -8.2, -9.9, -10.5, -7.5, -15.9,
            -6.6, -16.7, -12.4, -15.2, -10.8, -11.3, -12.7, -16.2, -18.3, -18.9,
            -16.6, -19.9, -29.7,
        ),
        delays=(
            0.0000, 0.3819, 0.4025, 0.5868, 0.4610, 0.5375, 0.6708, 0.5750, 0.7618, 1.5375,
            1.8978, 2.2242, 2.1718, 2.4942, 2.5119, 3.0582, 4.0810, 4.4579, 4.5695, 4.7966,
            5.0066, 5.3043, 9.6586,
        ),
        normalized_delays=True,
    ),
    ChannelModel.TDL_B: _DynamicTable(
        gains_db=(
            0.0, -2.2, -4.0, -3.2, -9.8, -1.2, -3.4, -5.2, -7.6, -3.0,
            -8.9, -9.0, -4.8, -5.7, -7.5, -1.9, -7.6, -12.2, -9.8, -11.4,
            -14.9, -9.2, -11.3,
        ),
        delays=(
            0.0000, 0.1072, 0.2155, 0.2095, 0.2870, 0.2986, 0.3752, 0.5055, 0.3681, 0.3697,
            0.5700, 0.5283, 1.1021, 1.2756, 1.5474, 1.7842, 2.0169, 2.8294, 3.0219, 3.6187,
            4.1067, 4.2790, 4.7834,
        ),
        normalized_delays=True,
    ),
    ChannelModel.TDL_C: _DynamicTable(
        gains_db=(
            -4.4, -1.2, -3.5, -5.2, -2.5, 0.0, -2.2, -3.9, -7.4, -7.1,
            -10.7, -11.1, -5.1, -6.8, -8.7, -13.2, -13.9, -13.9, -15.8, -17.1,
            -16.0, -15.7, -21.6, -22.8,
        ),
        delays=(
            0.0000, 0.2099, 0.2219, 0.2329, 0.2176, 0.6366, 0.6448, 0.6560, 0.6584, 0.7935,
            0.8213, 0.9336, 1.2285, 1.3083, 2.1704, 2.7105, 4.2589, 4.6003, 5.4902, 5.6077,
            6.3065, 6.6374, 7.0427, 8.6523,
        ),
        normalized_delays=True,
    ),
    ChannelModel.TDL_D: _DynamicTable(
        gains_db=(
            -0.2, -13.5, -18.8, -21.0, -22.8, -17.9, -20.1, -21.9, -22.9, -27.8, -23.6,
            -24.8, -30.0, -27.7,
        ),
        delays=(
            0.000, 0.000, 0.035, 0.612, 1.363, 1.405, 1.804, 2.596, 1.775, 4.042, 7.937,
            9.424, 9.708, 12.525,
        ),
        k_factors=(INF,) + (0.0,) * 13,
        doppler_ratios=(0.7,) + (0.0,) * 13,
        normalized_delays=True,
    ),
    ChannelModel.TDL_E: _DynamicTable(
        gains_db=(
            -0.03, -22.03, -15.8, -18.1, -19.8, -22.9, -22.4, -18.6, -20.8, -22.6, -22.3,
            -25.6, -20.2, -29.8, -29.2,
        ),
        delays=(
            0.0000, 0.0000, 0.5133, 0.5440, 0.5630, 0.5440, 0.7112, 1.9092, 1.9293, 1.9589, 2.6426,
            3.7136, 5.4524, 12.0034, 20.6519,
        ),
        k_factors=(INF,) + (0.0,) * 14,
        doppler_ratios=(0.7,) + (0.0,) * 14,
        normalized_delays=True,
    ),
    ChannelModel.SEOUL_S1: _DynamicTable(
        gains_db=(-9.46, -7.34, 0.00, -1.33, -13.00, -16.54),
        delays=(-14.612268519, -9.403935185, 0.000000000, 14.033564815, 32.407407407, 35.300925926),
        k_factors=(0.0, 0.0, INF, 0.0, 0.0, 0.0),
        doppler_ratios=(0.0, 0.0, 0.7, 0.0, 0.0, 0.0),
    ),
    ChannelModel.SEOUL_S2: _DynamicTable(
        gains_db=(-6.50, -9.54, 0.00, -9.59, -15.84),
        delays=(-49.189814815, -33.564814815, 0.000000000, 3.327546296, 31.684027778),
        k_factors=(INF, 0.0, INF, 0.0, 0.0),
        doppler_ratios=(-1.0, 0.0, 1.0, 0.0, 0.0),
    ),
    ChannelModel.SEOUL_S3: _DynamicTable(
        gains_db=(-0.96, -3.65, 0.00, -6.03, -13.74, -0.17),
        delays=(-26.041666667, -12.876157407, 0.000000000, 10.995370370, 13.165509259, 37.471064815),
        k_factors=(INF, 0.0, INF, 0.0, 0.0, INF),
        doppler_ratios=(0.7771, 0.0, -0.3160, 0.0, 0.0, 0.4312),
    ),
    ChannelModel.INDIA_RURAL: _DynamicTable(
        gains_db=(
            -0.6, 0.0, -6.2, -15.3, -28.0, -27.6, -26.6, -28.5, -27.9, -27.2,
            -18.7, -23.1, -27.7, -19.2, -24.5, -22.9, -26.6, -28.0,
        ),
        delays=(
            -6.8, 0.0, 9.6, 21.8, 37.7, 46.4, 52.6, 53.8, 54.2, 59.6,
            60.3, 30.7, 61.9, 62.6, 66.6, 66.8, 67.4, 97.9,
        ),
        k_factors=(INF, INF, INF, INF) + (0.0,) * 14,
        doppler_ratios=(-0.7193, 0.9528, 0.9371, 0.7615) + (0.0,) * 14,
    ),
    ChannelModel.INDIA_URBAN: _DynamicTable(
        gains_db=(
            -1.9, -12.0, 0.0, -6.4, -12.5, -21.7, -11.5, -9.7, -22.2, -24.6,
            -17.2, -28.5, -29.1, -29.4, -30.6, -21.7, -27.4, -14.7, -24.9, -19.8,
        ),
        delays=(
            -2.1, -0.8, 0.0, 0.5, 1.3, 1.9, 4.1, 4.6, 8.2, 9.4,
            9.9, 11.9, 11.9, 12.0, 14.8, 16.6, 18.3, 21.2, 23.5, 26.5,
        ),
    ),
})


def profile_kind(model) -> ProfileKind:
    """Static or dynamic, without building the profile."""
    table = CATALOGUE[ChannelModel.parse(model)]
    return ProfileKind.STATIC if isinstance(table, _StaticTable) else ProfileKind.DYNAMIC


def get_profile(
    model,
    max_doppler_hz: float,
    delay_spread_s: Optional[float] = None
) -> ChannelProfile:
    """
    Resolve a catalogued channel model into a profile.

    Args:
        model: ChannelModel or its identifier (e.g. "Seoul-S2")
        max_doppler_hz: Maximum Doppler frequency, scales LOS Doppler shifts
        delay_spread_s: RMS delay spread, required by the TDL models

    Returns:
        StaticProfile or DynamicProfile

    Raises:
        ValueError: Unknown model or missing delay spread
    """
    model = ChannelModel.parse(model)
    table = CATALOGUE[model]

    if isinstance(table, _StaticTable):
        return table.build(model.value)

    if table.normalized_delays:
        if delay_spread_s is None:
            raise ValueError(f"{model.value} requires a delay spread")
        if delay_spread_s <= 0:
            raise ValueError(f"Delay spread must be positive, got {delay_spread_s}")

    return table.build(model.value, max_doppler_hz, delay_spread_s)

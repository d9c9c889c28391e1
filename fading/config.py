"""
Fading channel configuration constants and data structures.
Channel models follow ETSI EN 300 744, COST 207, 3GPP TR 38.901 and the
ATSC 3.0 SFN field measurements (Seoul / India profiles).
"""

import numbers
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Speed of light [km/h]
SPEED_OF_LIGHT_KMH = 299792.458 * 3600

# Doppler substituted for a static receiver so the process is never frozen
ZERO_DOPPLER_FLOOR_HZ = 0.001

# Samples per channel segment (memory bound only, output does not depend on it)
DEFAULT_SEGMENT_SIZE = 200000

# Sinusoids per path in the sum-of-sinusoids process
NUM_SINUSOIDS = 8

# ATSC 3.0 baseband sample rate for a 6 MHz channel
ATSC_SAMPLE_RATE_HZ = 6.912e6


class ChannelModel(Enum):
    """Catalogued channel models."""
    RL20 = "RL20"
    RC20 = "RC20"
    TU6 = "TU-6"
    TDL_A = "TDL-A"
    TDL_B = "TDL-B"
    TDL_C = "TDL-C"
    TDL_D = "TDL-D"
    TDL_E = "TDL-E"
    SEOUL_S1 = "Seoul-S1"
    SEOUL_S2 = "Seoul-S2"
    SEOUL_S3 = "Seoul-S3"
    INDIA_RURAL = "India-Rural"
    INDIA_URBAN = "India-Urban"

    @classmethod
    def parse(cls, value) -> "ChannelModel":
        """Resolve a model from its identifier ('TDL-A') or enum name ('TDL_A')."""
        if isinstance(value, cls):
            return value
        for model in cls:
            if value == model.value or value == model.name:
                return model
        valid = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown channel model: {value!r} (expected one of {valid})")

    @property
    def requires_delay_spread(self) -> bool:
        """TDL delays are normalized and scaled by an RMS delay spread."""
        return self.value.startswith("TDL-")


class ProfileKind(Enum):
    """How a profile's taps vary in time."""
    STATIC = "static"      # Fixed complex tap weights
    DYNAMIC = "dynamic"    # Doppler-faded taps


@dataclass
class FadingChannelConfig:
    """Configuration for one fading channel run."""

    channel_model: ChannelModel = ChannelModel.TU6
    sample_rate_hz: float = ATSC_SAMPLE_RATE_HZ
    carrier_frequency_hz: float = 600e6
    speed_kmh: float = 0.0
    seed: int = 0
    delay_spread_s: Optional[float] = None   # TDL models only

    # Processing
    segment_size: int = DEFAULT_SEGMENT_SIZE
    workers: int = 1                         # Threads for per-path generation
    return_path_gains: bool = False

    def __post_init__(self):
        self.channel_model = ChannelModel.parse(self.channel_model)
        if self.sample_rate_hz <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate_hz}")
        if self.carrier_frequency_hz < 0:
            raise ValueError(f"Carrier frequency must be non-negative, got {self.carrier_frequency_hz}")
        if self.speed_kmh < 0:
            raise ValueError(f"Speed must be non-negative, got {self.speed_kmh}")
        if not isinstance(self.seed, numbers.Integral) or isinstance(self.seed, bool) or self.seed < 0:
            raise ValueError(f"Seed must be a non-negative integer, got {self.seed!r}")
        if self.channel_model.requires_delay_spread:
            if self.delay_spread_s is None:
                raise ValueError(f"{self.channel_model.value} requires a delay spread")
            if self.delay_spread_s <= 0:
                raise ValueError(f"Delay spread must be positive, got {self.delay_spread_s}")
        if self.segment_size <= 0:
            raise ValueError(f"Segment size must be positive, got {self.segment_size}")
        if self.workers < 1:
            raise ValueError(f"Workers must be at least 1, got {self.workers}")

    @property
    def sample_period_s(self) -> float:
        return 1.0 / self.sample_rate_hz

    def get_max_doppler_hz(self) -> float:
        """Maximum Doppler frequency, floored for a static receiver."""
        return max_doppler_hz(self.speed_kmh, self.carrier_frequency_hz)


def max_doppler_hz(speed_kmh: float, carrier_frequency_hz: float) -> float:
    """f_d = v / c * f_c, replaced by the floor when it is exactly zero."""
    fd = speed_kmh / SPEED_OF_LIGHT_KMH * carrier_frequency_hz
    if fd == 0:
        return ZERO_DOPPLER_FLOOR_HZ
    return fd

"""
Head/tail padding and output alignment.

The working signal is the input wrapped with dummy samples taken from the
input itself, so the first output sample already sees every path:

    padded = [ x[N-D:] | x | x[:D+L] ]

After convolution the first L + D and the last D samples are dropped,
leaving exactly N samples. D is the maximum path delay and L the channel
filter delay, both in samples.
"""

import numpy as np


def pad_input(signal: np.ndarray, max_delay: int, filter_delay: int = 0) -> np.ndarray:
    """
    Build the working signal for the delay line.

    Args:
        signal: Input samples (length N)
        max_delay: Maximum quantized path delay D
        filter_delay: Channel filter latency L

    Returns:
        Padded signal of length N + 2*D + L

    Raises:
        ValueError: Negative margins or input shorter than D + L
    """
    if max_delay < 0 or filter_delay < 0:
        raise ValueError(
            f"Padding margins must be non-negative, got D={max_delay}, L={filter_delay}"
        )

    num_samples = len(signal)
    if num_samples < max_delay + filter_delay:
        raise ValueError(
            f"Input of {num_samples} samples is shorter than the channel span "
            f"({max_delay} delay + {filter_delay} filter samples)"
        )

    head = signal[num_samples - max_delay:]
    tail = signal[:max_delay + filter_delay]
    return np.concatenate([head, signal, tail])


def trim_output(faded: np.ndarray, max_delay: int, filter_delay: int = 0) -> np.ndarray:
    """
    Drop the warm-up and tail margins from a padded-length result.

    Works along the first axis, so it also trims a (samples, paths) gain matrix.
    """
    stop = len(faded) - max_delay
    start = filter_delay + max_delay
    if stop < start:
        raise ValueError(
            f"Result of {len(faded)} samples is shorter than its margins "
            f"({start} head + {max_delay} tail)"
        )
    return faded[start:stop]


def padded_length(num_samples: int, max_delay: int, filter_delay: int = 0) -> int:
    """Length of the working signal for an input of num_samples."""
    return num_samples + 2 * max_delay + filter_delay

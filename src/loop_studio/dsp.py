#!/usr/bin/env python
"""
Signal math shared by the analyzer, the effects graph and the grain player.
"""
import math
from typing import List, Optional, Sequence

import numpy as np

from loop_studio.models import EnergyWindow


def find_zero_crossing(channel: Sequence[float], center_index: int, radius: int) -> int:
    """
    Find the downward zero crossing closest to true zero near `center_index`.

    Scans `[center_index - radius, center_index + radius]`, clamped to the
    channel. A crossing is an index `i` with `channel[i] > 0` and
    `channel[i + 1] < 0`; among those the one with the smallest `|channel[i]|`
    wins, earliest first on ties.

    Args:
        channel: Samples of a single channel
        center_index: Sample index to search around
        radius: Search radius in samples

    Returns:
        Index of the best crossing, or `center_index` unchanged if none exists
    """
    data = np.asarray(channel)
    lo = max(0, center_index - radius)
    hi = min(data.shape[0] - 1, center_index + radius)
    if hi <= lo:
        return center_index

    window = data[lo:hi + 1]
    crossings = np.flatnonzero((window[:-1] > 0) & (window[1:] < 0))
    if crossings.size == 0:
        return center_index

    best = crossings[np.argmin(np.abs(window[crossings]))]
    return int(lo + best)


def rms(segment: Sequence[float]) -> float:
    data = np.asarray(segment, dtype=np.float64)
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(data * data)))


def energy_profile(channel: Sequence[float], sample_rate: int, window_seconds: float) -> List[EnergyWindow]:
    """
    Compute RMS energy over contiguous, non-overlapping windows.

    The last window may be shorter than the others. Window times are the
    window start index divided by the sample rate.
    """
    data = np.asarray(channel, dtype=np.float64)
    n = data.shape[0]
    if n == 0:
        return []

    window = max(1, int(math.floor(sample_rate * window_seconds)))
    count = -(-n // window)
    padded = np.zeros(count * window, dtype=np.float64)
    padded[:n] = data * data
    sums = padded.reshape(count, window).sum(axis=1)

    lengths = np.full(count, window, dtype=np.float64)
    lengths[-1] = n - (count - 1) * window
    energies = np.sqrt(sums / lengths)

    return [
        EnergyWindow(time=(i * window) / sample_rate, energy=float(energies[i]))
        for i in range(count)
    ]


def _clamp_frequency(freq: float, sample_rate: int) -> float:
    return min(max(freq, 1.0), 0.49 * sample_rate)


def low_shelf_sos(freq: float, gain_db: float, sample_rate: int) -> np.ndarray:
    """RBJ low-shelf with unit slope, as a single normalised SOS row."""
    a = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * math.pi * _clamp_frequency(freq, sample_rate) / sample_rate
    cos_w0 = math.cos(w0)
    alpha = math.sin(w0) / 2.0 * math.sqrt(2.0)
    k = 2.0 * math.sqrt(a) * alpha

    b0 = a * ((a + 1) - (a - 1) * cos_w0 + k)
    b1 = 2 * a * ((a - 1) - (a + 1) * cos_w0)
    b2 = a * ((a + 1) - (a - 1) * cos_w0 - k)
    a0 = (a + 1) + (a - 1) * cos_w0 + k
    a1 = -2 * ((a - 1) + (a + 1) * cos_w0)
    a2 = (a + 1) + (a - 1) * cos_w0 - k
    return np.array([b0, b1, b2, a0, a1, a2]) / a0


def high_shelf_sos(freq: float, gain_db: float, sample_rate: int) -> np.ndarray:
    """RBJ high-shelf with unit slope, as a single normalised SOS row."""
    a = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * math.pi * _clamp_frequency(freq, sample_rate) / sample_rate
    cos_w0 = math.cos(w0)
    alpha = math.sin(w0) / 2.0 * math.sqrt(2.0)
    k = 2.0 * math.sqrt(a) * alpha

    b0 = a * ((a + 1) + (a - 1) * cos_w0 + k)
    b1 = -2 * a * ((a - 1) + (a + 1) * cos_w0)
    b2 = a * ((a + 1) + (a - 1) * cos_w0 - k)
    a0 = (a + 1) - (a - 1) * cos_w0 + k
    a1 = 2 * ((a - 1) - (a + 1) * cos_w0)
    a2 = (a + 1) - (a - 1) * cos_w0 - k
    return np.array([b0, b1, b2, a0, a1, a2]) / a0


def peaking_sos(freq: float, gain_db: float, q: float, sample_rate: int) -> np.ndarray:
    """RBJ peaking EQ, as a single normalised SOS row."""
    a = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * math.pi * _clamp_frequency(freq, sample_rate) / sample_rate
    cos_w0 = math.cos(w0)
    alpha = math.sin(w0) / (2.0 * q)

    b0 = 1.0 + alpha * a
    b1 = -2.0 * cos_w0
    b2 = 1.0 - alpha * a
    a0 = 1.0 + alpha / a
    a1 = -2.0 * cos_w0
    a2 = 1.0 - alpha / a
    return np.array([b0, b1, b2, a0, a1, a2]) / a0


def decaying_noise_impulse(
    sample_rate: int,
    seconds: float = 2.0,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Synthesize a stereo reverb impulse: white noise under a squared linear decay.

    Returns:
        Array shaped (2, frames); both channels carry the same burst
    """
    rng = rng if rng is not None else np.random.default_rng()
    length = max(1, int(sample_rate * seconds))
    decay = (1.0 - np.arange(length) / length) ** 2
    noise = rng.uniform(-1.0, 1.0, length) * decay
    return np.vstack([noise, noise]).astype(np.float32)


class SmoothedParam:
    """
    A control value that approaches its target exponentially.

    Mirrors `setTargetAtTime`: after `t` seconds the distance to the target
    has shrunk by `exp(-t / time_constant)`. Values are advanced by the audio
    thread in whole blocks; targets may be set from any thread.
    """
    SETTLE_EPSILON = 1e-5

    def __init__(self, value: float, sample_rate: int, time_constant: float) -> None:
        self.value: float = float(value)
        self.target: float = float(value)
        self.sample_rate: int = sample_rate
        self.time_constant: float = time_constant

    def set_target(self, target: float) -> None:
        self.target = float(target)

    def jump_to(self, value: float) -> None:
        self.value = float(value)
        self.target = float(value)

    @property
    def settled(self) -> bool:
        return abs(self.target - self.value) < self.SETTLE_EPSILON

    def advance(self, frames: int) -> np.ndarray:
        """Return per-sample values for the next `frames` samples."""
        target = self.target
        if self.settled or self.time_constant <= 0:
            self.value = target
            return np.full(frames, target, dtype=np.float64)
        steps = np.arange(1, frames + 1) / (self.time_constant * self.sample_rate)
        values = target + (self.value - target) * np.exp(-steps)
        self.value = float(values[-1]) if frames else self.value
        return values

    def advance_scalar(self, frames: int) -> float:
        """Advance by `frames` samples and return the resulting value."""
        target = self.target
        if self.settled or self.time_constant <= 0:
            self.value = target
        else:
            self.value = target + (self.value - target) * math.exp(-frames / (self.time_constant * self.sample_rate))
        return self.value

    def ramp_to(self, target: float, time_constant: float) -> None:
        """Set a new target reached with the given time constant."""
        self.time_constant = time_constant
        self.target = float(target)

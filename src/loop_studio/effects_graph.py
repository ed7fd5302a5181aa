#!/usr/bin/env python
import logging
from typing import Optional

import numpy as np
from scipy.signal import fftconvolve, sosfilt

from loop_studio.dsp import (
    SmoothedParam,
    decaying_noise_impulse,
    high_shelf_sos,
    low_shelf_sos,
    peaking_sos,
)
from loop_studio.models import EqSettings

logger = logging.getLogger(__name__)

RAMP_TIME = 0.2
REVERB_WET_LEVEL = 0.6
IMPULSE_SECONDS = 2.0
BASS_HZ = 100.0
MID_HZ = 1000.0
MID_Q = 1.0
TREBLE_HZ = 10000.0
EQ_LIMIT_DB = 12.0
# Equal-power normalisation constant used for convolution reverbs
CONVOLVER_CALIBRATION = 0.00125


def clamp_eq(bass: float, mid: float, treble: float) -> EqSettings:
    """Band gains in dB, each clamped to +/-EQ_LIMIT_DB."""
    return EqSettings(
        bass=max(-EQ_LIMIT_DB, min(EQ_LIMIT_DB, float(bass))),
        mid=max(-EQ_LIMIT_DB, min(EQ_LIMIT_DB, float(mid))),
        treble=max(-EQ_LIMIT_DB, min(EQ_LIMIT_DB, float(treble))),
    )


class EffectsGraph:
    """
    Persistent stereo processing chain that every player feeds into.

    input gain -> low shelf -> peaking -> high shelf -> master gain
                                          \\-> convolver -> reverb return -/

    All parameters are ramped with a 0.2s time constant. Setters only move
    targets, so they are safe to call from the control thread while the
    device thread runs `process`.
    """
    CHANNELS = 2

    def __init__(
        self,
        sample_rate: int,
        volume: float = 1.0,
        eq: EqSettings = EqSettings(),
        reverb_active: bool = False,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """
        Build the graph with its parameters already at the given values (no ramp).
        """
        self.sample_rate: int = sample_rate
        self._volume: float = max(0.0, float(volume))
        self._eq = clamp_eq(eq.bass, eq.mid, eq.treble)
        self._reverb_active: bool = bool(reverb_active)

        self._input_gain = SmoothedParam(1.0, sample_rate, RAMP_TIME)
        self._master_gain = SmoothedParam(self._volume, sample_rate, RAMP_TIME)
        self._reverb_gain = SmoothedParam(REVERB_WET_LEVEL if self._reverb_active else 0.0, sample_rate, RAMP_TIME)
        self._bass = SmoothedParam(self._eq.bass, sample_rate, RAMP_TIME)
        self._mid = SmoothedParam(self._eq.mid, sample_rate, RAMP_TIME)
        self._treble = SmoothedParam(self._eq.treble, sample_rate, RAMP_TIME)

        self._sos_gains = (self._eq.bass, self._eq.mid, self._eq.treble)
        self._sos = self._eq_sos(*self._sos_gains)
        self._zi = np.zeros((self._sos.shape[0], self.CHANNELS, 2))

        impulse = decaying_noise_impulse(sample_rate, IMPULSE_SECONDS, rng).astype(np.float64)
        power = np.sqrt(np.mean(impulse * impulse))
        self._impulse = impulse * (CONVOLVER_CALIBRATION / power if power > 0 else 0.0)
        self._reverb_tail = np.zeros((self.CHANNELS, self._impulse.shape[1] - 1))
        self._tail_active = False

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def eq(self) -> EqSettings:
        return self._eq

    @property
    def reverb_active(self) -> bool:
        return self._reverb_active

    @property
    def impulse(self) -> np.ndarray:
        return self._impulse

    def set_volume(self, volume: float) -> None:
        """Ramp the master gain towards `volume` (negative values clamp to 0)."""
        self._volume = max(0.0, float(volume))
        self._master_gain.set_target(self._volume)
        logger.debug(f"Volume target set to {self._volume:.3f}")

    def set_eq(self, bass: float, mid: float, treble: float) -> None:
        """Ramp the three EQ bands towards the given gains in dB, clamped to +/-12."""
        self._eq = clamp_eq(bass, mid, treble)
        self._bass.set_target(self._eq.bass)
        self._mid.set_target(self._eq.mid)
        self._treble.set_target(self._eq.treble)
        logger.debug(f"EQ target set to bass={self._eq.bass} mid={self._eq.mid} treble={self._eq.treble}")

    def set_reverb_active(self, active: bool) -> None:
        self._reverb_active = bool(active)
        self._reverb_gain.set_target(REVERB_WET_LEVEL if self._reverb_active else 0.0)
        logger.debug(f"Reverb {'enabled' if self._reverb_active else 'disabled'}")

    def process(self, block: np.ndarray) -> np.ndarray:
        """
        Run one block through the graph.

        Args:
            block: Input shaped (2, frames)

        Returns:
            Output shaped (2, frames), float32
        """
        frames = block.shape[1]
        if frames == 0:
            return np.zeros((self.CHANNELS, 0), dtype=np.float32)

        x = block.astype(np.float64) * self._input_gain.advance(frames)
        x = self._equalize(x, frames)

        out = x
        reverb_gain = self._reverb_gain.advance(frames)
        if self._reverb_gain.target > 0 or not self._reverb_gain.settled:
            out = x + self._convolve(x, frames) * reverb_gain
        elif self._tail_active:
            self._drain(frames)

        out = out * self._master_gain.advance(frames)
        return out.astype(np.float32)

    def _equalize(self, x: np.ndarray, frames: int) -> np.ndarray:
        gains = (
            self._bass.advance_scalar(frames),
            self._mid.advance_scalar(frames),
            self._treble.advance_scalar(frames),
        )
        if gains != self._sos_gains:
            self._sos = self._eq_sos(*gains)
            self._sos_gains = gains
        y, self._zi = sosfilt(self._sos, x, axis=-1, zi=self._zi)
        return y

    def _convolve(self, x: np.ndarray, frames: int) -> np.ndarray:
        wet = fftconvolve(x, self._impulse, axes=-1)
        tail_len = self._reverb_tail.shape[1]
        wet[:, :tail_len] += self._reverb_tail
        self._reverb_tail = wet[:, frames:frames + tail_len].copy()
        self._tail_active = bool(np.any(np.abs(self._reverb_tail) > 1e-7))
        return wet[:, :frames]

    def _drain(self, frames: int) -> None:
        """Advance the reverb tail by `frames` of silent input without convolving."""
        tail_len = self._reverb_tail.shape[1]
        shift = min(frames, tail_len)
        self._reverb_tail = np.concatenate(
            [self._reverb_tail[:, shift:], np.zeros((self.CHANNELS, shift))], axis=1
        )
        self._tail_active = bool(np.any(np.abs(self._reverb_tail) > 1e-7))

    def _eq_sos(self, bass: float, mid: float, treble: float) -> np.ndarray:
        return np.vstack([
            low_shelf_sos(BASS_HZ, bass, self.sample_rate),
            peaking_sos(MID_HZ, mid, MID_Q, self.sample_rate),
            high_shelf_sos(TREBLE_HZ, treble, self.sample_rate),
        ])

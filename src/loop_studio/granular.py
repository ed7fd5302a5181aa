#!/usr/bin/env python
"""
Granular loop player: independent time-stretch and pitch-shift.

Grains of `grain_size + overlap` seconds are triggered every
`grain_size / playback_rate` seconds of output. Each grain reads the source
`grain_size` seconds further along than the previous one, resampled by the
detune ratio, and neighbouring grains are crossfaded over `overlap` seconds.
Reads wrap inside the loop region.
"""
import logging
from typing import Optional, Tuple

import numpy as np

from loop_studio.dsp import SmoothedParam
from loop_studio.models import SampleBuffer

logger = logging.getLogger(__name__)

GRAIN_SIZE = 0.2
GRAIN_OVERLAP = 0.1
MIN_LOOP_SPAN = 0.01
OUTPUT_CHANNELS = 2


class GrainPlayer:
    """
    Single-use player over one buffer orientation.

    Loop bounds and the buffer are fixed for the life of the player; build a
    new one to change them. Playback rate and detune (cents) may be changed
    while playing.
    """
    supports_ramping = True

    def __init__(
        self,
        buffer: SampleBuffer,
        output_rate: int,
        loop_start: float = 0.0,
        loop_end: Optional[float] = None,
        grain_size: float = GRAIN_SIZE,
        overlap: float = GRAIN_OVERLAP,
    ) -> None:
        self.buffer: SampleBuffer = buffer
        self.output_rate: int = output_rate
        self.grain_size: float = grain_size
        self.overlap: float = overlap
        self.playback_rate = SmoothedParam(1.0, output_rate, 0.0)
        self.detune = SmoothedParam(0.0, output_rate, 0.0)

        duration = buffer.duration
        end = duration if loop_end is None else loop_end
        self.loop_start: float = max(0.0, min(loop_start, duration))
        self.loop_end: float = max(self.loop_start + MIN_LOOP_SPAN, min(end, duration))

        self._source = self._stereo(buffer.samples)
        self._state: str = "stopped"
        self._disposed: bool = False
        self._position: float = 0.0
        self._accum = np.zeros((OUTPUT_CHANNELS, 0), dtype=np.float64)
        self._until_next_grain: int = 0
        self._last_hop: int = 0

    @property
    def state(self) -> str:
        return self._state

    @property
    def disposed(self) -> bool:
        return self._disposed

    def start(self, offset: float) -> None:
        """
        Start playback at `offset` seconds of the buffer.

        Raises:
            RuntimeError: If the player was disposed
        """
        if self._disposed:
            raise RuntimeError("Cannot start a disposed player")
        self._position = float(offset) * self.buffer.sample_rate
        self._accum = np.zeros((OUTPUT_CHANNELS, 0), dtype=np.float64)
        self._until_next_grain = 0
        self._last_hop = 0
        self._state = "started"

    def stop(self) -> None:
        self._state = "stopped"

    def dispose(self) -> None:
        """Stop and release the buffer; the player cannot be restarted."""
        self.stop()
        self._disposed = True
        self._source = np.zeros((OUTPUT_CHANNELS, 1), dtype=np.float32)
        self._accum = np.zeros((OUTPUT_CHANNELS, 0), dtype=np.float64)

    def render(self, frames: int) -> np.ndarray:
        """
        Produce the next `frames` output samples, shaped (2, frames).
        """
        out = np.zeros((OUTPUT_CHANNELS, frames), dtype=np.float32)
        if self._state != "started" or self._disposed:
            return out

        written = 0
        while written < frames:
            if self._until_next_grain == 0:
                self._spawn_grain()
            take = min(frames - written, self._until_next_grain)
            out[:, written:written + take] = self._accum[:, :take]
            self._accum = self._accum[:, take:]
            self._until_next_grain -= take
            written += take
        return out

    def _spawn_grain(self) -> None:
        rate = max(1e-3, self.playback_rate.advance_scalar(self._last_hop))
        cents = self.detune.advance_scalar(self._last_hop)

        hop = max(1, int(round(self.grain_size / rate * self.output_rate)))
        fade = min(int(round(self.overlap * self.output_rate)), hop)
        length = hop + fade

        src_rate = self.buffer.sample_rate
        step = 2.0 ** (cents / 1200.0) * src_rate / self.output_rate
        grain = self._read(self._position + step * np.arange(length)) * self._envelope(length, fade)

        if self._accum.shape[1] < length:
            pad = np.zeros((OUTPUT_CHANNELS, length - self._accum.shape[1]))
            self._accum = np.concatenate([self._accum, pad], axis=1)
        self._accum[:, :length] += grain

        self._position = self._wrap(self._position + self.grain_size * src_rate)
        self._until_next_grain = hop
        self._last_hop = hop

    def _read(self, positions: np.ndarray) -> np.ndarray:
        lo, hi = self._loop_samples()
        wrapped = lo + np.mod(positions - lo, hi - lo)
        index = np.floor(wrapped).astype(np.int64)
        frac = wrapped - index

        last = self._source.shape[1] - 1
        index = np.clip(index, 0, last)
        following = index + 1
        following = np.where(following >= hi, int(np.ceil(lo)), following)
        following = np.clip(following, 0, last)

        return self._source[:, index] * (1.0 - frac) + self._source[:, following] * frac

    def _wrap(self, position: float) -> float:
        lo, hi = self._loop_samples()
        return lo + float(np.mod(position - lo, hi - lo))

    def _loop_samples(self) -> Tuple[float, float]:
        sr = self.buffer.sample_rate
        return self.loop_start * sr, self.loop_end * sr

    @staticmethod
    def _envelope(length: int, fade: int) -> np.ndarray:
        env = np.ones(length)
        if fade > 0:
            ramp = np.arange(fade) / fade
            env[:fade] = ramp
            env[length - fade:] = 1.0 - ramp
        return env

    @staticmethod
    def _stereo(samples: np.ndarray) -> np.ndarray:
        if samples.shape[0] == 1:
            return np.vstack([samples[0], samples[0]])
        return samples[:OUTPUT_CHANNELS]

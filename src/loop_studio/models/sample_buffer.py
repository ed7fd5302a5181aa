#!/usr/bin/env python
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from loop_studio.errors import InvalidBufferError


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """
    Immutable multi-channel PCM container.

    Samples are stored as a read-only float32 array shaped (channels, frames).
    Writable input arrays are copied; read-only float32 arrays are adopted as-is.
    """
    sample_rate: int
    samples: np.ndarray

    def __post_init__(self) -> None:
        if int(self.sample_rate) <= 0:
            raise InvalidBufferError(f"Sample rate must be positive, got {self.sample_rate}")
        try:
            data = np.asarray(self.samples, dtype=np.float32)
        except ValueError as e:
            raise InvalidBufferError(f"Samples are not a rectangular array: {e}") from e
        if data.flags.writeable:
            data = data.copy()
        if data.ndim == 1:
            data = data.reshape(1, -1)
        if data.ndim != 2 or data.shape[0] == 0:
            raise InvalidBufferError(f"Expected (channels, frames) samples, got shape {data.shape}")
        data.setflags(write=False)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))
        object.__setattr__(self, "samples", data)

    @classmethod
    def from_channels(cls, sample_rate: int, channels: Sequence[Sequence[float]]) -> "SampleBuffer":
        """
        Build a buffer from per-channel sample sequences.

        Raises:
            InvalidBufferError: If channels are missing or have different lengths
        """
        if not channels:
            raise InvalidBufferError("At least one channel is required")
        lengths = {len(ch) for ch in channels}
        if len(lengths) != 1:
            raise InvalidBufferError(f"Channel lengths differ: {sorted(lengths)}")
        return cls(sample_rate, np.array([np.asarray(ch, dtype=np.float32) for ch in channels]))

    @property
    def channel_count(self) -> int:
        return int(self.samples.shape[0])

    @property
    def frame_count(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]

    def reversed(self) -> "SampleBuffer":
        """Return the reverse-order mirror of this buffer."""
        mirror = np.ascontiguousarray(self.samples[:, ::-1])
        mirror.setflags(write=False)
        return SampleBuffer(self.sample_rate, mirror)

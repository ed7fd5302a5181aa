"""
Shared fixtures for the test suite.

Nothing here touches a real audio device: device streams are replaced by
FakeStream and transports run against a hand-advanced FakeClock.
"""

from typing import List
from unittest.mock import patch

import numpy as np
import pytest

from loop_studio.device import AudioContext
from loop_studio.models import SampleBuffer

SR = 8000


def make_sine(seconds: float, sr: int = SR, freq: float = 220.0, amplitude: float = 0.5, channels: int = 1) -> SampleBuffer:
    """Build a buffer holding a sine tone on every channel."""
    t = np.arange(int(round(seconds * sr))) / sr
    tone = amplitude * np.sin(2 * np.pi * freq * t)
    return SampleBuffer(sr, np.tile(tone, (channels, 1)))


class FakeClock:
    """Device clock that only moves when a test advances it."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeStream:
    """Stands in for sounddevice.OutputStream."""

    def __init__(self, **kwargs) -> None:
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = 0
        self.stopped = 0
        self.closed = 0

    def start(self) -> None:
        self.started += 1

    def stop(self) -> None:
        self.stopped += 1

    def close(self) -> None:
        self.closed += 1

    def pull(self, frames: int) -> np.ndarray:
        """Drive the callback the way the device thread would."""
        outdata = np.zeros((frames, self.kwargs["channels"]), dtype=np.float32)
        self.callback(outdata, frames, None, None)
        return outdata


class StreamRecorder:
    """Stream factory that keeps every stream it builds."""

    def __init__(self) -> None:
        self.streams: List[FakeStream] = []

    def __call__(self, **kwargs) -> FakeStream:
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream


class ContextRecorder:
    """AudioContext factory for engines, counting the contexts it opens."""

    def __init__(self, sample_rate: int = SR) -> None:
        self.sample_rate = sample_rate
        self.streams = StreamRecorder()
        self.contexts: List[AudioContext] = []

    def __call__(self) -> AudioContext:
        context = AudioContext(sample_rate=self.sample_rate, stream_factory=self.streams)
        self.contexts.append(context)
        return context


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def streams() -> StreamRecorder:
    return StreamRecorder()


@pytest.fixture
def contexts() -> ContextRecorder:
    return ContextRecorder()


@pytest.fixture
def ten_seconds() -> SampleBuffer:
    return make_sine(10.0)


@pytest.fixture
def no_sigint():
    """Keep LoopStudioApp from replacing pytest's SIGINT handler."""
    with patch("loop_studio.app.signal.signal") as mock_signal:
        yield mock_signal

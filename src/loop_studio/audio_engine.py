#!/usr/bin/env python
import dataclasses
import logging
from typing import Callable, Optional

import numpy as np

from loop_studio.audio_io import decode
from loop_studio.device import AudioContext
from loop_studio.effects_graph import EffectsGraph, clamp_eq
from loop_studio.models import EqSettings, SampleBuffer, TransportState
from loop_studio.offline_renderer import OfflineRenderer
from loop_studio.transport import LoopTransport

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_RATE = 44100

ContextFactory = Callable[[], AudioContext]


class AudioEngine:
    """
    Facade over the device context, effects graph, loop transport and offline renderer.

    The device context is created on first playback and owned by this engine
    alone. Every playback entry point checks it is still open; a closed
    context is replaced by a fresh context and graph that start from the
    cached volume, EQ and reverb settings, and a playing loop continues from
    its playhead. Buffer loading, parameter changes and offline rendering
    never touch the device.
    """
    def __init__(
        self,
        context_factory: Optional[ContextFactory] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """
        Args:
            context_factory: Builds the device context (defaults to the system output)
            rng: Randomness for the reverb impulse
        """
        self._context_factory: ContextFactory = context_factory or AudioContext
        self._rng = rng
        self._context: Optional[AudioContext] = None
        self._graph: Optional[EffectsGraph] = None
        self.transport = LoopTransport(self._device_time, DEFAULT_SAMPLE_RATE)
        self.renderer = OfflineRenderer()

        self._volume: float = 1.0
        self._eq = EqSettings()
        self._reverb_active: bool = False

    @property
    def state(self) -> str:
        return self._context.state if self._context is not None else "closed"

    def is_closed(self) -> bool:
        return self._context is None or self._context.is_closed()

    @property
    def graph(self) -> Optional[EffectsGraph]:
        """The live effects graph, or None before first playback / after close."""
        return None if self.is_closed() else self._graph

    # --- Buffer ---

    def set_buffer(self, buffer: SampleBuffer) -> None:
        self.transport.set_buffer(buffer)

    def decode_audio_data(self, raw_bytes: bytes) -> SampleBuffer:
        """
        Decode bytes and load the result for playback.

        Raises:
            DecodeError: If the bytes cannot be decoded; the loaded buffer is kept
        """
        buffer = decode(raw_bytes)
        self.set_buffer(buffer)
        return buffer

    def get_buffer(self) -> Optional[SampleBuffer]:
        return self.transport.buffer

    def get_duration(self) -> float:
        return self.transport.buffer_duration

    # --- Real-time parameters ---

    def set_volume(self, volume: float) -> None:
        self._volume = max(0.0, float(volume))
        if self.graph is not None:
            self._graph.set_volume(self._volume)

    def set_eq(self, bass: float, mid: float, treble: float) -> None:
        self._eq = clamp_eq(bass, mid, treble)
        if self.graph is not None:
            self._graph.set_eq(self._eq.bass, self._eq.mid, self._eq.treble)

    def set_reverb_active(self, active: bool) -> None:
        self._reverb_active = bool(active)
        if self.graph is not None:
            self._graph.set_reverb_active(self._reverb_active)

    def set_speed(self, speed: float) -> None:
        self.transport.set_speed(speed)

    def set_pitch(self, ratio: float) -> None:
        self.transport.set_pitch(ratio)

    def set_reverse(self, active: bool) -> None:
        if self.transport.snapshot().playing:
            self._ensure_running()
        self.transport.set_reverse(active)

    # --- Playback ---

    def play_loop(self, start: float, end: float, offset: Optional[float] = None) -> bool:
        """
        Unlock the device if needed and loop `[start, end)` from `offset`.

        Returns:
            False if no buffer is loaded; nothing is played in that case
        """
        if self.transport.buffer is not None:
            self._ensure_running()
        return self.transport.play_loop(start, end, offset)

    def stop(self) -> None:
        self.transport.stop()

    def pause(self) -> None:
        self.transport.pause()

    def resume(self) -> bool:
        if self.transport.buffer is not None:
            self._ensure_running()
        return self.transport.resume()

    def seek(self, time: float) -> None:
        if self.transport.snapshot().playing:
            self._ensure_running()
        self.transport.seek(time)

    def begin_scrub(self) -> None:
        self.transport.begin_scrub()

    def scrub_to(self, time: float) -> None:
        self.transport.seek(time)

    def end_scrub(self) -> None:
        if self.transport.snapshot().playing:
            self._ensure_running()
        self.transport.end_scrub()

    def get_current_time(self) -> float:
        return self.transport.get_current_time()

    def snapshot(self) -> TransportState:
        """Plain-data view of playback and effect settings."""
        return dataclasses.replace(
            self.transport.snapshot(),
            volume=self._volume,
            eq=self._eq,
            reverb_active=self._reverb_active,
        )

    # --- Offline ---

    def generate_repeated_loop(self, start: float, end: float, repetitions: int) -> SampleBuffer:
        """
        Render the loop `repetitions` times from the loaded buffer.

        Raises:
            RenderDomainError: If nothing is loaded or the bounds are invalid
        """
        return self.renderer.generate_repeated_loop(self.get_buffer(), start, end, repetitions)

    # --- Lifecycle ---

    def close(self) -> None:
        """Stop playback and release the device. The engine recreates it on next use."""
        self.stop()
        if self._context is not None:
            self._context.close()

    def _ensure_running(self) -> None:
        if self.is_closed():
            self._open_context()
        self._context.resume()

    def _open_context(self) -> None:
        context = self._context_factory()
        self._graph = EffectsGraph(
            context.sample_rate,
            volume=self._volume,
            eq=self._eq,
            reverb_active=self._reverb_active,
            rng=self._rng,
        )
        self._context = context
        # the transport reads its old clock once to carry a playing loop over
        self.transport.attach(lambda: context.current_time, context.sample_rate)
        context.connect(self._pull)
        logger.info(f"Audio context created at {context.sample_rate} Hz")

    def _device_time(self) -> float:
        context = self._context
        return context.current_time if context is not None else 0.0

    def _pull(self, frames: int) -> np.ndarray:
        return self._graph.process(self.transport.render(frames))

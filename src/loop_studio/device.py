#!/usr/bin/env python
import logging
import threading
from typing import Callable, Optional

import numpy as np

logger = logging.getLogger(__name__)

Source = Callable[[int], np.ndarray]


def _output_stream(**kwargs):
    import sounddevice as sd
    return sd.OutputStream(**kwargs)


class AudioContext:
    """
    Exclusive owner of one device output stream and its clock.

    The stream is opened lazily by `resume()`. The clock (`current_time`)
    counts frames pulled by the device, so it only advances while running.
    A closed context cannot be reopened; create a new one instead.
    """
    def __init__(
        self,
        sample_rate: Optional[int] = None,
        block_size: int = 512,
        device=None,
        channels: int = 2,
        stream_factory: Optional[Callable[..., object]] = None,
    ) -> None:
        if sample_rate is None:
            import sounddevice as sd
            sample_rate = int(sd.query_devices(device, "output")["default_samplerate"])
        self.sample_rate: int = int(sample_rate)
        self.block_size: int = block_size
        self.device = device
        self.channels: int = channels
        self._stream_factory = stream_factory or _output_stream
        self._stream = None
        self._source: Optional[Source] = None
        self._state: str = "suspended"
        self._frames_rendered: int = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def current_time(self) -> float:
        """Device clock in seconds."""
        return self._frames_rendered / self.sample_rate

    def is_closed(self) -> bool:
        return self._state == "closed"

    def connect(self, source: Optional[Source]) -> None:
        """Route the output of `source` (frames -> (channels, frames)) to the device."""
        with self._lock:
            self._source = source

    def resume(self) -> None:
        """
        Open and start the output stream. Calling it again is a no-op.

        Raises:
            RuntimeError: If the context was closed
        """
        if self._state == "closed":
            raise RuntimeError("AudioContext is closed")
        if self._state == "running":
            return

        if self._stream is None:
            self._stream = self._stream_factory(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=self.block_size,
                device=self.device,
                callback=self._callback,
            )
        self._stream.start()
        self._state = "running"
        logger.info(f"Audio device started at {self.sample_rate} Hz")

    def close(self) -> None:
        """Stop the stream and release the device. Idempotent."""
        if self._state == "closed":
            return
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()
            stream.close()
        self._state = "closed"
        self.connect(None)
        logger.info("Audio device closed")

    def render(self, frames: int) -> np.ndarray:
        """
        Pull `frames` samples from the connected source and advance the clock.

        Returns silence without advancing the clock unless the context is running.
        """
        if self._state != "running":
            return np.zeros((self.channels, frames), dtype=np.float32)
        with self._lock:
            source = self._source
            block = source(frames) if source is not None else np.zeros((self.channels, frames), dtype=np.float32)
            self._frames_rendered += frames
        return block

    def _callback(self, outdata, frames, time, status) -> None:
        if status:
            logger.warning(f"Audio device status: {status}")
        outdata[:] = self.render(frames).T

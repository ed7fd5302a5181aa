#!/usr/bin/env python
import logging
import math

import numpy as np

from loop_studio.errors import RenderDomainError
from loop_studio.granular import MIN_LOOP_SPAN
from loop_studio.models import SampleBuffer

logger = logging.getLogger(__name__)


class OfflineRenderer:
    """
    Stitches repeated copies of a loop into a new buffer, outside the live device graph.
    """
    def generate_repeated_loop(self, buffer: SampleBuffer, start: float, end: float, repetitions: int) -> SampleBuffer:
        """
        Repeat `[start, end)` of every channel `repetitions` times back to back.

        No crossfade is applied at the seams; pass zero-crossing snapped bounds
        to avoid clicks.

        Args:
            buffer: Source audio
            start: Loop start in seconds
            end: Loop end in seconds
            repetitions: Number of copies, at least 1

        Returns:
            New SampleBuffer of `floor((end - start) * sample_rate) * repetitions` frames

        Raises:
            RenderDomainError: If no audio is given, bounds are empty after clamping,
                or repetitions is below 1
        """
        if buffer is None:
            raise RenderDomainError("No audio loaded")
        if int(repetitions) != repetitions or repetitions < 1:
            raise RenderDomainError(f"Repetitions must be a positive integer, got {repetitions}")
        if math.isnan(start) or math.isnan(end):
            raise RenderDomainError("Loop bounds must be numbers")

        repetitions = int(repetitions)
        duration = buffer.duration
        sr = buffer.sample_rate

        safe_start = max(0.0, min(start, duration))
        clamped_end = max(0.0, min(end, duration))
        if clamped_end <= safe_start:
            raise RenderDomainError(f"Loop end {end} is not after start {start} within {duration:.3f}s of audio")
        safe_end = max(safe_start + MIN_LOOP_SPAN, clamped_end)

        loop_samples = int(math.floor((safe_end - safe_start) * sr))
        if loop_samples < 1:
            raise RenderDomainError(f"Loop {safe_start:.4f}-{safe_end:.4f}s is shorter than one sample")
        start_sample = int(math.floor(safe_start * sr))

        segment = np.zeros((buffer.channel_count, loop_samples), dtype=np.float32)
        available = max(0, min(loop_samples, buffer.frame_count - start_sample))
        segment[:, :available] = buffer.samples[:, start_sample:start_sample + available]

        looped = np.tile(segment, (1, repetitions))
        looped.setflags(write=False)

        logger.info(
            f"Loop duration: {loop_samples / sr:.2f} seconds, repeating {repetitions} times."
        )
        return SampleBuffer(sr, looped)

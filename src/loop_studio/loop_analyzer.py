#!/usr/bin/env python
import logging
import math
import uuid
from typing import Iterable, List, Optional, Set

import numpy as np

from loop_studio.dsp import energy_profile, find_zero_crossing
from loop_studio.errors import AnalysisPreconditionError
from loop_studio.models import AnalysisResult, AudioLoop, EnergyWindow, LoopCategory, SampleBuffer

logger = logging.getLogger(__name__)

MIN_LOOP_SECONDS = 5.0
SHORT_FILE_SECONDS = 30.0
CANDIDATE_SPACING_SECONDS = 4
MAX_CANDIDATES = 20


class LoopAnalyzer:
    """
    Class responsible for turning a decoded buffer into ranked loop suggestions:
    - Profiling RMS energy over fixed windows
    - Placing named loops (best, shortest, longest, earliest, latest)
    - Collecting well-spaced high-energy candidates
    - Snapping every cut to a nearby zero crossing
    """
    def __init__(
        self,
        window_seconds: float = 0.5,
        snap_radius: int = 1000,
        energy_threshold: float = 0.1,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            window_seconds: Length of each energy window
            snap_radius: Zero-crossing search radius in samples
            energy_threshold: Minimum RMS for intro/outro anchor windows
            rng: Source of randomness for candidate lengths (unseeded if None)
        """
        self.window_seconds: float = window_seconds
        self.snap_radius: int = snap_radius
        self.energy_threshold: float = energy_threshold
        self.rng: np.random.Generator = rng if rng is not None else np.random.default_rng()

    def analyze(self, buffer: Optional[SampleBuffer]) -> AnalysisResult:
        """
        Find loop suggestions in the buffer.

        Args:
            buffer: Decoded audio; only channel 0 is analyzed

        Returns:
            AnalysisResult with named loops first, then candidates by start time

        Raises:
            AnalysisPreconditionError: If no audio is loaded or the buffer is empty
        """
        if buffer is None:
            raise AnalysisPreconditionError("Audio not loaded")
        if buffer.frame_count == 0:
            raise AnalysisPreconditionError("Cannot analyze an empty buffer")

        channel = buffer.channel(0)
        duration = buffer.duration
        profile = energy_profile(channel, buffer.sample_rate, self.window_seconds)
        by_energy = sorted(profile, key=lambda w: w.energy, reverse=True)

        loops: List[AudioLoop] = [
            self._loop(LoopCategory.ORIGINAL, 0.0, duration, "Full original audio track")
        ]

        if duration < SHORT_FILE_SECONDS:
            # Short uploads are treated as loops that were cut before import
            loops.append(self._loop(LoopCategory.BEST, 0.0, duration, "Perfect Import (Full Audio)"))
        else:
            loops.append(self._window(buffer, by_energy[0].time, 8.0, LoopCategory.BEST, "High energy section"))

        if duration > 5:
            moment = by_energy[int(math.floor(len(by_energy) * 0.2))]
            loops.append(self._window(buffer, moment.time, 5.0, LoopCategory.SHORTEST, "Short, punchy loop"))

        if duration > 15:
            moment = by_energy[int(math.floor(len(by_energy) * 0.1))]
            loops.append(self._window(buffer, moment.time, 15.0, LoopCategory.LONGEST, "Extended section"))

        if duration > 10:
            earliest = self._first_energetic(profile, lambda w: w.time > 5)
            if earliest is None and len(profile) > 10:
                earliest = profile[10]
            center = earliest.time if earliest is not None else 5.0
            loops.append(self._window(buffer, center, 6.0, LoopCategory.EARLIEST, "Intro section"))

            latest = self._first_energetic(reversed(profile), lambda w: w.time < duration - 5)
            if latest is None and len(profile) >= 10:
                latest = profile[len(profile) - 10]
            center = latest.time if latest is not None else duration - 10
            loops.append(self._window(buffer, center, 6.0, LoopCategory.LATEST, "Outro section"))

        candidates: List[AudioLoop] = []
        if duration > 10:
            candidates = self._candidates(buffer, by_energy, {int(math.floor(loop.start)) for loop in loops})

        logger.info(
            f"Analyzed {duration:.2f}s of audio: {len(loops)} named loops, {len(candidates)} candidates"
        )
        return AnalysisResult(loops=loops + candidates)

    def _candidates(self, buffer: SampleBuffer, by_energy: List[EnergyWindow], used_times: Set[int]) -> List[AudioLoop]:
        """
        Walk windows from loudest to quietest, keeping those far from every used time.
        """
        candidates: List[AudioLoop] = []
        for point in by_energy:
            if len(candidates) >= MAX_CANDIDATES:
                break
            t = int(math.floor(point.time))
            if any(abs(used - t) < CANDIDATE_SPACING_SECONDS for used in used_times):
                continue
            used_times.add(t)
            length = MIN_LOOP_SECONDS + self.rng.random() * 5.0
            label = int(math.floor(point.time + 0.5))
            candidates.append(
                self._window(buffer, point.time, length, LoopCategory.CANDIDATE, f"Energy peak at {label}s")
            )

        candidates.sort(key=lambda loop: loop.start)
        return candidates

    def _first_energetic(self, windows: Iterable[EnergyWindow], in_range) -> Optional[EnergyWindow]:
        for window in windows:
            if in_range(window) and window.energy > self.energy_threshold:
                return window
        return None

    def _window(self, buffer: SampleBuffer, center: float, length: float, category: LoopCategory, description: str) -> AudioLoop:
        """
        Materialize a loop of roughly `length` seconds centered on `center`.

        The window is kept at least MIN_LOOP_SECONDS long, re-anchored against
        the end of the buffer, and both cuts are snapped to zero crossings.
        Snapping may shift either edge by up to `snap_radius` samples.
        """
        duration = buffer.duration
        sr = buffer.sample_rate
        valid_length = max(MIN_LOOP_SECONDS, length)

        start_raw = max(0.0, center - valid_length / 2)
        end_raw = min(duration, start_raw + valid_length)
        if end_raw - start_raw < MIN_LOOP_SECONDS:
            start_raw = max(0.0, end_raw - MIN_LOOP_SECONDS)

        channel = buffer.channel(0)
        start = find_zero_crossing(channel, int(math.floor(start_raw * sr)), self.snap_radius) / sr
        end = find_zero_crossing(channel, int(math.floor(end_raw * sr)), self.snap_radius) / sr
        return self._loop(category, start, end, description)

    @staticmethod
    def _loop(category: LoopCategory, start: float, end: float, description: str) -> AudioLoop:
        return AudioLoop(
            id=f"loop-{category.value.lower()}-{uuid.uuid4().hex}",
            category=category,
            start=float(start),
            end=float(end),
            description=description,
        )

"""
Tests for loop_studio.loop_analyzer: named loops, candidates and their invariants.

Buffers are synthesized at 8 kHz with a reduced snap radius so every cut
moves by at most 25 ms.
"""

import math
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from conftest import SR, make_sine
from loop_studio.errors import AnalysisPreconditionError
from loop_studio.loop_analyzer import MAX_CANDIDATES, LoopAnalyzer
from loop_studio.models import LoopCategory, SampleBuffer

SNAP_RADIUS = 200
EPSILON = 2 * SNAP_RADIUS / SR


def _peaked_buffer(seconds: float = 40.0, peak_at: float = 20.0) -> SampleBuffer:
    """A moderate tone with a loud one-second burst around `peak_at`."""
    t = np.arange(int(seconds * SR)) / SR
    signal = 0.3 * np.sin(2 * np.pi * 220 * t)
    burst = (t >= peak_at - 0.5) & (t < peak_at + 0.5)
    signal[burst] = 0.9 * np.sin(2 * np.pi * 220 * t[burst])
    return SampleBuffer(SR, signal)


def _analyzer(seed: int = 0) -> LoopAnalyzer:
    return LoopAnalyzer(snap_radius=SNAP_RADIUS, rng=np.random.default_rng(seed))


@pytest.fixture(scope="module")
def peaked_result():
    buffer = _peaked_buffer()
    return buffer, _analyzer().analyze(buffer)


class TestPreconditions:
    def test_none_buffer(self):
        with pytest.raises(AnalysisPreconditionError):
            _analyzer().analyze(None)

    def test_empty_buffer(self):
        with pytest.raises(AnalysisPreconditionError):
            _analyzer().analyze(SampleBuffer(SR, np.zeros((1, 0))))


class TestShortFiles:
    def test_three_seconds_yields_original_and_full_best(self):
        result = _analyzer().analyze(make_sine(3.0))
        assert [loop.category for loop in result.loops] == [LoopCategory.ORIGINAL, LoopCategory.BEST]
        best = result.loops[1]
        assert best.start == 0.0
        assert best.end == pytest.approx(3.0)
        assert best.description == "Perfect Import (Full Audio)"

    def test_twelve_seconds_has_no_longest(self):
        result = _analyzer().analyze(make_sine(12.0))
        categories = [loop.category for loop in result.featured]
        assert categories == [
            LoopCategory.ORIGINAL,
            LoopCategory.BEST,
            LoopCategory.SHORTEST,
            LoopCategory.EARLIEST,
            LoopCategory.LATEST,
        ]
        assert result.loops[1].end == pytest.approx(12.0)


class TestPeakedTrack:
    def test_named_loops_in_order(self, peaked_result):
        _, result = peaked_result
        assert [loop.category for loop in result.featured] == [
            LoopCategory.ORIGINAL,
            LoopCategory.BEST,
            LoopCategory.SHORTEST,
            LoopCategory.LONGEST,
            LoopCategory.EARLIEST,
            LoopCategory.LATEST,
        ]

    def test_best_is_centred_on_the_peak(self, peaked_result):
        _, result = peaked_result
        best = result.loops[1]
        assert 19.0 <= (best.start + best.end) / 2 <= 21.0
        assert best.duration == pytest.approx(8.0, abs=EPSILON)

    def test_earliest_precedes_latest(self, peaked_result):
        _, result = peaked_result
        by_category = {loop.category: loop for loop in result.featured}
        assert by_category[LoopCategory.EARLIEST].start < by_category[LoopCategory.LATEST].start

    def test_loop_bounds_invariants(self, peaked_result):
        buffer, result = peaked_result
        for loop in result.loops:
            assert 0.0 <= loop.start < loop.end <= buffer.duration
            assert loop.duration >= 5.0 - EPSILON

    def test_cuts_land_on_zero_crossings(self, peaked_result):
        buffer, result = peaked_result
        channel = buffer.channel(0)
        for loop in result.loops[1:]:
            index = int(round(loop.start * SR))
            assert channel[index] >= 0 and channel[index + 1] <= 0

    def test_candidates_sorted_spaced_and_capped(self, peaked_result):
        _, result = peaked_result
        candidates = result.candidates
        assert 0 < len(candidates) <= MAX_CANDIDATES
        starts = [loop.start for loop in candidates]
        assert starts == sorted(starts)
        for loop in candidates:
            assert 5.0 - EPSILON <= loop.duration <= 10.0 + EPSILON

    def test_candidate_centres_keep_clear_of_each_other_and_named_loops(self):
        window = LoopAnalyzer._window
        with patch.object(LoopAnalyzer, "_window", autospec=True, side_effect=window) as spy:
            result = _analyzer().analyze(_peaked_buffer())

        centres = [
            int(math.floor(call.args[2]))
            for call in spy.call_args_list
            if call.args[4] is LoopCategory.CANDIDATE
        ]
        assert len(centres) == len(result.candidates) > 0
        named_starts = [
            int(math.floor(loop.start)) for loop in result.loops if loop.category is not LoopCategory.CANDIDATE
        ]
        for i, centre in enumerate(centres):
            for other in centres[i + 1:]:
                assert abs(centre - other) >= 4
            for start in named_starts:
                assert abs(centre - start) >= 4

    def test_ids_are_unique_and_prefixed(self, peaked_result):
        _, result = peaked_result
        ids = [loop.id for loop in result.loops]
        assert len(set(ids)) == len(ids)
        assert result.loops[1].id.startswith("loop-best-")
        assert result.find(ids[-1]) is result.loops[-1]


class TestRandomness:
    def test_seeded_analysis_is_reproducible(self):
        buffer = _peaked_buffer()
        first = _analyzer(seed=7).analyze(buffer)
        second = _analyzer(seed=7).analyze(buffer)
        assert [(loop.start, loop.end, loop.description) for loop in first.loops] == [
            (loop.start, loop.end, loop.description) for loop in second.loops
        ]

    def test_candidate_length_comes_from_injected_rng(self):
        rng = MagicMock()
        rng.random.return_value = 0.0
        buffer = _peaked_buffer()
        result = LoopAnalyzer(snap_radius=SNAP_RADIUS, rng=rng).analyze(buffer)
        assert rng.random.call_count == len(result.candidates)
        for loop in result.candidates:
            assert loop.duration == pytest.approx(5.0, abs=EPSILON)


def test_quiet_track_falls_back_to_fixed_anchors():
    buffer = make_sine(20.0, amplitude=0.01)
    result = _analyzer().analyze(buffer)
    by_category = {loop.category: loop for loop in result.featured}
    # No window is energetic enough, so the 11th and 10th-from-last windows anchor the sections
    earliest = by_category[LoopCategory.EARLIEST]
    latest = by_category[LoopCategory.LATEST]
    assert math.isclose((earliest.start + earliest.end) / 2, 5.0, abs_tol=EPSILON)
    assert math.isclose((latest.start + latest.end) / 2, 15.0, abs_tol=EPSILON)

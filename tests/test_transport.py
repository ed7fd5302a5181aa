"""
Tests for loop_studio.transport: playhead arithmetic, reversal, scrubbing and pausing.

The transport reads a FakeClock, so positions are exact functions of the
time a test advances it by.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from conftest import SR, FakeClock, make_sine
from loop_studio.granular import GrainPlayer
from loop_studio.models import PlaybackState
from loop_studio.transport import RAMP_TIME, LoopTransport


class SteppedPlayer(GrainPlayer):
    supports_ramping = False


@pytest.fixture
def transport(clock, ten_seconds):
    transport = LoopTransport(clock, SR)
    transport.set_buffer(ten_seconds)
    return transport


class TestPlayLoop:
    def test_without_buffer_does_nothing(self, clock):
        transport = LoopTransport(clock, SR)
        assert transport.play_loop(0.0, 1.0) is False
        assert transport.state is PlaybackState.STOPPED
        assert transport.active_player is None

    def test_position_advances_and_wraps(self, transport, clock):
        assert transport.play_loop(2.0, 6.0)
        assert transport.state is PlaybackState.PLAYING
        assert transport.get_current_time() == pytest.approx(2.0)
        clock.advance(1.5)
        assert transport.get_current_time() == pytest.approx(3.5)
        clock.advance(3.0)
        assert transport.get_current_time() == pytest.approx(2.5)

    def test_offset_inside_loop_is_honoured(self, transport, clock):
        transport.play_loop(2.0, 6.0, 5.0)
        assert transport.get_current_time() == pytest.approx(5.0)
        clock.advance(1.5)
        assert transport.get_current_time() == pytest.approx(2.5)

    def test_offset_outside_loop_starts_at_loop_start(self, transport):
        transport.play_loop(2.0, 6.0, 8.0)
        assert transport.get_current_time() == pytest.approx(2.0)

    def test_bounds_are_clamped_to_buffer(self, transport):
        transport.play_loop(-3.0, 50.0)
        state = transport.snapshot()
        assert (state.loop_start, state.loop_end) == (0.0, pytest.approx(10.0))

    def test_each_play_replaces_and_disposes_the_player(self, transport):
        transport.play_loop(2.0, 6.0)
        first = transport.active_player
        transport.play_loop(1.0, 3.0)
        assert transport.active_player is not first
        assert first.disposed

    def test_player_receives_current_speed_and_pitch(self, clock, ten_seconds):
        factory = MagicMock(side_effect=GrainPlayer)
        transport = LoopTransport(clock, SR, player_factory=factory)
        transport.set_buffer(ten_seconds)
        transport.set_speed(2.0)
        transport.set_pitch(2.0)
        transport.play_loop(2.0, 6.0, 3.0)
        factory.assert_called_once_with(ten_seconds, SR, loop_start=2.0, loop_end=6.0)
        player = transport.active_player
        assert player.playback_rate.value == 2.0
        assert player.detune.value == pytest.approx(1200.0)
        assert player.state == "started"

    def test_render_without_player_is_silent(self, transport):
        out = transport.render(128)
        assert out.shape == (2, 128)
        assert not out.any()


class TestStopAndPause:
    def test_stop_reports_loop_start(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.0)
        transport.stop()
        assert transport.state is PlaybackState.STOPPED
        assert transport.active_player is None
        assert transport.get_current_time() == pytest.approx(2.0)

    def test_pause_holds_position_and_resume_continues(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.0)
        transport.pause()
        assert transport.state is PlaybackState.PAUSED
        assert transport.active_player is None
        clock.advance(5.0)
        assert transport.get_current_time() == pytest.approx(3.0)

        assert transport.resume() is True
        assert transport.state is PlaybackState.PLAYING
        clock.advance(0.5)
        assert transport.get_current_time() == pytest.approx(3.5)

    def test_resume_when_not_paused(self, transport):
        assert transport.resume() is False


class TestSpeedAndPitch:
    def test_speed_change_keeps_position_continuous(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.5)
        transport.set_speed(2.0)
        assert transport.get_current_time() == pytest.approx(3.5)
        clock.advance(0.25)
        assert transport.get_current_time() == pytest.approx(4.0)

    def test_changes_ramp_on_the_live_player(self, transport):
        transport.play_loop(2.0, 6.0)
        player = transport.active_player
        transport.set_speed(1.5)
        transport.set_pitch(0.5)
        assert transport.active_player is player
        assert player.playback_rate.target == 1.5
        assert player.playback_rate.time_constant == RAMP_TIME
        assert player.detune.target == pytest.approx(-1200.0)

    def test_players_without_ramping_jump_to_new_values(self, clock, ten_seconds):
        transport = LoopTransport(clock, SR, player_factory=SteppedPlayer)
        transport.set_buffer(ten_seconds)
        transport.play_loop(2.0, 6.0)
        transport.set_speed(1.25)
        transport.set_pitch(2.0)
        player = transport.active_player
        assert player.playback_rate.value == 1.25
        assert player.playback_rate.settled
        assert player.detune.value == pytest.approx(1200.0)
        assert player.render(2000).shape == (2, 2000)

    @pytest.mark.parametrize("value", [0.0, -1.0])
    def test_rejects_non_positive_values(self, transport, value):
        with pytest.raises(ValueError):
            transport.set_speed(value)
        with pytest.raises(ValueError):
            transport.set_pitch(value)


class TestReverse:
    def test_position_is_preserved_across_toggles(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.0)
        transport.set_reverse(True)
        assert transport.get_current_time() == pytest.approx(3.0)
        assert transport.active_player.buffer is transport.mirror

        clock.advance(0.5)
        assert transport.get_current_time() == pytest.approx(2.5)
        transport.set_reverse(False)
        assert transport.get_current_time() == pytest.approx(2.5)
        assert transport.active_player.buffer is transport.buffer

    def test_forward_then_backward_returns_to_starting_point(self, transport, clock):
        transport.play_loop(2.0, 6.0, 3.0)
        clock.advance(1.25)
        transport.set_reverse(True)
        clock.advance(1.25)
        assert transport.get_current_time() == pytest.approx(3.0)

    def test_reversed_player_uses_mirror_coordinates(self, transport):
        transport.set_reverse(True)
        transport.play_loop(2.0, 6.0, 3.0)
        player = transport.active_player
        assert (player.loop_start, player.loop_end) == (pytest.approx(4.0), pytest.approx(8.0))
        assert transport.snapshot().reversed

    def test_reverse_while_stopped_does_not_start(self, transport):
        transport.set_reverse(True)
        assert transport.state is PlaybackState.STOPPED
        assert transport.active_player is None


class TestSeekAndScrub:
    def test_seek_while_playing_restarts_at_time(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        first = transport.active_player
        transport.seek(4.5)
        assert transport.active_player is not first
        assert transport.get_current_time() == pytest.approx(4.5)

    def test_seek_while_stopped_cues(self, transport):
        transport.seek(7.0)
        assert transport.state is PlaybackState.PAUSED
        assert transport.get_current_time() == pytest.approx(7.0)

    def test_scrub_moves_position_without_restarting(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        player = transport.active_player
        transport.begin_scrub()
        transport.seek(4.2)
        transport.seek(5.1)
        assert transport.get_current_time() == pytest.approx(5.1)
        assert transport.active_player is player
        assert transport.snapshot().scrubbing

        transport.end_scrub()
        assert transport.active_player is not player
        assert transport.state is PlaybackState.PLAYING
        assert transport.get_current_time() == pytest.approx(5.1)

    def test_scrub_position_is_clamped(self, transport):
        transport.begin_scrub()
        transport.seek(99.0)
        assert transport.get_current_time() == pytest.approx(10.0)


class TestBufferSwap:
    def test_new_buffer_restarts_playing_loop(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.0)
        replacement = make_sine(8.0, freq=440.0)
        transport.set_buffer(replacement)
        assert transport.active_player.buffer is replacement
        assert transport.get_current_time() == pytest.approx(3.0)
        assert transport.buffer_duration == pytest.approx(8.0)

    def test_attach_carries_a_playing_loop_to_the_new_clock(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.0)
        first = transport.active_player
        fresh = FakeClock(100.0)
        transport.attach(fresh, 2 * SR)
        assert first.disposed
        assert transport.active_player is not first
        assert transport.state is PlaybackState.PLAYING
        assert transport.get_current_time() == pytest.approx(3.0)
        fresh.advance(0.5)
        assert transport.get_current_time() == pytest.approx(3.5)

    def test_attach_keeps_a_paused_cue(self, transport, clock):
        transport.play_loop(2.0, 6.0)
        clock.advance(1.0)
        transport.pause()
        transport.attach(FakeClock(), SR)
        assert transport.state is PlaybackState.PAUSED
        assert transport.active_player is None
        assert transport.get_current_time() == pytest.approx(3.0)


def test_render_pulls_from_active_player(transport):
    transport.play_loop(2.0, 6.0)
    out = transport.render(2000)
    assert out.shape == (2, 2000)
    assert np.abs(out).max() > 0.1

#!/usr/bin/env python
import logging
import math
import threading
from typing import Callable, Optional

import numpy as np

from loop_studio.granular import MIN_LOOP_SPAN, OUTPUT_CHANNELS, GrainPlayer
from loop_studio.models import PlaybackState, SampleBuffer, TransportState

logger = logging.getLogger(__name__)

RAMP_TIME = 0.2

Clock = Callable[[], float]


class LoopTransport:
    """
    Owns loop playback state and the single active player.

    Every `play_loop` tears down the previous player and builds a new one,
    because loop bounds and buffer orientation are fixed per player. Speed
    and pitch are pushed onto the live player without a restart.

    The playhead is computed from the device clock and the anchor captured
    at the last start, never read back from the player.
    """
    def __init__(
        self,
        clock: Clock,
        output_rate: int,
        player_factory: Callable[..., GrainPlayer] = GrainPlayer,
    ) -> None:
        self._clock: Clock = clock
        self._output_rate: int = output_rate
        self._player_factory = player_factory
        self._player: Optional[GrainPlayer] = None
        self._lock = threading.RLock()

        self._buffer: Optional[SampleBuffer] = None
        self._mirror: Optional[SampleBuffer] = None

        self._state: PlaybackState = PlaybackState.STOPPED
        self._loop_start: float = 0.0
        self._loop_end: float = 0.0
        self._reversed: bool = False
        self._speed: float = 1.0
        self._pitch: float = 1.0
        self._anchor: float = 0.0
        self._cue: float = 0.0
        self._scrubbing: bool = False
        self._scrub_position: float = 0.0

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def buffer(self) -> Optional[SampleBuffer]:
        return self._buffer

    @property
    def mirror(self) -> Optional[SampleBuffer]:
        return self._mirror

    @property
    def buffer_duration(self) -> float:
        return self._buffer.duration if self._buffer is not None else 0.0

    @property
    def active_player(self) -> Optional[GrainPlayer]:
        return self._player

    def attach(self, clock: Clock, output_rate: int) -> None:
        """
        Rebind to a new device clock.

        The active player is rebuilt for the new output rate; a playing loop
        carries on from the playhead it had on the old clock.
        """
        restart_at = self.get_current_time() if self._state is PlaybackState.PLAYING else None
        with self._lock:
            self._release_player()
            self._clock = clock
            self._output_rate = output_rate
        if restart_at is not None:
            self.play_loop(self._loop_start, self._loop_end, restart_at)

    def set_buffer(self, buffer: SampleBuffer) -> None:
        """
        Load a buffer and its reversed mirror.

        If a loop is playing it restarts on the new buffer at the current position.
        """
        restart_at = self.get_current_time() if self._state is PlaybackState.PLAYING else None
        self._buffer = buffer
        self._mirror = buffer.reversed()
        logger.info(
            f"Buffer loaded: {buffer.duration:.2f}s, {buffer.channel_count} channel(s) at {buffer.sample_rate} Hz"
        )
        if restart_at is not None:
            self.play_loop(self._loop_start, self._loop_end, restart_at)

    def play_loop(self, start: float, end: float, offset: Optional[float] = None) -> bool:
        """
        Start looping `[start, end)` from `offset` seconds.

        Args:
            start: Loop start in seconds of the original buffer
            end: Loop end in seconds of the original buffer
            offset: Playhead to start from; falls back to `start` when outside the loop

        Returns:
            False if no buffer is loaded (nothing is played), True otherwise
        """
        with self._lock:
            self._release_player()
            if self._buffer is None:
                logger.warning("play_loop called before a buffer was loaded; ignoring")
                self._state = PlaybackState.STOPPED
                return False

            duration = self._buffer.duration
            loop_start = max(0.0, min(start, max(0.0, duration - MIN_LOOP_SPAN)))
            loop_end = max(loop_start + MIN_LOOP_SPAN, min(end, duration))
            if offset is None or not loop_start <= offset <= loop_end:
                offset = loop_start

            self._loop_start = loop_start
            self._loop_end = loop_end

            if self._reversed:
                source = self._mirror
                player_start = duration - loop_end
                player_end = duration - loop_start
                player_offset = duration - offset
            else:
                source = self._buffer
                player_start, player_end, player_offset = loop_start, loop_end, offset

            player = self._player_factory(source, self._output_rate, loop_start=player_start, loop_end=player_end)
            player.playback_rate.jump_to(self._speed)
            player.detune.jump_to(self._cents())

            self._anchor = self._clock() - (player_offset - player_start) / self._speed
            player.start(player_offset)
            self._player = player
            self._state = PlaybackState.PLAYING

        logger.info(
            f"Playing loop {loop_start:.3f}-{loop_end:.3f}s from {offset:.3f}s"
            f"{' (reversed)' if self._reversed else ''}"
        )
        return True

    def stop(self) -> None:
        with self._lock:
            had_player = self._release_player()
            self._state = PlaybackState.STOPPED
        if had_player:
            logger.info("Playback stopped")

    def pause(self) -> None:
        """Stop sound but remember the playhead for `resume`."""
        if self._state is not PlaybackState.PLAYING:
            return
        position = self.get_current_time()
        with self._lock:
            self._release_player()
            self._cue = position
            self._state = PlaybackState.PAUSED
        logger.info(f"Playback paused at {position:.3f}s")

    def resume(self) -> bool:
        if self._state is not PlaybackState.PAUSED:
            return False
        return self.play_loop(self._loop_start, self._loop_end, self._cue)

    def set_reverse(self, active: bool) -> None:
        """Flip orientation, continuing from the current playhead if playing."""
        active = bool(active)
        if active == self._reversed:
            return
        position = self.get_current_time()
        self._reversed = active
        logger.debug(f"Reverse {'on' if active else 'off'} at {position:.3f}s")
        if self._state is PlaybackState.PLAYING:
            self.play_loop(self._loop_start, self._loop_end, position)

    def set_speed(self, speed: float) -> None:
        """
        Set time-stretch speed (1.0 = original).

        Raises:
            ValueError: If speed is not positive
        """
        if speed <= 0:
            raise ValueError(f"Speed must be positive, got {speed}")
        with self._lock:
            if self._state is PlaybackState.PLAYING:
                # keep the playhead continuous across the change
                relative = self._relative_position()
                self._anchor = self._clock() - relative / speed
            self._speed = float(speed)
            if self._player is not None:
                self._push(self._player, "playback_rate", self._speed)
        logger.debug(f"Speed set to {self._speed}")

    def set_pitch(self, ratio: float) -> None:
        """
        Set pitch as a frequency ratio (1.0 = unchanged).

        Raises:
            ValueError: If ratio is not positive
        """
        if ratio <= 0:
            raise ValueError(f"Pitch ratio must be positive, got {ratio}")
        with self._lock:
            self._pitch = float(ratio)
            if self._player is not None:
                self._push(self._player, "detune", self._cents())
        logger.debug(f"Pitch set to {self._pitch} ({self._cents():.1f} cents)")

    def get_current_time(self) -> float:
        """Playhead in seconds of the original buffer."""
        if self._scrubbing:
            return self._scrub_position
        if self._state is PlaybackState.PAUSED:
            return self._cue
        if self._state is not PlaybackState.PLAYING:
            return self._loop_start

        loop_length = self._loop_end - self._loop_start
        if loop_length <= 0:
            return self._loop_start
        relative = self._relative_position()
        position = self._loop_end - relative if self._reversed else self._loop_start + relative
        return max(0.0, min(position, self.buffer_duration))

    def seek(self, time: float) -> None:
        """
        Move the playhead. While scrubbing only the reported position moves;
        otherwise a playing loop restarts at `time` and a stopped one is cued.
        """
        if self._scrubbing:
            self._scrub_position = self._clamp_to_buffer(time)
        elif self._state is PlaybackState.PLAYING:
            self.play_loop(self._loop_start, self._loop_end, time)
        else:
            self._cue = self._clamp_to_buffer(time)
            self._state = PlaybackState.PAUSED

    def begin_scrub(self) -> None:
        self._scrub_position = self.get_current_time()
        self._scrubbing = True

    def end_scrub(self) -> None:
        """Leave scrubbing, re-syncing playback once at the final position."""
        if not self._scrubbing:
            return
        self._scrubbing = False
        position = self._scrub_position
        if self._state is PlaybackState.PLAYING:
            self.play_loop(self._loop_start, self._loop_end, position)
        else:
            self._cue = position
            self._state = PlaybackState.PAUSED

    def render(self, frames: int) -> np.ndarray:
        with self._lock:
            player = self._player
            if player is None:
                return np.zeros((OUTPUT_CHANNELS, frames), dtype=np.float32)
            return player.render(frames)

    def snapshot(self) -> TransportState:
        return TransportState(
            state=self._state,
            loop_start=self._loop_start,
            loop_end=self._loop_end,
            reversed=self._reversed,
            speed=self._speed,
            pitch_ratio=self._pitch,
            anchor_device_time=self._anchor,
            scrubbing=self._scrubbing,
        )

    def _relative_position(self) -> float:
        loop_length = self._loop_end - self._loop_start
        elapsed = self._clock() - self._anchor
        return math.fmod(elapsed * self._speed, loop_length) if elapsed >= 0 else 0.0

    def _cents(self) -> float:
        return 1200.0 * math.log2(self._pitch)

    def _clamp_to_buffer(self, time: float) -> float:
        return max(0.0, min(float(time), self.buffer_duration))

    def _release_player(self) -> bool:
        player, self._player = self._player, None
        if player is None:
            return False
        player.stop()
        player.dispose()
        return True

    @staticmethod
    def _push(player: GrainPlayer, name: str, value: float) -> None:
        param = getattr(player, name)
        if getattr(player, "supports_ramping", False) and hasattr(param, "ramp_to"):
            param.ramp_to(value, RAMP_TIME)
        elif hasattr(param, "jump_to"):
            param.jump_to(value)
        else:
            setattr(player, name, value)

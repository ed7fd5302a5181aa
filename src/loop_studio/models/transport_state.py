#!/usr/bin/env python
from dataclasses import dataclass, field
from enum import Enum


class PlaybackState(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"
    PAUSED = "paused"


@dataclass(frozen=True)
class EqSettings:
    """Three-band EQ gains in dB."""
    bass: float = 0.0
    mid: float = 0.0
    treble: float = 0.0


@dataclass(frozen=True)
class TransportState:
    """
    Plain-data snapshot of the transport, safe to hand to a presentation layer.
    """
    state: PlaybackState = PlaybackState.STOPPED
    loop_start: float = 0.0
    loop_end: float = 0.0
    reversed: bool = False
    speed: float = 1.0
    pitch_ratio: float = 1.0
    volume: float = 1.0
    eq: EqSettings = field(default_factory=EqSettings)
    reverb_active: bool = False
    anchor_device_time: float = 0.0
    scrubbing: bool = False

    @property
    def playing(self) -> bool:
        return self.state is PlaybackState.PLAYING

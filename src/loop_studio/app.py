#!/usr/bin/env python
import argparse
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional

import numpy as np
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.table import Table

from loop_studio.audio_engine import AudioEngine
from loop_studio.audio_io import load_file, save_wav
from loop_studio.device import AudioContext
from loop_studio.fs import FS
from loop_studio.loop_analyzer import LoopAnalyzer
from loop_studio.models import AnalysisResult, AudioLoop, RenderResult, SampleBuffer

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]
REFRESH_HZ = 30


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Args:
        argv: Argument list, defaults to sys.argv[1:]

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog="loop-studio",
        description="Find loops in an audio file, audition them and render repeated mixes.",
        epilog="Example usage: loop-studio build siren.wav --loop 1 --repeat 4"
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="INFO",
        help="Log file verbosity (default: INFO)"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Data folder holding sound/input, sound/output and logs (default: <project>/data)"
    )
    parser.add_argument(
        "--device",
        type=str,
        default=None,
        help="Output device name or index for playback (default: system default)"
    )
    parser.add_argument(
        "--block-size",
        type=int,
        default=512,
        help="Frames per device callback (default: 512)"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="List the loops found in an audio file")
    _add_source_arguments(analyze)

    build = commands.add_parser("build", help="Render a loop repeated N times to a WAV file")
    _add_source_arguments(build)
    _add_loop_argument(build)
    build.add_argument(
        "--repeat",
        type=int,
        default=4,
        help="Number of times to repeat the loop (default: 4)"
    )
    build.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file name inside the output folder (default: <stem>_<category>_loop<N>.wav)"
    )

    play = commands.add_parser("play", help="Audition a loop with live effects")
    _add_source_arguments(play)
    _add_loop_argument(play)
    play.add_argument("--seconds", type=float, default=10.0, help="How long to play (default: 10)")
    play.add_argument("--speed", type=float, default=1.0, help="Time-stretch factor (default: 1.0)")
    play.add_argument("--pitch", type=float, default=1.0, help="Pitch ratio (default: 1.0)")
    play.add_argument("--volume", type=float, default=1.0, help="Master volume (default: 1.0)")
    play.add_argument("--bass", type=float, default=0.0, help="Low shelf gain in dB (default: 0)")
    play.add_argument("--mid", type=float, default=0.0, help="Mid peaking gain in dB (default: 0)")
    play.add_argument("--treble", type=float, default=0.0, help="High shelf gain in dB (default: 0)")
    play.add_argument("--reverb", action="store_true", help="Enable the convolution reverb")
    play.add_argument("--reverse", action="store_true", help="Play the loop backwards")

    return parser.parse_args(argv)


def _add_source_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("audio", type=str, help="Audio file path, or a file name in the input folder")
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for the random candidate lengths (default: unseeded)"
    )


def _add_loop_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--loop",
        type=int,
        default=1,
        help="Loop index as listed by 'analyze'; 0 is the whole file (default: 1, the best loop)"
    )


class LoopStudioApp:
    """
    Main application class that orchestrates analysis, rendering and playback.
    """
    def __init__(
        self,
        args: argparse.Namespace,
        fs: FS,
        console: Optional[Console] = None,
        context_factory: Optional[Callable[[], AudioContext]] = None,
    ) -> None:
        # Register signal handler for clean exit before anything else
        signal.signal(signal.SIGINT, self._handle_exit)

        self.args = args
        self.fs = fs
        self.console = console or Console()
        self.context_factory = context_factory or self._device_context
        self.rng = np.random.default_rng(getattr(args, "seed", None))

        logging.info(f"Data folder: {self.fs.data_folder}")

    def _handle_exit(self, signum, frame) -> None:
        """
        Handle clean exit on keyboard interrupt.
        """
        self.console.print("\nExiting cleanly. Goodbye!")
        sys.exit(0)

    def _device_context(self) -> AudioContext:
        device = self.args.device
        if device is not None and device.isdigit():
            device = int(device)
        return AudioContext(block_size=self.args.block_size, device=device)

    def run(self) -> Optional[RenderResult]:
        """
        Dispatch the selected command.

        Returns:
            The render result for `build`, otherwise None
        """
        handlers = {
            "analyze": self.analyze,
            "build": self.build,
            "play": self.play,
        }
        return handlers[self.args.command]()

    def analyze(self) -> None:
        buffer, result = self._load_and_analyze()
        self.console.print(self._loop_table(self._source_path().name, buffer, result))

    def build(self) -> RenderResult:
        buffer, result = self._load_and_analyze()
        loop = self._select_loop(result)
        repetitions = self.args.repeat

        engine = AudioEngine(context_factory=self.context_factory, rng=self.rng)
        engine.set_buffer(buffer)
        song = engine.generate_repeated_loop(loop.start, loop.end, repetitions)

        name = self.args.output or self._default_output_name(loop, repetitions)
        audio_path = save_wav(song, self.fs.output_path(name))
        self.console.print(
            f"[green]Saved {song.duration:.2f}s ({loop.category.value} x{repetitions}) to {escape(audio_path)}[/green]"
        )
        return RenderResult(buffer=song, repetitions=repetitions, audio_path=audio_path)

    def play(self) -> None:
        buffer, result = self._load_and_analyze()
        loop = self._select_loop(result)
        args = self.args

        engine = AudioEngine(context_factory=self.context_factory, rng=self.rng)
        engine.set_buffer(buffer)
        engine.set_volume(args.volume)
        engine.set_eq(args.bass, args.mid, args.treble)
        engine.set_reverb_active(args.reverb)
        engine.set_speed(args.speed)
        engine.set_pitch(args.pitch)
        engine.set_reverse(args.reverse)
        try:
            if not engine.play_loop(loop.start, loop.end, loop.start):
                return
            started = time.monotonic()
            with Live(self._playhead(engine, loop), console=self.console, refresh_per_second=REFRESH_HZ) as live:
                while time.monotonic() - started < args.seconds:
                    time.sleep(1.0 / REFRESH_HZ)
                    live.update(self._playhead(engine, loop))
        finally:
            engine.close()

    def _source_path(self) -> Path:
        return self.fs.resolve_input(self.args.audio)

    def _load_and_analyze(self):
        path = self._source_path()
        logging.info(f"Loading audio: {path}")
        buffer = load_file(path)
        result = LoopAnalyzer(rng=self.rng).analyze(buffer)
        return buffer, result

    def _select_loop(self, result: AnalysisResult) -> AudioLoop:
        index = self.args.loop
        if not 0 <= index < len(result.loops):
            raise IndexError(f"Loop index {index} out of range (0-{len(result.loops) - 1})")
        return result.loops[index]

    def _default_output_name(self, loop: AudioLoop, repetitions: int) -> str:
        stem = self._source_path().stem
        return f"{stem}_{loop.category.value.lower()}_loop{repetitions}.wav"

    @staticmethod
    def _loop_table(title: str, buffer: SampleBuffer, result: AnalysisResult) -> Table:
        table = Table(title=f"{title} ({buffer.duration:.2f}s, {buffer.sample_rate} Hz)")
        table.add_column("#", justify="right")
        table.add_column("Category")
        table.add_column("Start", justify="right")
        table.add_column("End", justify="right")
        table.add_column("Length", justify="right")
        table.add_column("Description")
        for index, loop in enumerate(result.loops):
            table.add_row(
                str(index),
                loop.category.value,
                f"{loop.start:.2f}",
                f"{loop.end:.2f}",
                f"{loop.duration:.2f}",
                loop.description,
            )
        return table

    @staticmethod
    def _playhead(engine: AudioEngine, loop: AudioLoop) -> Table:
        state = engine.snapshot()
        position = engine.get_current_time()
        span = max(loop.duration, 1e-9)
        filled = int(round(20 * min(max((position - loop.start) / span, 0.0), 1.0)))

        table = Table.grid(padding=(0, 2))
        table.add_row(
            f"[bold]{loop.category.value}[/bold]",
            f"{position:7.2f}s",
            "[" + "#" * filled + "-" * (20 - filled) + "]",
            f"{state.state.value}{' (reversed)' if state.reversed else ''}",
            f"speed {state.speed:.2f} pitch {state.pitch_ratio:.2f}",
        )
        return table

from dataclasses import dataclass
from typing import Optional

from loop_studio.models.sample_buffer import SampleBuffer


@dataclass(frozen=True)
class RenderResult:
    """Immutable container for a rendered song and where it was saved."""
    buffer: SampleBuffer
    repetitions: int
    audio_path: Optional[str] = None

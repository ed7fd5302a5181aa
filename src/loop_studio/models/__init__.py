from loop_studio.models.audio_loop import AnalysisResult, AudioLoop, LoopCategory
from loop_studio.models.energy_window import EnergyWindow
from loop_studio.models.render_result import RenderResult
from loop_studio.models.sample_buffer import SampleBuffer
from loop_studio.models.transport_state import EqSettings, PlaybackState, TransportState

__all__ = [
    "AnalysisResult",
    "AudioLoop",
    "EnergyWindow",
    "EqSettings",
    "LoopCategory",
    "PlaybackState",
    "RenderResult",
    "SampleBuffer",
    "TransportState",
]

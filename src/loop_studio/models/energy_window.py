from dataclasses import dataclass


@dataclass(frozen=True)
class EnergyWindow:
    """RMS energy of one analysis window starting at `time` seconds."""
    time: float
    energy: float

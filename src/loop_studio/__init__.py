"""Loop detection, real-time audition and offline rendering of audio loops."""

__version__ = "0.1.0"

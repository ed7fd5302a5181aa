#!/usr/bin/env python
"""
Error taxonomy for the loop studio core.

Playback without a loaded buffer is not an error: the engine logs a
warning and play_loop returns False.
"""


class LoopStudioError(Exception):
    """Base class for all loop studio errors."""


class DecodeError(LoopStudioError):
    """Input bytes could not be decoded into PCM samples."""


class InvalidBufferError(LoopStudioError, ValueError):
    """Sample data does not satisfy the buffer invariants."""


class AnalysisPreconditionError(LoopStudioError, ValueError):
    """Analysis was requested without usable audio."""


class RenderDomainError(LoopStudioError, ValueError):
    """Offline render bounds or repetition count are invalid."""

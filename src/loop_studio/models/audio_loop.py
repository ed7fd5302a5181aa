#!/usr/bin/env python
from dataclasses import dataclass, field
from enum import Enum
from typing import List


class LoopCategory(str, Enum):
    ORIGINAL = "Original"
    BEST = "Best"
    SHORTEST = "Shortest"
    LONGEST = "Longest"
    EARLIEST = "Earliest"
    LATEST = "Latest"
    CANDIDATE = "Candidate"


@dataclass(frozen=True)
class AudioLoop:
    """Represents a repeatable segment of a track, in seconds."""
    id: str
    category: LoopCategory
    start: float
    end: float
    description: str

    @property
    def duration(self) -> float:
        """Loop length in seconds."""
        return self.end - self.start


@dataclass(frozen=True)
class AnalysisResult:
    """Ordered loops produced by one analysis pass."""
    loops: List[AudioLoop] = field(default_factory=list)

    @property
    def featured(self) -> List[AudioLoop]:
        return [loop for loop in self.loops if loop.category is not LoopCategory.CANDIDATE]

    @property
    def candidates(self) -> List[AudioLoop]:
        return [loop for loop in self.loops if loop.category is LoopCategory.CANDIDATE]

    def find(self, loop_id: str) -> AudioLoop:
        """
        Look up a loop by id.

        Raises:
            KeyError: If no loop has the given id
        """
        for loop in self.loops:
            if loop.id == loop_id:
                return loop
        raise KeyError(loop_id)

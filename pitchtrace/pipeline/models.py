"""
Data model shared by every stage.

Pitch is exchanged between stages as a continuous note number (69.0 = A4 =
440 Hz). ``None`` stands for "no pitch" wherever a note or frequency is
optional.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np


def is_valid_note(note: Optional[float]) -> bool:
    """NaN/Inf note numbers are treated the same as a missing note."""
    return note is not None and math.isfinite(note)


@dataclass(frozen=True)
class PitchEstimate:
    frequency_hz: Optional[float]
    clarity: float = 0.0

    @property
    def voiced(self) -> bool:
        return self.frequency_hz is not None


@dataclass
class SampleFrame:
    """One analysis window handed over by the capture side."""

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self) -> None:
        self.samples = np.asarray(self.samples, dtype=np.float64).reshape(-1)
        self.sample_rate = int(self.sample_rate)


@dataclass(frozen=True)
class NotePoint:
    time: float
    note: Optional[float]

    @property
    def voiced(self) -> bool:
        return is_valid_note(self.note)


@dataclass
class StageBOutput:
    """Per-hop raw detections for one buffer."""

    time_grid: np.ndarray
    f0_hz: np.ndarray
    clarity: np.ndarray
    points: List[NotePoint]
    hop_sec: float
    diagnostics: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Contour:
    """Output of the offline contour extractor."""

    points: List[NotePoint]
    note_range: Optional[Tuple[float, float]]
    hop_sec: float
    duration_sec: float = 0.0


@dataclass
class Track:
    """
    An analysed file. Points and duration are fixed once extracted; only the
    display name and colour may be changed by the owner.
    """

    id: int
    name: str
    points: Tuple[NotePoint, ...]
    duration_sec: float
    note_range: Optional[Tuple[float, float]]
    color: str
    hop_sec: float

    @property
    def times(self) -> List[float]:
        return [p.time for p in self.points]


@dataclass
class LoadedAudio:
    audio: np.ndarray
    sample_rate: int
    path: Optional[str] = None

    @property
    def duration_sec(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return float(len(self.audio)) / float(self.sample_rate)


@dataclass
class ImportFailure:
    path: str
    error: str


@dataclass
class ImportReport:
    tracks: List[Track] = field(default_factory=list)
    failures: List[ImportFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class ViewMode(str, Enum):
    FOLLOW = "follow"
    FULL = "full"


@dataclass
class ViewState:
    mode: ViewMode = ViewMode.FOLLOW
    zoom: float = 1.0
    scroll: float = 0.0

    def __post_init__(self) -> None:
        self.mode = ViewMode(self.mode)
        self.zoom = max(1.0, float(self.zoom))
        self.scroll = min(1.0, max(0.0, float(self.scroll)))


@dataclass(frozen=True)
class TimeWindow:
    start: float
    end: float
    visible_duration: float
    is_live: bool = False

    def contains(self, t: float) -> bool:
        return self.start <= t <= self.end


def notes_of(points: Sequence[NotePoint]) -> List[Optional[float]]:
    return [p.note if is_valid_note(p.note) else None for p in points]

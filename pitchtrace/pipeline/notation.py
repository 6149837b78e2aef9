"""
Tuner readout: note name, octave and cents deviation for a stabilized pitch.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from .detectors import hz_to_note, note_to_hz
from .stage_d import NOTE_NAMES

IN_TUNE_CENTS = 5
CLOSE_CENTS = 20
NEEDLE_RANGE_CENTS = 50


@dataclass(frozen=True)
class NoteReading:
    note_name: str
    octave: int
    cents: int
    frequency_hz: float
    note_number: int

    @property
    def label(self) -> str:
        return f"{self.note_name}{self.octave}"


def describe_pitch(freq_hz: Optional[float]) -> Optional[NoteReading]:
    """Nearest equal-tempered note and the signed cents offset from it."""
    note = hz_to_note(freq_hz)
    if note is None:
        return None

    nearest = int(round(note))
    target = note_to_hz(nearest)
    cents = int(math.floor(1200.0 * math.log2(float(freq_hz) / target)))
    return NoteReading(
        note_name=NOTE_NAMES[nearest % 12],
        octave=nearest // 12 - 1,
        cents=cents,
        frequency_hz=float(freq_hz),
        note_number=nearest,
    )


def tuning_band(cents: int) -> str:
    c = abs(cents)
    if c < IN_TUNE_CENTS:
        return "in_tune"
    if c < CLOSE_CENTS:
        return "close"
    return "off"


def needle_position(cents: float) -> float:
    """Needle offset on a 0..100 scale, 50 meaning exactly in tune."""
    clamped = max(-NEEDLE_RANGE_CENTS, min(NEEDLE_RANGE_CENTS, float(cents)))
    return 50.0 + clamped

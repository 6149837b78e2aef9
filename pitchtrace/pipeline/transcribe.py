"""
High-level file analysis.

Pipeline:
    Stage A: load_audio
    Stage B: extract_features      (inside extract_contour)
    Stage C: contour passes        (extract_contour)

    from pitchtrace.pipeline.transcribe import import_files

    report = import_files(["take1.wav", "take2.wav"])
    for track in report.tracks:
        print(track.name, track.note_range)
    for failure in report.failures:
        print(failure.path, failure.error)
"""

from __future__ import annotations

import itertools
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import numpy as np

from .config import TRACK_COLORS
from .models import ImportFailure, ImportReport, Track
from .stage_a import AudioDecodeError, load_audio
from .stage_c import extract_contour

LOGGER = logging.getLogger(__name__)

_track_ids = itertools.count(1)


def analyze_buffer(
    audio: np.ndarray,
    sample_rate: int,
    name: str = "buffer",
    config: Optional[Any] = None,
    color: str = TRACK_COLORS[0],
    track_id: Optional[int] = None,
) -> Track:
    """Run the offline contour extractor over an in-memory buffer."""
    contour = extract_contour(audio, sample_rate, config=config)
    return Track(
        id=next(_track_ids) if track_id is None else track_id,
        name=name,
        points=tuple(contour.points),
        duration_sec=contour.duration_sec,
        note_range=contour.note_range,
        color=color,
        hop_sec=contour.hop_sec,
    )


def analyze_file(
    path: str,
    config: Optional[Any] = None,
    color: str = TRACK_COLORS[0],
) -> Track:
    """
    Decode and analyse one file.

    Raises
    ------
    AudioDecodeError
        The file could not be decoded.
    ValueError
        The file decoded to zero samples.
    """
    loaded = load_audio(path, config=config)
    track = analyze_buffer(loaded.audio, loaded.sample_rate, name=Path(path).stem, config=config, color=color)
    LOGGER.info(
        "Analysed %s: %.2fs, %d points, range %s",
        path,
        track.duration_sec,
        len(track.points),
        track.note_range,
    )
    return track


def import_files(
    paths: Iterable[str],
    config: Optional[Any] = None,
    color_offset: int = 0,
) -> ImportReport:
    """
    Analyse several files independently.

    A file that fails to decode is recorded in ``report.failures`` and does
    not stop the remaining files. Colours are assigned cyclically from the
    track palette, starting at ``color_offset``.
    """
    report = ImportReport()
    for path in paths:
        color = TRACK_COLORS[(color_offset + len(report.tracks)) % len(TRACK_COLORS)]
        try:
            track = analyze_file(str(path), config=config, color=color)
        except (AudioDecodeError, ValueError) as exc:
            LOGGER.warning("Skipping %s: %s", path, exc)
            report.failures.append(ImportFailure(path=str(path), error=str(exc)))
            continue
        report.tracks.append(track)
    return report

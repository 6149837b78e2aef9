# pitchtrace/pipeline/stage_c.py
"""
Stage C - Offline contour cleanup

Turns the raw per-hop note timeline from Stage B into the smoothed contour
stored on a Track. Every pass reads the previous pass's full output, so the
passes may look ahead in time, which the live stabilizer cannot do.

Passes
------
1. fill_single_gaps   : isolated unvoiced hop between two voiced hops
2. median_filter      : 5-point median over voiced values
3. correct_octaves    : octave snap, otherwise outlier clamp
4. weighted_smooth    : 7-tap triangular weighted mean
5. note_range         : min/max for axis normalisation
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np

from .config import ContourConfig, PipelineConfig
from .models import Contour, NotePoint, is_valid_note, notes_of
from .stage_b import extract_features

LOGGER = logging.getLogger(__name__)

Notes = List[Optional[float]]


def _contour_config(config: Any) -> ContourConfig:
    if isinstance(config, ContourConfig):
        return config
    if isinstance(config, PipelineConfig):
        return config.contour
    return ContourConfig()


def fill_single_gaps(notes: Sequence[Optional[float]]) -> Notes:
    """
    Replace an unvoiced interior point by the mean of its two neighbours when
    both are voiced. Runs of two or more unvoiced points are left untouched.
    """
    filled: Notes = [n if is_valid_note(n) else None for n in notes]
    for i in range(1, len(filled) - 1):
        if filled[i] is None and filled[i - 1] is not None and filled[i + 1] is not None:
            filled[i] = (filled[i - 1] + filled[i + 1]) / 2.0
    return filled


def median_filter(notes: Sequence[Optional[float]], radius: int = 2) -> Notes:
    """
    Median of the voiced values among the ``2*radius + 1`` nearest positions.

    Even-sized windows (edges, or windows with unvoiced points) take the upper
    middle value. A point is unvoiced only if its whole window is.
    """
    n = len(notes)
    out: Notes = []
    for i in range(n):
        lo = max(0, i - radius)
        hi = min(n, i + radius + 1)
        window = sorted(v for v in notes[lo:hi] if is_valid_note(v))
        out.append(window[len(window) // 2] if window else None)
    return out


def correct_octaves(
    notes: Sequence[Optional[float]],
    snap_tolerance: float = 1.0,
    outlier_threshold: float = 3.0,
) -> Notes:
    """
    Compare each interior point with the mean of its neighbours.

    A deviation within ``snap_tolerance`` of 12 semitones is treated as an
    octave error and shifted back by 12; any other deviation beyond
    ``outlier_threshold`` is replaced by the neighbour mean. The sweep runs
    left to right in place, so the left neighbour is the corrected value.
    """
    out: Notes = [n if is_valid_note(n) else None for n in notes]
    for i in range(1, len(out) - 1):
        prev, curr, nxt = out[i - 1], out[i], out[i + 1]
        if prev is None or curr is None or nxt is None:
            continue

        avg = (prev + nxt) / 2.0
        diff = curr - avg
        if abs(abs(diff) - 12.0) < snap_tolerance:
            out[i] = curr - 12.0 * float(np.sign(diff))
        elif abs(diff) > outlier_threshold:
            out[i] = avg
    return out


def weighted_smooth(
    notes: Sequence[Optional[float]],
    kernel: Sequence[float] = (1, 2, 3, 4, 3, 2, 1),
) -> Notes:
    """
    Weighted moving average centred on each voiced point.

    Only voiced neighbours contribute, normalised by the weight they carry.
    Unvoiced points stay unvoiced so gaps survive into the final contour.
    """
    n = len(notes)
    offset = len(kernel) // 2
    out: Notes = []
    for i in range(n):
        if not is_valid_note(notes[i]):
            out.append(None)
            continue

        total = 0.0
        w_sum = 0.0
        for j, w in enumerate(kernel):
            idx = i + j - offset
            if 0 <= idx < n and is_valid_note(notes[idx]):
                total += float(notes[idx]) * float(w)
                w_sum += float(w)

        out.append(total / w_sum if w_sum > 0.0 else None)
    return out


def note_range(notes: Sequence[Optional[float]]) -> Optional[Tuple[float, float]]:
    valid = [float(n) for n in notes if is_valid_note(n)]
    if not valid:
        return None
    return min(valid), max(valid)


def apply_contour_filters(points: Sequence[NotePoint], config: Optional[Any] = None) -> List[NotePoint]:
    """Run passes 1-4 over a raw timeline, keeping its timestamps."""
    c_conf = _contour_config(config)

    notes = notes_of(points)
    notes = fill_single_gaps(notes)
    notes = median_filter(notes, radius=int(c_conf.median_radius))
    notes = correct_octaves(
        notes,
        snap_tolerance=float(c_conf.octave_snap_tolerance),
        outlier_threshold=float(c_conf.outlier_threshold),
    )
    notes = weighted_smooth(notes, kernel=c_conf.smoothing_kernel)

    return [NotePoint(time=p.time, note=n) for p, n in zip(points, notes)]


def extract_contour(
    audio: np.ndarray,
    sample_rate: int,
    config: Optional[Any] = None,
) -> Contour:
    """
    Full offline extraction: Stage B framing + detection, then Stage C passes.

    Never raises for silent or too-short input; such buffers produce a
    contour whose points are all unvoiced (or no points at all).
    """
    stage_b_out = extract_features(audio, sample_rate, config=config)
    points = apply_contour_filters(stage_b_out.points, config)
    rng = note_range([p.note for p in points])

    duration = float(len(audio)) / float(sample_rate) if sample_rate > 0 else 0.0
    if rng is None:
        LOGGER.info("No pitched content found in %.2fs of audio.", duration)

    return Contour(
        points=points,
        note_range=rng,
        hop_sec=stage_b_out.hop_sec,
        duration_sec=duration,
    )

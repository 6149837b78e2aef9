"""Frame-level metrics for pitch contours.

All functions take two frame-aligned sequences (prediction first, ground
truth second). Frequencies use ``0`` for unvoiced frames; note-number
contours use ``None``/``nan``. Inputs of different length are compared over
the shorter one.

Pitch metrics:
    - ``cents_error``: mean absolute error in cents on voiced frames.
    - ``gross_error_rate``: share of voiced frames off by more than 50 cents.
    - ``octave_error_rate``: share of voiced frames off by roughly an octave.

Voicing metrics:
    - ``voicing_precision_recall`` and ``voicing_f1_score``.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple
import numpy as np


def notes_to_hz(notes: Sequence[Optional[float]]) -> np.ndarray:
    """Note numbers to Hz, with missing notes mapped to 0."""
    arr = np.array([np.nan if n is None else float(n) for n in notes], dtype=np.float64)
    hz = 440.0 * np.power(2.0, (arr - 69.0) / 12.0)
    return np.where(np.isfinite(hz), hz, 0.0)


def _align(pred_hz, gt_hz) -> Tuple[np.ndarray, np.ndarray]:
    pred_hz = np.nan_to_num(np.asarray(pred_hz, dtype=np.float64).reshape(-1), nan=0.0)
    gt_hz = np.nan_to_num(np.asarray(gt_hz, dtype=np.float64).reshape(-1), nan=0.0)
    n = min(len(pred_hz), len(gt_hz))
    return pred_hz[:n], gt_hz[:n]


def _voiced_cents(pred_hz, gt_hz) -> np.ndarray:
    """Signed cents error on frames voiced in both sequences."""
    pred_hz, gt_hz = _align(pred_hz, gt_hz)
    both = (pred_hz > 0.0) & (gt_hz > 0.0)
    return 1200.0 * np.log2(pred_hz[both] / gt_hz[both])


def cents_error(pred_hz: np.ndarray, gt_hz: np.ndarray) -> float:
    """Compute the mean absolute cents error on voiced frames.

    Parameters
    ----------
    pred_hz : np.ndarray
        Predicted fundamental frequency per frame (Hz).
    gt_hz : np.ndarray
        Ground-truth fundamental frequency per frame (Hz).

    Returns
    -------
    float
        Mean absolute error in cents over frames voiced in both. ``nan``
        when no such frame exists.
    """
    err = _voiced_cents(pred_hz, gt_hz)
    if err.size == 0:
        return float('nan')
    return float(np.mean(np.abs(err)))


def gross_error_rate(pred_hz: np.ndarray, gt_hz: np.ndarray, tolerance_cents: float = 50.0) -> float:
    err = _voiced_cents(pred_hz, gt_hz)
    if err.size == 0:
        return float('nan')
    return float(np.mean(np.abs(err) > tolerance_cents))


def octave_error_rate(pred_hz: np.ndarray, gt_hz: np.ndarray, tolerance_cents: float = 100.0) -> float:
    """Share of jointly voiced frames that sit one or two octaves away."""
    err = np.abs(_voiced_cents(pred_hz, gt_hz))
    if err.size == 0:
        return float('nan')
    octave = (np.abs(err - 1200.0) <= tolerance_cents) | (np.abs(err - 2400.0) <= tolerance_cents)
    return float(np.mean(octave))


def voicing_precision_recall(pred_hz: np.ndarray, gt_hz: np.ndarray) -> Tuple[float, float]:
    """Compute voicing precision and recall.

    Precision is the fraction of predicted voiced frames that are voiced in
    the ground truth; recall the fraction of ground-truth voiced frames that
    were predicted voiced. Either is ``nan`` when its denominator is zero.
    """
    pred_hz, gt_hz = _align(pred_hz, gt_hz)
    if pred_hz.size == 0:
        return float('nan'), float('nan')
    pred_voiced = pred_hz > 0.0
    gt_voiced = gt_hz > 0.0
    tp = np.sum(pred_voiced & gt_voiced)
    fp = np.sum(pred_voiced & ~gt_voiced)
    fn = np.sum(~pred_voiced & gt_voiced)
    precision = tp / float(tp + fp) if (tp + fp) > 0 else float('nan')
    recall = tp / float(tp + fn) if (tp + fn) > 0 else float('nan')
    return float(precision), float(recall)


def voicing_f1_score(pred_hz: np.ndarray, gt_hz: np.ndarray) -> float:
    precision, recall = voicing_precision_recall(pred_hz, gt_hz)
    if np.isnan(precision) or np.isnan(recall) or (precision + recall) == 0:
        return float("nan")
    return float(2 * precision * recall / (precision + recall))

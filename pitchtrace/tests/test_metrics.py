import math

import numpy as np
import pytest

from pitchtrace.benchmarks.metrics import (
    cents_error,
    gross_error_rate,
    notes_to_hz,
    octave_error_rate,
    voicing_f1_score,
    voicing_precision_recall,
)


def test_cents_error():
    gt = np.array([220.0, 220.0, 0.0])
    assert cents_error(gt, gt) == pytest.approx(0.0)
    semitone_up = gt * 2.0 ** (1.0 / 12.0)
    assert cents_error(semitone_up, gt) == pytest.approx(100.0)
    assert math.isnan(cents_error(np.zeros(3), gt))


def test_gross_and_octave_errors():
    gt = np.full(4, 220.0)
    pred = np.array([220.0, 221.0, 440.0, 110.0])
    assert gross_error_rate(pred, gt) == pytest.approx(0.5)
    assert octave_error_rate(pred, gt) == pytest.approx(0.5)


def test_voicing_precision_recall():
    pred = np.array([220.0, 0.0, 220.0, 220.0])
    gt = np.array([220.0, 220.0, 0.0, 220.0])
    precision, recall = voicing_precision_recall(pred, gt)
    assert precision == pytest.approx(2 / 3)
    assert recall == pytest.approx(2 / 3)
    assert voicing_f1_score(pred, gt) == pytest.approx(2 / 3)


def test_mismatched_lengths_use_shorter():
    assert cents_error(np.array([440.0]), np.array([440.0, 880.0])) == pytest.approx(0.0)


def test_notes_to_hz():
    assert notes_to_hz([69.0, None, float("nan")]) == pytest.approx([440.0, 0.0, 0.0])

import numpy as np
import pytest

from pitchtrace.pipeline.config import ContourConfig, DetectorConfig, PipelineConfig
from pitchtrace.pipeline.models import NotePoint
from pitchtrace.pipeline.stage_b import extract_features
from pitchtrace.pipeline.stage_c import (
    apply_contour_filters,
    correct_octaves,
    extract_contour,
    fill_single_gaps,
    median_filter,
    note_range,
    weighted_smooth,
)


def test_fill_single_gaps():
    assert fill_single_gaps([60.0, None, 62.0]) == [60.0, 61.0, 62.0]
    # Longer gaps and edges are left alone
    assert fill_single_gaps([60.0, None, None, 62.0]) == [60.0, None, None, 62.0]
    assert fill_single_gaps([None, 60.0, None]) == [None, 60.0, None]
    assert fill_single_gaps([60.0, float("nan"), 62.0]) == [60.0, 61.0, 62.0]


def test_median_filter_removes_spike():
    assert median_filter([60.0, 60.0, 70.0, 60.0, 60.0]) == [60.0] * 5


def test_median_filter_upper_middle_and_fill():
    # Window around index 1 holds only 60 and 62: upper middle wins
    assert median_filter([60.0, None, 62.0])[1] == 62.0
    assert median_filter([None, None, None]) == [None, None, None]


def test_correct_octaves_snap_and_clamp():
    assert correct_octaves([60.0, 72.0, 60.0]) == [60.0, 60.0, 60.0]
    assert correct_octaves([60.0, 48.0, 60.0]) == [60.0, 60.0, 60.0]
    assert correct_octaves([60.0, 65.0, 60.0]) == [60.0, 60.0, 60.0]
    assert correct_octaves([60.0, 62.0, 60.0]) == [60.0, 62.0, 60.0]
    assert correct_octaves([60.0, 72.0, None]) == [60.0, 72.0, None]


def test_correct_octaves_uses_corrected_left_neighbour():
    # i=1: avg 66, diff 6 -> 66; i=2 then sees 66 on its left: avg 63 -> 63
    assert correct_octaves([60.0, 72.0, 72.0, 60.0]) == [60.0, 66.0, 63.0, 60.0]


def test_weighted_smooth():
    out = weighted_smooth([60.0, 62.0, 64.0])
    assert out[1] == pytest.approx(62.0)
    assert out[0] == pytest.approx((60 * 4 + 62 * 3 + 64 * 2) / 9.0)

    assert weighted_smooth([60.0] * 10) == pytest.approx([60.0] * 10)
    assert weighted_smooth([60.0, None, 60.0]) == [60.0, None, 60.0]


def test_note_range():
    assert note_range([None, 60.0, 72.5, float("nan")]) == (60.0, 72.5)
    assert note_range([None, None]) is None


def test_apply_contour_filters_keeps_timestamps():
    points = [NotePoint(time=i * 0.01, note=n) for i, n in enumerate([60.0, 60.0, None, 60.0, 60.0])]
    out = apply_contour_filters(points, ContourConfig())
    assert [p.time for p in out] == [p.time for p in points]
    assert all(p.note == pytest.approx(60.0) for p in out)


def test_extract_features_diagnostics(sine, sr):
    out = extract_features(sine(440.0, duration=0.25), sr)
    assert out.diagnostics["frames"] == len(out.points)
    assert out.diagnostics["voiced_ratio"] == pytest.approx(1.0)
    assert out.hop_sec == pytest.approx(256 / sr)


def test_extract_contour_steady_tone(sine, sr):
    contour = extract_contour(sine(440.0, duration=1.0), sr)

    assert len(contour.points) == 1 + (sr - 2048) // 256
    assert contour.duration_sec == pytest.approx(1.0)
    assert contour.hop_sec == pytest.approx(256 / sr)
    assert contour.points[3].time == pytest.approx(3 * 256 / sr)
    assert all(p.voiced for p in contour.points)
    lo, hi = contour.note_range
    assert lo == pytest.approx(69.0, abs=0.2)
    assert hi == pytest.approx(69.0, abs=0.2)


def test_extract_contour_silence_and_short(sr):
    silent = extract_contour(np.zeros(sr // 2), sr)
    assert silent.note_range is None
    assert all(p.note is None for p in silent.points)

    short = extract_contour(np.zeros(1000), sr, config=PipelineConfig())
    assert short.points == []
    assert short.duration_sec == pytest.approx(1000 / sr)


def test_extract_contour_gap_survives(sine, sr):
    tone = sine(330.0, duration=0.5)
    audio = np.concatenate([tone, np.zeros(sr // 2), tone])
    contour = extract_contour(audio, sr)

    voiced = [p.voiced for p in contour.points]
    assert voiced[0] and voiced[-1]
    assert not all(voiced)


@pytest.mark.parametrize("seed", [0, 1, 2])
def test_median_filter_stays_within_window(seed):
    rng = np.random.default_rng(seed)
    notes = [float(v) if v > 45 else None for v in rng.uniform(40.0, 80.0, size=200)]

    out = median_filter(notes, radius=2)
    for i, value in enumerate(out):
        window = [v for v in notes[max(0, i - 2):i + 3] if v is not None]
        if not window:
            assert value is None
        else:
            assert min(window) <= value <= max(window)


def test_fill_single_gaps_leaves_voiced_run_unchanged():
    notes = [60.0, 61.5, 59.0, 72.0, 60.25]
    assert fill_single_gaps(notes) == notes


def test_extract_features_honours_detector_config(sine, sr):
    audio = sine(440.0, duration=0.25, amplitude=0.3)
    assert extract_features(audio, sr).diagnostics["voiced_frames"] > 0

    gated = extract_features(audio, sr, config=DetectorConfig(silence_rms=0.3))
    assert gated.diagnostics["voiced_frames"] == 0
    assert gated.hop_sec == pytest.approx(256 / sr)

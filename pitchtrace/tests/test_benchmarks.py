import json
import os

import numpy as np

from pitchtrace.benchmarks.benchmark_runner import BenchmarkSuite, main, synthesize_contour


def test_l0_writes_artifacts(tmp_path):
    results = main(["--level", "L0", "--output", str(tmp_path)])

    assert [r["name"] for r in results] == ["sine_110", "sine_220", "sine_440", "sine_880"]
    assert all(r["gross_error_rate"] == 0.0 for r in results)
    assert os.path.exists(tmp_path / "L0_sine_440.wav")
    assert os.path.exists(tmp_path / "summary.csv")

    with open(tmp_path / "metrics.json") as f:
        payload = json.load(f)
    assert len(payload["results"]) == 4
    assert payload["config"]["detector"]["silence_rms"] == 0.02


def test_l2_stabilizer_removes_octave_jitter(tmp_path):
    suite = BenchmarkSuite(str(tmp_path))
    suite.run_L2_live_replay()
    row = suite.results[0]

    assert row["raw_octave_error_rate"] > 0.1
    assert row["octave_error_rate"] == 0.0


def test_synthesize_contour_silences_zero_frequency():
    track = np.concatenate([np.full(100, 440.0), np.zeros(100)])
    audio = synthesize_contour(track)
    assert audio.dtype == np.float32
    assert np.all(audio[100:] == 0.0)

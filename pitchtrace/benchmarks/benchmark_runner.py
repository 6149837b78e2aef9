"""
Synthetic Benchmark Runner (L0-L3)

This module implements the benchmark ladder:
- L0: Pure tones, single-frame detection
- L1: Vibrato and glide contours through the offline extractor
- L2: Live replay with octave jitter through the realtime stabilizer
- L3: Tone bursts in noise with silent gaps (voicing)

Every case writes its rendered WAV plus a metrics JSON; a combined
``metrics.json`` and ``summary.csv`` are written at the end.
"""

from __future__ import annotations

import os
import json
import time
import argparse
import logging
import numpy as np
import soundfile as sf
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional

from pitchtrace.pipeline.config import PipelineConfig
from pitchtrace.pipeline.detectors import detect, note_to_hz
from pitchtrace.pipeline.models import PitchEstimate
from pitchtrace.pipeline.realtime import RealtimeStabilizer
from pitchtrace.pipeline.stage_c import extract_contour
from pitchtrace.benchmarks.metrics import (
    cents_error,
    gross_error_rate,
    notes_to_hz,
    octave_error_rate,
    voicing_f1_score,
    voicing_precision_recall,
)

logger = logging.getLogger("benchmark_runner")

SR = 44100


def synthesize_contour(freq_hz: np.ndarray, sr: int = SR, amplitude: float = 0.5) -> np.ndarray:
    """Phase-continuous sine following a per-sample frequency track (0 = silence)."""
    freq_hz = np.asarray(freq_hz, dtype=np.float64)
    phase = 2.0 * np.pi * np.cumsum(freq_hz) / float(sr)
    wave = amplitude * np.sin(phase)
    wave[freq_hz <= 0.0] = 0.0
    return wave.astype(np.float32)


def frame_center_truth(freq_hz: np.ndarray, n_frames: int, hop: int, frame_length: int) -> np.ndarray:
    """Ground-truth frequency at the centre of each analysis frame."""
    centers = np.arange(n_frames) * hop + frame_length // 2
    centers = np.clip(centers, 0, len(freq_hz) - 1)
    return freq_hz[centers]


def _summarise(metrics: Dict[str, Any]) -> Dict[str, Any]:
    # NaN is not valid JSON
    return {k: (None if isinstance(v, float) and np.isnan(v) else v) for k, v in metrics.items()}


class BenchmarkSuite:
    def __init__(self, output_dir: str, config: Optional[PipelineConfig] = None):
        self.output_dir = output_dir
        self.config = config or PipelineConfig()
        self.results: List[Dict[str, Any]] = []
        os.makedirs(output_dir, exist_ok=True)

    def _save_run(self, level: str, name: str, metrics: Dict[str, Any], audio: Optional[np.ndarray] = None):
        """Save artifacts for a single run."""
        row = _summarise({"level": level, "name": name, **metrics})
        self.results.append(row)

        base_path = os.path.join(self.output_dir, f"{level}_{name}")
        with open(f"{base_path}_metrics.json", "w") as f:
            json.dump(row, f, indent=2)
        if audio is not None:
            sf.write(f"{base_path}.wav", audio, SR)
        return row

    def _contour_case(self, level: str, name: str, freq_track: np.ndarray, audio: np.ndarray):
        contour = extract_contour(audio, SR, config=self.config)
        c_conf = self.config.contour
        pred = notes_to_hz([p.note for p in contour.points])
        gt = frame_center_truth(freq_track, len(pred), c_conf.hop_length, c_conf.frame_length)
        precision, recall = voicing_precision_recall(pred, gt)
        return self._save_run(
            level,
            name,
            {
                "cents_error": cents_error(pred, gt),
                "gross_error_rate": gross_error_rate(pred, gt),
                "octave_error_rate": octave_error_rate(pred, gt),
                "voicing_precision": precision,
                "voicing_recall": recall,
                "voicing_f1": voicing_f1_score(pred, gt),
                "frames": len(pred),
            },
            audio,
        )

    # --------------------------------------------------------
    # Levels
    # --------------------------------------------------------
    def run_L0_pure_tones(self):
        logger.info("Running L0: Pure Tones")
        frame_length = self.config.detector.frame_length
        for freq in (110.0, 220.0, 440.0, 880.0):
            track = np.full(SR, freq)
            audio = synthesize_contour(track)
            starts = range(0, len(audio) - frame_length + 1, frame_length)
            pred = np.array(
                [detect(audio[s:s + frame_length], SR, self.config.detector).frequency_hz or 0.0 for s in starts]
            )
            gt = np.full(len(pred), freq)
            m = self._save_run(
                "L0",
                f"sine_{int(freq)}",
                {
                    "cents_error": cents_error(pred, gt),
                    "gross_error_rate": gross_error_rate(pred, gt),
                    "voicing_f1": voicing_f1_score(pred, gt),
                },
                audio,
            )
            if m["gross_error_rate"] is None or m["gross_error_rate"] > 0.1:
                raise RuntimeError(f"L0 Failed: sine {freq} Hz gross error {m['gross_error_rate']}")
        logger.info("L0 Passed.")

    def run_L1_contours(self):
        logger.info("Running L1: Vibrato / Glide")
        t = np.arange(2 * SR) / float(SR)

        vibrato = 220.0 * np.power(2.0, (50.0 / 1200.0) * np.sin(2.0 * np.pi * 5.0 * t))
        self._contour_case("L1", "vibrato_220", vibrato, synthesize_contour(vibrato))

        glide = note_to_hz(57) * np.power(2.0, t / t[-1])
        m = self._contour_case("L1", "glide_a3_a4", glide, synthesize_contour(glide))

        if m["cents_error"] is None or m["cents_error"] > 50.0:
            logger.warning(f"L1 Warning: glide cents error {m['cents_error']} > 50")

    def run_L2_live_replay(self, jitter_every: int = 5):
        logger.info("Running L2: Live replay with octave jitter")
        frame_length = self.config.detector.frame_length
        stabilizer = RealtimeStabilizer(self.config.stabilizer)
        base = 220.0
        tick = int(SR / self.config.live.tick_rate_hz)
        ticks = 120

        raw_hz, out_hz = [], []
        for i in range(ticks):
            freq = base * 2.0 if i % jitter_every == jitter_every - 1 else base
            t = (i * tick + np.arange(frame_length)) / float(SR)
            frame = 0.5 * np.sin(2.0 * np.pi * freq * t)
            est: PitchEstimate = detect(frame, SR, self.config.detector)
            stabilizer.update(est)
            raw_hz.append(est.frequency_hz or 0.0)
            out_hz.append(stabilizer.frequency_hz or 0.0)

        gt = np.full(ticks, base)
        self._save_run(
            "L2",
            "octave_jitter_220",
            {
                "raw_octave_error_rate": octave_error_rate(np.array(raw_hz), gt),
                "octave_error_rate": octave_error_rate(np.array(out_hz), gt),
                "cents_error": cents_error(np.array(out_hz), gt),
            },
        )

    def run_L3_bursts_in_noise(self, snr_db: float = 20.0, seed: int = 0):
        logger.info("Running L3: Tone bursts in noise")
        rng = np.random.default_rng(seed)
        track = np.zeros(3 * SR)
        for k, freq in enumerate((196.0, 330.0, 523.25)):
            start = int((0.25 + k) * SR)
            track[start:start + SR // 2] = freq

        audio = synthesize_contour(track)
        signal_power = 0.5 ** 2 / 2.0
        noise_std = np.sqrt(signal_power / (10.0 ** (snr_db / 10.0)))
        audio = (audio + rng.normal(0.0, noise_std, size=audio.shape)).astype(np.float32)
        self._contour_case("L3", f"bursts_snr{int(snr_db)}", track, audio)

    def generate_summary(self):
        summary_path = os.path.join(self.output_dir, "summary.csv")
        metrics_path = os.path.join(self.output_dir, "metrics.json")

        keys: List[str] = []
        for r in self.results:
            keys.extend(k for k in r if k not in keys)
        with open(summary_path, "w") as f:
            f.write(",".join(keys) + "\n")
            for r in self.results:
                f.write(",".join("" if r.get(k) is None else str(r.get(k)) for k in keys) + "\n")

        with open(metrics_path, "w") as f:
            json.dump({"config": asdict(self.config), "results": self.results}, f, indent=2, default=str)

        logger.info(f"Summary saved to {summary_path}")


LEVELS: Dict[str, Callable[[BenchmarkSuite], None]] = {
    "L0": BenchmarkSuite.run_L0_pure_tones,
    "L1": BenchmarkSuite.run_L1_contours,
    "L2": BenchmarkSuite.run_L2_live_replay,
    "L3": BenchmarkSuite.run_L3_bursts_in_noise,
}


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--output", default=f"results/benchmark_{int(time.time())}")
    parser.add_argument("--level", choices=["all"] + list(LEVELS), default="all",
                        help="Run a specific benchmark level or all levels")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    runner = BenchmarkSuite(args.output)
    to_run = list(LEVELS) if args.level == "all" else [args.level]

    try:
        for lvl in to_run:
            LEVELS[lvl](runner)
    finally:
        runner.generate_summary()
    return runner.results


if __name__ == "__main__":
    main()

"""
Stage B - Frame-wise pitch detection

Steps through a complete buffer with a fixed hop, runs the autocorrelation
detector on every full-length frame and converts the detections to a raw
note-number timeline. Frames that would extend past the end of the buffer are
dropped.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import numpy as np

from .config import ContourConfig, DetectorConfig, resolve
from .detectors import AutocorrelationDetector, hz_to_note
from .models import NotePoint, StageBOutput

LOGGER = logging.getLogger(__name__)


def _section(config: Any, section: str, cls):
    # A sub-config for the other section leaves this one at its defaults
    if isinstance(config, (ContourConfig, DetectorConfig)) and not isinstance(config, cls):
        return cls()
    return resolve(config, section, cls)


def _arrays_to_timeline(f0: np.ndarray, sr: int, hop_length: int) -> List[NotePoint]:
    """Convert an f0 array (0 = unvoiced) to NotePoints on the hop grid."""
    timeline = []
    for i in range(len(f0)):
        hz = float(f0[i])
        time_sec = float(i * hop_length) / float(sr)
        timeline.append(NotePoint(time=time_sec, note=hz_to_note(hz) if hz > 0 else None))
    return timeline


def extract_features(
    audio: np.ndarray,
    sample_rate: int,
    config: Optional[Any] = None,
) -> StageBOutput:
    """
    Stage B: per-hop detection.

    Parameters
    ----------
    audio : np.ndarray
        Complete mono buffer.
    sample_rate : int
    config : PipelineConfig, ContourConfig or DetectorConfig, optional
        Hop and frame size come from the contour settings and thresholds from
        the detector settings. Whichever section is not given uses defaults.
    """
    c_conf: ContourConfig = _section(config, "contour", ContourConfig)
    d_conf: DetectorConfig = _section(config, "detector", DetectorConfig)

    sr = int(sample_rate)
    hop_length = int(c_conf.hop_length)
    y = np.asarray(audio, dtype=np.float64).reshape(-1)

    detector = AutocorrelationDetector(d_conf)
    if sr > 0:
        f0, clarity = detector.predict(y, sr, hop_length=hop_length, frame_length=c_conf.frame_length)
    else:
        LOGGER.warning("Non-positive sample rate %s; no frames analysed.", sample_rate)
        f0, clarity = np.zeros(0), np.zeros(0)

    n_frames = len(f0)
    if n_frames == 0 and y.size:
        LOGGER.warning(
            "Buffer of %d samples is shorter than one %d-sample frame; contour is empty.",
            y.size,
            c_conf.frame_length,
        )

    points = _arrays_to_timeline(f0, sr, hop_length) if sr > 0 else []
    hop_sec = float(hop_length) / float(sr) if sr > 0 else 0.0
    time_grid = np.arange(n_frames) * hop_sec

    voiced = int(np.count_nonzero(f0 > 0.0))
    diagnostics = {
        "frames": n_frames,
        "voiced_frames": voiced,
        "voiced_ratio": float(voiced) / n_frames if n_frames else 0.0,
        "tail_samples": int(y.size - ((n_frames - 1) * hop_length + c_conf.frame_length)) if n_frames else int(y.size),
    }
    LOGGER.debug("Stage B: %d frames, %d voiced", n_frames, voiced)

    return StageBOutput(
        time_grid=time_grid,
        f0_hz=f0,
        clarity=clarity,
        points=points,
        hop_sec=hop_sec,
        diagnostics=diagnostics,
    )

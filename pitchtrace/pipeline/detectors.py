# pitchtrace/pipeline/detectors.py
from __future__ import annotations

import math
from typing import Any, Dict, Optional, Tuple

import warnings
import numpy as np

from .config import DetectorConfig, resolve
from .models import PitchEstimate, SampleFrame

NO_PITCH = PitchEstimate(frequency_hz=None, clarity=0.0)


# --------------------------------------------------------------------------------------
# Utility
# --------------------------------------------------------------------------------------
def hz_to_note(hz: Optional[float]) -> Optional[float]:
    """Continuous note number, 69.0 = A4 = 440 Hz. None for unusable input."""
    if hz is None or not math.isfinite(hz) or hz <= 0.0:
        return None
    return 69.0 + 12.0 * math.log2(float(hz) / 440.0)


def note_to_hz(note: float) -> float:
    """Convert a note number to frequency in Hz."""
    return float(440.0 * (2.0 ** ((float(note) - 69.0) / 12.0)))


def frame_audio(y: np.ndarray, frame_length: int, hop_length: int) -> np.ndarray:
    """
    Slice ``y`` into overlapping frames. Frames that would run past the end of
    the buffer are dropped rather than padded.
    """
    y = np.asarray(y, dtype=np.float64).reshape(-1)
    if frame_length <= 0 or hop_length <= 0 or len(y) < frame_length:
        return np.zeros((0, max(frame_length, 0)), dtype=np.float64)

    n_frames = 1 + (len(y) - frame_length) // hop_length
    frames = np.lib.stride_tricks.as_strided(
        y,
        shape=(n_frames, frame_length),
        strides=(y.strides[0] * hop_length, y.strides[0]),
        writeable=False,
    )
    return frames


def center_clip(x: np.ndarray, limit: float) -> np.ndarray:
    """Zero samples inside +/-limit and pull the rest towards zero by ``limit``."""
    out = np.zeros_like(x)
    hi = x > limit
    lo = x < -limit
    out[hi] = x[hi] - limit
    out[lo] = x[lo] + limit
    return out


def _lag_correlations(clipped: np.ndarray, min_lag: int, max_lag: int, max_pairs: int) -> np.ndarray:
    """
    Normalised autocorrelation for every lag in [min_lag, max_lag].

    Each lag averages at most ``max_pairs`` products. The returned array is
    indexed by lag and has zeros outside the searched range (including one
    slot past ``max_lag``) so peak picking can look at both neighbours.
    """
    size = clipped.size
    corr = np.zeros(max_lag + 2, dtype=np.float64)

    lags = np.arange(min_lag, max_lag + 1)
    counts = np.minimum(size - lags, max_pairs)

    full = lags[counts == max_pairs]
    if full.size:
        windows = np.lib.stride_tricks.sliding_window_view(clipped, max_pairs)
        corr[full] = (windows[full] @ clipped[:max_pairs]) / float(max_pairs)

    for lag, n in zip(lags[counts < max_pairs], counts[counts < max_pairs]):
        n = int(n)
        corr[lag] = float(np.dot(clipped[:n], clipped[lag : lag + n])) / float(n)

    return corr


# --------------------------------------------------------------------------------------
# Detector
# --------------------------------------------------------------------------------------
def detect(
    samples: np.ndarray,
    sample_rate: int,
    config: Optional[Any] = None,
) -> PitchEstimate:
    """
    Estimate the fundamental of a single frame.

    Pipeline: silence gate -> centre clipping -> bounded autocorrelation ->
    clarity gate -> first strong local maximum -> parabolic refinement.

    Parameters
    ----------
    samples : np.ndarray
        Mono frame (2048 samples in normal use).
    sample_rate : int
        Sample rate in Hz.
    config : DetectorConfig or PipelineConfig, optional

    Returns
    -------
    PitchEstimate
        ``frequency_hz`` is None when no periodic content was found.
    """
    cfg: DetectorConfig = resolve(config, "detector", DetectorConfig)

    x = np.asarray(samples, dtype=np.float64).reshape(-1)
    sr = float(sample_rate)
    if x.size == 0 or sr <= 0.0:
        return NO_PITCH
    if not np.all(np.isfinite(x)):
        x = np.where(np.isfinite(x), x, 0.0)

    rms = float(np.sqrt(np.mean(x * x)))
    if rms < cfg.silence_rms:
        return NO_PITCH
    peak = float(np.max(np.abs(x)))

    clipped = center_clip(x, peak * cfg.clip_ratio)

    min_lag = max(1, int(math.floor(sr / cfg.fmax)))
    max_lag = min(int(math.floor(sr / cfg.fmin)), x.size - 1)
    if max_lag < min_lag:
        return NO_PITCH

    corr = _lag_correlations(clipped, min_lag, max_lag, int(cfg.max_correlation_pairs))
    max_corr = max(0.0, float(np.max(corr[min_lag : max_lag + 1])))

    clip_rms = float(np.sqrt(np.mean(clipped * clipped)))
    clarity = 0.0 if clip_rms == 0.0 else max_corr / (clip_rms * clip_rms)
    reported = float(min(1.0, clarity))

    required = cfg.low_rms_clarity_threshold if rms < cfg.low_rms_level else cfg.clarity_threshold
    if clarity < required:
        return PitchEstimate(frequency_hz=None, clarity=reported)

    # Shortest strong period wins over sub-harmonics
    threshold = max_corr * cfg.peak_threshold_ratio
    period = -1
    for lag in range(min_lag, max_lag + 1):
        c = corr[lag]
        if c > threshold and c > corr[lag - 1] and c >= corr[lag + 1]:
            period = lag
            break

    if period < 0:
        return NO_PITCH

    refined = _refine_period(corr, period, min_lag, max_lag)
    return PitchEstimate(frequency_hz=sr / refined, clarity=reported)


def _refine_period(corr: np.ndarray, t0: int, min_lag: int, max_lag: int) -> float:
    """Three-point parabolic vertex around the integer lag ``t0``."""
    if t0 - 1 < min_lag or t0 + 1 > max_lag:
        return float(t0)

    x1 = float(corr[t0 - 1])
    x2 = float(corr[t0])
    x3 = float(corr[t0 + 1])
    a = (x1 + x3 - 2.0 * x2) / 2.0
    b = (x3 - x1) / 2.0
    if a == 0.0:
        return float(t0)

    refined = t0 - b / (2.0 * a)
    if not math.isfinite(refined) or refined <= 0.0:
        return float(t0)
    return float(refined)


class AutocorrelationDetector:
    """
    Stateless wrapper around :func:`detect` used by the live session and the
    offline framing stage.
    """

    def __init__(self, config: Optional[Any] = None):
        self.config: DetectorConfig = resolve(config, "detector", DetectorConfig)
        self._warned: Dict[str, bool] = {}

    def _warn_once(self, key: str, msg: str) -> None:
        if not self._warned.get(key, False):
            warnings.warn(msg)
            self._warned[key] = True

    def detect(self, frame: SampleFrame) -> PitchEstimate:
        if frame.samples.size != self.config.frame_length:
            self._warn_once(
                "frame_length",
                f"Frame of {frame.samples.size} samples differs from configured "
                f"frame_length={self.config.frame_length}; analysing as given.",
            )
        return detect(frame.samples, frame.sample_rate, self.config)

    def predict(
        self,
        audio: np.ndarray,
        sr: int,
        hop_length: int,
        frame_length: Optional[int] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Frame-wise detection over a whole buffer.

        Returns (f0, clarity) arrays, one value per hop; unvoiced frames have
        f0 = 0.
        """
        n_fft = int(frame_length or self.config.frame_length)
        frames = frame_audio(audio, frame_length=n_fft, hop_length=hop_length)
        n_frames = frames.shape[0]
        f0 = np.zeros((n_frames,), dtype=np.float64)
        conf = np.zeros((n_frames,), dtype=np.float64)

        for i in range(n_frames):
            est = detect(frames[i], sr, self.config)
            if est.frequency_hz is not None:
                f0[i] = est.frequency_hz
            conf[i] = est.clarity

        return f0, conf

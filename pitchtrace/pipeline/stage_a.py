"""
Stage A - Load

Decodes an audio file into the mono float buffer the contour extractor works
on. No gain or trimming is applied: the detector's silence gate and the track
timestamps both depend on the file's original amplitude and timing.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Optional, Tuple

import librosa
import numpy as np
import scipy.io.wavfile
import scipy.signal

from .config import LoaderConfig, resolve
from .models import LoadedAudio

LOGGER = logging.getLogger(__name__)


class AudioDecodeError(RuntimeError):
    """Raised when a file cannot be turned into samples."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not decode {path}: {reason}")
        self.path = path
        self.reason = reason


def _load_audio_fallback(path: str, target_sr: Optional[int]) -> Tuple[np.ndarray, int]:
    """WAV-only loader used when librosa cannot open the file."""
    sr, audio = scipy.io.wavfile.read(path)

    # Convert int to float -1..1
    if audio.dtype == np.int16:
        audio = audio.astype(np.float32) / 32768.0
    elif audio.dtype == np.int32:
        audio = audio.astype(np.float32) / 2147483648.0
    elif audio.dtype == np.uint8:
        audio = (audio.astype(np.float32) - 128.0) / 128.0
    else:
        audio = audio.astype(np.float32)

    if audio.ndim > 1:
        audio = np.mean(audio, axis=1)

    if target_sr and sr != target_sr:
        num_samples = int(len(audio) * float(target_sr) / sr)
        audio = scipy.signal.resample(audio, num_samples)
        sr = target_sr

    return np.asarray(audio, dtype=np.float32), int(sr)


def load_audio(path: str, config: Optional[Any] = None) -> LoadedAudio:
    """
    Decode ``path`` to a mono float buffer.

    Raises
    ------
    AudioDecodeError
        Neither librosa nor the WAV fallback could read the file.
    ValueError
        The file decoded to zero samples.
    """
    conf: LoaderConfig = resolve(config, "loader", LoaderConfig)
    path = str(path)

    try:
        audio, sr = librosa.load(path, sr=conf.target_sample_rate, mono=conf.mono)
    except Exception as primary_exc:
        LOGGER.debug("librosa could not load %s: %s", path, primary_exc)
        try:
            audio, sr = _load_audio_fallback(path, conf.target_sample_rate)
        except Exception as exc:
            raise AudioDecodeError(path, str(primary_exc) or str(exc)) from exc
        warnings.warn(f"librosa failed on {path}; decoded with the scipy WAV reader instead.")

    audio = np.asarray(audio, dtype=np.float32)
    if audio.ndim > 1:
        audio = np.mean(audio, axis=0)
    if audio.size == 0:
        raise ValueError(f"Audio too short (empty): {path}")

    LOGGER.info("Loaded %s (%d samples @ %d Hz)", path, audio.size, int(sr))
    return LoadedAudio(audio=audio, sample_rate=int(sr), path=path)

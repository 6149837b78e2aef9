import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure the project root is on sys.path so "pitchtrace" can be imported during tests
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

SR = 44100


def _sine(freq, duration=None, n=None, sr=SR, amplitude=0.5, offset=0):
    if n is None:
        n = int(round(duration * sr))
    t = (np.arange(n) + offset) / float(sr)
    return amplitude * np.sin(2.0 * np.pi * freq * t)


@pytest.fixture
def sr():
    return SR


@pytest.fixture
def sine():
    """Factory: sine(freq, duration=... | n=..., amplitude=0.5)."""
    return _sine


@pytest.fixture
def sine_frame():
    """Factory for one 2048-sample frame."""
    def make(freq, amplitude=0.5, sr=SR, offset=0):
        return _sine(freq, n=2048, sr=sr, amplitude=amplitude, offset=offset)
    return make

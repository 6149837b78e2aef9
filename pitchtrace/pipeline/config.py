"""
Pipeline configuration.

Each stage reads its own dataclass; ``PipelineConfig`` bundles them so a single
object can be threaded through the live session and the file analysis path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple


@dataclass
class DetectorConfig:
    """Autocorrelation pitch detector settings."""

    silence_rms: float = 0.02
    clip_ratio: float = 0.4
    fmin: float = 60.0
    fmax: float = 1200.0
    max_correlation_pairs: int = 800
    clarity_threshold: float = 0.85
    # Weak signals must show stronger periodicity before a pitch is reported
    low_rms_level: float = 0.05
    low_rms_clarity_threshold: float = 0.92
    peak_threshold_ratio: float = 0.9
    frame_length: int = 2048


@dataclass
class StabilizerConfig:
    """Real-time smoothing / octave correction settings."""

    buffer_size: int = 7
    # Open ratio windows against the anchor frequency
    octave_up_window: Tuple[float, float] = (1.9, 2.1)
    octave_down_window: Tuple[float, float] = (0.48, 0.52)
    anchor_weight: float = 0.1
    silence_decay: int = 2
    min_buffered: int = 3


@dataclass
class LiveConfig:
    tick_rate_hz: float = 60.0
    history_capacity: int = 600
    follow_window_s: float = 10.0
    # None keeps every point captured while recording
    recording_capacity: Optional[int] = None


@dataclass
class ContourConfig:
    """Offline multi-pass contour extraction."""

    hop_length: int = 256
    frame_length: int = 2048
    median_radius: int = 2
    octave_snap_tolerance: float = 1.0
    outlier_threshold: float = 3.0
    smoothing_kernel: Tuple[int, ...] = (1, 2, 3, 4, 3, 2, 1)


@dataclass
class ViewConfig:
    follow_window_s: float = 10.0
    min_zoom: float = 1.0
    max_zoom: float = 50.0
    zoom_step: float = 0.5
    default_duration_s: float = 10.0
    default_note_range: Tuple[float, float] = (57.0, 81.0)
    note_padding: float = 2.0
    min_note_span: float = 12.0
    tick_magnitudes: Tuple[float, ...] = (0.1, 0.2, 0.5, 1, 2, 5, 10, 15, 30, 60, 120, 300)
    target_ticks: int = 8
    live_ticks: int = 5


@dataclass
class LoaderConfig:
    # None keeps the file's native sample rate
    target_sample_rate: Optional[int] = None
    mono: bool = True


@dataclass
class PipelineConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    stabilizer: StabilizerConfig = field(default_factory=StabilizerConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    contour: ContourConfig = field(default_factory=ContourConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)


TRACK_COLORS: Tuple[str, ...] = (
    "#ef4444",
    "#3b82f6",
    "#22c55e",
    "#eab308",
    "#a855f7",
    "#ec4899",
    "#06b6d4",
)

DEFAULT_CONFIG = PipelineConfig()


def resolve(config, section: str, cls):
    """
    Return the ``section`` sub-config from ``config``.

    Accepts None (defaults), the aggregate PipelineConfig, or an instance of
    ``cls`` itself so stage functions can be called with just their own
    settings.
    """
    if config is None:
        return cls()
    if isinstance(config, cls):
        return config
    if isinstance(config, PipelineConfig):
        return getattr(config, section)
    raise TypeError(f"Expected PipelineConfig or {cls.__name__}, got {type(config).__name__}")

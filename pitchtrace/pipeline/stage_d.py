"""
Stage D - Align and lay out

Decides which slice of each stream (imported tracks, the live recording, the
live history ring) falls inside the visible time window, and computes the
axis geometry a renderer needs. No drawing happens here: everything is
returned as coordinates and labels.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

from .config import LiveConfig, ViewConfig, resolve
from .models import NotePoint, TimeWindow, Track, ViewMode, ViewState, is_valid_note
from .realtime import LiveHistory, LiveRecording

NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")
LABELLED_PITCH_CLASSES = (0, 5, 9)  # C, F, A

Segment = List[NotePoint]


@dataclass
class AlignedStream:
    """One stream's visible polyline segments."""

    id: Any
    color: str
    segments: List[Segment] = field(default_factory=list)
    name: str = ""

    @property
    def point_count(self) -> int:
        return sum(len(s) for s in self.segments)


@dataclass(frozen=True)
class GridLine:
    note: int
    label: Optional[str]
    is_c: bool


@dataclass(frozen=True)
class TimeTick:
    time: float
    label: str


# --------------------------------------------------------
# Window
# --------------------------------------------------------
def compute_window(
    view: ViewState,
    total_duration: float,
    now: float = 0.0,
    config: Optional[Any] = None,
) -> TimeWindow:
    """
    FOLLOW: a fixed-width window centred on ``now``.
    FULL: ``total/zoom`` wide, positioned by ``scroll`` over the remainder.
    """
    v_conf: ViewConfig = resolve(config, "view", ViewConfig)

    if view.mode == ViewMode.FOLLOW:
        visible = float(v_conf.follow_window_s)
        start = float(now) - visible / 2.0
        return TimeWindow(start=start, end=start + visible, visible_duration=visible, is_live=True)

    total = float(total_duration) if total_duration and total_duration > 0 else float(v_conf.default_duration_s)
    zoom = max(1.0, float(view.zoom))
    visible = total / zoom
    start = float(view.scroll) * (total - visible)
    return TimeWindow(start=start, end=start + visible, visible_duration=visible, is_live=False)


# --------------------------------------------------------
# Slicing
# --------------------------------------------------------
def slice_by_time(times: Sequence[float], start: float, end: float) -> Tuple[int, int]:
    """Index range ``[lo, hi)`` of sorted ``times`` with ``start <= t <= end``."""
    lo = bisect.bisect_left(times, start)
    hi = bisect.bisect_right(times, end)
    return lo, max(lo, hi)


def slice_uniform(
    points: Sequence[NotePoint],
    hop: float,
    start: float,
    end: float,
) -> Sequence[NotePoint]:
    """
    Window slice for a contour sampled every ``hop`` seconds from its first
    point. The index estimate is widened by one each side and then trimmed,
    so float rounding never drops or adds a boundary point.
    """
    n = len(points)
    if n == 0 or end < start:
        return []
    if hop <= 0:
        lo, hi = slice_by_time([p.time for p in points], start, end)
        return points[lo:hi]

    t0 = points[0].time
    lo = max(0, int(math.floor((start - t0) / hop)) - 1)
    hi = min(n, int(math.ceil((end - t0) / hop)) + 2)
    if lo >= hi:
        return []

    candidate = points[lo:hi]
    i = 0
    while i < len(candidate) and candidate[i].time < start:
        i += 1
    j = len(candidate)
    while j > i and candidate[j - 1].time > end:
        j -= 1
    return candidate[i:j]


def split_segments(points: Sequence[NotePoint]) -> List[Segment]:
    """Break a point run into polylines at every missing note."""
    segments: List[Segment] = []
    current: Segment = []
    for p in points:
        if is_valid_note(p.note):
            current.append(p)
        elif current:
            segments.append(current)
            current = []
    if current:
        segments.append(current)
    return segments


def align(
    window: TimeWindow,
    tracks: Sequence[Track] = (),
    recording: Optional[LiveRecording] = None,
    recording_color: str = "#ffffff",
) -> List[AlignedStream]:
    """Visible segments of every imported track, then the live recording."""
    streams: List[AlignedStream] = []
    for track in tracks:
        visible = slice_uniform(track.points, track.hop_sec, window.start, window.end)
        streams.append(
            AlignedStream(id=track.id, color=track.color, segments=split_segments(visible), name=track.name)
        )

    if recording is not None and len(recording):
        pts = recording.window(window.start, window.end)
        streams.append(
            AlignedStream(id="recording", color=recording_color, segments=split_segments(pts), name="Live")
        )
    return streams


def live_view(history: LiveHistory, config: Optional[Any] = None) -> Tuple[TimeWindow, List[Segment]]:
    """
    Map the live history ring onto a window centred on the newest sample.

    The newest entry sits at t=0; the entry ``k`` ticks older sits at
    ``-k / tick_rate`` seconds. Entries older than half the window are not
    visible.
    """
    l_conf: LiveConfig = resolve(config, "live", LiveConfig)
    half = float(l_conf.follow_window_s) / 2.0
    window = TimeWindow(start=-half, end=half, visible_duration=2.0 * half, is_live=True)

    items = list(history)
    if not items:
        return window, []

    newest = items[-1][0]
    rate = float(l_conf.tick_rate_hz)
    pts = []
    for idx, note in items:
        t = -(newest - idx) / rate
        if t >= window.start:
            pts.append(NotePoint(time=t, note=note))
    return window, split_segments(pts)


# --------------------------------------------------------
# Axis geometry
# --------------------------------------------------------
def note_axis_range(values: Sequence[Optional[float]], config: Optional[Any] = None) -> Tuple[float, float]:
    """Padded vertical range, widened about its centre to a minimum span."""
    v_conf: ViewConfig = resolve(config, "view", ViewConfig)
    valid = [float(v) for v in values if is_valid_note(v)]
    if not valid:
        return tuple(v_conf.default_note_range)  # type: ignore[return-value]

    lo = min(valid) - v_conf.note_padding
    hi = max(valid) + v_conf.note_padding
    if hi - lo < v_conf.min_note_span:
        mid = (lo + hi) / 2.0
        lo = mid - v_conf.min_note_span / 2.0
        hi = mid + v_conf.min_note_span / 2.0
    return lo, hi


def note_name(note: int) -> str:
    n = int(note)
    return f"{NOTE_NAMES[n % 12]}{n // 12 - 1}"


def note_grid(min_note: float, max_note: float) -> List[GridLine]:
    lines = []
    label_all = (max_note - min_note) < 20
    for n in range(int(math.ceil(min_note)), int(math.floor(max_note)) + 1):
        pc = n % 12
        label = note_name(n) if (label_all or pc in LABELLED_PITCH_CLASSES) else None
        lines.append(GridLine(note=n, label=label, is_c=(pc == 0)))
    return lines


def format_time(seconds: float) -> str:
    """
    >>> format_time(12.5)
    '12.5s'
    >>> format_time(12.99)
    '12.9s'
    >>> format_time(75)
    '1:15'
    """
    if seconds is None or math.isnan(seconds):
        return "0:00"
    sign = "-" if seconds < 0 else ""
    s = abs(float(seconds))
    if s < 60:
        # Truncated to tenths; the epsilon absorbs binary error such as 2.3 * 10
        tenths = int(s * 10 + 1e-9)
        return f"{sign}{tenths // 10}.{tenths % 10}s"
    minutes = int(s // 60)
    secs = int(s % 60)
    return f"{sign}{minutes}:{secs:02d}"


def time_ticks(
    window: TimeWindow,
    config: Optional[Any] = None,
    relative: Optional[bool] = None,
) -> List[TimeTick]:
    """
    Axis ticks for ``window``. Relative ticks (the live ring view) are evenly
    spaced and labelled from the centre; otherwise the first interval from
    the magnitude ladder giving at most ``target_ticks`` ticks is used.
    """
    v_conf: ViewConfig = resolve(config, "view", ViewConfig)

    if window.is_live if relative is None else relative:
        n = int(v_conf.live_ticks)
        step = window.visible_duration / n
        ticks = []
        for i in range(n + 1):
            t = window.start + i * step
            rel = -window.visible_duration / 2.0 + i * step
            label = ("+" if rel > 0 else "") + f"{rel:.1f}s"
            ticks.append(TimeTick(time=t, label=label))
        return ticks

    duration = window.visible_duration
    if duration <= 0:
        return []
    target = duration / float(v_conf.target_ticks)
    interval = next((m for m in v_conf.tick_magnitudes if m >= target), v_conf.tick_magnitudes[-1])

    ticks = []
    t = math.ceil(window.start / interval) * interval
    while t <= window.end + 1e-9:
        ticks.append(TimeTick(time=t, label=format_time(t)))
        t += interval
    return ticks


def project(point: NotePoint, window: TimeWindow, note_range: Tuple[float, float]) -> Optional[Tuple[float, float]]:
    """Normalised ``(x, y)``; y grows upward with pitch. None for unvoiced points."""
    if not is_valid_note(point.note):
        return None
    width = window.end - window.start
    lo, hi = note_range
    x = (point.time - window.start) / width if width > 0 else 0.0
    y = (float(point.note) - lo) / (hi - lo) if hi > lo else 0.5
    return x, y

"""
Real-time pitch stabilization and live buffers.

Everything here is owned by the single tick loop: one ``update`` per analysis
tick, no locking.
"""

from __future__ import annotations

import bisect
import logging
from collections import deque
from typing import Any, Deque, Iterator, List, Optional, Tuple

from .config import StabilizerConfig, resolve
from .detectors import hz_to_note
from .models import NotePoint, PitchEstimate, is_valid_note

LOGGER = logging.getLogger(__name__)


def _upper_median(values) -> float:
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


class RealtimeStabilizer:
    """
    Median smoothing with octave-jump suppression for a live detection stream.

    State
    -----
    smoothing_buffer : recent corrected frequencies, oldest first.
    last_stable_freq : slowly moving anchor frequency, 0.0 when unset.

    ``update`` returns the smoothed note number, or None while silent.
    """

    def __init__(self, config: Optional[Any] = None) -> None:
        self.config: StabilizerConfig = resolve(config, "stabilizer", StabilizerConfig)
        if self.config.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")
        self.smoothing_buffer: Deque[float] = deque()
        self.last_stable_freq: float = 0.0
        self.frequency_hz: Optional[float] = None

    def reset(self) -> None:
        self.smoothing_buffer.clear()
        self.last_stable_freq = 0.0
        self.frequency_hz = None

    def _correct_octave(self, freq: float) -> float:
        if self.last_stable_freq <= 0.0:
            return freq
        ratio = freq / self.last_stable_freq
        up_lo, up_hi = self.config.octave_up_window
        down_lo, down_hi = self.config.octave_down_window
        if up_lo < ratio < up_hi:
            return freq / 2.0
        if down_lo < ratio < down_hi:
            return freq * 2.0
        return freq

    def update(self, estimate: PitchEstimate) -> Optional[float]:
        cfg = self.config
        raw = estimate.frequency_hz
        voiced = raw is not None and raw > 0.0

        final: Optional[float]
        if not voiced:
            # Fast decay while silent
            for _ in range(min(cfg.silence_decay, len(self.smoothing_buffer))):
                self.smoothing_buffer.popleft()
            if not self.smoothing_buffer:
                final = None
                self.last_stable_freq = 0.0
            else:
                final = _upper_median(self.smoothing_buffer)
        else:
            corrected = self._correct_octave(float(raw))
            self.smoothing_buffer.append(corrected)
            while len(self.smoothing_buffer) > cfg.buffer_size:
                self.smoothing_buffer.popleft()

            final = _upper_median(self.smoothing_buffer)
            if final > 0.0:
                if self.last_stable_freq == 0.0:
                    self.last_stable_freq = final
                else:
                    w = cfg.anchor_weight
                    self.last_stable_freq = self.last_stable_freq * (1.0 - w) + final * w

        # A stale median over too few survivors is not shown
        if not voiced and len(self.smoothing_buffer) < cfg.min_buffered:
            final = None

        self.frequency_hz = final if final is not None and final > 0.0 else None
        return hz_to_note(self.frequency_hz)


class LiveHistory:
    """
    Bounded FIFO of ``(tick_index, note)`` pairs for the live scrolling view.

    The tick index increases by one per appended sample, so the time of an
    entry is implied by its index and the tick rate.
    """

    def __init__(self, capacity: int = 600) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self._items: Deque[Tuple[int, Optional[float]]] = deque()
        self._next_index = 0

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Tuple[int, Optional[float]]]:
        return iter(self._items)

    def append(self, note: Optional[float]) -> None:
        self._items.append((self._next_index, note if is_valid_note(note) else None))
        self._next_index += 1
        self._evict()

    def _evict(self) -> None:
        while len(self._items) > self.capacity:
            self._items.popleft()

    def clear(self) -> None:
        self._items.clear()
        self._next_index = 0

    @property
    def latest(self) -> Optional[float]:
        return self._items[-1][1] if self._items else None

    def notes(self) -> List[Optional[float]]:
        return [n for _, n in self._items]

    def points(self, tick_rate_hz: float = 60.0) -> List[NotePoint]:
        """Entries as NotePoints with time = index / tick rate."""
        return [NotePoint(time=i / float(tick_rate_hz), note=n) for i, n in self._items]


class LiveRecording:
    """
    Time-ordered NotePoints captured while armed, relative to recording start.

    A parallel list of timestamps is kept for binary-search windowing.
    """

    def __init__(self, capacity: Optional[int] = None) -> None:
        if capacity is not None and capacity < 1:
            raise ValueError("capacity must be >= 1 or None")
        self.capacity = capacity
        self.start_time: float = 0.0
        self._points: List[NotePoint] = []
        self._times: List[float] = []

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[NotePoint]:
        return iter(self._points)

    def __getitem__(self, idx: int) -> NotePoint:
        return self._points[idx]

    def reset(self, start_time: float = 0.0) -> None:
        self.start_time = float(start_time)
        self._points.clear()
        self._times.clear()

    def record(self, clock_time: float, note: Optional[float]) -> Optional[NotePoint]:
        """
        Append a point stamped ``clock_time - start_time``.

        Ticks that land before the recording start are skipped (returns None).
        """
        t = float(clock_time) - self.start_time
        if t < 0.0:
            LOGGER.debug("Skipping tick %.3fs before recording start", t)
            return None
        return self.append(NotePoint(time=t, note=note if is_valid_note(note) else None))

    def append(self, point: NotePoint) -> NotePoint:
        if self._times and point.time < self._times[-1]:
            raise ValueError(
                f"LiveRecording points must be time-ordered ({point.time} < {self._times[-1]})"
            )
        self._points.append(point)
        self._times.append(point.time)
        if self.capacity is not None:
            excess = len(self._points) - self.capacity
            if excess > 0:
                del self._points[:excess]
                del self._times[:excess]
        return point

    @property
    def points(self) -> List[NotePoint]:
        return list(self._points)

    @property
    def times(self) -> List[float]:
        return list(self._times)

    @property
    def last_time(self) -> Optional[float]:
        return self._times[-1] if self._times else None

    def index_at_or_after(self, t: float) -> int:
        """First index whose time is >= t."""
        return bisect.bisect_left(self._times, t)

    def window(self, start: float, end: float) -> List[NotePoint]:
        """Points with ``start <= time <= end``, found by binary search."""
        lo = bisect.bisect_left(self._times, start)
        hi = bisect.bisect_right(self._times, end)
        return self._points[lo:hi]

    def voiced_range(self) -> Optional[Tuple[float, float]]:
        valid = [p.note for p in self._points if is_valid_note(p.note)]
        if not valid:
            return None
        return min(valid), max(valid)

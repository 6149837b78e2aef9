"""
Session owner for the live tick loop and the imported tracks.

All state (tracks, stabilizer, history, recording, view) is mutated only
through ``PitchSession`` methods, from one thread. Capture code running on
another thread should hand frames over through a queue and let the owning
thread call ``tick``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from . import stage_d
from .config import TRACK_COLORS, PipelineConfig
from .detectors import AutocorrelationDetector
from .models import ImportReport, PitchEstimate, SampleFrame, TimeWindow, Track, ViewMode, ViewState
from .notation import NoteReading, describe_pitch
from .realtime import LiveHistory, LiveRecording, RealtimeStabilizer
from .transcribe import import_files as _import_files

LOGGER = logging.getLogger(__name__)


@dataclass
class TickResult:
    estimate: PitchEstimate
    note: Optional[float]
    frequency_hz: Optional[float]
    reading: Optional[NoteReading]
    recorded: bool = False


@dataclass
class Scene:
    """Everything a renderer needs for one frame, as data."""

    window: TimeWindow
    streams: List[stage_d.AlignedStream]
    note_range: Tuple[float, float]
    grid: List[stage_d.GridLine]
    ticks: List[stage_d.TimeTick]
    now_marker: Optional[float] = None
    live_segments: List[stage_d.Segment] = field(default_factory=list)
    reading: Optional[NoteReading] = None


class PitchSession:
    def __init__(self, config: Optional[PipelineConfig] = None) -> None:
        self.config = config if config is not None else PipelineConfig()
        self.detector = AutocorrelationDetector(self.config.detector)
        self.stabilizer = RealtimeStabilizer(self.config.stabilizer)
        self.history = LiveHistory(capacity=self.config.live.history_capacity)
        self.recording = LiveRecording(capacity=self.config.live.recording_capacity)
        self.view = ViewState()
        self.tracks: List[Track] = []
        self.listening = False
        self.last_reading: Optional[NoteReading] = None

    # --------------------------------------------------------
    # Tracks
    # --------------------------------------------------------
    @property
    def total_duration(self) -> float:
        durations = [t.duration_sec for t in self.tracks]
        if self.recording.last_time is not None:
            durations.append(self.recording.last_time)
        return max(durations) if durations else 0.0

    def add_tracks(self, tracks: Sequence[Track]) -> None:
        self.tracks.extend(tracks)
        if tracks:
            self.set_full_view()

    def import_files(self, paths: Iterable[str]) -> ImportReport:
        report = _import_files(paths, config=self.config, color_offset=len(self.tracks))
        self.add_tracks(report.tracks)
        return report

    def _find(self, track_id: int) -> Track:
        for t in self.tracks:
            if t.id == track_id:
                return t
        raise KeyError(f"No track with id {track_id}")

    def remove_track(self, track_id: int) -> Track:
        track = self._find(track_id)
        self.tracks.remove(track)
        return track

    def recolor_track(self, track_id: int, color: Optional[str] = None) -> Track:
        """Set ``color``, or advance to the next palette colour when omitted."""
        track = self._find(track_id)
        if color is None:
            idx = TRACK_COLORS.index(track.color) if track.color in TRACK_COLORS else -1
            color = TRACK_COLORS[(idx + 1) % len(TRACK_COLORS)]
        track.color = color
        return track

    def rename_track(self, track_id: int, name: str) -> Track:
        track = self._find(track_id)
        track.name = name
        return track

    # --------------------------------------------------------
    # Live
    # --------------------------------------------------------
    def start_listening(self, now: float = 0.0) -> None:
        self.stabilizer.reset()
        if self.tracks:
            self.recording.reset(start_time=now)
        self.view = ViewState(mode=ViewMode.FOLLOW, zoom=self.view.zoom, scroll=self.view.scroll)
        self.listening = True
        LOGGER.info("Listening started at %.3fs (tracks=%d)", now, len(self.tracks))

    def stop_listening(self) -> None:
        self.listening = False
        self.stabilizer.reset()
        self.history.clear()
        self.last_reading = None
        LOGGER.info("Listening stopped")

    def tick(self, frame: SampleFrame, now: float) -> TickResult:
        estimate = self.detector.detect(frame)
        note = self.stabilizer.update(estimate)
        freq = self.stabilizer.frequency_hz
        self.last_reading = describe_pitch(freq)

        recorded = False
        if self.tracks:
            if self.listening:
                recorded = self.recording.record(now, note) is not None
        else:
            self.history.append(note)

        LOGGER.debug("tick %.3f raw=%s note=%s", now, estimate.frequency_hz, note)
        return TickResult(
            estimate=estimate,
            note=note,
            frequency_hz=freq,
            reading=self.last_reading,
            recorded=recorded,
        )

    def run(self, frames: Iterable[SampleFrame], clock: Callable[[], float]) -> List[TickResult]:
        """Tick once per frame, stamping each with ``clock()``."""
        return [self.tick(frame, clock()) for frame in frames]

    # --------------------------------------------------------
    # View
    # --------------------------------------------------------
    def set_full_view(self) -> None:
        self.view = ViewState(mode=ViewMode.FULL, zoom=self.view.zoom, scroll=self.view.scroll)

    def set_follow_view(self) -> None:
        self.view = ViewState(mode=ViewMode.FOLLOW, zoom=self.view.zoom, scroll=self.view.scroll)

    def zoom_by(self, delta: float) -> bool:
        """
        Wheel zoom: positive ``delta`` zooms in by one step. Ignored unless
        the FULL view of imported tracks is shown and the session is idle.
        """
        v = self.config.view
        if self.view.mode != ViewMode.FULL or not self.tracks or self.listening or delta == 0:
            return False
        step = v.zoom_step if delta > 0 else -v.zoom_step
        zoom = min(v.max_zoom, max(v.min_zoom, self.view.zoom + step))
        self.view = ViewState(mode=self.view.mode, zoom=zoom, scroll=self.view.scroll)
        return True

    def set_scroll(self, scroll: float) -> None:
        self.view = ViewState(mode=self.view.mode, zoom=self.view.zoom, scroll=scroll)

    def scene(self, now: float = 0.0) -> Scene:
        cfg = self.config

        if not self.tracks:
            window, segments = stage_d.live_view(self.history, cfg)
            values = [n for _, n in self.history]
            rng = stage_d.note_axis_range(values, cfg)
            return Scene(
                window=window,
                streams=[],
                note_range=rng,
                grid=stage_d.note_grid(*rng),
                ticks=stage_d.time_ticks(window, cfg),
                now_marker=0.0 if self.listening else None,
                live_segments=segments,
                reading=self.last_reading,
            )

        # Idle FOLLOW view stays on the last recorded point
        if self.listening:
            rec_time = now - self.recording.start_time
        else:
            rec_time = self.recording.last_time or 0.0
        window = stage_d.compute_window(self.view, self.total_duration, now=rec_time, config=cfg)
        streams = stage_d.align(window, self.tracks, self.recording if len(self.recording) else None)

        values: List[Optional[float]] = []
        for t in self.tracks:
            if t.note_range is not None:
                values.extend(t.note_range)
        rec_range = self.recording.voiced_range()
        if rec_range is not None:
            values.extend(rec_range)
        rng = stage_d.note_axis_range(values, cfg)

        return Scene(
            window=window,
            streams=streams,
            note_range=rng,
            grid=stage_d.note_grid(*rng),
            ticks=stage_d.time_ticks(window, cfg, relative=False),
            now_marker=rec_time if self.listening else None,
            reading=self.last_reading,
        )

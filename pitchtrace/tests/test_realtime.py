import math
import random

import pytest

from pitchtrace.pipeline.config import StabilizerConfig
from pitchtrace.pipeline.detectors import NO_PITCH, hz_to_note
from pitchtrace.pipeline.models import NotePoint, PitchEstimate
from pitchtrace.pipeline.realtime import LiveHistory, LiveRecording, RealtimeStabilizer


def est(hz):
    return PitchEstimate(frequency_hz=hz, clarity=0.95)


def test_stabilizer_steady_tone():
    stab = RealtimeStabilizer()
    for _ in range(10):
        note = stab.update(est(220.0))
    assert note == pytest.approx(hz_to_note(220.0))
    assert len(stab.smoothing_buffer) == 7
    assert stab.last_stable_freq == pytest.approx(220.0)


def test_stabilizer_folds_octave_jumps():
    stab = RealtimeStabilizer()
    stab.update(est(220.0))
    assert stab.update(est(440.0)) == pytest.approx(hz_to_note(220.0))
    assert stab.update(est(110.0)) == pytest.approx(hz_to_note(220.0))
    assert list(stab.smoothing_buffer) == [220.0, 220.0, 220.0]


def test_stabilizer_upper_median_and_anchor():
    stab = RealtimeStabilizer()
    stab.update(est(220.0))
    note = stab.update(est(230.0))
    # Even-sized buffer takes the upper middle value
    assert note == pytest.approx(hz_to_note(230.0))
    assert stab.last_stable_freq == pytest.approx(220.0 * 0.9 + 230.0 * 0.1)


def test_stabilizer_silence_decay():
    stab = RealtimeStabilizer()
    for _ in range(7):
        stab.update(est(220.0))

    assert stab.update(NO_PITCH) == pytest.approx(hz_to_note(220.0))
    assert len(stab.smoothing_buffer) == 5
    assert stab.update(NO_PITCH) is not None
    assert len(stab.smoothing_buffer) == 3
    # Fewer than three survivors
    assert stab.update(NO_PITCH) is None
    assert len(stab.smoothing_buffer) == 1
    assert stab.last_stable_freq > 0.0

    assert stab.update(NO_PITCH) is None
    assert len(stab.smoothing_buffer) == 0
    assert stab.last_stable_freq == 0.0
    assert stab.frequency_hz is None


def test_stabilizer_evicts_oldest_on_silence():
    stab = RealtimeStabilizer()
    for hz in (200.0, 210.0, 220.0, 230.0):
        stab.update(est(hz))
    stab.update(NO_PITCH)
    assert list(stab.smoothing_buffer) == [220.0, 230.0]


def test_stabilizer_reset_and_config():
    stab = RealtimeStabilizer(StabilizerConfig(buffer_size=3))
    for hz in (220.0, 221.0, 222.0, 223.0):
        stab.update(est(hz))
    assert len(stab.smoothing_buffer) == 3

    stab.reset()
    assert len(stab.smoothing_buffer) == 0
    assert stab.last_stable_freq == 0.0

    with pytest.raises(ValueError):
        RealtimeStabilizer(StabilizerConfig(buffer_size=0))


def test_live_history_is_bounded():
    history = LiveHistory(capacity=3)
    for n in (60.0, 61.0, 62.0, 63.0, 64.0):
        history.append(n)

    assert len(history) == 3
    assert history.notes() == [62.0, 63.0, 64.0]
    assert [i for i, _ in history] == [2, 3, 4]
    assert history.latest == 64.0
    assert history.points(tick_rate_hz=60.0)[0] == NotePoint(time=2 / 60.0, note=62.0)


def test_live_history_normalises_invalid_notes():
    history = LiveHistory(capacity=10)
    history.append(math.nan)
    history.append(None)
    assert history.notes() == [None, None]

    history.clear()
    assert len(history) == 0
    history.append(60.0)
    assert list(history) == [(0, 60.0)]

    with pytest.raises(ValueError):
        LiveHistory(capacity=0)


def test_live_recording_relative_times():
    rec = LiveRecording()
    rec.reset(start_time=10.0)

    assert rec.record(9.5, 60.0) is None
    p = rec.record(10.5, 60.0)
    assert p.time == pytest.approx(0.5)
    rec.record(11.0, None)

    assert len(rec) == 2
    assert rec.times == pytest.approx([0.5, 1.0])
    assert rec.last_time == pytest.approx(1.0)
    assert rec.voiced_range() == (60.0, 60.0)
    assert rec.index_at_or_after(0.75) == 1
    assert [p.time for p in rec.window(0.6, 1.0)] == pytest.approx([1.0])


def test_live_recording_rejects_out_of_order():
    rec = LiveRecording()
    rec.append(NotePoint(time=1.0, note=60.0))
    with pytest.raises(ValueError):
        rec.append(NotePoint(time=0.5, note=60.0))


def test_live_recording_capacity():
    rec = LiveRecording(capacity=2)
    for i in range(4):
        rec.append(NotePoint(time=float(i), note=60.0))
    assert rec.times == [2.0, 3.0]

    rec.reset()
    assert len(rec) == 0 and rec.last_time is None


def test_live_recording_window_matches_scan():
    rng = random.Random(3)
    rec = LiveRecording()
    t = 0.0
    for _ in range(5000):
        t += rng.uniform(0.0, 0.05)
        rec.append(NotePoint(time=t, note=60.0 if rng.random() > 0.2 else None))

    for start, end in ((0.0, 10.0), (40.0, 50.0), (-5.0, 0.5), (t - 3.0, t + 3.0)):
        expected = [p for p in rec.points if start <= p.time <= end]
        assert rec.window(start, end) == expected

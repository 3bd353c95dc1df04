import fractions
import logging
import random

import pytest

import conftest
import tactus.scheduler
import tactus.tempo


def _make_scheduler (
	clock: conftest.ManualClock,
	audio_sink: conftest.RecordingAudioSink = None,
	visual_sink: conftest.RecordingVisualSink = None,
	**tempo_kwargs
) -> tactus.scheduler.Scheduler:

	"""Build a scheduler on a fresh tempo model with a fixed RNG."""

	tempo = tactus.tempo.TempoModel(**tempo_kwargs)

	return tactus.scheduler.Scheduler(
		tempo,
		audio_sink = audio_sink,
		visual_sink = visual_sink,
		clock = clock,
		rng = random.Random(1)
	)


def _drive (scheduler: tactus.scheduler.Scheduler, clock: conftest.ManualClock, seconds: float, rate: int = 60) -> None:

	"""Tick at *rate* Hz from the clock's current time for *seconds*."""

	start = clock.now()

	for i in range(int(seconds * rate) + 1):
		clock.time = start + i / rate
		scheduler.tick()


def test_ten_seconds_at_120_emits_twenty_events (clock, audio_sink) -> None:

	"""Ten seconds of quarter notes at 120 BPM are exactly 20 clicks, 0.5 s apart."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=120)
	scheduler.start()

	_drive(scheduler, clock, 10.0)

	times = audio_sink.times
	assert len(times) == 20

	for earlier, later in zip(times, times[1:]):
		assert later - earlier == pytest.approx(0.5, abs=1e-6)


def test_events_are_strictly_increasing_under_jittery_ticks (clock, audio_sink) -> None:

	"""Irregular tick spacing neither duplicates nor reorders clicks."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=180, subdivision="sixteenth")
	scheduler.start()

	rng = random.Random(7)

	while clock.now() < 20.0:
		clock.advance(rng.uniform(0.001, 0.05))
		scheduler.tick()

	times = audio_sink.times
	assert len(times) > 100
	assert all(later > earlier for earlier, later in zip(times, times[1:]))


def test_audio_is_handed_over_before_click_time (clock, audio_sink) -> None:

	"""Every click reaches the audio sink no later than its own timestamp."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=240)
	scheduler.start()

	handed_over = []

	for i in range(300):
		clock.time = i / 60
		for event in scheduler.tick():
			handed_over.append((clock.now(), event.absolute_time))

	assert handed_over
	assert all(now <= when for now, when in handed_over)


@pytest.mark.parametrize("subdivision,fraction", [
	("quarter", 1.0),
	("eighth", 0.5),
	("triplet", 1 / 3),
	("sixteenth", 0.25),
])
def test_subdivision_spacing (subdivision: str, fraction: float) -> None:

	"""Consecutive clicks are 60/bpm times the subdivision fraction apart."""

	bpm = 137
	state = tactus.tempo.TempoState(bpm=bpm, subdivision=tactus.tempo.Subdivision(subdivision))
	cursor = tactus.scheduler.ScheduleCursor.starting_at(0.0, bpm)

	events, _ = tactus.scheduler.compute_due_events(cursor, state, now=30.0)
	times = [event.absolute_time for event in events]

	for earlier, later in zip(times, times[1:]):
		assert later - earlier == pytest.approx(60 / bpm * fraction, abs=1e-9)


def test_triplets_do_not_drift () -> None:

	"""After ten minutes of triplets, every third click still lands exactly on a beat."""

	bpm = 97
	state = tactus.tempo.TempoState(bpm=bpm, subdivision=tactus.tempo.Subdivision.TRIPLET)
	cursor = tactus.scheduler.ScheduleCursor.starting_at(0.0, bpm)

	events, _ = tactus.scheduler.compute_due_events(cursor, state, now=600.0)

	on_beats = events[::3]

	for k, event in enumerate(on_beats):
		assert event.beat_index == k
		assert event.on_beat
		assert event.absolute_time == pytest.approx(k * 60 / bpm, abs=1e-9)

	assert not events[1].on_beat
	assert events[1].beat_index == fractions.Fraction(1, 3)


def test_compute_due_events_is_pure () -> None:

	"""The same inputs always give the same events and cursor."""

	state = tactus.tempo.TempoState(bpm=120)
	cursor = tactus.scheduler.ScheduleCursor.starting_at(1.0, 120)

	first = tactus.scheduler.compute_due_events(cursor, state, now=2.0)
	second = tactus.scheduler.compute_due_events(cursor, state, now=2.0)

	assert first == second
	assert cursor.beat_position == 0
	assert cursor.next_event_time == 1.0


def test_compute_due_events_window_boundary () -> None:

	"""A click exactly at now + ahead_window waits for the next tick."""

	state = tactus.tempo.TempoState(bpm=120)
	cursor = tactus.scheduler.ScheduleCursor.starting_at(1.0, 120)

	events, advanced = tactus.scheduler.compute_due_events(cursor, state, now=0.75, ahead_window=0.25)

	assert events == []
	assert advanced == cursor


def test_accents_follow_measure_beat () -> None:

	"""Clicks carry the accent of the beat they fall in."""

	state = tactus.tempo.TempoState(bpm=120, beats_per_measure=3, accent_pattern=(True, False, True), subdivision=tactus.tempo.Subdivision.EIGHTH)
	cursor = tactus.scheduler.ScheduleCursor.starting_at(0.0, 120)

	events, _ = tactus.scheduler.compute_due_events(cursor, state, now=2.9)

	assert [event.measure_beat for event in events[:8]] == [0, 0, 1, 1, 2, 2, 0, 0]
	assert [event.is_accent for event in events[:8]] == [True, True, False, False, True, True, True, True]


def test_snap_beat_position () -> None:

	"""Positions within the tolerance of an integer are snapped to it."""

	assert tactus.scheduler.snap_beat_position(0.9999999999) == 1.0
	assert tactus.scheduler.snap_beat_position(fractions.Fraction(2, 3)) == fractions.Fraction(2, 3)
	assert tactus.scheduler.snap_beat_position(fractions.Fraction(10 ** 12 - 1, 10 ** 12)) == 1
	assert tactus.scheduler.snap_beat_position(1.5) == 1.5


def test_tempo_change_reanchors_at_next_click (clock, audio_sink) -> None:

	"""A tempo change spaces clicks computed afterwards at the new tempo."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=120)
	scheduler.start()

	scheduler.tick(0.08)
	assert audio_sink.times == [pytest.approx(0.1)]

	scheduler.tempo.set_tempo(60)

	for i in range(5, 200):
		scheduler.tick(i / 60)

	assert audio_sink.times[:4] == [pytest.approx(0.1), pytest.approx(0.6), pytest.approx(1.6), pytest.approx(2.6)]
	assert scheduler.cursor.anchor_bpm == 60


def test_stop_then_start_resets_position (clock, audio_sink) -> None:

	"""Restarting returns to beat 0 with the first click strictly in the future."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=120)
	scheduler.start()
	_drive(scheduler, clock, 3.0)

	assert scheduler.cursor.beat_position > 0

	scheduler.stop()
	clock.advance(1.0)
	scheduler.start()

	assert scheduler.cursor.beat_position == 0
	assert scheduler.cursor.next_event_time > clock.now()


def test_tick_while_stopped_does_nothing (clock, audio_sink) -> None:

	"""A stopped scheduler schedules nothing."""

	scheduler = _make_scheduler(clock, audio_sink)

	assert scheduler.tick(5.0) == []
	assert audio_sink.calls == []


def test_stop_is_idempotent (clock) -> None:

	"""Stopping twice emits a single stop event."""

	scheduler = _make_scheduler(clock)
	stops = []
	scheduler.events.on("stop", lambda: stops.append(True))

	scheduler.start()
	scheduler.stop()
	scheduler.stop()

	assert stops == [True]


def test_visuals_wait_until_click_time (clock, audio_sink, visual_sink) -> None:

	"""The visual sink hears about a click only once its time has arrived."""

	scheduler = _make_scheduler(clock, audio_sink, visual_sink)
	scheduler.start()

	scheduler.tick(0.08)

	assert len(audio_sink.calls) == 1
	assert visual_sink.beats == []
	assert scheduler.next_visual_time() == pytest.approx(0.1)

	assert scheduler.flush_visuals(0.09) == 0
	assert scheduler.flush_visuals(0.1) == 1

	assert visual_sink.beats == [(0, True, pytest.approx(0.1))]
	assert scheduler.next_visual_time() is None


def test_visuals_never_arrive_early (clock, visual_sink) -> None:

	"""Visuals delivered by ticks arrive at or after the click time."""

	scheduler = _make_scheduler(clock, visual_sink=visual_sink, bpm=200, subdivision="eighth")
	scheduler.start()
	_drive(scheduler, clock, 5.0)

	assert visual_sink.beats
	for (_, _, when), arrived in zip(visual_sink.beats, visual_sink.arrivals):
		assert arrived >= when
		assert arrived - when < 1 / 60 + 1e-9


def test_stale_visuals_are_dropped_after_stop (clock, visual_sink) -> None:

	"""Visuals scheduled before a stop are never shown."""

	scheduler = _make_scheduler(clock, visual_sink=visual_sink)
	scheduler.start()
	scheduler.tick(0.08)

	scheduler.stop()

	assert scheduler.flush_visuals(1.0) == 0
	assert visual_sink.beats == []


def test_restart_drops_previous_session_visuals (clock, visual_sink) -> None:

	"""A restart discards visuals from the previous run."""

	scheduler = _make_scheduler(clock, visual_sink=visual_sink)
	scheduler.start()
	scheduler.tick(0.08)

	clock.time = 0.09
	scheduler.start()

	scheduler.flush_visuals(0.15)
	assert visual_sink.beats == []

	scheduler.tick(0.18)
	scheduler.flush_visuals(0.2)
	assert [beat[0] for beat in visual_sink.beats] == [0]
	assert visual_sink.beats[0][2] == pytest.approx(0.19)


def test_resume_after_stall_reanchors (clock, audio_sink, caplog) -> None:

	"""A stall longer than the resume threshold skips ahead instead of replaying the backlog."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=120)
	scheduler.start()
	scheduler.tick(0.09)

	with caplog.at_level(logging.WARNING):
		assert scheduler.tick(5.0) == []

	assert "re-anchoring" in caplog.text
	assert scheduler.cursor.next_event_time == pytest.approx(5.1)
	assert scheduler.cursor.beat_position == 1

	events = scheduler.tick(5.08)
	assert [event.beat_index for event in events] == [1]
	assert len(audio_sink.calls) == 2


def test_short_lag_catches_up (clock, audio_sink) -> None:

	"""Lag under the resume threshold schedules the missed clicks immediately."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=120)
	scheduler.start()

	events = scheduler.tick(0.8)

	assert [event.beat_index for event in events] == [0, 1]


def test_sink_failures_do_not_stop_scheduling (clock, caplog) -> None:

	"""Exceptions from the sinks are logged and scheduling carries on."""

	failing = conftest.FailingSink()
	scheduler = _make_scheduler(clock, audio_sink=failing, visual_sink=failing)
	scheduler.start()

	with caplog.at_level(logging.ERROR):
		_drive(scheduler, clock, 2.0)

	assert scheduler.running
	assert scheduler.cursor.beat_position == 4
	assert "Audio sink failed" in caplog.text
	assert "Visual sink failed" in caplog.text


def test_audio_transients_use_voice_and_volume (clock, audio_sink) -> None:

	"""Accents are centred and in tune; normal clicks are panned and detuned slightly."""

	scheduler = _make_scheduler(clock, audio_sink, bpm=120, sound="wood", volume=0.5)
	scheduler.start()
	_drive(scheduler, clock, 2.0)

	accent, normal = audio_sink.calls[0], audio_sink.calls[1]

	assert accent["frequency"] == 550
	assert accent["pan"] == 0.0
	assert accent["detune_cents"] == 0.0
	assert accent["gain"] == 0.5

	assert normal["frequency"] == 350
	assert abs(normal["pan"]) == pytest.approx(0.12)
	assert -3.0 <= normal["detune_cents"] <= 3.0
	assert normal["waveform"] == "triangle"


def test_invalid_windows_are_rejected () -> None:

	"""Non-positive windows and thresholds raise ValueError."""

	tempo = tactus.tempo.TempoModel()

	with pytest.raises(ValueError):
		tactus.scheduler.Scheduler(tempo, ahead_window=0)

	with pytest.raises(ValueError):
		tactus.scheduler.Scheduler(tempo, start_offset=-1)

	with pytest.raises(ValueError):
		tactus.scheduler.Scheduler(tempo, resume_threshold=0.01)

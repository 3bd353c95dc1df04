import asyncio

import pytest

import conftest
import tactus
import tactus.metronome
import tactus.sinks


def _make_metronome (**kwargs) -> tactus.metronome.Metronome:

	"""A metronome with a manual clock and a recording audio sink."""

	kwargs.setdefault("clock", conftest.ManualClock())
	kwargs.setdefault("audio_sink", conftest.RecordingAudioSink())

	return tactus.metronome.Metronome(**kwargs)


def test_package_exports () -> None:

	"""The package exposes the main entry points."""

	assert tactus.Metronome is tactus.metronome.Metronome
	assert tactus.compute_polyrhythm(3, 4).left_indices == [0, 4, 8]
	assert tactus.Subdivision("eighth") is tactus.Subdivision.EIGHTH


def test_constructor_settings () -> None:

	"""Constructor arguments configure the tempo model."""

	metronome = _make_metronome(bpm=9999, time_signature="5/4", subdivision="sixteenth", accent_mode="double", sound="snap", volume=0.1)

	state = metronome.state
	assert state.bpm == 500
	assert state.time_signature == "5/4"
	assert state.subdivision is tactus.Subdivision.SIXTEENTH
	assert state.accent_pattern == (True, False, True, False, False)
	assert state.sound == "snap"
	assert state.volume == 0.1


def test_invalid_driver_interval () -> None:

	"""A non-positive driver interval is rejected."""

	with pytest.raises(ValueError):
		_make_metronome(driver_interval=0)


def test_transport () -> None:

	"""start, stop and toggle control the scheduler."""

	metronome = _make_metronome()
	events = []
	metronome.on_event("start", lambda: events.append("start"))
	metronome.on_event("stop", lambda: events.append("stop"))

	metronome.start()
	assert metronome.running

	metronome.toggle()
	assert not metronome.running

	metronome.toggle()
	metronome.stop()

	assert events == ["start", "stop", "start", "stop"]


def test_tempo_events_are_forwarded () -> None:

	"""Changes on the tempo model are re-emitted by the metronome."""

	metronome = _make_metronome()
	seen = []

	metronome.on_event("tempo", lambda bpm: seen.append(("tempo", bpm)))
	metronome.on_event("signature", lambda sig: seen.append(("signature", sig)))
	metronome.on_event("volume", lambda vol: seen.append(("volume", vol)))

	metronome.adjust_tempo(3)
	metronome.set_time_signature(6)
	metronome.set_volume(0.9)

	assert seen == [("tempo", 123), ("signature", "6/4"), ("volume", 0.9)]


def test_beats_reach_listeners () -> None:

	"""Scheduled beats are re-emitted as "beat" events once due."""

	clock = conftest.ManualClock()
	metronome = _make_metronome(clock=clock)
	beats = []
	metronome.on_event("beat", lambda index, accent, when: beats.append((index, accent)))

	metronome.start()

	for i in range(70):
		clock.time = i / 60
		metronome.scheduler.tick()

	assert beats == [(0, True), (1, False), (2, False)]


def test_tap_tempo_applies_estimate () -> None:

	"""Taps set the tempo once two or more have been made."""

	metronome = _make_metronome()

	assert metronome.tap_tempo(0) is None
	assert metronome.tap_tempo(500) == 120
	assert metronome.tap_tempo(1000) == 120
	assert metronome.bpm == 120

	metronome.set_tempo(60)
	assert metronome.tap_tempo(3100) is None
	assert metronome.bpm == 60


def test_tap_tempo_uses_clock_by_default () -> None:

	"""Without a timestamp, taps are read from the metronome clock."""

	clock = conftest.ManualClock(10.0)
	metronome = _make_metronome(clock=clock)

	metronome.tap_tempo()
	clock.advance(0.75)

	assert metronome.tap_tempo() == 80


def test_compute_polyrhythm () -> None:

	"""compute_polyrhythm replaces the pattern and announces it."""

	metronome = _make_metronome()
	seen = []
	metronome.on_event("polyrhythm", seen.append)

	pattern = metronome.compute_polyrhythm(2, 5)

	assert metronome.polyrhythm is pattern
	assert (pattern.left, pattern.right) == (2, 5)
	assert seen == [pattern]

	assert (metronome.compute_polyrhythm("x", 0).left, metronome.polyrhythm.right) == (3, 4)


def test_preset_round_trip () -> None:

	"""to_preset and load_preset carry every stored setting across."""

	source = _make_metronome(bpm=72, time_signature="9/8", subdivision="triplet", sound="shaker", volume=0.45)
	source.toggle_accent(6)

	target = _make_metronome()
	target.load_preset(source.to_preset())

	assert target.to_preset() == source.to_preset()


def test_named_presets (tmp_path) -> None:

	"""Presets save to and load from the configured directory."""

	metronome = _make_metronome(bpm=88, sound="rimshot")
	store = metronome.presets(str(tmp_path))

	metronome.save_preset("rehearsal")
	assert store.names() == ["rehearsal"]

	metronome.set_tempo(200)
	metronome.set_sound("hihat")
	metronome.load_named_preset("rehearsal")

	assert metronome.bpm == 88
	assert metronome.state.sound == "rimshot"


def test_named_presets_need_directory () -> None:

	"""Saving without a preset directory raises ValueError."""

	with pytest.raises(ValueError):
		_make_metronome().save_preset("x")


def test_seed_makes_clicks_repeatable () -> None:

	"""Two metronomes with the same seed render identical click variation."""

	runs = []

	for _ in range(2):
		clock = conftest.ManualClock()
		sink = conftest.RecordingAudioSink()
		metronome = _make_metronome(clock=clock, audio_sink=sink, seed=11)
		metronome.start()

		for i in range(200):
			clock.time = i / 60
			metronome.scheduler.tick()

		runs.append([(call["pan"], call["detune_cents"]) for call in sink.calls])

	assert runs[0] == runs[1]
	assert len(runs[0]) == 7


@pytest.mark.asyncio
async def test_run_drives_scheduler () -> None:

	"""The asyncio driver schedules clicks and delivers beats in real time."""

	sink = conftest.RecordingAudioSink()
	metronome = tactus.metronome.Metronome(bpm=480, audio_sink=sink)
	beats = []
	metronome.on_event("beat", lambda index, accent, when: beats.append(index))

	await metronome._run(seconds=0.6)

	times = sink.times
	assert len(times) >= 3
	for earlier, later in zip(times, times[1:]):
		assert later - earlier == pytest.approx(0.125, abs=1e-6)

	assert beats[:2] == [0, 1]
	assert not metronome.running


@pytest.mark.asyncio
async def test_visuals_from_one_tick_each_arrive_on_time () -> None:

	"""Several beats computed by a single tick are each shown when due."""

	metronome = tactus.metronome.Metronome(bpm=480, audio_sink=conftest.RecordingAudioSink())
	metronome.scheduler.ahead_window = 0.5
	arrivals = []
	metronome.on_event("beat", lambda index, accent, when: arrivals.append((index, when, metronome.clock.now())))

	metronome.start()
	now = metronome.clock.now()
	metronome.scheduler.tick(now)
	metronome._schedule_visual_flush(asyncio.get_running_loop(), now)

	await asyncio.sleep(0.6)
	metronome.stop()

	assert [index for index, _, _ in arrivals] == [0, 1, 2, 3]
	for _, due, shown in arrivals:
		assert due <= shown < due + 0.1


@pytest.mark.asyncio
async def test_request_stop_ends_run () -> None:

	"""request_stop() makes a running play loop return."""

	metronome = tactus.metronome.Metronome(audio_sink=conftest.RecordingAudioSink())

	async def _stop_soon () -> None:
		await asyncio.sleep(0.1)
		metronome.request_stop()

	asyncio.get_running_loop().create_task(_stop_soon())
	await asyncio.wait_for(metronome._run(), timeout=2)

	assert not metronome.running


def test_play_with_midi_output (patch_midi: None) -> None:

	"""play() opens the MIDI port, clicks on it and closes it afterwards."""

	metronome = tactus.metronome.Metronome(output_device="Dummy MIDI", bpm=300)
	metronome.play(seconds=0.4)

	port = conftest._current_fake_output
	assert port is not None
	assert any(message.type == "note_on" for message in port.sent)
	assert port.closed
	assert not metronome.running

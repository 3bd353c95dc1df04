import fractions
import typing

import mido
import pytest


class FakeMidiOut:

	"""MIDI output stub that records what was sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False

	def send (self, message: mido.Message) -> None:

		"""Record an outgoing MIDI message."""

		self.sent.append(message)


	def close (self) -> None:

		"""Mark the fake device closed."""

		self.closed = True


class FakeMidiIn:

	"""Minimal MIDI input stub for tests."""

	def __init__ (self, callback: typing.Optional[typing.Callable] = None) -> None:

		self.callback = callback

	def close (self) -> None:

		"""No-op close for the fake device."""

		return None


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


# Module-level reference so tests can inspect the most recently opened output.
_current_fake_output: typing.Optional[FakeMidiOut] = None


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	fake = FakeMidiOut()
	_current_fake_output = fake
	return fake


def _fake_get_input_names () -> list[str]:

	"""Return a fixed list of MIDI input names for tests."""

	return ["Dummy MIDI"]


def _fake_open_input (name: str, callback: typing.Optional[typing.Callable] = None) -> FakeMidiIn:

	"""Return a fake MIDI input regardless of the name."""

	return FakeMidiIn(callback=callback)


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use fake MIDI output and input for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)
	monkeypatch.setattr(mido, "get_input_names", _fake_get_input_names)
	monkeypatch.setattr(mido, "open_input", _fake_open_input)


class ManualClock:

	"""Clock whose time only moves when a test says so."""

	def __init__ (self, start: float = 0.0) -> None:

		self.time = start

	def now (self) -> float:
		return self.time

	def advance (self, seconds: float) -> None:
		self.time += seconds


class RecordingAudioSink:

	"""Audio sink that keeps every transient it is given."""

	def __init__ (self) -> None:

		self.calls: typing.List[typing.Dict[str, typing.Any]] = []

	def render_transient (
		self,
		frequency: float,
		duration: float,
		waveform: str,
		pan: float,
		detune_cents: float,
		absolute_time: float,
		gain: float = 1.0
	) -> None:

		self.calls.append({
			"frequency": frequency,
			"duration": duration,
			"waveform": waveform,
			"pan": pan,
			"detune_cents": detune_cents,
			"absolute_time": absolute_time,
			"gain": gain,
		})

	@property
	def times (self) -> typing.List[float]:
		return [call["absolute_time"] for call in self.calls]


class RecordingVisualSink:

	"""Visual sink that keeps every beat it is shown, with the clock time it arrived."""

	def __init__ (self, clock: typing.Optional[ManualClock] = None) -> None:

		self.clock = clock
		self.beats: typing.List[typing.Tuple[fractions.Fraction, bool, float]] = []
		self.arrivals: typing.List[float] = []

	def on_beat (self, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> None:

		self.beats.append((beat_index, is_accent, absolute_time))

		if self.clock is not None:
			self.arrivals.append(self.clock.now())


class FailingSink:

	"""Sink whose every call raises."""

	def render_transient (self, *args: typing.Any, **kwargs: typing.Any) -> None:
		raise RuntimeError("audio device gone")

	def on_beat (self, *args: typing.Any, **kwargs: typing.Any) -> None:
		raise RuntimeError("display gone")


@pytest.fixture
def clock () -> ManualClock:

	"""A manual clock starting at t=0."""

	return ManualClock()


@pytest.fixture
def audio_sink () -> RecordingAudioSink:
	return RecordingAudioSink()


@pytest.fixture
def visual_sink (clock: ManualClock) -> RecordingVisualSink:
	return RecordingVisualSink(clock)

"""Look-ahead beat scheduler.

The host calls ``Scheduler.tick()`` from a periodic driver whose cadence is
coarse and irregular (nominally 60 Hz).  Each tick computes every click whose
time falls before ``now + ahead_window`` and hands it to the audio sink with
its absolute timestamp, so a late or early tick never makes a click late.
Visual dispatch waits until the click time itself, keeping the visuals aligned
with what is heard.

Beat positions are exact fractions.  Event times are derived from an anchor
(time, beat, bpm) rather than summed step by step, so triplets do not drift
over long runs.  A tempo change re-anchors at the next pending click.
"""

import collections
import dataclasses
import fractions
import logging
import math
import random
import time
import typing

import tactus.constants
import tactus.event_emitter
import tactus.sounds
import tactus.tempo


logger = logging.getLogger(__name__)

BeatPosition = typing.Union[fractions.Fraction, float]


@typing.runtime_checkable
class Clock (typing.Protocol):

	def now (self) -> float:

		"""Monotonic time in seconds."""

		...


@typing.runtime_checkable
class AudioSink (typing.Protocol):

	"""
	Renders one click at an absolute clock time.  Fire and forget.
	"""

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
		...


@typing.runtime_checkable
class VisualSink (typing.Protocol):

	"""
	Shows one beat.  Called when the beat's time has arrived.
	"""

	def on_beat (self, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> None:
		...


class MonotonicClock:

	"""``Clock`` backed by ``time.perf_counter``."""

	def now (self) -> float:
		return time.perf_counter()


@dataclasses.dataclass (frozen=True)
class ScheduleCursor:

	"""
	Position of the next click to schedule.

	``next_event_time`` is always derived from the anchor:
	``anchor_time + (beat_position - anchor_beat) * 60 / anchor_bpm``.
	"""

	next_event_time: float = 0.0
	beat_position: fractions.Fraction = fractions.Fraction(0)
	anchor_time: float = 0.0
	anchor_beat: fractions.Fraction = fractions.Fraction(0)
	anchor_bpm: int = tactus.constants.DEFAULT_BPM

	@classmethod
	def starting_at (cls, when: float, bpm: int) -> "ScheduleCursor":

		"""A cursor at beat 0, anchored at *when*."""

		return cls(next_event_time=when, anchor_time=when, anchor_bpm=bpm)

	def reanchored (self, when: float, bpm: int) -> "ScheduleCursor":

		"""Same beat position, next click moved to *when* at *bpm*."""

		return dataclasses.replace(
			self,
			next_event_time = when,
			anchor_time = when,
			anchor_beat = self.beat_position,
			anchor_bpm = bpm
		)


@dataclasses.dataclass (frozen=True, order=True)
class ScheduledEvent:

	"""One click, ordered by time."""

	absolute_time: float
	beat_index: fractions.Fraction = dataclasses.field(compare=False)
	measure_beat: int = dataclasses.field(compare=False)
	is_accent: bool = dataclasses.field(compare=False)

	@property
	def on_beat (self) -> bool:

		"""True for clicks on a whole beat, False for subdivisions."""

		return self.beat_index.denominator == 1


def snap_beat_position (position: BeatPosition, tolerance: float = tactus.constants.BEAT_SNAP_TOLERANCE) -> BeatPosition:

	"""Round *position* to the nearest integer when it is within *tolerance* of it."""

	nearest = round(position)

	if abs(position - nearest) <= tolerance:
		return fractions.Fraction(nearest) if isinstance(position, fractions.Fraction) else float(nearest)

	return position


def advance_cursor (cursor: ScheduleCursor, step: fractions.Fraction, bpm: int) -> ScheduleCursor:

	"""Move the cursor one subdivision *step* forward at *bpm*."""

	if bpm != cursor.anchor_bpm:
		cursor = cursor.reanchored(cursor.next_event_time, bpm)

	position = snap_beat_position(cursor.beat_position + step)
	offset_beats = position - cursor.anchor_beat

	return dataclasses.replace(
		cursor,
		beat_position = position,
		next_event_time = cursor.anchor_time + float(offset_beats * 60 / fractions.Fraction(bpm))
	)


def compute_due_events (
	cursor: ScheduleCursor,
	state: tactus.tempo.TempoState,
	now: float,
	ahead_window: float = tactus.constants.AHEAD_WINDOW
) -> typing.Tuple[typing.List[ScheduledEvent], ScheduleCursor]:

	"""Emit every click due before ``now + ahead_window``.

	Pure: returns the events in time order and the advanced cursor, and
	touches nothing else.
	"""

	events: typing.List[ScheduledEvent] = []
	horizon = now + ahead_window
	step = state.subdivision.step

	while cursor.next_event_time < horizon:

		measure_beat = math.floor(cursor.beat_position) % state.beats_per_measure

		events.append(ScheduledEvent(
			absolute_time = cursor.next_event_time,
			beat_index = cursor.beat_position,
			measure_beat = measure_beat,
			is_accent = state.is_accented(measure_beat)
		))

		cursor = advance_cursor(cursor, step, state.bpm)

	return events, cursor


@dataclasses.dataclass (frozen=True)
class _PendingVisual:

	event: ScheduledEvent
	session: int


class Scheduler:

	"""
	Stateful wrapper around ``compute_due_events`` that owns the cursor and
	dispatches to the sinks.

	Parameters:
		tempo: The tempo model read at the start of every tick.
		audio_sink: Receives each click immediately, with its absolute time.
		visual_sink: Receives each click once its time has arrived.
		clock: Time source (``MonotonicClock`` when omitted).
		ahead_window: Seconds past "now" that a tick schedules.
		start_offset: Seconds between ``start()`` and the first click.
		resume_threshold: Lag (seconds) after which a stalled cursor is
			re-anchored instead of replaying the backlog.
		rng: Source of the per-click pan/detune variation.
	"""

	def __init__ (
		self,
		tempo: tactus.tempo.TempoModel,
		audio_sink: typing.Optional[AudioSink] = None,
		visual_sink: typing.Optional[VisualSink] = None,
		clock: typing.Optional[Clock] = None,
		ahead_window: float = tactus.constants.AHEAD_WINDOW,
		start_offset: float = tactus.constants.START_OFFSET,
		resume_threshold: float = tactus.constants.RESUME_THRESHOLD,
		rng: typing.Optional[random.Random] = None
	) -> None:

		if ahead_window <= 0:
			raise ValueError("ahead_window must be positive")

		if start_offset < 0:
			raise ValueError("start_offset cannot be negative")

		if resume_threshold <= ahead_window:
			raise ValueError("resume_threshold must exceed ahead_window")

		self.tempo = tempo
		self.audio_sink = audio_sink
		self.visual_sink = visual_sink
		self.clock: Clock = clock or MonotonicClock()
		self.ahead_window = ahead_window
		self.start_offset = start_offset
		self.resume_threshold = resume_threshold
		self.events = tactus.event_emitter.EventEmitter()

		self._rng = rng or random.Random()
		self._cursor = ScheduleCursor.starting_at(0.0, tempo.bpm)
		self._running = False
		self._session = 0
		self._pending_visuals: typing.Deque[_PendingVisual] = collections.deque()

	@property
	def running (self) -> bool:
		return self._running

	@property
	def cursor (self) -> ScheduleCursor:
		return self._cursor

	def start (self) -> None:

		"""Begin (or restart) from beat 0, ``start_offset`` seconds from now."""

		now = self.clock.now()

		self._session += 1
		self._pending_visuals.clear()
		self._cursor = ScheduleCursor.starting_at(now + self.start_offset, self.tempo.bpm)
		self._running = True

		logger.info(f"Scheduler started at {self.tempo.bpm} BPM")
		self.events.emit_sync("start")

	def stop (self) -> None:

		"""Stop scheduling.  Clicks already sent to the audio sink still sound."""

		if not self._running:
			return

		self._running = False
		self._pending_visuals.clear()

		logger.info("Scheduler stopped")
		self.events.emit_sync("stop")

	def tick (self, now: typing.Optional[float] = None) -> typing.List[ScheduledEvent]:

		"""Schedule all clicks due within the look-ahead window.

		Returns the events computed on this tick (empty when stopped).
		"""

		if not self._running:
			return []

		if now is None:
			now = self.clock.now()

		lag = now - self._cursor.next_event_time

		if lag > self.resume_threshold:
			logger.warning(f"Clock jumped {lag:.3f}s past the schedule - re-anchoring")
			self._cursor = self._cursor.reanchored(now + self.start_offset, self.tempo.bpm)

		state = self.tempo.state
		events, self._cursor = compute_due_events(self._cursor, state, now, self.ahead_window)

		for event in events:
			self._dispatch_audio(event, state)
			self._pending_visuals.append(_PendingVisual(event, self._session))

		self.flush_visuals(now)

		return events

	def next_visual_time (self) -> typing.Optional[float]:

		"""Time of the earliest visual still waiting, or ``None``."""

		if not self._pending_visuals:
			return None

		return self._pending_visuals[0].event.absolute_time

	def flush_visuals (self, now: typing.Optional[float] = None) -> int:

		"""Deliver visuals whose time has arrived.

		Visuals scheduled before the last stop or restart are dropped.
		Returns the number delivered.
		"""

		if now is None:
			now = self.clock.now()

		delivered = 0

		while self._pending_visuals and self._pending_visuals[0].event.absolute_time <= now:

			pending = self._pending_visuals.popleft()

			if not self._running or pending.session != self._session:
				continue

			self._dispatch_visual(pending.event)
			delivered += 1

		return delivered

	def _dispatch_audio (self, event: ScheduledEvent, state: tactus.tempo.TempoState) -> None:

		if self.audio_sink is None:
			return

		transient = tactus.sounds.voice_for(state.sound, event.is_accent, state.volume, self._rng)

		try:
			self.audio_sink.render_transient(
				transient.frequency,
				transient.duration,
				transient.waveform,
				transient.pan,
				transient.detune_cents,
				event.absolute_time,
				gain = transient.gain
			)
		except Exception:
			logger.exception(f"Audio sink failed for beat {event.beat_index}")

	def _dispatch_visual (self, event: ScheduledEvent) -> None:

		if self.visual_sink is None:
			return

		try:
			self.visual_sink.on_beat(event.beat_index, event.is_accent, event.absolute_time)
		except Exception:
			logger.exception(f"Visual sink failed for beat {event.beat_index}")

"""Audio and visual sinks.

``MidiClickSink`` renders each click as a short pitched MIDI note.  The note
is sent on the asyncio event loop at the click's absolute time, so the
scheduler can hand clicks over ahead of time and move on.  Once a click has
been handed over it will sound; only closing the sink drops clicks still
queued.

``BeatBroadcaster`` is a visual sink that re-emits each beat as a ``"beat"``
event, letting the terminal display, OSC and the web UI all follow along.
"""

import asyncio
import fractions
import logging
import typing

import mido

import tactus.constants
import tactus.event_emitter
import tactus.midi_utils
import tactus.scheduler


logger = logging.getLogger(__name__)


class MidiClickSink:

	"""
	Audio sink that plays clicks on a MIDI output port.

	Frequency maps to the nearest note, detune to pitch bend, pan to CC10 and
	gain to velocity.  A note off follows after the click duration.

	Parameters:
		midi_out: An open mido output port, or ``None`` to stay silent.
		clock: The clock the absolute times refer to.
		channel: MIDI channel, 0-based (default 9, the GM percussion channel).
	"""

	def __init__ (
		self,
		midi_out: typing.Any,
		clock: tactus.scheduler.Clock,
		channel: int = tactus.constants.MIDI_CLICK_CHANNEL
	) -> None:

		if not 0 <= channel <= 15:
			raise ValueError("MIDI channel must be 0-15")

		self.midi_out = midi_out
		self.clock = clock
		self.channel = channel

		self._pending: typing.List[asyncio.TimerHandle] = []

	@classmethod
	def open (
		cls,
		device_name: typing.Optional[str],
		clock: tactus.scheduler.Clock,
		channel: int = tactus.constants.MIDI_CLICK_CHANNEL,
		interactive: bool = True
	) -> "MidiClickSink":

		"""Open *device_name* (or auto-select one) and wrap it."""

		_, midi_out = tactus.midi_utils.select_output_device(device_name, interactive=interactive)
		return cls(midi_out, clock, channel)

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

		"""Queue a click for *absolute_time*.  Returns immediately."""

		if self.midi_out is None:
			return

		velocity = tactus.midi_utils.gain_to_velocity(gain)

		if velocity == 0:
			return

		note = tactus.midi_utils.frequency_to_note(frequency)

		messages = [
			mido.Message('control_change', channel=self.channel, control=tactus.constants.MIDI_PAN_CC, value=tactus.midi_utils.pan_to_cc(pan)),
			mido.Message('pitchwheel', channel=self.channel, pitch=tactus.midi_utils.cents_to_pitchwheel(detune_cents)),
			mido.Message('note_on', channel=self.channel, note=note, velocity=velocity),
		]
		note_off = mido.Message('note_off', channel=self.channel, note=note, velocity=0)

		delay = max(0.0, absolute_time - self.clock.now())

		try:
			loop = asyncio.get_running_loop()
		except RuntimeError:
			# No event loop (synchronous use) - send now.
			self._send(*messages, note_off)
			return

		now = loop.time()
		self._pending = [handle for handle in self._pending if not handle.cancelled() and handle.when() > now]
		self._pending.append(loop.call_later(delay, self._send, *messages))
		self._pending.append(loop.call_later(delay + duration, self._send, note_off))

	def close (self) -> None:

		"""Drop queued clicks, silence sounding notes, then close the port."""

		for handle in self._pending:
			handle.cancel()
		self._pending = []

		if self.midi_out is not None:
			self._send(
				mido.Message('control_change', channel=self.channel, control=tactus.constants.MIDI_ALL_NOTES_OFF_CC, value=0),
				mido.Message('control_change', channel=self.channel, control=tactus.constants.MIDI_ALL_SOUND_OFF_CC, value=0),
			)
			self.midi_out.close()
			self.midi_out = None

	def _send (self, *messages: mido.Message) -> None:

		if self.midi_out is None:
			return

		try:
			for message in messages:
				self.midi_out.send(message)
		except Exception:
			logger.exception("MIDI send failed (device may be disconnected)")


class BeatBroadcaster:

	"""
	Visual sink that forwards each beat to ``"beat"`` listeners on *events*.

	Listeners receive ``(beat_index, is_accent, absolute_time)``.  A failing
	listener does not stop the others.
	"""

	def __init__ (self, events: typing.Optional[tactus.event_emitter.EventEmitter] = None) -> None:

		self.events = events or tactus.event_emitter.EventEmitter()

	def on_beat (self, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> None:

		self.events.emit_sync("beat", beat_index, is_accent, absolute_time)

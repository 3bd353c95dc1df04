"""Tempo model: bpm, subdivision, measure length, accents, voice and volume.

Every setter recovers locally from bad input.  Out-of-range tempos and volumes
are clamped; malformed values leave the current setting in place.  Nothing
here raises for user input, so UI and network handlers can pass raw values
straight through.

The accent pattern always has exactly ``beats_per_measure`` entries.  It is
regenerated from the accent mode whenever the mode or the time signature
changes, which discards any per-beat toggles made since.
"""

import dataclasses
import enum
import fractions
import logging
import math
import typing

import tactus.constants
import tactus.event_emitter
import tactus.sounds


logger = logging.getLogger(__name__)


class Subdivision (enum.Enum):

	"""Clicks per beat, expressed as the beat fraction between clicks."""

	QUARTER = "quarter"
	EIGHTH = "eighth"
	TRIPLET = "triplet"
	SIXTEENTH = "sixteenth"

	@property
	def step (self) -> fractions.Fraction:

		"""Beat distance between consecutive clicks (1, 1/2, 1/3 or 1/4)."""

		return _SUBDIVISION_STEPS[self]


_SUBDIVISION_STEPS: typing.Dict[Subdivision, fractions.Fraction] = {
	Subdivision.QUARTER: fractions.Fraction(1),
	Subdivision.EIGHTH: fractions.Fraction(1, 2),
	Subdivision.TRIPLET: fractions.Fraction(1, 3),
	Subdivision.SIXTEENTH: fractions.Fraction(1, 4),
}


class AccentMode (enum.Enum):

	SINGLE = "single"
	DOUBLE = "double"
	TRIPLE = "triple"


def generate_accent_pattern (beats: int, mode: AccentMode) -> typing.Tuple[bool, ...]:

	"""Build a fresh accent pattern for a measure of *beats* beats.

	- single: beat 0
	- double: beats 0 and ``n // 2``
	- triple: beats 0, ``n // 3`` and ``2n // 3``

	Indices coincide for short measures, so a 1-beat measure always has a
	single accent.
	"""

	if beats < 1:
		raise ValueError("A measure needs at least one beat")

	if mode is AccentMode.DOUBLE:
		accented = {0, beats // 2}
	elif mode is AccentMode.TRIPLE:
		accented = {0, beats // 3, (2 * beats) // 3}
	else:
		accented = {0}

	return tuple(i in accented for i in range(beats))


def clamp_bpm (bpm: typing.Any) -> typing.Optional[int]:

	"""Round and clamp *bpm* to the supported range.

	Returns ``None`` when the value cannot be read as a number.
	"""

	try:
		value = round(float(bpm))
	except (TypeError, ValueError, OverflowError):
		return None

	return max(tactus.constants.MIN_BPM, min(tactus.constants.MAX_BPM, value))


def parse_time_signature (signature: typing.Any) -> typing.Optional[typing.Tuple[int, int]]:

	"""Read ``4``, ``"4"`` or ``"7/8"`` as ``(beats, note_value)``.

	Returns ``None`` for anything that is not a positive beat count.
	"""

	note_value = tactus.constants.DEFAULT_NOTE_VALUE

	if isinstance(signature, bool):
		return None

	if isinstance(signature, str):
		head, _, tail = signature.strip().partition("/")
		try:
			beats = int(head)
			if tail:
				note_value = int(tail)
		except ValueError:
			return None

	elif isinstance(signature, int):
		beats = signature

	else:
		return None

	if beats < 1 or note_value < 1:
		return None

	return beats, note_value


@dataclasses.dataclass (frozen=True)
class TempoState:

	"""Immutable snapshot of everything the scheduler reads on a tick."""

	bpm: int = tactus.constants.DEFAULT_BPM
	subdivision: Subdivision = Subdivision.QUARTER
	beats_per_measure: int = tactus.constants.DEFAULT_BEATS_PER_MEASURE
	note_value: int = tactus.constants.DEFAULT_NOTE_VALUE
	accent_mode: AccentMode = AccentMode.SINGLE
	accent_pattern: typing.Tuple[bool, ...] = (True, False, False, False)
	sound: str = tactus.constants.DEFAULT_SOUND
	volume: float = tactus.constants.DEFAULT_VOLUME

	@property
	def seconds_per_beat (self) -> float:
		return 60.0 / self.bpm

	@property
	def time_signature (self) -> str:
		return f"{self.beats_per_measure}/{self.note_value}"

	def is_accented (self, measure_beat: int) -> bool:

		"""Accent flag for a beat index within the measure."""

		return self.accent_pattern[measure_beat % self.beats_per_measure]

	def to_record (self) -> typing.Dict[str, typing.Any]:

		"""Plain preset record for an external store."""

		return {
			"bpm": self.bpm,
			"timeSignature": self.time_signature,
			"subdivision": self.subdivision.value,
			"sound": self.sound,
			"volume": self.volume,
			"accentPattern": list(self.accent_pattern),
		}


class TempoModel:

	"""
	Owner of the current ``TempoState``.

	Each setter replaces the state snapshot and emits a change event on
	``events`` (``"tempo"``, ``"signature"``, ``"accents"``, ``"subdivision"``,
	``"sound"``, ``"volume"``).  The scheduler reads ``state`` at the start of
	each tick, so changes apply to events computed afterwards.
	"""

	def __init__ (
		self,
		bpm: int = tactus.constants.DEFAULT_BPM,
		time_signature: typing.Union[int, str] = tactus.constants.DEFAULT_BEATS_PER_MEASURE,
		subdivision: typing.Union[Subdivision, str] = Subdivision.QUARTER,
		accent_mode: typing.Union[AccentMode, str] = AccentMode.SINGLE,
		sound: str = tactus.constants.DEFAULT_SOUND,
		volume: float = tactus.constants.DEFAULT_VOLUME
	) -> None:

		self.events = tactus.event_emitter.EventEmitter()
		self._state = TempoState()

		self.set_tempo(bpm)
		self.set_subdivision(subdivision)
		self.set_sound(sound)
		self.set_volume(volume)
		self.set_accent_mode(accent_mode)
		self.set_time_signature(time_signature)

	@property
	def state (self) -> TempoState:
		return self._state

	@property
	def bpm (self) -> int:
		return self._state.bpm

	def set_tempo (self, bpm: typing.Any) -> int:

		"""Set the tempo, clamped to 40-500 BPM, and return the effective value."""

		clamped = clamp_bpm(bpm)

		if clamped is None:
			logger.warning(f"Ignoring malformed tempo {bpm!r}")
			return self._state.bpm

		if clamped != self._state.bpm:
			self._state = dataclasses.replace(self._state, bpm=clamped)
			logger.info(f"BPM set to {clamped}")
			self.events.emit_sync("tempo", clamped)

		return clamped

	def adjust_tempo (self, delta: int) -> int:

		"""Nudge the tempo by *delta* BPM (clamped)."""

		return self.set_tempo(self._state.bpm + delta)

	def set_time_signature (self, signature: typing.Union[int, str]) -> None:

		"""Set beats per measure from ``4`` or ``"7/8"`` and regenerate accents."""

		parsed = parse_time_signature(signature)

		if parsed is None:
			logger.warning(f"Ignoring malformed time signature {signature!r}")
			return

		beats, note_value = parsed

		self._state = dataclasses.replace(self._state, beats_per_measure=beats, note_value=note_value)
		self.events.emit_sync("signature", self._state.time_signature)
		self._regenerate_accents()

	def set_accent_mode (self, mode: typing.Union[AccentMode, str]) -> None:

		"""Switch accent mode; the pattern is regenerated from scratch."""

		try:
			accent_mode = AccentMode(mode)
		except ValueError:
			logger.warning(f"Ignoring unknown accent mode {mode!r}")
			return

		self._state = dataclasses.replace(self._state, accent_mode=accent_mode)
		self._regenerate_accents()

	def toggle_accent (self, index: int) -> None:

		"""Flip the accent of one beat.  Lasts until the next regeneration."""

		if not 0 <= index < self._state.beats_per_measure:
			logger.warning(f"Accent index {index} outside a {self._state.beats_per_measure}-beat measure")
			return

		pattern = list(self._state.accent_pattern)
		pattern[index] = not pattern[index]
		self._set_accent_pattern(tuple(pattern))

	def set_accent_pattern (self, pattern: typing.Sequence[typing.Any]) -> bool:

		"""Replace the whole accent pattern.

		Returns ``False`` (pattern unchanged) when the length does not match
		the measure.
		"""

		if len(pattern) != self._state.beats_per_measure:
			logger.warning(
				f"Accent pattern of length {len(pattern)} does not fit "
				f"a {self._state.beats_per_measure}-beat measure"
			)
			return False

		self._set_accent_pattern(tuple(bool(flag) for flag in pattern))
		return True

	def set_subdivision (self, kind: typing.Union[Subdivision, str]) -> None:

		try:
			subdivision = Subdivision(kind)
		except ValueError:
			logger.warning(f"Ignoring unknown subdivision {kind!r}")
			return

		if subdivision is not self._state.subdivision:
			self._state = dataclasses.replace(self._state, subdivision=subdivision)
			self.events.emit_sync("subdivision", subdivision)

	def set_sound (self, name: str) -> None:

		"""Select a voice by name; unknown names fall back to the default voice."""

		if name not in tactus.sounds.VOICES:
			logger.warning(f"Unknown sound {name!r}, using {tactus.constants.DEFAULT_SOUND!r}")
			name = tactus.constants.DEFAULT_SOUND

		if name != self._state.sound:
			self._state = dataclasses.replace(self._state, sound=name)
			self.events.emit_sync("sound", name)

	def set_volume (self, volume: typing.Any) -> float:

		"""Set output gain, clamped to 0.0-1.0, and return the effective value."""

		try:
			value = float(volume)
		except (TypeError, ValueError):
			value = math.nan

		if math.isnan(value):
			logger.warning(f"Ignoring malformed volume {volume!r}")
			return self._state.volume

		value = max(0.0, min(1.0, value))

		if value != self._state.volume:
			self._state = dataclasses.replace(self._state, volume=value)
			self.events.emit_sync("volume", value)

		return value

	def apply_record (self, record: typing.Mapping[str, typing.Any]) -> None:

		"""Load a preset record produced by ``TempoState.to_record``.

		Missing keys keep their current value.  The stored accent pattern is
		applied after the signature only when its length matches.
		"""

		if "bpm" in record:
			self.set_tempo(record["bpm"])

		if "timeSignature" in record:
			self.set_time_signature(record["timeSignature"])

		if "subdivision" in record:
			self.set_subdivision(record["subdivision"])

		if "sound" in record:
			self.set_sound(record["sound"])

		if "volume" in record:
			self.set_volume(record["volume"])

		accents = record.get("accentPattern")

		if isinstance(accents, (list, tuple)):
			self.set_accent_pattern(accents)

	def _regenerate_accents (self) -> None:

		self._set_accent_pattern(
			generate_accent_pattern(self._state.beats_per_measure, self._state.accent_mode)
		)

	def _set_accent_pattern (self, pattern: typing.Tuple[bool, ...]) -> None:

		self._state = dataclasses.replace(self._state, accent_pattern=pattern)
		self.events.emit_sync("accents", pattern)

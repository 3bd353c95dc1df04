"""Click voices.

Each voice names an accent frequency, a normal frequency, a decay time and an
oscillator waveform.  ``voice_for`` turns a voice and an accent flag into the
``Transient`` handed to an audio sink.

Accented clicks are centred and in tune.  Normal clicks are nudged a little
left or right and detuned by up to three cents, so a long run of identical
clicks does not fatigue the ear.
"""

import dataclasses
import random
import typing

import tactus.constants


@dataclasses.dataclass (frozen=True)
class Voice:

	accent_frequency: float
	frequency: float
	duration: float
	waveform: str


@dataclasses.dataclass (frozen=True)
class Transient:

	"""Parameters of one click, as passed to ``AudioSink.render_transient``."""

	frequency: float
	duration: float
	waveform: str
	pan: float = 0.0
	detune_cents: float = 0.0
	gain: float = 1.0


VOICES: typing.Dict[str, Voice] = {
	"classic": Voice(1200, 900,  0.045, "square"),
	"wood":    Voice(550,  350,  0.06,  "triangle"),
	"digital": Voice(1400, 950,  0.04,  "square"),
	"rimshot": Voice(420,  280,  0.035, "sawtooth"),
	"clave":   Voice(800,  600,  0.07,  "triangle"),
	"hihat":   Voice(9000, 8000, 0.02,  "square"),
	"shaker":  Voice(6000, 5000, 0.05,  "triangle"),
	"stick":   Voice(1000, 700,  0.05,  "square"),
	"tick":    Voice(1800, 1300, 0.03,  "square"),
	"snap":    Voice(2200, 1600, 0.045, "square"),
}

PAN_SPREAD = 0.12
DETUNE_SPREAD_CENTS = 3.0

_default_rng = random.Random()


def voice_for (
	sound: str,
	is_accent: bool,
	volume: float = tactus.constants.DEFAULT_VOLUME,
	rng: typing.Optional[random.Random] = None
) -> Transient:

	"""Build the transient for one click of *sound*.

	Parameters:
		sound: Voice name; unknown names use the default voice.
		is_accent: Accented clicks use the higher frequency, no pan, no detune.
		volume: Output gain, 0.0-1.0.
		rng: Source of the pan/detune variation (module RNG when omitted).
	"""

	voice = VOICES.get(sound, VOICES[tactus.constants.DEFAULT_SOUND])

	if is_accent:
		return Transient(voice.accent_frequency, voice.duration, voice.waveform, gain=volume)

	rng = rng or _default_rng

	pan = -PAN_SPREAD if rng.random() < 0.5 else PAN_SPREAD
	detune = rng.uniform(-DETUNE_SPREAD_CENTS, DETUNE_SPREAD_CENTS)

	return Transient(voice.frequency, voice.duration, voice.waveform, pan=pan, detune_cents=detune, gain=volume)

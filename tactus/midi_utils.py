
import logging
import math
import typing

import mido

import tactus.constants

logger = logging.getLogger(__name__)

def select_output_device(device_name: typing.Optional[str] = None, interactive: bool = True) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:
    """
    Select and open a MIDI output device for the click.

    If `device_name` is provided, attempts to open that specific device.
    If `device_name` is None, auto-discovers available devices:
    - If exactly one device exists, it is selected automatically.
    - If several exist and `interactive` is True, prompts on the console.
    - Otherwise the first device is used.
    - If no devices exist, logs an error and returns None.

    Returns:
        A tuple of (device_name, midi_out_object) or (None, None) on failure.
    """
    try:
        outputs = mido.get_output_names()
        logger.debug(f"MIDI outputs found: {outputs}")

        if not outputs:
            logger.error("No MIDI output devices found - the metronome will run silently.")
            return None, None

        if device_name is not None:
            if device_name in outputs:
                midi_out = mido.open_output(device_name)
                logger.info(f"Click output: {device_name}")
                return device_name, midi_out
            logger.error(
                f"MIDI output device '{device_name}' not found. "
                f"Available devices: {outputs}"
            )
            return None, None

        if len(outputs) == 1 or not interactive:
            selected_name = outputs[0]
            midi_out = mido.open_output(selected_name)
            logger.info(f"Using MIDI output '{selected_name}'")
            return selected_name, midi_out

        print("\nMIDI outputs:\n")
        for number, name in enumerate(outputs, 1):
            print(f"  [{number}] {name}")
        print()

        while True:
            try:
                choice = int(input(f"Click output (1-{len(outputs)}): "))
                if 1 <= choice <= len(outputs):
                    break
            except ValueError:
                pass
            except EOFError:
                logger.error("No MIDI output chosen.")
                return None, None
            print(f"Please choose 1 to {len(outputs)}.")

        selected_name = outputs[choice - 1]
        midi_out = mido.open_output(selected_name)
        logger.info(f"Click output: {selected_name}")

        print(f"\nNext time, skip this prompt with:\n")
        print(f"  python -m tactus --device \"{selected_name}\"")
        print(f"  Metronome(output_device=\"{selected_name}\")\n")

        return selected_name, midi_out

    except Exception as e:
        logger.error(f"Could not open a MIDI output for the click: {e}")
        return None, None


def frequency_to_note(frequency: float) -> int:
    """Nearest MIDI note number to `frequency` (A4 = 440 Hz = 69), clamped to 0-127."""
    if frequency <= 0:
        return 0
    note = round(69 + 12 * math.log2(frequency / 440.0))
    return max(0, min(127, note))


def cents_to_pitchwheel(cents: float) -> int:
    """Pitch-bend value for a detune in cents, assuming a +/-2 semitone bend range."""
    value = round(cents / tactus.constants.MIDI_PITCHWHEEL_RANGE_CENTS * 8192)
    return max(-8192, min(8191, value))


def pan_to_cc(pan: float) -> int:
    """Map pan -1.0 (left) .. 1.0 (right) to CC10 0..127, centre 64."""
    value = round(64 + pan * 63.5)
    return max(0, min(127, value))


def gain_to_velocity(gain: float) -> int:
    """Map gain 0.0-1.0 to note velocity 1-127; no gain at all is velocity 0 (silent)."""
    if gain <= 0:
        return 0
    return max(1, min(127, round(gain * 127)))

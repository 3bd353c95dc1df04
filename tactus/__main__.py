import argparse
import logging
import os
import typing

import yaml

import tactus.constants
import tactus.metronome


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def load_config (config_path: str = 'tactus.yaml') -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def build_parser () -> argparse.ArgumentParser:

	parser = argparse.ArgumentParser(prog="tactus", description="Interactive look-ahead metronome.")

	parser.add_argument("--config", default="tactus.yaml", help="YAML config file (default: tactus.yaml)")
	parser.add_argument("--device", help="MIDI output device name")
	parser.add_argument("--bpm", type=int, help="tempo in beats per minute")
	parser.add_argument("--signature", help="time signature, e.g. 4 or 7/8")
	parser.add_argument("--subdivision", choices=["quarter", "eighth", "triplet", "sixteenth"])
	parser.add_argument("--accent-mode", choices=["single", "double", "triple"])
	parser.add_argument("--sound", help="voice name, e.g. classic or wood")
	parser.add_argument("--volume", type=float, help="output gain, 0.0-1.0")
	parser.add_argument("--preset", help="load a named preset before starting")
	parser.add_argument("--grid", action="store_true", help="draw the polyrhythm grid")
	parser.add_argument("--poly", help="polyrhythm to draw, e.g. 3:4")
	parser.add_argument("--osc", action="store_true", help="enable OSC control")
	parser.add_argument("--web-ui", action="store_true", help="enable the WebSocket beat feed")
	parser.add_argument("--no-display", action="store_true", help="disable the terminal display")
	parser.add_argument("--no-hotkeys", action="store_true", help="disable keyboard controls")

	return parser


def _pick (override: typing.Any, section: dict, key: str, default: typing.Any) -> typing.Any:

	if override is not None:
		return override

	return section.get(key, default)


def build_metronome (args: argparse.Namespace, config: dict) -> tactus.metronome.Metronome:

	"""
	Create a ``Metronome`` from the config file, with command-line flags taking precedence.
	"""

	midi_config = config.get('midi', {}) or {}
	settings = config.get('metronome', {}) or {}
	osc_config = config.get('osc', {}) or {}
	web_config = config.get('web_ui', {}) or {}
	preset_config = config.get('presets', {}) or {}

	metronome = tactus.metronome.Metronome(
		output_device = _pick(args.device, midi_config, 'device_name', None),
		bpm = _pick(args.bpm, settings, 'bpm', tactus.constants.DEFAULT_BPM),
		time_signature = _pick(args.signature, settings, 'time_signature', tactus.constants.DEFAULT_BEATS_PER_MEASURE),
		subdivision = _pick(args.subdivision, settings, 'subdivision', "quarter"),
		accent_mode = _pick(args.accent_mode, settings, 'accent_mode', "single"),
		sound = _pick(args.sound, settings, 'sound', tactus.constants.DEFAULT_SOUND),
		volume = _pick(args.volume, settings, 'volume', tactus.constants.DEFAULT_VOLUME)
	)

	directory = preset_config.get('directory')

	if directory:
		metronome.presets(os.path.expanduser(directory))

	if args.preset:
		metronome.load_named_preset(args.preset)

	poly = args.poly or settings.get('polyrhythm')

	if poly:
		left, _, right = str(poly).partition(":")
		metronome.compute_polyrhythm(left, right)

	if not args.no_display:
		metronome.display(grid=args.grid or bool(settings.get('grid', False)))

	if not args.no_hotkeys:
		metronome.hotkeys()

	if args.osc or osc_config.get('enabled', False):
		metronome.osc(
			receive_port = osc_config.get('receive_port', 9000),
			send_port = osc_config.get('send_port', 9001),
			send_host = osc_config.get('send_host', "127.0.0.1")
		)

	if args.web_ui or web_config.get('enabled', False):
		metronome.web_ui(port=web_config.get('port', 8765))

	return metronome


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point for the tactus application.
	"""

	args = build_parser().parse_args(argv)
	config = load_config(args.config)

	metronome = build_metronome(args, config)
	metronome.play()


if __name__ == "__main__":
	main()

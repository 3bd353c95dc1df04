"""OSC remote control and beat broadcasting.

Enable with ``metronome.osc()`` before ``metronome.play()``.  The server
listens on a UDP port (default 9000) and sends beat and tempo updates to a
target host/port (default 127.0.0.1:9001).

Receive
───────
- ``/bpm <int>``: set tempo
- ``/nudge <int>``: adjust tempo by a delta
- ``/tap``: register a tap at the current time
- ``/start``, ``/stop``, ``/toggle``: transport
- ``/signature <int|str>``: beats per measure, e.g. ``7`` or ``"7/8"``
- ``/subdivision <str>``: quarter, eighth, triplet, sixteenth
- ``/accent_mode <str>``: single, double, triple
- ``/sound <str>``, ``/volume <float>``
- ``/poly <int> <int>``: set the polyrhythm

Send
────
- ``/beat <float beat_index> <int accent> <float time>``: on each beat
- ``/bpm <int>``: on tempo change
"""

import asyncio
import fractions
import logging
import typing

import pythonosc.dispatcher
import pythonosc.osc_server
import pythonosc.udp_client

if typing.TYPE_CHECKING:
	from tactus.metronome import Metronome


logger = logging.getLogger(__name__)


class OscServer:

	"""Async OSC server/client bound to a ``Metronome``."""

	def __init__ (
		self,
		metronome: "Metronome",
		receive_port: int = 9000,
		send_port: int = 9001,
		send_host: str = "127.0.0.1"
	) -> None:

		self._metronome = metronome
		self._receive_port = receive_port
		self._send_port = send_port
		self._send_host = send_host

		self._server: typing.Optional[typing.Any] = None
		self._transport: typing.Optional[asyncio.BaseTransport] = None
		self._client: typing.Optional[pythonosc.udp_client.SimpleUDPClient] = None
		self._dispatcher = pythonosc.dispatcher.Dispatcher()

		self._dispatcher.map("/bpm", self._handle_bpm)
		self._dispatcher.map("/nudge", self._handle_nudge)
		self._dispatcher.map("/tap", self._handle_tap)
		self._dispatcher.map("/start", self._handle_transport)
		self._dispatcher.map("/stop", self._handle_transport)
		self._dispatcher.map("/toggle", self._handle_transport)
		self._dispatcher.map("/signature", self._handle_setting)
		self._dispatcher.map("/subdivision", self._handle_setting)
		self._dispatcher.map("/accent_mode", self._handle_setting)
		self._dispatcher.map("/sound", self._handle_setting)
		self._dispatcher.map("/volume", self._handle_setting)
		self._dispatcher.map("/poly", self._handle_poly)


	async def start (self) -> None:

		"""Start the OSC server and client."""

		self._client = pythonosc.udp_client.SimpleUDPClient(self._send_host, self._send_port)

		self._server = pythonosc.osc_server.AsyncIOOSCUDPServer(
			("0.0.0.0", self._receive_port),
			self._dispatcher,
			asyncio.get_running_loop()  # type: ignore[arg-type]
		)

		transport, _ = await self._server.create_serve_endpoint()
		self._transport = transport

		logger.info(f"OSC listening on :{self._receive_port}, sending to {self._send_host}:{self._send_port}")


	async def stop (self) -> None:

		"""Stop the OSC server."""

		if self._transport:
			self._transport.close()
			self._transport = None
			logger.info("OSC server stopped")


	def send (self, address: str, *args: typing.Any) -> None:

		"""Send an OSC message."""

		if self._client:
			try:
				self._client.send_message(address, list(args))
			except Exception as e:
				logger.warning(f"OSC send error: {e}")


	def map (self, address: str, handler: typing.Callable) -> None:

		"""Register a custom OSC handler."""

		self._dispatcher.map(address, handler)


	# Outgoing

	def on_beat (self, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> None:
		self.send("/beat", float(beat_index), int(is_accent), float(absolute_time))

	def on_tempo (self, bpm: int) -> None:
		self.send("/bpm", int(bpm))


	# Handlers

	def _handle_bpm (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		self._metronome.set_tempo(args[0])

	def _handle_nudge (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		try:
			self._metronome.adjust_tempo(int(args[0]))
		except (ValueError, TypeError):
			logger.warning(f"Invalid OSC nudge argument: {args[0]}")

	def _handle_tap (self, address: str, *args: typing.Any) -> None:
		self._metronome.tap_tempo()

	def _handle_transport (self, address: str, *args: typing.Any) -> None:
		if address == "/start":
			self._metronome.start()
		elif address == "/stop":
			self._metronome.stop()
		else:
			self._metronome.toggle()

	def _handle_setting (self, address: str, *args: typing.Any) -> None:
		if not args:
			return
		value = args[0]
		if address == "/signature":
			self._metronome.set_time_signature(value)
		elif address == "/subdivision":
			self._metronome.set_subdivision(str(value))
		elif address == "/accent_mode":
			self._metronome.set_accent_mode(str(value))
		elif address == "/sound":
			self._metronome.set_sound(str(value))
		elif address == "/volume":
			self._metronome.set_volume(value)

	def _handle_poly (self, address: str, *args: typing.Any) -> None:
		left = args[0] if len(args) > 0 else None
		right = args[1] if len(args) > 1 else None
		self._metronome.compute_polyrhythm(left, right)

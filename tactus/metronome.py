import asyncio
import dataclasses
import logging
import random
import typing

import tactus.constants
import tactus.display
import tactus.event_emitter
import tactus.keystroke
import tactus.osc
import tactus.polyrhythm
import tactus.practice_timer
import tactus.presets
import tactus.scheduler
import tactus.sinks
import tactus.tap_tempo
import tactus.tempo
import tactus.web_ui


logger = logging.getLogger(__name__)


_HOTKEY_RESERVED = "?"
_NAMED_KEYS = frozenset(tactus.keystroke.ARROW_KEYS.values())


@dataclasses.dataclass
class HotkeyBinding:

	"""One key mapped to a zero-argument action."""

	key: str
	action: typing.Callable[[], typing.Any]
	label: str


def _derive_label (action: typing.Callable[..., typing.Any]) -> str:

	"""Best-effort display name for an action."""

	name = getattr(action, "__name__", None)

	if name and name != "<lambda>":
		return name

	return "action"


class Metronome:

	"""
	The top-level controller.

	A ``Metronome`` owns the tempo model, the look-ahead scheduler, the tap
	tempo estimator, the practice timer and the current polyrhythm, and wires
	them to the optional services (terminal display, hotkeys, OSC, web UI).

	Example:
		```python
		import tactus

		metronome = tactus.Metronome(bpm=96, time_signature="6/8", subdivision="eighth")
		metronome.display()
		metronome.hotkeys()
		metronome.play()
		```

	Beats are re-emitted as ``"beat"`` events, so extra consumers can follow
	along with ``metronome.on_event("beat", callback)``.  Other events:
	``"start"``, ``"stop"``, ``"tempo"``, ``"signature"``, ``"accents"``,
	``"subdivision"``, ``"sound"``, ``"volume"``, ``"polyrhythm"``.
	"""

	def __init__ (
		self,
		output_device: typing.Optional[str] = None,
		bpm: int = tactus.constants.DEFAULT_BPM,
		time_signature: typing.Union[int, str] = tactus.constants.DEFAULT_BEATS_PER_MEASURE,
		subdivision: typing.Union[tactus.tempo.Subdivision, str] = tactus.tempo.Subdivision.QUARTER,
		accent_mode: typing.Union[tactus.tempo.AccentMode, str] = tactus.tempo.AccentMode.SINGLE,
		sound: str = tactus.constants.DEFAULT_SOUND,
		volume: float = tactus.constants.DEFAULT_VOLUME,
		clock: typing.Optional[tactus.scheduler.Clock] = None,
		audio_sink: typing.Optional[tactus.scheduler.AudioSink] = None,
		seed: typing.Optional[int] = None,
		driver_interval: float = tactus.constants.DRIVER_INTERVAL
	) -> None:

		"""
		Parameters:
			output_device: MIDI output port name.  When omitted and no
				``audio_sink`` is given, the port is chosen at ``play()``.
			bpm: Initial tempo (clamped to 40-500).
			time_signature: Beats per measure, e.g. ``4`` or ``"7/8"``.
			subdivision: quarter, eighth, triplet or sixteenth.
			accent_mode: single, double or triple.
			sound: Voice name (see ``tactus.sounds.VOICES``).
			volume: Output gain, 0.0-1.0.
			clock: Time source shared by the scheduler and sinks.
			audio_sink: Replaces the MIDI click sink.
			seed: Fixes the pan/detune variation for repeatable output.
			driver_interval: Seconds between scheduler ticks.
		"""

		if driver_interval <= 0:
			raise ValueError("driver_interval must be positive")

		self.output_device = output_device
		self.driver_interval = driver_interval

		self._clock: tactus.scheduler.Clock = clock or tactus.scheduler.MonotonicClock()
		self._audio_sink = audio_sink
		self._owns_audio_sink = False

		self.events = tactus.event_emitter.EventEmitter()

		self._tempo = tactus.tempo.TempoModel(
			bpm = bpm,
			time_signature = time_signature,
			subdivision = subdivision,
			accent_mode = accent_mode,
			sound = sound,
			volume = volume
		)

		for event_name in ("tempo", "signature", "accents", "subdivision", "sound", "volume"):
			self._forward(self._tempo.events, event_name)

		self._scheduler = tactus.scheduler.Scheduler(
			self._tempo,
			audio_sink = audio_sink,
			visual_sink = tactus.sinks.BeatBroadcaster(self.events),
			clock = self._clock,
			rng = random.Random(seed) if seed is not None else None
		)

		self._forward(self._scheduler.events, "start")
		self._forward(self._scheduler.events, "stop")

		self.tap_estimator = tactus.tap_tempo.TapTempoEstimator()
		self.practice_timer = tactus.practice_timer.PracticeTimer(self._clock)
		self.polyrhythm: tactus.polyrhythm.PolyrhythmPattern = tactus.polyrhythm.compute_polyrhythm()

		self._preset_store: typing.Optional[tactus.presets.PresetStore] = None
		self._display: typing.Optional[tactus.display.Display] = None
		self._osc_server: typing.Optional[tactus.osc.OscServer] = None
		self._web_ui_server: typing.Optional[tactus.web_ui.WebUI] = None

		self._hotkeys_enabled = False
		self._keystroke_listener: typing.Optional[tactus.keystroke.KeystrokeListener] = None
		self._hotkey_bindings: typing.Dict[str, HotkeyBinding] = {}
		self._install_default_hotkeys()

		self._visual_flush_at: typing.Optional[float] = None
		self._display_refreshed_at: typing.Optional[float] = None
		self._stop_event: typing.Optional[asyncio.Event] = None

	def _forward (self, source: tactus.event_emitter.EventEmitter, event_name: str) -> None:

		def _emit (*args: typing.Any) -> None:
			self.events.emit_sync(event_name, *args)

		source.on(event_name, _emit)


	# -----------------------------------------------------------------------
	# State
	# -----------------------------------------------------------------------

	@property
	def tempo (self) -> tactus.tempo.TempoModel:
		return self._tempo

	@property
	def scheduler (self) -> tactus.scheduler.Scheduler:
		return self._scheduler

	@property
	def state (self) -> tactus.tempo.TempoState:
		return self._tempo.state

	@property
	def bpm (self) -> int:
		return self._tempo.bpm

	@property
	def running (self) -> bool:
		return self._scheduler.running

	@property
	def clock (self) -> tactus.scheduler.Clock:
		return self._clock

	def on_event (self, event_name: str, callback: typing.Callable[..., typing.Any]) -> None:

		"""
		Register a callback for a metronome event (e.g. ``"beat"``, ``"tempo"``).
		"""

		self.events.on(event_name, callback)


	# -----------------------------------------------------------------------
	# Transport
	# -----------------------------------------------------------------------

	def start (self) -> None:

		"""Start clicking from beat 0, or restart if already running."""

		self._visual_flush_at = None
		self._scheduler.start()

	def stop (self) -> None:
		self._scheduler.stop()

	def toggle (self) -> None:

		if self.running:
			self.stop()
		else:
			self.start()


	# -----------------------------------------------------------------------
	# Tempo controls
	# -----------------------------------------------------------------------

	def set_tempo (self, bpm: typing.Any) -> int:
		return self._tempo.set_tempo(bpm)

	def adjust_tempo (self, delta: int) -> int:
		return self._tempo.adjust_tempo(delta)

	def set_time_signature (self, signature: typing.Union[int, str]) -> None:
		self._tempo.set_time_signature(signature)

	def set_accent_mode (self, mode: typing.Union[tactus.tempo.AccentMode, str]) -> None:
		self._tempo.set_accent_mode(mode)

	def toggle_accent (self, index: int) -> None:
		self._tempo.toggle_accent(index)

	def set_subdivision (self, kind: typing.Union[tactus.tempo.Subdivision, str]) -> None:
		self._tempo.set_subdivision(kind)

	def set_sound (self, name: str) -> None:
		self._tempo.set_sound(name)

	def set_volume (self, volume: typing.Any) -> float:
		return self._tempo.set_volume(volume)

	def tap_tempo (self, now_ms: typing.Optional[float] = None) -> typing.Optional[int]:

		"""
		Register a tap and apply the estimated tempo.

		Parameters:
			now_ms: Tap time in milliseconds on the metronome clock.  Defaults
				to the current clock time.

		Returns the tempo now in effect, or ``None`` when the taps so far do
		not give a usable estimate.
		"""

		if now_ms is None:
			now_ms = self._clock.now() * 1000.0

		estimate = self.tap_estimator.tap(now_ms)

		if estimate is None:
			return None

		return self._tempo.set_tempo(estimate)

	def compute_polyrhythm (self, left: typing.Any = None, right: typing.Any = None) -> tactus.polyrhythm.PolyrhythmPattern:

		"""Regenerate the displayed polyrhythm.  Unusable counts fall back to 3:4."""

		self.polyrhythm = tactus.polyrhythm.compute_polyrhythm(
			tactus.constants.DEFAULT_POLY_LEFT if left is None else left,
			tactus.constants.DEFAULT_POLY_RIGHT if right is None else right
		)

		logger.info(f"Polyrhythm set to {self.polyrhythm.left}:{self.polyrhythm.right}")
		self.events.emit_sync("polyrhythm", self.polyrhythm)

		return self.polyrhythm


	# -----------------------------------------------------------------------
	# Presets
	# -----------------------------------------------------------------------

	def to_preset (self) -> typing.Dict[str, typing.Any]:

		"""The current settings as a preset record."""

		return self._tempo.state.to_record()

	def load_preset (self, record: typing.Mapping[str, typing.Any]) -> None:

		"""Apply a preset record.  Missing keys leave the setting unchanged."""

		self._tempo.apply_record(record)

	def presets (self, directory: str) -> tactus.presets.PresetStore:

		"""Use *directory* for named presets and return the store."""

		self._preset_store = tactus.presets.PresetStore(directory)
		return self._preset_store

	def save_preset (self, name: str) -> str:
		return self._require_preset_store().save(name, self.to_preset())

	def load_named_preset (self, name: str) -> None:

		record = self._require_preset_store().load(name)
		self.load_preset(record)
		logger.info(f"Loaded preset {name!r}")

	def _require_preset_store (self) -> tactus.presets.PresetStore:

		if self._preset_store is None:
			raise ValueError("No preset directory configured - call metronome.presets(directory) first")

		return self._preset_store


	# -----------------------------------------------------------------------
	# Services
	# -----------------------------------------------------------------------

	def display (self, enabled: bool = True, grid: bool = False) -> None:

		"""
		Enable or disable the live terminal dashboard.

		Parameters:
			enabled: Whether to show the display (default True).
			grid: Also draw the current polyrhythm above the status line.
		"""

		if enabled:
			self._display = tactus.display.Display(self, grid=grid)
		else:
			self._display = None

	def osc (self, receive_port: int = 9000, send_port: int = 9001, send_host: str = "127.0.0.1") -> None:

		"""
		Enable Open Sound Control: remote control in, beats and tempo out.
		"""

		self._osc_server = tactus.osc.OscServer(
			self,
			receive_port = receive_port,
			send_port = send_port,
			send_host = send_host
		)

	def web_ui (self, port: int = 8765) -> None:

		"""
		Enable the WebSocket beat feed for browser indicators.
		"""

		self._web_ui_server = tactus.web_ui.WebUI(self, ws_port=port)


	# -----------------------------------------------------------------------
	# Hotkeys
	# -----------------------------------------------------------------------

	def hotkeys (self, enabled: bool = True) -> None:

		"""Enable or disable the keyboard controls.

		Must be called before :meth:`play`.  The defaults are: space
		start/stop, ``+``/``-`` and up/down nudge by 1 BPM, ``]``/``[`` and
		right/left by 5, ``t``, ``q``, ``w``, ``e``, ``r`` and Enter tap, ``p``
		toggles the practice timer.  ``?`` lists the bindings.
		"""

		self._hotkeys_enabled = enabled

	def hotkey (self, key: str, action: typing.Callable[[], typing.Any], label: typing.Optional[str] = None) -> None:

		"""Bind *key* (a character or an arrow name such as ``"up"``) to *action*.

		Replaces any existing binding for the key.

		Raises:
		    ValueError: If ``key`` is ``?`` or is neither one character nor an
		        arrow name.
		"""

		if len(key) != 1 and key not in _NAMED_KEYS:
			raise ValueError(f"hotkey key must be a single character or one of {sorted(_NAMED_KEYS)}, got {key!r}")

		if key == _HOTKEY_RESERVED:
			raise ValueError(f"'{_HOTKEY_RESERVED}' is reserved for listing active hotkeys.")

		self._hotkey_bindings[key] = HotkeyBinding(
			key = key,
			action = action,
			label = label if label is not None else _derive_label(action)
		)

	def press (self, key: str) -> None:

		"""Handle one key as if it had been typed."""

		if key == _HOTKEY_RESERVED:
			self._list_hotkeys()
			return

		binding = self._hotkey_bindings.get(key)

		if binding is None:
			return

		try:
			binding.action()
			logger.debug(f"Hotkey {key!r} -> {binding.label}")
		except Exception as exc:
			logger.warning(f"Hotkey {key!r} action raised: {exc}")

	def _install_default_hotkeys (self) -> None:

		self.hotkey(" ", self.toggle, label="start/stop")

		for key in ("+", "=", "up"):
			self.hotkey(key, lambda: self.adjust_tempo(1), label="tempo +1")

		for key in ("-", "down"):
			self.hotkey(key, lambda: self.adjust_tempo(-1), label="tempo -1")

		for key in ("]", "right"):
			self.hotkey(key, lambda: self.adjust_tempo(5), label="tempo +5")

		for key in ("[", "left"):
			self.hotkey(key, lambda: self.adjust_tempo(-5), label="tempo -5")

		for key in ("t", "q", "w", "e", "r", "\n", "\r"):
			self.hotkey(key, self.tap_tempo, label="tap tempo")

		self.hotkey("p", self.practice_timer.toggle, label="practice timer")

	def _list_hotkeys (self) -> None:

		"""Log all active bindings; output scrolls above the display."""

		lines = ["Active hotkeys:"]

		for key in sorted(self._hotkey_bindings):
			lines.append(f"  {key!r:8} {self._hotkey_bindings[key].label}")

		lines.append(f"  {_HOTKEY_RESERVED!r:8} list hotkeys")
		logger.info("\n".join(lines))

	def _process_hotkeys (self) -> None:

		"""Run the actions for every key typed since the last tick."""

		if self._keystroke_listener is None:
			return

		for key in self._keystroke_listener.drain():
			self.press(key)


	# -----------------------------------------------------------------------
	# Playback
	# -----------------------------------------------------------------------

	def play (self, seconds: typing.Optional[float] = None) -> None:

		"""
		Start the metronome and block until interrupted (Ctrl+C), or for
		*seconds* when given.
		"""

		try:
			asyncio.run(self._run(seconds))

		except KeyboardInterrupt:
			pass

	def request_stop (self) -> None:

		"""Ask a running ``play()`` to return."""

		if self._stop_event is not None:
			self._stop_event.set()

	async def _run (self, seconds: typing.Optional[float] = None) -> None:

		"""
		Async entry point: opens the sinks and services, drives the scheduler,
		and tears everything down on exit.
		"""

		self._stop_event = asyncio.Event()

		if self._audio_sink is None:
			self._audio_sink = tactus.sinks.MidiClickSink.open(self.output_device, self._clock)
			self._scheduler.audio_sink = self._audio_sink
			self._owns_audio_sink = True

		if self._display is not None:
			self._display.start()
			self.events.on("beat", self._display.on_beat)
			self.events.on("stop", self._display.on_stop)
			for event_name in ("start", "tempo", "signature", "accents", "subdivision", "sound", "volume", "polyrhythm"):
				self.events.on(event_name, self._display.update)

		if self._osc_server is not None:
			await self._osc_server.start()
			self.events.on("beat", self._osc_server.on_beat)
			self.events.on("tempo", self._osc_server.on_tempo)

		if self._web_ui_server is not None:
			await self._web_ui_server.start()
			self.events.on("beat", self._web_ui_server.on_beat)

		if self._hotkeys_enabled:
			self._keystroke_listener = tactus.keystroke.KeystrokeListener()
			self._keystroke_listener.start()

			if self._keystroke_listener.active:
				self._list_hotkeys()

		logger.info(f"Metronome running at {self.bpm} BPM. Press Ctrl+C to stop.")
		self.start()

		try:
			await self._drive(seconds)

		finally:
			self.stop()
			await self._shutdown()

	async def _drive (self, seconds: typing.Optional[float] = None) -> None:

		"""Tick the scheduler every ``driver_interval`` until asked to stop."""

		loop = asyncio.get_running_loop()
		deadline = None if seconds is None else self._clock.now() + seconds

		while self._stop_event is not None and not self._stop_event.is_set():

			now = self._clock.now()

			if deadline is not None and now >= deadline:
				break

			self._scheduler.tick(now)
			self._schedule_visual_flush(loop, now)
			self.tap_estimator.expire(now * 1000.0)
			self._process_hotkeys()
			self._refresh_display(now)

			await asyncio.sleep(self.driver_interval)

	def _schedule_visual_flush (self, loop: asyncio.AbstractEventLoop, now: float) -> None:

		"""Arrange for the earliest pending visual to be shown on time."""

		due = self._scheduler.next_visual_time()

		if due is None or due == self._visual_flush_at:
			return

		self._visual_flush_at = due
		loop.call_later(max(0.0, due - now), self._flush_visuals)

	def _refresh_display (self, now: float) -> None:

		"""Redraw the dashboard once a second so the practice time keeps moving."""

		if self._display is None:
			return

		if self._display_refreshed_at is not None and now - self._display_refreshed_at < tactus.constants.DISPLAY_REFRESH_INTERVAL:
			return

		self._display_refreshed_at = now
		self._display.update()

	def _flush_visuals (self) -> None:

		self._visual_flush_at = None
		self._scheduler.flush_visuals()

		# Later visuals from the same tick need their own timer.
		self._schedule_visual_flush(asyncio.get_running_loop(), self._clock.now())

	async def _shutdown (self) -> None:

		if self._keystroke_listener is not None:
			self._keystroke_listener.stop()
			self._keystroke_listener = None

		if self._web_ui_server is not None:
			self.events.off("beat", self._web_ui_server.on_beat)
			self._web_ui_server.stop()

		if self._osc_server is not None:
			self.events.off("beat", self._osc_server.on_beat)
			self.events.off("tempo", self._osc_server.on_tempo)
			await self._osc_server.stop()

		if self._display is not None:
			self.events.off("beat", self._display.on_beat)
			self.events.off("stop", self._display.on_stop)
			for event_name in ("start", "tempo", "signature", "accents", "subdivision", "sound", "volume", "polyrhythm"):
				self.events.off(event_name, self._display.update)
			self._display.stop()

		if self._owns_audio_sink and isinstance(self._audio_sink, tactus.sinks.MidiClickSink):
			self._audio_sink.close()
			self._audio_sink = None
			self._scheduler.audio_sink = None
			self._owns_audio_sink = False

		self._stop_event = None

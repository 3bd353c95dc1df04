"""Single-keystroke input for metronome hotkeys.

A background thread reads keys from stdin in cbreak mode, so a tap on the
space bar starts or stops the click without Enter.  Arrow keys arrive as ANSI
escape sequences and are decoded to the names ``"up"``, ``"down"``,
``"left"`` and ``"right"``; every other key is delivered as its character.

The terminal display writes to **stderr** while this module reads **stdin**,
so the two do not interfere.

**Platform support:** Linux and macOS (needs :mod:`tty` and :mod:`termios`
and a real TTY on stdin).  Elsewhere the listener logs a warning and stays
inactive.  Check :data:`HOTKEYS_SUPPORTED` to branch on this.
"""

import logging
import queue
import select
import sys
import threading
import typing


logger = logging.getLogger(__name__)


#: ``True`` when the current platform supports single-keystroke input.
HOTKEYS_SUPPORTED: bool = False

#: Why hotkeys are unavailable, or ``None`` when they are supported.
HOTKEYS_UNAVAILABLE_REASON: typing.Optional[str] = None

try:
	import termios
	import tty

	if not sys.stdin.isatty():
		raise OSError("stdin is not a terminal")

	_fd = sys.stdin.fileno()
	_saved = termios.tcgetattr(_fd)
	termios.tcsetattr(_fd, termios.TCSADRAIN, _saved)

	HOTKEYS_SUPPORTED = True

except ImportError:
	HOTKEYS_UNAVAILABLE_REASON = (
		"Keyboard controls need the POSIX 'tty' and 'termios' modules (Linux or macOS)."
	)
except OSError as _e:
	HOTKEYS_UNAVAILABLE_REASON = (
		f"Keyboard controls need an interactive terminal on stdin: {_e}"
	)
except Exception as _e:
	HOTKEYS_UNAVAILABLE_REASON = f"Keyboard controls unavailable: {_e}"


ARROW_KEYS: typing.Dict[str, str] = {
	"A": "up",
	"B": "down",
	"C": "right",
	"D": "left",
}

_ESCAPE = "\x1b"
_SEQUENCE_TIMEOUT = 0.01


def decode_keys (chars: str) -> typing.List[str]:

	"""Split raw terminal input into key names.

	``"\\x1b[A"`` becomes ``"up"``; a bare escape stays ``"\\x1b"``; any other
	character is returned as-is.
	"""

	keys: typing.List[str] = []
	i = 0

	while i < len(chars):

		if chars[i] == _ESCAPE and chars[i + 1:i + 2] == "[" and chars[i + 2:i + 3] in ARROW_KEYS:
			keys.append(ARROW_KEYS[chars[i + 2]])
			i += 3
			continue

		keys.append(chars[i])
		i += 1

	return keys


class KeystrokeListener:

	"""Reads keys from stdin on a daemon thread.

	Keys are queued and collected by the caller with :meth:`drain`.  Terminal
	settings are restored when the thread exits, even after an error.

	Example::

		listener = KeystrokeListener()
		listener.start()

		# ...from the driver loop...
		for key in listener.drain():
		    handle(key)

		listener.stop()
	"""

	def __init__ (self) -> None:

		self._queue: queue.Queue[str] = queue.Queue()
		self._thread: typing.Optional[threading.Thread] = None
		self._running: bool = False

		self.active: bool = False

	def start (self) -> None:

		"""Start the listener thread.  A no-op when already running or unsupported."""

		if self._running:
			return

		if not HOTKEYS_SUPPORTED:
			logger.warning(
				f"Hotkeys disabled. {HOTKEYS_UNAVAILABLE_REASON}"
			)
			return

		self._running = True
		self.active = True
		self._thread = threading.Thread(
			target = self._listen,
			name   = "tactus-keystroke-listener",
			daemon = True,
		)
		self._thread.start()

	def stop (self) -> None:

		"""Signal the thread to exit within one poll interval (~0.1 s)."""

		self._running = False
		self.active = False

	def feed (self, chars: str) -> None:

		"""Queue keys as if they had been typed."""

		for key in decode_keys(chars):
			self._queue.put(key)

	def drain (self) -> typing.List[str]:

		"""Return all keys received since the last drain.  Non-blocking."""

		keys: typing.List[str] = []

		while True:
			try:
				keys.append(self._queue.get_nowait())
			except queue.Empty:
				break

		return keys

	def _listen (self) -> None:

		import termios  # noqa: PLC0415
		import tty      # noqa: PLC0415

		fd = sys.stdin.fileno()
		old_settings = termios.tcgetattr(fd)

		try:
			tty.setcbreak(fd)

			while self._running:
				ready, _, _ = select.select([sys.stdin], [], [], 0.1)
				if not ready:
					continue

				chars = sys.stdin.read(1)

				# Collect the rest of an escape sequence if it follows promptly.
				if chars == _ESCAPE:
					while len(chars) < 3:
						more, _, _ = select.select([sys.stdin], [], [], _SEQUENCE_TIMEOUT)
						if not more:
							break
						chars += sys.stdin.read(1)

				if chars:
					self.feed(chars)

		except Exception:
			logger.exception("Keystroke listener stopped unexpectedly")

		finally:
			termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
			self.active = False

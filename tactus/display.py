"""Live terminal dashboard for the metronome.

A persistent status line shows tempo, time signature, subdivision, one cell
per beat of the measure, the voice, the volume and the practice timer.  With
``grid=True`` the current polyrhythm is drawn above it.

Log messages scroll above the dashboard without disruption.

```python
metronome.display(grid=True)
metronome.play()
```

The status line looks like::

	120 BPM  4/4  quarter  |X . o .|  classic 70%  00:02:15

Beat cells: ``X`` active accented beat, ``x`` active beat, ``o`` accented,
``.`` plain.  The grid looks like::

	  3:4   L |X . . . X . . . X . . .|
	        R |X . . X . . X . . X . .|
"""

import fractions
import logging
import math
import shutil
import sys
import typing

if typing.TYPE_CHECKING:
	from tactus.metronome import Metronome


_LABEL_WIDTH = 8
_MIN_TERMINAL_WIDTH = 40


class PolyrhythmGrid:

	"""Two-row ASCII rendering of the metronome's polyrhythm.

	Not used directly; instantiated by ``Display`` when ``grid=True``.
	"""

	def __init__ (self, metronome: "Metronome") -> None:

		self._metronome = metronome
		self._lines: typing.List[str] = []

	@property
	def lines (self) -> typing.List[str]:
		return list(self._lines)

	@property
	def line_count (self) -> int:
		return len(self._lines)

	def build (self) -> None:

		"""Rebuild the grid lines from the current polyrhythm."""

		pattern = self._metronome.polyrhythm
		term_width = shutil.get_terminal_size(fallback=(80, 24)).columns

		if pattern is None or term_width < _MIN_TERMINAL_WIDTH:
			self._lines = []
			return

		columns = self._fit_columns(len(pattern), term_width)
		left_cells = " ".join("X" if hit.left_hit else "." for hit in pattern.hits[:columns])
		right_cells = " ".join("X" if hit.right_hit else "." for hit in pattern.hits[:columns])

		label = f"{pattern.left}:{pattern.right}"[:_LABEL_WIDTH - 2].ljust(_LABEL_WIDTH - 2)

		self._lines = [
			f"  {label}L |{left_cells}|",
			f"  {' ' * (_LABEL_WIDTH - 2)}R |{right_cells}|",
		]

	@staticmethod
	def _fit_columns (length: int, term_width: int) -> int:

		"""How many cells fit: indent + label + row letter + pipes, two chars per cell."""

		overhead = 2 + _LABEL_WIDTH + 3
		available = term_width - overhead

		if available <= 0:
			return 0

		return min(length, (available + 1) // 2)


class DisplayLogHandler (logging.Handler):

	"""Logging handler that clears and redraws the status line around log output.

	Installed by ``Display.start()`` and removed by ``Display.stop()``.
	"""

	def __init__ (self, display: "Display") -> None:

		super().__init__()
		self._display = display

	def emit (self, record: logging.LogRecord) -> None:

		"""Clear the status line, write the log message, then redraw."""

		try:
			self._display.clear_line()

			msg = self.format(record)
			sys.stderr.write(msg + "\n")
			sys.stderr.flush()

			self._display.draw()

		except Exception:
			self.handleError(record)


class Display:

	"""Live-updating terminal dashboard.

	Registered as a ``"beat"`` listener by ``Metronome.play()``; each beat
	marks the active cell and redraws.  Tempo and settings changes redraw
	through ``update()``.
	"""

	def __init__ (self, metronome: "Metronome", grid: bool = False) -> None:

		self._metronome = metronome
		self._active: bool = False
		self._handler: typing.Optional[DisplayLogHandler] = None
		self._saved_handlers: typing.List[logging.Handler] = []
		self._last_line: str = ""
		self._current_beat: typing.Optional[int] = None
		self._grid: typing.Optional[PolyrhythmGrid] = PolyrhythmGrid(metronome) if grid else None
		self._drawn_line_count: int = 0

	def start (self) -> None:

		"""Install the log handler and activate the display.

		Existing root handlers are saved and restored by ``stop()``.
		"""

		if self._active:
			return

		self._active = True

		root_logger = logging.getLogger()
		self._saved_handlers = list(root_logger.handlers)
		self._handler = DisplayLogHandler(self)

		if self._saved_handlers and self._saved_handlers[0].formatter:
			self._handler.setFormatter(self._saved_handlers[0].formatter)
		else:
			self._handler.setFormatter(logging.Formatter("%(levelname)s:%(name)s:%(message)s"))

		root_logger.handlers.clear()
		root_logger.addHandler(self._handler)

		self.update()

	def stop (self) -> None:

		"""Clear the dashboard and restore the original log handlers."""

		if not self._active:
			return

		self.clear_line()
		self._active = False

		root_logger = logging.getLogger()
		root_logger.handlers.clear()

		for handler in self._saved_handlers:
			root_logger.addHandler(handler)

		self._saved_handlers = []
		self._handler = None

	def on_beat (self, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> None:

		"""Mark the beat containing *beat_index* as active and redraw."""

		self._current_beat = math.floor(beat_index) % self._metronome.state.beats_per_measure
		self.update()

	def on_stop (self) -> None:

		self._current_beat = None
		self.update()

	def update (self, *_: typing.Any) -> None:

		"""Rebuild and redraw the dashboard.  Arguments are ignored."""

		if not self._active:
			return

		self._last_line = self._format_status()

		if self._grid is not None:
			self._grid.build()

		self.draw()

	def draw (self) -> None:

		"""Write the current dashboard to the terminal."""

		if not self._active or not self._last_line:
			return

		grid_lines = self._grid.lines if self._grid is not None else []
		total = len(grid_lines) + 1

		if self._drawn_line_count > 1:
			sys.stderr.write(f"\033[{self._drawn_line_count - 1}A")

		for line in grid_lines:
			sys.stderr.write(f"\r\033[K{line}\n")

		sys.stderr.write(f"\r\033[K{self._last_line}")
		sys.stderr.flush()

		self._drawn_line_count = total

	def clear_line (self) -> None:

		"""Erase the entire dashboard region from the terminal."""

		if not self._active:
			return

		if self._drawn_line_count > 1:
			sys.stderr.write(f"\033[{self._drawn_line_count - 1}A")

			for _ in range(self._drawn_line_count):
				sys.stderr.write("\r\033[K\n")

			sys.stderr.write(f"\033[{self._drawn_line_count}A")
		else:
			sys.stderr.write("\r\033[K")

		sys.stderr.flush()
		self._drawn_line_count = 0

	def _format_beats (self) -> str:

		state = self._metronome.state
		cells: typing.List[str] = []

		for index, accented in enumerate(state.accent_pattern):
			if index == self._current_beat:
				cells.append("X" if accented else "x")
			else:
				cells.append("o" if accented else ".")

		return "|" + " ".join(cells) + "|"

	def _format_status (self) -> str:

		"""Build the status string from the metronome state."""

		state = self._metronome.state

		parts = [
			f"{state.bpm} BPM",
			state.time_signature,
			state.subdivision.value,
			self._format_beats(),
			f"{state.sound} {round(state.volume * 100)}%",
			self._metronome.practice_timer.formatted(),
		]

		if not self._metronome.running:
			parts.append("[stopped]")

		return "  ".join(parts)

import typing

import tactus.scheduler


def format_hms (seconds: float) -> str:

	"""Format a duration as ``HH:MM:SS`` (whole seconds, truncated)."""

	total = max(0, int(seconds))
	hours, remainder = divmod(total, 3600)
	minutes, secs = divmod(remainder, 60)

	return f"{hours:02d}:{minutes:02d}:{secs:02d}"


class PracticeTimer:

	"""
	Stopwatch for practice sessions, independent of the metronome transport.
	"""

	def __init__ (self, clock: typing.Optional[tactus.scheduler.Clock] = None) -> None:

		self.clock: tactus.scheduler.Clock = clock or tactus.scheduler.MonotonicClock()
		self._running = False
		self._started_at = 0.0
		self._accumulated = 0.0

	@property
	def running (self) -> bool:
		return self._running

	def start (self) -> None:

		if self._running:
			return

		self._running = True
		self._started_at = self.clock.now()

	def pause (self) -> None:

		if not self._running:
			return

		self._running = False
		self._accumulated += self.clock.now() - self._started_at

	def toggle (self) -> None:

		if self._running:
			self.pause()
		else:
			self.start()

	def reset (self) -> None:

		self._running = False
		self._accumulated = 0.0
		self._started_at = 0.0

	def elapsed (self) -> float:

		"""Seconds practised so far, including the current run."""

		if self._running:
			return self._accumulated + self.clock.now() - self._started_at

		return self._accumulated

	def formatted (self) -> str:
		return format_hms(self.elapsed())

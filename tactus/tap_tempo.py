"""Tap tempo.

Keeps the last five tap times and estimates the tempo from the median gap
between them, so a single fumbled tap does not throw the estimate off the
way a mean would.  Two seconds without a tap starts a fresh sequence.
"""

import collections
import logging
import statistics
import typing

import tactus.constants


logger = logging.getLogger(__name__)


class TapTempoEstimator:

	"""Estimates BPM from a stream of monotonic tap times in milliseconds.

	Example::

		taps = TapTempoEstimator()
		for t in (0, 500, 1000, 1500):
		    bpm = taps.tap(t)
		# bpm == 120
	"""

	def __init__ (
		self,
		capacity: int = tactus.constants.TAP_CAPACITY,
		reset_ms: float = tactus.constants.TAP_RESET_MS,
		min_bpm: int = tactus.constants.MIN_BPM,
		max_bpm: int = tactus.constants.MAX_BPM
	) -> None:

		if capacity < 2:
			raise ValueError("Tap tempo needs room for at least two taps")

		self.reset_ms = reset_ms
		self.min_bpm = min_bpm
		self.max_bpm = max_bpm
		self._taps: typing.Deque[float] = collections.deque(maxlen=capacity)

	@property
	def taps (self) -> typing.List[float]:
		return list(self._taps)

	def tap (self, now_ms: float) -> typing.Optional[int]:

		"""Record a tap and return the new tempo estimate.

		Returns ``None`` when there are fewer than two taps in the current
		sequence or the estimate falls outside the tempo range.
		"""

		self.expire(now_ms)
		self._taps.append(now_ms)

		return self.estimate()

	def estimate (self) -> typing.Optional[int]:

		"""Tempo implied by the taps held now, or ``None``."""

		if len(self._taps) < 2:
			return None

		taps = list(self._taps)
		intervals = [later - earlier for earlier, later in zip(taps, taps[1:])]
		median = statistics.median(intervals)

		if median <= 0:
			return None

		bpm = round(60000.0 / median)

		if not self.min_bpm <= bpm <= self.max_bpm:
			logger.debug(f"Tap estimate {bpm} BPM outside {self.min_bpm}-{self.max_bpm}, discarded")
			return None

		return bpm

	def expire (self, now_ms: float) -> bool:

		"""Clear the buffer if *now_ms* is at least ``reset_ms`` after the last tap.

		Returns ``True`` when the buffer was cleared.
		"""

		if self._taps and now_ms - self._taps[-1] >= self.reset_ms:
			self._taps.clear()
			return True

		return False

	def reset (self) -> None:
		self._taps.clear()

"""Polyrhythm patterns.

Two pulse counts share one cycle whose length is their least common multiple.
Slot ``i`` carries a left hit when it is a multiple of ``length / left`` and a
right hit when it is a multiple of ``length / right``::

	3:4 -> L . . . L . . . L . . .
	       R . . R . . R . . R . .
"""

import dataclasses
import logging
import typing

import tactus.constants


logger = logging.getLogger(__name__)


@dataclasses.dataclass (frozen=True)
class PolyrhythmHit:

	left_hit: bool
	right_hit: bool


@dataclasses.dataclass (frozen=True)
class PolyrhythmPattern:

	"""A full cycle of a ``left:right`` polyrhythm."""

	left: int
	right: int
	hits: typing.Tuple[PolyrhythmHit, ...]

	def __len__ (self) -> int:
		return len(self.hits)

	def __iter__ (self) -> typing.Iterator[PolyrhythmHit]:
		return iter(self.hits)

	def __getitem__ (self, index: int) -> PolyrhythmHit:
		return self.hits[index]

	@property
	def left_indices (self) -> typing.List[int]:
		return [i for i, hit in enumerate(self.hits) if hit.left_hit]

	@property
	def right_indices (self) -> typing.List[int]:
		return [i for i, hit in enumerate(self.hits) if hit.right_hit]


def gcd (a: int, b: int) -> int:

	"""Greatest common divisor (Euclid)."""

	return a if b == 0 else gcd(b, a % b)


def lcm (a: int, b: int) -> int:
	return a * b // gcd(a, b)


def parse_count (value: typing.Any, default: int) -> int:

	"""Read a pulse count, falling back to *default* when it is unusable.

	Accepts ints and numeric strings.  Zero, negatives, non-numbers and counts
	above ``MAX_POLY_COUNT`` all give *default*.
	"""

	if isinstance(value, bool):
		return default

	try:
		count = int(value.strip()) if isinstance(value, str) else int(value)
	except (TypeError, ValueError, OverflowError):
		logger.debug(f"Unparsable polyrhythm count {value!r}, using {default}")
		return default

	if not 1 <= count <= tactus.constants.MAX_POLY_COUNT:
		logger.debug(f"Polyrhythm count {count} out of range, using {default}")
		return default

	return count


def compute_polyrhythm (
	left: typing.Any = tactus.constants.DEFAULT_POLY_LEFT,
	right: typing.Any = tactus.constants.DEFAULT_POLY_RIGHT
) -> PolyrhythmPattern:

	"""Build the complete ``left:right`` cycle from scratch."""

	left_count = parse_count(left, tactus.constants.DEFAULT_POLY_LEFT)
	right_count = parse_count(right, tactus.constants.DEFAULT_POLY_RIGHT)

	length = lcm(left_count, right_count)
	left_spacing = length // left_count
	right_spacing = length // right_count

	hits = tuple(
		PolyrhythmHit(left_hit=i % left_spacing == 0, right_hit=i % right_spacing == 0)
		for i in range(length)
	)

	return PolyrhythmPattern(left=left_count, right=right_count, hits=hits)

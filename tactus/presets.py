"""Named presets stored as YAML files.

One file per preset, ``<directory>/<name>.yaml``, holding the record produced
by ``TempoState.to_record()``::

	bpm: 96
	timeSignature: 6/8
	subdivision: eighth
	sound: wood
	volume: 0.7
	accentPattern: [true, false, false, true, false, false]
"""

import logging
import os
import re
import typing

import yaml


logger = logging.getLogger(__name__)

_SUFFIX = ".yaml"
_UNSAFE_CHARS = re.compile(r"[^\w\- ]")


class PresetStore:

	"""Save, load and list presets in a directory."""

	def __init__ (self, directory: str) -> None:

		self.directory = directory

	def names (self) -> typing.List[str]:

		"""Preset names, sorted alphabetically."""

		if not os.path.isdir(self.directory):
			return []

		return sorted(
			entry[:-len(_SUFFIX)]
			for entry in os.listdir(self.directory)
			if entry.endswith(_SUFFIX)
		)

	def save (self, name: str, record: typing.Mapping[str, typing.Any]) -> str:

		"""Write *record* under *name*, replacing any existing preset.

		Returns the path written.  Raises ``ValueError`` for an empty name.
		"""

		path = self._path(name)
		os.makedirs(self.directory, exist_ok=True)

		with open(path, 'w') as f:
			yaml.safe_dump(dict(record), f, sort_keys=False)

		logger.info(f"Saved preset {name!r} to {path}")
		return path

	def load (self, name: str) -> typing.Dict[str, typing.Any]:

		"""Read a preset record.  Raises ``KeyError`` when it does not exist."""

		path = self._path(name)

		if not os.path.exists(path):
			raise KeyError(f"Preset {name!r} not found")

		with open(path, 'r') as f:
			record = yaml.safe_load(f)

		if not isinstance(record, dict):
			raise ValueError(f"Preset {name!r} is not a mapping")

		return record

	def delete (self, name: str) -> None:

		path = self._path(name)

		if not os.path.exists(path):
			raise KeyError(f"Preset {name!r} not found")

		os.remove(path)

	def _path (self, name: str) -> str:

		cleaned = name.strip() if isinstance(name, str) else ""

		if not cleaned:
			raise ValueError("Preset name cannot be empty")

		if _UNSAFE_CHARS.search(cleaned):
			raise ValueError(f"Preset name {name!r} may only contain letters, digits, spaces, '-' and '_'")

		return os.path.join(self.directory, cleaned + _SUFFIX)

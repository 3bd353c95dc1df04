"""Timing and configuration defaults.

Tempo is expressed in beats per minute and clamped to ``MIN_BPM``..``MAX_BPM``.
Scheduler windows are in seconds, tap-tempo values in milliseconds.

- ``AHEAD_WINDOW = 0.025``: how far past "now" each tick schedules events
- ``START_OFFSET = 0.1``: gap between ``start()`` and the first event
- ``RESUME_THRESHOLD = 1.0``: lag after which a stalled clock is re-anchored
- ``DRIVER_INTERVAL``: nominal period of the host driver (~60 Hz)
- ``DISPLAY_REFRESH_INTERVAL = 1.0``: how often the driver redraws the dashboard
"""

# Tempo bounds

MIN_BPM = 40
MAX_BPM = 500
DEFAULT_BPM = 120

# Scheduler windows (seconds)

AHEAD_WINDOW = 0.025
START_OFFSET = 0.1
RESUME_THRESHOLD = 1.0
DRIVER_INTERVAL = 1.0 / 60.0
DISPLAY_REFRESH_INTERVAL = 1.0

# Beat positions closer than this to an integer are snapped to it.
BEAT_SNAP_TOLERANCE = 1e-9

# Tap tempo

TAP_CAPACITY = 5
TAP_RESET_MS = 2000.0

# Measure and voice defaults

DEFAULT_BEATS_PER_MEASURE = 4
DEFAULT_NOTE_VALUE = 4
DEFAULT_SOUND = "classic"
DEFAULT_VOLUME = 0.7

# Polyrhythm

DEFAULT_POLY_LEFT = 3
DEFAULT_POLY_RIGHT = 4
MAX_POLY_COUNT = 64

# MIDI output

MIDI_CLICK_CHANNEL = 9
MIDI_PAN_CC = 10
MIDI_ALL_SOUND_OFF_CC = 120
MIDI_ALL_NOTES_OFF_CC = 123
MIDI_PITCHWHEEL_RANGE_CENTS = 200.0

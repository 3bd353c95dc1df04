"""
Tactus - an interactive metronome for Python.

Tactus schedules clicks ahead of time against a monotonic clock, so a busy
or irregular driver never makes a click late.  Beat positions are exact
fractions, which keeps triplets and sixteenths from drifting over long
sessions.  Clicks are played as short pitched MIDI notes (no audio engine),
and every beat is broadcast to the terminal display, OSC and WebSocket
clients at the moment it sounds.

Features:

- **Look-ahead scheduling.** A 25 ms window, re-anchoring on tempo changes
  and on clock stalls longer than a second.
- **Meters and accents.** Any number of beats per measure, single, double
  or triple accent patterns, and per-beat accent toggles.
- **Subdivisions.** Quarter, eighth, triplet and sixteenth clicks.
- **Tap tempo.** Median of the last five tap intervals.
- **Polyrhythm grids.** Any ``a:b`` cycle up to 64 pulses a side.
- **Ten voices** with subtle pan and detune variation on unaccented clicks.
- **Presets** stored as YAML, a practice timer, hotkeys, OSC remote control
  and a WebSocket beat feed.

Minimal example:

    ```python
    import tactus

    metronome = tactus.Metronome(bpm=96, time_signature="7/8", accent_mode="double")
    metronome.display(grid=True)
    metronome.hotkeys()
    metronome.play()
    ```

Package-level exports: ``Metronome``, ``TempoModel``, ``Scheduler``,
``Subdivision``, ``AccentMode``, ``TapTempoEstimator``, ``compute_polyrhythm``.
"""

import tactus.metronome
import tactus.polyrhythm
import tactus.scheduler
import tactus.tap_tempo
import tactus.tempo


Metronome = tactus.metronome.Metronome
TempoModel = tactus.tempo.TempoModel
Scheduler = tactus.scheduler.Scheduler
Subdivision = tactus.tempo.Subdivision
AccentMode = tactus.tempo.AccentMode
TapTempoEstimator = tactus.tap_tempo.TapTempoEstimator
compute_polyrhythm = tactus.polyrhythm.compute_polyrhythm

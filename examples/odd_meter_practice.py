import logging
import os

import tactus

logging.basicConfig(level=logging.INFO)

PRESET_DIR = os.path.expanduser("~/.tactus/presets")

# 7/8 grouped 2+2+3, counted in eighths, with a 3:4 polyrhythm grid drawn
# above the status line for reference.
metronome = tactus.Metronome(
	bpm = 84,
	time_signature = "7/8",
	subdivision = "eighth",
	sound = "clave",
	volume = 0.6
)

metronome.set_accent_mode("single")
metronome.toggle_accent(2)
metronome.toggle_accent(4)

metronome.compute_polyrhythm(3, 4)

metronome.presets(PRESET_DIR)
metronome.save_preset("seven eight")

# Every measure, log the downbeat so the practice log shows progress.
def log_downbeat (beat_index, is_accent, absolute_time):
	if beat_index % metronome.state.beats_per_measure == 0:
		logging.info(f"Measure {int(beat_index) // metronome.state.beats_per_measure + 1}")

metronome.on_event("beat", log_downbeat)

# "p" starts the practice timer; "s" saves the current settings.
metronome.hotkeys()
metronome.hotkey("s", lambda: metronome.save_preset("seven eight"), label="save preset")
metronome.display(grid=True)

# Remote control from a tablet or DAW: /bpm 90, /tap, /toggle ...
metronome.osc()

if __name__ == "__main__":
	metronome.play()

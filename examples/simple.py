import logging

import tactus

logging.basicConfig(level=logging.INFO)

# A plain 4/4 click at 100 BPM with the terminal dashboard and keyboard
# controls.  Space starts and stops, +/- nudge the tempo, t taps.
metronome = tactus.Metronome(bpm=100, sound="wood")

metronome.display()
metronome.hotkeys()

if __name__ == "__main__":
	metronome.play()

"""Look-ahead scheduler benchmark.

Drives the scheduler for a configurable number of seconds and reports, for
every click, how far ahead of its timestamp it reached the audio sink (the
lead) and how far its timestamp sits from the ideal grid (the drift).

A negative lead means the click was handed over late.  Drift should stay at
zero however irregular the driver is.

Usage:
    python benchmarks/scheduler_jitter.py [--bpm BPM] [--seconds N]
                                          [--subdivision KIND] [--simulate]
                                          [--tick-jitter MS]

Options:
    --bpm BPM            Tempo in BPM (default: 120)
    --seconds N          Seconds to run (default: 20)
    --subdivision KIND   quarter, eighth, triplet or sixteenth (default: triplet)
    --simulate           Use a simulated clock instead of real time
    --tick-jitter MS     Simulated only: max random extra delay per tick (default: 20)
"""

import argparse
import asyncio
import logging
import random
import statistics
import time

# Keep the report free of log output.
logging.basicConfig(level=logging.ERROR)

import tactus.constants
import tactus.scheduler
import tactus.tempo


class _LeadRecorder:

	"""Audio sink that records (handover time, click time) pairs."""

	def __init__ (self, clock: tactus.scheduler.Clock) -> None:

		self.clock = clock
		self.samples: list[tuple[float, float]] = []

	def render_transient (self, frequency, duration, waveform, pan, detune_cents, absolute_time, gain=1.0) -> None:

		self.samples.append((self.clock.now(), absolute_time))


class _SimulatedClock:

	def __init__ (self) -> None:
		self.time = 0.0

	def now (self) -> float:
		return self.time


def _make_scheduler (bpm: float, subdivision: str, clock: tactus.scheduler.Clock) -> tuple[tactus.scheduler.Scheduler, _LeadRecorder]:

	tempo = tactus.tempo.TempoModel(bpm=bpm, subdivision=subdivision)
	recorder = _LeadRecorder(clock)
	scheduler = tactus.scheduler.Scheduler(tempo, audio_sink=recorder, clock=clock)

	return scheduler, recorder


def _run_realtime (bpm: float, seconds: float, subdivision: str) -> list[tuple[float, float]]:

	"""Tick from an asyncio loop at the default driver rate."""

	clock = tactus.scheduler.MonotonicClock()
	scheduler, recorder = _make_scheduler(bpm, subdivision, clock)

	async def _run () -> None:

		deadline = clock.now() + seconds
		scheduler.start()

		while clock.now() < deadline:
			scheduler.tick()
			await asyncio.sleep(tactus.constants.DRIVER_INTERVAL)

		scheduler.stop()

	asyncio.run(_run())

	return recorder.samples


def _run_simulated (bpm: float, seconds: float, subdivision: str, tick_jitter_ms: float) -> list[tuple[float, float]]:

	"""Tick a simulated clock with random extra delay on every tick."""

	clock = _SimulatedClock()
	scheduler, recorder = _make_scheduler(bpm, subdivision, clock)
	rng = random.Random(0)

	scheduler.start()

	while clock.time < seconds:
		clock.time += tactus.constants.DRIVER_INTERVAL + rng.uniform(0, tick_jitter_ms / 1000)
		scheduler.tick()

	return recorder.samples


def _print_report (samples: list[tuple[float, float]], bpm: float, subdivision: str, label: str) -> None:

	if len(samples) < 2:
		print("Not enough clicks collected.")
		return

	origin = samples[0][1]
	step = float(tactus.tempo.Subdivision(subdivision).step) * 60.0 / bpm

	leads_ms = [(when - handed) * 1000 for handed, when in samples]
	drift_us = [(when - (origin + i * step)) * 1e6 for i, (_, when) in enumerate(samples)]

	late = sum(1 for lead in leads_ms if lead < 0)

	print(f"\nScheduler Benchmark [{label}]: {len(samples)} clicks at {bpm:.0f} BPM ({subdivision})")
	print(f"{'─' * 62}")
	print(f"  Click interval  : {step * 1000:.3f} ms")
	print(f"  Look-ahead      : {tactus.constants.AHEAD_WINDOW * 1000:.1f} ms")
	print(f"{'─' * 62}")
	print(f"  Mean lead       : {statistics.mean(leads_ms):>8.3f} ms")
	print(f"  Min lead        : {min(leads_ms):>8.3f} ms")
	print(f"  Lead std dev    : {statistics.stdev(leads_ms):>8.3f} ms")
	print(f"  Late clicks     : {late:>8d}")
	print(f"  Max grid drift  : {max(abs(d) for d in drift_us):>8.3f} μs")
	print(f"{'─' * 62}")
	print()


def main () -> None:

	parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
	parser.add_argument("--bpm",         type=int,   default=120,        help="Tempo in BPM (default: 120)")
	parser.add_argument("--seconds",     type=float, default=20.0,       help="Seconds to run (default: 20)")
	parser.add_argument("--subdivision", type=str,   default="triplet",  choices=[s.value for s in tactus.tempo.Subdivision])
	parser.add_argument("--simulate",    action="store_true",            help="Use a simulated clock")
	parser.add_argument("--tick-jitter", type=float, default=20.0,       help="Simulated max extra tick delay in ms (default: 20)")
	args = parser.parse_args()

	started = time.perf_counter()

	if args.simulate:
		samples = _run_simulated(args.bpm, args.seconds, args.subdivision, args.tick_jitter)
		label = f"simulated, +{args.tick_jitter:.0f} ms tick jitter"
	else:
		samples = _run_realtime(args.bpm, args.seconds, args.subdivision)
		label = "real time"

	_print_report(samples, args.bpm, args.subdivision, label)
	print(f"  Wall time       : {time.perf_counter() - started:.2f} s\n")


if __name__ == "__main__":
	main()

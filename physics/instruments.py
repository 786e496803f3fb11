# =============================================================================
# physics/instruments.py — Instrument Calibration Signal Models
# =============================================================================
# Raw readings produced by three bench instruments while they observe a
# target quantity, as a function of simulated time t (s):
#
#   multimeter          DC reading settling exponentially toward the target,
#                       with a small 0.5 Hz ripple and uniform noise
#   oscilloscope        sine of amplitude |target| with phase jitter + noise
#   function generator  clean sine of amplitude |target|
#
# All noise comes from the numpy Generator passed in, so runs with the same
# seed reproduce exactly.
# =============================================================================

import math

import numpy as np

MULTIMETER_RIPPLE_HZ = 0.5
MULTIMETER_RIPPLE_FRACTION = 0.002
MULTIMETER_NOISE_FRACTION = 0.005
SCOPE_PHASE_JITTER_RAD = 0.1
SCOPE_NOISE_FRACTION = 0.02
MIN_AMPLITUDE = 0.001
DRIFT_PERIOD_S = 30.0
DRIFT_FRACTION = 0.002
MIN_CALIBRATION_SAMPLES = 6


def _or_one(target: float) -> float:
    # Zero targets fall back to unit scale
    return target if target else 1.0


def _centered(rng: np.random.Generator) -> float:
    return float(rng.random()) - 0.5


def multimeter_signal(t: float, target: float, rng: np.random.Generator) -> float:
    """
    DC multimeter reading.

    raw = target·(1 - exp(-t/τ)) + ripple + noise,  τ = 0.8 + |target|/10

    Args:
        t: Simulated time since start (s)
        target: Quantity being measured
        rng: Noise source

    Returns:
        Raw reading
    """
    tau = 0.8 + abs(_or_one(target) / 10.0)
    scale = max(1.0, abs(target))
    ripple = math.sin(t * 2 * math.pi * MULTIMETER_RIPPLE_HZ) * (MULTIMETER_RIPPLE_FRACTION * scale)
    noise = _centered(rng) * MULTIMETER_NOISE_FRACTION * scale
    approach = target * (1.0 - math.exp(-t / tau))
    return approach + ripple + noise


def oscilloscope_signal(t: float, target: float, rng: np.random.Generator) -> float:
    """
    Oscilloscope trace sample.

    raw = A·sin(2π·f·t + jitter) + noise,  A = |target|, f = 2 + (target mod 3)
    """
    freq = 2.0 + math.fmod(_or_one(target), 3.0)
    amplitude = max(MIN_AMPLITUDE, abs(_or_one(target)))
    jitter = _centered(rng) * SCOPE_PHASE_JITTER_RAD
    noise = _centered(rng) * SCOPE_NOISE_FRACTION * amplitude
    return amplitude * math.sin(2 * math.pi * freq * t + jitter) + noise


def function_generator_signal(t: float, target: float) -> float:
    """Function generator output: A·sin(2π·f·t), f = 1 + (target mod 4)."""
    freq = 1.0 + math.fmod(_or_one(target), 4.0)
    amplitude = max(MIN_AMPLITUDE, abs(_or_one(target)))
    return amplitude * math.sin(2 * math.pi * freq * t)


def meter_drift(t: float, target: float) -> float:
    """Slow multiplicative drift of the measurement chain: 1 + 0.002·sin(t/30)·sign."""
    sign = math.copysign(1.0, _or_one(target))
    return 1.0 + math.sin(t / DRIFT_PERIOD_S) * DRIFT_FRACTION * sign


def apply_calibration(raw: float, gain: float = 1.0, offset: float = 0.0) -> float:
    """Linear calibration: corrected = raw·gain + offset."""
    return raw * gain + offset


def estimate_calibration(raw_readings, target: float) -> tuple:
    """
    One-point calibration from a window of raw readings.

    gain = target / mean(raw), offset = target - gain·mean(raw)
    A zero mean keeps unit gain.

    Args:
        raw_readings: Recent raw readings (at least 6)
        target: Known value of the measured quantity

    Returns:
        (gain, offset)

    Raises:
        ValueError: If fewer than 6 readings are given
    """
    raw = np.asarray(list(raw_readings), dtype=float)
    if raw.size < MIN_CALIBRATION_SAMPLES:
        raise ValueError(
            f"Need at least {MIN_CALIBRATION_SAMPLES} readings to calibrate, got {raw.size}")
    raw_avg = float(np.mean(raw))
    gain = target / raw_avg if raw_avg != 0 else 1.0
    return gain, target - gain * raw_avg

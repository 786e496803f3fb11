# utils/numerics.py
"""
Small numeric helpers shared by the device models, solver and integrator.
"""

import math
from typing import Iterable, Mapping

import numpy as np


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]. NaN passes through unchanged."""
    if value != value:
        return value
    return max(lo, min(hi, value))


def is_finite_number(value) -> bool:
    """True for real numbers that are neither NaN nor infinite."""
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float, np.integer, np.floating)):
        return math.isfinite(value)
    return False


def all_finite(values: Iterable) -> bool:
    """True when every numeric entry in values is finite (non-numbers are ignored)."""
    for v in values:
        if isinstance(v, (int, float, np.integer, np.floating)) and not isinstance(v, bool):
            if not math.isfinite(v):
                return False
    return True


def mapping_is_finite(extra: Mapping) -> bool:
    """Finiteness check over the numeric values of a payload mapping."""
    return all_finite(extra.values())


def finite_or(value, fallback: float) -> float:
    """Return float(value) if it is a finite number, else fallback."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        return fallback
    return v if math.isfinite(v) else fallback


def linear_interp(index: int, steps: int, start: float, stop: float) -> float:
    """
    Map a sweep index onto [start, stop] across `steps` evenly spaced points.

    Args:
        index: Position in 0 .. steps-1
        steps: Number of points (>= 2)
        start: Value at index 0
        stop: Value at index steps-1

    Returns:
        Interpolated value
    """
    frac = index / max(1, steps - 1)
    return start + (stop - start) * frac

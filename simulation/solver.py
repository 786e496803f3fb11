# simulation/solver.py
"""
Nonlinear Operating-Point Solver

Single-loop circuit: source V_s -> series resistor R -> device -> ground.
Finds the device terminal voltage V* where

    I_device(V*) = (V_s - V*) / R

Diode:        damped Newton on f(V) = I_d(V) - (V_s - V)/R,
              f'(V) = g_d(V) + 1/R, step clamped to ±0.1 V, tol 1e-9.
BJT / MOSFET: damped fixed-point relaxation on the loop voltage,
              V <- max(0, V_s - I(V)·R), step clamped to ±0.1 V (BJT)
              or ±0.2 V (MOSFET), tol 1e-6.

Both stop after MAX_ITERATIONS and keep the last iterate. Hitting the cap
is not an error; the result is flagged converged=False and logged at
debug level.

reference_operating_point() brackets the same balance with
scipy.optimize.brentq. It is slower and used to check the iterative
results, not inside the tick loop.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from scipy.optimize import brentq

from physics.diode import diode_current, diode_conductance
from physics.transistors import bjt_collector_current, mosfet_drain_current
from utils.numerics import clamp

from .config import MIN_RESISTANCE

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 24

DIODE_MAX_STEP = 0.1      # V
DIODE_TOLERANCE = 1e-9    # V
BJT_MAX_STEP = 0.1        # V
MOSFET_MAX_STEP = 0.2     # V
RELAX_TOLERANCE = 1e-6    # V


@dataclass(frozen=True)
class OperatingPoint:
    """Converged (or best-effort) solution of the loop equation."""
    voltage: float        # device terminal voltage (V)
    current: float        # device current at that voltage (A)
    iterations: int
    converged: bool


# =============================================================================
# DIODE (damped Newton)
# =============================================================================

def solve_diode(V_s: float, R: float, I_s: float = 1e-12, n: float = 1.0,
                V_guess: float = 0.0) -> OperatingPoint:
    """
    Diode operating point.

    Args:
        V_s: Source voltage (V)
        R: Series resistance (Ω), floored at 1e-9
        I_s: Saturation current (A)
        n: Ideality factor
        V_guess: Starting junction voltage (0 for a cold start, or the
                 previous tick's V* for warm starts)

    Returns:
        OperatingPoint with the junction voltage and diode current
    """
    R = max(MIN_RESISTANCE, R)
    V = V_guess
    converged = False
    iterations = 0

    for iterations in range(1, MAX_ITERATIONS + 1):
        f = diode_current(V, I_s, n) - (V_s - V) / R
        df = diode_conductance(V, I_s, n) + 1.0 / R
        dV = -f / df
        V += clamp(dV, -DIODE_MAX_STEP, DIODE_MAX_STEP)
        if abs(dV) < DIODE_TOLERANCE:
            converged = True
            break

    if not converged:
        logger.debug("Diode solve hit %d iterations (V_s=%.4g, R=%.4g, V=%.6g)",
                     MAX_ITERATIONS, V_s, R, V)
    return OperatingPoint(V, diode_current(V, I_s, n), iterations, converged)


# =============================================================================
# TRANSISTORS (damped fixed-point relaxation)
# =============================================================================

def _relax(current_fn: Callable[[float], float], V_s: float, R: float,
           max_step: float, V_guess: Optional[float]) -> OperatingPoint:
    R = max(MIN_RESISTANCE, R)
    V = max(0.0, V_s) if V_guess is None else V_guess
    converged = False
    iterations = 0

    for iterations in range(1, MAX_ITERATIONS + 1):
        V_new = max(0.0, V_s - current_fn(V) * R)
        dV = V_new - V
        V += clamp(dV, -max_step, max_step)
        if abs(dV) < RELAX_TOLERANCE:
            converged = True
            break

    if not converged:
        logger.debug("Relaxation hit %d iterations (V_s=%.4g, R=%.4g, V=%.6g)",
                     MAX_ITERATIONS, V_s, R, V)
    return OperatingPoint(V, current_fn(V), iterations, converged)


def solve_bjt(V_s: float, R: float, I_b: float, beta: float = 100.0,
              V_e: float = 0.02, V_guess: Optional[float] = None) -> OperatingPoint:
    """
    Collector-emitter operating point for one base current.

    Seeded at V_ce = V_s unless V_guess is given.

    Returns:
        OperatingPoint with voltage = V_ce and current = I_c
    """
    return _relax(lambda V: bjt_collector_current(V, I_b, beta, V_e),
                  V_s, R, BJT_MAX_STEP, V_guess)


def solve_mosfet(V_s: float, R: float, V_gs: float, V_th: float = 2.5,
                 k: float = 2e-3, V_guess: Optional[float] = None) -> OperatingPoint:
    """
    Drain-source operating point for one gate voltage.

    Seeded at V_ds = V_s unless V_guess is given.

    Returns:
        OperatingPoint with voltage = V_ds and current = I_d
    """
    return _relax(lambda V: mosfet_drain_current(V, V_gs, V_th, k),
                  V_s, R, MOSFET_MAX_STEP, V_guess)


# =============================================================================
# REFERENCE (bracketed root)
# =============================================================================

def reference_operating_point(current_fn: Callable[[float], float],
                              V_s: float, R: float,
                              xtol: float = 1e-12) -> OperatingPoint:
    """
    Bracketed solution of I(V) = (V_s - V)/R on [0, V_s] via Brent's method.

    For any device whose current is zero or tiny at V=0 and non-negative
    at V=V_s the residual changes sign on that interval, so the root is
    guaranteed. A non-positive source returns the V=0 point.

    Args:
        current_fn: Device current as a function of terminal voltage
        V_s: Source voltage (V)
        R: Series resistance (Ω)
        xtol: Absolute voltage tolerance

    Returns:
        OperatingPoint of the exact balance
    """
    R = max(MIN_RESISTANCE, R)
    if V_s <= 0:
        return OperatingPoint(0.0, current_fn(0.0), 0, True)

    def residual(V):
        return current_fn(V) - (V_s - V) / R

    lo, hi = residual(0.0), residual(V_s)
    if lo >= 0:
        return OperatingPoint(0.0, current_fn(0.0), 0, True)
    if hi <= 0:
        return OperatingPoint(V_s, current_fn(V_s), 0, True)

    V, info = brentq(residual, 0.0, V_s, xtol=xtol, full_output=True)
    return OperatingPoint(V, current_fn(V), info.iterations, info.converged)

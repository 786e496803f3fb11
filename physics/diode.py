# =============================================================================
# physics/diode.py — Shockley Diode Model
# =============================================================================
# Pure, stateless I-V relation for a junction diode at a fixed reference
# temperature. The operating-point solver calls these on every iteration.
#
# References:
#   - Sze & Ng, "Physics of Semiconductor Devices", 3rd Ed., Ch. 2
# =============================================================================

import numpy as np

from utils.constants import V_T_300K, ROOM_TEMPERATURE_K, thermal_voltage
from utils.numerics import clamp

# Exponent argument window. Keeps exp() finite for any terminal voltage;
# reference outputs were produced with exactly this window.
EXPONENT_LIMIT = 40.0

DEFAULT_SATURATION_CURRENT = 1e-12   # A
DEFAULT_IDEALITY = 1.0


def _exponential(V_d: float, n: float, V_T: float) -> float:
    return float(np.exp(clamp(V_d / (n * V_T), -EXPONENT_LIMIT, EXPONENT_LIMIT)))


# =============================================================================
# I-V CHARACTERISTIC
# =============================================================================

def diode_current(V_d: float, I_s: float = DEFAULT_SATURATION_CURRENT,
                  n: float = DEFAULT_IDEALITY,
                  T: float = ROOM_TEMPERATURE_K) -> float:
    """
    Diode current from the Shockley equation.

    I = I_s · (exp(V / (n·V_T)) - 1)

    The exponent argument is clamped to [-40, 40] before evaluation.

    Args:
        V_d: Junction voltage (V), positive = forward bias
        I_s: Saturation current (A)
        n: Ideality factor
        T: Temperature in K (default 300 K)

    Returns:
        Diode current in A
    """
    V_T = V_T_300K if T == ROOM_TEMPERATURE_K else thermal_voltage(T)
    return I_s * (_exponential(V_d, n, V_T) - 1.0)


def diode_conductance(V_d: float, I_s: float = DEFAULT_SATURATION_CURRENT,
                      n: float = DEFAULT_IDEALITY,
                      T: float = ROOM_TEMPERATURE_K) -> float:
    """
    Small-signal conductance dI/dV of the diode.

    g_d = I_s / (n·V_T) · exp(V / (n·V_T))

    Uses the same clamped exponent as diode_current(), so the slope
    saturates together with the current.

    Returns:
        Conductance in S
    """
    V_T = V_T_300K if T == ROOM_TEMPERATURE_K else thermal_voltage(T)
    return I_s * _exponential(V_d, n, V_T) / (n * V_T)


# =============================================================================
# SELF-TEST
# =============================================================================

if __name__ == "__main__":
    print("Shockley diode (I_s=1e-12, n=1)")
    for V in [0.0, 0.3, 0.5, 0.6, 0.7]:
        print(f"  V={V:.2f} V  I={diode_current(V):.4e} A  g={diode_conductance(V):.4e} S")

# =============================================================================
# physics/transistors.py — BJT and MOSFET Family-Curve Models
# =============================================================================
# Output characteristics for curve tracing: collector current vs. V_ce at a
# fixed base current, and drain current vs. V_ds at a fixed gate voltage.
# Both are deliberately simple (no Early effect, no body effect); they
# only have to produce recognisable family curves.
# =============================================================================

import numpy as np

from utils.numerics import clamp

# -- BJT ----------------------------------------------------------------------
DEFAULT_BETA = 100.0
DEFAULT_KNEE_VOLTAGE = 0.02      # V, saturation-knee voltage scale V_e
KNEE_CURRENT = 1e-12             # A, leakage added below the clamp
SATURATION_HEADROOM = 1.2        # I_c ceiling as a multiple of beta·I_b

# -- MOSFET -------------------------------------------------------------------
DEFAULT_THRESHOLD = 2.5          # V
DEFAULT_TRANSCONDUCTANCE = 2e-3  # A/V²
CUTOFF_CURRENT = 1e-12           # A, floor instead of exact zero


# =============================================================================
# BJT (NPN, common emitter)
# =============================================================================

def bjt_collector_current(V_ce: float, I_b: float,
                          beta: float = DEFAULT_BETA,
                          V_e: float = DEFAULT_KNEE_VOLTAGE) -> float:
    """
    Collector current for one family curve.

    I_c = clamp(β·I_b·(1 - exp(-V_ce/V_e)) + I_knee, 0, 1.2·β·I_b)

    Args:
        V_ce: Collector-emitter voltage (V)
        I_b: Base current selecting the family curve (A)
        beta: Forward current gain
        V_e: Knee voltage scale (V)

    Returns:
        Collector current in A
    """
    I_c_sat = beta * I_b
    I_c = I_c_sat * (1.0 - float(np.exp(-V_ce / V_e))) + KNEE_CURRENT
    return clamp(I_c, 0.0, I_c_sat * SATURATION_HEADROOM)


# =============================================================================
# MOSFET (n-channel, square law)
# =============================================================================

def mosfet_region(V_ds: float, V_gs: float,
                  V_th: float = DEFAULT_THRESHOLD) -> str:
    """Return 'cutoff', 'triode' or 'saturation'."""
    if V_gs <= V_th:
        return 'cutoff'
    if V_ds < V_gs - V_th:
        return 'triode'
    return 'saturation'


def mosfet_drain_current(V_ds: float, V_gs: float,
                         V_th: float = DEFAULT_THRESHOLD,
                         k: float = DEFAULT_TRANSCONDUCTANCE) -> float:
    """
    Square-law drain current.

    cutoff:      I_d = 1e-12 A
    triode:      I_d = k·((V_gs - V_th)·V_ds - V_ds²/2)
    saturation:  I_d = 0.5·k·(V_gs - V_th)²

    Args:
        V_ds: Drain-source voltage (V)
        V_gs: Gate-source voltage selecting the family curve (V)
        V_th: Threshold voltage (V)
        k: Transconductance parameter (A/V²)

    Returns:
        Drain current in A, never negative
    """
    region = mosfet_region(V_ds, V_gs, V_th)
    if region == 'cutoff':
        return CUTOFF_CURRENT

    V_ov = V_gs - V_th
    if region == 'triode':
        I_d = k * (V_ov * V_ds - 0.5 * V_ds * V_ds)
    else:
        I_d = 0.5 * k * V_ov * V_ov
    return max(I_d, 0.0)


def mosfet_saturation_current(V_gs: float,
                              V_th: float = DEFAULT_THRESHOLD,
                              k: float = DEFAULT_TRANSCONDUCTANCE) -> float:
    """Ceiling of the family curve: 0.5·k·(V_gs - V_th)², or 0 in cutoff."""
    if V_gs <= V_th:
        return 0.0
    return 0.5 * k * (V_gs - V_th) ** 2


if __name__ == "__main__":
    print("BJT family (beta=100)")
    for I_b in [1e-6, 5e-6, 1e-5]:
        print(f"  I_b={I_b:.0e}  I_c(2V)={bjt_collector_current(2.0, I_b):.4e} A")
    print("MOSFET family (V_th=2.5, k=2e-3)")
    for V_gs in [2.5, 3.5, 4.5]:
        print(f"  V_gs={V_gs}  I_d(1V)={mosfet_drain_current(1.0, V_gs):.4e} A")

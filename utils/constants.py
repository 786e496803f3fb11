# utils/constants.py
"""
Physical Constants for the Device & Energy Simulation Core

Fundamental constants and the thermal voltage used by the device models.
All values are in SI units unless otherwise noted.

References:
    - CODATA 2018 recommended values
"""

# =============================================================================
# FUNDAMENTAL PHYSICAL CONSTANTS
# =============================================================================

# Electron charge (C)
Q = 1.602176634e-19
Q_ELECTRON = Q  # Alias for compatibility

# Boltzmann constant (J/K)
K_B = 1.380649e-23
K_BOLTZMANN = K_B  # Alias

# =============================================================================
# ROOM CONDITIONS
# =============================================================================

ROOM_TEMPERATURE_K = 300.0

# Thermal voltage at 300K (V)
V_T_300K = K_B * ROOM_TEMPERATURE_K / Q  # ≈ 25.85 mV

# =============================================================================
# TIME / ENERGY CONVERSIONS
# =============================================================================

SECONDS_PER_HOUR = 3600.0
HOURS_PER_DAY = 24.0
DAYS_PER_MONTH = 30.0


def thermal_voltage(temperature_K):
    """Calculate thermal voltage V_T = kT/q at given temperature."""
    return K_B * temperature_K / Q


def ms_to_s(milliseconds):
    """Convert milliseconds to seconds."""
    return milliseconds / 1000.0


# =============================================================================
# SELF-TEST
# =============================================================================

if __name__ == "__main__":
    print("Physical Constants Module")
    print("=" * 50)
    print(f"Electron charge q:     {Q:.6e} C")
    print(f"Boltzmann constant k:  {K_B:.6e} J/K")
    print(f"Thermal voltage @300K: {V_T_300K*1e3:.2f} mV")

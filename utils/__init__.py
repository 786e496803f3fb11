"""
Utility modules for the Device & Energy Simulation Core.
"""

from .constants import (
    Q, Q_ELECTRON,
    K_B, K_BOLTZMANN,
    V_T_300K,
    ROOM_TEMPERATURE_K,
    SECONDS_PER_HOUR, HOURS_PER_DAY, DAYS_PER_MONTH,
    thermal_voltage,
    ms_to_s,
)
from .numerics import (
    clamp,
    is_finite_number,
    all_finite,
    mapping_is_finite,
    finite_or,
    linear_interp,
)

__all__ = [
    'Q', 'Q_ELECTRON',
    'K_B', 'K_BOLTZMANN',
    'V_T_300K',
    'ROOM_TEMPERATURE_K',
    'SECONDS_PER_HOUR', 'HOURS_PER_DAY', 'DAYS_PER_MONTH',
    'thermal_voltage',
    'ms_to_s',
    'clamp',
    'is_finite_number',
    'all_finite',
    'mapping_is_finite',
    'finite_or',
    'linear_interp',
]

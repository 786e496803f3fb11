# =============================================================================
# physics/storage.py — Battery Chemistry Coefficients & Open-Circuit Curves
# =============================================================================
# Linearised open-circuit voltage vs. state of charge, plus the per-chemistry
# coefficients the storage integrator needs (internal resistance per string,
# coulombic charge efficiency). Lithium chemistries get a flatter curve
# than lead-acid.
# =============================================================================

from dataclasses import dataclass
from typing import Dict

from utils.numerics import clamp


@dataclass(frozen=True)
class Chemistry:
    """Coefficients for one battery chemistry."""
    name: str
    ocv_slack: float                  # relative OCV swing from 0 % to 100 % SOC
    internal_resistance_ohm: float    # per series string
    charge_efficiency: float          # coulombic efficiency while charging


CHEMISTRIES: Dict[str, Chemistry] = {
    'li-ion': Chemistry('li-ion', ocv_slack=0.12,
                        internal_resistance_ohm=0.015, charge_efficiency=0.96),
    'lead-acid': Chemistry('lead-acid', ocv_slack=0.25,
                           internal_resistance_ohm=0.035, charge_efficiency=0.90),
}

DEFAULT_CHEMISTRY = 'li-ion'

# OCV clamp relative to nominal voltage
OCV_MIN_FRACTION = 0.6
OCV_MAX_FRACTION = 1.05


def get_chemistry(name: str) -> Chemistry:
    """
    Look up a chemistry by tag.

    Raises:
        KeyError: If the chemistry is not known
    """
    key = name.strip().lower().replace('_', '-')
    if key in CHEMISTRIES:
        return CHEMISTRIES[key]
    available = list(CHEMISTRIES.keys())
    raise KeyError(f"Chemistry '{name}' not found. Available: {available}")


def list_chemistries() -> list:
    """Return list of available chemistry tags."""
    return list(CHEMISTRIES.keys())


def open_circuit_voltage(soc: float, V_nom: float, chemistry: Chemistry) -> float:
    """
    Linearised open-circuit voltage.

    V_oc = V_nom · (1 - s/2 + s·SOC/100), clamped to [0.6, 1.05]·V_nom

    Args:
        soc: State of charge in percent (0-100)
        V_nom: Nominal pack voltage (V)
        chemistry: Chemistry record providing the slack s

    Returns:
        Open-circuit voltage in V
    """
    s = chemistry.ocv_slack
    V = V_nom * (1.0 - s / 2.0 + s * (soc / 100.0))
    return clamp(V, V_nom * OCV_MIN_FRACTION, V_nom * OCV_MAX_FRACTION)


def internal_resistance(chemistry: Chemistry, parallel_strings: int = 1) -> float:
    """Pack internal resistance: per-string value divided by parallel strings."""
    return chemistry.internal_resistance_ohm / max(1, parallel_strings)


def pack_capacity_ah(capacity_ah: float, parallel_strings: int = 1) -> float:
    """Effective pack capacity in Ah (parallel strings add capacity)."""
    return max(0.001, capacity_ah * max(1, parallel_strings))

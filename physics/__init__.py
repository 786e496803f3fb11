"""
Physics Models for the Device & Energy Simulation Core

Pure, stateless functions used by the simulation models:
    - diode:        Shockley junction I-V
    - transistors:  BJT and MOSFET family curves
    - storage:      battery chemistry coefficients, open-circuit curve
    - loads:        appliance power draw
    - instruments:  calibration signal generators
"""

from .diode import diode_current, diode_conductance
from .transistors import (
    bjt_collector_current,
    mosfet_drain_current,
    mosfet_region,
    mosfet_saturation_current,
)
from .storage import (
    Chemistry,
    CHEMISTRIES,
    get_chemistry,
    list_chemistries,
    open_circuit_voltage,
    internal_resistance,
    pack_capacity_ah,
)
from .loads import Appliance, total_power_w, energy_totals
from .instruments import (
    multimeter_signal,
    oscilloscope_signal,
    function_generator_signal,
    meter_drift,
    apply_calibration,
    estimate_calibration,
)

__all__ = [
    'diode_current', 'diode_conductance',
    'bjt_collector_current', 'mosfet_drain_current',
    'mosfet_region', 'mosfet_saturation_current',
    'Chemistry', 'CHEMISTRIES', 'get_chemistry', 'list_chemistries',
    'open_circuit_voltage', 'internal_resistance', 'pack_capacity_ah',
    'Appliance', 'total_power_w', 'energy_totals',
    'multimeter_signal', 'oscilloscope_signal', 'function_generator_signal',
    'meter_drift', 'apply_calibration', 'estimate_calibration',
]

# simulation/integrator.py
"""
Storage State Integrator - battery / UPS state of charge.

Explicit forward-Euler integration of SOC from the instantaneous net DC
power, one step per accepted tick:

    P_dc   = P_load / η_inv                      (inverter draw)
    P_chg  = I_chg · V_bus · η_chg               (charger supply)
    P_net  = P_dc - P_chg                        (> 0: discharging)
    I      = P_net / V_bus                       (previous-tick V_bus)
    V_bus' = clamp(V_bus - I·R_int, 0.5·V_nom, 1.2·V_nom)
    I      = P_net / V_bus'
    ΔAh    = I·Δt / 3600
    SOC   += -ΔAh / C_Ah · 100,  clamped to [0, 100]
    V_bus  = V_oc(SOC)

No adaptive step sizing. At the throttled 0.1-0.12 s timestep this is
good enough for visualisation, not for battery certification work.

Usage:
    from simulation.integrator import StorageIntegrator
    from simulation.config import BatteryParams

    integ = StorageIntegrator(BatteryParams(load_w=500, charger_current=0))
    step = integ.step(0.12)
    step.soc, step.bus_voltage
"""

from dataclasses import dataclass

from physics.storage import (
    get_chemistry,
    internal_resistance,
    open_circuit_voltage,
    pack_capacity_ah,
)
from utils.constants import SECONDS_PER_HOUR
from utils.numerics import all_finite, clamp

from .config import BatteryParams

# Bus voltage window around nominal after the I·R_int correction
BUS_MIN_FRACTION = 0.5
BUS_MAX_FRACTION = 1.2
MIN_INVERTER_EFFICIENCY = 0.01


@dataclass
class StorageState:
    """Mutable SOC state, owned by one integrator."""
    soc: float           # %
    bus_voltage: float   # V


@dataclass(frozen=True)
class StorageStep:
    """Result of one integration step."""
    soc: float
    bus_voltage: float
    current: float          # A, positive = discharging
    battery_power: float    # W, positive = leaving the battery
    load_power: float       # W (AC side)
    net_power: float        # W (DC side)

    def as_extra(self) -> dict:
        return {
            'soc': self.soc,
            'bus_voltage': self.bus_voltage,
            'battery_power': self.battery_power,
            'load_power': self.load_power,
            'net_power': self.net_power,
        }


class StorageIntegrator:
    """
    Advances StorageState for one battery pack.

    The pack constants (capacity, internal resistance, chemistry curve) are
    derived from the parameter record when the integrator is built or
    reconfigured; the state survives reconfiguration and is only rewound
    by reset().
    """

    def __init__(self, params: BatteryParams):
        self.configure(params)
        self.state = self.initial_state()

    def configure(self, params: BatteryParams) -> None:
        """Adopt new pack parameters without touching the state."""
        params = params.sanitized()
        self.params = params
        self.chemistry = get_chemistry(params.chemistry)
        self.capacity_ah = pack_capacity_ah(params.capacity_ah, params.parallel_strings)
        self.internal_resistance = internal_resistance(self.chemistry, params.parallel_strings)

    @property
    def stored_energy_wh(self) -> float:
        """Approximate rated energy: V_nom · effective capacity."""
        return self.params.nominal_voltage * self.capacity_ah

    def initial_state(self) -> StorageState:
        soc = self.params.initial_soc
        return StorageState(soc=soc, bus_voltage=self.open_circuit(soc))

    def open_circuit(self, soc: float) -> float:
        return open_circuit_voltage(soc, self.params.nominal_voltage, self.chemistry)

    def reset(self) -> None:
        """Back to the initial SOC (explicit user action)."""
        self.state = self.initial_state()

    def step(self, dt_s: float, load_w: float = None) -> StorageStep:
        """
        Advance the state by dt_s seconds.

        The state is only committed when every computed quantity is finite;
        otherwise the previous state is kept and the returned step carries
        the non-finite values so the caller can substitute them.

        Args:
            dt_s: Elapsed time since the previous accepted tick (s)
            load_w: AC load for this tick (W); defaults to params.load_w

        Returns:
            StorageStep with the new SOC, bus voltage, current and powers
        """
        p = self.params
        V_nom = p.nominal_voltage
        P_out = max(0.0, p.load_w if load_w is None else load_w)

        P_dc = P_out / max(MIN_INVERTER_EFFICIENCY, p.inverter_efficiency) if P_out > 0 else 0.0
        V_dc = self.state.bus_voltage
        P_chg = max(0.0, p.charger_current) * max(0.0, V_dc) * self.chemistry.charge_efficiency
        P_net = P_dc - P_chg

        I = P_net / V_dc if V_dc > 0 else 0.0
        V_bus = clamp(V_dc - I * self.internal_resistance,
                      BUS_MIN_FRACTION * V_nom, BUS_MAX_FRACTION * V_nom)
        I = P_net / V_bus if V_bus > 0 else 0.0

        delta_ah = I * dt_s / SECONDS_PER_HOUR
        delta_soc = -delta_ah / self.capacity_ah * 100.0
        soc = clamp(self.state.soc + delta_soc, 0.0, 100.0)
        V_oc = self.open_circuit(soc)

        result = StorageStep(
            soc=soc,
            bus_voltage=V_oc,
            current=I,
            battery_power=I * V_oc,
            load_power=P_out,
            net_power=P_net,
        )
        if all_finite((soc, V_oc, I, result.battery_power)):
            self.state = StorageState(soc=soc, bus_voltage=V_oc)
        return result

    def __repr__(self) -> str:
        return (f"StorageIntegrator(soc={self.state.soc:.3f}%, "
                f"V_bus={self.state.bus_voltage:.3f}V, {self.chemistry.name})")

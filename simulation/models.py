# simulation/models.py
"""
Simulation models - one strategy per device kind.

The engine owns scheduling, sweep state and history; a model only turns
(config, drive, tick context) into (measured current, extra payload).
Steady-state models call the operating-point solver, the battery model
advances its StorageIntegrator, and the instrument and appliance models
sample their signal generators.

Usage:
    from simulation.models import create_model
    from simulation.config import SimulationConfig

    cfg = SimulationConfig().sanitized()
    model = create_model(cfg)
    current, extra = model.step(cfg, drive, ctx)
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from physics.instruments import (
    apply_calibration,
    function_generator_signal,
    meter_drift,
    multimeter_signal,
    oscilloscope_signal,
)
from physics.loads import energy_totals, total_power_w
from physics.transistors import mosfet_region

from .config import DeviceKind, SimulationConfig
from .drive import Drive
from .integrator import StorageIntegrator
from .solver import solve_bjt, solve_diode, solve_mosfet


@dataclass(frozen=True)
class TickContext:
    """Timing of the tick being computed."""
    tick: int          # accepted ticks since construction/reset, 1-based
    dt_s: float        # elapsed since the previous accepted tick (s)
    elapsed_s: float   # accumulated simulated time (s)


StepResult = Tuple[float, Dict[str, object]]


class SimulationModel:
    """
    Base strategy.

    Subclasses implement step(); the other hooks have usable defaults.
    """

    kind: DeviceKind = None

    def __init__(self, config: SimulationConfig):
        self.reset(config)

    def reset(self, config: SimulationConfig) -> None:
        """Drop internal state (explicit user reset or model swap)."""

    def configure(self, config: SimulationConfig) -> None:
        """Adopt a replaced config of the same kind; state survives."""

    def nominal_drive(self, config: SimulationConfig) -> float:
        """Excitation used in Fixed mode."""
        return config.source_voltage

    def families(self, config: SimulationConfig) -> tuple:
        """Family-curve values (base currents, gate voltages), empty if none."""
        return ()

    def step(self, config: SimulationConfig, drive: Drive, ctx: TickContext) -> StepResult:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# =============================================================================
# CURVE TRACER MODELS
# =============================================================================

class DiodeModel(SimulationModel):
    """Source -> R -> diode -> ground, solved by damped Newton."""

    kind = DeviceKind.DIODE

    def reset(self, config):
        self._last_voltage: Optional[float] = None

    def step(self, config, drive, ctx):
        p = config.params
        seed = self._last_voltage if (config.warm_start and self._last_voltage is not None) else 0.0
        op = solve_diode(drive.value, config.series_resistance,
                         p.saturation_current, p.ideality, V_guess=seed)
        self._last_voltage = op.voltage
        return op.current, {
            'junction_voltage': op.voltage,
            'iterations': op.iterations,
            'converged': op.converged,
        }


class BJTModel(SimulationModel):
    """Source -> R_c -> collector, emitter grounded; one base current per tick."""

    kind = DeviceKind.BJT

    def reset(self, config):
        self._last_voltage: Optional[float] = None

    def families(self, config):
        return tuple(config.params.base_currents)

    def step(self, config, drive, ctx):
        p = config.params
        I_b = p.base_currents[drive.family_index % len(p.base_currents)]
        seed = self._last_voltage if config.warm_start else None
        op = solve_bjt(drive.value, config.series_resistance, I_b,
                       p.beta, p.knee_voltage, V_guess=seed)
        self._last_voltage = op.voltage
        return op.current, {
            'v_ce': op.voltage,
            'base_current': I_b,
            'iterations': op.iterations,
            'converged': op.converged,
        }


class MOSFETModel(SimulationModel):
    """Source -> R_d -> drain, source grounded; one gate voltage per tick."""

    kind = DeviceKind.MOSFET

    def reset(self, config):
        self._last_voltage: Optional[float] = None

    def families(self, config):
        return tuple(config.params.gate_voltages)

    def step(self, config, drive, ctx):
        p = config.params
        V_gs = p.gate_voltages[drive.family_index % len(p.gate_voltages)]
        seed = self._last_voltage if config.warm_start else None
        op = solve_mosfet(drive.value, config.series_resistance, V_gs,
                          p.threshold_voltage, p.transconductance, V_guess=seed)
        self._last_voltage = op.voltage
        return op.current, {
            'v_ds': op.voltage,
            'gate_voltage': V_gs,
            'region': mosfet_region(op.voltage, V_gs, p.threshold_voltage),
            'iterations': op.iterations,
            'converged': op.converged,
        }


# =============================================================================
# STORAGE / LOAD MODELS
# =============================================================================

class BatteryModel(SimulationModel):
    """Battery pack + UPS; drive value is the AC load in W."""

    kind = DeviceKind.BATTERY_PACK

    def reset(self, config):
        self.integrator = StorageIntegrator(config.params)

    def configure(self, config):
        self.integrator.configure(config.params)

    def nominal_drive(self, config):
        return config.params.load_w

    def step(self, config, drive, ctx):
        result = self.integrator.step(ctx.dt_s, load_w=drive.value)
        extra = result.as_extra()
        extra['cell_voltage'] = result.bus_voltage / config.params.series_cells
        extra['ups_mode'] = config.params.ups_mode
        return result.current, extra


class ApplianceModel(SimulationModel):
    """
    Appliance set on mains; drive value is the total draw in W.

    measured current = watts / source_voltage
    """

    kind = DeviceKind.APPLIANCE_SET

    def reset(self, config):
        self.rng = np.random.default_rng(config.seed)

    def nominal_drive(self, config):
        p = config.params
        return total_power_w(p.appliances, p.efficiency_factor)

    def step(self, config, drive, ctx):
        p = config.params
        watts = drive.value
        if p.fluctuation > 0:
            watts *= 1.0 + p.fluctuation * (2.0 * float(self.rng.random()) - 1.0)
        watts = max(0.0, watts)
        V = config.source_voltage
        current = watts / V if V > 0 else 0.0
        extra = energy_totals(watts)
        extra['enabled_count'] = sum(1 for a in p.appliances if a.enabled)
        return current, extra


# =============================================================================
# INSTRUMENT CALIBRATION MODELS
# =============================================================================

class CalibrationModel(SimulationModel):
    """
    Instrument observing a target quantity (drive value = target).

    raw = signal(t) · drift(t), or the manual override when set;
    corrected = raw·gain + offset; measured current = corrected / R.
    """

    def __init__(self, config: SimulationConfig):
        self.kind = config.device_kind
        super().__init__(config)

    def reset(self, config):
        self.rng = np.random.default_rng(config.seed)

    def nominal_drive(self, config):
        return config.params.target_value

    def signal(self, t: float, target: float) -> float:
        if self.kind == DeviceKind.MULTIMETER:
            return multimeter_signal(t, target, self.rng)
        if self.kind == DeviceKind.OSCILLOSCOPE:
            return oscilloscope_signal(t, target, self.rng)
        return function_generator_signal(t, target)

    def step(self, config, drive, ctx):
        p = config.params
        t = ctx.elapsed_s
        signal = self.signal(t, drive.value)
        overridden = p.manual_override is not None
        raw = p.manual_override if overridden else signal * meter_drift(t, drive.value)
        corrected = apply_calibration(raw, p.gain, p.offset)
        return corrected / config.series_resistance, {
            'signal': signal,
            'raw': raw,
            'corrected': corrected,
            'overridden': overridden,
        }

    def __repr__(self) -> str:
        return f"CalibrationModel({self.kind.value})"


# =============================================================================
# REGISTRY
# =============================================================================

MODEL_REGISTRY = {
    DeviceKind.DIODE: DiodeModel,
    DeviceKind.BJT: BJTModel,
    DeviceKind.MOSFET: MOSFETModel,
    DeviceKind.BATTERY_PACK: BatteryModel,
    DeviceKind.APPLIANCE_SET: ApplianceModel,
    DeviceKind.MULTIMETER: CalibrationModel,
    DeviceKind.OSCILLOSCOPE: CalibrationModel,
    DeviceKind.FUNCTION_GENERATOR: CalibrationModel,
}


def create_model(config: SimulationConfig) -> SimulationModel:
    """
    Build the model for config.device_kind.

    Raises:
        KeyError: If no model is registered for the kind
    """
    cls = MODEL_REGISTRY.get(config.device_kind)
    if cls is None:
        available = [k.value for k in MODEL_REGISTRY]
        raise KeyError(f"No model for '{config.device_kind}'. Available: {available}")
    return cls(config)

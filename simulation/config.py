# simulation/config.py
"""
SimulationConfig - immutable configuration for one simulation run.

Holds everything a tick needs: which model is active, the single-loop
circuit (source voltage + series resistance), the drive mode and sweep
range, the variant-specific parameter record, and the scheduling knobs.
The UI layer owns the config and replaces it wholesale on every edit;
the engine only ever reads the sanitized copy.

Usage:
    from simulation.config import SimulationConfig, DeviceKind

    cfg = SimulationConfig()                               # diode defaults
    cfg = SimulationConfig.from_preset('ups_48v_liion')    # load preset
    cfg = cfg.with_changes(series_resistance=470.0)
    cfg.save('my_config.json')
    cfg = SimulationConfig.load('my_config.json')
"""

import json
import math
from dataclasses import dataclass, field, asdict, fields, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from physics.loads import Appliance
from physics.storage import DEFAULT_CHEMISTRY, list_chemistries
from utils.numerics import finite_or, clamp


PRESETS_DIR = Path(__file__).parent / 'presets'

# Floor for the series resistance; keeps (V_s - V)/R finite
MIN_RESISTANCE = 1e-9


# =============================================================================
# ENUMS
# =============================================================================

class DeviceKind(str, Enum):
    """Selects which model/integrator is active."""
    DIODE = 'diode'
    BJT = 'bjt'
    MOSFET = 'mosfet'
    MULTIMETER = 'multimeter'
    OSCILLOSCOPE = 'oscilloscope'
    FUNCTION_GENERATOR = 'function_generator'
    APPLIANCE_SET = 'appliance_set'
    BATTERY_PACK = 'battery_pack'

    @classmethod
    def parse(cls, value) -> 'DeviceKind':
        """Accept an enum member or a name such as 'mosfet', 'BatteryPack', 'function-generator'."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        # camelCase -> snake_case as a second guess ('BatteryPack')
        snake = ''.join('_' + c.lower() if c.isupper() else c for c in text).lstrip('_')
        for candidate in (text, snake):
            key = candidate.lower().replace('-', '_').replace(' ', '_')
            for member in cls:
                if member.value == key:
                    return member
        available = [m.value for m in cls]
        raise ValueError(f"Unknown device kind '{value}'. Available: {available}")

    @property
    def is_curve_tracer(self) -> bool:
        return self in (DeviceKind.DIODE, DeviceKind.BJT, DeviceKind.MOSFET)

    @property
    def is_instrument(self) -> bool:
        return self in (DeviceKind.MULTIMETER, DeviceKind.OSCILLOSCOPE,
                        DeviceKind.FUNCTION_GENERATOR)


class DriveMode(str, Enum):
    FIXED = 'fixed'
    SWEEP = 'sweep'

    @classmethod
    def parse(cls, value) -> 'DriveMode':
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown drive mode '{value}'. Available: {[m.value for m in cls]}")


# Minimum ms between accepted ticks, per variant
DEFAULT_TIMESTEP_MS = {
    DeviceKind.DIODE: 60.0,
    DeviceKind.BJT: 60.0,
    DeviceKind.MOSFET: 60.0,
    DeviceKind.MULTIMETER: 80.0,
    DeviceKind.OSCILLOSCOPE: 80.0,
    DeviceKind.FUNCTION_GENERATOR: 80.0,
    DeviceKind.APPLIANCE_SET: 600.0,
    DeviceKind.BATTERY_PACK: 120.0,
}

# Rolling history length, per variant
DEFAULT_HISTORY_CAPACITY = {
    DeviceKind.DIODE: 1440,
    DeviceKind.BJT: 1440,
    DeviceKind.MOSFET: 1440,
    DeviceKind.MULTIMETER: 600,
    DeviceKind.OSCILLOSCOPE: 600,
    DeviceKind.FUNCTION_GENERATOR: 600,
    DeviceKind.APPLIANCE_SET: 720,
    DeviceKind.BATTERY_PACK: 1440,
}


# =============================================================================
# SWEEP RANGE
# =============================================================================

@dataclass(frozen=True)
class SweepRange:
    """Triangular sweep from `start` to `stop` over `steps` points."""
    start: float = 0.0
    stop: float = 5.0
    steps: int = 120

    def sanitized(self) -> 'SweepRange':
        steps = finite_or(self.steps, 120.0)
        return SweepRange(
            start=finite_or(self.start, 0.0),
            stop=finite_or(self.stop, 5.0),
            steps=max(2, int(math.floor(abs(steps)))),
        )


# =============================================================================
# VARIANT PARAMETER RECORDS
# =============================================================================

@dataclass(frozen=True)
class DiodeParams:
    """Shockley parameters."""
    saturation_current: float = 1e-12   # I_s (A)
    ideality: float = 1.0               # n

    def sanitized(self) -> 'DiodeParams':
        I_s = finite_or(self.saturation_current, 1e-12)
        n = finite_or(self.ideality, 1.0)
        return DiodeParams(
            saturation_current=I_s if I_s > 0 else 1e-12,
            ideality=n if n >= 1.0 else 1.0,
        )


@dataclass(frozen=True)
class BJTParams:
    """NPN family: one curve per base current."""
    base_currents: Tuple[float, ...] = (1e-6, 5e-6, 1e-5)   # A
    beta: float = 100.0
    knee_voltage: float = 0.02                             # V_e (V)

    def sanitized(self) -> 'BJTParams':
        values = (finite_or(x, math.nan) for x in self.base_currents)
        currents = tuple(x for x in values if x > 0)
        beta = finite_or(self.beta, 100.0)
        V_e = finite_or(self.knee_voltage, 0.02)
        return BJTParams(
            base_currents=currents or BJTParams.base_currents,
            beta=beta if beta > 0 else 100.0,
            knee_voltage=V_e if V_e > 0 else 0.02,
        )


@dataclass(frozen=True)
class MOSFETParams:
    """n-channel family: one curve per gate-source voltage."""
    gate_voltages: Tuple[float, ...] = (2.5, 3.5, 4.5)   # V
    threshold_voltage: float = 2.5                      # V_th (V)
    transconductance: float = 2e-3                      # k (A/V²)

    def sanitized(self) -> 'MOSFETParams':
        values = (finite_or(x, math.nan) for x in self.gate_voltages)
        voltages = tuple(x for x in values if math.isfinite(x))
        k = finite_or(self.transconductance, 2e-3)
        return MOSFETParams(
            gate_voltages=voltages or MOSFETParams.gate_voltages,
            threshold_voltage=finite_or(self.threshold_voltage, 2.5),
            transconductance=k if k > 0 else 2e-3,
        )


@dataclass(frozen=True)
class BatteryParams:
    """Battery pack + UPS inverter/charger."""
    nominal_voltage: float = 48.0       # V
    capacity_ah: float = 100.0          # Ah per string
    series_cells: int = 16
    parallel_strings: int = 1
    chemistry: str = DEFAULT_CHEMISTRY
    charger_current: float = 10.0       # A
    inverter_efficiency: float = 0.92   # (0, 1]
    load_w: float = 300.0               # AC load (W)
    initial_soc: float = 80.0           # %
    ups_mode: str = 'offline'

    def sanitized(self) -> 'BatteryParams':
        V_nom = finite_or(self.nominal_voltage, 48.0)
        capacity = finite_or(self.capacity_ah, 100.0)
        eff = finite_or(self.inverter_efficiency, 0.92)
        chem = str(self.chemistry).strip().lower().replace('_', '-')
        return BatteryParams(
            nominal_voltage=V_nom if V_nom > 0 else 48.0,
            capacity_ah=capacity if capacity > 0 else 100.0,
            series_cells=max(1, int(finite_or(self.series_cells, 16))),
            parallel_strings=max(1, int(finite_or(self.parallel_strings, 1))),
            chemistry=chem if chem in list_chemistries() else DEFAULT_CHEMISTRY,
            charger_current=max(0.0, finite_or(self.charger_current, 0.0)),
            inverter_efficiency=min(eff, 1.0) if eff > 0 else 0.92,
            load_w=max(0.0, finite_or(self.load_w, 0.0)),
            initial_soc=clamp(finite_or(self.initial_soc, 80.0), 0.0, 100.0),
            ups_mode=self.ups_mode or 'offline',
        )


DEFAULT_APPLIANCES = (
    Appliance('Refrigerator', 150.0, 1, True),
    Appliance('LED Lighting', 10.0, 6, True),
    Appliance('Laptop', 65.0, 1, True),
    Appliance('Room Heater', 1500.0, 1, False),
)


@dataclass(frozen=True)
class ApplianceParams:
    """Appliance set with an efficiency factor and optional fluctuation."""
    appliances: Tuple[Appliance, ...] = DEFAULT_APPLIANCES
    efficiency_factor: float = 1.0     # 0.5 .. 1.0 (0.8 = 20 % savings)
    fluctuation: float = 0.0           # ± fraction of the total, 0 = steady

    def sanitized(self) -> 'ApplianceParams':
        items = tuple(
            Appliance(
                name=str(a.name),
                base_watts=finite_or(a.base_watts, 0.0),
                quantity=int(finite_or(a.quantity, 1.0)),
                enabled=bool(a.enabled),
            )
            for a in self.appliances
        )
        return ApplianceParams(
            appliances=items,
            efficiency_factor=clamp(finite_or(self.efficiency_factor, 1.0), 0.5, 1.0),
            fluctuation=clamp(finite_or(self.fluctuation, 0.0), 0.0, 0.5),
        )


@dataclass(frozen=True)
class CalibrationParams:
    """Instrument calibration: target quantity, linear correction, override."""
    target_value: float = 5.0
    gain: float = 1.0
    offset: float = 0.0
    manual_override: Optional[float] = None

    def sanitized(self) -> 'CalibrationParams':
        override = self.manual_override
        if override is not None:
            override = finite_or(override, math.nan)
            if not math.isfinite(override):
                override = None
        return CalibrationParams(
            target_value=finite_or(self.target_value, 0.0),
            gain=finite_or(self.gain, 1.0) or 1.0,
            offset=finite_or(self.offset, 0.0),
            manual_override=override,
        )


DeviceParams = Union[DiodeParams, BJTParams, MOSFETParams, BatteryParams,
                     ApplianceParams, CalibrationParams]

PARAMS_BY_KIND = {
    DeviceKind.DIODE: DiodeParams,
    DeviceKind.BJT: BJTParams,
    DeviceKind.MOSFET: MOSFETParams,
    DeviceKind.MULTIMETER: CalibrationParams,
    DeviceKind.OSCILLOSCOPE: CalibrationParams,
    DeviceKind.FUNCTION_GENERATOR: CalibrationParams,
    DeviceKind.APPLIANCE_SET: ApplianceParams,
    DeviceKind.BATTERY_PACK: BatteryParams,
}


def default_params_for(kind: DeviceKind) -> DeviceParams:
    """Default parameter record for a device kind."""
    return PARAMS_BY_KIND[DeviceKind.parse(kind)]()


def _params_from_dict(kind: DeviceKind, data: Optional[dict]) -> Optional[DeviceParams]:
    if data is None:
        return None
    cls = PARAMS_BY_KIND[kind]
    valid = {f.name for f in fields(cls)}
    kwargs = {k: v for k, v in data.items() if k in valid}
    for key in ('base_currents', 'gate_voltages'):
        if key in kwargs:
            kwargs[key] = tuple(kwargs[key])
    if 'appliances' in kwargs:
        app_fields = {f.name for f in fields(Appliance)}
        kwargs['appliances'] = tuple(
            a if isinstance(a, Appliance)
            else Appliance(**{k: v for k, v in a.items() if k in app_fields})
            for a in kwargs['appliances']
        )
    return cls(**kwargs)


# =============================================================================
# SIMULATION CONFIG
# =============================================================================

@dataclass(frozen=True)
class SimulationConfig:
    """Complete configuration of one simulation instance."""

    # -- Model selection -------------------------------------------------------
    device_kind: DeviceKind = DeviceKind.DIODE

    # -- Single-loop circuit ---------------------------------------------------
    source_voltage: float = 5.0          # V (mains voltage for appliance sets)
    series_resistance: float = 1000.0    # Ω

    # -- Drive -----------------------------------------------------------------
    mode: DriveMode = DriveMode.FIXED
    sweep: SweepRange = field(default_factory=SweepRange)

    # -- Variant parameters (None -> defaults for device_kind) -----------------
    device_params: Optional[DeviceParams] = None

    # -- Scheduling (None -> per-kind defaults) --------------------------------
    timestep_ms: Optional[float] = None
    history_capacity: Optional[int] = None

    # -- Solver / noise --------------------------------------------------------
    warm_start: bool = False
    seed: Optional[int] = None

    # -- Metadata --------------------------------------------------------------
    preset_name: str = ''
    description: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'device_kind', DeviceKind.parse(self.device_kind))
        object.__setattr__(self, 'mode', DriveMode.parse(self.mode))
        if isinstance(self.sweep, dict):
            object.__setattr__(self, 'sweep', SweepRange(**self.sweep))

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    @property
    def params(self) -> DeviceParams:
        """Parameter record for the active kind (defaults if unset or mismatched)."""
        expected = PARAMS_BY_KIND[self.device_kind]
        if isinstance(self.device_params, expected):
            return self.device_params
        return expected()

    @property
    def effective_timestep_ms(self) -> float:
        ts = finite_or(self.timestep_ms, 0.0)
        if ts > 0:
            return ts
        return DEFAULT_TIMESTEP_MS[self.device_kind]

    @property
    def effective_history_capacity(self) -> int:
        if self.history_capacity is not None:
            cap = finite_or(self.history_capacity, 0.0)
            if cap >= 1:
                return int(cap)
        return DEFAULT_HISTORY_CAPACITY[self.device_kind]

    @property
    def effective_resistance(self) -> float:
        """Series resistance with fallback and floor applied."""
        R = finite_or(self.series_resistance, 1000.0)
        return max(MIN_RESISTANCE, R)

    def sanitized(self) -> 'SimulationConfig':
        """
        Copy with every field forced into its valid domain.

        Fallbacks: non-finite source voltage -> 0 V, non-finite resistance
        -> 1 kΩ, resistance floored at 1e-9 Ω, sweep steps >= 2, and each
        parameter record replaced by its own sanitized() copy.
        """
        return replace(
            self,
            source_voltage=finite_or(self.source_voltage, 0.0),
            series_resistance=self.effective_resistance,
            sweep=self.sweep.sanitized(),
            device_params=self.params.sanitized(),
            timestep_ms=self.effective_timestep_ms,
            history_capacity=self.effective_history_capacity,
        )

    def with_changes(self, **changes) -> 'SimulationConfig':
        """dataclasses.replace() shortcut."""
        return replace(self, **changes)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Convert to plain dict."""
        d = asdict(self)
        d['device_kind'] = self.device_kind.value
        d['mode'] = self.mode.value
        return d

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def save(self, path) -> None:
        """Save configuration to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding='utf-8')

    @classmethod
    def from_dict(cls, data: dict) -> 'SimulationConfig':
        """Build from a plain dict; unknown keys are ignored so old configs still load."""
        valid_fields = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        kind = DeviceKind.parse(filtered.get('device_kind', DeviceKind.DIODE))
        filtered['device_kind'] = kind
        if isinstance(filtered.get('sweep'), dict):
            sweep_fields = {f.name for f in fields(SweepRange)}
            filtered['sweep'] = SweepRange(
                **{k: v for k, v in filtered['sweep'].items() if k in sweep_fields})
        if isinstance(filtered.get('device_params'), dict):
            filtered['device_params'] = _params_from_dict(kind, filtered['device_params'])
        return cls(**filtered)

    @classmethod
    def load(cls, path) -> 'SimulationConfig':
        """Load configuration from JSON file."""
        path = Path(path)
        data = json.loads(path.read_text(encoding='utf-8'))
        return cls.from_dict(data)

    @classmethod
    def from_preset(cls, name: str) -> 'SimulationConfig':
        """
        Load a named preset from the presets/ directory.

        Args:
            name: Preset name (without .json extension)

        Returns:
            SimulationConfig with preset values
        """
        path = PRESETS_DIR / f'{name}.json'
        if not path.exists():
            available = cls.list_presets()
            raise FileNotFoundError(
                f"Preset '{name}' not found. Available: {available}")
        return cls.load(path)

    @classmethod
    def list_presets(cls) -> list:
        """List available preset names."""
        if not PRESETS_DIR.exists():
            return []
        return sorted(p.stem for p in PRESETS_DIR.glob('*.json'))

    def __str__(self) -> str:
        name = self.preset_name or 'Custom'
        return (f"SimulationConfig({name}: "
                f"kind={self.device_kind.value}, mode={self.mode.value}, "
                f"Vs={self.source_voltage}V, R={self.series_resistance}Ω)")

# simulation/__init__.py
"""
Simulation Core for the Device & Energy Simulator

Frame-paced engine that, each accepted tick, either solves a single-loop
nonlinear operating point or integrates a storage state, then appends the
result to a bounded history:
    - SimulationConfig:  immutable run configuration + JSON presets
    - solver:            damped Newton / relaxation operating-point solver
    - integrator:        battery SOC forward-Euler integrator
    - DriveGenerator:    fixed / triangular-sweep excitation
    - FrameScheduler:    throttled, pausable frame callback
    - HistoryBuffer:     capped FIFO of SimulationSample
    - SimulationEngine:  ties the above together for one device model
"""

from .config import (
    DeviceKind,
    DriveMode,
    SweepRange,
    DiodeParams,
    BJTParams,
    MOSFETParams,
    BatteryParams,
    ApplianceParams,
    CalibrationParams,
    SimulationConfig,
    default_params_for,
)
from .solver import (
    OperatingPoint,
    solve_diode,
    solve_bjt,
    solve_mosfet,
    reference_operating_point,
)
from .integrator import StorageState, StorageStep, StorageIntegrator
from .drive import Drive, DriveGenerator
from .scheduler import FrameHost, ManualFrameHost, RealtimeFrameHost, FrameScheduler
from .history import SimulationSample, HistoryBuffer
from .models import TickContext, SimulationModel, create_model
from .engine import SimulationEngine
from .export import EXPORT_COLUMNS, history_rows, to_csv_string, write_csv, history_columns

__all__ = [
    'DeviceKind', 'DriveMode', 'SweepRange',
    'DiodeParams', 'BJTParams', 'MOSFETParams',
    'BatteryParams', 'ApplianceParams', 'CalibrationParams',
    'SimulationConfig', 'default_params_for',
    'OperatingPoint', 'solve_diode', 'solve_bjt', 'solve_mosfet',
    'reference_operating_point',
    'StorageState', 'StorageStep', 'StorageIntegrator',
    'Drive', 'DriveGenerator',
    'FrameHost', 'ManualFrameHost', 'RealtimeFrameHost', 'FrameScheduler',
    'SimulationSample', 'HistoryBuffer',
    'TickContext', 'SimulationModel', 'create_model',
    'SimulationEngine',
    'EXPORT_COLUMNS', 'history_rows', 'to_csv_string', 'write_csv', 'history_columns',
]

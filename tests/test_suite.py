"""
Comprehensive test suite for the Device & Energy Simulation Core.

Covers: device models, operating-point solver, storage integrator, drive
generator, frame scheduler, history buffer, configuration, simulation
models, engine lifecycle, export and the CLI parser.

Run with:  pytest tests/test_suite.py -v
"""

import sys
import os
import csv
import io
import json
import math
import dataclasses
from pathlib import Path

import numpy as np
import pytest

# ---------------------------------------------------------------------------
# Path setup: ensure the project root is on sys.path
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_PROJECT_ROOT))


# ============================================================================
# 1. Device Models
# ============================================================================

class TestDeviceModels:
    """Tests for physics/diode.py and physics/transistors.py."""

    def test_diode_zero_bias_zero_current(self):
        from physics.diode import diode_current
        assert diode_current(0.0) == 0.0

    def test_diode_reverse_bias_saturates(self):
        from physics.diode import diode_current
        assert diode_current(-5.0, I_s=1e-12) == pytest.approx(-1e-12, rel=1e-6)

    def test_diode_exponent_clamp(self):
        from physics.diode import diode_current
        # Both arguments are beyond 40·V_T, so both evaluate exp(40)
        assert diode_current(2.0) == diode_current(50.0)
        assert math.isfinite(diode_current(1e6))

    def test_diode_conductance_matches_finite_difference(self):
        from physics.diode import diode_current, diode_conductance
        V, h = 0.5, 1e-7
        numeric = (diode_current(V + h) - diode_current(V - h)) / (2 * h)
        assert diode_conductance(V) == pytest.approx(numeric, rel=1e-4)

    def test_thermal_voltage_300k(self):
        from utils.constants import V_T_300K, thermal_voltage
        assert V_T_300K == pytest.approx(0.025852, rel=1e-4)
        assert thermal_voltage(300.0) == pytest.approx(V_T_300K)

    def test_bjt_zero_vce_is_knee_current(self):
        from physics.transistors import bjt_collector_current, KNEE_CURRENT
        assert bjt_collector_current(0.0, 1e-5) == pytest.approx(KNEE_CURRENT)

    def test_bjt_active_region_is_beta_ib(self):
        from physics.transistors import bjt_collector_current
        assert bjt_collector_current(10.0, 1e-5, beta=100) == pytest.approx(1e-3, rel=1e-6)

    def test_bjt_never_negative_or_above_ceiling(self):
        from physics.transistors import bjt_collector_current
        for V_ce in np.linspace(-1.0, 20.0, 50):
            I_c = bjt_collector_current(V_ce, 1e-5, beta=100)
            assert 0.0 <= I_c <= 1.2 * 100 * 1e-5

    @pytest.mark.parametrize("V_ds,V_gs,expected", [
        (5.0, 2.0, 'cutoff'),
        (5.0, 2.5, 'cutoff'),
        (1.0, 4.5, 'triode'),
        (2.0, 4.5, 'saturation'),
        (3.0, 4.5, 'saturation'),
    ])
    def test_mosfet_region(self, V_ds, V_gs, expected):
        from physics.transistors import mosfet_region
        assert mosfet_region(V_ds, V_gs, V_th=2.5) == expected

    def test_mosfet_cutoff_floor(self):
        from physics.transistors import mosfet_drain_current, CUTOFF_CURRENT
        assert mosfet_drain_current(5.0, 2.0) == CUTOFF_CURRENT
        assert CUTOFF_CURRENT > 0

    def test_mosfet_triode_and_saturation_values(self):
        from physics.transistors import mosfet_drain_current
        assert mosfet_drain_current(1.0, 4.5, 2.5, 2e-3) == pytest.approx(3e-3)
        assert mosfet_drain_current(3.0, 4.5, 2.5, 2e-3) == pytest.approx(4e-3)

    def test_mosfet_continuous_at_pinchoff(self):
        from physics.transistors import mosfet_drain_current
        below = mosfet_drain_current(2.0 - 1e-9, 4.5)
        above = mosfet_drain_current(2.0 + 1e-9, 4.5)
        assert below == pytest.approx(above, rel=1e-6)

    def test_mosfet_saturation_current_ceiling(self):
        from physics.transistors import mosfet_saturation_current
        assert mosfet_saturation_current(4.5, 2.5, 2e-3) == pytest.approx(4e-3)
        assert mosfet_saturation_current(2.0, 2.5, 2e-3) == 0.0


# ============================================================================
# 2. Storage, Loads and Instruments
# ============================================================================

class TestEnergyModels:
    """Tests for physics/storage.py, physics/loads.py, physics/instruments.py."""

    def test_get_chemistry_normalises_name(self):
        from physics.storage import get_chemistry
        assert get_chemistry('Lead_Acid').name == 'lead-acid'
        assert get_chemistry(' LI-ION ').name == 'li-ion'

    def test_get_chemistry_unknown_lists_available(self):
        from physics.storage import get_chemistry
        with pytest.raises(KeyError, match='li-ion'):
            get_chemistry('nickel-iron')

    def test_ocv_midpoint_is_nominal(self):
        from physics.storage import get_chemistry, open_circuit_voltage
        for name in ('li-ion', 'lead-acid'):
            assert open_circuit_voltage(50.0, 48.0, get_chemistry(name)) == pytest.approx(48.0)

    def test_lead_acid_curve_steeper_than_lithium(self):
        from physics.storage import get_chemistry, open_circuit_voltage
        def swing(name):
            chem = get_chemistry(name)
            return open_circuit_voltage(100, 48, chem) - open_circuit_voltage(0, 48, chem)
        assert swing('lead-acid') > swing('li-ion') > 0

    def test_internal_resistance_divided_by_parallel(self):
        from physics.storage import get_chemistry, internal_resistance
        chem = get_chemistry('li-ion')
        assert internal_resistance(chem, 1) == pytest.approx(0.015)
        assert internal_resistance(chem, 3) == pytest.approx(0.005)

    def test_list_chemistries_drives_sanitizing(self):
        from physics.storage import list_chemistries
        from simulation.config import BatteryParams
        assert list_chemistries() == ['li-ion', 'lead-acid']
        for name in list_chemistries():
            assert BatteryParams(chemistry=name).sanitized().chemistry == name

    def test_total_power_skips_disabled(self):
        from physics.loads import Appliance, total_power_w
        items = [Appliance('Fridge', 150, 1), Appliance('Lamp', 10, 4),
                 Appliance('Heater', 2000, 1, enabled=False)]
        assert total_power_w(items) == pytest.approx(190.0)
        assert total_power_w(items, efficiency_factor=0.8) == pytest.approx(152.0)

    def test_energy_totals(self):
        from physics.loads import energy_totals
        totals = energy_totals(500.0)
        assert totals['kw'] == pytest.approx(0.5)
        assert totals['daily_kwh'] == pytest.approx(12.0)
        assert totals['monthly_kwh'] == pytest.approx(360.0)

    def test_multimeter_settles_to_target(self):
        from physics.instruments import multimeter_signal
        rng = np.random.default_rng(0)
        late = [multimeter_signal(60.0 + i * 0.08, 5.0, rng) for i in range(200)]
        assert np.mean(late) == pytest.approx(5.0, abs=0.02)

    def test_function_generator_is_noise_free(self):
        from physics.instruments import function_generator_signal
        t = 0.123
        assert function_generator_signal(t, 2.0) == function_generator_signal(t, 2.0)
        assert abs(function_generator_signal(t, 2.0)) <= 2.0

    def test_apply_calibration(self):
        from physics.instruments import apply_calibration
        assert apply_calibration(2.0, gain=2.0, offset=1.0) == pytest.approx(5.0)

    def test_estimate_calibration(self):
        from physics.instruments import estimate_calibration
        gain, offset = estimate_calibration([4.0] * 10, target=5.0)
        assert gain == pytest.approx(1.25)
        assert offset == pytest.approx(0.0, abs=1e-12)

    def test_estimate_calibration_needs_samples(self):
        from physics.instruments import estimate_calibration
        with pytest.raises(ValueError):
            estimate_calibration([1.0, 2.0], target=5.0)


# ============================================================================
# 3. Operating-Point Solver
# ============================================================================

class TestSolver:
    """Tests for simulation/solver.py."""

    def test_diode_reference_scenario(self):
        from simulation.solver import solve_diode
        op = solve_diode(5.0, 1000.0, I_s=1e-12, n=1.0)
        assert 0.52 <= op.voltage <= 0.6
        assert 4.4e-3 <= op.current <= 4.5e-3
        assert op.converged

    def test_diode_satisfies_loop_equation(self):
        from simulation.solver import solve_diode
        op = solve_diode(5.0, 1000.0)
        assert op.current == pytest.approx((5.0 - op.voltage) / 1000.0, rel=1e-6)

    def test_diode_matches_bracketed_reference(self):
        from physics.diode import diode_current
        from simulation.solver import solve_diode, reference_operating_point
        op = solve_diode(5.0, 1000.0)
        ref = reference_operating_point(diode_current, 5.0, 1000.0)
        assert op.voltage == pytest.approx(ref.voltage, abs=1e-8)

    def test_diode_deterministic(self):
        from simulation.solver import solve_diode
        assert solve_diode(3.3, 470.0) == solve_diode(3.3, 470.0)

    def test_diode_warm_start_needs_fewer_iterations(self):
        from simulation.solver import solve_diode
        cold = solve_diode(5.0, 1000.0)
        warm = solve_diode(5.0, 1000.0, V_guess=cold.voltage)
        assert warm.iterations < cold.iterations
        assert warm.voltage == pytest.approx(cold.voltage, abs=1e-9)

    def test_diode_zero_resistance_floored(self):
        from simulation.solver import solve_diode
        op = solve_diode(5.0, 0.0)
        assert math.isfinite(op.voltage)
        assert math.isfinite(op.current)

    def test_bjt_active_operating_point(self):
        from simulation.solver import solve_bjt
        op = solve_bjt(10.0, 1000.0, I_b=1e-5, beta=100.0)
        assert op.converged
        assert op.current == pytest.approx(1e-3, rel=1e-6)
        assert op.voltage == pytest.approx(9.0, abs=1e-6)

    def test_bjt_iteration_cap_keeps_last_iterate(self):
        from simulation.solver import solve_bjt, MAX_ITERATIONS
        # Heavy saturation: each step is clamped to -0.1 V from V_ce = 10 V
        op = solve_bjt(10.0, 1000.0, I_b=1e-4, beta=100.0)
        assert not op.converged
        assert op.iterations == MAX_ITERATIONS
        assert op.voltage == pytest.approx(10.0 - 0.1 * MAX_ITERATIONS, abs=1e-9)

    def test_mosfet_below_threshold_passes_source(self):
        from simulation.solver import solve_mosfet
        op = solve_mosfet(5.0, 1000.0, V_gs=2.0)
        assert op.voltage == pytest.approx(5.0, abs=1e-6)
        assert op.current == pytest.approx(1e-12)

    def test_reference_zero_source(self):
        from physics.diode import diode_current
        from simulation.solver import reference_operating_point
        ref = reference_operating_point(diode_current, 0.0, 1000.0)
        assert ref.voltage == 0.0
        assert ref.current == 0.0


# ============================================================================
# 4. Storage Integrator
# ============================================================================

class TestStorageIntegrator:
    """Tests for simulation/integrator.py."""

    def _discharging(self, **kw):
        from simulation.config import BatteryParams
        from simulation.integrator import StorageIntegrator
        params = dict(nominal_voltage=48.0, capacity_ah=100.0,
                      load_w=500.0, charger_current=0.0)
        params.update(kw)
        return StorageIntegrator(BatteryParams(**params))

    def test_initial_state_from_ocv(self):
        integ = self._discharging()
        assert integ.state.soc == 80.0
        assert integ.state.bus_voltage == pytest.approx(48.0 * (1 - 0.06 + 0.12 * 0.8))

    def test_one_step_charge_balance(self):
        integ = self._discharging()
        step = integ.step(0.12)
        assert step.current > 0
        assert step.soc == pytest.approx(80.0 - step.current * 0.12 / 3600.0, rel=1e-12)
        assert step.net_power == pytest.approx(500.0 / 0.92)

    def test_current_uses_corrected_bus_voltage(self):
        integ = self._discharging()
        V_prev = integ.state.bus_voltage
        step = integ.step(0.12)
        I_first = step.net_power / V_prev
        V_corr = V_prev - I_first * integ.internal_resistance
        assert step.current == pytest.approx(step.net_power / V_corr, rel=1e-12)

    def test_soc_never_below_zero(self):
        integ = self._discharging(load_w=5000.0)
        for _ in range(5):
            step = integ.step(1e7)
        assert step.soc == 0.0
        assert integ.state.soc == 0.0

    def test_soc_never_above_hundred(self):
        integ = self._discharging(load_w=0.0, charger_current=100.0)
        for _ in range(5):
            step = integ.step(1e7)
        assert step.soc == 100.0
        assert step.current < 0

    def test_non_finite_step_not_committed(self):
        integ = self._discharging()
        before = dataclasses.replace(integ.state)
        step = integ.step(float('nan'))
        assert math.isnan(step.soc)
        assert integ.state == before

    def test_reset_restores_initial_soc(self):
        integ = self._discharging()
        integ.step(3600.0)
        assert integ.state.soc < 80.0
        integ.reset()
        assert integ.state.soc == 80.0

    def test_configure_keeps_state(self):
        from simulation.config import BatteryParams
        integ = self._discharging()
        integ.step(3600.0)
        soc = integ.state.soc
        integ.configure(BatteryParams(load_w=100.0))
        assert integ.state.soc == soc
        assert integ.params.load_w == 100.0

    def test_parallel_strings_capacity(self):
        integ = self._discharging(parallel_strings=2)
        assert integ.capacity_ah == pytest.approx(200.0)
        assert integ.internal_resistance == pytest.approx(0.0075)
        assert integ.stored_energy_wh == pytest.approx(48.0 * 200.0)


# ============================================================================
# 5. Drive Generator
# ============================================================================

class TestDriveGenerator:
    """Tests for simulation/drive.py."""

    def test_fixed_value(self):
        from simulation.drive import DriveGenerator
        gen = DriveGenerator()
        drives = [gen.fixed(3.3, family_count=3) for _ in range(5)]
        assert all(d.value == 3.3 for d in drives)
        assert all(d.family_index == 0 for d in drives)

    def test_sweep_advances_every_second_tick(self):
        from simulation.config import SweepRange
        from simulation.drive import DriveGenerator
        gen = DriveGenerator()
        sweep = SweepRange(0.0, 5.0, 10)
        values = [gen.next_sweep(sweep).value for _ in range(6)]
        assert values[0] == values[1] == 0.0
        assert values[2] == values[3] == pytest.approx(5.0 / 9)
        assert values[4] == values[5] == pytest.approx(10.0 / 9)

    def test_sweep_resets_after_reset(self):
        from simulation.config import SweepRange
        from simulation.drive import DriveGenerator
        gen = DriveGenerator()
        sweep = SweepRange(0.0, 5.0, 10)
        for _ in range(7):
            gen.next_sweep(sweep)
        gen.reset()
        assert gen.index == 0 and gen.direction == 1
        assert gen.next_sweep(sweep).value == 0.0

    def test_family_index_follows_sweep_index(self):
        from simulation.config import SweepRange
        from simulation.drive import DriveGenerator
        gen = DriveGenerator()
        sweep = SweepRange(0.0, 5.0, 10)
        fam = [gen.next_sweep(sweep, family_count=3).family_index for _ in range(8)]
        assert fam == [0, 0, 1, 1, 2, 2, 0, 0]


# ============================================================================
# 6. Frame Scheduler
# ============================================================================

class TestFrameScheduler:
    """Tests for simulation/scheduler.py."""

    def _scheduler(self, timestep_ms=60.0):
        from simulation.scheduler import ManualFrameHost, FrameScheduler
        host = ManualFrameHost()
        steps = []
        sched = FrameScheduler(host, steps.append, timestep_ms)
        sched.start()
        return host, sched, steps

    def test_throttle(self):
        host, sched, steps = self._scheduler(60.0)
        host.advance(1024, frame_ms=16)
        # 16 ms frames: first frame >= 60 ms after the last accepted one is every 64 ms
        assert len(steps) == 16
        assert all(dt == pytest.approx(64.0) for dt in steps)

    def test_rearms_every_frame(self):
        host, sched, steps = self._scheduler()
        host.advance(160)
        assert host.pending == 1

    def test_pause_skips_and_resume_continues_from_now(self):
        host, sched, steps = self._scheduler(60.0)
        host.advance(128)
        assert len(steps) == 2
        sched.pause()
        host.advance(960)
        assert len(steps) == 2
        assert host.pending == 1
        sched.resume()
        host.advance(64)
        assert len(steps) == 3
        assert steps[-1] == pytest.approx(64.0)

    def test_dispose_releases_registration(self):
        host, sched, steps = self._scheduler()
        host.advance(128)
        sched.dispose()
        assert host.pending == 0
        host.advance(1000)
        assert len(steps) == 2
        assert not sched.alive

    def test_dispose_swallows_cancel_failure(self):
        from simulation.scheduler import ManualFrameHost, FrameScheduler

        class BrokenHost(ManualFrameHost):
            def cancel(self, handle):
                raise RuntimeError("host already torn down")

        sched = FrameScheduler(BrokenHost(), lambda dt: None, 60.0)
        sched.start()
        sched.dispose()
        assert not sched.alive

    def test_timestep_change_applies_next_frame(self):
        host, sched, steps = self._scheduler(60.0)
        sched.timestep_ms = 120.0
        host.advance(256)
        assert len(steps) == 2
        assert steps[0] == pytest.approx(128.0)


# ============================================================================
# 7. History Buffer
# ============================================================================

class TestHistoryBuffer:
    """Tests for simulation/history.py."""

    def _sample(self, i, kind='diode'):
        from simulation.history import SimulationSample
        return SimulationSample(index=i, drive_value=float(i),
                                measured_current=i * 1e-3, device_kind=kind,
                                extra={'step': i})

    def test_append_and_latest(self):
        from simulation.history import HistoryBuffer
        buf = HistoryBuffer(4)
        assert buf.latest() is None
        buf.append(self._sample(1))
        buf.append(self._sample(2))
        assert len(buf) == 2
        assert buf.latest().index == 2

    def test_eviction_is_fifo(self):
        from simulation.history import HistoryBuffer
        buf = HistoryBuffer(3)
        for i in range(1, 6):
            buf.append(self._sample(i))
        assert [s.index for s in buf.snapshot()] == [3, 4, 5]

    def test_latest_of_kind(self):
        from simulation.history import HistoryBuffer
        buf = HistoryBuffer(5)
        buf.append(self._sample(1, 'diode'))
        buf.append(self._sample(2, 'diode'))
        buf.append(self._sample(3, 'bjt'))
        assert buf.latest_of('diode').index == 2
        assert buf.latest_of('bjt').index == 3
        assert buf.latest_of('mosfet') is None

    def test_snapshot_unchanged_by_later_appends(self):
        from simulation.history import HistoryBuffer
        buf = HistoryBuffer(3)
        for i in range(1, 4):
            buf.append(self._sample(i))
        snap = buf.snapshot()
        buf.append(self._sample(4))
        assert [s.index for s in snap] == [1, 2, 3]

    def test_non_increasing_index_rejected(self):
        from simulation.history import HistoryBuffer
        buf = HistoryBuffer(3)
        buf.append(self._sample(5))
        with pytest.raises(ValueError):
            buf.append(self._sample(5))

    def test_samples_are_immutable(self):
        sample = self._sample(1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample.measured_current = 0.0
        with pytest.raises(TypeError):
            sample.extra['step'] = 99

    def test_resize_keeps_newest(self):
        from simulation.history import HistoryBuffer
        buf = HistoryBuffer(5)
        for i in range(1, 6):
            buf.append(self._sample(i))
        buf.resize(2)
        assert [s.index for s in buf.snapshot()] == [4, 5]
        assert buf.capacity == 2

    def test_invalid_capacity(self):
        from simulation.history import HistoryBuffer
        with pytest.raises(ValueError):
            HistoryBuffer(0)


# ============================================================================
# 8. SimulationConfig
# ============================================================================

class TestSimulationConfig:
    """Tests for simulation/config.py."""

    def test_default_construction(self):
        from simulation.config import SimulationConfig, DeviceKind, DiodeParams, DriveMode
        cfg = SimulationConfig()
        assert cfg.device_kind == DeviceKind.DIODE
        assert cfg.mode == DriveMode.FIXED
        assert cfg.params == DiodeParams()

    def test_strings_coerced_to_enums(self):
        from simulation.config import SimulationConfig, DeviceKind, DriveMode
        cfg = SimulationConfig(device_kind='mosfet', mode='sweep')
        assert cfg.device_kind is DeviceKind.MOSFET
        assert cfg.mode is DriveMode.SWEEP

    @pytest.mark.parametrize("text,expected", [
        ('BJT', 'bjt'),
        ('BatteryPack', 'battery_pack'),
        ('function-generator', 'function_generator'),
        ('appliance set', 'appliance_set'),
    ])
    def test_device_kind_parse(self, text, expected):
        from simulation.config import DeviceKind
        assert DeviceKind.parse(text).value == expected

    def test_device_kind_groups(self):
        from simulation.config import DeviceKind
        tracers = {k.value for k in DeviceKind if k.is_curve_tracer}
        instruments = {k.value for k in DeviceKind if k.is_instrument}
        assert tracers == {'diode', 'bjt', 'mosfet'}
        assert instruments == {'multimeter', 'oscilloscope', 'function_generator'}

    def test_device_kind_parse_unknown(self):
        from simulation.config import DeviceKind
        with pytest.raises(ValueError, match='Available'):
            DeviceKind.parse('thyristor')

    def test_sanitize_resistance(self):
        from simulation.config import SimulationConfig, MIN_RESISTANCE
        assert SimulationConfig(series_resistance=float('nan')).sanitized().series_resistance == 1000.0
        assert SimulationConfig(series_resistance=0.0).sanitized().series_resistance == MIN_RESISTANCE
        assert SimulationConfig(series_resistance=-5.0).sanitized().series_resistance == MIN_RESISTANCE

    def test_sanitize_source_voltage(self):
        from simulation.config import SimulationConfig
        assert SimulationConfig(source_voltage=float('inf')).sanitized().source_voltage == 0.0

    @pytest.mark.parametrize("steps,expected", [(1, 2), (float('nan'), 120), (-7.9, 7), (50, 50)])
    def test_sanitize_sweep_steps(self, steps, expected):
        from simulation.config import SweepRange
        assert SweepRange(0.0, 5.0, steps).sanitized().steps == expected

    def test_sanitize_diode_params(self):
        from simulation.config import DiodeParams
        p = DiodeParams(saturation_current=-1.0, ideality=0.5).sanitized()
        assert p == DiodeParams(1e-12, 1.0)

    def test_sanitize_empty_family_lists(self):
        from simulation.config import BJTParams, MOSFETParams
        assert BJTParams(base_currents=()).sanitized().base_currents == (1e-6, 5e-6, 1e-5)
        assert BJTParams(base_currents=(float('nan'), 2e-6)).sanitized().base_currents == (2e-6,)
        assert MOSFETParams(gate_voltages=()).sanitized().gate_voltages == (2.5, 3.5, 4.5)

    def test_sanitize_battery_params(self):
        from simulation.config import BatteryParams
        p = BatteryParams(chemistry='NiMH', inverter_efficiency=0.0,
                          initial_soc=140.0, parallel_strings=0).sanitized()
        assert p.chemistry == 'li-ion'
        assert p.inverter_efficiency == 0.92
        assert p.initial_soc == 100.0
        assert p.parallel_strings == 1
        assert BatteryParams(inverter_efficiency=1.5).sanitized().inverter_efficiency == 1.0
        assert BatteryParams(chemistry='Lead_Acid').sanitized().chemistry == 'lead-acid'

    def test_mismatched_params_fall_back_to_kind_defaults(self):
        from simulation.config import SimulationConfig, DiodeParams, MOSFETParams
        cfg = SimulationConfig(device_kind='mosfet', device_params=DiodeParams())
        assert cfg.params == MOSFETParams()

    @pytest.mark.parametrize("kind,timestep,capacity", [
        ('diode', 60.0, 1440),
        ('bjt', 60.0, 1440),
        ('mosfet', 60.0, 1440),
        ('battery_pack', 120.0, 1440),
        ('multimeter', 80.0, 600),
        ('appliance_set', 600.0, 720),
    ])
    def test_per_kind_defaults(self, kind, timestep, capacity):
        from simulation.config import SimulationConfig
        cfg = SimulationConfig(device_kind=kind).sanitized()
        assert cfg.timestep_ms == timestep
        assert cfg.history_capacity == capacity

    def test_explicit_timestep_kept(self):
        from simulation.config import SimulationConfig
        assert SimulationConfig(timestep_ms=100.0).sanitized().timestep_ms == 100.0
        assert SimulationConfig(timestep_ms=-1.0).sanitized().timestep_ms == 60.0

    def test_to_json_uses_plain_values(self):
        from simulation.config import SimulationConfig
        data = json.loads(SimulationConfig(device_kind='bjt').to_json())
        assert data['device_kind'] == 'bjt'
        assert data['mode'] == 'fixed'

    def test_save_load_roundtrip(self, tmp_path):
        from simulation.config import SimulationConfig, BatteryParams
        cfg = SimulationConfig(device_kind='battery_pack',
                               device_params=BatteryParams(load_w=750.0, chemistry='lead-acid'),
                               seed=3)
        path = tmp_path / 'cfg.json'
        cfg.save(path)
        loaded = SimulationConfig.load(path)
        assert loaded == cfg

    def test_appliance_roundtrip(self, tmp_path):
        from simulation.config import SimulationConfig, ApplianceParams
        from physics.loads import Appliance
        params = ApplianceParams(appliances=(Appliance('Kettle', 2000.0, 1, False),))
        cfg = SimulationConfig(device_kind='appliance_set', device_params=params)
        path = tmp_path / 'appl.json'
        cfg.save(path)
        assert SimulationConfig.load(path).params.appliances[0] == Appliance('Kettle', 2000.0, 1, False)

    def test_from_dict_ignores_unknown_keys(self):
        from simulation.config import SimulationConfig
        cfg = SimulationConfig.from_dict({'device_kind': 'diode', 'legacy_field': 1})
        assert cfg.device_kind.value == 'diode'

    def test_unknown_preset(self):
        from simulation.config import SimulationConfig
        with pytest.raises(FileNotFoundError, match='Available'):
            SimulationConfig.from_preset('does_not_exist')

    def test_list_presets(self):
        from simulation.config import SimulationConfig
        presets = SimulationConfig.list_presets()
        assert 'silicon_diode' in presets
        assert 'ups_48v_liion' in presets

    def test_with_changes_leaves_original(self):
        from simulation.config import SimulationConfig
        cfg = SimulationConfig()
        cfg2 = cfg.with_changes(series_resistance=470.0)
        assert cfg2.series_resistance == 470.0
        assert cfg.series_resistance == 1000.0


# ============================================================================
# 9. Simulation Models
# ============================================================================

class TestModels:
    """Tests for simulation/models.py."""

    def _ctx(self, tick=1, dt_s=0.06):
        from simulation.models import TickContext
        return TickContext(tick=tick, dt_s=dt_s, elapsed_s=tick * dt_s)

    def test_create_model_for_every_kind(self):
        from simulation.config import SimulationConfig, DeviceKind
        from simulation.models import create_model
        for kind in DeviceKind:
            model = create_model(SimulationConfig(device_kind=kind).sanitized())
            assert model.kind == kind

    def test_bjt_uses_family_from_drive(self):
        from simulation.config import SimulationConfig
        from simulation.drive import Drive
        from simulation.models import create_model
        cfg = SimulationConfig(device_kind='bjt', source_voltage=10.0).sanitized()
        model = create_model(cfg)
        current, extra = model.step(cfg, Drive(10.0, 0, 2), self._ctx())
        assert extra['base_current'] == 1e-5
        assert current == pytest.approx(1e-3, rel=1e-6)

    def test_mosfet_extra_fields(self):
        from simulation.config import SimulationConfig
        from simulation.drive import Drive
        from simulation.models import create_model
        cfg = SimulationConfig(device_kind='mosfet').sanitized()
        model = create_model(cfg)
        current, extra = model.step(cfg, Drive(5.0, 0, 0), self._ctx())
        assert extra['gate_voltage'] == 2.5
        assert extra['region'] == 'cutoff'
        assert 'v_ds' in extra

    def test_battery_cell_voltage_from_series_count(self):
        from simulation.config import SimulationConfig
        from simulation.drive import Drive
        from simulation.models import create_model
        cfg = SimulationConfig.from_preset('ups_12v_lead_acid').sanitized()
        model = create_model(cfg)
        _, extra = model.step(cfg, Drive(60.0), self._ctx(dt_s=0.12))
        assert cfg.params.series_cells == 6
        assert extra['cell_voltage'] == pytest.approx(extra['bus_voltage'] / 6)
        assert 1.8 < extra['cell_voltage'] < 2.2

    def test_appliance_current_from_mains(self):
        from simulation.config import SimulationConfig
        from simulation.drive import Drive
        from simulation.models import create_model
        cfg = SimulationConfig(device_kind='appliance_set', source_voltage=230.0).sanitized()
        model = create_model(cfg)
        watts = model.nominal_drive(cfg)
        assert watts == pytest.approx(150.0 + 60.0 + 65.0)
        current, extra = model.step(cfg, Drive(watts), self._ctx())
        assert current == pytest.approx(watts / 230.0)
        assert extra['daily_kwh'] == pytest.approx(watts / 1000.0 * 24)

    def test_appliance_fluctuation_bounded(self):
        from simulation.config import SimulationConfig, ApplianceParams
        from simulation.drive import Drive
        from simulation.models import create_model
        cfg = SimulationConfig(device_kind='appliance_set', source_voltage=230.0, seed=5,
                               device_params=ApplianceParams(fluctuation=0.1)).sanitized()
        model = create_model(cfg)
        readings = [model.step(cfg, Drive(1000.0), self._ctx())[1]['watts'] for _ in range(100)]
        assert min(readings) >= 900.0
        assert max(readings) <= 1100.0
        assert len(set(readings)) > 1

    def test_calibration_manual_override(self):
        from simulation.config import SimulationConfig, CalibrationParams
        from simulation.drive import Drive
        from simulation.models import create_model
        params = CalibrationParams(target_value=5.0, gain=2.0, offset=1.0, manual_override=2.0)
        cfg = SimulationConfig(device_kind='multimeter', device_params=params).sanitized()
        model = create_model(cfg)
        current, extra = model.step(cfg, Drive(5.0), self._ctx())
        assert extra['raw'] == 2.0
        assert extra['corrected'] == pytest.approx(5.0)
        assert extra['overridden'] is True
        assert current == pytest.approx(5.0 / 1000.0)

    def test_function_generator_raw_is_signal_times_drift(self):
        from physics.instruments import function_generator_signal, meter_drift
        from simulation.config import SimulationConfig
        from simulation.drive import Drive
        from simulation.models import create_model
        cfg = SimulationConfig(device_kind='function_generator').sanitized()
        model = create_model(cfg)
        ctx = self._ctx(tick=3, dt_s=0.08)
        _, extra = model.step(cfg, Drive(5.0), ctx)
        t = ctx.elapsed_s
        assert extra['raw'] == pytest.approx(function_generator_signal(t, 5.0) * meter_drift(t, 5.0))


# ============================================================================
# 10. Simulation Engine
# ============================================================================

class TestSimulationEngine:
    """Tests for simulation/engine.py."""

    def test_run_ticks_indices(self):
        from simulation import SimulationEngine
        with SimulationEngine() as eng:
            samples = eng.run_ticks(3)
        assert [s.index for s in samples] == [1, 2, 3]
        assert samples[0].device_kind == 'diode'
        assert 'junction_voltage' in samples[0].extra

    def test_host_driven_ticks(self):
        from simulation import SimulationEngine, ManualFrameHost
        host = ManualFrameHost()
        eng = SimulationEngine(host=host)
        host.advance(1024)
        assert len(eng.snapshot()) == 16
        eng.dispose()

    def test_not_running_does_not_tick(self):
        from simulation import SimulationEngine, ManualFrameHost
        host = ManualFrameHost()
        eng = SimulationEngine(host=host, running=False)
        host.advance(1000)
        assert eng.latest() is None
        eng.dispose()

    def test_non_finite_result_substituted(self, caplog):
        from simulation import SimulationEngine
        eng = SimulationEngine()
        good = eng.tick()
        eng.model.step = lambda cfg, drive, ctx: (float('nan'), {'junction_voltage': float('inf')})
        with caplog.at_level('WARNING'):
            bad = eng.tick()
        assert bad.index == good.index + 1
        assert bad.measured_current == good.measured_current
        assert bad.extra['junction_voltage'] == good.extra['junction_voltage']
        assert eng.substitutions == 1
        assert 'Non-finite' in caplog.text

    def test_step_exception_substituted(self):
        from simulation import SimulationEngine
        eng = SimulationEngine()
        good = eng.tick()

        def explode(cfg, drive, ctx):
            raise ZeroDivisionError("degenerate")

        eng.model.step = explode
        bad = eng.tick()
        assert bad.measured_current == good.measured_current
        eng.tick()
        assert eng.substitutions == 2

    def test_first_tick_non_finite_gives_zero(self):
        from simulation import SimulationEngine
        eng = SimulationEngine()
        eng.model.step = lambda cfg, drive, ctx: (float('nan'), {'a': 1.0, 'b': float('nan')})
        sample = eng.tick()
        assert sample.measured_current == 0.0
        assert dict(sample.extra) == {'a': 1.0}

    def test_substitution_skips_samples_of_other_kind(self):
        from simulation import SimulationEngine, CalibrationParams
        eng = SimulationEngine()
        eng.run_ticks(3)
        overflow = CalibrationParams(gain=10.0, manual_override=1e308)
        eng.update_config(eng.config.with_changes(device_kind='oscilloscope',
                                                  device_params=overflow))
        sample = eng.tick()
        assert eng.substitutions == 1
        assert sample.device_kind == 'oscilloscope'
        assert sample.measured_current == 0.0
        assert sample.drive_value == 5.0
        assert 'junction_voltage' not in sample.extra
        assert 'corrected' not in sample.extra
        assert sample.extra['raw'] == 1e308

    def test_degenerate_calibration_reuses_last_good_reading(self):
        from simulation import SimulationEngine, SimulationConfig, CalibrationParams
        cfg = SimulationConfig(device_kind='oscilloscope', seed=3,
                               device_params=CalibrationParams(target_value=2.0))
        eng = SimulationEngine(cfg)
        good = eng.run_ticks(3)[-1]
        eng.update_config(eng.config.with_changes(
            device_params=CalibrationParams(target_value=2.0, gain=10.0, manual_override=1e308)))
        bad = eng.tick()
        assert eng.substitutions == 1
        assert bad.index == good.index + 1
        assert bad.measured_current == good.measured_current
        assert dict(bad.extra) == dict(good.extra)

    def test_update_config_takes_effect_next_tick(self):
        from simulation import SimulationEngine, SimulationConfig
        eng = SimulationEngine(SimulationConfig())
        before = eng.tick().measured_current
        eng.update_config(eng.config.with_changes(series_resistance=2000.0))
        after = eng.tick().measured_current
        assert after == pytest.approx(before / 2, rel=0.02)

    def test_sweep_reset_only_on_range_change(self):
        from simulation import SimulationEngine, SimulationConfig
        eng = SimulationEngine(SimulationConfig(mode='sweep'))
        eng.run_ticks(10)
        eng.update_config(eng.config.with_changes(series_resistance=500.0))
        assert eng.drive.index == 5
        eng.update_config(eng.config.with_changes(
            sweep=dataclasses.replace(eng.config.sweep, stop=3.0)))
        assert eng.drive.index == 0

    def test_kind_swap_keeps_history(self):
        from simulation import SimulationEngine
        from simulation.models import BJTModel
        eng = SimulationEngine()
        eng.run_ticks(3)
        eng.update_config(eng.config.with_changes(device_kind='bjt'))
        assert isinstance(eng.model, BJTModel)
        sample = eng.tick()
        assert sample.device_kind == 'bjt'
        assert sample.index == 4
        assert len(eng.snapshot()) == 4

    def test_families(self):
        from simulation import SimulationEngine, SimulationConfig
        assert SimulationEngine().families() == ()
        eng = SimulationEngine(SimulationConfig(device_kind='bjt'))
        assert eng.families() == (1e-6, 5e-6, 1e-5)

    def test_reset_restores_battery_soc(self):
        from simulation import SimulationEngine, SimulationConfig, BatteryParams
        cfg = SimulationConfig(device_kind='battery_pack',
                               device_params=BatteryParams(load_w=5000.0, charger_current=0.0))
        eng = SimulationEngine(cfg)
        eng.run_ticks(5, dt_ms=600_000)
        assert eng.latest().extra['soc'] < 80.0
        eng.reset()
        assert eng.model.integrator.state.soc == 80.0
        assert len(eng.snapshot()) == 5
        eng.reset(clear_history=True)
        assert eng.latest() is None
        assert eng.tick().index == 6

    def test_apply_preset(self):
        from simulation import SimulationEngine
        eng = SimulationEngine()
        cfg = eng.apply_preset('ups_48v_liion')
        assert cfg.device_kind.value == 'battery_pack'
        assert eng.tick().extra['ups_mode'] == 'online'

    def test_auto_calibrate(self):
        from simulation import SimulationEngine, SimulationConfig, CalibrationParams
        cfg = SimulationConfig(device_kind='multimeter', seed=1,
                               device_params=CalibrationParams(target_value=5.0, gain=1.0))
        eng = SimulationEngine(cfg)
        eng.run_ticks(30)
        gain, offset = eng.auto_calibrate()
        assert eng.config.params.gain == gain
        assert eng.config.params.offset == offset
        assert offset == pytest.approx(0.0, abs=1e-9)
        assert gain > 1.0  # readings still settling below the target

    def test_auto_calibrate_rejects_non_instruments(self):
        from simulation import SimulationEngine
        eng = SimulationEngine()
        eng.run_ticks(10)
        with pytest.raises(ValueError):
            eng.auto_calibrate()

    def test_seeded_runs_reproduce(self):
        from simulation import SimulationEngine, SimulationConfig
        cfg = SimulationConfig(device_kind='oscilloscope', seed=11)
        a = [s.measured_current for s in SimulationEngine(cfg).run_ticks(20)]
        b = [s.measured_current for s in SimulationEngine(cfg).run_ticks(20)]
        assert a == b

    def test_dispose(self):
        from simulation import SimulationEngine, ManualFrameHost
        host = ManualFrameHost()
        eng = SimulationEngine(host=host)
        host.advance(200)
        n = len(eng.snapshot())
        eng.dispose()
        assert host.pending == 0
        host.advance(1000)
        assert len(eng.snapshot()) == n
        with pytest.raises(RuntimeError):
            eng.tick()
        with pytest.raises(RuntimeError):
            eng.resume()
        eng.dispose()  # idempotent


# ============================================================================
# 11. Export
# ============================================================================

class TestExport:
    """Tests for simulation/export.py."""

    def _samples(self):
        from simulation import SimulationEngine
        return SimulationEngine().run_ticks(4)

    def test_column_order(self):
        from simulation.export import EXPORT_COLUMNS
        assert EXPORT_COLUMNS == ('index', 'drive_value', 'measured_current',
                                  'device_kind', 'extra')

    def test_csv_string(self):
        from simulation.export import to_csv_string, EXPORT_COLUMNS
        samples = self._samples()
        rows = list(csv.reader(io.StringIO(to_csv_string(samples))))
        assert tuple(rows[0]) == EXPORT_COLUMNS
        assert len(rows) == 5
        assert int(rows[1][0]) == 1
        assert rows[1][3] == 'diode'
        assert json.loads(rows[1][4]) == dict(samples[0].extra)

    def test_write_csv(self, tmp_path):
        from simulation.export import write_csv
        path = tmp_path / 'out' / 'history.csv'
        assert write_csv(path, self._samples()) == 4
        with open(path, newline='') as f:
            assert len(list(csv.reader(f))) == 5

    def test_history_columns(self):
        from simulation.export import history_columns
        cols = history_columns(self._samples())
        np.testing.assert_array_equal(cols['index'], [1, 2, 3, 4])
        assert cols['measured_current'].shape == (4,)


# ============================================================================
# 12. CLI
# ============================================================================

class TestCLI:
    """Tests for cli.py."""

    def test_parser_run(self):
        from cli import build_parser
        args = build_parser().parse_args(['run', '--kind', 'bjt', '--ticks', '5'])
        assert args.kind == 'bjt'
        assert args.ticks == 5

    def test_solve_prints_reference(self, capsys):
        from cli import build_parser, cmd_solve
        cmd_solve(build_parser().parse_args(['solve', 'diode']))
        out = capsys.readouterr().out
        assert 'Iterative' in out
        assert 'Reference' in out

    def test_solve_only_accepts_curve_tracers(self):
        from cli import build_parser
        parser = build_parser()
        assert parser.parse_args(['solve', 'mosfet']).device == 'mosfet'
        with pytest.raises(SystemExit):
            parser.parse_args(['solve', 'battery_pack'])

    def test_run_writes_csv(self, tmp_path, capsys):
        from cli import build_parser, cmd_run
        path = tmp_path / 'run.csv'
        cmd_run(build_parser().parse_args(
            ['run', '--preset', 'bjt_family', '--ticks', '12', '--csv', str(path)]))
        assert path.exists()
        assert 'Wrote 12 rows' in capsys.readouterr().out


# ============================================================================
# 13. Numeric Helpers
# ============================================================================

class TestNumerics:
    """Tests for utils/numerics.py."""

    def test_clamp(self):
        from utils.numerics import clamp
        assert clamp(5.0, 0.0, 1.0) == 1.0
        assert clamp(-5.0, 0.0, 1.0) == 0.0
        assert math.isnan(clamp(float('nan'), 0.0, 1.0))

    def test_finite_or(self):
        from utils.numerics import finite_or
        assert finite_or('2.5', 0.0) == 2.5
        assert finite_or(None, 7.0) == 7.0
        assert finite_or(float('-inf'), 7.0) == 7.0

    def test_mapping_is_finite_ignores_text(self):
        from utils.numerics import mapping_is_finite
        assert mapping_is_finite({'region': 'triode', 'v': 1.0, 'ok': True})
        assert not mapping_is_finite({'v': float('nan')})

    def test_linear_interp_endpoints(self):
        from utils.numerics import linear_interp
        assert linear_interp(0, 10, 0.0, 5.0) == 0.0
        assert linear_interp(9, 10, 0.0, 5.0) == 5.0

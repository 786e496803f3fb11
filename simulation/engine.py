# simulation/engine.py
"""
SimulationEngine - one live simulation instance.

Owns everything that used to be ambient per-panel state: the frame
scheduler registration, tick counter, elapsed time, sweep generator,
active model (with any storage state) and the bounded history. Config is
replaced wholesale via update_config() and takes effect on the next tick.

Lifecycle:
    engine = SimulationEngine(config, host)   # armed on host
    ... host fires frames, engine ticks ...
    engine.pause() / engine.resume()
    engine.dispose()                          # deregisters, no more ticks

Usage (headless):
    from simulation import SimulationEngine, SimulationConfig

    with SimulationEngine(SimulationConfig.from_preset('silicon_diode')) as eng:
        eng.run_ticks(50)
        eng.latest().measured_current
"""

import logging
import math
from dataclasses import replace
from typing import List, Optional, Tuple

from physics.instruments import estimate_calibration
from utils.constants import ms_to_s
from utils.numerics import finite_or, is_finite_number, mapping_is_finite

from .config import DriveMode, SimulationConfig
from .drive import DriveGenerator
from .history import HistoryBuffer, SimulationSample
from .models import TickContext, create_model
from .scheduler import FrameHost, FrameScheduler, ManualFrameHost

logger = logging.getLogger(__name__)

CALIBRATION_WINDOW = 120


class SimulationEngine:
    """
    Generic frame-paced engine parameterized by a SimulationModel.

    Args:
        config: Initial configuration (sanitized on entry); defaults to a diode
        host: Frame source; a ManualFrameHost is created when omitted
        running: Start unpaused
        autostart: Arm the scheduler immediately
    """

    def __init__(self, config: Optional[SimulationConfig] = None,
                 host: Optional[FrameHost] = None,
                 running: bool = True, autostart: bool = True):
        self._config = (config or SimulationConfig()).sanitized()
        self.model = create_model(self._config)
        self.drive = DriveGenerator()
        self.history = HistoryBuffer(self._config.history_capacity)
        self.substitutions = 0
        self._next_index = 1
        self._tick_count = 0
        self._elapsed_s = 0.0
        self._disposed = False

        self.host = host if host is not None else ManualFrameHost()
        self.scheduler = FrameScheduler(self.host, self.tick,
                                        self._config.timestep_ms, running=running)
        if autostart:
            self.scheduler.start()

        logger.info("Engine created: %s", self._config)

    # -------------------------------------------------------------------------
    # State accessors
    # -------------------------------------------------------------------------

    @property
    def config(self) -> SimulationConfig:
        """Sanitized config currently in effect."""
        return self._config

    @property
    def running(self) -> bool:
        return self.scheduler.running

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def elapsed_s(self) -> float:
        return self._elapsed_s

    def snapshot(self) -> Tuple[SimulationSample, ...]:
        """Ordered history copy, oldest first. Stays valid after later ticks."""
        return self.history.snapshot()

    def latest(self) -> Optional[SimulationSample]:
        return self.history.latest()

    def families(self) -> tuple:
        """Family-curve values of the active model (empty for non-transistors)."""
        return self.model.families(self._config)

    def _check_alive(self):
        if self._disposed:
            raise RuntimeError("SimulationEngine has been disposed")

    # -------------------------------------------------------------------------
    # Ticking
    # -------------------------------------------------------------------------

    def tick(self, dt_ms: Optional[float] = None) -> SimulationSample:
        """
        Compute and record one sample.

        The scheduler calls this with the elapsed ms since the previous
        accepted tick; direct callers may omit dt_ms to use the timestep.
        Never raises for numeric trouble: a failed or non-finite step is
        replaced by the values of the last good sample
        of the active device kind.

        Returns:
            The appended SimulationSample
        """
        self._check_alive()
        cfg = self._config
        if dt_ms is None:
            dt_ms = cfg.timestep_ms
        dt_s = ms_to_s(dt_ms)
        self._tick_count += 1
        self._elapsed_s += dt_s

        family_count = len(self.model.families(cfg)) or 1
        if cfg.mode == DriveMode.SWEEP:
            drive = self.drive.next_sweep(cfg.sweep, family_count)
        else:
            drive = self.drive.fixed(self.model.nominal_drive(cfg), family_count)

        ctx = TickContext(tick=self._tick_count, dt_s=dt_s, elapsed_s=self._elapsed_s)
        try:
            current, extra = self.model.step(cfg, drive, ctx)
        except (ArithmeticError, ValueError) as e:
            logger.warning("%s step failed on tick %d: %s",
                           cfg.device_kind.value, self._tick_count, e)
            current, extra = math.nan, {}

        value = drive.value
        if not (is_finite_number(value) and is_finite_number(current)
                and mapping_is_finite(extra)):
            value, current, extra = self._substitute(value, current, extra)

        sample = SimulationSample(
            index=self._next_index,
            drive_value=float(value),
            measured_current=float(current),
            device_kind=cfg.device_kind.value,
            extra=extra,
        )
        self._next_index += 1
        self.history.append(sample)
        return sample

    def _substitute(self, value, current, extra):
        # Only a sample of the active kind may stand in for this one
        self.substitutions += 1
        last = self.history.latest_of(self._config.device_kind.value)
        logger.warning("Non-finite result on tick %d (drive=%r, current=%r); "
                       "reusing sample %s", self._tick_count, value, current,
                       last.index if last else 'none')
        if last is not None:
            return last.drive_value, last.measured_current, dict(last.extra)
        clean = {k: v for k, v in extra.items() if mapping_is_finite({k: v})}
        return finite_or(value, 0.0), 0.0, clean

    def run_ticks(self, n: int, dt_ms: Optional[float] = None) -> List[SimulationSample]:
        """Run n ticks back to back, bypassing the scheduler (headless use)."""
        return [self.tick(dt_ms) for _ in range(n)]

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def pause(self) -> None:
        self._check_alive()
        self.scheduler.pause()

    def resume(self) -> None:
        self._check_alive()
        self.scheduler.resume()

    def update_config(self, config: SimulationConfig) -> None:
        """
        Replace the configuration; effective on the next tick.

        A different device kind swaps the model (fresh state). A changed
        sweep range resets the sweep index and direction. Storage state and
        history survive everything else.
        """
        self._check_alive()
        new = config.sanitized()
        old = self._config

        if new.device_kind != old.device_kind:
            self.model = create_model(new)
            self.drive.reset()
            logger.info("Model swapped: %s -> %s",
                        old.device_kind.value, new.device_kind.value)
        else:
            self.model.configure(new)
            if new.sweep != old.sweep:
                self.drive.reset()
                logger.debug("Sweep range changed, sweep state reset")

        self.scheduler.timestep_ms = new.timestep_ms
        self.history.resize(new.history_capacity)
        self._config = new
        logger.info("Configuration replaced: %s", new)

    def reset(self, clear_history: bool = False) -> None:
        """
        Explicit user reset: model state back to initial (battery SOC to
        its initial value), sweep back to the start, time back to zero.
        Sample indices keep increasing even when the history is cleared.
        """
        self._check_alive()
        self.model.reset(self._config)
        self.drive.reset()
        self._tick_count = 0
        self._elapsed_s = 0.0
        if clear_history:
            self.history.clear()
        logger.info("Engine reset (clear_history=%s)", clear_history)

    def apply_preset(self, name: str) -> SimulationConfig:
        """
        Load a preset, make it the active config and reset state.

        Raises:
            FileNotFoundError: If the preset does not exist
        """
        self._check_alive()
        config = SimulationConfig.from_preset(name)
        self.update_config(config)
        self.reset()
        return self._config

    def auto_calibrate(self, window: int = CALIBRATION_WINDOW) -> Tuple[float, float]:
        """
        Fit gain/offset so the recent raw readings map onto the target value,
        and apply them.

        Returns:
            (gain, offset) now in effect

        Raises:
            ValueError: If the active model is not an instrument, or too few
                        instrument samples are recorded
        """
        self._check_alive()
        cfg = self._config
        if not cfg.device_kind.is_instrument:
            raise ValueError(f"Auto-calibration needs an instrument, not '{cfg.device_kind.value}'")
        recent = [s for s in self.history.snapshot()[-window:]
                  if s.device_kind == cfg.device_kind.value and 'raw' in s.extra]
        gain, offset = estimate_calibration((s.extra['raw'] for s in recent),
                                            cfg.params.target_value)
        params = replace(cfg.params, gain=gain, offset=offset)
        self.update_config(cfg.with_changes(device_params=params))
        logger.info("Auto-calibration: gain=%.6f offset=%.6f", gain, offset)
        return gain, offset

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    def dispose(self) -> None:
        """Deregister from the host. History stays readable; further control calls raise."""
        if self._disposed:
            return
        self.scheduler.dispose()
        self._disposed = True
        logger.info("Engine disposed after %d ticks", self._tick_count)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    def __repr__(self) -> str:
        state = 'disposed' if self._disposed else ('running' if self.running else 'paused')
        return (f"SimulationEngine({self._config.device_kind.value}, {state}, "
                f"samples={len(self.history)})")

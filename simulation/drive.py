# simulation/drive.py
"""
Drive generator - the commanded excitation for each tick.

Fixed mode returns the model's nominal excitation every tick. Sweep mode
walks a triangular (ping-pong) index across `steps` points between
`start` and `stop`, advancing one step every SWEEP_THROTTLE ticks and
reversing at either end.

The generator also owns family-curve selection for the transistor
models: the active curve is the sweep index modulo the number of curves,
so the solver never has to look at tick counts.

Usage:
    from simulation.drive import DriveGenerator
    from simulation.config import SweepRange

    gen = DriveGenerator()
    drive = gen.next_sweep(SweepRange(0.0, 5.0, 10), family_count=3)
    drive.value, drive.family_index
"""

from dataclasses import dataclass

from utils.numerics import linear_interp

from .config import SweepRange

# Advance the sweep index once every N ticks
SWEEP_THROTTLE = 2


@dataclass(frozen=True)
class Drive:
    """Excitation applied on one tick."""
    value: float
    sweep_index: int = 0
    family_index: int = 0


class DriveGenerator:
    """Sweep index/direction state for one engine instance."""

    def __init__(self, throttle: int = SWEEP_THROTTLE):
        self.throttle = max(1, int(throttle))
        self.reset()

    def reset(self) -> None:
        """Back to index 0, moving up."""
        self.index = 0
        self.direction = 1
        self.ticks = 0

    def fixed(self, value: float, family_count: int = 1) -> Drive:
        """Constant excitation. Family index stays on the first curve."""
        return Drive(value=float(value), sweep_index=self.index,
                     family_index=self.index % max(1, family_count))

    def next_sweep(self, sweep: SweepRange, family_count: int = 1) -> Drive:
        """
        Produce this tick's sweep value, then advance the throttled index.

        Args:
            sweep: Sanitized sweep range (steps >= 2)
            family_count: Number of family curves to cycle through

        Returns:
            Drive for this tick
        """
        steps = max(2, sweep.steps)
        idx = self.index % steps
        value = linear_interp(idx, steps, sweep.start, sweep.stop)
        drive = Drive(value=value, sweep_index=idx,
                      family_index=idx % max(1, family_count))

        self.ticks += 1
        if self.ticks % self.throttle == 0:
            self.index += self.direction
            if self.index >= steps - 1 or self.index <= 0:
                self.direction = -self.direction
        return drive

    def __repr__(self) -> str:
        return (f"DriveGenerator(index={self.index}, direction={self.direction}, "
                f"ticks={self.ticks})")

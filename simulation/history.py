# simulation/history.py
"""
Bounded history buffer of simulation samples.

A FIFO ring (collections.deque with maxlen) holding the most recent
samples. Samples are frozen; a snapshot is a tuple, so consumers can keep
it after later appends without seeing it change.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


@dataclass(frozen=True)
class SimulationSample:
    """One accepted tick."""
    index: int
    drive_value: float
    measured_current: float
    device_kind: str
    extra: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self):
        # Read-only view over a private copy
        object.__setattr__(self, 'extra', MappingProxyType(dict(self.extra)))

    def to_dict(self) -> dict:
        return {
            'index': self.index,
            'drive_value': self.drive_value,
            'measured_current': self.measured_current,
            'device_kind': self.device_kind,
            'extra': dict(self.extra),
            'timestamp': self.timestamp,
        }


class HistoryBuffer:
    """
    Append-only buffer with a hard capacity.

    Invariants: len <= capacity, indices strictly increasing, insertion
    order is chronological order. The oldest sample is evicted on overflow.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._samples = deque(maxlen=int(capacity))

    @property
    def capacity(self) -> int:
        return self._samples.maxlen

    def append(self, sample: SimulationSample) -> None:
        """Append a sample, evicting the oldest when full."""
        last = self.latest()
        if last is not None and sample.index <= last.index:
            raise ValueError(
                f"Sample index {sample.index} does not follow {last.index}")
        self._samples.append(sample)

    def snapshot(self) -> Tuple[SimulationSample, ...]:
        """Ordered copy, oldest first."""
        return tuple(self._samples)

    def latest(self) -> Optional[SimulationSample]:
        return self._samples[-1] if self._samples else None

    def latest_of(self, device_kind: str) -> Optional[SimulationSample]:
        """Newest sample recorded for device_kind, or None."""
        for sample in reversed(self._samples):
            if sample.device_kind == device_kind:
                return sample
        return None

    def oldest(self) -> Optional[SimulationSample]:
        return self._samples[0] if self._samples else None

    def clear(self) -> None:
        self._samples.clear()

    def resize(self, capacity: int) -> None:
        """Change capacity, keeping the newest samples."""
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if capacity != self.capacity:
            self._samples = deque(self._samples, maxlen=int(capacity))

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self):
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"HistoryBuffer(len={len(self)}, capacity={self.capacity})"

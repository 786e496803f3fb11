# simulation/scheduler.py
"""
Frame-paced scheduler.

A host (browser-style animation loop, wall clock, or a test harness)
repeatedly invokes a frame callback with a millisecond timestamp. The
scheduler re-arms itself on every frame and only forwards a step when at
least `timestep_ms` has passed since the last accepted one. While paused
it keeps re-arming and keeps moving its reference time, so resuming
continues from "now" instead of replaying the paused interval.

Single-threaded and cooperative: a host fires one callback at a time and
a tick never blocks.
"""

import itertools
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

FrameCallback = Callable[[float], None]

DEFAULT_FRAME_MS = 16.0


# =============================================================================
# HOSTS
# =============================================================================

class FrameHost:
    """Interface of a frame source: one-shot callback registrations."""

    def now(self) -> float:
        """Current host time in ms."""
        raise NotImplementedError

    def request(self, callback: FrameCallback) -> int:
        """Register callback for the next frame, return a handle."""
        raise NotImplementedError

    def cancel(self, handle: int) -> None:
        """Drop a pending registration."""
        raise NotImplementedError


class ManualFrameHost(FrameHost):
    """
    Deterministic host driven by explicit calls.

    Time only moves when advance() or frame() is called, which makes tick
    timing exact in tests and headless runs.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)
        self._pending: Dict[int, FrameCallback] = {}
        self._ids = itertools.count(1)

    def now(self) -> float:
        return self._now

    def request(self, callback: FrameCallback) -> int:
        handle = next(self._ids)
        self._pending[handle] = callback
        return handle

    def cancel(self, handle: int) -> None:
        if handle not in self._pending:
            raise KeyError(f"No pending frame request {handle}")
        del self._pending[handle]

    @property
    def pending(self) -> int:
        return len(self._pending)

    def frame(self, at_ms: Optional[float] = None) -> int:
        """
        Fire one frame at at_ms (or the current time).

        Callbacks registered during this frame run on the next one.

        Returns:
            Number of callbacks invoked
        """
        if at_ms is not None:
            self._now = float(at_ms)
        due, self._pending = self._pending, {}
        for callback in due.values():
            callback(self._now)
        return len(due)

    def advance(self, ms: float, frame_ms: float = DEFAULT_FRAME_MS) -> int:
        """Move time forward by ms, firing a frame every frame_ms."""
        target = self._now + ms
        frames = 0
        while self._now + frame_ms <= target + 1e-9:
            self.frame(self._now + frame_ms)
            frames += 1
        self._now = target
        return frames


class RealtimeFrameHost(FrameHost):
    """Wall-clock host: fires frames at roughly 1/frame_ms Hz until stopped."""

    def __init__(self, frame_ms: float = DEFAULT_FRAME_MS):
        self.frame_ms = frame_ms
        self._pending: Dict[int, FrameCallback] = {}
        self._ids = itertools.count(1)
        self._origin = time.monotonic()

    def now(self) -> float:
        return (time.monotonic() - self._origin) * 1000.0

    def request(self, callback: FrameCallback) -> int:
        handle = next(self._ids)
        self._pending[handle] = callback
        return handle

    def cancel(self, handle: int) -> None:
        if handle not in self._pending:
            raise KeyError(f"No pending frame request {handle}")
        del self._pending[handle]

    def run(self, duration_s: float) -> int:
        """
        Block for duration_s seconds, firing frames.

        Returns early once nothing is registered.

        Returns:
            Number of frames fired
        """
        deadline = self.now() + duration_s * 1000.0
        frames = 0
        while self._pending and self.now() < deadline:
            time.sleep(self.frame_ms / 1000.0)
            due, self._pending = self._pending, {}
            ts = self.now()
            for callback in due.values():
                callback(ts)
            frames += 1
        return frames


# =============================================================================
# SCHEDULER
# =============================================================================

class FrameScheduler:
    """
    Throttled, pausable step driver on top of a FrameHost.

    Args:
        host: Frame source
        step: Called with the elapsed ms since the last accepted step
        timestep_ms: Minimum interval between accepted steps
        running: Start unpaused
    """

    def __init__(self, host: FrameHost, step: Callable[[float], None],
                 timestep_ms: float, running: bool = True):
        self.host = host
        self.step = step
        self.timestep_ms = timestep_ms
        self.running = running
        self.accepted = 0
        self._alive = False
        self._handle: Optional[int] = None
        self._last = host.now()

    @property
    def alive(self) -> bool:
        return self._alive

    def start(self) -> None:
        """Arm the first frame."""
        if self._alive:
            return
        self._alive = True
        self._last = self.host.now()
        self._handle = self.host.request(self._on_frame)

    def pause(self) -> None:
        self.running = False

    def resume(self) -> None:
        self.running = True

    def _on_frame(self, ts: float) -> None:
        if not self._alive:
            return
        self._handle = self.host.request(self._on_frame)
        if not self.running:
            self._last = ts
            return
        dt = ts - self._last
        if dt < self.timestep_ms:
            return
        self._last = ts
        self.accepted += 1
        self.step(dt)

    def dispose(self) -> None:
        """Stop and release the pending registration (best effort)."""
        self._alive = False
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            self.host.cancel(handle)
        except Exception as e:
            logger.debug("Frame cancel failed for handle %s: %s", handle, e)

    def __repr__(self) -> str:
        state = 'running' if self.running else 'paused'
        return (f"FrameScheduler({state}, timestep={self.timestep_ms}ms, "
                f"accepted={self.accepted})")

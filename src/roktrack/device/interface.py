"""Device interface - Protocol the pilot drives. Implementations: Roktrack, MockDevice."""

from __future__ import annotations

from enum import Enum
from typing import Protocol, Sequence, runtime_checkable


class Motion(Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    LEFT = "left"
    RIGHT = "right"


class DeviceCommand(Enum):
    """Management commands accepted by the device watchdog."""

    STOP = "stop"


@runtime_checkable
class Chassis(Protocol):
    """Drive, work motor, sensors, and speech as seen by handlers.

    Timed motions never block: `ms` > 0 sets a deadline the watchdog enforces,
    `ms` == 0 keeps moving until the next motion or pause.
    """

    target_time_ms: int

    def stop(self) -> None:
        """Drive and work motors off."""
        ...

    def pause(self) -> None:
        """Drive motors off; work motor untouched."""
        ...

    def forward(self, ms: int = 0) -> None: ...

    def backward(self, ms: int = 0) -> None: ...

    def left(self, ms: int = 0) -> None: ...

    def right(self, ms: int = 0) -> None: ...

    def run_sequence(self, steps: Sequence[tuple[Motion, int]]) -> None:
        """Queue chained timed motions; each starts when the previous expires."""
        ...

    def in_sequence(self) -> bool:
        """True while queued motions remain."""
        ...

    def work_on(self) -> None:
        """Engage the blade."""
        ...

    def adjust_power(self, left: float, right: float) -> None:
        """Trim drive motor duty by a delta, clamped to [0.4, 1.0]."""
        ...

    @property
    def powers(self) -> tuple[float, float]: ...

    def is_bumped(self) -> bool: ...

    def measure_temp(self) -> float: ...

    def speak(self, name: str, level: str = "INFO") -> bool: ...

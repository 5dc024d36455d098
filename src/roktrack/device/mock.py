"""Mock device for dev/testing without hardware."""

from __future__ import annotations

import logging
from typing import Any, Callable, Sequence

from roktrack.device.interface import Motion
from roktrack.device.roktrack import next_power
from roktrack.utils.clock import now_ms

logger = logging.getLogger(__name__)


class MockDevice:
    """Deterministic stand-in for Roktrack. Records every call; sensors are plain attributes."""

    def __init__(
        self,
        *,
        power: float = 1.0,
        turn_adj: float = 1.0,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.spoken: list[str] = []
        self.bumped = False
        self.temp = 40.0
        self.turn_adj = turn_adj
        self.left_power = power
        self.right_power = power
        self.motion: Motion | None = None
        self.work_running = False
        self.target_time_ms = 0
        # Clock time the running multi-step sequence finishes, 0 when none
        self._sequence_end = 0
        self._clock = clock or now_ms

    # --- motion -------------------------------------------------------------

    def _start(self, motion: Motion, ms: int) -> None:
        self.motion = motion
        if ms > 0:
            self.target_time_ms = self._clock() + int(ms * self.turn_adj)

    def run_sequence(self, steps: Sequence[tuple[Motion, int]]) -> None:
        self.calls.append(("sequence", [(m.value, ms) for m, ms in steps]))
        if not steps:
            return
        if len(steps) > 1:
            self._sequence_end = self._clock() + sum(int(ms * self.turn_adj) for _, ms in steps)
        else:
            self._sequence_end = 0
        self._start(*steps[0])

    def _move(self, motion: Motion, ms: int) -> None:
        self.calls.append((motion.value, ms))
        self._sequence_end = 0
        self._start(motion, ms)

    def forward(self, ms: int = 0) -> None:
        self._move(Motion.FORWARD, ms)

    def backward(self, ms: int = 0) -> None:
        self._move(Motion.BACKWARD, ms)

    def left(self, ms: int = 0) -> None:
        self._move(Motion.LEFT, ms)

    def right(self, ms: int = 0) -> None:
        self._move(Motion.RIGHT, ms)

    def in_sequence(self) -> bool:
        return self._clock() < self._sequence_end

    def pause(self) -> None:
        self.calls.append(("pause",))
        self._sequence_end = 0
        self.motion = None

    def stop(self) -> None:
        self.calls.append(("stop",))
        self._sequence_end = 0
        self.motion = None
        self.work_running = False

    def work_on(self) -> None:
        if not self.work_running:
            self.calls.append(("work_on",))
        self.work_running = True

    def adjust_power(self, left: float, right: float) -> None:
        self.calls.append(("adjust_power", round(left, 6), round(right, 6)))
        self.left_power = next_power(self.left_power, left)
        self.right_power = next_power(self.right_power, right)

    @property
    def powers(self) -> tuple[float, float]:
        return self.left_power, self.right_power

    @property
    def moving(self) -> bool:
        return self.motion is not None

    # --- sensors ------------------------------------------------------------

    def is_bumped(self) -> bool:
        return self.bumped

    def measure_temp(self) -> float:
        return self.temp

    def speak(self, name: str, level: str = "INFO") -> bool:
        logger.info("Speak (mock): %s", name)
        self.spoken.append(name)
        return True

    # --- test helpers -------------------------------------------------------

    def names(self) -> list[str]:
        """Call names in order, e.g. ['pause', 'left']."""
        return [c[0] for c in self.calls]

    def clear(self) -> None:
        self.calls.clear()
        self.spoken.clear()

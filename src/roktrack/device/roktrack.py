"""Roktrack hardware device: motors, bumper, temperature, speech, and the motion watchdog."""

from __future__ import annotations

import logging
import queue
import threading
from collections import deque
from pathlib import Path
from typing import Any, Callable, Sequence

from roktrack.config import RoktrackConfig
from roktrack.device.interface import DeviceCommand, Motion
from roktrack.device.motor import Bumper, DriveMotor, WorkMotor, load_gpio
from roktrack.device.speaker import Speaker
from roktrack.errors import DeviceError
from roktrack.utils.clock import now_ms

logger = logging.getLogger(__name__)

TEMPERATURE_FILE = "/sys/class/thermal/thermal_zone0/temp"
MIN_POWER = 0.4
MAX_POWER = 1.0
WATCHDOG_INTERVAL_S = 0.01


def next_power(current: float, delta: float) -> float:
    """Apply a trim step. A step that would leave the open range (0.4, 1.0) is ignored."""
    new = current + delta
    return new if MIN_POWER < new < MAX_POWER else current


class Roktrack:
    """Aggregates the hardware. One lock guards motors, bumper, motion queue and deadline.

    Motions are non-blocking; `service()` (run by the watchdog thread) pauses
    the drive when a timed motion expires or the bumper is pressed.
    """

    def __init__(
        self,
        left: DriveMotor,
        right: DriveMotor,
        work: WorkMotor,
        bumper: Bumper,
        speaker: Speaker,
        *,
        turn_adj: float = 1.0,
        temp_file: str | Path = TEMPERATURE_FILE,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.left_motor = left
        self.right_motor = right
        self.work_motor = work
        self.bumper = bumper
        self.speaker = speaker
        self.turn_adj = turn_adj
        self._temp_file = Path(temp_file)
        self._clock = clock
        self._lock = threading.Lock()
        self._queue: deque[tuple[Motion, int]] = deque()
        self._current: Motion | None = None
        self._timed = False
        # Set by a multi-step sequence until its last step expires or the drive halts
        self._sequence = False
        self._last_temp = 0.0
        # Deadline of the latest timed motion, kept after expiry for blur checks
        self.target_time_ms = 0

    @classmethod
    def from_config(cls, conf: RoktrackConfig, gpio: Any = None, **kwargs: Any) -> "Roktrack":
        gpio = gpio if gpio is not None else load_gpio()
        pin = conf.pin
        return cls(
            left=DriveMotor(pin.left_pin1, pin.left_pin2, conf.pwm.pwm_power_left, gpio),
            right=DriveMotor(pin.right_pin1, pin.right_pin2, conf.pwm.pwm_power_right, gpio),
            work=WorkMotor(pin.work1_pin, pin.work_ctrl_positive, gpio),
            bumper=Bumper(pin.bumper_pin, gpio),
            speaker=Speaker(lang=conf.system.lang, threshold=conf.system.log_speaker_level),
            turn_adj=conf.drive.turn_adj,
            **kwargs,
        )

    # --- motion -------------------------------------------------------------

    def _apply(self, motion: Motion) -> None:
        if motion is Motion.FORWARD:
            self.left_motor.cw()
            self.right_motor.cw()
        elif motion is Motion.BACKWARD:
            self.left_motor.ccw()
            self.right_motor.ccw()
        elif motion is Motion.LEFT:
            self.left_motor.ccw()
            self.right_motor.cw()
        else:
            self.left_motor.cw()
            self.right_motor.ccw()

    def _start(self, motion: Motion, ms: int, now: int) -> None:
        """Caller holds the lock."""
        self._apply(motion)
        self._current = motion
        self._timed = ms > 0
        if self._timed:
            self.target_time_ms = now + int(ms * self.turn_adj)

    def _halt_drive(self) -> None:
        """Caller holds the lock."""
        self._queue.clear()
        self._sequence = False
        self._current = None
        self._timed = False
        self.left_motor.stop()
        self.right_motor.stop()

    def run_sequence(self, steps: Sequence[tuple[Motion, int]]) -> None:
        if not steps:
            return
        with self._lock:
            self._queue.clear()
            self._queue.extend(steps[1:])
            self._sequence = len(steps) > 1
            motion, ms = steps[0]
            self._start(motion, ms, self._clock())
        logger.debug("Motion %s %dms (+%d queued)", motion.value, ms, len(steps) - 1)

    def forward(self, ms: int = 0) -> None:
        self.run_sequence([(Motion.FORWARD, ms)])

    def backward(self, ms: int = 0) -> None:
        self.run_sequence([(Motion.BACKWARD, ms)])

    def left(self, ms: int = 0) -> None:
        self.run_sequence([(Motion.LEFT, ms)])

    def right(self, ms: int = 0) -> None:
        self.run_sequence([(Motion.RIGHT, ms)])

    def in_sequence(self) -> bool:
        """True from the start of a multi-step sequence until its last step ends."""
        with self._lock:
            return self._sequence

    def pause(self) -> None:
        with self._lock:
            self._halt_drive()

    def stop(self) -> None:
        with self._lock:
            self._halt_drive()
            self.work_motor.stop()

    def work_on(self) -> None:
        with self._lock:
            if not self.work_motor.running:
                self.work_motor.cw()

    def adjust_power(self, left: float, right: float) -> None:
        with self._lock:
            self.left_motor.power = next_power(self.left_motor.power, left)
            self.right_motor.power = next_power(self.right_motor.power, right)

    @property
    def powers(self) -> tuple[float, float]:
        return self.left_motor.power, self.right_motor.power

    # --- sensors ------------------------------------------------------------

    def is_bumped(self) -> bool:
        with self._lock:
            return self.bumper.is_active()

    def measure_temp(self) -> float:
        """SoC temperature in degrees C. The sysfs file holds milli-degrees."""
        try:
            self._last_temp = int(self._temp_file.read_text().strip()) / 1000
        except (OSError, ValueError) as e:
            logger.warning("Temperature read failed (%s), keeping %.1f", e, self._last_temp)
        return self._last_temp

    def speak(self, name: str, level: str = "INFO") -> bool:
        return self.speaker.speak(name, level)

    # --- watchdog -----------------------------------------------------------

    def service(self, now: int | None = None) -> None:
        """One watchdog step: expire timed motions, chain queued ones, honour the bumper.

        Backing away is allowed while the bumper is still pressed.
        """
        now = self._clock() if now is None else now
        with self._lock:
            if self._current is not None and self._current is not Motion.BACKWARD and self.bumper.is_active():
                logger.info("Bumper pressed during %s, pausing", self._current.value)
                self._halt_drive()
                return
            if self._timed and now >= self.target_time_ms:
                if self._queue:
                    motion, ms = self._queue.popleft()
                    self._start(motion, ms, now)
                else:
                    self._halt_drive()

    def watchdog(self, commands: "queue.Queue[DeviceCommand]", stop_event: threading.Event) -> None:
        """Device thread body. Polls every ~10 ms until stop_event is set."""
        logger.debug("Device watchdog started")
        while not stop_event.is_set():
            try:
                cmd = commands.get_nowait()
            except queue.Empty:
                cmd = None
            try:
                if cmd is DeviceCommand.STOP:
                    self.stop()
                self.service()
            except DeviceError as e:
                logger.warning("Watchdog device error: %s", e)
            stop_event.wait(WATCHDOG_INTERVAL_S)
        try:
            self.stop()
        except DeviceError as e:
            logger.error("Final stop failed: %s", e)
        logger.debug("Device watchdog exit")

"""GPIO motors and bumper switch. RPi.GPIO is imported lazily so the package loads off-board."""

from __future__ import annotations

import logging
from typing import Any

from roktrack.errors import DeviceError

logger = logging.getLogger(__name__)

PWM_FREQUENCY_HZ = 100


def load_gpio() -> Any:
    """Import and initialise RPi.GPIO in BCM numbering."""
    try:
        import RPi.GPIO as GPIO
    except (ImportError, RuntimeError) as e:
        raise DeviceError(f"RPi.GPIO unavailable: {e}") from e
    GPIO.setmode(GPIO.BCM)
    GPIO.setwarnings(False)
    return GPIO


class DriveMotor:
    """Track motor on an H-bridge: one pin held low, the other PWM-driven at `power` duty."""

    def __init__(self, pin1: int, pin2: int, power: float, gpio: Any) -> None:
        self.pin1 = pin1
        self.pin2 = pin2
        self.power = power
        self._gpio = gpio
        self._pwm: dict[int, Any] = {}
        self._active: int | None = None
        try:
            gpio.setup([pin1, pin2], gpio.OUT, initial=gpio.LOW)
        except RuntimeError as e:
            raise DeviceError(f"GPIO setup failed for pins {pin1}/{pin2}: {e}") from e

    def _clear_pwm(self) -> None:
        if self._active is not None:
            self._pwm[self._active].stop()
            self._active = None

    def _drive(self, low_pin: int, pwm_pin: int) -> None:
        try:
            self._clear_pwm()
            self._gpio.output(low_pin, self._gpio.LOW)
            pwm = self._pwm.get(pwm_pin)
            if pwm is None:
                pwm = self._gpio.PWM(pwm_pin, PWM_FREQUENCY_HZ)
                self._pwm[pwm_pin] = pwm
            pwm.start(self.power * 100)
            self._active = pwm_pin
        except RuntimeError as e:
            raise DeviceError(f"Motor {self.pin1}/{self.pin2} drive failed: {e}") from e

    def cw(self) -> None:
        self._drive(self.pin1, self.pin2)

    def ccw(self) -> None:
        self._drive(self.pin2, self.pin1)

    def stop(self) -> None:
        try:
            self._clear_pwm()
            self._gpio.output([self.pin1, self.pin2], self._gpio.LOW)
        except RuntimeError as e:
            raise DeviceError(f"Motor {self.pin1}/{self.pin2} stop failed: {e}") from e

    @property
    def running(self) -> bool:
        return self._active is not None


class WorkMotor:
    """Blade motor behind a relay. No speed control, no reverse."""

    def __init__(self, pin: int, positive_relay: bool, gpio: Any) -> None:
        self.pin = pin
        self.positive_relay = positive_relay
        self._gpio = gpio
        self.running = False
        try:
            gpio.setup(pin, gpio.OUT, initial=self._level(False))
        except RuntimeError as e:
            raise DeviceError(f"GPIO setup failed for work pin {pin}: {e}") from e

    def _level(self, energise: bool) -> Any:
        high = energise == self.positive_relay
        return self._gpio.HIGH if high else self._gpio.LOW

    def cw(self) -> None:
        try:
            self._gpio.output(self.pin, self._level(True))
        except RuntimeError as e:
            raise DeviceError(f"Work motor start failed: {e}") from e
        self.running = True

    def ccw(self) -> None:
        raise DeviceError("Work motor is relay driven and cannot reverse")

    def stop(self) -> None:
        try:
            self._gpio.output(self.pin, self._level(False))
        except RuntimeError as e:
            raise DeviceError(f"Work motor stop failed: {e}") from e
        self.running = False


class Bumper:
    """Front bump switch on a pulled-up input. Pressed reads low."""

    def __init__(self, pin: int, gpio: Any) -> None:
        self.pin = pin
        self._gpio = gpio
        try:
            gpio.setup(pin, gpio.IN, pull_up_down=gpio.PUD_UP)
        except RuntimeError as e:
            raise DeviceError(f"GPIO setup failed for bumper pin {pin}: {e}") from e

    def is_active(self) -> bool:
        try:
            return self._gpio.input(self.pin) == self._gpio.LOW
        except RuntimeError as e:
            raise DeviceError(f"Bumper read failed: {e}") from e

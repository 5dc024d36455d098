"""Shared fixtures: mock device, config bundle, queues, fake GPIO, fake notifier, manual clock."""

from __future__ import annotations

import dataclasses
import queue

import pytest

from roktrack.config import DEFAULT_CONFIG, RoktrackProperty, parse_config
from roktrack.device.mock import MockDevice
from roktrack.pilot.state import PilotState
from roktrack.utils.paths import create_app_dirs
from roktrack.vision.types import Detection, RoktrackClass


class ManualClock:
    """Injected clock in epoch ms; tests move it by hand."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str | None]] = []

    def notify(self, message, image_path=None) -> bool:
        self.sent.append((message, image_path))
        return True

    def notify_async(self, message, image_path=None) -> None:
        self.notify(message, image_path)


class FakePWM:
    def __init__(self, pin: int, freq: int) -> None:
        self.pin = pin
        self.freq = freq
        self.duty: float | None = None

    def start(self, duty: float) -> None:
        self.duty = duty

    def stop(self) -> None:
        self.duty = None


class FakeGPIO:
    """Just enough of RPi.GPIO for the motor classes."""

    BCM = "BCM"
    OUT = "OUT"
    IN = "IN"
    HIGH = 1
    LOW = 0
    PUD_UP = "PUD_UP"

    def __init__(self) -> None:
        self.levels: dict[int, int] = {}
        self.inputs: dict[int, int] = {}
        self.pwms: dict[int, FakePWM] = {}

    def setup(self, pins, mode, initial=None, pull_up_down=None) -> None:
        for pin in pins if isinstance(pins, list) else [pins]:
            if mode == self.OUT:
                self.levels[pin] = initial if initial is not None else self.LOW
            else:
                self.inputs.setdefault(pin, self.HIGH)

    def output(self, pins, level) -> None:
        for pin in pins if isinstance(pins, list) else [pins]:
            self.levels[pin] = level

    def input(self, pin) -> int:
        return self.inputs[pin]

    def PWM(self, pin: int, freq: int) -> FakePWM:
        pwm = FakePWM(pin, freq)
        self.pwms[pin] = pwm
        return pwm

    def duty(self, pin: int) -> float | None:
        pwm = self.pwms.get(pin)
        return pwm.duty if pwm else None


def det(x1, y1, x2, y2, cls=RoktrackClass.PYLON, prob=0.9, ids=()) -> Detection:
    d = Detection.from_xyxy(x1, y1, x2, y2, int(cls), prob)
    return dataclasses.replace(d, ids=tuple(ids)) if ids else d


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def device(clock):
    return MockDevice(clock=clock)


@pytest.fixture
def vision_tx():
    return queue.Queue()


@pytest.fixture
def state():
    return PilotState(identifier=42)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def gpio():
    return FakeGPIO()


@pytest.fixture
def paths(tmp_path):
    return create_app_dirs(tmp_path, tmp_path / "run")


@pytest.fixture
def property(paths):
    """Default config with OCR off so Fill tests drive straight away."""
    conf = parse_config(DEFAULT_CONFIG)
    conf = dataclasses.replace(conf, vision=dataclasses.replace(conf.vision, ocr=False))
    return RoktrackProperty(paths=paths, conf=conf)


@pytest.fixture
def ocr_property(paths):
    return RoktrackProperty(paths=paths, conf=parse_config(DEFAULT_CONFIG))


def drain(q: queue.Queue) -> list:
    items = []
    while True:
        try:
            items.append(q.get_nowait())
        except queue.Empty:
            return items

"""Device layer - motors, bumper, speech, temperature, and the motion watchdog."""

from roktrack.device.interface import Chassis, DeviceCommand, Motion
from roktrack.device.mock import MockDevice

__all__ = ["Chassis", "DeviceCommand", "Motion", "MockDevice"]

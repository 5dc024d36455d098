"""Exception hierarchy shared across roktrack modules."""

from __future__ import annotations


class RoktrackError(Exception):
    """Base class for roktrack errors."""


class ConfigError(RoktrackError):
    """Configuration file missing, malformed, or out of range. Fatal at startup."""


class DeviceError(RoktrackError):
    """A single GPIO/PWM call failed. Transient: logged and retried next tick."""


class VisionError(RoktrackError):
    """Camera capture or model inference failed. The frame yields no detections."""


class PayloadError(RoktrackError):
    """Advertisement payload too short or malformed."""

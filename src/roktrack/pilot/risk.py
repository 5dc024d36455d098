"""Safety pre-pass run by every handler before it acts."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable

from roktrack.com.messages import ChildMsg
from roktrack.device.interface import Chassis
from roktrack.pilot import actions
from roktrack.pilot.state import PilotState
from roktrack.vision.types import Detection, RoktrackClass, filter_class

logger = logging.getLogger(__name__)

HIGH_TEMP_C = 70.0


class Risk(Enum):
    STATE_OFF = "state_off"
    HIGH_TEMP = "high_temp"
    BUMPED = "bumped"
    # Escape sequence still running; let it finish
    ESCAPING = "escaping"
    PERSON_DETECTED = "person_detected"
    ROKTRACK_DETECTED = "roktrack_detected"


def assess_system_risk(state: PilotState, device: Chassis, *, check_bumper: bool = True) -> Risk | None:
    """StateOff, then HighTemp, then Bumped. Stationary modes skip the bumper."""
    if not state.on:
        return Risk.STATE_OFF
    if state.pi_temp > HIGH_TEMP_C:
        return Risk.HIGH_TEMP
    if check_bumper:
        if device.is_bumped():
            return Risk.BUMPED
        if device.in_sequence():
            return Risk.ESCAPING
    return None


def assess_vision_risk(dets: Iterable[Detection]) -> Risk | None:
    dets = list(dets)
    if filter_class(dets, RoktrackClass.PERSON):
        return Risk.PERSON_DETECTED
    if filter_class(dets, RoktrackClass.ROKTRACK):
        return Risk.ROKTRACK_DETECTED
    return None


def handle_system_risk(state: PilotState, device: Chassis, *, check_bumper: bool = True) -> Risk | None:
    """Assess and act. Returns the risk handled, or None if the handler may proceed."""
    risk = assess_system_risk(state, device, check_bumper=check_bumper)
    if risk is Risk.STATE_OFF:
        actions.stop(device)
    elif risk is Risk.HIGH_TEMP:
        logger.warning("SoC temperature %.1f C, stopping", state.pi_temp)
        actions.stop(device)
        state.msg = ChildMsg.PI_TEMP_HIGH_HALT
        device.speak("high_temp", "WARN")
    elif risk is Risk.BUMPED:
        logger.warning("Bumped, escaping")
        actions.escape(state, device)
        state.msg = ChildMsg.BUMPED
        device.speak("bumped", "WARN")
    return risk


def handle_vision_risk(state: PilotState, device: Chassis, dets: Iterable[Detection]) -> Risk | None:
    risk = assess_vision_risk(dets)
    if risk is Risk.PERSON_DETECTED:
        logger.warning("Person in view, stopping")
        actions.stop(device)
        state.msg = ChildMsg.PERSON_FOUND_PAUSE
        device.speak("person_detecting", "WARN")
    elif risk is Risk.ROKTRACK_DETECTED:
        logger.warning("Another roktrack in view, stopping")
        actions.stop(device)
    return risk

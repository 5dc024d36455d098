"""Command router - controller messages to state changes and handler swaps."""

from __future__ import annotations

import logging
import queue
from typing import Callable

from roktrack.com.messages import ParentMsg
from roktrack.com.payload import Neighbor
from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.notify import NotifierIO
from roktrack.pilot import actions
from roktrack.pilot.actions import send_vision
from roktrack.pilot.base import PilotHandler
from roktrack.pilot.fill import FillHandler
from roktrack.pilot.follow_person import FollowPersonHandler
from roktrack.pilot.monitor import MonitorAnimalHandler, MonitorPersonHandler
from roktrack.pilot.oneway import OneWayHandler
from roktrack.pilot.round_trip import RoundTripHandler
from roktrack.pilot.state import SMALL_WIDTH, Mode, PilotState
from roktrack.utils.clock import now_ms
from roktrack.vision.types import VisionCommand

logger = logging.getLogger(__name__)

MODE_COMMANDS: dict[ParentMsg, Mode] = {
    ParentMsg.FILL: Mode.FILL,
    ParentMsg.ONEWAY: Mode.ONEWAY,
    ParentMsg.MONITOR_PERSON: Mode.MONITOR_PERSON,
    ParentMsg.MONITOR_ANIMAL: Mode.MONITOR_ANIMAL,
    ParentMsg.ROUND_TRIP: Mode.ROUND_TRIP,
    ParentMsg.FOLLOW_PERSON: Mode.FOLLOW_PERSON,
}


def create_handler(
    mode: Mode,
    notifier: NotifierIO | None = None,
    clock: Callable[[], int] = now_ms,
) -> PilotHandler | None:
    """Fresh handler for mode. None for modes without one (Climb, Around, Unknown)."""
    if mode is Mode.FILL:
        return FillHandler(clock=clock)
    if mode is Mode.ONEWAY:
        return OneWayHandler()
    if mode is Mode.FOLLOW_PERSON:
        return FollowPersonHandler()
    if mode is Mode.ROUND_TRIP:
        return RoundTripHandler()
    if mode is Mode.MONITOR_PERSON:
        return MonitorPersonHandler(notifier, clock=clock)
    if mode is Mode.MONITOR_ANIMAL:
        return MonitorAnimalHandler(notifier, clock=clock)
    return None


def session_command(mode: Mode, property: RoktrackProperty) -> VisionCommand:
    """Detector session a mode needs."""
    if mode is Mode.MONITOR_ANIMAL:
        return VisionCommand.SWITCH_SESSION_ANIMAL
    if mode is Mode.FILL and property.conf.vision.ocr:
        return VisionCommand.SWITCH_SESSION_PYLON_OCR
    return VisionCommand.SWITCH_SESSION_PYLON


def route_command(
    state: PilotState,
    neighbor: Neighbor,
    device: Chassis,
    vision_tx: "queue.Queue[VisionCommand]",
    property: RoktrackProperty,
    *,
    notifier: NotifierIO | None = None,
    clock: Callable[[], int] = now_ms,
) -> PilotHandler | None:
    """Apply one controller message. Returns a new handler when the mode changed."""
    if not neighbor.is_controller or not neighbor.is_broadcast:
        return None
    msg = ParentMsg.from_u8(neighbor.msg)
    if msg is ParentMsg.OFF:
        if state.on:
            logger.info("Controller: off")
            state.on = False
            actions.stop(device)
            send_vision(vision_tx, VisionCommand.OFF)
    elif msg is ParentMsg.ON:
        if not state.on:
            logger.info("Controller: on")
            state.on = True
            send_vision(vision_tx, VisionCommand.ON)
    elif msg is ParentMsg.RESET:
        if not state.on:
            logger.info("Controller: reset")
            actions.downscale(state, vision_tx)
            state.reset()
    elif msg in MODE_COMMANDS:
        mode = MODE_COMMANDS[msg]
        if state.on or state.mode is mode:
            return None
        if mode is Mode.MONITOR_ANIMAL and not property.conf.vision.animal_available:
            logger.warning("Animal monitoring requested but no animal model is configured")
            return None
        logger.info("Controller: mode %s -> %s", state.mode.name, mode.name)
        state.mode = mode
        send_vision(vision_tx, session_command(mode, property))
        send_vision(vision_tx, VisionCommand.SWITCH_SZ_320)
        if state.img_width != SMALL_WIDTH:
            state.rescale(SMALL_WIDTH)
        return create_handler(mode, notifier, clock)
    else:
        logger.debug("Controller message %s ignored", msg.name if msg is not None else neighbor.msg)
    return None

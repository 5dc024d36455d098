"""Base actions - primitive transitions over (state, device, marker, vision commands) shared by every mode."""

from __future__ import annotations

import functools
import logging
import queue
from dataclasses import dataclass
from typing import Callable

from roktrack.com.messages import ChildMsg
from roktrack.device.interface import Chassis, Motion
from roktrack.errors import DeviceError
from roktrack.pilot.state import LARGE_WIDTH, SMALL_WIDTH, Phase, PilotState
from roktrack.vision.types import Detection, VisionCommand

logger = logging.getLogger(__name__)

TURN_MS = 500
STEER_MS = 100
ESCAPE_STRAIGHT_MS = 2000
MAX_CONSTANT = 0.005


@dataclass(frozen=True)
class ActionResult:
    success: bool
    details: str = ""


OK = ActionResult(True)


def device_action(fn: Callable[..., ActionResult | None]) -> Callable[..., ActionResult]:
    """A failed GPIO call is logged and reported; the next tick retries."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs) -> ActionResult:
        try:
            result = fn(*args, **kwargs)
        except DeviceError as e:
            logger.warning("%s failed: %s", fn.__name__, e)
            return ActionResult(False, str(e))
        return result if result is not None else OK

    return wrapper


def send_vision(vision_tx: "queue.Queue[VisionCommand]", cmd: VisionCommand) -> None:
    try:
        vision_tx.put_nowait(cmd)
    except queue.Full:
        logger.warning("Vision command queue full, dropped %s", cmd.value)


def turn_motion(phase: Phase) -> Motion:
    """Lap direction: CCW laps turn left, CW laps turn right."""
    return Motion.LEFT if phase is Phase.CCW else Motion.RIGHT


def counter_motion(phase: Phase) -> Motion:
    return Motion.RIGHT if phase is Phase.CCW else Motion.LEFT


def _turn(state: PilotState, device: Chassis, ms: int = TURN_MS) -> None:
    if state.phase is Phase.CCW:
        device.left(ms)
    else:
        device.right(ms)


@device_action
def stop(device: Chassis) -> None:
    device.stop()


@device_action
def pause(device: Chassis) -> None:
    device.pause()


@device_action
def work_on(device: Chassis) -> None:
    device.work_on()


@device_action
def escape(state: PilotState, device: Chassis) -> None:
    """Back off, turn, pass forward, turn back."""
    device.run_sequence(
        [
            (Motion.BACKWARD, ESCAPE_STRAIGHT_MS),
            (turn_motion(state.phase), TURN_MS),
            (Motion.FORWARD, ESCAPE_STRAIGHT_MS),
            (counter_motion(state.phase), TURN_MS),
        ]
    )


@device_action
def halt(state: PilotState, device: Chassis, vision_tx: "queue.Queue[VisionCommand]") -> None:
    """Mission failed: no marker found after the turn cap."""
    logger.warning("Halt: target not found")
    state.on = False
    state.msg = ChildMsg.TARGET_NOT_FOUND
    send_vision(vision_tx, VisionCommand.OFF)
    device.stop()
    device.speak("cone_not_found", "WARN")


def upscale(state: PilotState, vision_tx: "queue.Queue[VisionCommand]") -> ActionResult:
    if state.img_width == LARGE_WIDTH:
        return OK
    send_vision(vision_tx, VisionCommand.SWITCH_SZ_640)
    state.rescale(LARGE_WIDTH)
    logger.debug("Upscaled to %dx%d", state.img_width, state.img_height)
    return OK


def downscale(state: PilotState, vision_tx: "queue.Queue[VisionCommand]") -> ActionResult:
    if state.img_width == SMALL_WIDTH:
        return OK
    send_vision(vision_tx, VisionCommand.SWITCH_SZ_320)
    state.rescale(SMALL_WIDTH)
    logger.debug("Downscaled to %dx%d", state.img_width, state.img_height)
    return OK


@device_action
def reset_ex_height(state: PilotState, device: Chassis) -> None:
    """Marker left the frame mid-turn: accept the next marker of any height."""
    state.msg = ChildMsg.TARGET_LOST
    state.ex_height = int(state.img_height * 1.1)
    _turn(state, device)
    state.turn_count += 1


def calc_constant(cur_constant: float, cam_height: int, marker_height: int) -> float:
    """Per-marker rest decrement, derived once from the first marker's relative size."""
    if cur_constant != 0.0:
        return cur_constant
    return min(MAX_CONSTANT, 0.1 * marker_height / cam_height)


@device_action
def invert_phase(state: PilotState, device: Chassis, vision_tx: "queue.Queue[VisionCommand]") -> None:
    logger.info("CCW lap finished, starting CW lap")
    # Reset returns the state to 320 wide; vision must follow
    downscale(state, vision_tx)
    state.invert_phase()
    device.pause()


@device_action
def mission_complete(state: PilotState, device: Chassis) -> None:
    logger.info("Mission complete")
    state.on = False
    state.msg = ChildMsg.MISSION_COMPLETE
    device.stop()


@device_action
def keep_turn(state: PilotState, device: Chassis, vision_tx: "queue.Queue[VisionCommand]") -> None:
    _turn(state, device)
    if state.turn_count > 4:
        upscale(state, vision_tx)
    state.turn_count += 1


@device_action
def set_new_target(state: PilotState, device: Chassis, marker: Detection) -> None:
    """Next marker found: drain rest and pull the arrival height inward."""
    state.msg = ChildMsg.NEW_TARGET_FOUND
    device.speak("new_cone_found")
    state.rest -= state.constant
    state.target_height = int(marker.h + (state.img_height * 0.9 - marker.h) * state.rest**2)
    state.turn_count = 0
    logger.debug("New target: rest=%.3f target_height=%d", state.rest, state.target_height)


def stand(state: PilotState, vision_tx: "queue.Queue[VisionCommand]") -> ActionResult:
    """Hold position and look again at higher resolution."""
    upscale(state, vision_tx)
    state.msg = ChildMsg.TARGET_LOST
    state.turn_count = 0
    return OK


@device_action
def start_turn(state: PilotState, device: Chassis) -> None:
    _turn(state, device)
    state.turn_count = 1
    state.ex_height = int(state.img_height * 1.1)
    state.target_height = 0


@device_action
def reach_marker(state: PilotState, device: Chassis, marker: Detection) -> None:
    device.pause()
    state.turn_count = 1
    state.ex_height = marker.h
    state.target_height = 0
    state.msg = ChildMsg.REACH_TARGET
    device.speak("close_to_cone")
    _turn(state, device)


def get_diff(marker_xc: float, marker_h: int, img_height: int, img_width: int, phase: Phase) -> float:
    """Signed horizontal offset of the aim point as a fraction of image width.

    Positive means the marker is left of centre. At width 320, a marker 32 px
    right of centre gives -0.1 and one 64 px left gives 0.2. When the marker is
    taller than half the frame the aim shifts by 0.4 * width/2 in the lap
    direction so the robot wraps around it.
    """
    offset = img_width / 2 * 0.4 if marker_h > img_height * 0.5 else 0.0
    if phase is Phase.CW:
        offset = -offset
    return (img_width / 2 - marker_xc + offset) / img_width


@device_action
def proceed(
    state: PilotState,
    device: Chassis,
    marker: Detection,
    vision_tx: "queue.Queue[VisionCommand]",
) -> None:
    """Steer toward the marker by trimming motor powers; hard offsets turn in place briefly."""
    diff = get_diff(marker.xc, marker.h, state.img_height, state.img_width, state.phase)
    state.diff = diff
    state.marker_height = marker.h
    val = abs(0.1 * diff)
    if diff > 0.15:
        device.left(STEER_MS)
        device.adjust_power(-val, val)
    elif diff > 0.03:
        device.adjust_power(-val, val)
        device.forward(0)
    elif diff < -0.15:
        device.right(STEER_MS)
        device.adjust_power(val, -val)
    elif diff < -0.03:
        device.adjust_power(val, -val)
        device.forward(0)
    else:
        device.forward(0)
    if marker.h > state.img_height * 0.05 and state.img_width == LARGE_WIDTH:
        downscale(state, vision_tx)

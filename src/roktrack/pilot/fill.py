"""Fill mode - lap the marker perimeter CCW then CW, spiralling inward as rest drains."""

from __future__ import annotations

import logging
from typing import Callable

from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.pilot import actions
from roktrack.pilot.base import DrivingHandler, first_or_empty
from roktrack.pilot.phases import FILL_TURN_CAP
from roktrack.pilot.state import Mode, Phase, PilotState
from roktrack.utils.clock import now_ms
from roktrack.vision.types import Detection, RoktrackClass, filter_class, filter_ids, sort_left, sort_right

logger = logging.getLogger(__name__)

# Robot holds still this long before latching the marker id it reads
OCR_LOCK_WAIT_MS = 5000


def pass_through(state: PilotState, dets: list[Detection]) -> Detection | None:
    """Second marker when the nearest is already reached and the next sits on the inner side.

    Lets the robot pass the near marker and aim at the far one without a full turn.
    """
    if state.turn_count > 0 or len(dets) < 2:
        return None
    nearest, second = dets[0], dets[1]
    if nearest.h <= state.target_height:
        return None
    if state.phase is Phase.CCW:
        inner = second.x1 > state.img_width / 3
    else:
        inner = second.x1 < state.img_width * 2 / 3
    return second if inner else None


class FillHandler(DrivingHandler):
    mode = Mode.FILL
    turn_cap = FILL_TURN_CAP
    allow_invert = True

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._ocr_deadline: int | None = None
        self._ocr_candidate: int | None = None

    def _ocr_lock(self, state: PilotState, device: Chassis, dets: list[Detection]) -> bool:
        """Returns True while waiting for the marker id to be latched."""
        if self._ocr_deadline is None:
            tagged = [d for d in dets if d.ids]
            if not tagged:
                return False
            self._ocr_candidate = tagged[0].ids[0]
            self._ocr_deadline = self._clock() + OCR_LOCK_WAIT_MS
            logger.info("OCR lock-in: candidate marker id %d", self._ocr_candidate)
            actions.stop(device)
            device.speak("switch_ocr_mode")
            return True
        if self._clock() < self._ocr_deadline:
            actions.stop(device)
            return True
        state.marker_id = self._ocr_candidate
        self._ocr_deadline = None
        logger.info("OCR lock-in: marker id %d latched", state.marker_id)
        return False

    def select(
        self,
        state: PilotState,
        device: Chassis,
        dets: list[Detection],
        property: RoktrackProperty,
    ) -> Detection | None:
        dets = filter_class(dets, RoktrackClass.PYLON)
        dets = sort_right(dets) if state.phase is Phase.CCW else sort_left(dets)
        if property.conf.vision.ocr:
            if state.marker_id is None and self._ocr_lock(state, device, dets):
                return None
            if state.marker_id is not None:
                dets = filter_ids(dets, state.marker_id)
        second = pass_through(state, dets)
        if second is not None:
            logger.debug("Passing through toward the next marker")
            return second
        return first_or_empty(dets)

    def prepare(self, state: PilotState, device: Chassis, marker: Detection) -> None:
        actions.work_on(device)
        if state.constant == 0.0 and marker.h > 0:
            state.constant = actions.calc_constant(state.constant, state.img_height, marker.h)
            logger.debug("Rest constant %.4f", state.constant)

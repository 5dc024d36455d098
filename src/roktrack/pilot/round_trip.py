"""RoundTrip mode - shuttle between a marker and a person."""

from __future__ import annotations

import logging
from enum import Enum

from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.pilot import actions
from roktrack.pilot.actions import ActionResult
from roktrack.pilot.base import DrivingHandler, first_or_empty
from roktrack.pilot.state import Mode, PilotState
from roktrack.vision.types import Detection, RoktrackClass, filter_class, sort_big

logger = logging.getLogger(__name__)


class RoundTripObject(Enum):
    MARKER = RoktrackClass.PYLON
    PERSON = RoktrackClass.PERSON


class RoundTripHandler(DrivingHandler):
    mode = Mode.ROUND_TRIP
    vision_risk = False

    def __init__(self) -> None:
        self.target_object = RoundTripObject.MARKER

    def select(
        self,
        state: PilotState,
        device: Chassis,
        dets: list[Detection],
        property: RoktrackProperty,
    ) -> Detection | None:
        return first_or_empty(filter_class(sort_big(dets), self.target_object.value))

    def reach(self, state: PilotState, device: Chassis, marker: Detection) -> ActionResult:
        old = self.target_object
        self.target_object = RoundTripObject.PERSON if old is RoundTripObject.MARKER else RoundTripObject.MARKER
        logger.debug("Target object switch: %s -> %s", old.name, self.target_object.name)
        return actions.reach_marker(state, device, marker)

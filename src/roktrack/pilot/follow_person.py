"""FollowPerson mode - tail the nearest person at arm's length."""

from __future__ import annotations

import logging

from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.pilot import actions
from roktrack.pilot.actions import ActionResult
from roktrack.pilot.base import DrivingHandler, first_or_empty
from roktrack.pilot.state import Mode, PilotState
from roktrack.vision.types import Detection, RoktrackClass, filter_class, sort_big

logger = logging.getLogger(__name__)


class FollowPersonHandler(DrivingHandler):
    mode = Mode.FOLLOW_PERSON
    # The tracked target is a person, so people in view are not a risk here
    vision_risk = False

    def select(
        self,
        state: PilotState,
        device: Chassis,
        dets: list[Detection],
        property: RoktrackProperty,
    ) -> Detection | None:
        return first_or_empty(filter_class(sort_big(dets), RoktrackClass.PERSON))

    def reach(self, state: PilotState, device: Chassis, marker: Detection) -> ActionResult:
        logger.debug("Close to person, pausing")
        return actions.pause(device)

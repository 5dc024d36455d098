"""OneWay mode - straight traversal through a corridor of marker pairs."""

from __future__ import annotations

from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.pilot import actions
from roktrack.pilot.base import DrivingHandler, first_or_empty
from roktrack.pilot.state import Mode, Phase, PilotState
from roktrack.vision.types import Detection, RoktrackClass, filter_class, sort_left, sort_right, sort_small


class OneWayHandler(DrivingHandler):
    """Like Fill without laps. Ends at TurnCountExceeded."""

    mode = Mode.ONEWAY

    def select(
        self,
        state: PilotState,
        device: Chassis,
        dets: list[Detection],
        property: RoktrackProperty,
    ) -> Detection | None:
        dets = filter_class(dets, RoktrackClass.PYLON)
        if state.turn_count == 1:
            # First turn after a marker: aim at the farther next one
            dets = sort_small(dets)
        elif state.phase is Phase.CCW:
            dets = sort_right(dets)
        else:
            dets = sort_left(dets)
        return first_or_empty(dets)

    def prepare(self, state: PilotState, device: Chassis, marker: Detection) -> None:
        actions.work_on(device)

"""Mode handler base classes: safety pre-pass, marker selection, action dispatch."""

from __future__ import annotations

import logging
import queue
from abc import ABC, abstractmethod

from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.pilot import actions
from roktrack.pilot.actions import ActionResult
from roktrack.pilot.phases import DEFAULT_TURN_CAP, ActPhase, assess_situation
from roktrack.pilot.risk import handle_system_risk, handle_vision_risk
from roktrack.pilot.state import Mode, PilotState
from roktrack.vision.types import Detection, DetectionBatch, VisionCommand

logger = logging.getLogger(__name__)


class PilotHandler(ABC):
    """One per mode. handle() runs once per detection batch on the drive thread and never blocks."""

    mode: Mode = Mode.UNKNOWN

    @abstractmethod
    def handle(
        self,
        state: PilotState,
        device: Chassis,
        batch: DetectionBatch,
        vision_tx: "queue.Queue[VisionCommand]",
        property: RoktrackProperty,
    ) -> None:
        ...


class DrivingHandler(PilotHandler):
    """Marker-following modes. Subclasses choose the marker; the action table is shared."""

    turn_cap: int = DEFAULT_TURN_CAP
    allow_invert: bool = False
    vision_risk: bool = True

    def handle(
        self,
        state: PilotState,
        device: Chassis,
        batch: DetectionBatch,
        vision_tx: "queue.Queue[VisionCommand]",
        property: RoktrackProperty,
    ) -> None:
        if handle_system_risk(state, device) is not None:
            return
        if self.vision_risk and handle_vision_risk(state, device, batch.detections) is not None:
            return
        marker = self.select(state, device, batch.detections, property)
        if marker is None:
            return
        logger.debug("Marker selected: %s", marker)
        self.prepare(state, device, marker)
        act = assess_situation(state, marker, self.turn_cap, self.allow_invert)
        logger.debug("Action: %s", act.value if act else None)
        if act is not None:
            result = self.act(act, state, device, marker, vision_tx)
            if not result.success:
                logger.warning("%s did not complete: %s", act.value, result.details)

    @abstractmethod
    def select(
        self,
        state: PilotState,
        device: Chassis,
        dets: list[Detection],
        property: RoktrackProperty,
    ) -> Detection | None:
        """Pick the marker to act on; Detection.empty() if none is visible, None to skip this tick."""
        ...

    def prepare(self, state: PilotState, device: Chassis, marker: Detection) -> None:
        """Hook run after selection and before the action table."""

    def reach(self, state: PilotState, device: Chassis, marker: Detection) -> ActionResult:
        return actions.reach_marker(state, device, marker)

    def act(
        self,
        act: ActPhase,
        state: PilotState,
        device: Chassis,
        marker: Detection,
        vision_tx: "queue.Queue[VisionCommand]",
    ) -> ActionResult:
        if act is ActPhase.TURN_COUNT_EXCEEDED:
            return actions.halt(state, device, vision_tx)
        if act is ActPhase.TURN_MARKER_INVISIBLE:
            return actions.reset_ex_height(state, device)
        if act is ActPhase.TURN_MARKER_FOUND:
            return actions.set_new_target(state, device, marker)
        if act is ActPhase.INVERT_PHASE:
            return actions.invert_phase(state, device, vision_tx)
        if act is ActPhase.MISSION_COMPLETE:
            return actions.mission_complete(state, device)
        if act is ActPhase.TURN_KEEP:
            return actions.keep_turn(state, device, vision_tx)
        if act is ActPhase.STAND:
            return actions.stand(state, vision_tx)
        if act is ActPhase.START_TURN:
            return actions.start_turn(state, device)
        if act is ActPhase.REACH_MARKER:
            return self.reach(state, device, marker)
        return actions.proceed(state, device, marker, vision_tx)


def first_or_empty(dets: list[Detection]) -> Detection:
    return dets[0] if dets else Detection.empty()

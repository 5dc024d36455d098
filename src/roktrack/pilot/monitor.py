"""Monitor modes - stationary watch for people or animals with push notification."""

from __future__ import annotations

import logging
import queue
from abc import abstractmethod
from typing import Callable

from roktrack.com.messages import ChildMsg
from roktrack.config import RoktrackProperty
from roktrack.device.interface import Chassis
from roktrack.notify import NotifierIO
from roktrack.pilot.base import PilotHandler
from roktrack.pilot.risk import handle_system_risk
from roktrack.pilot.state import Mode, PilotState
from roktrack.utils.clock import now_ms
from roktrack.vision.types import AnimalClass, Detection, DetectionBatch, RoktrackClass, VisionCommand, filter_class

logger = logging.getLogger(__name__)

ALERT_INTERVAL_MS = 60_000
# Frames shot this soon after a motion deadline are likely blurred
BLUR_MARGIN_MS = 300


class MonitorHandler(PilotHandler):
    """Alert at most once per ALERT_INTERVAL_MS while the watched target stays in view."""

    speech = ""
    alert_msg = ChildMsg.UNKNOWN

    def __init__(self, notifier: NotifierIO | None = None, clock: Callable[[], int] = now_ms) -> None:
        self._notifier = notifier
        self._clock = clock
        self.last_detected_time = 0

    @abstractmethod
    def targets(self, dets: list[Detection]) -> list[Detection]:
        ...

    @abstractmethod
    def message(self, target: Detection) -> str:
        ...

    def skip_batch(self, device: Chassis, batch: DetectionBatch) -> bool:
        return False

    def handle(
        self,
        state: PilotState,
        device: Chassis,
        batch: DetectionBatch,
        vision_tx: "queue.Queue[VisionCommand]",
        property: RoktrackProperty,
    ) -> None:
        if handle_system_risk(state, device, check_bumper=False) is not None:
            return
        if self.skip_batch(device, batch):
            logger.debug("Frame taken during motion, skipped")
            return
        found = self.targets(batch.detections)
        if not found:
            return
        now = self._clock()
        if self.last_detected_time + ALERT_INTERVAL_MS >= now:
            return
        logger.warning("%s", self.message(found[0]))
        self.last_detected_time = now
        state.msg = self.alert_msg
        device.speak(self.speech, "WARN")
        if self._notifier is not None:
            self._notifier.notify_async(self.message(found[0]), batch.image_path or None)


class MonitorPersonHandler(MonitorHandler):
    mode = Mode.MONITOR_PERSON
    speech = "person_detecting_warn"
    alert_msg = ChildMsg.PERSON_FOUND_WARN

    def targets(self, dets: list[Detection]) -> list[Detection]:
        return filter_class(dets, RoktrackClass.PERSON)

    def message(self, target: Detection) -> str:
        return "Person detected."

    def skip_batch(self, device: Chassis, batch: DetectionBatch) -> bool:
        return batch.shooting_start_time < device.target_time_ms + BLUR_MARGIN_MS


class MonitorAnimalHandler(MonitorHandler):
    mode = Mode.MONITOR_ANIMAL
    speech = "animal_detecting"
    alert_msg = ChildMsg.ANIMAL_FOUND

    def targets(self, dets: list[Detection]) -> list[Detection]:
        # Every class of the animal session is an animal
        return list(dets)

    def message(self, target: Detection) -> str:
        try:
            name = AnimalClass(target.cls).name.lower()
        except ValueError:
            name = f"animal {target.cls}"
        return f"{name.capitalize()} detected."

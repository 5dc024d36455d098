"""Vision thread: capture, detect, push one DetectionBatch per frame."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Protocol

import cv2

from roktrack.errors import VisionError
from roktrack.utils.clock import now_ms
from roktrack.utils.paths import RoktrackPaths
from roktrack.vision.camera import BaseVideoSource
from roktrack.vision.detector import Session
from roktrack.vision.types import Detection, DetectionBatch, VisionCommand

logger = logging.getLogger(__name__)

IDLE_WAIT_S = 0.05

_SESSIONS = {
    VisionCommand.SWITCH_SESSION_PYLON: Session.PYLON,
    VisionCommand.SWITCH_SESSION_PYLON_OCR: Session.PYLON_OCR,
    VisionCommand.SWITCH_SESSION_ANIMAL: Session.ANIMAL,
}
_SIZES = {VisionCommand.SWITCH_SZ_320: 320, VisionCommand.SWITCH_SZ_640: 640}


class Detector(Protocol):
    def switch_session(self, session: Session) -> None: ...

    def infer_with_ids(self, image_path, size: int, crop_path) -> list[Detection]: ...


def offer_latest(tx: "queue.Queue", item: object) -> None:
    """Put without blocking; on a full queue drop the oldest item first."""
    try:
        tx.put_nowait(item)
    except queue.Full:
        try:
            tx.get_nowait()
        except queue.Empty:
            pass
        tx.put_nowait(item)


class VisionRunner:
    """Owns the camera and the detector. Only this thread touches them."""

    def __init__(
        self,
        source: BaseVideoSource,
        detector: Detector,
        paths: RoktrackPaths,
        tx: "queue.Queue[DetectionBatch]",
        commands: "queue.Queue[VisionCommand]",
        *,
        on: bool = True,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._source = source
        self._detector = detector
        self._paths = paths
        self._tx = tx
        self._commands = commands
        self._clock = clock
        self.on = on
        self.size = 320

    def apply(self, cmd: VisionCommand) -> None:
        logger.debug("Vision command %s", cmd.value)
        if cmd is VisionCommand.ON:
            self.on = True
        elif cmd is VisionCommand.OFF:
            self.on = False
        elif cmd in _SIZES:
            self.size = _SIZES[cmd]
        else:
            try:
                self._detector.switch_session(_SESSIONS[cmd])
            except VisionError as e:
                logger.error("Session switch failed: %s", e)

    def step(self) -> DetectionBatch | None:
        """One iteration: apply at most one command, then capture and detect if on."""
        try:
            self.apply(self._commands.get_nowait())
        except queue.Empty:
            pass
        if not self.on:
            return None
        shooting_start_time = self._clock()
        image_path = self._paths.last_image
        size = self.size
        try:
            self._source.capture(image_path)
            detections = self._detector.infer_with_ids(image_path, size, self._paths.crop_image)
        except (VisionError, OSError, cv2.error) as e:
            logger.warning("Vision failed, empty batch: %s", e)
            detections = []
        batch = DetectionBatch(
            detections=detections,
            shooting_start_time=shooting_start_time,
            image_path=str(image_path),
            img_width=size,
        )
        offer_latest(self._tx, batch)
        return batch

    def run(self, stop_event: threading.Event) -> None:
        logger.debug("Vision thread started")
        try:
            while not stop_event.is_set():
                if self.step() is None:
                    stop_event.wait(IDLE_WAIT_S)
        finally:
            self._source.release()
            logger.debug("Vision thread exit")

"""YOLO marker/person/animal detection over ONNX sessions, plus digit OCR on marker crops.

Sessions are grouped in bundles:
  - PYLON: 320 and 640 pylon models.
  - PYLON_OCR: the pylon models plus the 96x96 digit model.
  - ANIMAL: 320 and 640 animal models (optional; paths may be empty).

Boxes come back in processing resolution (size x 3/4 size), probability >= 0.5,
IoU-merged per class at 0.7, sorted by probability descending.
"""

from __future__ import annotations

import dataclasses
import logging
from enum import Enum
from pathlib import Path
from typing import Any

import cv2
import numpy as np

from roktrack.config import RoktrackConfig
from roktrack.errors import VisionError
from roktrack.vision.types import Detection, RoktrackClass

logger = logging.getLogger(__name__)

MIN_PROB = 0.5
MERGE_IOU = 0.7
OCR_SIZE = 96
SIZES = (320, 640)


class Session(Enum):
    PYLON = "pylon"
    PYLON_OCR = "pylon_ocr"
    ANIMAL = "animal"


def _load_model(model_path: str) -> Any:
    """Load YOLO model. Lazily imported."""
    from ultralytics import YOLO
    return YOLO(model_path, task="detect")


def iou(a: Detection, b: Detection) -> float:
    """Intersection over union with inclusive pixel areas."""
    w = max(min(a.x2, b.x2) - max(a.x1, b.x1), 0)
    h = max(min(a.y2, b.y2) - max(a.y1, b.y1), 0)
    inter = w * h
    area_a = (a.x2 - a.x1 + 1) * (a.y2 - a.y1 + 1)
    area_b = (b.x2 - b.x1 + 1) * (b.y2 - b.y1 + 1)
    union = area_a + area_b - inter
    return inter / union if union > 0 else 0.0


def merge_bboxes(dets: list[Detection], threshold: float = MERGE_IOU) -> list[Detection]:
    """Union boxes of the same class overlapping the seed by IoU >= threshold.

    Input is expected sorted by probability; each merged box keeps its seed's class and prob.
    """
    merged: list[Detection] = []
    used = [False] * len(dets)
    for i, seed in enumerate(dets):
        if used[i]:
            continue
        used[i] = True
        x1, y1, x2, y2 = seed.x1, seed.y1, seed.x2, seed.y2
        for j, other in enumerate(dets):
            if used[j] or other.cls != seed.cls:
                continue
            if iou(seed, other) >= threshold:
                x1, y1 = min(x1, other.x1), min(y1, other.y1)
                x2, y2 = max(x2, other.x2), max(y2, other.y2)
                used[j] = True
        merged.append(Detection.from_xyxy(x1, y1, x2, y2, seed.cls, seed.prob))
    return merged


class YoloDetector:
    """Loads the active session bundle lazily and runs inference on image files."""

    def __init__(self, conf: RoktrackConfig) -> None:
        v = conf.vision
        self._paths: dict[Session, dict[int, str]] = {
            Session.PYLON: {320: v.pylon_320_model, 640: v.pylon_640_model},
            Session.PYLON_OCR: {320: v.pylon_320_model, 640: v.pylon_640_model, OCR_SIZE: v.ocr_model},
            Session.ANIMAL: {320: v.animal_320_model, 640: v.animal_640_model},
        }
        t = conf.detectthreshold
        self._thresholds: dict[Session, dict[int, float]] = {
            Session.PYLON: {RoktrackClass.PYLON: t.pylon, RoktrackClass.PERSON: t.person, RoktrackClass.ROKTRACK: t.roktrack},
            Session.ANIMAL: {},
        }
        self._thresholds[Session.PYLON_OCR] = self._thresholds[Session.PYLON]
        self._animal_threshold = t.animal
        self._models: dict[str, Any] = {}
        self.session = Session.PYLON

    def switch_session(self, session: Session) -> None:
        paths = self._paths[session]
        if not all(paths.values()):
            raise VisionError(f"Session {session.value} has no model configured")
        self.session = session
        logger.info("Detector session: %s", session.value)

    @property
    def ocr_enabled(self) -> bool:
        return self.session is Session.PYLON_OCR

    def _model(self, size: int) -> Any:
        path = self._paths[self.session].get(size)
        if not path:
            raise VisionError(f"No {size}px model in session {self.session.value}")
        model = self._models.get(path)
        if model is None:
            if not Path(path).is_file():
                raise VisionError(f"Model file not found: {path}")
            model = _load_model(path)
            self._models[path] = model
            logger.info("Loaded model %s", path)
        return model

    def _threshold(self, cls: int) -> float:
        if self.session is Session.ANIMAL:
            return self._animal_threshold
        return self._thresholds[self.session].get(cls, 0.0)

    def _predict(self, img: np.ndarray, size: int) -> list[tuple[float, float, float, float, int, float]]:
        """Raw (x1, y1, x2, y2, cls, prob) boxes in source-image pixels."""
        model = self._model(size)
        results = model(img, imgsz=size, conf=MIN_PROB, verbose=False)
        boxes: list[tuple[float, float, float, float, int, float]] = []
        for r in results:
            if r.boxes is None:
                continue
            for box in r.boxes:
                x1, y1, x2, y2 = box.xyxy[0].tolist()
                boxes.append((x1, y1, x2, y2, int(box.cls[0]), float(box.conf[0])))
        return boxes

    def infer(self, image_path: str | Path, size: int) -> list[Detection]:
        """Detect on an image file at processing width `size` (320 or 640)."""
        if size not in SIZES:
            raise VisionError(f"Unsupported inference size {size}")
        img = cv2.imread(str(image_path))
        if img is None:
            raise VisionError(f"Cannot read image {image_path}")
        src_h, src_w = img.shape[:2]
        sx, sy = size / src_w, size * 3 / 4 / src_h
        dets = []
        for x1, y1, x2, y2, cls, prob in self._predict(img, size):
            if prob < MIN_PROB or prob < self._threshold(cls):
                continue
            dets.append(Detection.from_xyxy(x1 * sx, y1 * sy, x2 * sx, y2 * sy, cls, prob))
        dets.sort(key=lambda d: d.prob, reverse=True)
        return merge_bboxes(dets)

    def read_ids(self, image_path: str | Path, det: Detection, size: int, crop_path: str | Path) -> tuple[int, ...]:
        """OCR the digits printed on one marker. Crops the source image around the box."""
        img = cv2.imread(str(image_path))
        if img is None:
            raise VisionError(f"Cannot read image {image_path}")
        src_h, src_w = img.shape[:2]
        rx, ry = src_w / size, src_h / (size * 3 / 4)
        x1, x2 = max(int(det.x1 * rx), 0), min(int(det.x2 * rx), src_w)
        y1, y2 = max(int(det.y1 * ry), 0), min(int(det.y2 * ry), src_h)
        if x2 <= x1 or y2 <= y1:
            return ()
        crop = img[y1:y2, x1:x2]
        if not cv2.imwrite(str(crop_path), crop):
            raise VisionError(f"Cannot write crop {crop_path}")
        digits = self._predict(crop, OCR_SIZE)
        digits = [d for d in digits if d[5] >= MIN_PROB]
        digits.sort(key=lambda d: d[0])
        return tuple(d[4] for d in digits)

    def infer_with_ids(self, image_path: str | Path, size: int, crop_path: str | Path) -> list[Detection]:
        """infer(), then fill ids on pylons when the OCR session is active."""
        dets = self.infer(image_path, size)
        if not self.ocr_enabled:
            return dets
        out = []
        for d in dets:
            if d.cls == RoktrackClass.PYLON:
                d = dataclasses.replace(d, ids=self.read_ids(image_path, d, size, crop_path))
            out.append(d)
        return out

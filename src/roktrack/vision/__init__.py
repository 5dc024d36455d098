"""Vision - detection types, YOLO detector, camera, and the vision thread."""

from roktrack.vision.types import (
    AnimalClass,
    Detection,
    DetectionBatch,
    RoktrackClass,
    VisionCommand,
)

__all__ = ["AnimalClass", "Detection", "DetectionBatch", "RoktrackClass", "VisionCommand"]

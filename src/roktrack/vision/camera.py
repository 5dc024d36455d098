"""Frame sources - OpenCV camera and a still image for mock runs."""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

import cv2

from roktrack.errors import VisionError

logger = logging.getLogger(__name__)


class BaseVideoSource(ABC):
    """Captures one frame to a JPEG file. Subclasses: Camera, StillImageSource."""

    @abstractmethod
    def capture(self, path: str | Path) -> Path:
        """Write the latest frame to `path` and return it. Raises VisionError on failure."""
        ...

    @abstractmethod
    def release(self) -> None:
        """Release resources."""
        ...


class Camera(BaseVideoSource):
    """OpenCV VideoCapture. Grabs `grab_times` frames per capture so the buffered frame is fresh."""

    def __init__(self, index: int = 0, *, width: int = 1280, height: int = 720, grab_times: int = 3) -> None:
        self._index = index
        self._grab_times = max(grab_times, 1)
        self._cap: cv2.VideoCapture | None = cv2.VideoCapture(index)
        if not self._cap.isOpened():
            logger.error("Camera: failed to open index=%s", index)
            self._cap = None
        else:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            logger.info("Camera: opened index=%s at %dx%d", index, width, height)

    def capture(self, path: str | Path) -> Path:
        if self._cap is None:
            raise VisionError(f"Camera {self._index} is not open")
        for _ in range(self._grab_times - 1):
            self._cap.grab()
        ret, frame = self._cap.read()
        if not ret or frame is None:
            raise VisionError("Camera read failed")
        out = Path(path)
        if not cv2.imwrite(str(out), frame):
            raise VisionError(f"Cannot write frame to {out}")
        return out

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.debug("Camera: released")


class StillImageSource(BaseVideoSource):
    """Copies a fixed image on every capture. For mock runs and bench tests."""

    def __init__(self, image: str | Path) -> None:
        self._image = Path(image)
        if not self._image.is_file():
            logger.error("StillImageSource: %s not found", self._image)

    def capture(self, path: str | Path) -> Path:
        out = Path(path)
        try:
            shutil.copyfile(self._image, out)
        except OSError as e:
            raise VisionError(f"Cannot copy {self._image}: {e}") from e
        return out

    def release(self) -> None:
        pass

"""Vision types - Detection, DetectionBatch, class enums, and sort helpers."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable


class RoktrackClass(IntEnum):
    """Classes of the pylon model."""

    PYLON = 0
    PERSON = 1
    ROKTRACK = 2


class AnimalClass(IntEnum):
    """Classes of the animal model."""

    BIRD = 0
    CAT = 1
    DOG = 2
    HORSE = 3
    SHEEP = 4
    COW = 5
    BEAR = 6
    DEER = 7
    BOAR = 8
    MONKEY = 9


class VisionCommand(Enum):
    """Management commands sent from the drive thread to the vision thread."""

    ON = "on"
    OFF = "off"
    SWITCH_SESSION_PYLON = "switch_session_pylon"
    SWITCH_SESSION_PYLON_OCR = "switch_session_pylon_ocr"
    SWITCH_SESSION_ANIMAL = "switch_session_animal"
    SWITCH_SZ_320 = "switch_sz_320"
    SWITCH_SZ_640 = "switch_sz_640"


@dataclass(frozen=True)
class Detection:
    """Single bounding box in processing-resolution pixels. ids = OCR digits, left to right."""

    x1: int = 0
    y1: int = 0
    x2: int = 0
    y2: int = 0
    xc: float = 0.0
    yc: float = 0.0
    w: int = 0
    h: int = 0
    cls: int = 0
    prob: float = 0.0
    ids: tuple[int, ...] = ()

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float, klass: int, prob: float) -> "Detection":
        ix1, iy1, ix2, iy2 = int(x1), int(y1), int(x2), int(y2)
        w, h = ix2 - ix1, iy2 - iy1
        return cls(
            x1=ix1,
            y1=iy1,
            x2=ix2,
            y2=iy2,
            xc=ix1 + w / 2,
            yc=iy1 + h / 2,
            w=w,
            h=h,
            cls=klass,
            prob=prob,
        )

    @classmethod
    def empty(cls) -> "Detection":
        """Placeholder when nothing was selected; h == 0 means no marker."""
        return cls()

    def scaled(self, ratio: float) -> "Detection":
        return dataclasses.replace(
            self,
            x1=int(self.x1 * ratio),
            y1=int(self.y1 * ratio),
            x2=int(self.x2 * ratio),
            y2=int(self.y2 * ratio),
            xc=self.xc * ratio,
            yc=self.yc * ratio,
            w=int(self.w * ratio),
            h=int(self.h * ratio),
        )


@dataclass
class DetectionBatch:
    """Detections from one captured frame."""

    detections: list[Detection] = field(default_factory=list)
    # Epoch ms when the frame was grabbed
    shooting_start_time: int = 0
    image_path: str = ""
    img_width: int = 320

    def scaled_to(self, width: int) -> "DetectionBatch":
        """Same batch expressed at another processing width."""
        if width == self.img_width:
            return self
        ratio = width / self.img_width
        return DetectionBatch(
            detections=[d.scaled(ratio) for d in self.detections],
            shooting_start_time=self.shooting_start_time,
            image_path=self.image_path,
            img_width=width,
        )


def filter_class(dets: Iterable[Detection], cls: int) -> list[Detection]:
    return [d for d in dets if d.cls == int(cls)]


def filter_ids(dets: Iterable[Detection], marker_id: int) -> list[Detection]:
    """Keep markers whose OCR digits contain marker_id."""
    return [d for d in dets if marker_id in d.ids]


def sort_right(dets: Iterable[Detection]) -> list[Detection]:
    return sorted(dets, key=lambda d: -d.xc)


def sort_left(dets: Iterable[Detection]) -> list[Detection]:
    return sorted(dets, key=lambda d: d.xc)


def sort_top(dets: Iterable[Detection]) -> list[Detection]:
    return sorted(dets, key=lambda d: d.yc)


def sort_bottom(dets: Iterable[Detection]) -> list[Detection]:
    return sorted(dets, key=lambda d: -d.yc)


def sort_big(dets: Iterable[Detection]) -> list[Detection]:
    return sorted(dets, key=lambda d: -d.h)


def sort_small(dets: Iterable[Detection]) -> list[Detection]:
    return sorted(dets, key=lambda d: d.h)

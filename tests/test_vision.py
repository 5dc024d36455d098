"""Tests for detection types, sorting, box merging, the YOLO wrapper and the vision runner."""

from __future__ import annotations

import queue

import cv2
import numpy as np
import pytest

from conftest import det
from roktrack.config import DEFAULT_CONFIG, parse_config
from roktrack.errors import VisionError
from roktrack.vision.camera import StillImageSource
from roktrack.vision.detector import Session, YoloDetector, iou, merge_bboxes
from roktrack.vision.runner import VisionRunner, offer_latest
from roktrack.vision.types import (
    Detection,
    DetectionBatch,
    RoktrackClass,
    VisionCommand,
    filter_class,
    filter_ids,
    sort_big,
    sort_bottom,
    sort_left,
    sort_right,
    sort_small,
    sort_top,
)

CENTER = Detection(x1=155, y1=115, x2=165, y2=125, xc=160.0, yc=120.0, w=10, h=10, cls=0, prob=0.95)
LEFT_TOP_BIG = Detection(x1=145, y1=100, x2=155, y2=115, xc=150.0, yc=107.5, w=10, h=15, cls=0, prob=0.85)
RIGHT_BOTTOM_SMALL = Detection(x1=165, y1=125, x2=175, y2=130, xc=170.0, yc=127.5, w=10, h=5, cls=0, prob=0.75)


class TestSorting:
    dets = [CENTER, LEFT_TOP_BIG, RIGHT_BOTTOM_SMALL]

    def test_sort_helpers(self):
        assert sort_right(self.dets)[0] == RIGHT_BOTTOM_SMALL
        assert sort_left(self.dets)[0] == LEFT_TOP_BIG
        assert sort_top(self.dets)[0] == LEFT_TOP_BIG
        assert sort_bottom(self.dets)[0] == RIGHT_BOTTOM_SMALL
        assert sort_small(self.dets)[0] == RIGHT_BOTTOM_SMALL
        assert sort_big(self.dets)[0] == LEFT_TOP_BIG

    def test_filters(self):
        person = det(0, 0, 10, 10, cls=RoktrackClass.PERSON)
        tagged = det(0, 0, 10, 10, ids=(1, 4))
        assert filter_class([CENTER, person], RoktrackClass.PERSON) == [person]
        assert filter_ids([CENTER, tagged], 4) == [tagged]


class TestDetectionTypes:
    def test_from_xyxy(self):
        d = Detection.from_xyxy(10.7, 20.2, 30.9, 60.0, 0, 0.8)
        assert (d.x1, d.y1, d.x2, d.y2) == (10, 20, 30, 60)
        assert (d.w, d.h) == (20, 40)
        assert (d.xc, d.yc) == (20.0, 40.0)

    def test_empty_has_no_height(self):
        assert Detection.empty().h == 0

    def test_batch_scaled(self):
        batch = DetectionBatch([det(100, 100, 140, 200)], shooting_start_time=5, image_path="a.jpg", img_width=320)
        big = batch.scaled_to(640)
        assert big.img_width == 640
        assert big.detections[0].h == 200
        assert big.shooting_start_time == 5
        assert batch.scaled_to(320) is batch


class TestMerge:
    def test_iou_identical(self):
        assert iou(CENTER, CENTER) == pytest.approx(100 / 142)

    def test_iou_disjoint(self):
        assert iou(CENTER, det(0, 0, 5, 5)) == 0.0

    def test_overlapping_same_class_merged(self):
        a = det(100, 100, 150, 200, prob=0.9)
        b = det(102, 101, 152, 203, prob=0.8)
        merged = merge_bboxes([a, b])
        assert len(merged) == 1
        assert (merged[0].x1, merged[0].y1, merged[0].x2, merged[0].y2) == (100, 100, 152, 203)
        assert merged[0].prob == 0.9

    def test_other_class_kept(self):
        a = det(100, 100, 150, 200)
        b = det(100, 100, 150, 200, cls=RoktrackClass.PERSON)
        assert len(merge_bboxes([a, b])) == 2

    def test_low_overlap_kept(self):
        assert len(merge_bboxes([det(0, 0, 50, 50), det(40, 40, 90, 90)])) == 2


@pytest.fixture
def frame(tmp_path):
    path = tmp_path / "frame.jpg"
    cv2.imwrite(str(path), np.zeros((960, 1280, 3), dtype=np.uint8))
    return path


@pytest.fixture
def detector():
    return YoloDetector(parse_config(DEFAULT_CONFIG))


class TestYoloDetector:
    def test_boxes_scaled_filtered_sorted(self, detector, frame, monkeypatch):
        raw = [
            (400.0, 300.0, 480.0, 540.0, RoktrackClass.PYLON, 0.6),
            (800.0, 200.0, 840.0, 360.0, RoktrackClass.PYLON, 0.9),
            (100.0, 100.0, 200.0, 400.0, RoktrackClass.PERSON, 0.65),
        ]
        monkeypatch.setattr(detector, "_predict", lambda img, size: raw)
        dets = detector.infer(frame, 320)
        # Person is below its 0.7 class threshold
        assert [d.prob for d in dets] == [0.9, 0.6]
        assert (dets[0].x1, dets[0].y1, dets[0].x2, dets[0].y2) == (200, 50, 210, 90)

    def test_large_size(self, detector, frame, monkeypatch):
        monkeypatch.setattr(detector, "_predict", lambda img, size: [(640.0, 360.0, 680.0, 480.0, 0, 0.9)])
        d = detector.infer(frame, 640)[0]
        assert (d.x1, d.y1, d.h) == (320, 180, 60)

    def test_unsupported_size(self, detector, frame):
        with pytest.raises(VisionError):
            detector.infer(frame, 480)

    def test_missing_image(self, detector, tmp_path):
        with pytest.raises(VisionError):
            detector.infer(tmp_path / "nope.jpg", 320)

    def test_missing_model_file(self, detector, frame):
        with pytest.raises(VisionError):
            detector.infer(frame, 320)

    def test_animal_session_needs_models(self, detector):
        with pytest.raises(VisionError):
            detector.switch_session(Session.ANIMAL)
        assert detector.session is Session.PYLON

    def test_ocr_ids_ordered_left_to_right(self, detector, frame, tmp_path, monkeypatch):
        detector.switch_session(Session.PYLON_OCR)

        def predict(img, size):
            if size == 96:
                return [(30.0, 0.0, 40.0, 10.0, 7, 0.9), (5.0, 0.0, 15.0, 10.0, 2, 0.8), (50.0, 0.0, 60.0, 10.0, 9, 0.3)]
            return [(400.0, 300.0, 480.0, 540.0, 0, 0.9)]

        monkeypatch.setattr(detector, "_predict", predict)
        dets = detector.infer_with_ids(frame, 320, tmp_path / "crop.jpg")
        assert dets[0].ids == (2, 7)
        assert (tmp_path / "crop.jpg").is_file()

    def test_no_ocr_outside_ocr_session(self, detector, frame, tmp_path, monkeypatch):
        monkeypatch.setattr(detector, "_predict", lambda img, size: [(400.0, 300.0, 480.0, 540.0, 0, 0.9)])
        dets = detector.infer_with_ids(frame, 320, tmp_path / "crop.jpg")
        assert dets[0].ids == ()


class FakeDetector:
    def __init__(self, dets=None, error=None) -> None:
        self.dets = dets or []
        self.error = error
        self.sessions: list[Session] = []
        self.sizes: list[int] = []

    def switch_session(self, session: Session) -> None:
        self.sessions.append(session)

    def infer_with_ids(self, image_path, size, crop_path):
        self.sizes.append(size)
        if self.error:
            raise self.error
        return list(self.dets)


class TestVisionRunner:
    def _runner(self, frame, paths, detector, on=True):
        tx: queue.Queue = queue.Queue(maxsize=1)
        commands: queue.Queue = queue.Queue()
        runner = VisionRunner(StillImageSource(frame), detector, paths, tx, commands, on=on, clock=lambda: 1234)
        return runner, tx, commands

    def test_step_pushes_batch(self, frame, paths):
        runner, tx, _ = self._runner(frame, paths, FakeDetector([det(0, 0, 10, 10)]))
        runner.step()
        batch = tx.get_nowait()
        assert batch.shooting_start_time == 1234
        assert batch.img_width == 320
        assert batch.image_path == str(paths.last_image)
        assert paths.last_image.is_file()

    def test_commands_applied(self, frame, paths):
        detector = FakeDetector()
        runner, tx, commands = self._runner(frame, paths, detector)
        commands.put(VisionCommand.SWITCH_SZ_640)
        runner.step()
        commands.put(VisionCommand.SWITCH_SESSION_PYLON_OCR)
        runner.step()
        assert detector.sizes == [640, 640]
        assert detector.sessions == [Session.PYLON_OCR]
        assert tx.get_nowait().img_width == 640

    def test_off_gates_capture(self, frame, paths):
        detector = FakeDetector()
        runner, tx, commands = self._runner(frame, paths, detector)
        commands.put(VisionCommand.OFF)
        assert runner.step() is None
        assert tx.empty()
        commands.put(VisionCommand.ON)
        assert runner.step() is not None

    def test_failure_yields_empty_batch(self, frame, paths):
        runner, tx, _ = self._runner(frame, paths, FakeDetector(error=VisionError("no model")))
        runner.step()
        assert tx.get_nowait().detections == []

    def test_offer_latest_replaces_stale(self):
        tx: queue.Queue = queue.Queue(maxsize=1)
        offer_latest(tx, "old")
        offer_latest(tx, "new")
        assert tx.get_nowait() == "new"

"""Fill mode end-to-end ticks against the mock device."""

from __future__ import annotations

import pytest

from conftest import det, drain
from roktrack.com.messages import ChildMsg
from roktrack.pilot.fill import OCR_LOCK_WAIT_MS, FillHandler, pass_through
from roktrack.pilot.state import Phase, PilotState
from roktrack.vision.types import DetectionBatch, RoktrackClass, VisionCommand


def _batch(*dets, t=0):
    return DetectionBatch(detections=list(dets), shooting_start_time=t, image_path="/tmp/vision.jpg")


@pytest.fixture
def fill(clock):
    return FillHandler(clock=clock)


class TestFillScenarios:
    def test_cold_start_marker_ahead_proceeds(self, fill, state, device, vision_tx, property):
        assert state.turn_count == -1
        assert state.target_height == 216
        fill.handle(state, device, _batch(det(150, 100, 170, 172)), vision_tx, property)
        assert device.calls == [("work_on",), ("forward", 0)]
        assert state.diff == 0.0
        assert state.constant == 0.005

    def test_marker_too_close_reaches(self, fill, state, device, vision_tx, property):
        fill.handle(state, device, _batch(det(150, 10, 170, 230)), vision_tx, property)
        assert device.calls == [("work_on",), ("pause",), ("left", 500)]
        assert device.spoken == ["close_to_cone"]
        assert state.ex_height == 220
        assert state.target_height == 0
        assert state.turn_count == 1
        assert state.msg is ChildMsg.REACH_TARGET

    def test_marker_lost_while_turning(self, fill, state, device, vision_tx, property):
        state.turn_count = 3
        fill.handle(state, device, _batch(), vision_tx, property)
        assert state.msg is ChildMsg.TARGET_LOST
        assert state.ex_height == 264
        assert device.calls[-1] == ("left", 500)
        assert state.turn_count == 4

    def test_lap_end_inverts_phase(self, fill, state, device, vision_tx, property):
        state.rest = -0.01
        state.turn_count = 2
        state.ex_height = 70
        state.constant = 0.005
        fill.handle(state, device, _batch(det(150, 100, 170, 150)), vision_tx, property)
        assert state.phase is Phase.CW
        assert state.turn_count == -1
        assert state.rest == 1.0
        assert device.calls[-1] == ("pause",)

    def test_second_lap_end_completes(self, fill, state, device, vision_tx, property):
        state.phase = Phase.CW
        state.rest = -0.01
        state.turn_count = 2
        state.ex_height = 70
        state.constant = 0.005
        fill.handle(state, device, _batch(det(150, 100, 170, 150)), vision_tx, property)
        assert state.on is False
        assert state.msg is ChildMsg.MISSION_COMPLETE
        assert device.calls[-1] == ("stop",)

    def test_nothing_seen_stands(self, fill, state, device, vision_tx, property):
        fill.handle(state, device, _batch(), vision_tx, property)
        assert state.img_width == 640
        assert state.turn_count == 0
        assert drain(vision_tx) == [VisionCommand.SWITCH_SZ_640]

    def test_turn_cap_halts(self, fill, state, device, vision_tx, property):
        state.turn_count = 10
        fill.handle(state, device, _batch(), vision_tx, property)
        assert state.on is False
        assert state.msg is ChildMsg.TARGET_NOT_FOUND


class TestFillSelection:
    def test_ccw_picks_rightmost(self, fill, state, device, vision_tx, property):
        left = det(10, 100, 30, 150)
        right = det(200, 100, 220, 150)
        fill.handle(state, device, _batch(left, right), vision_tx, property)
        # xc = 210 -> diff = -50/320, a hard right
        assert ("right", 100) in device.calls

    def test_cw_picks_leftmost(self, fill, state, device, vision_tx, property):
        state.phase = Phase.CW
        left = det(10, 100, 30, 150)
        right = det(200, 100, 220, 150)
        fill.handle(state, device, _batch(left, right), vision_tx, property)
        assert ("left", 100) in device.calls

    def test_non_pylons_ignored(self, fill, state, device, vision_tx, property):
        tree = det(150, 10, 170, 230, cls=5)
        fill.handle(state, device, _batch(tree), vision_tx, property)
        assert state.turn_count == 0


class TestPassThrough:
    def test_ccw_inner_second_marker(self):
        state = PilotState(turn_count=-1, target_height=100)
        near = det(200, 10, 240, 130)
        far = det(150, 100, 160, 130)
        assert pass_through(state, [near, far]) == far

    def test_not_while_turning(self):
        state = PilotState(turn_count=2, target_height=100)
        assert pass_through(state, [det(200, 10, 240, 130), det(150, 100, 160, 130)]) is None

    def test_near_marker_not_reached(self):
        state = PilotState(turn_count=-1, target_height=200)
        assert pass_through(state, [det(200, 10, 240, 130), det(150, 100, 160, 130)]) is None

    def test_near_marker_exactly_at_target(self):
        state = PilotState(turn_count=-1, target_height=120)
        assert pass_through(state, [det(200, 10, 240, 130), det(150, 100, 160, 130)]) is None

    def test_ccw_outer_second_marker(self):
        state = PilotState(turn_count=-1, target_height=100)
        assert pass_through(state, [det(200, 10, 240, 130), det(50, 100, 60, 130)]) is None

    def test_cw_mirrored(self):
        state = PilotState(turn_count=-1, target_height=100, phase=Phase.CW)
        far = det(150, 100, 160, 130)
        assert pass_through(state, [det(20, 10, 60, 130), far]) == far


class TestOcrLockIn:
    def test_waits_then_latches(self, fill, state, device, vision_tx, ocr_property, clock):
        tagged = det(150, 100, 170, 172, ids=(3, 1))
        fill.handle(state, device, _batch(tagged), vision_tx, ocr_property)
        assert device.calls == [("stop",)]
        assert device.spoken == ["switch_ocr_mode"]
        assert state.marker_id is None

        clock.advance(OCR_LOCK_WAIT_MS - 1)
        fill.handle(state, device, _batch(tagged), vision_tx, ocr_property)
        assert device.calls[-1] == ("stop",)
        assert state.marker_id is None

        clock.advance(1)
        device.clear()
        fill.handle(state, device, _batch(tagged), vision_tx, ocr_property)
        assert state.marker_id == 3
        assert device.calls == [("work_on",), ("forward", 0)]

    def test_untagged_markers_ignored_until_tag(self, fill, state, device, vision_tx, ocr_property):
        fill.handle(state, device, _batch(det(150, 100, 170, 172)), vision_tx, ocr_property)
        assert device.calls == [("work_on",), ("forward", 0)]
        assert state.marker_id is None

    def test_locked_id_filters(self, fill, state, device, vision_tx, ocr_property):
        state.marker_id = 2
        other = det(150, 10, 170, 230, ids=(5,))
        fill.handle(state, device, _batch(other), vision_tx, ocr_property)
        # The only marker carries another id, so nothing is selected
        assert state.img_width == 640


class TestFillRisks:
    def test_person_stops(self, fill, state, device, vision_tx, property):
        person = det(100, 50, 140, 200, cls=RoktrackClass.PERSON)
        fill.handle(state, device, _batch(person, det(150, 100, 170, 172)), vision_tx, property)
        assert device.calls == [("stop",)]
        assert state.msg is ChildMsg.PERSON_FOUND_PAUSE
        assert device.spoken == ["person_detecting"]

    def test_other_robot_stops(self, fill, state, device, vision_tx, property):
        robot = det(100, 50, 140, 200, cls=RoktrackClass.ROKTRACK)
        fill.handle(state, device, _batch(robot), vision_tx, property)
        assert device.calls == [("stop",)]

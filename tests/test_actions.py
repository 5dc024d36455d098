"""Tests for the base actions and the action phase table."""

from __future__ import annotations

import pytest

from conftest import det, drain
from roktrack.com.messages import ChildMsg
from roktrack.errors import DeviceError
from roktrack.pilot import actions
from roktrack.pilot.phases import ActPhase, assess_situation
from roktrack.pilot.state import Phase, PilotState
from roktrack.vision.types import Detection, VisionCommand


class TestGetDiff:
    def test_right_of_centre(self):
        assert actions.get_diff(192, 50, 240, 320, Phase.CCW) == pytest.approx(-0.1)

    def test_left_of_centre(self):
        assert actions.get_diff(96, 50, 240, 320, Phase.CCW) == pytest.approx(0.2)

    def test_centred(self):
        assert actions.get_diff(160, 72, 240, 320, Phase.CCW) == 0.0

    def test_tall_marker_offset_follows_phase(self):
        ccw = actions.get_diff(160, 130, 240, 320, Phase.CCW)
        cw = actions.get_diff(160, 130, 240, 320, Phase.CW)
        assert ccw == pytest.approx(0.2)
        assert cw == pytest.approx(-0.2)


class TestCalcConstant:
    def test_capped(self):
        assert actions.calc_constant(0.0, 240, 72) == 0.005

    def test_small_marker(self):
        assert actions.calc_constant(0.0, 240, 6) == pytest.approx(0.0025)

    def test_computed_once(self):
        assert actions.calc_constant(0.003, 240, 72) == 0.003


class TestScale:
    def test_upscale_doubles_heights(self, vision_tx):
        state = PilotState(ex_height=100, target_height=216)
        actions.upscale(state, vision_tx)
        assert state.ex_height == 200
        assert state.target_height == 432
        assert drain(vision_tx) == [VisionCommand.SWITCH_SZ_640]

    def test_upscale_at_large_is_noop(self, vision_tx):
        state = PilotState()
        state.rescale(640)
        actions.upscale(state, vision_tx)
        assert state.img_width == 640
        assert drain(vision_tx) == []

    def test_downscale(self, vision_tx):
        state = PilotState(target_height=216)
        state.rescale(640)
        actions.downscale(state, vision_tx)
        assert (state.img_width, state.target_height) == (320, 216)
        assert drain(vision_tx) == [VisionCommand.SWITCH_SZ_320]


class TestProceed:
    def test_straight(self, state, device, vision_tx):
        actions.proceed(state, device, det(150, 100, 170, 172), vision_tx)
        assert device.calls == [("forward", 0)]
        assert state.diff == 0.0
        assert state.marker_height == 72

    def test_soft_left_trims_power(self, state, device, vision_tx):
        # xc = 140 -> diff = 20/320 = 0.0625
        actions.proceed(state, device, det(130, 100, 150, 172), vision_tx)
        assert device.calls == [("adjust_power", -0.00625, 0.00625), ("forward", 0)]

    def test_hard_right_turns_in_place(self, state, device, vision_tx):
        # xc = 260 -> diff = -100/320
        actions.proceed(state, device, det(250, 100, 270, 172), vision_tx)
        assert device.calls[0] == ("right", actions.STEER_MS)
        assert device.calls[1] == ("adjust_power", 0.03125, -0.03125)

    def test_downscales_when_marker_big_enough(self, state, device, vision_tx):
        state.rescale(640)
        actions.proceed(state, device, det(300, 100, 340, 150), vision_tx)
        assert state.img_width == 320
        assert drain(vision_tx) == [VisionCommand.SWITCH_SZ_320]

    def test_keeps_large_for_tiny_marker(self, state, device, vision_tx):
        state.rescale(640)
        actions.proceed(state, device, det(318, 100, 322, 110), vision_tx)
        assert state.img_width == 640


class TestTransitions:
    def test_escape_queues_sequence(self, state, device):
        actions.escape(state, device)
        assert device.calls == [
            ("sequence", [("backward", 2000), ("left", 500), ("forward", 2000), ("right", 500)])
        ]
        assert device.in_sequence()

    def test_escape_cw_turns_right_first(self, state, device):
        state.phase = Phase.CW
        actions.escape(state, device)
        assert device.calls[0][1][1] == ("right", 500)

    def test_halt(self, state, device, vision_tx):
        actions.halt(state, device, vision_tx)
        assert state.on is False
        assert state.msg is ChildMsg.TARGET_NOT_FOUND
        assert device.names() == ["stop"]
        assert device.spoken == ["cone_not_found"]
        assert drain(vision_tx) == [VisionCommand.OFF]

    def test_set_new_target_drains_rest(self, state, device):
        state.constant = 0.005
        state.turn_count = 3
        actions.set_new_target(state, device, det(150, 150, 170, 200))
        assert state.rest == pytest.approx(0.995)
        assert state.target_height == int(50 + (216 - 50) * 0.995**2)
        assert state.turn_count == 0
        assert state.msg is ChildMsg.NEW_TARGET_FOUND
        assert device.spoken == ["new_cone_found"]

    def test_keep_turn_upscales_after_four(self, state, device, vision_tx):
        state.turn_count = 5
        actions.keep_turn(state, device, vision_tx)
        assert state.turn_count == 6
        assert state.img_width == 640
        assert device.calls == [("left", 500)]

    def test_start_turn(self, state, device):
        state.turn_count = 0
        actions.start_turn(state, device)
        assert state.turn_count == 1
        assert state.ex_height == 264
        assert state.target_height == 0
        assert device.calls == [("left", 500)]

    def test_stand_upscales(self, state, vision_tx):
        actions.stand(state, vision_tx)
        assert state.img_width == 640
        assert state.msg is ChildMsg.TARGET_LOST
        assert state.turn_count == 0

    def test_invert_phase_returns_vision_to_small(self, state, device, vision_tx):
        actions.upscale(state, vision_tx)
        drain(vision_tx)
        actions.invert_phase(state, device, vision_tx)
        assert drain(vision_tx) == [VisionCommand.SWITCH_SZ_320]
        assert (state.img_width, state.img_height) == (320, 240)
        assert state.phase is Phase.CW
        assert device.calls == [("pause",)]

    def test_invert_phase_at_small_sends_nothing(self, state, device, vision_tx):
        actions.invert_phase(state, device, vision_tx)
        assert drain(vision_tx) == []

    def test_device_error_reported(self, state, device):
        def broken(ms=0):
            raise DeviceError("pwm gone")

        device.left = broken
        result = actions.start_turn(state, device)
        assert result.success is False
        assert "pwm gone" in result.details


class TestAssessSituation:
    def test_cap_exceeded(self):
        state = PilotState(turn_count=7)
        assert assess_situation(state, Detection.empty()) is ActPhase.TURN_COUNT_EXCEEDED

    def test_fill_cap_is_higher(self):
        state = PilotState(turn_count=7)
        assert assess_situation(state, Detection.empty(), cap=10) is ActPhase.TURN_MARKER_INVISIBLE

    def test_turn_keep_while_same_marker(self):
        state = PilotState(turn_count=2, ex_height=70)
        assert assess_situation(state, det(0, 0, 10, 68)) is ActPhase.TURN_KEEP

    def test_turn_marker_found(self):
        state = PilotState(turn_count=2, ex_height=70)
        assert assess_situation(state, det(0, 0, 10, 50)) is ActPhase.TURN_MARKER_FOUND

    def test_negative_rest_without_invert(self):
        state = PilotState(turn_count=2, ex_height=70, rest=-0.01)
        assert assess_situation(state, det(0, 0, 10, 50)) is ActPhase.TURN_MARKER_FOUND

    @pytest.mark.parametrize(
        "phase,expected", [(Phase.CCW, ActPhase.INVERT_PHASE), (Phase.CW, ActPhase.MISSION_COMPLETE)]
    )
    def test_lap_end(self, phase, expected):
        state = PilotState(turn_count=2, ex_height=70, rest=-0.01, phase=phase)
        assert assess_situation(state, det(0, 0, 10, 50), cap=10, allow_invert=True) is expected

    def test_stand_and_start_turn(self):
        assert assess_situation(PilotState(turn_count=-1), Detection.empty()) is ActPhase.STAND
        assert assess_situation(PilotState(turn_count=0), Detection.empty()) is ActPhase.START_TURN

    def test_reach_and_proceed(self):
        state = PilotState()
        assert assess_situation(state, det(0, 0, 10, 216)) is ActPhase.REACH_MARKER
        assert assess_situation(state, det(0, 0, 10, 215)) is ActPhase.PROCEED

"""Message codes exchanged with peers and the controller."""

from __future__ import annotations

from enum import IntEnum


class ChildMsg(IntEnum):
    """Status messages a robot broadcasts about itself."""

    HALT = 0
    BUMPED = 1
    PERSON_FOUND_PAUSE = 2
    REACH_TARGET = 3
    TARGET_LOST = 4
    NEW_TARGET_FOUND = 5
    FROM_CW_TO_CCW = 6
    PI_TEMP_HIGH_HALT = 7
    MISSION_COMPLETE = 8
    TARGET_NOT_FOUND = 9
    LEADER_WAITING = 10
    TRAILER_PREPARED = 11
    CLIMB_UP = 12
    CLIMB_DOWN = 13
    ACK = 14
    PERSON_FOUND_WARN = 15
    ANIMAL_FOUND = 16
    UNKNOWN = 255

    @classmethod
    def from_u8(cls, value: int) -> "ChildMsg":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class ParentMsg(IntEnum):
    """Commands sent by the controller (identifier 0)."""

    OFF = 0
    ON = 1
    RESET = 2
    STOP = 3
    FORWARD = 4
    BACKWARD = 5
    LEFT = 6
    RIGHT = 7
    FILL = 10
    ONEWAY = 11
    CLIMB = 12
    AROUND = 13
    MONITOR_PERSON = 14
    MONITOR_ANIMAL = 15
    ROUND_TRIP = 16
    FOLLOW_PERSON = 17

    @classmethod
    def from_u8(cls, value: int) -> "ParentMsg | None":
        """None for codes the controller never sends."""
        try:
            return cls(value)
        except ValueError:
            return None


CONTROLLER_ID = 0
BROADCAST_ID = 255

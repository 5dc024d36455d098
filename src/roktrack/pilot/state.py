"""Pilot state - the single mutable record owned by the drive thread."""

from __future__ import annotations

import dataclasses
import logging
import random
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Iterable, Mapping

from roktrack.com.messages import ChildMsg

if TYPE_CHECKING:
    from roktrack.com.payload import Neighbor

logger = logging.getLogger(__name__)

SMALL_WIDTH = 320
LARGE_WIDTH = 640
# Identifier 0 is the controller, 250-254 reserved, 255 broadcast
IDENTIFIER_RANGE = range(1, 250)


class Mode(IntEnum):
    """Operating modes. Values are the u8 codes used on the wire."""

    FILL = 0
    ONEWAY = 1
    CLIMB = 2
    AROUND = 3
    MONITOR_PERSON = 4
    MONITOR_ANIMAL = 5
    ROUND_TRIP = 6
    FOLLOW_PERSON = 7
    UNKNOWN = 255

    @classmethod
    def from_u8(cls, value: int) -> "Mode":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    def to_u8(self) -> int:
        return int(self.value)


def parse_mode(value: str | Mode) -> Mode:
    """Parse config name (e.g. 'monitor_person', 'oneway') to Mode. Unknown names map to UNKNOWN."""
    if isinstance(value, Mode):
        return value
    s = (value or "").strip().lower().replace("-", "_")
    for m in Mode:
        if m.name.lower() == s or m.name.lower().replace("_", "") == s.replace("_", ""):
            return m
    return Mode.UNKNOWN


class Phase(Enum):
    """Lap direction. CCW laps turn left at each marker, CW laps turn right."""

    CCW = "ccw"
    CW = "cw"


def _random_identifier() -> int:
    return random.choice(IDENTIFIER_RANGE)


def _initial_target_height(img_height: int = 240) -> int:
    return int(img_height * 0.9)


@dataclass
class PilotState:
    """Robot state shared by the handlers. Only the drive thread mutates it."""

    on: bool = True
    mode: Mode = Mode.FILL
    # -1 waiting, 0 just reached a marker, 1..N turning
    turn_count: int = -1
    # Height of the previous target; a smaller marker while turning means we turned past it
    ex_height: int = 0
    # Remaining work fraction, drained by `constant` at each new target
    rest: float = 1.0
    # Marker height that counts as arrived
    target_height: int = field(default_factory=_initial_target_height)
    phase: Phase = Phase.CCW
    constant: float = 0.0
    marker_id: int | None = None
    pi_temp: float = 0.0
    msg: ChildMsg = ChildMsg.UNKNOWN
    identifier: int = field(default_factory=_random_identifier)
    img_width: int = SMALL_WIDTH
    img_height: int = SMALL_WIDTH * 3 // 4
    # Last steering signal and marker pixel height, broadcast for the controller UI
    diff: float = 0.0
    marker_height: int = 0

    def reset(self) -> None:
        """Back to constructor defaults, keeping identity, mode, on/off and the temperature sample."""
        fresh = PilotState(
            on=self.on,
            mode=self.mode,
            pi_temp=self.pi_temp,
            identifier=self.identifier,
        )
        for f in dataclasses.fields(self):
            setattr(self, f.name, getattr(fresh, f.name))

    def invert_phase(self) -> None:
        """Start the CW lap: counters reset, phase flipped."""
        self.reset()
        self.phase = Phase.CW

    def rescale(self, new_width: int) -> None:
        """Switch processing resolution, scaling tracked heights by the width ratio in one step."""
        if new_width not in (SMALL_WIDTH, LARGE_WIDTH):
            raise ValueError(f"Unsupported image width {new_width}")
        ratio = new_width / self.img_width
        self.img_width = new_width
        self.img_height = new_width * 3 // 4
        self.ex_height = int(self.ex_height * ratio)
        self.target_height = int(self.target_height * ratio)

    def resolve_identifier(self, used: Iterable[int]) -> int:
        """Draw a new identifier if ours is already taken by a neighbor."""
        taken = set(used)
        if self.identifier in taken:
            pool = [i for i in IDENTIFIER_RANGE if i not in taken]
            if not pool:
                logger.warning("No free identifier, keeping %d", self.identifier)
                return self.identifier
            old = self.identifier
            self.identifier = random.choice(pool)
            logger.info("Identifier collision on %d, now %d", old, self.identifier)
        return self.identifier

    def dump(
        self,
        neighbors: Mapping[int, "Neighbor"],
        *,
        appearance: int = 0,
        left_power: float = 0.0,
        right_power: float = 0.0,
    ) -> bytes:
        """Resolve identifier collisions, then encode the broadcast payload."""
        from roktrack.com.payload import encode_state

        self.resolve_identifier(neighbors.keys())
        return encode_state(self, appearance=appearance, left_power=left_power, right_power=right_power)

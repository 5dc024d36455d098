"""Broadcast payload: 23-byte state encoding and Neighbor decoding."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from roktrack.com.messages import BROADCAST_ID, CONTROLLER_ID
from roktrack.errors import PayloadError

if TYPE_CHECKING:
    from roktrack.pilot.state import PilotState

logger = logging.getLogger(__name__)

PAYLOAD_LEN = 23
# identifier + state/rest + pi_temp + mode + msg + dest
MIN_NEIGHBOR_LEN = 6


def _u8(value: float) -> int:
    return max(0, min(int(value), 255))


def pack_state_rest(on: bool, rest: float) -> int:
    """High bit = on, low 7 bits = rest as percent (negative rest reads as 0)."""
    pct = min(int(max(rest, 0.0) * 100), 127)
    return (int(bool(on)) << 7) | pct


def unpack_state_rest(byte: int) -> tuple[bool, float]:
    return bool(byte >> 7), (byte & 0x7F) / 100


def encode_state(
    state: "PilotState",
    *,
    appearance: int = 0,
    left_power: float = 0.0,
    right_power: float = 0.0,
) -> bytes:
    """Serialize PilotState into the fixed 23-byte broadcast payload."""
    diff = max(-1.0, min(state.diff, 1.0))
    height_pct = state.marker_height / state.img_height * 100 if state.img_height else 0
    head = [
        pack_state_rest(state.on, state.rest),
        _u8(state.pi_temp),
        state.mode.to_u8(),
        int(state.msg),
        BROADCAST_ID,
        _u8(appearance),
        _u8(left_power * 100),
        _u8(right_power * 100),
        _u8((diff + 1) * 127),
        _u8(height_pct),
    ]
    return bytes(head + [0] * (PAYLOAD_LEN - len(head)))


@dataclass
class Neighbor:
    """Last known state of a peer, keyed by identifier. identifier 0 is the controller."""

    identifier: int
    state: bool
    rest: float
    pi_temp: int
    mode: int
    msg: int
    dest: int = BROADCAST_ID
    appearance: int = 0
    mac: str = ""
    rssi: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def is_controller(self) -> bool:
        return self.identifier == CONTROLLER_ID

    @property
    def is_broadcast(self) -> bool:
        return self.dest == BROADCAST_ID

    @classmethod
    def from_manufacture_data(cls, data: bytes) -> "Neighbor":
        """Decode identifier byte + payload (manufacturer id already stripped)."""
        if len(data) < MIN_NEIGHBOR_LEN:
            raise PayloadError(f"Manufacturer data too short: {len(data)} bytes")
        state, rest = unpack_state_rest(data[1])
        return cls(
            identifier=data[0],
            state=state,
            rest=rest,
            pi_temp=data[2],
            mode=data[3],
            msg=data[4],
            dest=data[5],
            appearance=data[6] if len(data) > 6 else 0,
        )


def to_signed(byte: int) -> int:
    """RSSI arrives as an unsigned byte; it is a signed dBm value."""
    return byte - 256 if byte > 127 else byte


def parse_advertising_report(raw: bytes) -> Neighbor | None:
    """Decode one HCI LE advertising report carrying our 0xFFFF manufacturer data. None if not ours."""
    if len(raw) <= 22 or raw[0] != 0x04 or raw[1] != 0x3E or raw[20] != 0xFF or raw[21] != 0xFF:
        return None
    neighbor = Neighbor.from_manufacture_data(raw[23:])
    neighbor.mac = ":".join(f"{b:02X}" for b in reversed(raw[7:13]))
    neighbor.rssi = to_signed(raw[-1])
    return neighbor

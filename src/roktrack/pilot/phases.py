"""Action phases. One is assessed per tick from the turn counter and the selected marker.

Normal Fill flow:

    Proceed * n -> ReachMarker -> TurnKeep -> TurnMarkerInvisible * n -> TurnMarkerFound -> Proceed * n

Marker lost while idle: Stand (upscale, look again) -> StartTurn -> TurnMarkerInvisible ... ->
TurnCountExceeded (halt). Laps: CCW -> InvertPhase -> CW -> MissionComplete.
"""

from __future__ import annotations

from enum import Enum

from roktrack.pilot.state import Phase, PilotState
from roktrack.vision.types import Detection

FILL_TURN_CAP = 10
DEFAULT_TURN_CAP = 7
# Marker must shrink by this fraction of the frame height to count as a different one
PASSED_MARGIN = 0.015


class ActPhase(Enum):
    TURN_COUNT_EXCEEDED = "turn_count_exceeded"
    TURN_MARKER_INVISIBLE = "turn_marker_invisible"
    TURN_MARKER_FOUND = "turn_marker_found"
    INVERT_PHASE = "invert_phase"
    MISSION_COMPLETE = "mission_complete"
    TURN_KEEP = "turn_keep"
    STAND = "stand"
    START_TURN = "start_turn"
    REACH_MARKER = "reach_marker"
    PROCEED = "proceed"


def assess_situation(
    state: PilotState,
    marker: Detection,
    cap: int = DEFAULT_TURN_CAP,
    allow_invert: bool = False,
) -> ActPhase | None:
    """Decide this tick's action. allow_invert enables lap inversion / completion (Fill only)."""
    if state.turn_count >= cap:
        return ActPhase.TURN_COUNT_EXCEEDED
    if state.turn_count > 0:
        if marker.h == 0:
            return ActPhase.TURN_MARKER_INVISIBLE
        if marker.h < state.ex_height - state.img_height * PASSED_MARGIN:
            if allow_invert and state.rest < 0:
                return ActPhase.MISSION_COMPLETE if state.phase is Phase.CW else ActPhase.INVERT_PHASE
            return ActPhase.TURN_MARKER_FOUND
        return ActPhase.TURN_KEEP
    if marker.h == 0:
        if state.turn_count == -1:
            return ActPhase.STAND
        if state.turn_count == 0:
            return ActPhase.START_TURN
        return None
    if marker.h >= state.target_height:
        return ActPhase.REACH_MARKER
    return ActPhase.PROCEED

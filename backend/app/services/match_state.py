"""
Match state machine (logical view over the persisted flags).

NOT_STARTED -> RUNNING -> AWAITING_RESULT -> COMPLETED, plus RUNNING -> COMPLETED
and NOT_STARTED -> COMPLETED (walkover, result recorded without a start).
AWAITING_RESULT is advisory: a winner may be recorded from RUNNING or
AWAITING_RESULT. Nothing moves backward except the explicit result
correction (clearing a recorded winner).
"""
from enum import Enum
from typing import Dict, FrozenSet

from app.models.match import Match


class MatchState(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    RUNNING = "RUNNING"
    AWAITING_RESULT = "AWAITING_RESULT"
    COMPLETED = "COMPLETED"


ALLOWED_TRANSITIONS: Dict[MatchState, FrozenSet[MatchState]] = {
    MatchState.NOT_STARTED: frozenset({MatchState.RUNNING, MatchState.COMPLETED}),
    MatchState.RUNNING: frozenset({MatchState.AWAITING_RESULT, MatchState.COMPLETED}),
    MatchState.AWAITING_RESULT: frozenset({MatchState.COMPLETED}),
    MatchState.COMPLETED: frozenset(),
}


def match_state(match: Match) -> MatchState:
    """Derive the lifecycle state. Completion wins over every other flag."""
    if match.is_completed:
        return MatchState.COMPLETED
    if match.actual_start_time is None:
        return MatchState.NOT_STARTED
    if match.awaiting_result:
        return MatchState.AWAITING_RESULT
    return MatchState.RUNNING


def can_transition(current: MatchState, new: MatchState) -> bool:
    return new in ALLOWED_TRANSITIONS[current]

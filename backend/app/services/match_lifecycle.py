"""
Match lifecycle operations: start, record winner, submit result.

Each operation has two phases:

1. One mandatory, conditional write on the match row. It either lands or
   the operation raises; a match is never partially started or completed.
2. Advisory resource-ledger writes (claim on start, release on completion).
   Each is independent and failures are logged, never rolled back. The next
   reconciliation sweep corrects any drift they leave behind.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from app.models.match import Match
from app.services.clock import to_naive_utc, utcnow
from app.services.errors import (
    AlreadyCompleted,
    AlreadyStarted,
    ConditionFailed,
    InvalidResult,
    LifecycleError,
    MatchCodeInvalid,
)
from app.services.match_store import MatchStore, UpdateOutcome
from app.services.resource_ledger import ResourceLedger, ResourceRef, resources_for

logger = logging.getLogger(__name__)


@dataclass
class StartResult:
    match: Match
    started_at: datetime
    claimed: List[ResourceRef] = field(default_factory=list)
    failed_claims: List[Tuple[ResourceRef, str]] = field(default_factory=list)


@dataclass
class CompletionResult:
    match: Match
    released: List[ResourceRef] = field(default_factory=list)


@dataclass
class ResultSubmission:
    winner_entry_id: Optional[int] = None
    entry1_score: Optional[int] = None
    entry2_score: Optional[int] = None
    entry1_disqualified: bool = False
    entry2_disqualified: bool = False


class MatchLifecycle:
    def __init__(self, store: MatchStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock
        self.ledger = ResourceLedger(store)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def _check_startable(self, match: Match) -> None:
        if match.is_completed:
            raise AlreadyCompleted(match.id)
        if match.actual_start_time is not None:
            raise AlreadyStarted(match.id)

    def start_match(self, match_id: int) -> StartResult:
        """Start a match and claim its umpire and court.

        Raises MatchNotFound, AlreadyCompleted or AlreadyStarted (checked in
        that order). Resource claims are best-effort.
        """
        match = self.store.get_match(match_id)
        self._check_startable(match)

        now = self.clock()
        try:
            match = self.store.update_match(
                match_id,
                {"actual_start_time": to_naive_utc(now)},
                where={"actual_start_time": None, "is_completed": False},
            )
        except ConditionFailed:
            # Lost a race with another start or a result; report what happened
            self._check_startable(self.store.get_match(match_id))
            raise

        logger.info("Match %s started at %s", match_id, now.isoformat())
        result = StartResult(match=match, started_at=now)

        for ref in resources_for(match):
            try:
                self.ledger.claim(ref, match_id, now)
                result.claimed.append(ref)
            except LifecycleError as exc:
                logger.error(
                    "Failed to update %s %s idle status for match %s: %s",
                    ref.kind.value,
                    ref.resource_id,
                    match_id,
                    exc,
                )
                result.failed_claims.append((ref, str(exc)))

        return result

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _release_after_completion(self, match: Match) -> List[ResourceRef]:
        return [ref for ref, outcome in self.ledger.release_all(match) if outcome is UpdateOutcome.APPLIED]

    def record_winner(self, match_id: int, winner_entry_id: Optional[int]) -> CompletionResult:
        """Set the winner and derive is_completed in one write.

        None clears a recorded winner (result correction) and reopens the match.
        """
        self.store.get_match(match_id)
        match = self.store.update_match(
            match_id,
            {"winner_entry_id": winner_entry_id, "is_completed": winner_entry_id is not None},
        )

        if not match.is_completed:
            logger.info("Winner cleared for match %s", match_id)
            return CompletionResult(match=match)

        logger.info("Match %s completed, winner entry %s", match_id, winner_entry_id)
        return CompletionResult(match=match, released=self._release_after_completion(match))

    def validate_match_code(self, match_id: int, match_code: str) -> bool:
        match = self.store.get_match(match_id)
        if match.is_completed:
            raise AlreadyCompleted(match_id)
        if not match.code_valid:
            raise MatchCodeInvalid(match_id)
        return match.match_code == match_code

    def submit_result(self, match_id: int, submission: ResultSubmission) -> CompletionResult:
        """Umpire result submission: winner (or disqualification), scores, code invalidation."""
        match = self.store.get_match(match_id)
        if match.is_completed:
            raise AlreadyCompleted(match_id)
        if not match.code_valid:
            raise MatchCodeInvalid(match_id)

        winner_entry_id = _resolve_winner(match, submission)

        fields = {
            "winner_entry_id": winner_entry_id,
            "is_completed": True,
            "code_valid": False,
        }
        if submission.entry1_score is not None:
            fields["entry1_score"] = submission.entry1_score
        if submission.entry2_score is not None:
            fields["entry2_score"] = submission.entry2_score

        try:
            match = self.store.update_match(match_id, fields, where={"is_completed": False})
        except ConditionFailed:
            raise AlreadyCompleted(match_id)

        logger.info("Result submitted for match %s, winner entry %s", match_id, winner_entry_id)
        return CompletionResult(match=match, released=self._release_after_completion(match))


def _resolve_winner(match: Match, submission: ResultSubmission) -> int:
    if submission.entry1_disqualified and submission.entry2_disqualified:
        raise InvalidResult("Both entries cannot be disqualified.")

    winner_entry_id = submission.winner_entry_id
    if submission.entry1_disqualified:
        if match.entry2_id is None:
            raise InvalidResult("Cannot disqualify entry 1 when entry 2 is not assigned.")
        winner_entry_id = match.entry2_id
    elif submission.entry2_disqualified:
        if match.entry1_id is None:
            raise InvalidResult("Cannot disqualify entry 2 when entry 1 is not assigned.")
        winner_entry_id = match.entry1_id

    if winner_entry_id is None:
        raise InvalidResult("A winner must be assigned before completing the match.")
    if winner_entry_id not in (match.entry1_id, match.entry2_id) and None not in (match.entry1_id, match.entry2_id):
        raise InvalidResult(f"Entry {winner_entry_id} is not playing in match {match.id}")
    return winner_entry_id

"""
Reconciliation sweep: corrects drift between wall-clock time and recorded
match/resource state.

Run on a fixed external cadence. Each pass:

1. lists running matches (started, not completed);
2. computes end_time = actual_start_time + duration_minutes, skipping records
   with a malformed start or a missing duration;
3. marks matches past end_time + grace as awaiting_result;
4. conditionally releases their umpire and court (only while still held by
   that match);
5. releases busy resources whose holder is completed, awaiting a result,
   missing, or no longer references them.

Per-record failures are isolated and reported in the SweepReport. Only a
failure to list running matches aborts the pass.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from app.models.match import Match
from app.services.clock import MALFORMED, parse_as_utc, utcnow
from app.services.errors import ConditionFailed, LifecycleError
from app.services.match_state import MatchState, can_transition, match_state
from app.services.match_store import MatchStore, ResourceKind, UpdateOutcome
from app.services.resource_ledger import ResourceLedger, ResourceRef, resources_for

logger = logging.getLogger(__name__)

DEFAULT_GRACE = timedelta(minutes=1)


@dataclass
class SweepReport:
    started_at: datetime
    examined: int = 0
    marked_awaiting: List[int] = field(default_factory=list)
    released: List[Tuple[str, int, int]] = field(default_factory=list)  # (kind, resource_id, match_id)
    condition_failed: int = 0
    skipped: Dict[int, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    stopped_early: bool = False

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "examined": self.examined,
            "marked_awaiting": list(self.marked_awaiting),
            "released": [
                {"kind": kind, "resource_id": rid, "match_id": mid} for kind, rid, mid in self.released
            ],
            "condition_failed": self.condition_failed,
            "skipped": {str(k): v for k, v in self.skipped.items()},
            "errors": list(self.errors),
            "stopped_early": self.stopped_early,
        }


SKIP_MISSING_DURATION = "missing duration"
SKIP_MALFORMED_START = "malformed start time"


def _end_time(match: Match) -> Tuple[Optional[datetime], Optional[str]]:
    """(end_time, None), or (None, reason) when it cannot be computed."""
    if not match.duration_minutes or match.duration_minutes <= 0:
        return None, SKIP_MISSING_DURATION
    start = parse_as_utc(match.actual_start_time)
    if start is None or start is MALFORMED:
        return None, SKIP_MALFORMED_START
    return start + timedelta(minutes=match.duration_minutes), None


def expected_end_time(match: Match) -> Optional[datetime]:
    """actual_start_time + duration_minutes, or None when either is unusable."""
    return _end_time(match)[0]


class ReconciliationEngine:
    def __init__(
        self,
        store: MatchStore,
        clock: Callable[[], datetime] = utcnow,
        grace: timedelta = DEFAULT_GRACE,
    ):
        self.store = store
        self.clock = clock
        self.grace = grace
        self.ledger = ResourceLedger(store)

    def run(self, should_stop: Callable[[], bool] = lambda: False) -> SweepReport:
        """One full pass. Raises StoreError only if the running set cannot be read."""
        now = self.clock()
        report = SweepReport(started_at=now)

        running = self.store.list_running_matches()
        for match in running:
            if should_stop():
                report.stopped_early = True
                logger.info("Reconciliation sweep stopping early after %d matches", report.examined)
                break
            report.examined += 1
            try:
                self._reconcile_match(match, now, report)
            except LifecycleError as exc:
                logger.error("Error processing match %s: %s", match.id, exc)
                report.errors.append(f"match {match.id}: {exc}")
            except Exception as exc:
                logger.exception("Unexpected error processing match %s", match.id)
                report.errors.append(f"match {match.id}: {exc!r}")

        if not report.stopped_early:
            self._release_orphans(report)

        logger.info(
            "Reconciliation sweep: examined=%d awaiting=%d released=%d condition_failed=%d skipped=%d errors=%d",
            report.examined,
            len(report.marked_awaiting),
            len(report.released),
            report.condition_failed,
            len(report.skipped),
            len(report.errors),
        )
        return report

    # ------------------------------------------------------------------

    def _reconcile_match(self, match: Match, now: datetime, report: SweepReport) -> None:
        end_time, skip_reason = _end_time(match)
        if end_time is None:
            if skip_reason == SKIP_MISSING_DURATION:
                logger.warning("Skipping match %s: missing duration_minutes", match.id)
            else:
                logger.warning("Invalid start time for match %s: %r", match.id, match.actual_start_time)
            report.skipped[match.id] = skip_reason
            return

        if now <= end_time + self.grace:
            return

        if can_transition(match_state(match), MatchState.AWAITING_RESULT):
            try:
                self.store.update_match(match.id, {"awaiting_result": True}, where={"is_completed": False})
                report.marked_awaiting.append(match.id)
                logger.info("Match %s overran %s; awaiting result", match.id, end_time.isoformat())
            except ConditionFailed:
                # Completed since the snapshot; its resources still need releasing
                logger.info("Match %s completed during sweep; not marking awaiting", match.id)

        for ref in resources_for(match):
            self._release(ref, match.id, report)

    def _release(self, ref: ResourceRef, match_id: Optional[int], report: SweepReport) -> None:
        try:
            outcome = self.ledger.release(ref, match_id)
        except LifecycleError as exc:
            logger.error("Failed to release %s %s for match %s: %s", ref.kind.value, ref.resource_id, match_id, exc)
            report.errors.append(f"{ref.kind.value} {ref.resource_id}: {exc}")
            return
        except Exception as exc:
            logger.exception("Unexpected error releasing %s %s for match %s", ref.kind.value, ref.resource_id, match_id)
            report.errors.append(f"{ref.kind.value} {ref.resource_id}: {exc!r}")
            return
        if outcome is UpdateOutcome.APPLIED:
            report.released.append((ref.kind.value, ref.resource_id, match_id))
        else:
            report.condition_failed += 1

    def _release_orphans(self, report: SweepReport) -> None:
        """Free resources left busy by a holder that no longer needs them."""
        for kind in (ResourceKind.UMPIRE, ResourceKind.COURT):
            try:
                busy = self.store.list_busy_resources(kind)
                holders = {
                    m.id: m
                    for m in self.store.get_matches(
                        r.last_assigned_match_id for r in busy if r.last_assigned_match_id is not None
                    )
                }
            except Exception as exc:
                logger.exception("Failed to list busy %s resources", kind.value)
                report.errors.append(f"{kind.value} orphan scan: {exc}")
                continue

            for resource in busy:
                holder_id = resource.last_assigned_match_id
                if holder_id is None:
                    # Busy with no holder: nothing owns it, release against the null holder
                    logger.warning("%s %s busy without a match; releasing", kind.value.capitalize(), resource.id)
                    self._release(ResourceRef(kind, resource.id), None, report)
                    continue
                holder = holders.get(holder_id)
                if holder is None or not _still_holds(holder, kind, resource.id):
                    self._release(ResourceRef(kind, resource.id), holder_id, report)


def _still_holds(match: Match, kind: ResourceKind, resource_id: int) -> bool:
    if match.is_completed or match.awaiting_result:
        return False
    bound = match.umpire_id if kind is ResourceKind.UMPIRE else match.court_id
    return bound == resource_id

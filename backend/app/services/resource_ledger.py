"""
Resource ledger: idle/busy state of umpires and courts.

Two writes exist and nothing else may touch the idle-tracking columns:

- claim: bind a resource to a match that just started (is_idle=False).
- release: return it to idle, only while it is still held by the match
  being released (compare-and-swap on last_assigned_match_id).
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Tuple

from app.models.match import Match
from app.services.clock import to_naive_utc
from app.services.errors import LifecycleError
from app.services.match_store import ANY_HOLDER, MatchStore, ResourceKind, UpdateOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceRef:
    kind: ResourceKind
    resource_id: int


def resources_for(match: Match) -> List[ResourceRef]:
    """The umpire and court a match references, skipping unset ones."""
    refs: List[ResourceRef] = []
    if match.umpire_id is not None:
        refs.append(ResourceRef(ResourceKind.UMPIRE, match.umpire_id))
    if match.court_id is not None:
        refs.append(ResourceRef(ResourceKind.COURT, match.court_id))
    return refs


class ResourceLedger:
    def __init__(self, store: MatchStore):
        self.store = store

    def claim(self, ref: ResourceRef, match_id: int, started_at: datetime) -> UpdateOutcome:
        """Mark a resource busy for match_id. Newest assignment wins.

        Store errors propagate; callers treat the claim as advisory.
        """
        current = self.store.get_resource(ref.kind, ref.resource_id)
        if current is not None and not current.is_idle and current.last_assigned_match_id not in (None, match_id):
            logger.warning(
                "%s %s reassigned from match %s to match %s while still busy",
                ref.kind.value.capitalize(),
                ref.resource_id,
                current.last_assigned_match_id,
                match_id,
            )

        return self.store.update_resource(
            ref.kind,
            ref.resource_id,
            {
                "is_idle": False,
                "last_assigned_start_time": to_naive_utc(started_at),
                "last_assigned_match_id": match_id,
            },
            expected_match_id=ANY_HOLDER,
        )

    def release(self, ref: ResourceRef, match_id: int) -> UpdateOutcome:
        """Return a resource to idle if match_id still holds it.

        CONDITION_FAILED means someone else already moved the resource
        (reassigned or released); that is expected and not an error.
        """
        outcome = self.store.update_resource(
            ref.kind,
            ref.resource_id,
            {
                "is_idle": True,
                "last_assigned_start_time": None,
                "last_assigned_match_id": None,
            },
            expected_match_id=match_id,
        )
        if outcome is UpdateOutcome.CONDITION_FAILED:
            logger.debug(
                "%s %s no longer held by match %s; release skipped",
                ref.kind.value.capitalize(),
                ref.resource_id,
                match_id,
            )
        return outcome

    def release_all(self, match: Match) -> List[Tuple[ResourceRef, UpdateOutcome]]:
        """Best-effort release of every resource a match references.

        Each release is independent; a store failure on one is logged and
        does not stop the next.
        """
        results: List[Tuple[ResourceRef, UpdateOutcome]] = []
        for ref in resources_for(match):
            try:
                results.append((ref, self.release(ref, match.id)))
            except LifecycleError as exc:
                logger.warning(
                    "Failed to release %s %s for match %s: %s", ref.kind.value, ref.resource_id, match.id, exc
                )
        return results

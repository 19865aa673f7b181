"""In-memory MatchStore with fault injection, for isolation and race tests."""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from app.models.court import Court
from app.models.match import Match
from app.models.umpire import Umpire
from app.services.errors import ConditionFailed, MatchNotFound, ResourceNotFound, StoreError, StoreUnavailable
from app.services.match_store import ANY_HOLDER, ResourceKind, UpdateOutcome


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> None:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)


def _copy(obj):
    return type(obj)(**obj.model_dump())


class InMemoryMatchStore:
    """Rows are copied in and out so callers only ever hold snapshots."""

    def __init__(self):
        self.matches: Dict[int, Match] = {}
        self.resources: Dict[ResourceKind, Dict[int, Any]] = {ResourceKind.UMPIRE: {}, ResourceKind.COURT: {}}
        self.unavailable = False
        self.failing_matches: Set[int] = set()
        self.failing_resources: Set[Tuple[ResourceKind, int]] = set()
        # Raise a plain RuntimeError, as an untranslated driver or ORM bug would
        self.crashing_matches: Set[int] = set()
        self.crashing_resources: Set[Tuple[ResourceKind, int]] = set()
        # Called just before a resource write lands: (kind, resource_id, fields)
        self.before_resource_write: Optional[Callable[[ResourceKind, int, Dict[str, Any]], None]] = None
        self.resource_writes: List[Tuple[ResourceKind, int, Dict[str, Any], Any]] = []

    # -- seeding -----------------------------------------------------------

    def add_match(self, **fields) -> Match:
        match = Match(**fields)
        if match.id is None:
            match.id = max(self.matches, default=0) + 1
        self.matches[match.id] = match
        return _copy(match)

    def add_umpire(self, **fields) -> Umpire:
        umpire = Umpire(full_name=fields.pop("full_name", "Umpire"), **fields)
        if umpire.id is None:
            umpire.id = max(self.resources[ResourceKind.UMPIRE], default=0) + 1
        self.resources[ResourceKind.UMPIRE][umpire.id] = umpire
        return _copy(umpire)

    def add_court(self, **fields) -> Court:
        court = Court(tournament_id=fields.pop("tournament_id", 1), name=fields.pop("name", "Court"), **fields)
        if court.id is None:
            court.id = max(self.resources[ResourceKind.COURT], default=0) + 1
        self.resources[ResourceKind.COURT][court.id] = court
        return _copy(court)

    def resource(self, kind: ResourceKind, resource_id: int):
        return self.resources[kind][resource_id]

    def _check_available(self) -> None:
        if self.unavailable:
            raise StoreUnavailable("store offline")

    # -- MatchStore --------------------------------------------------------

    def get_match(self, match_id: int) -> Match:
        self._check_available()
        if match_id in self.failing_matches:
            raise StoreError(f"read failed for match {match_id}")
        if match_id not in self.matches:
            raise MatchNotFound(match_id)
        return _copy(self.matches[match_id])

    def get_matches(self, match_ids: Iterable[int]) -> List[Match]:
        self._check_available()
        return [_copy(self.matches[i]) for i in sorted(set(match_ids)) if i in self.matches]

    def list_running_matches(self) -> List[Match]:
        self._check_available()
        return [
            _copy(m)
            for _, m in sorted(self.matches.items())
            if m.actual_start_time is not None and not m.is_completed
        ]

    def update_match(self, match_id: int, fields: Dict[str, Any], where: Optional[Dict[str, Any]] = None) -> Match:
        self._check_available()
        if match_id in self.failing_matches:
            raise StoreError(f"write failed for match {match_id}")
        if match_id in self.crashing_matches:
            raise RuntimeError(f"unexpected failure on match {match_id}")
        if match_id not in self.matches:
            raise MatchNotFound(match_id)
        row = self.matches[match_id]
        for column, expected in (where or {}).items():
            if getattr(row, column) != expected:
                raise ConditionFailed(f"match {match_id}", where)
        for name, value in fields.items():
            setattr(row, name, value)
        return _copy(row)

    def get_resource(self, kind: ResourceKind, resource_id: int):
        self._check_available()
        row = self.resources[kind].get(resource_id)
        return _copy(row) if row is not None else None

    def list_resources(self, kind: ResourceKind, tournament_id: Optional[int] = None):
        self._check_available()
        return [
            _copy(r)
            for _, r in sorted(self.resources[kind].items())
            if tournament_id is None or r.tournament_id == tournament_id
        ]

    def list_busy_resources(self, kind: ResourceKind):
        self._check_available()
        return [_copy(r) for _, r in sorted(self.resources[kind].items()) if not r.is_idle]

    def update_resource(
        self,
        kind: ResourceKind,
        resource_id: int,
        fields: Dict[str, Any],
        expected_match_id: Any = ANY_HOLDER,
    ) -> UpdateOutcome:
        self._check_available()
        if (kind, resource_id) in self.failing_resources:
            raise StoreError(f"write failed for {kind.value} {resource_id}")
        if (kind, resource_id) in self.crashing_resources:
            raise RuntimeError(f"unexpected failure on {kind.value} {resource_id}")
        if self.before_resource_write is not None:
            self.before_resource_write(kind, resource_id, fields)

        row = self.resources[kind].get(resource_id)
        if row is None:
            if expected_match_id is ANY_HOLDER:
                raise ResourceNotFound(kind.value, resource_id)
            return UpdateOutcome.CONDITION_FAILED
        if expected_match_id is not ANY_HOLDER and row.last_assigned_match_id != expected_match_id:
            return UpdateOutcome.CONDITION_FAILED

        for name, value in fields.items():
            setattr(row, name, value)
        self.resource_writes.append((kind, resource_id, dict(fields), expected_match_id))
        return UpdateOutcome.APPLIED

"""
Store contract for the match lifecycle core, plus the SQLModel adapter.

Every mutating call is a single statement. Conditional writes are expressed
as extra WHERE clauses and checked through the affected row count, so
concurrent writers never need a lock: a write whose predicate no longer
holds simply affects zero rows.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Type, Union

from sqlalchemy import DateTime, String, type_coerce, update
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlmodel import Session, select

from app.models.court import Court
from app.models.match import Match
from app.models.umpire import Umpire
from app.services.errors import ConditionFailed, MatchNotFound, ResourceNotFound, StoreError, StoreUnavailable

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    UMPIRE = "umpire"
    COURT = "court"


class UpdateOutcome(str, Enum):
    APPLIED = "applied"
    CONDITION_FAILED = "condition_failed"


class _AnyHolder:
    def __repr__(self) -> str:
        return "ANY_HOLDER"


# Passed as expected_match_id for an unconditional resource write (claims)
ANY_HOLDER = _AnyHolder()

Resource = Union[Umpire, Court]

RESOURCE_MODELS: Dict[ResourceKind, Type[Any]] = {
    ResourceKind.UMPIRE: Umpire,
    ResourceKind.COURT: Court,
}

RESOURCE_FIELDS = ("is_idle", "last_assigned_start_time", "last_assigned_match_id")


class MatchStore(Protocol):
    def get_match(self, match_id: int) -> Match:
        ...

    def get_matches(self, match_ids: Iterable[int]) -> List[Match]:
        ...

    def list_running_matches(self) -> List[Match]:
        ...

    def update_match(
        self, match_id: int, fields: Dict[str, Any], where: Optional[Dict[str, Any]] = None
    ) -> Match:
        ...

    def get_resource(self, kind: ResourceKind, resource_id: int) -> Optional[Resource]:
        ...

    def list_resources(self, kind: ResourceKind, tournament_id: Optional[int] = None) -> List[Resource]:
        ...

    def list_busy_resources(self, kind: ResourceKind) -> List[Resource]:
        ...

    def update_resource(
        self,
        kind: ResourceKind,
        resource_id: int,
        fields: Dict[str, Any],
        expected_match_id: Any = ANY_HOLDER,
    ) -> UpdateOutcome:
        ...


def _translate(exc: SQLAlchemyError) -> StoreError:
    if isinstance(exc, OperationalError) or (isinstance(exc, DBAPIError) and exc.connection_invalidated):
        return StoreUnavailable(str(exc))
    return StoreError(str(exc))


class SqlMatchStore:
    """MatchStore over a SQLModel session. One instance per session."""

    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Matches
    # ------------------------------------------------------------------

    def get_match(self, match_id: int) -> Match:
        try:
            match = self.session.get(Match, match_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _translate(exc) from exc
        if match is None:
            raise MatchNotFound(match_id)
        return match

    def _snapshots(self, model: Type[Any], *criteria: Any) -> List[Any]:
        """Detached copies of matching rows, ordered by id.

        Timestamp columns come back as the raw stored value (text on SQLite)
        so one unparseable row cannot fail the whole read; callers run them
        through parse_as_utc. The copies are not in the session and are not
        expired by later commits.
        """
        columns = []
        for column in model.__table__.columns:
            attr = getattr(model, column.name)
            if isinstance(column.type, DateTime):
                attr = type_coerce(attr, String)
            columns.append(attr.label(column.name))
        stmt = select(*columns).where(*criteria).order_by(model.id)
        try:
            rows = self.session.exec(stmt).all()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _translate(exc) from exc
        return [model(**dict(row._mapping)) for row in rows]

    def get_matches(self, match_ids: Iterable[int]) -> List[Match]:
        ids = sorted(set(match_ids))
        if not ids:
            return []
        return self._snapshots(Match, Match.id.in_(ids))

    def list_running_matches(self) -> List[Match]:
        return self._snapshots(
            Match,
            Match.actual_start_time.is_not(None),
            Match.is_completed == False,  # noqa: E712
        )

    def update_match(
        self, match_id: int, fields: Dict[str, Any], where: Optional[Dict[str, Any]] = None
    ) -> Match:
        """Write fields on one match; with `where`, only if every column still equals its value.

        Raises MatchNotFound when the row is gone and ConditionFailed when the
        predicate no longer holds.
        """
        stmt = update(Match).where(Match.id == match_id).values(**fields)
        for column, expected in (where or {}).items():
            attr = getattr(Match, column)
            stmt = stmt.where(attr.is_(None) if expected is None else attr == expected)

        try:
            result = self.session.exec(stmt)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _translate(exc) from exc

        if result.rowcount == 0:
            # Distinguish a vanished row from a failed predicate
            self.get_match(match_id)
            logger.debug("Conditional write on match %s skipped: %s", match_id, where)
            raise ConditionFailed(f"match {match_id}", where)

        match = self.get_match(match_id)
        try:
            self.session.refresh(match)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _translate(exc) from exc
        return match

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def get_resource(self, kind: ResourceKind, resource_id: int) -> Optional[Resource]:
        try:
            return self.session.get(RESOURCE_MODELS[kind], resource_id)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _translate(exc) from exc

    def list_resources(self, kind: ResourceKind, tournament_id: Optional[int] = None) -> List[Resource]:
        model = RESOURCE_MODELS[kind]
        if tournament_id is None:
            return self._snapshots(model)
        return self._snapshots(model, model.tournament_id == tournament_id)

    def list_busy_resources(self, kind: ResourceKind) -> List[Resource]:
        model = RESOURCE_MODELS[kind]
        return self._snapshots(model, model.is_idle == False)  # noqa: E712

    def update_resource(
        self,
        kind: ResourceKind,
        resource_id: int,
        fields: Dict[str, Any],
        expected_match_id: Any = ANY_HOLDER,
    ) -> UpdateOutcome:
        """Write idle-tracking fields on one umpire/court.

        With expected_match_id, the write only lands while the resource is
        still held by that match (compare-and-swap on last_assigned_match_id).
        """
        unknown = set(fields) - set(RESOURCE_FIELDS)
        if unknown:
            raise ValueError(f"Not an idle-tracking field: {sorted(unknown)}")

        model = RESOURCE_MODELS[kind]
        stmt = update(model).where(model.id == resource_id).values(**fields)
        conditional = expected_match_id is not ANY_HOLDER
        if conditional:
            if expected_match_id is None:
                stmt = stmt.where(model.last_assigned_match_id.is_(None))
            else:
                stmt = stmt.where(model.last_assigned_match_id == expected_match_id)

        try:
            result = self.session.exec(stmt)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise _translate(exc) from exc

        if result.rowcount == 0:
            if conditional:
                return UpdateOutcome.CONDITION_FAILED
            raise ResourceNotFound(kind.value, resource_id)

        # Keep an identity-mapped instance, if any, in step with the row
        cached = self.session.identity_map.get(self.session.identity_key(model, resource_id))
        if cached is not None:
            try:
                self.session.refresh(cached)
            except SQLAlchemyError as exc:
                self.session.rollback()
                raise _translate(exc) from exc
        return UpdateOutcome.APPLIED

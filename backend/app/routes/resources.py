"""Read-only umpire/court listings with computed time-until-idle."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.routes.runtime import _to_http, get_store
from app.services.clock import parse_as_utc, utcnow
from app.services.errors import LifecycleError
from app.services.idle_status import calculate_idle_status_with_match
from app.services.match_store import ResourceKind, SqlMatchStore

router = APIRouter()


class ResourceIdleOut(BaseModel):
    id: int
    kind: str
    name: str
    tournament_id: Optional[int] = None
    is_idle: bool
    last_assigned_match_id: Optional[int] = None
    last_assigned_start_time: Optional[datetime] = None
    computed_idle: bool
    minutes_until_idle: Optional[int] = None
    time_until_idle_formatted: Optional[str] = None


def _list_with_idle_status(
    store: SqlMatchStore, kind: ResourceKind, tournament_id: Optional[int]
) -> List[ResourceIdleOut]:
    try:
        resources = store.list_resources(kind, tournament_id=tournament_id)
        holders = store.get_matches(
            r.last_assigned_match_id for r in resources if r.last_assigned_match_id is not None
        )
    except LifecycleError as exc:
        raise _to_http(exc)

    now = utcnow()
    out: List[ResourceIdleOut] = []
    for r in resources:
        status = calculate_idle_status_with_match(
            r.is_idle, r.last_assigned_start_time, r.last_assigned_match_id, holders, now
        )
        out.append(
            ResourceIdleOut(
                id=r.id,
                kind=kind.value,
                name=r.full_name if kind is ResourceKind.UMPIRE else r.name,
                tournament_id=r.tournament_id,
                is_idle=bool(r.is_idle),
                last_assigned_match_id=r.last_assigned_match_id,
                last_assigned_start_time=parse_as_utc(r.last_assigned_start_time) or None,
                computed_idle=status.is_idle,
                minutes_until_idle=status.minutes_until_idle,
                time_until_idle_formatted=status.time_until_idle_formatted,
            )
        )
    return out


@router.get("/umpires", response_model=List[ResourceIdleOut])
def list_umpires(
    tournament_id: Optional[int] = None, store: SqlMatchStore = Depends(get_store)
) -> List[ResourceIdleOut]:
    return _list_with_idle_status(store, ResourceKind.UMPIRE, tournament_id)


@router.get("/courts", response_model=List[ResourceIdleOut])
def list_courts(
    tournament_id: Optional[int] = None, store: SqlMatchStore = Depends(get_store)
) -> List[ResourceIdleOut]:
    return _list_with_idle_status(store, ResourceKind.COURT, tournament_id)

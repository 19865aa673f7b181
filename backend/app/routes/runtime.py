"""
Match runtime: start, result recording, and the reconciliation sweep.
Resource idle state is written only by the services behind these routes.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from app.config import RECONCILE_GRACE_SECONDS
from app.database import get_session
from app.models.match import Match
from app.services.clock import parse_as_utc, require_utc, utcnow
from app.services.errors import (
    AlreadyCompleted,
    AlreadyStarted,
    InvalidResult,
    LifecycleError,
    MalformedTimestamp,
    MatchCodeInvalid,
    MatchNotFound,
    StoreUnavailable,
)
from app.services.match_lifecycle import CompletionResult, MatchLifecycle, ResultSubmission
from app.services.match_state import match_state
from app.services.match_store import SqlMatchStore
from app.services.reconciliation import ReconciliationEngine, expected_end_time

router = APIRouter()


def get_store(session: Session = Depends(get_session)) -> SqlMatchStore:
    return SqlMatchStore(session)


def get_lifecycle(store: SqlMatchStore = Depends(get_store)) -> MatchLifecycle:
    return MatchLifecycle(store)


def get_reconciliation_engine(store: SqlMatchStore = Depends(get_store)) -> ReconciliationEngine:
    return ReconciliationEngine(store, grace=timedelta(seconds=RECONCILE_GRACE_SECONDS))


def _to_http(exc: LifecycleError) -> HTTPException:
    if isinstance(exc, MatchNotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, AlreadyStarted):
        return HTTPException(status_code=409, detail={"code": "ALREADY_STARTED", "message": str(exc)})
    if isinstance(exc, AlreadyCompleted):
        return HTTPException(status_code=409, detail={"code": "ALREADY_COMPLETED", "message": str(exc)})
    if isinstance(exc, MatchCodeInvalid):
        return HTTPException(status_code=422, detail={"code": "MATCH_CODE_INVALID", "message": str(exc)})
    if isinstance(exc, InvalidResult):
        return HTTPException(status_code=422, detail={"code": "INVALID_RESULT", "message": str(exc)})
    if isinstance(exc, StoreUnavailable):
        return HTTPException(status_code=503, detail="Store unavailable")
    if isinstance(exc, MalformedTimestamp):
        return HTTPException(status_code=500, detail={"code": "MALFORMED_TIMESTAMP", "message": str(exc)})
    return HTTPException(status_code=500, detail=str(exc))


# ============================================================================
# Schemas
# ============================================================================


class MatchRuntimeState(BaseModel):
    id: int
    tournament_id: Optional[int] = None
    state: str
    umpire_id: Optional[int] = None
    court_id: Optional[int] = None
    duration_minutes: Optional[int] = None
    actual_start_time: Optional[datetime] = None
    expected_end_time: Optional[datetime] = None
    awaiting_result: bool
    is_completed: bool
    winner_entry_id: Optional[int] = None
    entry1_score: Optional[int] = None
    entry2_score: Optional[int] = None


class ResourceRefOut(BaseModel):
    kind: str
    resource_id: int


class ClaimFailure(ResourceRefOut):
    error: str


class StartMatchResponse(BaseModel):
    match: MatchRuntimeState
    claimed: List[ResourceRefOut]
    failed_claims: List[ClaimFailure]


class CompletionResponse(BaseModel):
    match: MatchRuntimeState
    released: List[ResourceRefOut]


class WinnerUpdate(BaseModel):
    winner_entry_id: Optional[int] = None


class ResultSubmissionIn(BaseModel):
    winner_entry_id: Optional[int] = None
    entry1_score: Optional[int] = None
    entry2_score: Optional[int] = None
    entry1_disqualified: bool = False
    entry2_disqualified: bool = False


class MatchCodeIn(BaseModel):
    match_code: str


def _match_to_runtime_state(m: Match) -> MatchRuntimeState:
    start = parse_as_utc(m.actual_start_time)
    return MatchRuntimeState(
        id=m.id,
        tournament_id=m.tournament_id,
        state=match_state(m).value,
        umpire_id=m.umpire_id,
        court_id=m.court_id,
        duration_minutes=m.duration_minutes,
        actual_start_time=start or None,
        expected_end_time=expected_end_time(m),
        awaiting_result=bool(m.awaiting_result),
        is_completed=bool(m.is_completed),
        winner_entry_id=m.winner_entry_id,
        entry1_score=m.entry1_score,
        entry2_score=m.entry2_score,
    )


def _completion_response(result: CompletionResult) -> CompletionResponse:
    return CompletionResponse(
        match=_match_to_runtime_state(result.match),
        released=[ResourceRefOut(kind=r.kind.value, resource_id=r.resource_id) for r in result.released],
    )


# ============================================================================
# Routes
# ============================================================================


@router.get("/matches/{match_id}/state", response_model=MatchRuntimeState)
def get_match_state(match_id: int, store: SqlMatchStore = Depends(get_store)) -> MatchRuntimeState:
    try:
        match = store.get_match(match_id)
        require_utc(match.actual_start_time)
        return _match_to_runtime_state(match)
    except LifecycleError as exc:
        raise _to_http(exc)


@router.post("/matches/{match_id}/start", response_model=StartMatchResponse)
def start_match(match_id: int, lifecycle: MatchLifecycle = Depends(get_lifecycle)) -> StartMatchResponse:
    """Start a match: sets actual_start_time once and marks its umpire/court busy.

    409 if the match is already started or completed. Resource failures are
    reported in failed_claims; the start itself still stands.
    """
    try:
        result = lifecycle.start_match(match_id)
    except LifecycleError as exc:
        raise _to_http(exc)

    return StartMatchResponse(
        match=_match_to_runtime_state(result.match),
        claimed=[ResourceRefOut(kind=r.kind.value, resource_id=r.resource_id) for r in result.claimed],
        failed_claims=[
            ClaimFailure(kind=r.kind.value, resource_id=r.resource_id, error=err) for r, err in result.failed_claims
        ],
    )


@router.put("/matches/{match_id}/winner", response_model=CompletionResponse)
def record_winner(
    match_id: int,
    payload: WinnerUpdate,
    lifecycle: MatchLifecycle = Depends(get_lifecycle),
) -> CompletionResponse:
    """Set (or clear, with null) the winner. is_completed follows the winner."""
    try:
        result = lifecycle.record_winner(match_id, payload.winner_entry_id)
    except LifecycleError as exc:
        raise _to_http(exc)
    return _completion_response(result)


@router.post("/matches/{match_id}/result", response_model=CompletionResponse)
def submit_result(
    match_id: int,
    payload: ResultSubmissionIn,
    lifecycle: MatchLifecycle = Depends(get_lifecycle),
) -> CompletionResponse:
    try:
        result = lifecycle.submit_result(match_id, ResultSubmission(**payload.model_dump()))
    except LifecycleError as exc:
        raise _to_http(exc)
    return _completion_response(result)


@router.post("/matches/{match_id}/validate-code", response_model=Dict[str, bool])
def validate_match_code(
    match_id: int,
    payload: MatchCodeIn,
    lifecycle: MatchLifecycle = Depends(get_lifecycle),
) -> Dict[str, bool]:
    try:
        return {"valid": lifecycle.validate_match_code(match_id, payload.match_code)}
    except LifecycleError as exc:
        raise _to_http(exc)


@router.post("/runtime/reconcile", response_model=Dict[str, Any])
def run_reconciliation_sweep(
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
) -> Dict[str, Any]:
    """Run one reconciliation sweep now (for an external scheduler or manual repair)."""
    try:
        report = engine.run()
    except LifecycleError as exc:
        raise _to_http(exc)
    return report.to_dict()


@router.get("/runtime/now", response_model=Dict[str, str])
def server_now() -> Dict[str, str]:
    """Server UTC clock, for client-side countdowns."""
    return {"now": utcnow().isoformat()}

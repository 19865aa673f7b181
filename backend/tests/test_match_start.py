"""Match start: preconditions, the one-time start write, and advisory resource claims."""
from datetime import datetime

import pytest
from sqlmodel import Session

from app.models.court import Court
from app.models.match import Match
from app.models.umpire import Umpire
from app.services.errors import AlreadyCompleted, AlreadyStarted, MatchNotFound
from app.services.match_lifecycle import MatchLifecycle
from app.services.match_state import MatchState, match_state
from app.services.match_store import ResourceKind

from tests.conftest import T0


def test_start_sets_actual_start_time_and_claims_resources(session: Session, sql_store, clock, tournament_setup):
    lifecycle = MatchLifecycle(sql_store, clock=clock)

    result = lifecycle.start_match(tournament_setup["match_id"])

    assert result.started_at == T0
    assert len(result.claimed) == 2
    assert result.failed_claims == []

    match = session.get(Match, tournament_setup["match_id"])
    session.refresh(match)
    assert match.actual_start_time == datetime(2025, 6, 1, 10, 0, 0)
    assert match_state(match) is MatchState.RUNNING

    umpire = session.get(Umpire, tournament_setup["umpire_id"])
    court = session.get(Court, tournament_setup["court_id"])
    session.refresh(umpire)
    session.refresh(court)
    for resource in (umpire, court):
        assert resource.is_idle is False
        assert resource.last_assigned_match_id == tournament_setup["match_id"]
        assert resource.last_assigned_start_time == datetime(2025, 6, 1, 10, 0, 0)


def test_second_start_fails_with_already_started(sql_store, clock, tournament_setup):
    lifecycle = MatchLifecycle(sql_store, clock=clock)
    lifecycle.start_match(tournament_setup["match_id"])

    clock.advance(minutes=5)
    with pytest.raises(AlreadyStarted):
        lifecycle.start_match(tournament_setup["match_id"])

    # The original start time is kept
    match = sql_store.get_match(tournament_setup["match_id"])
    assert match.actual_start_time == datetime(2025, 6, 1, 10, 0, 0)


def test_start_unknown_match_fails_with_not_found(sql_store, clock, tournament_setup):
    with pytest.raises(MatchNotFound):
        MatchLifecycle(sql_store, clock=clock).start_match(99999)


def test_start_completed_match_fails_with_already_completed(session: Session, sql_store, clock, tournament_setup):
    match = session.get(Match, tournament_setup["match_id"])
    match.winner_entry_id = 101
    match.is_completed = True
    session.add(match)
    session.commit()

    with pytest.raises(AlreadyCompleted):
        MatchLifecycle(sql_store, clock=clock).start_match(tournament_setup["match_id"])

    umpire = session.get(Umpire, tournament_setup["umpire_id"])
    session.refresh(umpire)
    assert umpire.is_idle is True


def test_completed_check_precedes_started_check(fake_store, clock):
    match = fake_store.add_match(
        duration_minutes=30, actual_start_time=datetime(2025, 6, 1, 9, 0), is_completed=True, winner_entry_id=1
    )
    with pytest.raises(AlreadyCompleted):
        MatchLifecycle(fake_store, clock=clock).start_match(match.id)


def test_start_without_resources_claims_nothing(fake_store, clock):
    match = fake_store.add_match(duration_minutes=30)

    result = MatchLifecycle(fake_store, clock=clock).start_match(match.id)

    assert result.claimed == []
    assert fake_store.resource_writes == []
    assert fake_store.matches[match.id].actual_start_time == datetime(2025, 6, 1, 10, 0)


def test_resource_failure_does_not_roll_back_start(fake_store, clock):
    umpire = fake_store.add_umpire(full_name="U1")
    court = fake_store.add_court(name="C1")
    match = fake_store.add_match(duration_minutes=30, umpire_id=umpire.id, court_id=court.id)
    fake_store.failing_resources.add((ResourceKind.UMPIRE, umpire.id))

    result = MatchLifecycle(fake_store, clock=clock).start_match(match.id)

    assert fake_store.matches[match.id].actual_start_time is not None
    assert [r.kind for r in result.claimed] == [ResourceKind.COURT]
    assert [r.kind for r, _ in result.failed_claims] == [ResourceKind.UMPIRE]
    assert fake_store.resource(ResourceKind.UMPIRE, umpire.id).is_idle is True
    assert fake_store.resource(ResourceKind.COURT, court.id).is_idle is False


def test_missing_resource_row_is_reported_not_raised(fake_store, clock):
    match = fake_store.add_match(duration_minutes=30, umpire_id=42)

    result = MatchLifecycle(fake_store, clock=clock).start_match(match.id)

    assert result.claimed == []
    assert len(result.failed_claims) == 1
    assert "42" in result.failed_claims[0][1]


def test_concurrent_start_loses_race_with_already_started(fake_store, clock):
    """Another writer starts the match between our read and our write."""
    match = fake_store.add_match(duration_minutes=30)
    original_update = fake_store.update_match

    def racing_update(match_id, fields, where=None):
        # The competing start lands first
        fake_store.matches[match_id].actual_start_time = datetime(2025, 6, 1, 9, 59)
        fake_store.update_match = original_update
        return original_update(match_id, fields, where)

    fake_store.update_match = racing_update

    with pytest.raises(AlreadyStarted):
        MatchLifecycle(fake_store, clock=clock).start_match(match.id)

    assert fake_store.matches[match.id].actual_start_time == datetime(2025, 6, 1, 9, 59)
    assert fake_store.resource_writes == []


def test_claim_overwrites_previous_holder(fake_store, clock):
    court = fake_store.add_court(name="C1")
    first = fake_store.add_match(duration_minutes=30, court_id=court.id)
    second = fake_store.add_match(duration_minutes=30, court_id=court.id)
    lifecycle = MatchLifecycle(fake_store, clock=clock)

    lifecycle.start_match(first.id)
    clock.advance(minutes=10)
    lifecycle.start_match(second.id)

    row = fake_store.resource(ResourceKind.COURT, court.id)
    assert row.is_idle is False
    assert row.last_assigned_match_id == second.id
    assert row.last_assigned_start_time == datetime(2025, 6, 1, 10, 10)

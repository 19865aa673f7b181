"""
Read-only "time until idle" view of umpires and courts for host dashboards.

time_until_idle = (start_time + duration_minutes) - now

Nothing here writes; the reconciliation sweep owns the persisted flags.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from app.models.match import Match
from app.services.clock import MALFORMED, parse_as_utc

# Within this much of the end a resource is shown as idle
IDLE_THRESHOLD = timedelta(minutes=1)


@dataclass
class IdleStatus:
    is_idle: bool
    minutes_until_idle: Optional[int] = None
    time_until_idle_formatted: Optional[str] = None


def format_time_until_idle(minutes: int) -> str:
    """5 -> "5m", 60 -> "1h", 90 -> "1h 30m", 0 -> "Now"."""
    if minutes <= 0:
        return "Now"
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        if mins > 0:
            return f"{hours}h {mins}m"
        return f"{hours}h"
    return f"{mins}m"


def calculate_idle_status(
    is_idle: bool,
    last_assigned_start_time: Any,
    duration_minutes: Optional[int],
    now: datetime,
) -> IdleStatus:
    # Nothing to count down from
    if not last_assigned_start_time or not duration_minutes or duration_minutes <= 0:
        return IdleStatus(is_idle=True)

    start = parse_as_utc(last_assigned_start_time)
    if start is None or start is MALFORMED:
        return IdleStatus(is_idle=True)

    remaining = start + timedelta(minutes=duration_minutes) - now
    if remaining <= IDLE_THRESHOLD:
        return IdleStatus(
            is_idle=True,
            minutes_until_idle=0,
            time_until_idle_formatted="Less than 1m" if remaining > timedelta(0) else "Overtime",
        )

    minutes = math.ceil(remaining.total_seconds() / 60)
    return IdleStatus(
        is_idle=False,
        minutes_until_idle=minutes,
        time_until_idle_formatted=format_time_until_idle(minutes),
    )


def calculate_idle_status_with_match(
    is_idle: bool,
    last_assigned_start_time: Any,
    last_assigned_match_id: Optional[int],
    matches: Iterable[Match],
    now: datetime,
) -> IdleStatus:
    """Idle status of a resource, looking up its holder for the duration.

    Start time prefers the resource's last_assigned_start_time and falls back
    to the holder's actual_start_time.
    """
    if last_assigned_match_id is None:
        return IdleStatus(is_idle=True)

    match = next((m for m in matches if m.id == last_assigned_match_id), None)
    if match is None:
        if not is_idle:
            return IdleStatus(is_idle=False, time_until_idle_formatted="Match in progress")
        return IdleStatus(is_idle=True)

    start_time = last_assigned_start_time or match.actual_start_time
    match_has_started = match.actual_start_time is not None

    if start_time and match.duration_minutes and match.duration_minutes > 0:
        should_be_busy = not is_idle or match_has_started
        return calculate_idle_status(not should_be_busy, start_time, match.duration_minutes, now)

    if not is_idle:
        if match_has_started:
            return IdleStatus(is_idle=False, time_until_idle_formatted="In progress")
        return IdleStatus(is_idle=False, time_until_idle_formatted="Waiting to start")

    return IdleStatus(is_idle=True)

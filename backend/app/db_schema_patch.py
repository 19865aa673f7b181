from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Idle-tracking columns on "umpire" and "court".
# (name, sqlite_type, postgres_type)
REQUIRED_IDLE_TRACKING_COLUMNS: List[Tuple[str, str, str]] = [
    ("is_idle", "INTEGER DEFAULT 1", "BOOLEAN DEFAULT TRUE"),
    ("last_assigned_start_time", "DATETIME", "TIMESTAMP"),
    ("last_assigned_match_id", "INTEGER", "INTEGER"),
]

# Lifecycle columns on "match".
REQUIRED_MATCH_COLUMNS: List[Tuple[str, str, str]] = [
    ("actual_start_time", "DATETIME", "TIMESTAMP"),
    ("awaiting_result", "INTEGER DEFAULT 0", "BOOLEAN DEFAULT FALSE"),
    ("code_valid", "INTEGER DEFAULT 1", "BOOLEAN DEFAULT TRUE"),
    ("entry1_score", "INTEGER", "INTEGER"),
    ("entry2_score", "INTEGER", "INTEGER"),
]


def _is_sqlite(engine: Engine) -> bool:
    return engine.dialect.name.lower() == "sqlite"


def _get_existing_columns_sqlite(engine: Engine, table_name: str) -> Dict[str, str]:
    cols: Dict[str, str] = {}
    with engine.connect() as conn:
        res = conn.execute(text(f'PRAGMA table_info("{table_name}");')).fetchall()
        # PRAGMA table_info returns rows: (cid, name, type, notnull, dflt_value, pk)
        for row in res:
            cols[str(row[1])] = str(row[2])
    return cols


def _get_existing_columns_postgres(engine: Engine, table_name: str) -> Dict[str, str]:
    cols: Dict[str, str] = {}
    sql = """
    SELECT column_name, data_type
    FROM information_schema.columns
    WHERE table_schema = 'public' AND table_name = :table_name;
    """
    with engine.connect() as conn:
        res = conn.execute(text(sql), {"table_name": table_name}).fetchall()
        for row in res:
            cols[str(row[0])] = str(row[1])
    return cols


def _table_exists(engine: Engine, table: str) -> bool:
    if _is_sqlite(engine):
        with engine.connect() as conn:
            result = conn.execute(
                text("SELECT name FROM sqlite_master WHERE type='table' AND name=:table_name"),
                {"table_name": table},
            ).fetchone()
            return result is not None

    with engine.connect() as conn:
        result = conn.execute(
            text("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = :table_name
            )
        """),
            {"table_name": table},
        ).fetchone()
        return bool(result and result[0])


def _ensure_columns(engine: Engine, table: str, columns: List[Tuple[str, str, str]]) -> List[str]:
    """Add any missing columns to `table`. Returns the names that were added."""
    if not _table_exists(engine, table):
        # Table doesn't exist yet, skip (create_all should create it)
        return []

    added: List[str] = []
    if _is_sqlite(engine):
        existing = _get_existing_columns_sqlite(engine, table)
        with engine.begin() as conn:
            for name, sqlite_type, _pg_type in columns:
                if name in existing:
                    continue
                # SQLite supports ADD COLUMN without IF NOT EXISTS
                conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN {name} {sqlite_type};'))
                added.append(name)
    else:
        existing = _get_existing_columns_postgres(engine, table)
        with engine.begin() as conn:
            for name, _sqlite_type, pg_type in columns:
                if name in existing:
                    continue
                conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN IF NOT EXISTS {name} {pg_type};'))
                added.append(name)
    return added


def ensure_idle_tracking_columns(engine: Engine) -> None:
    """
    Idempotently adds idle-tracking columns to the umpire and court tables.
    Safe to run at every startup.
    """
    from app.models.court import Court
    from app.models.umpire import Umpire

    for model in (Umpire, Court):
        table = model.__table__.name
        try:
            added = _ensure_columns(engine, table, REQUIRED_IDLE_TRACKING_COLUMNS)
            if added:
                logger.info("Added idle tracking columns to %s: %s", table, ", ".join(added))
        except Exception as e:
            # Log error but don't crash the server
            logger.warning(f"Failed to ensure {table} idle tracking columns: {e}")


def ensure_match_columns(engine: Engine) -> None:
    """
    Idempotently adds lifecycle columns to the match table.
    Completed matches are never left flagged as awaiting a result.
    """
    from app.models.match import Match

    table = Match.__table__.name
    try:
        added = _ensure_columns(engine, table, REQUIRED_MATCH_COLUMNS)
        if "awaiting_result" in added:
            with engine.begin() as conn:
                conn.execute(text(f'UPDATE "{table}" SET awaiting_result = :f WHERE is_completed = :t'), {"f": False, "t": True})
        if added:
            logger.info("Added lifecycle columns to %s: %s", table, ", ".join(added))
    except Exception as e:
        logger.warning(f"Failed to ensure {table} lifecycle columns: {e}")

"""
Meridian Weather Lab - Database Module (Reconciliation Store)
SQLite store of hourly reading records keyed by their UTC bucket.

Writes are partial upserts: a write only touches the fields it names, so the
actual reading and the forecasts for the same hour can arrive in different
cycles without erasing each other.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from config import DATABASE_PATH, READING_FIELDS, ACTUAL_FIELD, RETENTION_DAYS
from core.clock import UTC, bucket_key, current_bucket
from core.errors import StorageError

logger = logging.getLogger("database")

TABLE = "temperature_readings"


# ============================================================================
# DATABASE SCHEMA
# ============================================================================

SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {TABLE} (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    target_time TEXT NOT NULL UNIQUE,   -- UTC bucket, ISO 8601
    actual REAL,                        -- Sensor reading (C)
    forecast_A REAL,                    -- Yandex forecast for this hour (C)
    forecast_B REAL,                    -- Open-Meteo forecast for this hour (C)
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

# Indexes recreated by rebuild_indexes(); the UNIQUE key index is automatic
CANONICAL_INDEXES = {
    "idx_readings_actual_time": (
        f"CREATE INDEX IF NOT EXISTS idx_readings_actual_time "
        f"ON {TABLE}(target_time) WHERE actual IS NOT NULL"
    ),
    "idx_readings_updated": (
        f"CREATE INDEX IF NOT EXISTS idx_readings_updated ON {TABLE}(updated_at)"
    ),
}


# ============================================================================
# DATABASE CONNECTION
# ============================================================================

_schema_lock = threading.Lock()
_schema_ready = False


@contextmanager
def _open_connection() -> Iterator[sqlite3.Connection]:
    conn = None
    try:
        Path(DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(DATABASE_PATH, timeout=10.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        yield conn
        conn.commit()
    except (sqlite3.Error, OSError) as e:
        if conn is not None:
            conn.rollback()
        raise StorageError(f"Store unavailable at {DATABASE_PATH}: {e}") from e
    except Exception:
        if conn is not None:
            conn.rollback()
        raise
    finally:
        if conn is not None:
            conn.close()


def ensure_database() -> None:
    """
    Create the schema and indexes once per process.

    Safe to call from every operation and from concurrent cold starts: the
    first caller initialises under a lock, later callers return immediately.
    """
    global _schema_ready
    if _schema_ready:
        return
    with _schema_lock:
        if _schema_ready:
            return
        with _open_connection() as conn:
            conn.executescript(SCHEMA)
            for ddl in CANONICAL_INDEXES.values():
                conn.execute(ddl)
            purged = _purge_expired(conn, datetime.now(UTC), RETENTION_DAYS)
        _schema_ready = True
        logger.info("Database initialized: %s (purged %d expired)", DATABASE_PATH, purged)


@contextmanager
def get_connection() -> Iterator[sqlite3.Connection]:
    """Context manager for database connections."""
    ensure_database()
    with _open_connection() as conn:
        yield conn


def init_database() -> None:
    """Initialize the database schema (entry-point alias)."""
    ensure_database()


# ============================================================================
# WRITE OPERATIONS
# ============================================================================

def _coerce_value(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def upsert_partial(bucket: datetime, fields: Dict[str, Any]) -> None:
    """
    Merge `fields` into the record for `bucket`, creating it if absent.

    Fields not mentioned keep their stored value. Repeating the same call is
    a no-op apart from `updated_at`.

    Raises:
        ValueError: If a field is not a reading field
        StorageError: If SQLite rejects the write
    """
    unknown = set(fields) - set(READING_FIELDS)
    if unknown:
        raise ValueError(f"Unknown reading fields: {sorted(unknown)}")

    key = bucket_key(bucket)
    now_iso = datetime.now(UTC).isoformat()

    with get_connection() as conn:
        if not fields:
            conn.execute(
                f"INSERT OR IGNORE INTO {TABLE} (target_time, updated_at) VALUES (?, ?)",
                (key, now_iso),
            )
            return

        columns = list(fields)
        column_names = ", ".join(columns)
        placeholders = ", ".join(["?" for _ in columns])
        assignments = ", ".join(f"{col} = excluded.{col}" for col in columns)
        values = [key] + [_coerce_value(fields[col]) for col in columns] + [now_iso]

        conn.execute(
            f"""
            INSERT INTO {TABLE} (target_time, {column_names}, updated_at)
            VALUES (?, {placeholders}, ?)
            ON CONFLICT(target_time) DO UPDATE SET
                {assignments},
                updated_at = excluded.updated_at
            """,
            values,
        )


def delete_by_ids(ids: Iterable[int]) -> int:
    """Delete records by primary key. Returns the number removed."""
    id_list = [int(i) for i in ids]
    if not id_list:
        return 0
    placeholders = ", ".join(["?" for _ in id_list])
    with get_connection() as conn:
        cursor = conn.execute(f"DELETE FROM {TABLE} WHERE id IN ({placeholders})", id_list)
        return cursor.rowcount


def delete_range(before: Optional[datetime] = None) -> int:
    """Delete records with a bucket strictly before `before`, or every record."""
    with get_connection() as conn:
        if before is None:
            cursor = conn.execute(f"DELETE FROM {TABLE}")
        else:
            cutoff = before.astimezone(UTC).isoformat()
            cursor = conn.execute(f"DELETE FROM {TABLE} WHERE target_time < ?", (cutoff,))
        return cursor.rowcount


def _purge_expired(conn: sqlite3.Connection, now: datetime, retention_days: int) -> int:
    cutoff = bucket_key(now - timedelta(days=retention_days))
    cursor = conn.execute(f"DELETE FROM {TABLE} WHERE target_time < ?", (cutoff,))
    return cursor.rowcount


def purge_expired(now: Optional[datetime] = None, retention_days: int = RETENTION_DAYS) -> int:
    """Drop records whose bucket is older than the retention horizon."""
    if now is None:
        now = datetime.now(UTC)
    with get_connection() as conn:
        purged = _purge_expired(conn, now, retention_days)
    if purged:
        logger.info("Retention purge removed %d record(s) older than %d days", purged, retention_days)
    return purged


# ============================================================================
# READ OPERATIONS
# ============================================================================

def _check_field(name: Optional[str]) -> None:
    if name is not None and name not in READING_FIELDS:
        raise ValueError(f"Unknown reading field: {name}")


def get_record(bucket: datetime) -> Optional[Dict[str, Any]]:
    with get_connection() as conn:
        row = conn.execute(
            f"SELECT * FROM {TABLE} WHERE target_time = ?",
            (bucket_key(bucket),),
        ).fetchone()
        return dict(row) if row else None


def query_range(from_bucket: datetime, to_bucket: datetime) -> List[Dict[str, Any]]:
    """Records with from_bucket <= bucket <= to_bucket, ascending."""
    with get_connection() as conn:
        cursor = conn.execute(
            f"""
            SELECT * FROM {TABLE}
            WHERE target_time >= ? AND target_time <= ?
            ORDER BY target_time ASC
            """,
            (bucket_key(from_bucket), bucket_key(to_bucket)),
        )
        return [dict(row) for row in cursor.fetchall()]


def query_recent(n: int, predicate: Optional[str] = ACTUAL_FIELD) -> List[Dict[str, Any]]:
    """
    Most recent records, newest first.

    Args:
        n: Maximum number of records
        predicate: Reading field that must be present (non-null), or None
            to accept every record

    Returns:
        Up to n record dicts, descending by bucket
    """
    _check_field(predicate)
    where = f"WHERE {predicate} IS NOT NULL" if predicate else ""
    with get_connection() as conn:
        cursor = conn.execute(
            f"SELECT * FROM {TABLE} {where} ORDER BY target_time DESC LIMIT ?",
            (int(n),),
        )
        return [dict(row) for row in cursor.fetchall()]


def get_recent_actuals(n: int = 2) -> List[float]:
    """The last n stored actual values, most recent first."""
    return [row[ACTUAL_FIELD] for row in query_recent(n, ACTUAL_FIELD)]


def get_temperature_data(hours: int = 24, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Chart window: the last `hours` buckets up to and including the current one."""
    end = current_bucket(now)
    start = end - timedelta(hours=hours)
    return query_range(start, end)


def get_current_hour_data(now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    return get_record(current_bucket(now))


def get_accuracy_data(days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Records of the trailing `days` window that carry an actual reading."""
    if now is None:
        now = datetime.now(UTC)
    start = bucket_key(now - timedelta(days=days))
    with get_connection() as conn:
        cursor = conn.execute(
            f"""
            SELECT * FROM {TABLE}
            WHERE target_time >= ? AND actual IS NOT NULL
            ORDER BY target_time ASC
            """,
            (start,),
        )
        return [dict(row) for row in cursor.fetchall()]


# ============================================================================
# INDEX MAINTENANCE
# ============================================================================

def list_indexes() -> List[Dict[str, Any]]:
    with get_connection() as conn:
        rows = conn.execute(f"PRAGMA index_list({TABLE})").fetchall()
        return [
            {"name": row["name"], "unique": bool(row["unique"]), "origin": row["origin"]}
            for row in rows
        ]


def rebuild_indexes() -> List[Dict[str, Any]]:
    """
    Drop every explicitly created index on the readings table and recreate
    the canonical set. The automatic UNIQUE(target_time) index is kept.
    """
    with get_connection() as conn:
        rows = conn.execute(f"PRAGMA index_list({TABLE})").fetchall()
        for row in rows:
            if row["origin"] != "c":
                continue
            conn.execute(f'DROP INDEX IF EXISTS "{row["name"]}"')
            logger.info("Dropped index %s", row["name"])
        for name, ddl in CANONICAL_INDEXES.items():
            conn.execute(ddl)
            logger.info("Created index %s", name)
        conn.execute(f"REINDEX {TABLE}")
    return list_indexes()

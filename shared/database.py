# shared/database.py

import datetime
import json
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import List, Optional

from config import DATABASE_PATH
from shared.models import OccurrenceMarkers, RotationRole, RotationState, SessionOverride
from shared.rotation import normalize_index

logger = logging.getLogger(__name__)

# Global lock for SQLite (the bot and the web API may share a process)
_db_lock = threading.RLock()


def init_db():
    """Creates the tables and seeds an empty rotation row per role."""
    with get_db_connection() as conn:
        conn.execute('PRAGMA journal_mode=WAL;')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS app_settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS rotations (
                role TEXT PRIMARY KEY,
                state_json TEXT NOT NULL
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS session_overrides (
                original_date TEXT PRIMARY KEY,
                is_cancelled INTEGER NOT NULL DEFAULT 0,
                moved_to TEXT,
                note TEXT,
                updated_at TEXT NOT NULL
            )
        ''')
        conn.execute('''
            CREATE TABLE IF NOT EXISTS occurrence_markers (
                occurrence_id TEXT PRIMARY KEY,
                announced INTEGER NOT NULL DEFAULT 0,
                announced_at TEXT,
                advanced INTEGER NOT NULL DEFAULT 0,
                advanced_at TEXT
            )
        ''')
        for role in RotationRole:
            conn.execute(
                "INSERT OR IGNORE INTO rotations (role, state_json) VALUES (?, ?)",
                (role.value, _dump_rotation(RotationState()))
            )
        conn.commit()
        logger.info("Database initialized.")


@contextmanager
def get_db_connection():
    """Context manager for a short-lived SQLite connection."""
    with _db_lock:
        directory = os.path.dirname(DATABASE_PATH)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = sqlite3.connect(
            DATABASE_PATH,
            check_same_thread=False,
            timeout=20
        )
        conn.execute('PRAGMA busy_timeout = 20000;')
        try:
            yield conn
        finally:
            conn.close()


# === Settings ===

def get_setting(key: str) -> Optional[str]:
    with get_db_connection() as conn:
        row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None


def upsert_setting(key: str, value: str):
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO app_settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
        ''', (key, value))
        conn.commit()
        logger.debug(f"Setting {key} = {value}")


# === Rotations ===

def _dump_rotation(state: RotationState) -> str:
    return json.dumps({"members": list(state.members), "index": state.index})


def get_rotation(role: RotationRole) -> RotationState:
    """Always reads fresh state; callers must not cache it across ticks."""
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT state_json FROM rotations WHERE role = ?", (role.value,)
        ).fetchone()
    if not row or not row[0]:
        return RotationState()
    data = json.loads(row[0])
    members = [str(m) for m in data.get("members") or []]
    return RotationState(members=members, index=int(data.get("index") or 0))


def save_rotation(role: RotationRole, state: RotationState):
    """Persists the roster; the index is normalized before every write."""
    state.index = normalize_index(state.index, len(state.members))
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO rotations (role, state_json) VALUES (?, ?)
            ON CONFLICT(role) DO UPDATE SET state_json = excluded.state_json
        ''', (role.value, _dump_rotation(state)))
        conn.commit()
    logger.debug(f"Rotation {role.value} saved: {state}")


# === Session overrides ===

def _row_to_override(row) -> SessionOverride:
    original_date, is_cancelled, moved_to, note = row
    return SessionOverride(
        original_date=datetime.date.fromisoformat(original_date),
        is_cancelled=bool(is_cancelled),
        moved_to=datetime.datetime.fromisoformat(moved_to) if moved_to else None,
        note=note
    )


def get_override(original_date: datetime.date) -> Optional[SessionOverride]:
    """Returns the override for an original date or None (defaults apply)."""
    with get_db_connection() as conn:
        row = conn.execute('''
            SELECT original_date, is_cancelled, moved_to, note
            FROM session_overrides
            WHERE original_date = ?
        ''', (original_date.isoformat(),)).fetchone()
    return _row_to_override(row) if row else None


def upsert_override(override: SessionOverride):
    moved_to = override.moved_to.isoformat() if override.moved_to else None
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO session_overrides (original_date, is_cancelled, moved_to, note, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(original_date) DO UPDATE SET
                is_cancelled = excluded.is_cancelled,
                moved_to = excluded.moved_to,
                note = excluded.note,
                updated_at = excluded.updated_at
        ''', (
            override.original_date.isoformat(), 1 if override.is_cancelled else 0,
            moved_to, override.note,
            datetime.datetime.now(datetime.timezone.utc).isoformat()
        ))
        conn.commit()
    logger.info(f"Override for {override.original_date} saved: cancelled={override.is_cancelled}, moved_to={moved_to}")


def delete_override(original_date: datetime.date) -> bool:
    with get_db_connection() as conn:
        cursor = conn.execute(
            "DELETE FROM session_overrides WHERE original_date = ?", (original_date.isoformat(),)
        )
        conn.commit()
        deleted = cursor.rowcount > 0
    if deleted:
        logger.info(f"Override for {original_date} cleared")
    return deleted


def get_overrides_moved_to_date(target: datetime.date) -> List[SessionOverride]:
    """Reverse index: overrides whose moved_to falls on ``target``."""
    with get_db_connection() as conn:
        rows = conn.execute('''
            SELECT original_date, is_cancelled, moved_to, note
            FROM session_overrides
            WHERE moved_to IS NOT NULL AND substr(moved_to, 1, 10) = ?
            ORDER BY moved_to
        ''', (target.isoformat(),)).fetchall()
    return [_row_to_override(r) for r in rows]


# === Occurrence markers ===

def get_markers(occurrence_id: str) -> Optional[OccurrenceMarkers]:
    with get_db_connection() as conn:
        row = conn.execute('''
            SELECT occurrence_id, announced, announced_at, advanced, advanced_at
            FROM occurrence_markers
            WHERE occurrence_id = ?
        ''', (occurrence_id,)).fetchone()
    if not row:
        return None
    return OccurrenceMarkers(
        occurrence_id=row[0],
        announced=bool(row[1]),
        announced_at=row[2],
        advanced=bool(row[3]),
        advanced_at=row[4]
    )


def set_announced(occurrence_id: str, now: datetime.datetime):
    """Idempotent: repeated calls only refresh announced_at."""
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO occurrence_markers (occurrence_id, announced, announced_at)
            VALUES (?, 1, ?)
            ON CONFLICT(occurrence_id) DO UPDATE SET
                announced = 1,
                announced_at = excluded.announced_at
        ''', (occurrence_id, now.isoformat()))
        conn.commit()
    logger.debug(f"Occurrence {occurrence_id} marked as announced")


def set_advanced(occurrence_id: str, now: datetime.datetime):
    """Idempotent: repeated calls only refresh advanced_at."""
    with get_db_connection() as conn:
        conn.execute('''
            INSERT INTO occurrence_markers (occurrence_id, advanced, advanced_at)
            VALUES (?, 1, ?)
            ON CONFLICT(occurrence_id) DO UPDATE SET
                advanced = 1,
                advanced_at = excluded.advanced_at
        ''', (occurrence_id, now.isoformat()))
        conn.commit()
    logger.debug(f"Occurrence {occurrence_id} marked as advanced")

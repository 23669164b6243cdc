"""
SQLite persistence for price alerts, alert matches, seen listings and settings.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from dateutil import parser as date_parser

from ..models.alert import Alert, AlertMatch
from ..utils.error_handling import ErrorCategory, ErrorSeverity, RetryConfig, with_error_handling
from ..utils.logging import get_logger

logger = get_logger("alert.store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS price_alerts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    game_title TEXT NOT NULL,
    platform TEXT,
    max_price REAL NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    triggered_count INTEGER NOT NULL DEFAULT 0,
    triggered_at TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS alert_matches (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    alert_id INTEGER NOT NULL,
    item_id INTEGER NOT NULL,
    match_reason TEXT NOT NULL,
    matched_at TEXT NOT NULL,
    FOREIGN KEY(alert_id) REFERENCES price_alerts(id) ON DELETE CASCADE,
    UNIQUE(alert_id, item_id)
);

CREATE TABLE IF NOT EXISTS seen_items (
    item_id INTEGER PRIMARY KEY,
    first_seen_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS app_settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

# SQLite caps bound parameters per statement
_ID_CHUNK = 500

# Concurrent alert checks can briefly lock the database file
WRITE_RETRY = RetryConfig(max_attempts=3, base_delay=0.2, max_delay=1.0)


def _retried_write(func):
    return with_error_handling(
        component="alert.store",
        category=ErrorCategory.STORAGE,
        severity=ErrorSeverity.HIGH,
        retry_config=WRITE_RETRY,
        retry_on=(sqlite3.OperationalError,),
    )(func)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_alert(row: sqlite3.Row) -> Alert:
    triggered_at = row["triggered_at"]
    return Alert(
        id=row["id"],
        game_title=row["game_title"],
        platform=row["platform"],
        max_price=row["max_price"],
        is_active=bool(row["is_active"]),
        triggered_count=row["triggered_count"],
        triggered_at=date_parser.isoparse(triggered_at) if triggered_at else None,
    )


class AlertStore:
    """SQLite-backed alert store; also the dedup checker and delay setting source."""

    def __init__(self, database_path: str):
        self.database_path = Path(database_path).expanduser()
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
        self.init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, roll back on error, always close."""
        conn = sqlite3.connect(str(self.database_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def init_db(self):
        with self._connect() as conn:
            conn.executescript(SCHEMA)

    # Alerts

    def create_alert(self, game_title: str, max_price: float, platform: Optional[str] = None,
                     is_active: bool = True) -> Alert:
        alert = Alert(id=0, game_title=game_title, max_price=max_price,
                      platform=platform, is_active=is_active)
        alert.validate()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO price_alerts (game_title, platform, max_price, is_active, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (game_title, platform, max_price, int(is_active), _now_iso()),
            )
            alert.id = cursor.lastrowid
        logger.info("Alert created", extra={"alert_id": alert.id, "game_title": game_title})
        return alert

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM price_alerts WHERE id = ?", (alert_id,)).fetchone()
        return _row_to_alert(row) if row else None

    def list_active_alerts(self) -> List[Alert]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM price_alerts WHERE is_active = 1 ORDER BY id"
            ).fetchall()
        return [_row_to_alert(row) for row in rows]

    def set_alert_active(self, alert_id: int, is_active: bool):
        with self._connect() as conn:
            conn.execute(
                "UPDATE price_alerts SET is_active = ? WHERE id = ?", (int(is_active), alert_id)
            )

    # Matches

    @_retried_write
    def insert_match(self, match: AlertMatch) -> bool:
        """Insert unless ``(alert_id, item_id)`` already exists. Returns True when inserted."""
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO alert_matches (alert_id, item_id, match_reason, matched_at) "
                "VALUES (?, ?, ?, ?)",
                (match.alert_id, match.item_id, match.match_reason, _now_iso()),
            )
            inserted = cursor.rowcount == 1
        if inserted:
            logger.debug("Match recorded", extra={"alert_id": match.alert_id, "item_id": match.item_id})
        return inserted

    def list_matches(self, alert_id: int) -> List[AlertMatch]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT alert_id, item_id, match_reason FROM alert_matches "
                "WHERE alert_id = ? ORDER BY id",
                (alert_id,),
            ).fetchall()
        return [AlertMatch(row["alert_id"], row["item_id"], row["match_reason"]) for row in rows]

    @_retried_write
    def record_trigger(self, alert_id: int, new_matches: int, when: datetime):
        if new_matches <= 0:
            return
        with self._connect() as conn:
            conn.execute(
                "UPDATE price_alerts SET triggered_count = triggered_count + ?, triggered_at = ? "
                "WHERE id = ?",
                (new_matches, when.isoformat(), alert_id),
            )
        logger.info("Alert triggered", extra={"alert_id": alert_id, "new_matches": new_matches})

    # Seen listings

    def missing_ids(self, ids: Iterable[int]) -> List[int]:
        """Ids not yet in ``seen_items``, in input order without duplicates."""
        unique_ids = list(dict.fromkeys(int(i) for i in ids))
        if not unique_ids:
            return []
        known = set()
        with self._connect() as conn:
            for start in range(0, len(unique_ids), _ID_CHUNK):
                chunk = unique_ids[start:start + _ID_CHUNK]
                placeholders = ",".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT item_id FROM seen_items WHERE item_id IN ({placeholders})", chunk
                ).fetchall()
                known.update(row["item_id"] for row in rows)
        return [i for i in unique_ids if i not in known]

    def mark_seen(self, ids: Iterable[int]) -> int:
        now = _now_iso()
        with self._connect() as conn:
            before = conn.total_changes
            conn.executemany(
                "INSERT OR IGNORE INTO seen_items (item_id, first_seen_at) VALUES (?, ?)",
                [(int(i), now) for i in dict.fromkeys(ids)],
            )
            return conn.total_changes - before

    # Settings

    def get_setting(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM app_settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str):
        with self._connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO app_settings (key, value, updated_at) VALUES (?, ?, ?)",
                (key, str(value), _now_iso()),
            )

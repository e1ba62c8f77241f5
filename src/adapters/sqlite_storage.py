"""SQLite storage adapter.

Implements the core ShipmentStorePort and UserStorePort using a simple SQLite
database.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from core.errors import StorageError
from core.models import (
    Carrier,
    ChatUser,
    SenderProfile,
    Shipment,
    ShipmentStatus,
    TERMINAL_STATUSES,
    TrackingEvent,
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _dump_events(events: tuple[TrackingEvent, ...]) -> str:
    return json.dumps(
        [
            {
                "timestamp": _iso(event.timestamp),
                "description": event.description,
                "location": event.location,
                "status_code": event.status_code,
            }
            for event in events
        ],
        ensure_ascii=False,
    )


def _load_events(raw: Optional[str]) -> tuple[TrackingEvent, ...]:
    if not raw:
        return ()
    return tuple(
        TrackingEvent(
            timestamp=_parse_iso(item.get("timestamp")),
            description=item.get("description") or "",
            location=item.get("location"),
            status_code=item.get("status_code"),
        )
        for item in json.loads(raw)
    )


def _status(value: str) -> ShipmentStatus:
    try:
        return ShipmentStatus(value)
    except ValueError:
        return ShipmentStatus.PENDING


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the shipment and user store ports."""

    def __init__(self, db_path: str, timeout_seconds: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout_seconds = timeout_seconds

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=self._timeout_seconds)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction; sqlite errors become StorageError."""

        try:
            conn = self._connect()
            try:
                with conn:
                    yield conn
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - shipments: one row per tracking number, events as a JSON array
        - chat_users: one row per chat identity
        - chat_user_numbers: tracked-number index per chat identity
        """

        with self._session() as conn:
            # Fields:
            # - tracking_number: normalized number (PRIMARY KEY)
            # - status: canonical status string
            # - events: JSON array, most recent first
            # - chat_id: owning chat identity, if any
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS shipments (
                    tracking_number TEXT PRIMARY KEY,
                    carrier TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL,
                    events TEXT NOT NULL,
                    chat_id TEXT,
                    notifications_enabled INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS ix_shipments_chat_id ON shipments (chat_id)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_users (
                    chat_id TEXT PRIMARY KEY,
                    user_id INTEGER,
                    username TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    notifications_enabled INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP NOT NULL,
                    updated_at TIMESTAMP NOT NULL
                )
                """
            )
            # Denormalized convenience index; shipments.chat_id stays authoritative.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chat_user_numbers (
                    chat_id TEXT NOT NULL,
                    tracking_number TEXT NOT NULL,
                    added_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (chat_id, tracking_number)
                )
                """
            )

    def _row_to_shipment(self, row: sqlite3.Row) -> Shipment:
        return Shipment(
            tracking_number=row["tracking_number"],
            carrier=Carrier.parse(row["carrier"]),
            status=_status(row["status"]),
            events=_load_events(row["events"]),
            chat_id=row["chat_id"],
            notifications_enabled=bool(row["notifications_enabled"]),
            description=row["description"],
            created_at=_parse_iso(row["created_at"]),
            updated_at=_parse_iso(row["updated_at"]),
        )

    def find_active_for_polling(self) -> List[Shipment]:
        """Return shipments with notifications on and a non-terminal status."""

        terminal = sorted(status.value for status in TERMINAL_STATUSES)
        placeholders = ", ".join("?" for _ in terminal)
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM shipments
                WHERE notifications_enabled = 1 AND status NOT IN ({placeholders})
                ORDER BY created_at
                """,
                terminal,
            ).fetchall()
        return [self._row_to_shipment(row) for row in rows]

    def find_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM shipments WHERE tracking_number = ?",
                (tracking_number,),
            ).fetchone()
        return self._row_to_shipment(row) if row else None

    def find_by_owner(self, chat_id: str) -> List[Shipment]:
        with self._session() as conn:
            rows = conn.execute(
                "SELECT * FROM shipments WHERE chat_id = ? ORDER BY created_at DESC",
                (chat_id,),
            ).fetchall()
        return [self._row_to_shipment(row) for row in rows]

    def _shipment_row(self, shipment: Shipment) -> tuple:
        now = datetime.now(timezone.utc)
        return (
            shipment.tracking_number,
            shipment.carrier.value,
            shipment.description,
            shipment.status.value,
            _dump_events(shipment.events),
            shipment.chat_id,
            int(shipment.notifications_enabled),
            (shipment.created_at or now).isoformat(),
            (shipment.updated_at or now).isoformat(),
        )

    def create(self, shipment: Shipment) -> bool:
        """Insert a new shipment; False when the tracking number is already stored."""

        with self._session() as conn:
            cur = conn.execute(
                """
                INSERT INTO shipments (
                    tracking_number,
                    carrier,
                    description,
                    status,
                    events,
                    chat_id,
                    notifications_enabled,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tracking_number) DO NOTHING
                """,
                self._shipment_row(shipment),
            )
            return cur.rowcount == 1

    def upsert(self, shipment: Shipment) -> Shipment:
        """Insert or replace a shipment; created_at is kept on update."""

        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO shipments (
                    tracking_number,
                    carrier,
                    description,
                    status,
                    events,
                    chat_id,
                    notifications_enabled,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tracking_number) DO UPDATE SET
                    carrier = excluded.carrier,
                    description = excluded.description,
                    status = excluded.status,
                    events = excluded.events,
                    chat_id = excluded.chat_id,
                    notifications_enabled = excluded.notifications_enabled,
                    updated_at = excluded.updated_at
                """,
                self._shipment_row(shipment),
            )
        return self.find_by_tracking_number(shipment.tracking_number) or shipment

    def delete(self, tracking_number: str) -> bool:
        with self._session() as conn:
            cur = conn.execute(
                "DELETE FROM shipments WHERE tracking_number = ?",
                (tracking_number,),
            )
            conn.execute(
                "DELETE FROM chat_user_numbers WHERE tracking_number = ?",
                (tracking_number,),
            )
            return cur.rowcount > 0

    def upsert_by_chat_id(self, chat_id: str, profile: SenderProfile) -> ChatUser:
        """Create or refresh the chat user from sender metadata."""

        now = datetime.now(timezone.utc).isoformat()
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO chat_users (
                    chat_id, user_id, username, first_name, last_name, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(chat_id) DO UPDATE SET
                    user_id = excluded.user_id,
                    username = excluded.username,
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    updated_at = excluded.updated_at
                """,
                (
                    chat_id,
                    profile.user_id,
                    profile.username,
                    profile.first_name,
                    profile.last_name,
                    now,
                    now,
                ),
            )
        user = self.get_user(chat_id)
        if user is None:
            raise StorageError(f"Chat user {chat_id} vanished after upsert")
        return user

    def add_tracked_number(self, chat_id: str, tracking_number: str) -> None:
        """Append a number to the user's tracked index, creating the user if needed."""

        now = datetime.now(timezone.utc).isoformat()
        with self._session() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO chat_users (chat_id, created_at, updated_at)
                VALUES (?, ?, ?)
                """,
                (chat_id, now, now),
            )
            conn.execute(
                """
                INSERT OR IGNORE INTO chat_user_numbers (chat_id, tracking_number, added_at)
                VALUES (?, ?, ?)
                """,
                (chat_id, tracking_number, now),
            )

    def get_user(self, chat_id: str) -> Optional[ChatUser]:
        with self._session() as conn:
            row = conn.execute(
                "SELECT * FROM chat_users WHERE chat_id = ?",
                (chat_id,),
            ).fetchone()
            if row is None:
                return None
            numbers = conn.execute(
                """
                SELECT tracking_number FROM chat_user_numbers
                WHERE chat_id = ? ORDER BY added_at, tracking_number
                """,
                (chat_id,),
            ).fetchall()
        return ChatUser(
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            username=row["username"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            tracked_numbers=tuple(item["tracking_number"] for item in numbers),
            notifications_enabled=bool(row["notifications_enabled"]),
            created_at=_parse_iso(row["created_at"]),
            updated_at=_parse_iso(row["updated_at"]),
        )

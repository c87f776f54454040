"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Sequence

from workspace_booking.domain.models import (
    Area,
    AreaCategory,
    Reservation,
    ReservationStatus,
)
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


class RepositoryError(Exception):
    """Base persistence failure."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the storage engine cannot serve a read or write."""


class DuplicateReservationError(RepositoryError):
    """Raised when an insert violates a reservation uniqueness constraint."""


class DuplicateAreaError(RepositoryError):
    """Raised when an area name is already taken."""


class AreaCategoryLockedError(RepositoryError):
    """Raised when changing the category of an area that already has reservations."""


@dataclass(frozen=True)
class AuditLogRecord:
    """One removal performed by the conflict auditor."""

    run_id: str
    removed_reservation_id: str
    retained_reservation_id: Optional[str]
    reason: str
    area_id: int
    date: str


_RESERVATION_COLUMNS = """
    reservation_id,
    area_id,
    area_name,
    date,
    start_time,
    end_time,
    requested_seats,
    status,
    created_at,
    creator_id,
    collaborator_ids
"""


def _row_to_area(row: sqlite3.Row) -> Area:
    return Area(
        area_id=int(row["id"]),
        name=str(row["name"]),
        capacity=int(row["capacity"]),
        category=AreaCategory(str(row["category"])),
        is_full_day_reservation=bool(row["is_full_day_reservation"]),
        min_reservation_minutes=int(row["min_reservation_minutes"]),
        max_reservation_minutes=int(row["max_reservation_minutes"]),
    )


def _row_to_reservation(row: sqlite3.Row) -> Reservation:
    created_at = datetime.fromisoformat(str(row["created_at"]))
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Reservation(
        reservation_id=str(row["reservation_id"]),
        area_id=int(row["area_id"]),
        area_name=str(row["area_name"]),
        date=str(row["date"]),
        start_time=row["start_time"],
        end_time=row["end_time"],
        requested_seats=int(row["requested_seats"]),
        status=ReservationStatus(str(row["status"])),
        created_at=created_at,
        creator_id=str(row["creator_id"]),
        collaborator_ids=frozenset(json.loads(row["collaborator_ids"] or "[]")),
    )


class DataRepository:
    """Encapsulates SQLite access so booking logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success and translate engine failures.

        Integrity errors propagate untouched so callers can map them to domain
        errors; every other ``sqlite3.Error`` becomes ``RepositoryUnavailableError``.
        """
        try:
            connection = self._connect()
        except sqlite3.Error as exc:
            raise RepositoryUnavailableError(f"Cannot open database: {exc}") from exc
        try:
            with connection:
                yield connection
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            raise RepositoryUnavailableError(f"Database operation failed: {exc}") from exc
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Areas (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL UNIQUE,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        category TEXT NOT NULL CHECK (category IN ('MEETING_ROOM', 'HOT_DESK')),
                        is_full_day_reservation INTEGER NOT NULL DEFAULT 0,
                        min_reservation_minutes INTEGER NOT NULL,
                        max_reservation_minutes INTEGER NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        reservation_id TEXT NOT NULL UNIQUE,
                        area_id INTEGER NOT NULL,
                        area_name TEXT NOT NULL,
                        date TEXT NOT NULL,
                        start_time TEXT,
                        end_time TEXT,
                        slot_key TEXT,
                        requested_seats INTEGER NOT NULL CHECK (requested_seats > 0),
                        status TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        creator_id TEXT NOT NULL,
                        collaborator_ids TEXT NOT NULL DEFAULT '[]',
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (area_id) REFERENCES Areas(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS OfficePolicy (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        payload TEXT NOT NULL,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AuditLogs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        run_id TEXT NOT NULL,
                        removed_reservation_id TEXT NOT NULL,
                        retained_reservation_id TEXT,
                        reason TEXT NOT NULL,
                        area_id INTEGER NOT NULL,
                        date TEXT NOT NULL,
                        logged_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_area_date_status
                    ON Reservations(area_id, date, status);
                    """
                )

                if self._settings.enforce_exclusive_slot_uniqueness:
                    cursor.execute(
                        """
                        CREATE UNIQUE INDEX IF NOT EXISTS idx_reservations_exclusive_slot
                        ON Reservations(area_id, date, slot_key)
                        WHERE slot_key IS NOT NULL AND status != 'cancelled';
                        """
                    )
            logger.info("Database initialized at %s", self._db_path)
        except (sqlite3.Error, RepositoryUnavailableError) as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_default_areas(self) -> None:
        """Seed the default areas only when no area exists yet."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Areas;")
            if int(cursor.fetchone()["count"]) > 0:
                logger.info("Areas already present; skipping seed")
                return

            areas = [
                ("Sala Neon", 10, AreaCategory.MEETING_ROOM.value, 0, 30, 240),
                ("Sala de Capacitación", 25, AreaCategory.MEETING_ROOM.value, 0, 60, 480),
                (
                    "Hot Desk",
                    20,
                    AreaCategory.HOT_DESK.value,
                    1,
                    self._settings.default_min_reservation_minutes,
                    self._settings.default_max_reservation_minutes,
                ),
            ]
            cursor.executemany(
                """
                INSERT INTO Areas (
                    name,
                    capacity,
                    category,
                    is_full_day_reservation,
                    min_reservation_minutes,
                    max_reservation_minutes
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                areas,
            )
        logger.info("Seeded %s default areas", len(areas))

    # --- Areas -----------------------------------------------------------

    def create_area(
        self,
        name: str,
        capacity: int,
        category: AreaCategory,
        is_full_day_reservation: bool,
        min_reservation_minutes: int,
        max_reservation_minutes: int,
    ) -> Area:
        try:
            with self._session() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    INSERT INTO Areas (
                        name,
                        capacity,
                        category,
                        is_full_day_reservation,
                        min_reservation_minutes,
                        max_reservation_minutes
                    )
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (
                        name,
                        capacity,
                        category.value,
                        int(is_full_day_reservation),
                        min_reservation_minutes,
                        max_reservation_minutes,
                    ),
                )
                area_id = int(cursor.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise DuplicateAreaError(f"Area name {name!r} already exists") from exc
        return Area(
            area_id=area_id,
            name=name,
            capacity=capacity,
            category=category,
            is_full_day_reservation=is_full_day_reservation,
            min_reservation_minutes=min_reservation_minutes,
            max_reservation_minutes=max_reservation_minutes,
        )

    def get_area(self, area_id: int) -> Optional[Area]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Areas WHERE id = ?;", (area_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_area(row)

    def list_areas(self) -> list[Area]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM Areas ORDER BY id ASC;")
            return [_row_to_area(row) for row in cursor.fetchall()]

    def update_area(self, area: Area) -> Area:
        """Persist area changes; the category is frozen once reservations exist."""
        try:
            with self._session() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT category FROM Areas WHERE id = ?;", (area.area_id,))
                row = cursor.fetchone()
                if row is None:
                    raise RepositoryError(f"area_id {area.area_id} not found")
                if str(row["category"]) != area.category.value:
                    cursor.execute(
                        "SELECT COUNT(*) AS count FROM Reservations WHERE area_id = ?;",
                        (area.area_id,),
                    )
                    if int(cursor.fetchone()["count"]) > 0:
                        raise AreaCategoryLockedError(
                            f"area_id {area.area_id} has reservations; category cannot change"
                        )
                cursor.execute(
                    """
                    UPDATE Areas
                    SET name = ?,
                        capacity = ?,
                        category = ?,
                        is_full_day_reservation = ?,
                        min_reservation_minutes = ?,
                        max_reservation_minutes = ?
                    WHERE id = ?;
                    """,
                    (
                        area.name,
                        area.capacity,
                        area.category.value,
                        int(area.is_full_day_reservation),
                        area.min_reservation_minutes,
                        area.max_reservation_minutes,
                        area.area_id,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateAreaError(f"Area name {area.name!r} already exists") from exc
        return area

    # --- Reservations ----------------------------------------------------

    def list_active_reservations(self, area_id: int, date: str) -> list[Reservation]:
        """Return non-cancelled reservations for one area on one local date."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM Reservations
                WHERE area_id = ?
                  AND date = ?
                  AND status != 'cancelled'
                ORDER BY created_at ASC, id ASC;
                """,
                (area_id, date),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def list_reservations(
        self,
        area_id: Optional[int] = None,
        date: Optional[str] = None,
        include_cancelled: bool = False,
    ) -> list[Reservation]:
        clauses: list[str] = []
        params: list[Any] = []
        if area_id is not None:
            clauses.append("area_id = ?")
            params.append(area_id)
        if date is not None:
            clauses.append("date = ?")
            params.append(date)
        if not include_cancelled:
            clauses.append("status != 'cancelled'")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM Reservations
                {where}
                ORDER BY date ASC, area_id ASC, start_time ASC, created_at ASC;
                """,
                tuple(params),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def list_reservations_by_status(
        self,
        statuses: Iterable[ReservationStatus],
    ) -> list[Reservation]:
        status_values = sorted(status.value for status in statuses)
        if not status_values:
            return []
        placeholders = ",".join("?" for _ in status_values)
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM Reservations
                WHERE status IN ({placeholders})
                ORDER BY area_id ASC, date ASC, created_at ASC, id ASC;
                """,
                tuple(status_values),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def list_reservations_between(self, start_date: str, end_date: str) -> list[Reservation]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM Reservations
                WHERE date >= ? AND date <= ? AND status != 'cancelled'
                ORDER BY date ASC, area_id ASC;
                """,
                (start_date, end_date),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def get_reservation(self, reservation_id: str) -> Optional[Reservation]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_RESERVATION_COLUMNS} FROM Reservations WHERE reservation_id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_reservation(row)

    def insert_reservation(self, reservation: Reservation, exclusive: bool = False) -> None:
        """Insert a reservation verbatim.

        ``exclusive`` fills ``slot_key`` so the optional partial unique index can
        reject an identical concurrent meeting-room booking.
        """
        slot_key = None
        if exclusive:
            slot_key = f"{reservation.start_time or 'full-day'}-{reservation.end_time or 'full-day'}"
        try:
            with self._session() as conn:
                conn.execute(
                    """
                    INSERT INTO Reservations (
                        reservation_id,
                        area_id,
                        area_name,
                        date,
                        start_time,
                        end_time,
                        slot_key,
                        requested_seats,
                        status,
                        created_at,
                        creator_id,
                        collaborator_ids
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        reservation.reservation_id,
                        reservation.area_id,
                        reservation.area_name,
                        reservation.date,
                        reservation.start_time,
                        reservation.end_time,
                        slot_key,
                        reservation.requested_seats,
                        reservation.status.value,
                        reservation.created_at.isoformat(),
                        reservation.creator_id,
                        json.dumps(sorted(reservation.collaborator_ids)),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise DuplicateReservationError(
                f"Reservation {reservation.reservation_id} violates a uniqueness constraint"
            ) from exc

    def update_reservation_status(
        self,
        reservation_id: str,
        expected_status: ReservationStatus,
        new_status: ReservationStatus,
    ) -> bool:
        """Compare-and-set status change; returns False when the row moved meanwhile."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Reservations
                SET status = ?, updated_at = CURRENT_TIMESTAMP
                WHERE reservation_id = ? AND status = ?;
                """,
                (new_status.value, reservation_id, expected_status.value),
            )
            return cursor.rowcount == 1

    def delete_reservation(self, reservation_id: str) -> bool:
        """Delete a non-cancelled reservation; already cancelled or missing rows are a no-op."""
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                DELETE FROM Reservations
                WHERE reservation_id = ? AND status != 'cancelled';
                """,
                (reservation_id,),
            )
            return cursor.rowcount == 1

    def count_reservations(self) -> int:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Reservations;")
            return int(cursor.fetchone()["count"])

    # --- Office policy ---------------------------------------------------

    def load_office_policy(self) -> Optional[dict[str, Any]]:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT payload FROM OfficePolicy WHERE id = 1;")
            row = cursor.fetchone()
            if row is None:
                return None
            return json.loads(row["payload"])

    def save_office_policy(self, payload: dict[str, Any]) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO OfficePolicy (id, payload, updated_at)
                VALUES (1, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = CURRENT_TIMESTAMP;
                """,
                (json.dumps(payload, sort_keys=True),),
            )

    # --- Audit logs ------------------------------------------------------

    def save_audit_logs(self, records: Sequence[AuditLogRecord]) -> None:
        """Persist auditor removals for after-the-fact reconstruction."""
        if not records:
            return
        with self._session() as conn:
            conn.executemany(
                """
                INSERT INTO AuditLogs (
                    run_id,
                    removed_reservation_id,
                    retained_reservation_id,
                    reason,
                    area_id,
                    date
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                [
                    (
                        record.run_id,
                        record.removed_reservation_id,
                        record.retained_reservation_id,
                        record.reason,
                        record.area_id,
                        record.date,
                    )
                    for record in records
                ],
            )

    def count_audit_logs(self) -> int:
        with self._session() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM AuditLogs;")
            return int(cursor.fetchone()["count"])

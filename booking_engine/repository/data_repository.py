"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, time
from pathlib import Path
from typing import Optional

from booking_engine.domain.models import (
    BookingDetails,
    Facility,
    OperatingHours,
    Policy,
    Reservation,
    ReservationStatus,
)
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


_RESERVATION_COLUMNS = """
    id,
    facility_id,
    requester_id,
    start_time,
    end_time,
    status,
    purpose,
    attendees,
    notes,
    check_in_at,
    check_out_at,
    check_in_note,
    check_out_note,
    rejection_reason,
    cancellation_reason,
    created_at,
    updated_at
"""


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _row_to_reservation(row: sqlite3.Row) -> Reservation:
    return Reservation(
        reservation_id=int(row["id"]),
        facility_id=int(row["facility_id"]),
        requester_id=str(row["requester_id"]),
        start=datetime.fromisoformat(str(row["start_time"])),
        end=datetime.fromisoformat(str(row["end_time"])),
        status=ReservationStatus(str(row["status"])),
        purpose=str(row["purpose"]),
        attendees=int(row["attendees"]),
        notes=row["notes"],
        check_in_at=_parse_timestamp(row["check_in_at"]),
        check_out_at=_parse_timestamp(row["check_out_at"]),
        check_in_note=row["check_in_note"],
        check_out_note=row["check_out_note"],
        rejection_reason=row["rejection_reason"],
        cancellation_reason=row["cancellation_reason"],
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row["updated_at"]),
    )


def _row_to_facility(row: sqlite3.Row) -> Facility:
    return Facility(
        facility_id=int(row["id"]),
        name=str(row["name"]),
        capacity=int(row["capacity"]),
        operating_hours=OperatingHours(
            open_time=time.fromisoformat(str(row["open_time"])),
            close_time=time.fromisoformat(str(row["close_time"])),
        ),
    )


class DataRepository:
    """Encapsulates SQLite access so the booking engine stays storage-agnostic."""

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

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Facilities (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        facility_type TEXT NOT NULL,
                        location TEXT,
                        open_time TEXT NOT NULL,
                        close_time TEXT NOT NULL,
                        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1))
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        facility_id INTEGER NOT NULL,
                        requester_id TEXT NOT NULL,
                        booking_date TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'PENDING',
                        purpose TEXT NOT NULL DEFAULT '',
                        attendees INTEGER NOT NULL DEFAULT 1 CHECK (attendees > 0),
                        notes TEXT,
                        check_in_at TEXT,
                        check_out_at TEXT,
                        check_in_note TEXT,
                        check_out_note TEXT,
                        rejection_reason TEXT,
                        cancellation_reason TEXT,
                        created_at TEXT,
                        updated_at TEXT,
                        CHECK (start_time < end_time),
                        FOREIGN KEY (facility_id) REFERENCES Facilities(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SystemSettings (
                        id INTEGER PRIMARY KEY CHECK (id = 1),
                        minimum_lead_hours REAL NOT NULL CHECK (minimum_lead_hours >= 0),
                        check_in_lead_minutes INTEGER NOT NULL CHECK (check_in_lead_minutes >= 0),
                        check_in_grace_minutes INTEGER NOT NULL CHECK (check_in_grace_minutes >= 0),
                        min_dwell_minutes_before_checkout INTEGER NOT NULL
                            CHECK (min_dwell_minutes_before_checkout >= 0),
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_facility_date_status
                    ON Reservations(facility_id, booking_date, status);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_facilities(self) -> int:
        """Seed the demo facility catalog only when it is empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Facilities;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Facility catalog already present; skipping seed")
                    return 0

                open_time = self._settings.default_open_time
                close_time = self._settings.default_close_time
                facilities = [
                    ("Meeting Room 101", 12, "Meeting Room", "Block A", open_time, close_time),
                    ("Meeting Room 204", 20, "Meeting Room", "Block A", open_time, close_time),
                    ("Chemistry Lab", 30, "Laboratory", "Block B", open_time, close_time),
                    ("Computer Lab 3", 40, "Laboratory", "Block C", open_time, close_time),
                    ("Lecture Hall", 120, "Classroom", "Block D", open_time, close_time),
                    ("Football Field", 22, "Sport Facility", "Outdoor", open_time, close_time),
                ]
                cursor.executemany(
                    """
                    INSERT INTO Facilities (
                        name, capacity, facility_type, location, open_time, close_time
                    )
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    facilities,
                )
                conn.commit()
            logger.info("Seeded %s facilities", len(facilities))
            return len(facilities)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Facility seeding failed: {exc}") from exc

    def seed_default_policy(self) -> bool:
        """Insert configured policy defaults unless a policy row already exists."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR IGNORE INTO SystemSettings (
                    id,
                    minimum_lead_hours,
                    check_in_lead_minutes,
                    check_in_grace_minutes,
                    min_dwell_minutes_before_checkout
                )
                VALUES (1, ?, ?, ?, ?);
                """,
                (
                    self._settings.default_minimum_lead_hours,
                    self._settings.default_check_in_lead_minutes,
                    self._settings.default_check_in_grace_minutes,
                    self._settings.default_min_dwell_minutes_before_checkout,
                ),
            )
            conn.commit()
            return cursor.rowcount > 0

    def get_facility(self, facility_id: int) -> Optional[Facility]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, capacity, open_time, close_time
                FROM Facilities
                WHERE id = ? AND is_active = 1;
                """,
                (facility_id,),
            )
            row = cursor.fetchone()
            return _row_to_facility(row) if row is not None else None

    def get_policy(self) -> Optional[Policy]:
        """Return the global booking policy, or None when it was never stored."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT
                    minimum_lead_hours,
                    check_in_lead_minutes,
                    check_in_grace_minutes,
                    min_dwell_minutes_before_checkout
                FROM SystemSettings
                WHERE id = 1;
                """
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return Policy(
                minimum_lead_hours=float(row["minimum_lead_hours"]),
                check_in_lead_minutes=int(row["check_in_lead_minutes"]),
                check_in_grace_minutes=int(row["check_in_grace_minutes"]),
                min_dwell_minutes_before_checkout=int(row["min_dwell_minutes_before_checkout"]),
            )

    def save_policy(self, policy: Policy) -> None:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO SystemSettings (
                    id,
                    minimum_lead_hours,
                    check_in_lead_minutes,
                    check_in_grace_minutes,
                    min_dwell_minutes_before_checkout
                )
                VALUES (1, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    minimum_lead_hours = excluded.minimum_lead_hours,
                    check_in_lead_minutes = excluded.check_in_lead_minutes,
                    check_in_grace_minutes = excluded.check_in_grace_minutes,
                    min_dwell_minutes_before_checkout = excluded.min_dwell_minutes_before_checkout,
                    updated_at = CURRENT_TIMESTAMP;
                """,
                (
                    policy.minimum_lead_hours,
                    policy.check_in_lead_minutes,
                    policy.check_in_grace_minutes,
                    policy.min_dwell_minutes_before_checkout,
                ),
            )
            conn.commit()

    def list_reservations_for_facility_and_date(
        self,
        facility_id: int,
        target_date: date,
    ) -> list[Reservation]:
        """Return reservations on ``target_date`` that still occupy the facility."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM Reservations
                WHERE facility_id = ? AND booking_date = ? AND status NOT IN (?, ?)
                ORDER BY start_time ASC, id ASC;
                """,
                (
                    facility_id,
                    target_date.isoformat(),
                    ReservationStatus.CANCELLED.value,
                    ReservationStatus.REJECTED.value,
                ),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def list_reservations_for_requester(self, requester_id: str) -> list[Reservation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RESERVATION_COLUMNS}
                FROM Reservations
                WHERE requester_id = ?
                ORDER BY start_time DESC, id DESC;
                """,
                (requester_id,),
            )
            return [_row_to_reservation(row) for row in cursor.fetchall()]

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_RESERVATION_COLUMNS} FROM Reservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_reservation(row)

    def create_reservation(
        self,
        facility_id: int,
        requester_id: str,
        start: datetime,
        end: datetime,
        details: BookingDetails,
        created_at: datetime,
    ) -> Reservation:
        """Insert a pending reservation and return it with its new id."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Reservations (
                    facility_id,
                    requester_id,
                    booking_date,
                    start_time,
                    end_time,
                    status,
                    purpose,
                    attendees,
                    notes,
                    created_at,
                    updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    facility_id,
                    requester_id,
                    start.date().isoformat(),
                    _format_timestamp(start),
                    _format_timestamp(end),
                    ReservationStatus.PENDING.value,
                    details.purpose,
                    details.attendees,
                    details.notes,
                    _format_timestamp(created_at),
                    _format_timestamp(created_at),
                ),
            )
            conn.commit()
            reservation_id = int(cursor.lastrowid)
        reservation = self.get_reservation(reservation_id)
        if reservation is None:  # pragma: no cover - row was just inserted
            raise RuntimeError(f"Reservation {reservation_id} vanished after insert")
        return reservation

    def save_reservation(self, reservation: Reservation, expected: Reservation) -> bool:
        """Persist lifecycle fields only if the row still matches ``expected``.

        ``expected`` is the snapshot the transition was computed from. Returns
        False when another writer changed status or check-in/out first.
        """
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Reservations
                SET status = ?,
                    check_in_at = ?,
                    check_out_at = ?,
                    check_in_note = ?,
                    check_out_note = ?,
                    rejection_reason = ?,
                    cancellation_reason = ?,
                    updated_at = ?
                WHERE id = ?
                  AND status = ?
                  AND check_in_at IS ?
                  AND check_out_at IS ?;
                """,
                (
                    reservation.status.value,
                    _format_timestamp(reservation.check_in_at),
                    _format_timestamp(reservation.check_out_at),
                    reservation.check_in_note,
                    reservation.check_out_note,
                    reservation.rejection_reason,
                    reservation.cancellation_reason,
                    _format_timestamp(reservation.updated_at),
                    reservation.reservation_id,
                    expected.status.value,
                    _format_timestamp(expected.check_in_at),
                    _format_timestamp(expected.check_out_at),
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

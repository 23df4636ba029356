"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Collection, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from booking_engine.domain.constraints import validate_room
from booking_engine.domain.models import (
    DEFAULT_BLOCKING_STATUSES,
    BookingDetails,
    Facility,
    PricedBooking,
    Reservation,
    ReservationStatus,
    Room,
)
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import get_logger


logger = get_logger(__name__)


def _to_db_time(value: datetime) -> str:
    return value.isoformat(sep=" ", timespec="microseconds")


def _from_db_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class StoredBooking:
    """Identifiers assigned to a booking when it is inserted."""

    reservation_id: int
    order_number: int


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

    @contextmanager
    def _reading(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        """Reuse the caller's connection when given one, else open a short-lived one."""
        if conn is not None:
            yield conn
            return
        connection = self._connect()
        try:
            yield connection
        finally:
            connection.close()

    @contextmanager
    def write_transaction(self) -> Iterator[sqlite3.Connection]:
        """Serialize writers with BEGIN IMMEDIATE; reads inside see committed state."""
        connection = self._connect()
        connection.isolation_level = None
        try:
            connection.execute("BEGIN IMMEDIATE;")
            yield connection
            connection.execute("COMMIT;")
        except BaseException:
            if connection.in_transaction:
                connection.execute("ROLLBACK;")
            raise
        finally:
            connection.close()

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        flat_rate INTEGER,
                        hourly_rate INTEGER,
                        attendee_rate INTEGER,
                        facilities TEXT NOT NULL DEFAULT '[]',
                        active INTEGER NOT NULL DEFAULT 1,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (
                            flat_rate IS NOT NULL
                            OR hourly_rate IS NOT NULL
                            OR attendee_rate IS NOT NULL
                        )
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Reservations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        title TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending',
                        customer_name TEXT NOT NULL,
                        customer_email TEXT NOT NULL,
                        purpose TEXT,
                        notes TEXT,
                        attendees_count INTEGER NOT NULL CHECK (attendees_count > 0),
                        agreed_cost INTEGER NOT NULL,
                        cost_breakdown TEXT NOT NULL DEFAULT '{}',
                        order_number INTEGER NOT NULL,
                        final_revenue INTEGER,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (end_time > start_time)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS ReservationRooms (
                        reservation_id INTEGER NOT NULL,
                        room_id INTEGER NOT NULL,
                        cost_type TEXT NOT NULL,
                        requested_facilities TEXT NOT NULL DEFAULT '[]',
                        cost INTEGER NOT NULL,
                        PRIMARY KEY (reservation_id, room_id),
                        FOREIGN KEY (reservation_id) REFERENCES Reservations(id),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservation_rooms_room
                    ON ReservationRooms(room_id);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_reservations_window
                    ON Reservations(start_time, end_time, status);
                    """
                )

                # Databases created before revenue tracking lack this column.
                cursor.execute("PRAGMA table_info(Reservations);")
                columns = {row["name"] for row in cursor.fetchall()}
                if "final_revenue" not in columns:
                    cursor.execute("ALTER TABLE Reservations ADD COLUMN final_revenue INTEGER;")
                    logger.info("Added final_revenue column to Reservations")
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_rooms_if_empty(self) -> None:
        """Seed a small room catalogue only when the Rooms table is empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Rooms already present; skipping demo seed")
                    return
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo room seeding failed: {exc}") from exc

        demo_rooms = [
            Room(0, "Auditorium", 120, flat_rate=25000, hourly_rate=4000, facilities=(
                Facility("Projector", 1500),
                Facility("Sound System", 3000),
            )),
            Room(0, "Meeting Room", 12, hourly_rate=1500, facilities=(
                Facility("Videoconference", 1000),
            )),
            Room(0, "Event Hall", 200, flat_rate=40000, attendee_rate=250, facilities=(
                Facility("Catering Area", 5000),
                Facility("Projector", 1500),
            )),
        ]
        for room in demo_rooms:
            self.create_room(room)
        logger.info("Seeded %s demo rooms", len(demo_rooms))

    def create_room(self, room: Room) -> int:
        """Insert a room row and return the created id; ``room.room_id`` is ignored.

        Raises ``ValueError`` when the room breaks a catalogue rule, such as
        duplicate facility names or negative rates.
        """
        validate_room(room)
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Rooms (
                    name,
                    capacity,
                    flat_rate,
                    hourly_rate,
                    attendee_rate,
                    facilities,
                    active
                )
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    room.name,
                    room.capacity,
                    room.flat_rate,
                    room.hourly_rate,
                    room.attendee_rate,
                    json.dumps(
                        [{"name": facility.name, "cost": facility.cost} for facility in room.facilities]
                    ),
                    1 if room.active else 0,
                ),
            )
            conn.commit()
            return int(cursor.lastrowid)

    @staticmethod
    def _row_to_room(row: sqlite3.Row) -> Room:
        facilities = tuple(
            Facility(name=str(item["name"]), cost=int(item["cost"]))
            for item in json.loads(row["facilities"] or "[]")
        )
        return Room(
            room_id=int(row["id"]),
            name=str(row["name"]),
            capacity=int(row["capacity"]),
            flat_rate=row["flat_rate"],
            hourly_rate=row["hourly_rate"],
            attendee_rate=row["attendee_rate"],
            facilities=facilities,
            active=bool(row["active"]),
        )

    def fetch_room(
        self,
        room_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Room]:
        """Fetch a room with its current pricing rates and facility list."""
        with self._reading(conn) as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT id, name, capacity, flat_rate, hourly_rate, attendee_rate, facilities, active
                FROM Rooms
                WHERE id = ?;
                """,
                (room_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_room(row)

    def list_rooms(self, active_only: bool = True) -> list[Room]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, capacity, flat_rate, hourly_rate, attendee_rate, facilities, active
                FROM Rooms
                WHERE active = 1 OR ? = 0
                ORDER BY id ASC;
                """,
                (1 if active_only else 0,),
            )
            return [self._row_to_room(row) for row in cursor.fetchall()]

    def fetch_blocking_reservations(
        self,
        room_id: int,
        horizon_start: datetime,
        horizon_end: datetime,
        statuses: Collection[ReservationStatus] = DEFAULT_BLOCKING_STATUSES,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Reservation]:
        """Return reservations of the room in ``statuses`` intersecting the horizon."""
        status_values = sorted(ReservationStatus(status).value for status in statuses)
        if not status_values:
            return []
        placeholders = ",".join("?" for _ in status_values)
        with self._reading(conn) as connection:
            cursor = connection.cursor()
            cursor.execute(
                f"""
                SELECT r.id, rr.room_id, r.start_time, r.end_time, r.status, r.title
                FROM Reservations AS r
                INNER JOIN ReservationRooms AS rr ON rr.reservation_id = r.id
                WHERE rr.room_id = ?
                  AND r.status IN ({placeholders})
                  AND r.start_time < ?
                  AND r.end_time > ?
                ORDER BY r.id ASC;
                """,
                (
                    room_id,
                    *status_values,
                    _to_db_time(horizon_end),
                    _to_db_time(horizon_start),
                ),
            )
            return [
                Reservation(
                    reservation_id=int(row["id"]),
                    room_id=int(row["room_id"]),
                    start=_from_db_time(row["start_time"]),
                    end=_from_db_time(row["end_time"]),
                    status=ReservationStatus(row["status"]),
                    title=row["title"],
                )
                for row in cursor.fetchall()
            ]

    def insert_booking(
        self,
        conn: sqlite3.Connection,
        priced: PricedBooking,
        details: BookingDetails,
    ) -> StoredBooking:
        """Insert a priced booking; must run inside ``write_transaction``."""
        candidate = priced.candidate
        cursor = conn.cursor()
        cursor.execute(
            "SELECT COALESCE(MAX(order_number), 0) + 1 AS next_order FROM Reservations;"
        )
        order_number = int(cursor.fetchone()["next_order"])
        cursor.execute(
            """
            INSERT INTO Reservations (
                title,
                start_time,
                end_time,
                status,
                customer_name,
                customer_email,
                purpose,
                notes,
                attendees_count,
                agreed_cost,
                cost_breakdown,
                order_number
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                details.title,
                _to_db_time(candidate.start),
                _to_db_time(candidate.end),
                ReservationStatus.PENDING.value,
                details.customer_name,
                details.customer_email,
                details.purpose,
                details.notes,
                candidate.attendee_count,
                priced.summary.grand_total,
                json.dumps(priced.summary.to_dict()),
                order_number,
            ),
        )
        reservation_id = int(cursor.lastrowid)
        cursor.executemany(
            """
            INSERT INTO ReservationRooms (
                reservation_id,
                room_id,
                cost_type,
                requested_facilities,
                cost
            )
            VALUES (?, ?, ?, ?, ?);
            """,
            [
                (
                    reservation_id,
                    line.room_id,
                    line.cost_type.value,
                    json.dumps([charge.name for charge in line.facilities]),
                    line.total,
                )
                for line in priced.lines
            ],
        )
        return StoredBooking(reservation_id=reservation_id, order_number=order_number)

    def get_reservation_status(
        self,
        reservation_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[ReservationStatus]:
        with self._reading(conn) as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT status FROM Reservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return ReservationStatus(row["status"])

    def set_reservation_status(
        self,
        conn: sqlite3.Connection,
        reservation_id: int,
        status: ReservationStatus,
        final_revenue: Optional[int] = None,
    ) -> None:
        """Update the status; finishing also records revenue, defaulting to the agreed cost."""
        if status is ReservationStatus.FINISHED:
            conn.execute(
                """
                UPDATE Reservations
                SET status = ?,
                    final_revenue = COALESCE(?, agreed_cost),
                    updated_at = CURRENT_TIMESTAMP
                WHERE id = ?;
                """,
                (status.value, final_revenue, reservation_id),
            )
            return
        conn.execute(
            """
            UPDATE Reservations
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?;
            """,
            (status.value, reservation_id),
        )

    def get_final_revenue(
        self,
        reservation_id: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[int]:
        with self._reading(conn) as connection:
            cursor = connection.cursor()
            cursor.execute(
                "SELECT final_revenue FROM Reservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None or row["final_revenue"] is None:
                return None
            return int(row["final_revenue"])

    def get_cost_breakdown(self, reservation_id: int) -> Optional[dict]:
        """Return the breakdown stored at booking time, unaffected by later price changes."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT cost_breakdown FROM Reservations WHERE id = ?;",
                (reservation_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return json.loads(row["cost_breakdown"])

    def count_reservations(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Reservations;")
            return int(cursor.fetchone()["count"])

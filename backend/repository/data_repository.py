"""Repository layer responsible for all database access."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import date, time
from pathlib import Path
from typing import Iterator, Optional

from backend.domain.models import (
    AvailabilityRule,
    Booking,
    BookingOption,
    BookingStatus,
    CAPACITY_STATUSES,
    WEEKDAYS,
    Event,
    OwnerRef,
)
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_CAPACITY_STATUS_VALUES = tuple(sorted(status.value for status in CAPACITY_STATUSES))


class StorageError(RuntimeError):
    """Raised when the database cannot be read or written; callers may retry."""


@dataclass(frozen=True)
class CapacityWriteResult:
    """Outcome of a capacity-checked write."""

    booking: Optional[Booking]
    capacity_exceeded: bool = False


def _parse_time(value: str) -> time:
    return time.fromisoformat(str(value))


def _parse_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    return date.fromisoformat(str(value))


def _format_time(value: time) -> str:
    return value.strftime("%H:%M:%S")


def _owner_clause(owner: OwnerRef) -> tuple[str, tuple[int]]:
    if owner.user_id is not None:
        return "user_id = ? AND organization_id IS NULL", (owner.user_id,)
    return "organization_id = ? AND user_id IS NULL", (owner.owner_id,)


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.sqlite_busy_timeout_seconds,
            isolation_level=None,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection for single-statement reads and writes."""
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = self._connect()
            yield connection
        except sqlite3.Error as exc:
            raise StorageError(f"Database access failed: {exc}") from exc
        finally:
            if connection is not None:
                connection.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write transaction holding the database write lock from the first statement."""
        with self._session() as conn:
            conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK;")
                raise
            conn.execute("COMMIT;")

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._transaction() as conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Organizations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        timezone TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        username TEXT NOT NULL,
                        email TEXT NOT NULL UNIQUE,
                        organization_id INTEGER,
                        timezone TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (organization_id) REFERENCES Organizations(id)
                            ON DELETE SET NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Durations (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        minutes INTEGER NOT NULL CHECK (minutes > 0)
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Persons (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        first_name TEXT NOT NULL,
                        last_name TEXT NOT NULL,
                        email TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Events (
                        id TEXT PRIMARY KEY,
                        user_id INTEGER,
                        organization_id INTEGER,
                        title TEXT NOT NULL,
                        url_slug TEXT NOT NULL UNIQUE,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK ((user_id IS NULL) <> (organization_id IS NULL)),
                        FOREIGN KEY (user_id) REFERENCES Users(id) ON DELETE CASCADE,
                        FOREIGN KEY (organization_id) REFERENCES Organizations(id)
                            ON DELETE CASCADE
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS EventOptions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_id TEXT NOT NULL,
                        duration_id INTEGER NOT NULL,
                        capacity INTEGER NOT NULL DEFAULT 1 CHECK (capacity >= 1),
                        UNIQUE (event_id, duration_id),
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE,
                        FOREIGN KEY (duration_id) REFERENCES Durations(id)
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS AvailabilitySchedules (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER,
                        organization_id INTEGER,
                        event_id TEXT,
                        day_of_week TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        valid_from TEXT,
                        valid_until TEXT,
                        is_active INTEGER NOT NULL DEFAULT 1 CHECK (is_active IN (0,1)),
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK ((user_id IS NULL) <> (organization_id IS NULL)),
                        FOREIGN KEY (user_id) REFERENCES Users(id) ON DELETE CASCADE,
                        FOREIGN KEY (organization_id) REFERENCES Organizations(id)
                            ON DELETE CASCADE,
                        FOREIGN KEY (event_id) REFERENCES Events(id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        event_option_id INTEGER NOT NULL,
                        person_id INTEGER,
                        date TEXT NOT NULL,
                        time_slot TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'pending' CHECK (
                            status IN ('pending','confirmed','cancelled','completed','no_show')
                        ),
                        notes TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (event_option_id) REFERENCES EventOptions(id)
                            ON DELETE RESTRICT,
                        FOREIGN KEY (person_id) REFERENCES Persons(id) ON DELETE SET NULL
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_schedules_user
                    ON AvailabilitySchedules(user_id, is_active);
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_schedules_organization
                    ON AvailabilitySchedules(organization_id, is_active);
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_option_date_slot
                    ON Bookings(event_option_id, date, time_slot, status);
                    """
                )
            logger.info("Database initialized at %s", self._db_path)
        except StorageError as exc:
            raise StorageError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self) -> int:
        """Seed the demo organizations, events and schedules only when empty.

        Returns the number of availability rules inserted (0 when skipped).
        """
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM Organizations;").fetchone()
            if int(row["count"]) > 0:
                logger.info("Demo data already present; skipping seed")
                return 0

            conn.executemany(
                "INSERT INTO Durations (id, minutes) VALUES (?, ?);",
                [(1, 15), (2, 30), (3, 45), (4, 60), (5, 90), (6, 120)],
            )
            conn.executemany(
                "INSERT INTO Organizations (id, name, timezone) VALUES (?, ?, ?);",
                [
                    (1, "Centro clínico CaracasMed", "America/Caracas"),
                    (2, "Pilates Caracas", "America/Caracas"),
                    (3, "Editorial Anagrama", "Europe/Madrid"),
                ],
            )
            conn.executemany(
                """
                INSERT INTO Users (id, username, email, organization_id, timezone)
                VALUES (?, ?, ?, ?, ?);
                """,
                [
                    (1, "maria.gonzalez", "maria.gonzalez@email.com", None, "America/Caracas"),
                    (2, "carlos.rodriguez", "carlos.rodriguez@email.com", None, "America/Caracas"),
                    (3, "ana.martinez", "ana.martinez@caracasmed.com", 1, None),
                    (4, "luis.fernandez", "luis.fernandez@pilatescaracas.com", 2, None),
                    (5, "sofia.lopez", "sofia.lopez@anagrama.com", 3, None),
                ],
            )
            conn.executemany(
                """
                INSERT INTO Persons (id, first_name, last_name, email)
                VALUES (?, ?, ?, ?);
                """,
                [
                    (1, "Juan", "Pérez", "juan.perez@email.com"),
                    (2, "Laura", "Sánchez", "laura.sanchez@email.com"),
                    (3, "Pedro", "Ramírez", "pedro.ramirez@email.com"),
                    (4, "Carmen", "Torres", "carmen.torres@email.com"),
                    (5, "Diego", "Morales", "diego.morales@email.com"),
                    (6, "Isabella", "Castro", "isabella.castro@email.com"),
                ],
            )
            conn.executemany(
                """
                INSERT INTO Events (id, user_id, organization_id, title, url_slug)
                VALUES (?, ?, ?, ?, ?);
                """,
                [
                    ("maria-consultoria", 1, None, "Consultoría Empresarial",
                     "maria-consultoria-empresarial"),
                    ("carlos-coaching", 2, None, "Sesión de Coaching Profesional",
                     "carlos-coaching-profesional"),
                    ("caracasmed-consulta", None, 1, "Consulta Médica General",
                     "caracasmed-consulta-general"),
                    ("pilates-clase", None, 2, "Clase de Pilates", "pilates-caracas-clase"),
                    ("anagrama-reunion", None, 3, "Reunión Editorial",
                     "anagrama-reunion-editorial"),
                ],
            )
            conn.executemany(
                """
                INSERT INTO EventOptions (id, event_id, duration_id, capacity)
                VALUES (?, ?, ?, ?);
                """,
                [
                    (1, "maria-consultoria", 3, 1),
                    (2, "maria-consultoria", 4, 1),
                    (3, "carlos-coaching", 4, 1),
                    (4, "caracasmed-consulta", 2, 1),
                    (5, "caracasmed-consulta", 4, 1),
                    (6, "pilates-clase", 4, 5),
                    (7, "pilates-clase", 5, 3),
                    (8, "anagrama-reunion", 4, 1),
                ],
            )

            weekdays = ("monday", "tuesday", "wednesday", "thursday", "friday")
            rules: list[tuple] = []
            for day in weekdays:
                rules.append((1, None, None, day, "09:00:00", "17:00:00"))
                rules.append((2, None, None, day, "10:00:00", "18:00:00"))
                rules.append((None, 1, None, day, "08:00:00", "20:00:00"))
                rules.append((None, 2, None, day, "06:00:00", "21:00:00"))
                rules.append((None, 3, None, day, "09:00:00", "17:00:00"))
            rules.append((None, 1, None, "saturday", "08:00:00", "14:00:00"))
            rules.append((None, 2, None, "saturday", "07:00:00", "15:00:00"))
            rules.append((None, 3, "anagrama-reunion", "tuesday", "14:00:00", "18:00:00"))
            rules.append((None, 3, "anagrama-reunion", "thursday", "14:00:00", "18:00:00"))
            conn.executemany(
                """
                INSERT INTO AvailabilitySchedules (
                    user_id, organization_id, event_id, day_of_week, start_time, end_time
                )
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                rules,
            )

            conn.executemany(
                """
                INSERT INTO Bookings (event_option_id, person_id, date, time_slot, status, notes)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                [
                    (1, 1, "2026-01-15", "09:00:00", "completed", "Primera consulta"),
                    (3, 4, "2026-01-16", "14:00:00", "completed", None),
                    (4, 6, "2026-01-17", "10:00:00", "completed", "Chequeo general"),
                    (2, 2, "2026-01-22", "15:00:00", "confirmed", None),
                    (6, 5, "2026-01-23", "11:00:00", "confirmed", None),
                    (8, 3, "2026-01-24", "16:00:00", "pending", "Revisión de manuscrito"),
                    (5, 1, "2026-01-18", "13:00:00", "cancelled", None),
                ],
            )
        logger.info("Demo seed completed with %s availability rules", len(rules))
        return len(rules)

    def create_organization(self, name: str, timezone: Optional[str] = None) -> int:
        with self._session() as conn:
            cursor = conn.execute(
                "INSERT INTO Organizations (name, timezone) VALUES (?, ?);",
                (name, timezone),
            )
            return int(cursor.lastrowid)

    def create_user(
        self,
        username: str,
        email: str,
        organization_id: Optional[int] = None,
        timezone: Optional[str] = None,
    ) -> int:
        with self._session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO Users (username, email, organization_id, timezone)
                VALUES (?, ?, ?, ?);
                """,
                (username, email, organization_id, timezone),
            )
            return int(cursor.lastrowid)

    def create_duration(self, minutes: int) -> int:
        with self._session() as conn:
            cursor = conn.execute("INSERT INTO Durations (minutes) VALUES (?);", (minutes,))
            return int(cursor.lastrowid)

    def create_person(self, first_name: str, last_name: str, email: str) -> int:
        with self._session() as conn:
            cursor = conn.execute(
                "INSERT INTO Persons (first_name, last_name, email) VALUES (?, ?, ?);",
                (first_name, last_name, email),
            )
            return int(cursor.lastrowid)

    def create_event(self, event_id: str, owner: OwnerRef, title: str, url_slug: str) -> str:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO Events (id, user_id, organization_id, title, url_slug)
                VALUES (?, ?, ?, ?, ?);
                """,
                (event_id, owner.user_id, owner.organization_id, title, url_slug),
            )
        return event_id

    def create_booking_option(self, event_id: str, duration_id: int, capacity: int) -> int:
        with self._session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO EventOptions (event_id, duration_id, capacity)
                VALUES (?, ?, ?);
                """,
                (event_id, duration_id, capacity),
            )
            return int(cursor.lastrowid)

    def update_option_capacity(self, option_id: int, capacity: int) -> bool:
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE EventOptions SET capacity = ? WHERE id = ?;",
                (capacity, option_id),
            )
            return cursor.rowcount > 0

    def get_owner_timezone(self, owner: OwnerRef) -> Optional[str]:
        table = "Users" if owner.user_id is not None else "Organizations"
        with self._session() as conn:
            row = conn.execute(
                f"SELECT timezone FROM {table} WHERE id = ?;",
                (owner.owner_id,),
            ).fetchone()
        if row is None or row["timezone"] is None:
            return None
        return str(row["timezone"])

    def _row_to_event(self, row: sqlite3.Row) -> Event:
        return Event(
            event_id=str(row["id"]),
            owner=OwnerRef.from_columns(row["user_id"], row["organization_id"]),
            title=str(row["title"]),
            url_slug=str(row["url_slug"]),
        )

    def get_event(self, event_id: str) -> Optional[Event]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, organization_id, title, url_slug
                FROM Events
                WHERE id = ?;
                """,
                (event_id,),
            ).fetchone()
        return None if row is None else self._row_to_event(row)

    def get_event_by_slug(self, url_slug: str) -> Optional[Event]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT id, user_id, organization_id, title, url_slug
                FROM Events
                WHERE url_slug = ?;
                """,
                (url_slug,),
            ).fetchone()
        return None if row is None else self._row_to_event(row)

    def get_booking_option(self, option_id: int) -> Optional[BookingOption]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT eo.id, eo.event_id, eo.duration_id, eo.capacity, d.minutes
                FROM EventOptions AS eo
                INNER JOIN Durations AS d ON d.id = eo.duration_id
                WHERE eo.id = ?;
                """,
                (option_id,),
            ).fetchone()
        if row is None:
            return None
        return BookingOption(
            option_id=int(row["id"]),
            event_id=str(row["event_id"]),
            duration_id=int(row["duration_id"]),
            duration_minutes=int(row["minutes"]),
            capacity=int(row["capacity"]),
        )

    def list_rules_for_owner(self, owner: OwnerRef) -> list[AvailabilityRule]:
        """Return active rules for an owner, global and event-scoped alike.

        Rows with unparseable times, dates or weekdays are logged and skipped.
        """
        clause, params = _owner_clause(owner)
        with self._session() as conn:
            rows = conn.execute(
                f"""
                SELECT
                    id, user_id, organization_id, event_id, day_of_week,
                    start_time, end_time, valid_from, valid_until, is_active
                FROM AvailabilitySchedules
                WHERE {clause} AND is_active = 1
                ORDER BY id ASC;
                """,
                params,
            ).fetchall()
        rules: list[AvailabilityRule] = []
        for row in rows:
            try:
                rule = self._row_to_rule(row)
            except ValueError as exc:
                logger.warning("Skipping availability rule %s: %s", row["id"], exc)
                continue
            if rule.day_of_week not in WEEKDAYS:
                logger.warning(
                    "Skipping availability rule %s: invalid day_of_week %r",
                    row["id"],
                    rule.day_of_week,
                )
                continue
            rules.append(rule)
        return rules

    def _row_to_rule(self, row: sqlite3.Row) -> AvailabilityRule:
        return AvailabilityRule(
            rule_id=int(row["id"]),
            owner=OwnerRef.from_columns(row["user_id"], row["organization_id"]),
            event_id=None if row["event_id"] is None else str(row["event_id"]),
            day_of_week=str(row["day_of_week"]).lower(),
            start_time=_parse_time(row["start_time"]),
            end_time=_parse_time(row["end_time"]),
            valid_from=_parse_date(row["valid_from"]),
            valid_until=_parse_date(row["valid_until"]),
            is_active=bool(row["is_active"]),
        )

    def get_rule_owner(self, rule_id: int) -> Optional[OwnerRef]:
        """Owner of a stored rule, readable even when the rule row is malformed."""
        with self._session() as conn:
            row = conn.execute(
                "SELECT user_id, organization_id FROM AvailabilitySchedules WHERE id = ?;",
                (rule_id,),
            ).fetchone()
        if row is None:
            return None
        return OwnerRef.from_columns(row["user_id"], row["organization_id"])

    def create_availability_rule(self, rule: AvailabilityRule) -> int:
        with self._session() as conn:
            cursor = conn.execute(
                """
                INSERT INTO AvailabilitySchedules (
                    user_id, organization_id, event_id, day_of_week, start_time,
                    end_time, valid_from, valid_until, is_active
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    rule.owner.user_id,
                    rule.owner.organization_id,
                    rule.event_id,
                    rule.day_of_week,
                    _format_time(rule.start_time),
                    _format_time(rule.end_time),
                    None if rule.valid_from is None else rule.valid_from.isoformat(),
                    None if rule.valid_until is None else rule.valid_until.isoformat(),
                    1 if rule.is_active else 0,
                ),
            )
            return int(cursor.lastrowid)

    def set_rule_active(self, rule_id: int, is_active: bool) -> bool:
        with self._session() as conn:
            cursor = conn.execute(
                "UPDATE AvailabilitySchedules SET is_active = ? WHERE id = ?;",
                (1 if is_active else 0, rule_id),
            )
            return cursor.rowcount > 0

    def _row_to_booking(self, row: sqlite3.Row) -> Booking:
        return Booking(
            booking_id=int(row["id"]),
            option_id=int(row["event_option_id"]),
            date=date.fromisoformat(str(row["date"])),
            time_slot=_parse_time(row["time_slot"]),
            status=BookingStatus(str(row["status"])),
            person_id=None if row["person_id"] is None else int(row["person_id"]),
            notes=None if row["notes"] is None else str(row["notes"]),
        )

    def list_bookings(self, option_id: int, target_date: date) -> list[Booking]:
        with self._session() as conn:
            rows = conn.execute(
                """
                SELECT id, event_option_id, person_id, date, time_slot, status, notes
                FROM Bookings
                WHERE event_option_id = ? AND date = ?
                ORDER BY time_slot ASC, id ASC;
                """,
                (option_id, target_date.isoformat()),
            ).fetchall()
        return [self._row_to_booking(row) for row in rows]

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._session() as conn:
            row = conn.execute(
                """
                SELECT id, event_option_id, person_id, date, time_slot, status, notes
                FROM Bookings
                WHERE id = ?;
                """,
                (booking_id,),
            ).fetchone()
        return None if row is None else self._row_to_booking(row)

    def count_bookings(self) -> int:
        with self._session() as conn:
            row = conn.execute("SELECT COUNT(*) AS count FROM Bookings;").fetchone()
            return int(row["count"])

    @staticmethod
    def _count_active(
        conn: sqlite3.Connection,
        option_id: int,
        target_date: date,
        time_slot: time,
        exclude_booking_id: Optional[int] = None,
    ) -> int:
        placeholders = ",".join("?" for _ in _CAPACITY_STATUS_VALUES)
        row = conn.execute(
            f"""
            SELECT COUNT(*) AS count
            FROM Bookings
            WHERE event_option_id = ?
              AND date = ?
              AND time_slot = ?
              AND status IN ({placeholders})
              AND id <> ?;
            """,
            (
                option_id,
                target_date.isoformat(),
                _format_time(time_slot),
                *_CAPACITY_STATUS_VALUES,
                -1 if exclude_booking_id is None else exclude_booking_id,
            ),
        ).fetchone()
        return int(row["count"])

    @staticmethod
    def _capacity_in_transaction(conn: sqlite3.Connection, option_id: int) -> Optional[int]:
        row = conn.execute(
            "SELECT capacity FROM EventOptions WHERE id = ?;",
            (option_id,),
        ).fetchone()
        return None if row is None else int(row["capacity"])

    def insert_booking_within_capacity(
        self,
        option_id: int,
        target_date: date,
        time_slot: time,
        *,
        status: BookingStatus = BookingStatus.PENDING,
        person_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> CapacityWriteResult:
        """Check remaining capacity and insert under one write lock."""
        with self._transaction() as conn:
            capacity = self._capacity_in_transaction(conn, option_id)
            if capacity is None:
                return CapacityWriteResult(booking=None)
            if status.counts_against_capacity:
                taken = self._count_active(conn, option_id, target_date, time_slot)
                if taken >= capacity:
                    return CapacityWriteResult(booking=None, capacity_exceeded=True)
            cursor = conn.execute(
                """
                INSERT INTO Bookings (event_option_id, person_id, date, time_slot, status, notes)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    option_id,
                    person_id,
                    target_date.isoformat(),
                    _format_time(time_slot),
                    status.value,
                    notes,
                ),
            )
            booking_id = int(cursor.lastrowid)
        return CapacityWriteResult(
            booking=Booking(
                booking_id=booking_id,
                option_id=option_id,
                date=target_date,
                time_slot=time_slot,
                status=status,
                person_id=person_id,
                notes=notes,
            )
        )

    def update_booking_status_within_capacity(
        self,
        booking_id: int,
        status: BookingStatus,
    ) -> CapacityWriteResult:
        """Change a booking's status, re-checking capacity when it starts counting again."""
        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT id, event_option_id, person_id, date, time_slot, status, notes
                FROM Bookings
                WHERE id = ?;
                """,
                (booking_id,),
            ).fetchone()
            if row is None:
                return CapacityWriteResult(booking=None)
            current = self._row_to_booking(row)
            if status.counts_against_capacity and not current.status.counts_against_capacity:
                capacity = self._capacity_in_transaction(conn, current.option_id) or 0
                taken = self._count_active(
                    conn,
                    current.option_id,
                    current.date,
                    current.time_slot,
                    exclude_booking_id=booking_id,
                )
                if taken >= capacity:
                    return CapacityWriteResult(booking=current, capacity_exceeded=True)
            conn.execute(
                "UPDATE Bookings SET status = ? WHERE id = ?;",
                (status.value, booking_id),
            )
        return CapacityWriteResult(booking=replace(current, status=status))

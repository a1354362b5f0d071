import asyncio
import datetime
import os
import sqlite3
from contextlib import contextmanager
from typing import List, Optional

from booking_engine.core.errors import StoreConflictError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schedule import BookingConfig, DayHours, Service, WeeklyHours, Weekday
from booking_engine.services.store import ConflictCheck, InsertOutcome

SCHEMA = """
CREATE TABLE IF NOT EXISTS config (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    business_name TEXT NOT NULL DEFAULT 'Your Business',
    business_email TEXT,
    business_phone TEXT,
    timezone TEXT NOT NULL DEFAULT 'America/New_York',
    buffer_minutes INTEGER NOT NULL DEFAULT 15 CHECK (buffer_minutes >= 0),
    max_bookings_per_day INTEGER NOT NULL DEFAULT 8 CHECK (max_bookings_per_day >= 0),
    google_calendar_id TEXT,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS services (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    duration INTEGER NOT NULL CHECK (duration > 0),
    price REAL NOT NULL DEFAULT 0,
    description TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS business_hours (
    day_of_week TEXT PRIMARY KEY,
    open_time TEXT NOT NULL DEFAULT '09:00',
    close_time TEXT NOT NULL DEFAULT '17:00',
    is_enabled INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS bookings (
    id TEXT PRIMARY KEY,
    service_id TEXT NOT NULL REFERENCES services(id),
    booking_date TEXT NOT NULL,
    booking_time TEXT NOT NULL,
    duration INTEGER NOT NULL CHECK (duration > 0),
    customer_name TEXT NOT NULL,
    customer_email TEXT NOT NULL,
    customer_phone TEXT,
    notes TEXT,
    status TEXT NOT NULL DEFAULT 'confirmed' CHECK (status IN ('confirmed', 'cancelled')),
    google_event_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_bookings_date ON bookings(booking_date);
CREATE INDEX IF NOT EXISTS idx_bookings_status ON bookings(status);
CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_confirmed_start
    ON bookings(booking_date, booking_time) WHERE status = 'confirmed';
"""

BOOKING_COLUMNS = (
    "id", "service_id", "booking_date", "booking_time", "duration",
    "customer_name", "customer_email", "customer_phone", "notes",
    "status", "google_event_id", "created_at",
)


def _service_from_row(row) -> Service:
    return Service(
        id=row["id"],
        name=row["name"],
        duration_minutes=row["duration"],
        price=row["price"],
        description=row["description"],
        is_active=bool(row["is_active"]),
        sort_order=row["sort_order"],
    )


class SQLiteStore:
    """
    SQLite-backed store. Every call opens its own connection and closes it
    on the way out; blocking work runs in a worker thread.

    Admission holds ``BEGIN IMMEDIATE`` (the database write lock) across the
    conflict check and the insert.
    """

    def __init__(self, path: str, busy_timeout: float = 5.0):
        self.path = path
        self.busy_timeout = busy_timeout

    @contextmanager
    def _connect(self):
        conn = sqlite3.connect(self.path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    # --- schema ---------------------------------------------------------

    def _migrate(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
        logger.info(f"✅ SQLite schema ready at {self.path}")

    async def migrate(self) -> None:
        await asyncio.to_thread(self._migrate)

    def _is_seeded(self) -> bool:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM config").fetchone()[0] > 0

    async def is_seeded(self) -> bool:
        return await asyncio.to_thread(self._is_seeded)

    # --- bookings -------------------------------------------------------

    def _insert_if_available(self, booking: Booking, conflict_check: ConflictCheck) -> InsertOutcome:
        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.OperationalError as e:
                raise StoreConflictError(f"Could not acquire write lock: {e}") from e

            try:
                rows = conn.execute(
                    "SELECT * FROM bookings WHERE booking_date = ? AND status = 'confirmed' ORDER BY booking_time",
                    (booking.date.isoformat(),),
                ).fetchall()
                conflict = conflict_check([Booking.from_row(r) for r in rows])
                if conflict is not None:
                    conn.rollback()
                    return InsertOutcome(conflict=conflict)

                row = booking.to_row()
                placeholders = ", ".join("?" for _ in BOOKING_COLUMNS)
                conn.execute(
                    f"INSERT INTO bookings ({', '.join(BOOKING_COLUMNS)}) VALUES ({placeholders})",
                    tuple(row[c] for c in BOOKING_COLUMNS),
                )
                conn.commit()
            except (sqlite3.IntegrityError, sqlite3.OperationalError) as e:
                if conn.in_transaction:
                    conn.rollback()
                raise StoreConflictError(f"Write conflict for booking {booking.id}: {e}") from e
            except Exception:
                if conn.in_transaction:
                    conn.rollback()
                raise

        return InsertOutcome(booking=booking)

    async def insert_if_available(self, booking: Booking, conflict_check: ConflictCheck) -> InsertOutcome:
        return await asyncio.to_thread(self._insert_if_available, booking, conflict_check)

    def _list_bookings(self, day=None, status=None) -> List[Booking]:
        query = "SELECT * FROM bookings WHERE 1=1"
        params = []
        if day is not None:
            query += " AND booking_date = ?"
            params.append(day.isoformat())
        if status is not None:
            query += " AND status = ?"
            params.append(BookingStatus(status).value)
        query += " ORDER BY booking_date, booking_time"

        with self._connect() as conn:
            return [Booking.from_row(r) for r in conn.execute(query, params).fetchall()]

    async def list_bookings(self, day: Optional[datetime.date] = None, status: Optional[BookingStatus] = None) -> List[Booking]:
        return await asyncio.to_thread(self._list_bookings, day, status)

    async def list_confirmed(self, day: datetime.date) -> List[Booking]:
        return await self.list_bookings(day, BookingStatus.CONFIRMED)

    def _count_confirmed(self, day: datetime.date) -> int:
        with self._connect() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM bookings WHERE booking_date = ? AND status = 'confirmed'",
                (day.isoformat(),),
            ).fetchone()[0]

    async def count_confirmed(self, day: datetime.date) -> int:
        return await asyncio.to_thread(self._count_confirmed, day)

    def _get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM bookings WHERE id = ?", (booking_id,)).fetchone()
        return Booking.from_row(row) if row else None

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        return await asyncio.to_thread(self._get_booking, booking_id)

    def _set_status(self, booking_id: str, status: BookingStatus) -> int:
        # Rows already in the target status are not counted as affected
        value = BookingStatus(status).value
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE bookings SET status = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ? AND status != ?",
                (value, booking_id, value),
            )
            return cur.rowcount

    async def set_status(self, booking_id: str, status: BookingStatus) -> int:
        return await asyncio.to_thread(self._set_status, booking_id, status)

    def _set_google_event_id(self, booking_id: str, event_id: Optional[str]) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE bookings SET google_event_id = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                (event_id, booking_id),
            )

    async def set_google_event_id(self, booking_id: str, event_id: Optional[str]) -> None:
        await asyncio.to_thread(self._set_google_event_id, booking_id, event_id)

    # --- configuration --------------------------------------------------

    def _get_weekly_hours(self) -> WeeklyHours:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM business_hours").fetchall()
        days = {}
        for row in rows:
            days[Weekday.from_key(row["day_of_week"])] = DayHours(
                open_time=row["open_time"],
                close_time=row["close_time"],
                enabled=bool(row["is_enabled"]),
            )
        return WeeklyHours(days=days)

    async def get_weekly_hours(self) -> WeeklyHours:
        return await asyncio.to_thread(self._get_weekly_hours)

    def _update_day_hours(self, day: Weekday, hours: DayHours) -> DayHours:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO business_hours (day_of_week, open_time, close_time, is_enabled)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(day_of_week) DO UPDATE SET
                    open_time = excluded.open_time,
                    close_time = excluded.close_time,
                    is_enabled = excluded.is_enabled
                """,
                (day.key, hours.open_time, hours.close_time, int(hours.enabled)),
            )
        return hours

    async def update_day_hours(self, day: Weekday, hours: DayHours) -> DayHours:
        return await asyncio.to_thread(self._update_day_hours, day, hours)

    def _get_service(self, service_id: str) -> Optional[Service]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM services WHERE id = ?", (service_id,)).fetchone()
        return _service_from_row(row) if row else None

    async def get_service(self, service_id: str) -> Optional[Service]:
        return await asyncio.to_thread(self._get_service, service_id)

    def _list_services(self, active_only: bool) -> List[Service]:
        query = "SELECT * FROM services"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY sort_order, id"
        with self._connect() as conn:
            return [_service_from_row(r) for r in conn.execute(query).fetchall()]

    async def list_services(self, active_only: bool = True) -> List[Service]:
        return await asyncio.to_thread(self._list_services, active_only)

    def _upsert_service(self, service: Service) -> Service:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO services (id, name, duration, price, description, is_active, sort_order)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    duration = excluded.duration,
                    price = excluded.price,
                    description = excluded.description,
                    is_active = excluded.is_active,
                    sort_order = excluded.sort_order
                """,
                (
                    service.id, service.name, service.duration_minutes, service.price,
                    service.description, int(service.is_active), service.sort_order,
                ),
            )
        return service

    async def upsert_service(self, service: Service) -> Service:
        return await asyncio.to_thread(self._upsert_service, service)

    def _get_booking_config(self) -> BookingConfig:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM config WHERE id = 1").fetchone()
        if not row:
            return BookingConfig()
        return BookingConfig(
            business_name=row["business_name"],
            business_email=row["business_email"],
            business_phone=row["business_phone"],
            timezone=row["timezone"],
            buffer_minutes=row["buffer_minutes"],
            max_bookings_per_day=row["max_bookings_per_day"],
            google_calendar_id=row["google_calendar_id"],
        )

    async def get_booking_config(self) -> BookingConfig:
        return await asyncio.to_thread(self._get_booking_config)

    def _update_booking_config(self, config: BookingConfig) -> BookingConfig:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO config (id, business_name, business_email, business_phone, timezone,
                                    buffer_minutes, max_bookings_per_day, google_calendar_id)
                VALUES (1, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    business_name = excluded.business_name,
                    business_email = excluded.business_email,
                    business_phone = excluded.business_phone,
                    timezone = excluded.timezone,
                    buffer_minutes = excluded.buffer_minutes,
                    max_bookings_per_day = excluded.max_bookings_per_day,
                    google_calendar_id = excluded.google_calendar_id,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    config.business_name, config.business_email, config.business_phone,
                    config.timezone, config.buffer_minutes, config.max_bookings_per_day,
                    config.google_calendar_id,
                ),
            )
        return config

    async def update_booking_config(self, config: BookingConfig) -> BookingConfig:
        return await asyncio.to_thread(self._update_booking_config, config)

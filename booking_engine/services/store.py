"""
Booking Store contract.

A store owns every Booking row plus the business configuration the engine
reads (weekly hours, service catalog, booking config). Two backends exist:
``SQLiteStore`` (local file, default) and ``SupabaseStore``.

Admission goes exclusively through ``insert_if_available``: the store runs
the caller's conflict check against committed state and inserts in the same
atomic unit, so two concurrent admissions can never both pass the check for
overlapping intervals.
"""
import datetime
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence

from booking_engine.core.errors import BookingError
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schedule import BookingConfig, DayHours, Service, WeeklyHours, Weekday

ConflictCheck = Callable[[Sequence[Booking]], Optional[BookingError]]


@dataclass
class InsertOutcome:
    booking: Optional[Booking] = None
    conflict: Optional[BookingError] = None

    @property
    def inserted(self) -> bool:
        return self.booking is not None


class BookingStore(Protocol):
    async def migrate(self) -> None: ...

    # Bookings
    async def insert_if_available(self, booking: Booking, conflict_check: ConflictCheck) -> InsertOutcome: ...
    async def list_confirmed(self, day: datetime.date) -> List[Booking]: ...
    async def count_confirmed(self, day: datetime.date) -> int: ...
    async def set_status(self, booking_id: str, status: BookingStatus) -> int: ...
    async def get_booking(self, booking_id: str) -> Optional[Booking]: ...
    async def list_bookings(self, day: Optional[datetime.date] = None, status: Optional[BookingStatus] = None) -> List[Booking]: ...
    async def set_google_event_id(self, booking_id: str, event_id: Optional[str]) -> None: ...

    # Configuration
    async def get_weekly_hours(self) -> WeeklyHours: ...
    async def get_service(self, service_id: str) -> Optional[Service]: ...
    async def list_services(self, active_only: bool = True) -> List[Service]: ...
    async def get_booking_config(self) -> BookingConfig: ...
    async def update_booking_config(self, config: BookingConfig) -> BookingConfig: ...
    async def upsert_service(self, service: Service) -> Service: ...
    async def update_day_hours(self, day: Weekday, hours: DayHours) -> DayHours: ...
    async def is_seeded(self) -> bool: ...


def build_store(settings) -> BookingStore:
    """Construct the store selected by STORE_BACKEND."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "sqlite":
        from booking_engine.services.sqlite_store import SQLiteStore
        return SQLiteStore(settings.DATABASE_PATH, busy_timeout=settings.SQLITE_BUSY_TIMEOUT_SECONDS)
    if backend == "supabase":
        from booking_engine.services.db_service import SupabaseStore
        return SupabaseStore(settings.SUPABASE_URL, settings.SUPABASE_KEY)
    raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND!r}")

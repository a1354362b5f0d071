from supabase import create_async_client, AsyncClient
from typing import List, Optional
import datetime

from booking_engine.core.errors import StoreConflictError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schedule import BookingConfig, DayHours, Service, WeeklyHours, Weekday
from booking_engine.services.store import ConflictCheck, InsertOutcome

UNIQUE_VIOLATION = "23505"


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "code", None) == UNIQUE_VIOLATION or UNIQUE_VIOLATION in str(exc)


class SupabaseStore:
    """
    Store backed by Supabase (PostgREST). Schema lives in migrations/001_init.sql.

    PostgREST gives no multi-statement transactions, so admission is
    optimistic: check, insert, then re-check against every *other*
    confirmed row for the date. A conflict seen after the insert retracts
    our row and reports a StoreConflictError. Of any two overlapping
    admissions the later re-check always sees the earlier row, so at most
    one of them survives.
    """

    def __init__(self, url: str, key: str, client: Optional[AsyncClient] = None):
        self.url = url
        self.key = key
        self._client = client

    async def get_client(self) -> AsyncClient:
        if self._client is None:
            if not (self.url and self.key):
                raise RuntimeError("Supabase credentials missing (SUPABASE_URL / SUPABASE_KEY)")
            self._client = await create_async_client(self.url, self.key)
            logger.info("✅ Supabase Async client initialized")
        return self._client

    async def migrate(self) -> None:
        # DDL is applied out of band; verify the tables answer.
        client = await self.get_client()
        for table in ("config", "services", "business_hours", "bookings"):
            await client.table(table).select("*").limit(1).execute()
        logger.info("✅ Supabase schema reachable")

    async def is_seeded(self) -> bool:
        client = await self.get_client()
        response = await client.table("config").select("id").eq("id", 1).execute()
        return bool(response.data)

    # --- bookings -------------------------------------------------------

    async def insert_if_available(self, booking: Booking, conflict_check: ConflictCheck) -> InsertOutcome:
        client = await self.get_client()

        conflict = conflict_check(await self.list_confirmed(booking.date))
        if conflict is not None:
            return InsertOutcome(conflict=conflict)

        try:
            await client.table("bookings").insert(booking.to_row()).execute()
        except Exception as e:
            if _is_unique_violation(e):
                raise StoreConflictError(f"Unique violation for booking {booking.id}: {e}") from e
            raise

        others = [b for b in await self.list_confirmed(booking.date) if b.id != booking.id]
        if conflict_check(others) is not None:
            await client.table("bookings").delete().eq("id", booking.id).execute()
            logger.warning(f"↩️ Retracted booking {booking.id}: concurrent admission on {booking.date}")
            raise StoreConflictError(f"Concurrent admission conflict for booking {booking.id}")

        return InsertOutcome(booking=booking)

    async def list_bookings(self, day: Optional[datetime.date] = None, status: Optional[BookingStatus] = None) -> List[Booking]:
        client = await self.get_client()
        query = client.table("bookings").select("*")
        if day is not None:
            query = query.eq("booking_date", day.isoformat())
        if status is not None:
            query = query.eq("status", BookingStatus(status).value)
        response = await query.order("booking_date").order("booking_time").execute()
        return [Booking.from_row(row) for row in response.data or []]

    async def list_confirmed(self, day: datetime.date) -> List[Booking]:
        return await self.list_bookings(day, BookingStatus.CONFIRMED)

    async def count_confirmed(self, day: datetime.date) -> int:
        client = await self.get_client()
        response = await client.table("bookings")\
            .select("id", count="exact")\
            .eq("booking_date", day.isoformat())\
            .eq("status", BookingStatus.CONFIRMED.value)\
            .execute()
        return response.count or 0

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        client = await self.get_client()
        response = await client.table("bookings").select("*").eq("id", booking_id).execute()
        if response.data:
            return Booking.from_row(response.data[0])
        return None

    async def set_status(self, booking_id: str, status: BookingStatus) -> int:
        client = await self.get_client()
        value = BookingStatus(status).value
        response = await client.table("bookings")\
            .update({"status": value, "updated_at": datetime.datetime.now(datetime.timezone.utc).isoformat()})\
            .eq("id", booking_id)\
            .neq("status", value)\
            .execute()
        return len(response.data or [])

    async def set_google_event_id(self, booking_id: str, event_id: Optional[str]) -> None:
        client = await self.get_client()
        await client.table("bookings").update({"google_event_id": event_id}).eq("id", booking_id).execute()

    # --- configuration --------------------------------------------------

    async def get_weekly_hours(self) -> WeeklyHours:
        client = await self.get_client()
        response = await client.table("business_hours").select("*").execute()
        days = {
            Weekday.from_key(row["day_of_week"]): DayHours(
                open_time=row["open_time"],
                close_time=row["close_time"],
                enabled=bool(row["is_enabled"]),
            )
            for row in response.data or []
        }
        return WeeklyHours(days=days)

    async def update_day_hours(self, day: Weekday, hours: DayHours) -> DayHours:
        client = await self.get_client()
        await client.table("business_hours").upsert({
            "day_of_week": day.key,
            "open_time": hours.open_time,
            "close_time": hours.close_time,
            "is_enabled": hours.enabled,
        }).execute()
        return hours

    async def get_service(self, service_id: str) -> Optional[Service]:
        client = await self.get_client()
        response = await client.table("services").select("*").eq("id", service_id).execute()
        if response.data:
            return self._service_from_row(response.data[0])
        return None

    async def list_services(self, active_only: bool = True) -> List[Service]:
        client = await self.get_client()
        query = client.table("services").select("*")
        if active_only:
            query = query.eq("is_active", True)
        response = await query.order("sort_order").execute()
        return [self._service_from_row(row) for row in response.data or []]

    async def upsert_service(self, service: Service) -> Service:
        client = await self.get_client()
        await client.table("services").upsert({
            "id": service.id,
            "name": service.name,
            "duration": service.duration_minutes,
            "price": service.price,
            "description": service.description,
            "is_active": service.is_active,
            "sort_order": service.sort_order,
        }).execute()
        return service

    async def get_booking_config(self) -> BookingConfig:
        client = await self.get_client()
        response = await client.table("config").select("*").eq("id", 1).execute()
        if not response.data:
            return BookingConfig()
        row = response.data[0]
        return BookingConfig(**{k: row[k] for k in BookingConfig.model_fields if k in row and row[k] is not None})

    async def update_booking_config(self, config: BookingConfig) -> BookingConfig:
        client = await self.get_client()
        await client.table("config").upsert({"id": 1, **config.model_dump()}).execute()
        return config

    @staticmethod
    def _service_from_row(row: dict) -> Service:
        return Service(
            id=row["id"],
            name=row["name"],
            duration_minutes=row["duration"],
            price=row.get("price") or 0,
            description=row.get("description"),
            is_active=bool(row.get("is_active", True)),
            sort_order=row.get("sort_order") or 0,
        )

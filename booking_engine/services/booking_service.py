import asyncio
import datetime
from typing import Awaitable, Callable, List, Optional, Set

from booking_engine.core.config import settings as default_settings
from booking_engine.core.errors import InvalidService, DayClosed, NotFound, SlotUnavailable, StoreConflictError
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schedule import Service
from booking_engine.models.timeutil import format_hhmm, parse_hhmm
from booking_engine.services.availability import (
    admission_check,
    check_within_hours,
    compute_slots,
    load_busy_minutes,
    weekday_of,
)
from booking_engine.services.notification_service import (
    notify_booking_cancelled,
    notify_booking_confirmed,
    notify_booking_sms,
)
from booking_engine.services.store import BookingStore


class BookingService:
    """
    Availability and admission on top of an injected store.

    ``compute_slots`` is advisory: its answer may be stale as soon as it is
    returned. ``create_booking`` is the only write path for new bookings and
    re-verifies everything inside the store's atomic unit. Email, SMS and
    calendar mirroring run as post-commit tasks that never affect the result.
    """

    def __init__(self, store: BookingStore, calendar=None, settings=default_settings):
        self.store = store
        self.calendar = calendar
        self.calendar_timeout = settings.CALENDAR_TIMEOUT_SECONDS
        self.side_effect_timeout = settings.SIDE_EFFECT_TIMEOUT_SECONDS
        self.max_retries = max(0, settings.ADMISSION_MAX_RETRIES)
        self._tasks: Set[asyncio.Task] = set()

    # --- reads ----------------------------------------------------------

    async def list_services(self, active_only: bool = True) -> List[Service]:
        return await self.store.list_services(active_only)

    async def get_active_service(self, service_id: str) -> Service:
        service = await self.store.get_service(service_id)
        if service is None or not service.is_active:
            raise InvalidService(f"Unknown or inactive service: {service_id}")
        return service

    async def compute_slots(self, day: datetime.date, service_id: str, strict: bool = False) -> List[str]:
        """
        Ordered "HH:MM" start times for ``service_id`` on ``day``.
        An unknown/inactive service gives [] unless ``strict``, which raises InvalidService.
        """
        service = await self.store.get_service(service_id)
        if strict and (service is None or not service.is_active):
            raise InvalidService(f"Unknown or inactive service: {service_id}")
        if service is None or not service.is_active:
            return []

        weekly_hours = await self.store.get_weekly_hours()
        if not weekly_hours.for_weekday(weekday_of(day)).enabled:
            return []

        config = await self.store.get_booking_config()
        confirmed = await self.store.list_confirmed(day)
        # compute_slots checks the cap too; this early exit only skips the calendar round trip
        if len(confirmed) >= config.max_bookings_per_day:
            return []

        busy = await load_busy_minutes(self.calendar, day, config, self.calendar_timeout)
        return compute_slots(day, service, weekly_hours, config, confirmed, busy)

    async def get_booking(self, booking_id: str) -> Booking:
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")
        return booking

    async def list_bookings(self, day: Optional[datetime.date] = None, status: Optional[BookingStatus] = None) -> List[Booking]:
        return await self.store.list_bookings(day, status)

    # --- admission ------------------------------------------------------

    async def create_booking(
        self,
        service_id: str,
        day: datetime.date,
        start_time: str,
        customer_name: str,
        customer_email: str,
        customer_phone: str,
        notes: Optional[str] = None,
    ) -> Booking:
        logger.info(f"📥 Booking request - service: {service_id}, date: {day}, time: {start_time}")

        service = await self.get_active_service(service_id)
        weekly_hours = await self.store.get_weekly_hours()
        hours = weekly_hours.for_weekday(weekday_of(day))
        if not hours.enabled:
            raise DayClosed(f"We are closed on {day.strftime('%A')}s.")
        check_within_hours(hours, start_time, service.duration_minutes)
        start_time = format_hhmm(parse_hhmm(start_time))

        config = await self.store.get_booking_config()
        # Remote lookup happens before the atomic unit, never inside it
        busy = await load_busy_minutes(self.calendar, day, config, self.calendar_timeout)

        booking = Booking(
            service_id=service.id,
            date=day,
            start_time=start_time,
            duration_minutes=service.duration_minutes,
            customer_name=customer_name.strip(),
            customer_email=customer_email.strip(),
            customer_phone=customer_phone.strip(),
            notes=notes,
        )
        conflict_check = admission_check(start_time, service.duration_minutes, config, busy)

        for attempt in range(self.max_retries + 1):
            try:
                outcome = await self.store.insert_if_available(booking, conflict_check)
            except StoreConflictError as e:
                logger.warning(f"⚠️ Admission attempt {attempt + 1} for {day} {start_time} hit a write conflict: {e}")
                continue

            if outcome.conflict is not None:
                logger.info(f"🚫 Booking rejected ({outcome.conflict.code}) for {day} {start_time}")
                raise outcome.conflict
            break
        else:
            raise SlotUnavailable(f"{start_time} on {day} is no longer available.")

        logger.info(f"✅ Booking {booking.id} confirmed: {service.id} on {day} at {start_time}")

        self._dispatch("confirmation email", lambda: asyncio.to_thread(notify_booking_confirmed, booking, service, config))
        self._dispatch("confirmation sms", lambda: asyncio.to_thread(notify_booking_sms, booking, service, config))
        if self.calendar is not None:
            self._dispatch("calendar mirror", lambda: self._mirror_to_calendar(booking, service, config))

        return booking

    async def cancel_booking(self, booking_id: str) -> Booking:
        """Flip a booking to cancelled. Cancelling twice is a no-op."""
        booking = await self.store.get_booking(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found")

        affected = await self.store.set_status(booking_id, BookingStatus.CANCELLED)
        if affected == 0:
            current = await self.store.get_booking(booking_id)
            if current is None:
                raise NotFound(f"Booking {booking_id} not found")
            logger.info(f"ℹ️ Booking {booking_id} already cancelled")
            return current

        cancelled = booking.model_copy(update={"status": BookingStatus.CANCELLED})
        logger.info(f"🗑️ Booking {booking_id} cancelled ({booking.date} {booking.start_time})")

        config = await self.store.get_booking_config()
        service = await self.store.get_service(booking.service_id)
        self._dispatch("cancellation email", lambda: asyncio.to_thread(notify_booking_cancelled, cancelled, service, config))
        if self.calendar is not None and booking.google_event_id:
            self._dispatch("calendar delete", lambda: self.calendar.delete_event(booking.google_event_id, config))

        return cancelled

    # --- post-commit tasks ----------------------------------------------

    async def _mirror_to_calendar(self, booking: Booking, service: Service, config) -> None:
        event_id = await self.calendar.create_event(booking, service, config)
        if not event_id:
            return
        await self.store.set_google_event_id(booking.id, event_id)
        logger.info(f"📅 Booking {booking.id} mirrored as event {event_id}")

        # A cancel that landed while the event was being created saw no event id
        current = await self.store.get_booking(booking.id)
        if current is not None and current.status == BookingStatus.CANCELLED:
            logger.info(f"🗑️ Booking {booking.id} was cancelled during mirroring, removing event {event_id}")
            await self.calendar.delete_event(event_id, config)

    def _dispatch(self, name: str, make_coro: Callable[[], Awaitable]) -> None:
        task = asyncio.create_task(self._run_side_effect(name, make_coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_side_effect(self, name: str, make_coro: Callable[[], Awaitable]) -> None:
        try:
            await asyncio.wait_for(make_coro(), timeout=self.side_effect_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"⏱️ Side effect '{name}' timed out after {self.side_effect_timeout}s")
        except Exception:
            logger.exception(f"❌ Side effect '{name}' failed")

    async def drain(self) -> None:
        """Wait for pending post-commit tasks (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

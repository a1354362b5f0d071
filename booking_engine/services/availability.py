"""
Availability Engine.

``compute_slots`` is a pure function of (date, service, hours, config,
confirmed bookings, external busy intervals). It keeps no state between calls
and never touches the store; ``load_busy_minutes`` is the only I/O here and is
best-effort by contract.

All intervals are half-open ``[start, end)`` in minutes since midnight of the
requested date, in the business timezone.
"""
import asyncio
import math
import datetime
from typing import Iterable, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from booking_engine.core.errors import DailyCapReached, DayClosed, SlotUnavailable
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking, BookingStatus
from booking_engine.models.schedule import BookingConfig, DayHours, Service, WeeklyHours, Weekday
from booking_engine.models.timeutil import MINUTES_PER_DAY, format_hhmm, parse_hhmm

SLOT_STEP_MINUTES = 30

Interval = Tuple[int, int]


def overlaps(a: Interval, b: Interval) -> bool:
    return a[0] < b[1] and a[1] > b[0]


def weekday_of(day: datetime.date) -> Weekday:
    return Weekday(day.weekday())


def occupied_intervals(bookings: Iterable[Booking], buffer_minutes: int) -> List[Interval]:
    """Occupied intervals of confirmed bookings; buffer trails each booking."""
    return [
        b.occupied_interval(buffer_minutes)
        for b in bookings
        if b.status == BookingStatus.CONFIRMED
    ]


def busy_to_minutes(
    busy: Iterable[Tuple[datetime.datetime, datetime.datetime]],
    day: datetime.date,
    tz: ZoneInfo,
) -> List[Interval]:
    """
    Project external (start, end) datetimes onto minutes of ``day`` in ``tz``.
    Naive datetimes are taken to already be in ``tz``. Parts falling outside
    the day are clipped; intervals that miss the day entirely are dropped.
    """
    day_start = datetime.datetime.combine(day, datetime.time.min, tzinfo=tz)
    result = []
    for start, end in busy:
        if start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        if end.tzinfo is None:
            end = end.replace(tzinfo=tz)
        start_min = (start - day_start).total_seconds() / 60
        end_min = (end - day_start).total_seconds() / 60
        start_min = max(0, math.floor(start_min))
        # Round partial minutes up so the busy block is never shortened
        end_min = min(MINUTES_PER_DAY, math.ceil(end_min))
        if start_min < end_min:
            result.append((start_min, end_min))
    return result


def candidate_starts(hours: DayHours, duration_minutes: int) -> range:
    """Start minutes from open to close - duration inclusive, every 30 minutes."""
    return range(hours.open_minute, hours.close_minute - duration_minutes + 1, SLOT_STEP_MINUTES)


def compute_slots(
    day: datetime.date,
    service: Optional[Service],
    weekly_hours: WeeklyHours,
    config: BookingConfig,
    bookings: Sequence[Booking],
    busy: Sequence[Interval] = (),
) -> List[str]:
    if service is None or not service.is_active:
        return []

    hours = weekly_hours.for_weekday(weekday_of(day))
    if not hours.enabled:
        return []

    confirmed = [b for b in bookings if b.status == BookingStatus.CONFIRMED]
    if len(confirmed) >= config.max_bookings_per_day:
        return []

    blocked = occupied_intervals(confirmed, config.buffer_minutes) + list(busy)

    slots = []
    for start in candidate_starts(hours, service.duration_minutes):
        candidate = (start, start + service.duration_minutes)
        if not any(overlaps(candidate, other) for other in blocked):
            slots.append(format_hhmm(start))
    return slots


def admission_check(
    start_time: str,
    duration_minutes: int,
    config: BookingConfig,
    busy: Sequence[Interval] = (),
):
    """
    Build the conflict check run by the store inside its atomic unit.

    The returned callable receives the *other* confirmed bookings on the
    date as committed right now and returns the error to surface, or None.
    """
    start = parse_hhmm(start_time)
    candidate = (start, start + duration_minutes)

    def check(confirmed: Sequence[Booking]):
        if len(confirmed) >= config.max_bookings_per_day:
            return DailyCapReached(
                f"The daily limit of {config.max_bookings_per_day} bookings has been reached."
            )
        blocked = occupied_intervals(confirmed, config.buffer_minutes) + list(busy)
        if any(overlaps(candidate, other) for other in blocked):
            return SlotUnavailable(f"{start_time} is no longer available.")
        return None

    return check


def check_within_hours(hours: DayHours, start_time: str, duration_minutes: int) -> None:
    """Raise DayClosed / SlotUnavailable when the request cannot fit the opening hours."""
    if not hours.enabled:
        raise DayClosed()
    try:
        start = parse_hhmm(start_time)
    except ValueError as e:
        raise SlotUnavailable(str(e)) from None
    if start < hours.open_minute or start + duration_minutes > hours.close_minute:
        raise SlotUnavailable(
            f"{start_time} is outside opening hours ({hours.open_time}-{hours.close_time})."
        )


async def load_busy_minutes(calendar, day: datetime.date, config: BookingConfig, timeout: float) -> List[Interval]:
    """
    Ask the external calendar for busy intervals on ``day``.
    Best-effort: a missing adapter, an error or a timeout all give [].
    """
    if calendar is None:
        return []
    try:
        busy = await asyncio.wait_for(calendar.busy_intervals(day, config), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"⏱️ Calendar busy lookup for {day} timed out after {timeout}s, ignoring")
        return []
    except Exception as e:
        logger.warning(f"⚠️ Calendar busy lookup for {day} failed: {e}")
        return []
    return busy_to_minutes(busy, day, config.tz)

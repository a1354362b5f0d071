import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import pytest_asyncio

from booking_engine.models.schedule import BookingConfig, DayHours, Service, Weekday
from booking_engine.services.booking_service import BookingService
from booking_engine.services.sqlite_store import SQLiteStore

# 2024-01-01 is a Monday
MONDAY = datetime.date(2024, 1, 1)
TUESDAY = datetime.date(2024, 1, 2)
SUNDAY = datetime.date(2024, 1, 7)

SERVICES = [
    Service(id="svc_30", name="Intro Call", duration_minutes=30, sort_order=1),
    Service(id="svc_60", name="Consultation", duration_minutes=60, price=150, sort_order=2),
    Service(id="svc_old", name="Retired", duration_minutes=45, is_active=False, sort_order=3),
]


def make_settings(**overrides):
    values = dict(
        CALENDAR_TIMEOUT_SECONDS=0.2,
        SIDE_EFFECT_TIMEOUT_SECONDS=2.0,
        ADMISSION_MAX_RETRIES=1,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


async def seed_store(store, buffer_minutes=15, max_bookings_per_day=8, timezone="UTC"):
    await store.migrate()
    await store.update_booking_config(BookingConfig(
        business_name="Test Studio",
        business_email="owner@test.com",
        timezone=timezone,
        buffer_minutes=buffer_minutes,
        max_bookings_per_day=max_bookings_per_day,
    ))
    for day in Weekday:
        enabled = day not in (Weekday.SATURDAY, Weekday.SUNDAY)
        await store.update_day_hours(day, DayHours(open_time="09:00", close_time="17:00", enabled=enabled))
    for service in SERVICES:
        await store.upsert_service(service)
    return store


@pytest_asyncio.fixture
async def store(tmp_path):
    return await seed_store(SQLiteStore(str(tmp_path / "bookings.db")))


@pytest_asyncio.fixture
async def booking_service(store):
    service = BookingService(store, calendar=None, settings=make_settings())
    yield service
    await service.drain()


@pytest.fixture(autouse=True)
def silence_notifications():
    """Post-commit notifications never leave the test process."""
    with patch("booking_engine.services.booking_service.notify_booking_confirmed", MagicMock()) as confirmed, \
         patch("booking_engine.services.booking_service.notify_booking_sms", MagicMock()) as sms, \
         patch("booking_engine.services.booking_service.notify_booking_cancelled", MagicMock()) as cancelled:
        yield SimpleNamespace(confirmed=confirmed, sms=sms, cancelled=cancelled)


def customer(**overrides):
    values = dict(customer_name="Jane Doe", customer_email="jane@example.com", customer_phone="+1 555 0100")
    values.update(overrides)
    return values

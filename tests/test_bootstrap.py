import json

import pytest
from pydantic import ValidationError

from booking_engine.bootstrap import bootstrap
from booking_engine.core.config_loader import (
    booking_config_from_config,
    load_company_config,
    services_from_config,
    weekly_hours_from_config,
)
from booking_engine.models.api_models import CreateBookingRequest
from booking_engine.models.schedule import BookingConfig, DayHours, Service, Weekday
from booking_engine.models.timeutil import format_hhmm, parse_hhmm
from booking_engine.services.sqlite_store import SQLiteStore


@pytest.fixture
def company_file(tmp_path):
    path = tmp_path / "company_config.json"
    path.write_text(json.dumps({
        "company_name": "Seed Studio",
        "owner_email": "owner@seed.com",
        "timezone": "Europe/Prague",
        "booking": {"buffer_minutes": 10, "max_bookings_per_day": 4},
        "business_hours": {
            "monday": {"start": "08:00", "end": "12:00"},
            "saturday": None,
        },
        "services": [
            {"id": "a", "name": "Alpha", "duration": 20},
            {"id": "b", "duration": 40, "price": 99, "active": False},
        ],
    }), encoding="utf-8")
    return str(path)


def test_company_config_conversion(company_file):
    company = load_company_config(company_file)

    config = booking_config_from_config(company)
    assert config.business_name == "Seed Studio"
    assert config.business_email == "owner@seed.com"
    assert (config.buffer_minutes, config.max_bookings_per_day) == (10, 4)

    hours = weekly_hours_from_config(company)
    monday = hours.for_weekday(Weekday.MONDAY)
    assert monday.enabled and (monday.open_time, monday.close_time) == ("08:00", "12:00")
    assert not hours.for_weekday(Weekday.SATURDAY).enabled
    assert not hours.for_weekday(Weekday.TUESDAY).enabled

    services = services_from_config(company)
    assert [(s.id, s.name, s.is_active, s.sort_order) for s in services] == [
        ("a", "Alpha", True, 1),
        ("b", "b", False, 2),
    ]


def test_missing_or_broken_company_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_company_config(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError):
        load_company_config(str(broken))


@pytest.mark.asyncio
async def test_bootstrap_seeds_once(tmp_path, company_file):
    store = SQLiteStore(str(tmp_path / "seed.db"))

    assert await bootstrap(store, company_file) is True
    assert (await store.get_booking_config()).timezone == "Europe/Prague"
    assert [s.id for s in await store.list_services(active_only=False)] == ["a", "b"]

    # Admin edits survive a second bootstrap
    await store.upsert_service(Service(id="a", name="Alpha", duration_minutes=25))
    assert await bootstrap(store, company_file) is False
    assert (await store.get_service("a")).duration_minutes == 25


def test_time_helpers():
    assert parse_hhmm("00:00") == 0
    assert parse_hhmm("23:59") == 1439
    assert format_hhmm(615) == "10:15"
    for bad in ("9:00", "24:00", "12:60", "noon", "", "12:00:00"):
        with pytest.raises(ValueError):
            parse_hhmm(bad)


def test_model_validation():
    with pytest.raises(ValidationError):
        DayHours(open_time="17:00", close_time="09:00", enabled=True)
    # Closed days do not care about their times
    DayHours(open_time="17:00", close_time="09:00", enabled=False)

    with pytest.raises(ValidationError):
        Service(id="x", duration_minutes=0)
    with pytest.raises(ValidationError):
        BookingConfig(timezone="Nowhere/Special")
    with pytest.raises(ValidationError):
        BookingConfig(max_bookings_per_day=-1)

    assert Weekday.from_key("Sunday") is Weekday.SUNDAY
    with pytest.raises(ValueError):
        Weekday.from_key("funday")


def test_create_booking_request_validation():
    base = dict(service_id="svc", date="2030-01-07", time="10:00", customer_name="A", customer_email="a@b.co",
                customer_phone="+1 555 0100")
    assert CreateBookingRequest(**base).time == "10:00"
    with pytest.raises(ValidationError):
        CreateBookingRequest(**{**base, "time": "10am"})
    with pytest.raises(ValidationError):
        CreateBookingRequest(**{**base, "customer_email": "nobody"})


@pytest.mark.parametrize("email", ["@zz", "a@zz", "@bzz", "x y@@", "plain"])
def test_create_booking_request_rejects_malformed_email(email):
    base = dict(service_id="svc", date="2030-01-07", time="10:00", customer_name="A", customer_phone="+1 555 0100")
    with pytest.raises(ValidationError):
        CreateBookingRequest(**base, customer_email=email)


@pytest.mark.parametrize("phone", [None, "", "   "])
def test_create_booking_request_requires_phone(phone):
    base = dict(service_id="svc", date="2030-01-07", time="10:00", customer_name="A", customer_email="a@b.co")
    payload = base if phone is None else {**base, "customer_phone": phone}
    with pytest.raises(ValidationError):
        CreateBookingRequest(**payload)

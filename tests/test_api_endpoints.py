import datetime
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from booking_engine.core.config import settings
from booking_engine.main import app

ADMIN = {"X-Admin-Token": "secret-admin"}


def next_monday() -> datetime.date:
    today = datetime.date.today()
    return today + datetime.timedelta(days=7 - today.weekday() + 7)


MONDAY = next_monday()
SUNDAY = MONDAY + datetime.timedelta(days=6)

COMPANY = {
    "company_name": "API Studio",
    "owner_email": "owner@test.com",
    "timezone": "UTC",
    "booking": {"buffer_minutes": 15, "max_bookings_per_day": 8},
    "business_hours": {
        "monday": {"start": "09:00", "end": "17:00"},
        "tuesday": {"start": "09:00", "end": "17:00"},
        "sunday": None,
    },
    "services": [
        {"id": "svc_intro", "name": "Intro Call", "duration": 30, "price": 0},
        {"id": "svc_consult", "name": "Consultation", "duration": 60, "price": 150},
        {"id": "svc_retired", "name": "Retired", "duration": 45, "active": False},
    ],
    "notifications": {"email_enabled": False, "sms_enabled": False},
}


@pytest.fixture
def client(tmp_path):
    config_path = tmp_path / "company_config.json"
    config_path.write_text(json.dumps(COMPANY), encoding="utf-8")

    with patch.object(settings, "STORE_BACKEND", "sqlite"), \
         patch.object(settings, "DATABASE_PATH", str(tmp_path / "api.db")), \
         patch.object(settings, "COMPANY_CONFIG_PATH", str(config_path)), \
         patch.object(settings, "BOOTSTRAP_ON_STARTUP", True), \
         patch.object(settings, "ADMIN_TOKEN", ADMIN["X-Admin-Token"]), \
         patch.object(settings, "GOOGLE_CREDENTIALS_FILE", ""), \
         patch.object(settings, "GOOGLE_CREDENTIALS_JSON", ""):
        with TestClient(app) as test_client:
            yield test_client


def book(client, time="10:00", service_id="svc_intro", day=MONDAY, **extra):
    payload = {
        "service_id": service_id,
        "date": day.isoformat(),
        "time": time,
        "customer_name": "API Tester",
        "customer_email": "tester@example.com",
        "customer_phone": "+420700000000",
    }
    payload.update(extra)
    return client.post("/api/bookings", json=payload)


def test_health(client):
    assert client.get("/").json()["status"] == "active"
    assert client.get("/health").json()["status"] == "ok"


def test_list_services_hides_inactive(client):
    response = client.get("/api/services")
    assert response.status_code == 200
    assert [s["id"] for s in response.json()] == ["svc_intro", "svc_consult"]


def test_slots_for_open_day(client):
    response = client.get("/api/slots", params={"date": MONDAY.isoformat(), "service_id": "svc_intro"})
    assert response.status_code == 200
    data = response.json()
    assert data["date"] == MONDAY.isoformat()
    assert len(data["slots"]) == 16
    assert data["slots"][0] == "09:00"


def test_slots_for_closed_day_is_empty(client):
    response = client.get("/api/slots", params={"date": SUNDAY.isoformat(), "service_id": "svc_intro"})
    assert response.status_code == 200
    assert response.json()["slots"] == []


def test_slots_for_unknown_service(client):
    response = client.get("/api/slots", params={"date": MONDAY.isoformat(), "service_id": "svc_missing"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_service"


def test_slots_in_the_past_are_empty(client):
    last_week = datetime.date.today() - datetime.timedelta(days=7)
    response = client.get("/api/slots", params={"date": last_week.isoformat(), "service_id": "svc_intro"})
    assert response.status_code == 200
    assert response.json()["slots"] == []


def test_create_and_fetch_booking(client):
    response = book(client, notes="First visit")
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "confirmed"
    assert created["duration_minutes"] == 30
    assert created["time"] == "10:00"

    fetched = client.get(f"/api/bookings/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["notes"] == "First visit"

    slots = client.get("/api/slots", params={"date": MONDAY.isoformat(), "service_id": "svc_intro"}).json()["slots"]
    assert "10:00" not in slots and "10:30" not in slots
    assert "11:00" in slots


@pytest.mark.parametrize("kwargs,status,code", [
    ({"service_id": "svc_missing"}, 400, "invalid_service"),
    ({"service_id": "svc_retired"}, 400, "invalid_service"),
    ({"day": SUNDAY}, 409, "day_closed"),
    ({"time": "16:45"}, 409, "slot_unavailable"),
])
def test_create_booking_errors(client, kwargs, status, code):
    response = book(client, **kwargs)
    assert response.status_code == status
    body = response.json()
    assert body["error"] == code
    assert body["message"]


def test_double_booking_is_rejected(client):
    assert book(client, time="14:00").status_code == 201
    response = book(client, time="14:00")
    assert response.status_code == 409
    assert response.json()["error"] == "slot_unavailable"


def test_daily_cap(client):
    config = client.get("/admin/config", headers=ADMIN).json()
    config["max_bookings_per_day"] = 1
    assert client.put("/admin/config", json=config, headers=ADMIN).status_code == 200

    assert book(client, time="09:00").status_code == 201
    response = book(client, time="15:00")
    assert response.status_code == 409
    assert response.json()["error"] == "daily_cap_reached"


def test_invalid_payloads(client):
    assert book(client, time="9am").status_code == 422
    assert book(client, customer_email="not-an-email").status_code == 422
    yesterday = datetime.date.today() - datetime.timedelta(days=1)
    assert book(client, day=yesterday).status_code == 422


def test_customer_phone_is_required(client):
    assert book(client, customer_phone="").status_code == 422
    assert book(client, customer_phone="   ").status_code == 422

    payload = {
        "service_id": "svc_intro",
        "date": MONDAY.isoformat(),
        "time": "10:00",
        "customer_name": "API Tester",
        "customer_email": "tester@example.com",
    }
    response = client.post("/api/bookings", json=payload)
    assert response.status_code == 422
    assert client.get("/admin/bookings", headers=ADMIN).json() == []


def test_cancel_flow(client):
    booking_id = book(client).json()["id"]

    response = client.post(f"/api/bookings/{booking_id}/cancel")
    assert response.status_code == 200
    assert response.json() == {"success": True, "booking_id": booking_id, "status": "cancelled"}

    # Second cancel is a no-op
    assert client.post(f"/api/bookings/{booking_id}/cancel").json()["status"] == "cancelled"
    assert book(client).status_code == 201


def test_unknown_booking(client):
    assert client.get("/api/bookings/bk_missing").status_code == 404
    response = client.post("/api/bookings/bk_missing/cancel")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_admin_requires_token(client):
    assert client.get("/admin/bookings").status_code == 403
    assert client.get("/admin/bookings", headers={"X-Admin-Token": "wrong"}).status_code == 403
    assert client.get("/admin/bookings", headers=ADMIN).status_code == 200


def test_admin_disabled_without_configured_token(client):
    with patch.object(settings, "ADMIN_TOKEN", ""):
        assert client.get("/admin/config", headers=ADMIN).status_code == 403


def test_admin_lists_bookings_with_filters(client):
    first = book(client, time="09:00").json()["id"]
    book(client, time="11:00")
    client.post(f"/api/bookings/{first}/cancel")

    everything = client.get("/admin/bookings", headers=ADMIN).json()
    assert [b["time"] for b in everything] == ["09:00", "11:00"]

    confirmed = client.get("/admin/bookings", params={"date": MONDAY.isoformat(), "status": "confirmed"}, headers=ADMIN)
    assert [b["time"] for b in confirmed.json()] == ["11:00"]


def test_admin_updates_hours(client):
    response = client.put("/admin/hours/sunday", json={"open_time": "10:00", "close_time": "12:00"}, headers=ADMIN)
    assert response.status_code == 200

    slots = client.get("/api/slots", params={"date": SUNDAY.isoformat(), "service_id": "svc_intro"}).json()["slots"]
    assert slots == ["10:00", "10:30", "11:00", "11:30"]

    assert client.put("/admin/hours/someday", json={}, headers=ADMIN).status_code == 404
    bad = {"open_time": "12:00", "close_time": "10:00"}
    assert client.put("/admin/hours/monday", json=bad, headers=ADMIN).status_code == 422


def test_admin_service_change_keeps_existing_duration(client):
    booking_id = book(client, time="10:00").json()["id"]

    service = {"id": "svc_intro", "name": "Intro Call", "duration_minutes": 60, "price": 0}
    assert client.put("/admin/services/svc_intro", json=service, headers=ADMIN).status_code == 200
    assert client.put("/admin/services/other", json=service, headers=ADMIN).status_code == 422

    assert client.get(f"/api/bookings/{booking_id}").json()["duration_minutes"] == 30
    slots = client.get("/api/slots", params={"date": MONDAY.isoformat(), "service_id": "svc_intro"}).json()["slots"]
    # New 60 minute bookings must end before the 10:00 booking starts
    assert "09:00" in slots and "09:30" not in slots


def test_admin_rejects_invalid_config(client):
    config = client.get("/admin/config", headers=ADMIN).json()
    config["timezone"] = "Mars/Olympus"
    assert client.put("/admin/config", json=config, headers=ADMIN).status_code == 422
    config["timezone"] = "UTC"
    config["buffer_minutes"] = -5
    assert client.put("/admin/config", json=config, headers=ADMIN).status_code == 422

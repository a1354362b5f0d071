import uuid
from enum import Enum
from typing import Optional
from datetime import date, datetime, timezone
from pydantic import BaseModel, Field, field_validator

from booking_engine.models.timeutil import parse_hhmm


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


def new_booking_id() -> str:
    return f"bk_{uuid.uuid4().hex}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(BaseModel):
    id: str = Field(default_factory=new_booking_id)
    service_id: str
    date: date
    start_time: str
    # Frozen copy of the service duration at admission time
    duration_minutes: int = Field(gt=0)
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    notes: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    google_event_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("start_time")
    @classmethod
    def _check_time(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @property
    def start_minute(self) -> int:
        return parse_hhmm(self.start_time)

    def occupied_interval(self, buffer_minutes: int) -> tuple:
        """[start, start + duration + buffer) in minutes of day."""
        start = self.start_minute
        return (start, start + self.duration_minutes + buffer_minutes)

    def to_row(self) -> dict:
        return {
            "id": self.id,
            "service_id": self.service_id,
            "booking_date": self.date.isoformat(),
            "booking_time": self.start_time,
            "duration": self.duration_minutes,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "notes": self.notes,
            "status": self.status.value,
            "google_event_id": self.google_event_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row) -> "Booking":
        row = dict(row)
        return cls(
            id=row["id"],
            service_id=row["service_id"],
            date=row["booking_date"],
            start_time=row["booking_time"],
            duration_minutes=row["duration"],
            customer_name=row["customer_name"],
            customer_email=row["customer_email"],
            customer_phone=row.get("customer_phone"),
            notes=row.get("notes"),
            status=row.get("status") or BookingStatus.CONFIRMED,
            google_event_id=row.get("google_event_id"),
            created_at=row.get("created_at") or utcnow(),
        )

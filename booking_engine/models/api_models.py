from datetime import date
from typing import List, Optional
from pydantic import BaseModel, EmailStr, Field, field_validator

from booking_engine.models.timeutil import parse_hhmm

# --- Requests ---

class CreateBookingRequest(BaseModel):
    service_id: str = Field(..., min_length=1)
    date: date
    time: str
    customer_name: str = Field(..., min_length=1)
    customer_email: EmailStr
    customer_phone: str = Field(..., min_length=1)
    notes: Optional[str] = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @field_validator("customer_phone")
    @classmethod
    def _check_phone(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("customer_phone must not be blank")
        return v.strip()


class DayHoursUpdate(BaseModel):
    open_time: str = "09:00"
    close_time: str = "17:00"
    enabled: bool = True


# --- Responses ---

class BookingResponse(BaseModel):
    id: str
    service_id: str
    date: date
    time: str
    duration_minutes: int
    status: str
    created_at: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingResponse":
        return cls(
            id=booking.id,
            service_id=booking.service_id,
            date=booking.date,
            time=booking.start_time,
            duration_minutes=booking.duration_minutes,
            status=booking.status.value,
            created_at=booking.created_at.isoformat(),
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
            notes=booking.notes,
        )


class SlotsResponse(BaseModel):
    date: date
    service_id: str
    slots: List[str]


class CancelResponse(BaseModel):
    success: bool
    booking_id: str
    status: str

from enum import IntEnum
from typing import Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, Field, field_validator, model_validator

from booking_engine.models.timeutil import parse_hhmm


class Weekday(IntEnum):
    # Values match date.weekday()
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def key(self) -> str:
        return self.name.lower()

    @classmethod
    def from_key(cls, name: str) -> "Weekday":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown weekday: {name!r}") from None


class DayHours(BaseModel):
    open_time: str = "09:00"
    close_time: str = "17:00"
    enabled: bool = False

    @field_validator("open_time", "close_time")
    @classmethod
    def _check_format(cls, v: str) -> str:
        parse_hhmm(v)
        return v

    @model_validator(mode="after")
    def _open_before_close(self):
        if self.enabled and parse_hhmm(self.open_time) >= parse_hhmm(self.close_time):
            raise ValueError(f"open_time {self.open_time} must be before close_time {self.close_time}")
        return self

    @property
    def open_minute(self) -> int:
        return parse_hhmm(self.open_time)

    @property
    def close_minute(self) -> int:
        return parse_hhmm(self.close_time)


class WeeklyHours(BaseModel):
    """
    Opening hours keyed by Weekday. Always holds exactly seven entries:
    weekdays missing from the input are filled in as closed.
    """
    days: Dict[Weekday, DayHours] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_missing(self):
        for day in Weekday:
            self.days.setdefault(day, DayHours(enabled=False))
        return self

    def for_weekday(self, day: Weekday) -> DayHours:
        return self.days[day]


class Service(BaseModel):
    id: str
    name: str = ""
    duration_minutes: int = Field(gt=0)
    price: float = Field(default=0, ge=0)
    description: Optional[str] = None
    is_active: bool = True
    sort_order: int = 0


class BookingConfig(BaseModel):
    business_name: str = "Your Business"
    business_email: Optional[str] = None
    business_phone: Optional[str] = None
    timezone: str = "America/New_York"
    buffer_minutes: int = Field(default=15, ge=0)
    max_bookings_per_day: int = Field(default=8, ge=0)
    google_calendar_id: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v!r}") from None
        return v

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

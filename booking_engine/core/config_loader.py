import json
import os
from typing import Dict, Any, List, Optional

from booking_engine.core.config import settings
from booking_engine.core.logger import logger
from booking_engine.models.schedule import BookingConfig, DayHours, Service, WeeklyHours, Weekday


def load_company_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Loads company configuration from JSON file.
    Raises FileNotFoundError if config is missing.
    Returns: Dict containing config.
    """
    path = path or settings.COMPANY_CONFIG_PATH
    if not os.path.exists(path):
        logger.critical(f"❌ Company config '{path}' not found!")
        raise FileNotFoundError(f"Configuration file not found at {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        logger.critical(f"❌ Invalid JSON in company config: {e}")
        raise ValueError(f"Invalid JSON in config file: {e}")

    logger.debug(f"Company config loaded for: {config.get('company_name', 'Unknown')}")
    return config


def get_business_hours(config: Dict[str, Any], day_name: str) -> Optional[Dict[str, str]]:
    """
    Returns {'start': 'HH:MM', 'end': 'HH:MM'} for a weekday name, or None if closed.
    """
    hours = config.get("business_hours", {})
    return hours.get(day_name.lower())


def weekly_hours_from_config(config: Dict[str, Any]) -> WeeklyHours:
    days = {}
    for day in Weekday:
        hours = get_business_hours(config, day.key)
        if hours:
            days[day] = DayHours(open_time=hours["start"], close_time=hours["end"], enabled=True)
        else:
            days[day] = DayHours(enabled=False)
    return WeeklyHours(days=days)


def services_from_config(config: Dict[str, Any]) -> List[Service]:
    services = []
    for position, item in enumerate(config.get("services", []), start=1):
        services.append(Service(
            id=item["id"],
            name=item.get("name", item["id"]),
            duration_minutes=item["duration"],
            price=item.get("price", 0),
            description=item.get("description"),
            is_active=item.get("active", True),
            sort_order=item.get("sort_order", position),
        ))
    return services


def booking_config_from_config(config: Dict[str, Any]) -> BookingConfig:
    booking = config.get("booking", {})
    return BookingConfig(
        business_name=config.get("company_name", "Your Business"),
        business_email=config.get("owner_email"),
        business_phone=config.get("phone"),
        timezone=config.get("timezone", "America/New_York"),
        buffer_minutes=booking.get("buffer_minutes", 15),
        max_bookings_per_day=booking.get("max_bookings_per_day", 8),
        google_calendar_id=config.get("google_calendar_id"),
    )

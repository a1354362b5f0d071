"""Minute-of-day helpers shared by models and the availability engine."""

MINUTES_PER_DAY = 24 * 60


def parse_hhmm(value: str) -> int:
    """'09:30' -> 570. Raises ValueError on anything that is not a 24h HH:MM."""
    try:
        hours_str, minutes_str = value.strip().split(":")
        if len(hours_str) != 2 or len(minutes_str) != 2:
            raise ValueError
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM") from None

    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    return hours * 60 + minutes


def format_hhmm(minute: int) -> str:
    """570 -> '09:30'."""
    return f"{minute // 60:02d}:{minute % 60:02d}"

import os
import json
import asyncio
import datetime
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking
from booking_engine.models.schedule import BookingConfig, Service

SCOPES = ['https://www.googleapis.com/auth/calendar']
UTC = ZoneInfo('UTC')


def get_calendar_service(credentials_file: str = "", credentials_json: str = ""):
    """
    Authenticate and return the Google Calendar service.
    Credentials come from:
    1. a service-account JSON file (local development),
    2. the GOOGLE_CREDENTIALS_JSON setting (cloud deployment).
    Returns None if credentials are missing or invalid.
    """
    try:
        if credentials_file and os.path.exists(credentials_file):
            logger.info(f"🔑 Loading Google credentials from file: {credentials_file}")
            creds = service_account.Credentials.from_service_account_file(
                credentials_file, scopes=SCOPES
            )
        elif credentials_json:
            logger.info("🔑 Loading Google credentials from environment")
            creds = service_account.Credentials.from_service_account_info(
                json.loads(credentials_json), scopes=SCOPES
            )
        else:
            logger.warning("⚠️ No Google credentials found (file or env). Calendar sync skipped.")
            return None

        return build('calendar', 'v3', credentials=creds, cache_discovery=False)

    except Exception as e:
        logger.error(f"❌ Error initializing Google Calendar service: {e}")
        return None


def _booking_window(booking: Booking, config: BookingConfig) -> Tuple[datetime.datetime, datetime.datetime]:
    start = datetime.datetime.combine(
        booking.date,
        datetime.time.fromisoformat(booking.start_time),
        tzinfo=config.tz,
    )
    return start, start + datetime.timedelta(minutes=booking.duration_minutes)


def _parse_google_datetime(value: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))


class GoogleCalendarAdapter:
    """
    External calendar collaborator. Reads busy intervals for availability and
    mirrors confirmed bookings as events. Every call is blocking under the hood
    and runs in a worker thread.
    """

    def __init__(self, credentials_file: str = "", credentials_json: str = "", service=None):
        self.credentials_file = credentials_file
        self.credentials_json = credentials_json
        self._service = service

    @classmethod
    def from_settings(cls, settings) -> "GoogleCalendarAdapter":
        return cls(settings.GOOGLE_CREDENTIALS_FILE, settings.GOOGLE_CREDENTIALS_JSON)

    def _get_service(self):
        if self._service is None:
            self._service = get_calendar_service(self.credentials_file, self.credentials_json)
        return self._service

    async def busy_intervals(self, day: datetime.date, config: BookingConfig) -> List[Tuple[datetime.datetime, datetime.datetime]]:
        """Busy (start, end) pairs overlapping ``day`` in the business timezone."""
        calendar_id = config.google_calendar_id
        if not calendar_id:
            return []

        def _get():
            service = self._get_service()
            if not service:
                return []

            day_start = datetime.datetime.combine(day, datetime.time.min, tzinfo=config.tz)
            day_end = day_start + datetime.timedelta(days=1)

            response = service.freebusy().query(body={
                'timeMin': day_start.isoformat(),
                'timeMax': day_end.isoformat(),
                'timeZone': config.timezone,
                'items': [{'id': calendar_id}],
            }).execute()

            busy = response.get('calendars', {}).get(calendar_id, {}).get('busy', [])
            intervals = []
            for block in busy:
                try:
                    intervals.append((_parse_google_datetime(block['start']), _parse_google_datetime(block['end'])))
                except (KeyError, ValueError):
                    logger.warning(f"⚠️ Skipping malformed busy block: {block}")
            return intervals

        return await asyncio.to_thread(_get)

    async def create_event(self, booking: Booking, service: Optional[Service], config: BookingConfig) -> Optional[str]:
        """Mirror a confirmed booking into the calendar. Returns the event id."""
        calendar_id = config.google_calendar_id
        if not calendar_id:
            logger.info("ℹ️ Google Calendar not configured, skipping event creation")
            return None

        def _create():
            gcal = self._get_service()
            if not gcal:
                return None

            start, end = _booking_window(booking, config)
            service_name = service.name if service else booking.service_id

            lines = [
                "Booking Details:",
                f"- Customer: {booking.customer_name}",
                f"- Email: {booking.customer_email}",
            ]
            if booking.customer_phone:
                lines.append(f"- Phone: {booking.customer_phone}")
            if booking.notes:
                lines.append(f"- Notes: {booking.notes}")
            lines.append(f"- Booking ID: {booking.id}")

            event_body = {
                'summary': f"{service_name} - {booking.customer_name}",
                'description': "\n".join(lines),
                'start': {
                    'dateTime': start.astimezone(UTC).isoformat().replace('+00:00', 'Z'),
                    'timeZone': config.timezone,
                },
                'end': {
                    'dateTime': end.astimezone(UTC).isoformat().replace('+00:00', 'Z'),
                    'timeZone': config.timezone,
                },
                'attendees': [{'email': booking.customer_email}],
                'reminders': {
                    'useDefault': False,
                    'overrides': [
                        {'method': 'email', 'minutes': 24 * 60},
                        {'method': 'popup', 'minutes': 30},
                    ],
                },
            }

            try:
                event = gcal.events().insert(calendarId=calendar_id, body=event_body).execute()
            except HttpError as error:
                logger.error(f'❌ Google API Error: {error.content}')
                raise RuntimeError(f"Google API Error: {error.content}")

            logger.info(f"📅 Event created: {event.get('htmlLink')}")
            return event.get('id')

        return await asyncio.to_thread(_create)

    async def delete_event(self, event_id: str, config: BookingConfig) -> bool:
        calendar_id = config.google_calendar_id
        if not calendar_id or not event_id:
            return False

        def _delete():
            gcal = self._get_service()
            if not gcal:
                return False
            gcal.events().delete(calendarId=calendar_id, eventId=event_id).execute()
            logger.info(f"🗑️ Calendar event deleted: {event_id}")
            return True

        return await asyncio.to_thread(_delete)

import smtplib
import requests
import time
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from booking_engine.core.config import settings
from booking_engine.core.config_loader import load_company_config
from booking_engine.core.logger import logger
from booking_engine.models.db_models import Booking
from booking_engine.models.schedule import BookingConfig, Service

GOSMS_TOKEN_URL = "https://app.gosms.cz/oauth/v2/token"
GOSMS_MESSAGES_URL = "https://app.gosms.cz/api/v1/messages"

# Cached GoSMS OAuth token
_gosms_token = None
_gosms_token_expires_at = 0

def get_notification_config() -> dict:
    """Notification toggles and templates from the company config file."""
    return load_company_config().get("notifications", {})

def _get_gosms_token() -> Optional[str]:
    """
    Retrieves or refreshes OAuth2 access_token for GoSMS.
    """
    global _gosms_token, _gosms_token_expires_at

    # Reuse until 60s before expiry
    if _gosms_token and time.time() < _gosms_token_expires_at - 60:
        return _gosms_token

    if not settings.GOSMS_CLIENT_ID or not settings.GOSMS_CLIENT_SECRET:
        logger.error("❌ GoSMS credentials missing (GOSMS_CLIENT_ID or GOSMS_CLIENT_SECRET).")
        return None

    payload = {
        "client_id": settings.GOSMS_CLIENT_ID,
        "client_secret": settings.GOSMS_CLIENT_SECRET,
        "grant_type": "client_credentials"
    }

    try:
        response = requests.post(GOSMS_TOKEN_URL, data=payload, timeout=10)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.error(f"❌ Failed to get GoSMS token: {e}")
        return None

    _gosms_token = data.get("access_token")
    expires_in = data.get("expires_in", 3600)
    _gosms_token_expires_at = time.time() + expires_in
    logger.info(f"🔑 GoSMS token obtained (expires in {expires_in}s)")
    return _gosms_token

def send_sms(to_number: str, message: str) -> bool:
    """
    Sends an SMS using GoSMS API.
    Returns: True if successful, False otherwise.
    """
    config = get_notification_config()
    if not config.get("sms_enabled", False):
        logger.info("ℹ️ SMS notifications are disabled in config.")
        return False

    if not settings.GOSMS_CHANNEL_ID:
        logger.error("❌ GOSMS_CHANNEL_ID is missing.")
        return False

    token = _get_gosms_token()
    if not token:
        return False

    clean_number = to_number.replace(" ", "").strip()

    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json"
    }

    try:
        channel_id = int(settings.GOSMS_CHANNEL_ID)
    except ValueError:
        channel_id = settings.GOSMS_CHANNEL_ID

    payload = {
        "message": message,
        "recipients": [clean_number],
        "channel": channel_id
    }

    logger.info(f"📤 Sending SMS to {clean_number} via GoSMS...")
    response = requests.post(GOSMS_MESSAGES_URL, json=payload, headers=headers, timeout=10)

    if response.status_code in (200, 201):
        logger.info(f"✅ SMS sent to {clean_number}.")
        return True

    logger.error(f"❌ GoSMS Error {response.status_code}: {response.text}")
    return False

def send_email(subject: str, body: str, to_email: Optional[str] = None) -> bool:
    """
    Sends a plain-text email over SMTP.
    ``to_email`` defaults to owner_email from the company config.
    Returns: True if sent, False if disabled or not configured.
    """
    config = load_company_config()
    notif_config = config.get("notifications", {})

    if not notif_config.get("email_enabled", False):
        logger.info("ℹ️ Email notifications are disabled in config.")
        return False

    if not to_email:
        to_email = config.get("owner_email")
        if not to_email:
            logger.error("❌ No recipient email found (owner_email missing in config).")
            return False

    if not settings.SMTP_USERNAME or not settings.SMTP_PASSWORD:
        logger.error("❌ SMTP credentials missing.")
        return False

    sender = settings.SMTP_FROM or settings.SMTP_USERNAME

    msg = MIMEMultipart()
    msg['From'] = sender
    msg['To'] = to_email
    msg['Subject'] = subject
    msg.attach(MIMEText(body, 'plain'))

    server = smtplib.SMTP(settings.SMTP_SERVER, settings.SMTP_PORT, timeout=30)
    try:
        server.starttls()
        server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
        server.sendmail(sender, to_email, msg.as_string())
    finally:
        server.quit()

    logger.info(f"✅ Email sent to {to_email} with subject: '{subject}'")
    return True

def _template_fields(booking: Booking, service: Optional[Service], config: BookingConfig) -> dict:
    return {
        "booking_id": booking.id,
        "name": booking.customer_name,
        "email": booking.customer_email,
        "phone": booking.customer_phone or "-",
        "notes": booking.notes or "-",
        "service": service.name if service else booking.service_id,
        "date": booking.date.strftime("%A, %B %d, %Y"),
        "time": booking.start_time,
        "duration": booking.duration_minutes,
        "company_name": config.business_name,
    }

def notify_booking_confirmed(booking: Booking, service: Optional[Service], config: BookingConfig) -> None:
    """Customer confirmation email plus business notification email."""
    templates = get_notification_config()
    fields = _template_fields(booking, service, config)

    send_email(
        templates.get("customer_email_subject", "Booking Confirmed: {service} on {date}").format(**fields),
        templates.get("customer_email_template", "Your {service} on {date} at {time} is confirmed.").format(**fields),
        to_email=booking.customer_email,
    )
    send_email(
        templates.get("email_subject", "New Booking: {name} - {service}").format(**fields),
        templates.get("email_template", "New booking: {name}, {date} {time}").format(**fields),
        to_email=config.business_email,
    )

def notify_booking_sms(booking: Booking, service: Optional[Service], config: BookingConfig) -> bool:
    if not booking.customer_phone:
        return False
    templates = get_notification_config()
    fields = _template_fields(booking, service, config)
    body = templates.get("sms_template", "Booking on {date} at {time} confirmed.").format(**fields)
    return send_sms(booking.customer_phone, body)

def notify_booking_cancelled(booking: Booking, service: Optional[Service], config: BookingConfig) -> bool:
    templates = get_notification_config()
    fields = _template_fields(booking, service, config)
    return send_email(
        templates.get("cancel_email_subject", "Booking Cancelled: {service} on {date}").format(**fields),
        templates.get("cancel_email_template", "Your {service} on {date} at {time} has been cancelled.").format(**fields),
        to_email=booking.customer_email,
    )

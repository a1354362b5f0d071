"""
One-off setup: create the schema and seed business configuration.

    python -m booking_engine.bootstrap

Seeding only happens on an empty store, so this is safe to re-run. The app
runs the same step at startup when BOOTSTRAP_ON_STARTUP is set.
"""
import asyncio
from typing import Optional

from booking_engine.core.config import settings
from booking_engine.core.config_loader import (
    booking_config_from_config,
    load_company_config,
    services_from_config,
    weekly_hours_from_config,
)
from booking_engine.core.logger import logger, setup_logging
from booking_engine.services.store import BookingStore, build_store


async def bootstrap(store: BookingStore, config_path: Optional[str] = None) -> bool:
    """Migrate, then seed from the company config. Returns True if seed data was written."""
    await store.migrate()

    if await store.is_seeded():
        logger.info("ℹ️ Store already seeded, skipping company config import")
        return False

    company = load_company_config(config_path)

    await store.update_booking_config(booking_config_from_config(company))
    for day, hours in weekly_hours_from_config(company).days.items():
        await store.update_day_hours(day, hours)
    services = services_from_config(company)
    for service in services:
        await store.upsert_service(service)

    logger.info(f"🌱 Seeded config for {company.get('company_name', 'Unknown')} with {len(services)} services")
    return True


if __name__ == "__main__":
    setup_logging()
    asyncio.run(bootstrap(build_store(settings)))

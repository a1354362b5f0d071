import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from booking_engine.api.bookings import get_booking_service
from booking_engine.core.logger import logger
from booking_engine.core.security import verify_admin_token
from booking_engine.models.api_models import BookingResponse, DayHoursUpdate
from booking_engine.models.db_models import BookingStatus
from booking_engine.models.schedule import BookingConfig, DayHours, Service, Weekday
from booking_engine.services.booking_service import BookingService

router = APIRouter(dependencies=[Depends(verify_admin_token)])


@router.get("/bookings", response_model=List[BookingResponse])
async def list_bookings(
    date: Optional[datetime.date] = None,
    status: Optional[BookingStatus] = None,
    booking_service: BookingService = Depends(get_booking_service),
):
    bookings = await booking_service.list_bookings(date, status)
    return [BookingResponse.from_booking(b) for b in bookings]


@router.get("/config", response_model=BookingConfig)
async def get_config(booking_service: BookingService = Depends(get_booking_service)):
    return await booking_service.store.get_booking_config()


@router.put("/config", response_model=BookingConfig)
async def update_config(config: BookingConfig, booking_service: BookingService = Depends(get_booking_service)):
    logger.info(f"⚙️ Booking config updated: buffer={config.buffer_minutes}, cap={config.max_bookings_per_day}, tz={config.timezone}")
    return await booking_service.store.update_booking_config(config)


@router.put("/hours/{weekday}", response_model=DayHours)
async def update_hours(weekday: str, update: DayHoursUpdate, booking_service: BookingService = Depends(get_booking_service)):
    try:
        day = Weekday.from_key(weekday)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    try:
        hours = DayHours(**update.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    logger.info(f"⚙️ Hours for {day.key} set to {hours.open_time}-{hours.close_time} (enabled={hours.enabled})")
    return await booking_service.store.update_day_hours(day, hours)


@router.put("/services/{service_id}", response_model=Service)
async def upsert_service(service_id: str, service: Service, booking_service: BookingService = Depends(get_booking_service)):
    if service.id != service_id:
        raise HTTPException(status_code=422, detail="Service id in path and body differ")
    # Existing bookings keep their own duration snapshot
    logger.info(f"⚙️ Service {service.id} saved ({service.duration_minutes} min, active={service.is_active})")
    return await booking_service.store.upsert_service(service)

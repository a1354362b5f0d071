import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from booking_engine.models.api_models import (
    BookingResponse,
    CancelResponse,
    CreateBookingRequest,
    SlotsResponse,
)
from booking_engine.models.schedule import Service
from booking_engine.models.timeutil import parse_hhmm
from booking_engine.services.booking_service import BookingService

router = APIRouter()


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


async def _business_now(booking_service: BookingService) -> datetime.datetime:
    config = await booking_service.store.get_booking_config()
    return datetime.datetime.now(config.tz)


def _already_started(day: datetime.date, start_time: str, now: datetime.datetime) -> bool:
    if day != now.date():
        return day < now.date()
    return parse_hhmm(start_time) < now.hour * 60 + now.minute


@router.get("/services", response_model=List[Service])
async def list_services(booking_service: BookingService = Depends(get_booking_service)):
    return await booking_service.list_services()


@router.get("/slots", response_model=SlotsResponse)
async def get_slots(
    date: datetime.date = Query(...),
    service_id: str = Query(..., min_length=1),
    booking_service: BookingService = Depends(get_booking_service),
):
    slots = await booking_service.compute_slots(date, service_id, strict=True)

    # Past-time policy belongs here, not in the engine
    now = await _business_now(booking_service)
    slots = [s for s in slots if not _already_started(date, s, now)]

    return SlotsResponse(date=date, service_id=service_id, slots=slots)


@router.post("/bookings", response_model=BookingResponse, status_code=201)
async def create_booking(req: CreateBookingRequest, booking_service: BookingService = Depends(get_booking_service)):
    now = await _business_now(booking_service)
    if _already_started(req.date, req.time, now):
        raise HTTPException(status_code=422, detail="Cannot book a time in the past")

    booking = await booking_service.create_booking(
        req.service_id,
        req.date,
        req.time,
        req.customer_name,
        req.customer_email,
        req.customer_phone,
        req.notes,
    )
    return BookingResponse.from_booking(booking)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    booking = await booking_service.get_booking(booking_id)
    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=CancelResponse)
async def cancel_booking(booking_id: str, booking_service: BookingService = Depends(get_booking_service)):
    booking = await booking_service.cancel_booking(booking_id)
    return CancelResponse(success=True, booking_id=booking.id, status=booking.status.value)

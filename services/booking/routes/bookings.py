"""Rutas de reservas (zonas y eventos)"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from typing import Dict, List
import logging

from shared.errors import ErrorCode
from services.booking.models.booking import (
    BookingResult,
    EventBookingRequest,
    ZoneBookingRequest,
)
from services.booking.services.booking_service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def _result_or_raise(result: BookingResult) -> Dict:
    """Convertir un resultado fallido en HTTPException (404 si no existe, 400 en otro caso)"""
    if result.ok:
        return result.model_dump(mode="json", by_alias=True, exclude_none=True)

    status_code = (
        status.HTTP_404_NOT_FOUND
        if result.code == ErrorCode.NOT_FOUND
        else status.HTTP_400_BAD_REQUEST
    )
    raise HTTPException(
        status_code=status_code,
        detail={"code": result.code.value, "error": result.error}
    )


@router.get("/zones")
async def list_zones(service: BookingService = Depends(get_booking_service)) -> List[Dict]:
    zones = await service.get_zones()
    return [z.model_dump(mode="json", by_alias=True) for z in zones]


@router.get("/events")
async def list_events(service: BookingService = Depends(get_booking_service)) -> List[Dict]:
    events = await service.get_events()
    return [e.model_dump(mode="json", by_alias=True) for e in events]


@router.get("/bookings")
async def list_bookings(service: BookingService = Depends(get_booking_service)) -> List[Dict]:
    bookings = await service.get_bookings()
    return [b.model_dump(mode="json", by_alias=True) for b in bookings]


@router.post("/bookings/zone")
async def book_zone(
    request: ZoneBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """
    Reservar una zona

    El total es precio de la zona por cantidad de asientos
    """
    result = await service.book_zone(
        zone_id=request.zone_id,
        user_name=request.user_name,
        email=request.email,
        date=request.date,
        time=request.time,
        seats=request.seats
    )
    if not result.ok:
        logger.info(f"Reserva de zona rechazada ({result.code.value}): {result.error}")
    return _result_or_raise(result)


@router.post("/bookings/event")
async def book_event(
    request: EventBookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    """Comprar entradas de un evento"""
    result = await service.book_event(
        event_id=request.event_id,
        user_name=request.user_name,
        email=request.email,
        ticket_count=request.ticket_count
    )
    if not result.ok:
        logger.info(f"Compra de entradas rechazada ({result.code.value}): {result.error}")
    return _result_or_raise(result)

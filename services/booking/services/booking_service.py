"""Servicio de reservas (ledger de zonas, eventos y bookings)

Es el único lugar que modifica el estado de reservas. Cada operación lee el
documento completo, lo modifica en memoria y lo reescribe entero.
"""
from contextlib import asynccontextmanager
from typing import Dict, List, Optional
from pydantic import ValidationError
import asyncio
import logging

from shared.config import settings
from shared.errors import ErrorCode
from shared.events.bus import EventBus, BOOKING_CHANNEL, BOOKING_DATA_UPDATE
from shared.storage.store import PersistentStore
from shared.utils.ids import IdGenerator
from shared.utils.scheduler import SystemClock
from services.booking.models.booking import (
    BookingData,
    BookingResult,
    Event,
    EventBooking,
    Zone,
    ZoneBooking,
)

logger = logging.getLogger(__name__)

ZONE_IMAGE = "https://images.unsplash.com/photo-1552664730-d307ca884978?w=400"

INITIAL_BOOKING_DATA = {
    "bookings": [],
    "zones": [
        {"id": "z1", "name": "Couple Pod A1", "description": "Intimate 2-person space with mood lighting", "capacity": 2, "price": 499, "image": ZONE_IMAGE},
        {"id": "z2", "name": "Silent Pod S2", "description": "Quiet focus zone for work/meditation", "capacity": 1, "price": 299, "image": ZONE_IMAGE},
        {"id": "z3", "name": "Game Arena G3", "description": "Interactive gaming space with projection", "capacity": 4, "price": 699, "image": ZONE_IMAGE},
        {"id": "z4", "name": "Social Table ST4", "description": "Group gathering table with smart menu", "capacity": 6, "price": 799, "image": ZONE_IMAGE},
    ],
    "events": [
        {"id": "e1", "title": "Weekend Wine Tasting", "description": "Curated wine pairing experience", "date": "2025-11-16", "time": "18:00", "capacity": 20, "price": 1999, "booked": 0},
        {"id": "e2", "title": "Coffee Masters Workshop", "description": "Learn latte art & brewing techniques", "date": "2025-11-18", "time": "10:00", "capacity": 15, "price": 999, "booked": 0},
    ],
}

EMPTY_BOOKING_DATA = {"bookings": [], "zones": [], "events": []}


class BookingService:
    """Servicio para reservar zonas y eventos"""

    def __init__(
        self,
        store: PersistentStore,
        bus: EventBus,
        ids: Optional[IdGenerator] = None,
        clock=None,
        storage_key: str = settings.BOOKING_STORAGE_KEY
    ):
        self.store = store
        self.bus = bus
        self.clock = clock or SystemClock()
        self.ids = ids or IdGenerator(self.clock)
        self.storage_key = storage_key
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _exclusive(self):
        """Una operación de escritura a la vez: en este proceso y entre procesos"""
        async with self._lock:
            async with self.store.lock(self.storage_key):
                yield

    async def initialize_data(self, initial: Optional[Dict] = None):
        """Sembrar zonas y eventos si la clave no existe"""
        async with self._exclusive():
            if await self.store.exists(self.storage_key):
                return
            logger.info(f"Inicializando datos de reservas en '{self.storage_key}'")
            data = BookingData.model_validate(initial or INITIAL_BOOKING_DATA)
            await self.save_data(data)

    async def get_data(self) -> BookingData:
        raw = await self.store.load(self.storage_key, EMPTY_BOOKING_DATA)
        try:
            return BookingData.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"{ErrorCode.MALFORMED_STORE.value}: documento de reservas inválido, usando default: {e}")
            return BookingData.model_validate(EMPTY_BOOKING_DATA)

    async def save_data(self, data: BookingData):
        """Persistir y avisar a los suscriptores locales"""
        document = data.model_dump(mode="json", by_alias=True)
        await self.store.save(self.storage_key, document)
        await self.bus.publish(BOOKING_CHANNEL, BOOKING_DATA_UPDATE, document)

    async def book_zone(
        self,
        zone_id: str,
        user_name: str,
        email: str,
        date: str,
        time: str,
        seats: int
    ) -> BookingResult:
        """
        Reservar una zona

        Returns:
            BookingResult con la reserva, o NOT_FOUND / CAPACITY_EXCEEDED
        """
        async with self._exclusive():
            data = await self.get_data()
            zone = next((z for z in data.zones if z.id == zone_id), None)
            if zone is None:
                return BookingResult.failure(ErrorCode.NOT_FOUND, "Zone not found")
            if seats > zone.capacity:
                return BookingResult.failure(
                    ErrorCode.CAPACITY_EXCEEDED,
                    f"Exceeds zone capacity ({seats} > {zone.capacity})"
                )

            booking = ZoneBooking(
                id=self.ids.next_id(),
                zone_id=zone.id,
                zone_name=zone.name,
                user_name=user_name,
                email=email,
                date=date,
                time=time,
                seats=seats,
                total=zone.price * seats,
                status="confirmed",
                created_at=self.clock.now().isoformat()
            )
            data.bookings.append(booking)
            await self.save_data(data)

            logger.info(f"Zona {zone.id} reservada por {user_name} ({seats} asientos, total={booking.total})")
            return BookingResult.success(booking)

    async def book_event(
        self,
        event_id: str,
        user_name: str,
        email: str,
        ticket_count: int
    ) -> BookingResult:
        """
        Comprar entradas de un evento

        El contador booked y la reserva se guardan en la misma escritura.

        Returns:
            BookingResult con la reserva, o NOT_FOUND / EVENT_FULL
        """
        async with self._exclusive():
            data = await self.get_data()
            event = next((e for e in data.events if e.id == event_id), None)
            if event is None:
                return BookingResult.failure(ErrorCode.NOT_FOUND, "Event not found")
            if event.booked + ticket_count > event.capacity:
                return BookingResult.failure(
                    ErrorCode.EVENT_FULL,
                    f"Event is full (disponibles: {event.remaining}, solicitadas: {ticket_count})"
                )

            booking = EventBooking(
                id=self.ids.next_id(),
                event_id=event.id,
                event_title=event.title,
                user_name=user_name,
                email=email,
                ticket_count=ticket_count,
                total=event.price * ticket_count,
                status="confirmed",
                created_at=self.clock.now().isoformat()
            )
            event.booked += ticket_count
            data.bookings.append(booking)
            await self.save_data(data)

            logger.info(f"Evento {event.id}: {ticket_count} entradas para {user_name} (booked={event.booked}/{event.capacity})")
            return BookingResult.success(booking)

    async def get_bookings(self) -> List:
        return (await self.get_data()).bookings

    async def get_zones(self) -> List[Zone]:
        return (await self.get_data()).zones

    async def get_events(self) -> List[Event]:
        return (await self.get_data()).events

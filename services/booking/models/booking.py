"""Modelos Pydantic para reservas (zonas, eventos, bookings)"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Annotated, List, Literal, Optional, Union

from shared.errors import ErrorCode


class CamelModel(BaseModel):
    """Base: el documento persistido usa claves camelCase"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class Zone(CamelModel):
    """Zona reservable del café"""
    id: str
    name: str
    description: str = ""
    capacity: int = Field(gt=0)
    price: float = Field(ge=0)
    image: Optional[str] = None


class Event(CamelModel):
    """Evento con cupos; booked sólo crece y nunca supera capacity"""
    id: str
    title: str
    description: str = ""
    date: str
    time: str
    capacity: int = Field(gt=0)
    price: float = Field(ge=0)
    booked: int = Field(default=0, ge=0)

    @property
    def remaining(self) -> int:
        return self.capacity - self.booked


class ZoneBooking(CamelModel):
    """Reserva de zona. zone_name es una foto del nombre al momento de reservar"""
    id: int
    type: Literal["zone"] = "zone"
    zone_id: str
    zone_name: str
    user_name: str
    email: str
    date: str
    time: str
    seats: int
    total: float
    status: str = "confirmed"
    created_at: str


class EventBooking(CamelModel):
    """Reserva de entradas para un evento"""
    id: int
    type: Literal["event"] = "event"
    event_id: str
    event_title: str
    user_name: str
    email: str
    ticket_count: int
    total: float
    status: str = "confirmed"
    created_at: str


Booking = Annotated[Union[ZoneBooking, EventBooking], Field(discriminator="type")]


class BookingData(CamelModel):
    """Documento completo del ledger de reservas"""
    bookings: List[Booking] = []
    zones: List[Zone] = []
    events: List[Event] = []


class BookingResult(CamelModel):
    """Resultado tipado: ok + booking, o código y motivo legible"""
    ok: bool
    booking: Optional[Booking] = None
    code: Optional[ErrorCode] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, booking) -> "BookingResult":
        return cls(ok=True, booking=booking)

    @classmethod
    def failure(cls, code: ErrorCode, error: str) -> "BookingResult":
        return cls(ok=False, code=code, error=error)


# ==================== REQUESTS ====================

class ZoneBookingRequest(CamelModel):
    """Request para reservar una zona"""
    zone_id: str
    user_name: str
    email: str
    date: str
    time: str
    seats: int = Field(ge=1)


class EventBookingRequest(CamelModel):
    """Request para comprar entradas de un evento"""
    event_id: str
    user_name: str
    email: str
    ticket_count: int = Field(ge=1)

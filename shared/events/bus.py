"""Bus de eventos en proceso (broadcast local)"""
from pydantic import BaseModel
from typing import Any, Callable, Dict, List
import asyncio
import logging

logger = logging.getLogger(__name__)

# Canales
BOOKING_CHANNEL = "booking"
ADMIN_CHANNEL = "admin"
METRICS_CHANNEL = "metrics"

# Tipos de evento. Los suscriptores deben ignorar tipos desconocidos
BOOKING_DATA_UPDATE = "bookingDataUpdate"
DATA_UPDATE = "dataUpdate"
USER_ADD = "userAdd"
USER_UPDATE = "userUpdate"
USER_REMOVE = "userRemove"
USER_ACTIVITY = "userActivity"
ORDER_ADD = "orderAdd"
MENU_ADD = "menuAdd"
MENU_UPDATE = "menuUpdate"
MENU_REMOVE = "menuRemove"
METRICS_UPDATE = "metricsUpdate"


class BroadcastMessage(BaseModel):
    """Mensaje de broadcast: siempre {type, payload}"""
    type: str
    payload: Any = None


Handler = Callable[[BroadcastMessage], Any]


class EventBus:
    """Publicación / suscripción por canal, fire-and-forget"""

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, channel: str, handler: Handler) -> Callable[[], None]:
        """Suscribir handler a un canal. Retorna función para desuscribir"""
        self._subscribers.setdefault(channel, []).append(handler)

        def unsubscribe():
            handlers = self._subscribers.get(channel, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    async def publish(self, channel: str, type: str, payload: Any = None) -> BroadcastMessage:
        """
        Entregar mensaje a todos los suscriptores actuales del canal

        Un handler que falla se registra en el log y no impide la entrega al resto.
        """
        message = BroadcastMessage(type=type, payload=payload)
        for handler in list(self._subscribers.get(channel, [])):
            try:
                result = handler(message)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Error en suscriptor de '{channel}' para evento {type}: {e}",
                    exc_info=True
                )
        return message

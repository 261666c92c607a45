"""Puente de sincronización entre contextos

Convierte cambios hechos por otros contextos (change feed del store) en
broadcasts locales, con el mismo tipo que si el cambio fuera local.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
import json
import logging

from shared.errors import ErrorCode
from shared.events.bus import EventBus
from shared.storage.store import PersistentStore, StoreChange

logger = logging.getLogger(__name__)


@dataclass
class WatchedKey:
    channel: str
    event_type: str
    wrap: Optional[Callable[[Dict], Any]] = None


class SyncBridge:
    """Re-emite localmente los cambios remotos de las claves observadas"""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self._watched: Dict[str, WatchedKey] = {}
        self._store: Optional[PersistentStore] = None

    def watch(self, key: str, channel: str, event_type: str, wrap: Optional[Callable[[Dict], Any]] = None):
        self._watched[key] = WatchedKey(channel=channel, event_type=event_type, wrap=wrap)

    def attach(self, store: PersistentStore) -> Callable[[], None]:
        self._store = store
        return store.subscribe(self.on_change)

    async def on_change(self, change: StoreChange):
        watched = self._watched.get(change.key)
        if watched is None or change.new_value is None:
            return

        try:
            data = json.loads(change.new_value)
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"{ErrorCode.SYNC_PARSE_FAILURE.value}: cambio remoto inválido en '{change.key}': {e}")
            return

        await self._store.mirror(change.key, change.new_value)

        payload = watched.wrap(data) if watched.wrap else data
        await self.bus.publish(watched.channel, watched.event_type, payload)

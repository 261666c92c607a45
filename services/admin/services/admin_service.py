"""Servicio de control admin (menú, usuarios, órdenes, settings y stats)"""
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from pydantic import ValidationError
import asyncio
import copy
import json
import logging
import math

from shared.config import settings
from shared.errors import ErrorCode
from shared.events.bus import (
    EventBus,
    BroadcastMessage,
    ADMIN_CHANNEL,
    BOOKING_CHANNEL,
    BOOKING_DATA_UPDATE,
    DATA_UPDATE,
    MENU_ADD,
    MENU_REMOVE,
    MENU_UPDATE,
    ORDER_ADD,
    USER_ADD,
    USER_REMOVE,
    USER_UPDATE,
)
from shared.storage.store import PersistentStore
from shared.utils.ids import IdGenerator
from shared.utils.scheduler import SystemClock
from services.admin.models.admin import AdminData, DerivedStats, MenuItem, Order, User

logger = logging.getLogger(__name__)

SYNC_REPLACE = "replace"
SYNC_MERGE = "merge"

DEFAULT_SETTINGS = {
    "isMaintenanceMode": False,
    "allowNewRegistrations": True,
    "featuredItems": []
}

RecordId = Union[int, str]


def to_number(value: Any) -> float:
    """Equivalente a Number(x) || 0"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return 0 if math.isnan(number) else number


def _same_id(a: RecordId, b: RecordId) -> bool:
    # Los IDs llegan como texto desde las rutas HTTP
    return str(a) == str(b)


def _dump(record) -> Dict:
    return record.model_dump(mode="json", by_alias=True)


class AdminService:
    """
    Ledger admin

    Cada mutador carga el documento, lo modifica, recalcula stats, persiste y
    emite un evento tipado en el canal admin. Además escucha el canal de
    reservas para sincronizar bookings como órdenes.
    """

    def __init__(
        self,
        store: PersistentStore,
        bus: EventBus,
        ids: Optional[IdGenerator] = None,
        clock=None,
        storage_key: str = settings.ADMIN_STORAGE_KEY,
        sync_strategy: str = settings.ORDER_SYNC_STRATEGY,
        seed_file: Optional[str] = None
    ):
        if sync_strategy not in (SYNC_REPLACE, SYNC_MERGE):
            raise ValueError(f"Estrategia de sincronización inválida: {sync_strategy}")
        self.store = store
        self.bus = bus
        self.clock = clock or SystemClock()
        self.ids = ids or IdGenerator(self.clock)
        self.storage_key = storage_key
        self.sync_strategy = sync_strategy
        self.seed_file = seed_file
        self._lock = asyncio.Lock()

    def attach(self):
        """Escuchar actualizaciones de reservas"""
        return self.bus.subscribe(BOOKING_CHANNEL, self.sync_with_bookings)

    @asynccontextmanager
    async def _exclusive(self):
        """Serializar load, modificación y save del documento admin"""
        async with self._lock:
            async with self.store.lock(self.storage_key):
                yield

    @staticmethod
    def get_default_data() -> Dict:
        return {
            "menuItems": [],
            "users": [],
            "orders": [],
            "events": [],
            "settings": copy.deepcopy(DEFAULT_SETTINGS),
            "stats": {
                "totalUsers": 0,
                "totalOrders": 0,
                "revenue": 0
            }
        }

    async def initialize_data(self):
        """Cargar datos iniciales desde el archivo semilla si la clave no existe"""
        async with self._exclusive():
            if await self.store.exists(self.storage_key):
                return

            data = None
            if self.seed_file and Path(self.seed_file).exists():
                try:
                    initial_data = json.loads(Path(self.seed_file).read_text(encoding="utf-8"))
                    initial_data["settings"] = copy.deepcopy(DEFAULT_SETTINGS)
                    data = AdminData.model_validate(initial_data)
                    logger.info(f"Datos admin iniciales cargados desde {self.seed_file}")
                except (OSError, TypeError, json.JSONDecodeError, ValidationError) as e:
                    logger.error(f"Failed to load initial data: {e}")

            if data is None:
                data = AdminData.model_validate(self.get_default_data())
            await self.save_data(data)

    async def get_data(self) -> AdminData:
        raw = await self.store.load(self.storage_key, self.get_default_data())
        try:
            return AdminData.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"{ErrorCode.MALFORMED_STORE.value}: documento admin inválido, usando default: {e}")
            return AdminData.model_validate(self.get_default_data())

    @staticmethod
    def recalculate_stats(data: AdminData) -> DerivedStats:
        """Recalcular estadísticas a partir de usuarios y órdenes"""
        total_users = len(data.users)
        total_orders = len(data.orders)
        revenue = sum(to_number(order.total) for order in data.orders)
        return DerivedStats(
            total_users=total_users,
            total_orders=total_orders,
            revenue=revenue,
            # Heurística: no es presencia real
            active_users=min(total_users, math.floor(total_users * 0.12))
        )

    async def save_data(self, data: AdminData):
        """Recalcular stats, persistir y emitir dataUpdate"""
        data.stats = self.recalculate_stats(data)
        document = _dump(data)
        await self.store.save(self.storage_key, document)
        await self.bus.publish(ADMIN_CHANNEL, DATA_UPDATE, {"data": document})

    # ==================== USERS ====================

    async def add_user(self, user: Dict) -> int:
        async with self._exclusive():
            data = await self.get_data()
            record = User.model_validate({**user, "id": self.ids.next_id()})
            data.users.append(record)
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, USER_ADD, {"user": _dump(record)})
            return record.id

    async def update_user(self, user_id: RecordId, updates: Dict) -> bool:
        async with self._exclusive():
            data = await self.get_data()
            index = next((i for i, u in enumerate(data.users) if _same_id(u.id, user_id)), None)
            if index is None:
                logger.warning(f"{ErrorCode.NOT_FOUND.value}: usuario {user_id} no existe")
                return False
            data.users[index] = User.model_validate({**_dump(data.users[index]), **updates})
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, USER_UPDATE, {"userId": user_id, "updates": updates})
            return True

    async def remove_user(self, user_id: RecordId) -> bool:
        async with self._exclusive():
            data = await self.get_data()
            before = len(data.users)
            data.users = [u for u in data.users if not _same_id(u.id, user_id)]
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, USER_REMOVE, {"userId": user_id})
            return len(data.users) < before

    # ==================== ORDERS ====================

    async def add_order(self, order: Dict) -> int:
        async with self._exclusive():
            data = await self.get_data()
            record = Order.model_validate({**order, "id": self.ids.next_id()})
            data.orders.append(record)
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, ORDER_ADD, {"order": _dump(record)})
            return record.id

    # ==================== MENU ====================

    async def add_menu_item(self, item: Dict) -> int:
        async with self._exclusive():
            data = await self.get_data()
            record = MenuItem.model_validate({**item, "id": self.ids.next_id()})
            data.menu_items.append(record)
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, MENU_ADD, {"item": _dump(record)})
            return record.id

    async def update_menu_item(self, item_id: RecordId, updates: Dict) -> bool:
        async with self._exclusive():
            data = await self.get_data()
            index = next((i for i, m in enumerate(data.menu_items) if _same_id(m.id, item_id)), None)
            if index is None:
                logger.warning(f"{ErrorCode.NOT_FOUND.value}: item de menú {item_id} no existe")
                return False
            data.menu_items[index] = MenuItem.model_validate({**_dump(data.menu_items[index]), **updates})
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, MENU_UPDATE, {"itemId": item_id, "updates": updates})
            return True

    async def remove_menu_item(self, item_id: RecordId) -> bool:
        async with self._exclusive():
            data = await self.get_data()
            before = len(data.menu_items)
            data.menu_items = [m for m in data.menu_items if not _same_id(m.id, item_id)]
            await self.save_data(data)
            await self.bus.publish(ADMIN_CHANNEL, MENU_REMOVE, {"itemId": item_id})
            return len(data.menu_items) < before

    # ==================== SYNC ====================

    def project_booking(self, booking: Dict) -> Dict:
        """Proyección de un booking como orden admin"""
        return {
            "id": booking.get("id"),
            "user": booking.get("userName"),
            "total": booking.get("total"),
            "date": booking.get("date") or self.clock.now().date().isoformat(),
            "status": booking.get("status") or "confirmed",
            "source": "booking"
        }

    async def sync_with_bookings(self, message: BroadcastMessage):
        """Sincronizar bookings como órdenes al recibir bookingDataUpdate"""
        if message.type != BOOKING_DATA_UPDATE:
            return

        bookings: List[Dict] = (message.payload or {}).get("bookings") or []
        projected = [Order.model_validate(self.project_booking(b)) for b in bookings]

        async with self._exclusive():
            data = await self.get_data()
            if self.sync_strategy == SYNC_REPLACE:
                # Reemplazo total: se pierden órdenes que no vienen de bookings
                data.orders = projected
            else:
                data.orders = self._merge_orders(data.orders, projected)

            await self.save_data(data)
            logger.debug(f"Órdenes sincronizadas desde {len(bookings)} bookings ({self.sync_strategy})")

    @staticmethod
    def _merge_orders(current: List[Order], projected: List[Order]) -> List[Order]:
        pending = {str(order.id): order for order in projected}
        merged = []
        for order in current:
            key = str(order.id)
            if key in pending:
                merged.append(pending.pop(key))
            elif (order.model_extra or {}).get("source") == "booking":
                # Booking que ya no existe en el ledger de reservas
                continue
            else:
                merged.append(order)
        merged.extend(pending.values())
        return merged

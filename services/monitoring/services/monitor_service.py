"""Servicio de monitoreo en vivo del café

Agrega métricas a partir de los broadcasts del ledger admin:
- eventos admin con debounce (sólo se procesa el último de cada ráfaga)
- page views con throttle (los disparos dentro de la ventana se descartan)
- errores con rate limit (con pérdida, no es una cola)
- recálculo en batch: todo lo encolado en un tick produce un solo broadcast
"""
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional, Set
import logging
import traceback

from shared.config import settings
from shared.events.bus import (
    EventBus,
    BroadcastMessage,
    ADMIN_CHANNEL,
    METRICS_CHANNEL,
    METRICS_UPDATE,
    DATA_UPDATE,
    MENU_ADD,
    MENU_REMOVE,
    MENU_UPDATE,
    ORDER_ADD,
    USER_ACTIVITY,
)
from shared.utils.scheduler import Cooldown, Debouncer, Scheduler, Throttle
from services.monitoring.models.metrics import ErrorEntry, MetricsSnapshot

logger = logging.getLogger(__name__)

# Tipos de actualización encolables
MENU_METRICS = "menuMetrics"
ORDER_METRICS = "orderMetrics"
USER_METRICS = "userMetrics"
PAGE_VIEWS = "pageViews"
METRICS = "metrics"

RECENT_ERRORS = 5


class MonitorService:
    """Agregador de métricas"""

    def __init__(
        self,
        bus: EventBus,
        scheduler: Scheduler,
        admin=None,
        debounce_ms: int = settings.MONITOR_DEBOUNCE_MS,
        page_view_throttle_ms: int = settings.PAGE_VIEW_THROTTLE_MS,
        error_cooldown_ms: int = settings.ERROR_COOLDOWN_MS,
        error_retention_seconds: int = settings.ERROR_RETENTION_SECONDS,
        max_errors: int = settings.MAX_ERRORS,
        popular_items_limit: int = settings.POPULAR_ITEMS_LIMIT,
        cleanup_interval_seconds: int = settings.CLEANUP_INTERVAL_SECONDS
    ):
        self.bus = bus
        self.scheduler = scheduler
        self.clock = scheduler.clock
        self.admin = admin

        self.active_users: Set[str] = set()
        self.page_views = 0
        self.peak_hours: List[int] = [0] * 24
        self.popular_items: Dict[str, int] = {}
        self.errors: List[Dict[str, Any]] = []

        self.update_queue: Set[str] = set()
        self.is_updating = False
        self.processed_updates = 0

        self.error_retention = timedelta(seconds=error_retention_seconds)
        self.max_errors = max_errors
        self.popular_items_limit = popular_items_limit
        self.cleanup_interval = cleanup_interval_seconds
        self._last_cleanup: Optional[float] = None

        self._debouncer = Debouncer(scheduler, debounce_ms / 1000)
        self._page_view_throttle = Throttle(self.clock, page_view_throttle_ms / 1000)
        self._error_limit = Cooldown(self.clock, error_cooldown_ms / 1000)

    def start(self):
        """Suscribirse al canal admin y al tick del scheduler"""
        unsubscribe = self.bus.subscribe(ADMIN_CHANNEL, self.handle_message)
        self.scheduler.every_tick(self.process_update_queue)
        self.record_page_view()
        logger.info("Monitor iniciado")
        return unsubscribe

    # ==================== ENTRADAS ====================

    def handle_message(self, message: BroadcastMessage):
        """Handler con debounce para actualizaciones admin"""
        update_type, payload = message.type, message.payload
        self._debouncer.call(lambda: self.handle_admin_update(update_type, payload))

    def handle_admin_update(self, update_type: str, payload: Any):
        self.processed_updates += 1
        if update_type in (MENU_UPDATE, MENU_ADD, MENU_REMOVE, DATA_UPDATE):
            self.queue_update(MENU_METRICS)
        elif update_type == ORDER_ADD:
            self.peak_hours[self.clock.now().hour] += 1
            self.queue_update(ORDER_METRICS)
        elif update_type == USER_ACTIVITY:
            self.track_user_activity(payload or {})
        # Tipos desconocidos se ignoran

    def track_user_activity(self, payload: Dict):
        user_id = payload.get("userId")
        if payload.get("type") == "login":
            self.active_users.add(user_id)
        elif payload.get("type") == "logout":
            self.active_users.discard(user_id)
        self.queue_update(USER_METRICS)

    def record_page_view(self) -> bool:
        """Máximo un page view por ventana de throttle"""
        if not self._page_view_throttle.try_acquire():
            return False
        self.page_views += 1
        self.queue_update(PAGE_VIEWS)
        return True

    def report_error(self, error: Any) -> bool:
        """Registrar error con rate limit; los que caen en el cooldown se pierden"""
        if not self._error_limit.try_acquire():
            return False
        self.log_error(error)
        return True

    def log_error(self, error: Any):
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        elif isinstance(error, dict):
            message = str(error.get("message", ""))
            stack = error.get("stack")
        else:
            message, stack = str(error), None

        self.errors.append({"timestamp": self.clock.now(), "message": message, "stack": stack})
        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]
        self.queue_update(METRICS)

    def handle_remote_update(self, data: Dict):
        """Mensajes del canal websocket"""
        update_type = (data or {}).get("type")
        if update_type == "metrics":
            self.queue_update(METRICS)
        elif update_type == "orders":
            self.queue_update(ORDER_METRICS)
        elif update_type == "users":
            self.queue_update(USER_METRICS)

    def queue_update(self, update_type: str):
        self.update_queue.add(update_type)

    # ==================== BATCH ====================

    async def process_update_queue(self) -> bool:
        """Procesar en un solo batch todo lo encolado. Retorna True si hubo broadcast"""
        if not self.update_queue or self.is_updating:
            return False

        self.is_updating = True
        try:
            updates = set(self.update_queue)
            self.update_queue.clear()

            if updates & {MENU_METRICS, ORDER_METRICS}:
                self.popular_items = await self.calculate_menu_metrics()

            await self.broadcast_metrics()
        finally:
            self.is_updating = False
        return True

    async def calculate_menu_metrics(self) -> Dict[str, int]:
        """Items más pedidos, recontados sobre todas las órdenes (top N)"""
        if self.admin is None:
            return self.popular_items

        data = await self.admin.get_data()
        counts: Counter = Counter()
        for order in data.orders:
            for item in (order.model_extra or {}).get("items") or []:
                name = item.get("name") if isinstance(item, dict) else None
                if name:
                    counts[name] += 1

        return dict(counts.most_common(self.popular_items_limit))

    # ==================== SALIDA ====================

    def clear_old_data(self):
        """Descartar errores viejos y limitar el tamaño"""
        now = self.clock.now()
        self.errors = [e for e in self.errors if now - e["timestamp"] < self.error_retention]
        if len(self.errors) > self.max_errors:
            self.errors = self.errors[-self.max_errors:]

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            active_users=len(self.active_users),
            page_views=self.page_views,
            peak_hours=list(self.peak_hours),
            popular_items=dict(self.popular_items),
            recent_errors=[
                ErrorEntry(timestamp=e["timestamp"].isoformat(), message=e["message"], stack=e["stack"])
                for e in self.errors[-RECENT_ERRORS:]
            ]
        )

    async def broadcast_metrics(self):
        now = self.clock.monotonic()
        if self._last_cleanup is None or now - self._last_cleanup > self.cleanup_interval:
            self.clear_old_data()
            self._last_cleanup = now

        await self.bus.publish(
            METRICS_CHANNEL,
            METRICS_UPDATE,
            self.snapshot().model_dump(by_alias=True)
        )

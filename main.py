"""API principal de Mood Cafe - Punto de entrada de la aplicación"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
import asyncio
import logging
from contextlib import asynccontextmanager

from shared.config import settings
from shared.cache.redis_client import init_redis, close_redis, ping_redis
from shared.events.bus import EventBus, BOOKING_CHANNEL, ADMIN_CHANNEL, BOOKING_DATA_UPDATE, DATA_UPDATE
from shared.storage.store import create_store
from shared.sync.bridge import SyncBridge
from shared.utils.ids import IdGenerator
from shared.utils.rate_limiter import limiter, rate_limit_exceeded_handler
from shared.utils.scheduler import Scheduler, SystemClock
from services.admin.services.admin_service import AdminService
from services.booking.services.booking_service import BookingService
from services.monitoring.services.monitor_service import MonitorService

# Configurar logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events de la aplicación"""
    # Startup
    logger.info("Iniciando aplicación...")
    use_redis = settings.STORE_BACKEND.lower() == "redis"
    if use_redis:
        await init_redis()

    store = create_store(settings)
    bus = EventBus()
    clock = SystemClock()
    scheduler = Scheduler(clock)
    ids = IdGenerator(clock)

    booking_service = BookingService(
        store, bus, ids=ids, clock=clock,
        storage_key=settings.BOOKING_STORAGE_KEY
    )
    admin_service = AdminService(
        store, bus, ids=ids, clock=clock,
        storage_key=settings.ADMIN_STORAGE_KEY,
        sync_strategy=settings.ORDER_SYNC_STRATEGY,
        seed_file=settings.ADMIN_SEED_FILE or None
    )
    admin_service.attach()

    # Cambios de otros procesos se re-emiten con el mismo tipo que los locales
    bridge = SyncBridge(bus)
    bridge.watch(settings.BOOKING_STORAGE_KEY, BOOKING_CHANNEL, BOOKING_DATA_UPDATE)
    bridge.watch(settings.ADMIN_STORAGE_KEY, ADMIN_CHANNEL, DATA_UPDATE, wrap=lambda d: {"data": d})
    bridge.attach(store)

    monitor_service = MonitorService(bus, scheduler, admin=admin_service)
    monitor_service.start()

    await admin_service.initialize_data()
    await booking_service.initialize_data()

    tasks = [asyncio.create_task(scheduler.run(settings.TICK_INTERVAL_MS / 1000))]
    if use_redis:
        tasks.append(asyncio.create_task(store.listen()))

    app.state.store = store
    app.state.bus = bus
    app.state.scheduler = scheduler
    app.state.booking_service = booking_service
    app.state.admin_service = admin_service
    app.state.monitor_service = monitor_service
    logger.info(f"Aplicación iniciada (store={settings.STORE_BACKEND}, sync={settings.ORDER_SYNC_STRATEGY})")
    yield
    # Shutdown
    logger.info("Cerrando aplicación...")
    scheduler.stop()
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    if use_redis:
        await close_redis()
    logger.info("Aplicación cerrada")

# Crear aplicación FastAPI
app = FastAPI(
    title="Mood Cafe API",
    description="Reservas, panel admin y métricas en vivo de Mood Cafe",
    version="1.0.0",
    lifespan=lifespan
)

# Rate limiting global por IP. Registrado antes que CORS: CORS queda externo
# y cubre también las respuestas 429
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

if settings.APP_ENV == "development":
    logger.info("Modo desarrollo: CORS configurado para permitir todos los orígenes")
    allow_origins = ["*"]
    allow_credentials = False  # No se puede usar credentials con allow_origins=["*"]
else:
    allow_origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    allow_credentials = True
    logger.info(f"CORS origins configurados: {allow_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,  # Cache preflight requests por 1 hora
)

# Incluir routers de cada servicio
from services.admin.routes.admin import router as admin_router
from services.booking.routes.bookings import router as bookings_router
from services.monitoring.routes.metrics import router as metrics_router, ws_router

app.include_router(admin_router, prefix="/api", tags=["admin"])
app.include_router(bookings_router, prefix="/api", tags=["bookings"])
app.include_router(metrics_router, prefix="/api/metrics", tags=["metrics"])
app.include_router(ws_router)


@app.get("/api/ping")
async def ping():
    return {"ok": True}


@app.get("/health")
async def health():
    """Health check endpoint"""
    status = {"status": "ok", "service": "moodcafe-api", "store": settings.STORE_BACKEND}
    if settings.STORE_BACKEND.lower() == "redis":
        status["redis"] = "connected" if await ping_redis() else "disconnected"
    return status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.APP_ENV == "development"
    )

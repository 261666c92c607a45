"""Configuración de la aplicación"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    PORT: int = 4000
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000"

    # Backend de almacenamiento: memory, redis o file
    STORE_BACKEND: str = "file"
    DATA_DIR: str = "data"

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PASSWORD: Optional[str] = None
    REDIS_MAX_CONNECTIONS: int = 20
    REDIS_CHANGES_CHANNEL: str = "moodcafe:store:changes"

    # Claves de almacenamiento (una por ledger, nunca compartidas)
    BOOKING_STORAGE_KEY: str = "moodCafeBookings"
    ADMIN_STORAGE_KEY: str = "moodCafeAdminData"

    # Token compartido para rutas admin (demo). Sin valor = todo 401
    ADMIN_API_KEY: str = ""
    ADMIN_SEED_FILE: str = "data/initial_data.json"

    # merge conserva las órdenes cargadas desde admin; replace las reemplaza por las reservas
    ORDER_SYNC_STRATEGY: str = "merge"

    RATE_LIMIT_DEFAULT: str = "200/15 minutes"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    # Monitor
    MONITOR_DEBOUNCE_MS: int = 250
    PAGE_VIEW_THROTTLE_MS: int = 1000
    ERROR_COOLDOWN_MS: int = 5000
    ERROR_RETENTION_SECONDS: int = 3600
    MAX_ERRORS: int = 100
    POPULAR_ITEMS_LIMIT: int = 10
    TICK_INTERVAL_MS: int = 16
    CLEANUP_INTERVAL_SECONDS: int = 300

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra en .env que no están en el modelo


settings = Settings()

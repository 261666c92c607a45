"""Cliente Redis compartido por RedisStore (documentos) y su canal de cambios"""
import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError
from typing import Optional
import asyncio
import logging
import uuid

from shared.config import settings

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None
redis_pool: Optional[ConnectionPool] = None


def _build_pool() -> ConnectionPool:
    # decode_responses: los documentos se guardan y se publican como texto JSON
    return ConnectionPool.from_url(
        settings.REDIS_URL,
        password=settings.REDIS_PASSWORD,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        retry_on_timeout=True,
        health_check_interval=30,
    )


async def init_redis():
    """
    Crear el pool y verificar la conexión

    Raises:
        RedisError: si Redis no responde. Sin Redis el store no puede arrancar.
    """
    global redis_client, redis_pool

    redis_pool = _build_pool()
    redis_client = redis.Redis(connection_pool=redis_pool)

    try:
        await redis_client.ping()
    except RedisError as e:
        logger.error(f"No se pudo conectar a Redis en {settings.REDIS_URL}: {e}")
        raise
    logger.info(
        f"Redis listo para el store (pool max_connections={settings.REDIS_MAX_CONNECTIONS}, "
        f"canal={settings.REDIS_CHANGES_CHANNEL})"
    )


async def get_redis() -> redis.Redis:
    if redis_client is None:
        await init_redis()
    return redis_client


async def ping_redis() -> bool:
    """Estado de Redis para /health"""
    if redis_client is None:
        return False
    try:
        return bool(await redis_client.ping())
    except RedisError as e:
        logger.warning(f"Ping a Redis falló: {e}")
        return False


async def close_redis():
    """Cerrar cliente y pool"""
    global redis_client, redis_pool
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
    if redis_pool is not None:
        await redis_pool.disconnect()
        redis_pool = None
    logger.info("Redis desconectado")


class LockTimeoutError(RedisError):
    """No se obtuvo el lock dentro del timeout"""


class DistributedLock:
    """
    Lock distribuido sobre un documento del store (SET NX + EX)

    Sólo el dueño puede liberarlo: el release compara el identificador en Lua.
    """

    RELEASE_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(self, key: str, client=None, timeout: float = 10, expire: int = 30, retry_interval: float = 0.1):
        self.key = f"lock:{key}"
        self.client = client
        self.timeout = timeout
        self.expire = expire
        self.retry_interval = retry_interval
        self.identifier: Optional[str] = None

    async def _redis(self):
        return self.client if self.client is not None else await get_redis()

    async def acquire(self) -> bool:
        redis_conn = await self._redis()
        identifier = uuid.uuid4().hex
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            if await redis_conn.set(self.key, identifier, nx=True, ex=self.expire):
                self.identifier = identifier
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(self.retry_interval)

    async def release(self):
        if not self.identifier:
            return
        redis_conn = await self._redis()
        await redis_conn.eval(self.RELEASE_SCRIPT, 1, self.key, self.identifier)
        self.identifier = None

    async def __aenter__(self):
        if not await self.acquire():
            raise LockTimeoutError(f"No se pudo adquirir lock: {self.key}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.release()

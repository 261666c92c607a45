"""Store respaldado por Redis: GET/SET para el documento, PUBLISH para el change feed"""
from contextlib import asynccontextmanager
from typing import Dict, Optional
import asyncio
import json
import logging

from shared.cache.redis_client import DistributedLock, get_redis
from shared.errors import ErrorCode
from shared.storage.store import PersistentStore, StoreChange

logger = logging.getLogger(__name__)


class RedisStore(PersistentStore):
    """
    Cada proceso mantiene una copia local de lo leído. Los cambios de otros
    procesos llegan por pub/sub (listen) y se entregan al change feed; hasta
    entonces una lectura puede ver un valor obsoleto (consistencia eventual).
    """

    def __init__(self, channel: str, client=None, lock_timeout: float = 5, lock_expire: int = 10):
        super().__init__()
        self.channel = channel
        self.lock_timeout = lock_timeout
        self.lock_expire = lock_expire
        self._client = client
        self._local: Dict[str, str] = {}

    async def _redis(self):
        if self._client is None:
            self._client = await get_redis()
        return self._client

    async def read_raw(self, key: str) -> Optional[str]:
        if key in self._local:
            return self._local[key]
        redis_conn = await self._redis()
        raw = await redis_conn.get(key)
        if raw is not None:
            self._local[key] = raw
        return raw

    async def write_raw(self, key: str, raw: str):
        redis_conn = await self._redis()
        self._local[key] = raw
        await redis_conn.set(key, raw)
        envelope = json.dumps({"key": key, "value": raw, "origin": self.origin})
        await redis_conn.publish(self.channel, envelope)

    async def mirror(self, key: str, raw: str):
        self._local[key] = raw

    @asynccontextmanager
    async def lock(self, key: str):
        """
        Tomar el lock distribuido de la clave

        Dentro del lock se descarta la copia local: la lectura siguiente va a
        Redis y ve la última escritura de cualquier proceso.
        """
        async with DistributedLock(key, client=await self._redis(), timeout=self.lock_timeout, expire=self.lock_expire):
            self._local.pop(key, None)
            yield

    async def handle_envelope(self, data: str):
        """Procesar un mensaje del canal de cambios"""
        try:
            envelope = json.loads(data)
            key = envelope["key"]
        except (json.JSONDecodeError, TypeError, KeyError) as e:
            logger.warning(f"{ErrorCode.SYNC_PARSE_FAILURE.value}: mensaje inválido en {self.channel}: {e}")
            return

        if envelope.get("origin") == self.origin:
            return

        self._local.pop(key, None)
        await self._notify(StoreChange(key=key, new_value=envelope.get("value"), origin=envelope.get("origin")))

    async def listen(self):
        """Consumir el canal de cambios hasta ser cancelado"""
        redis_conn = await self._redis()
        pubsub = redis_conn.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info(f"Escuchando cambios en canal Redis {self.channel}")
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self.handle_envelope(message["data"])
        except asyncio.CancelledError:
            logger.info("Listener de cambios Redis detenido")
            raise
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()

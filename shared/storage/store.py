"""Adaptador de almacenamiento persistente (un documento JSON por clave)

Los stores deben ser intercambiables: los ledgers sólo conocen PersistentStore.
Cada instancia representa un contexto de ejecución (una pestaña, un proceso) y
expone un change feed con los cambios hechos por OTROS contextos sobre la misma clave.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
import asyncio
import contextlib
import copy
import json
import logging
import os
import tempfile
import uuid

from shared.errors import ErrorCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreChange:
    """Notificación de cambio: (clave, nuevo valor serializado)"""
    key: str
    new_value: Optional[str]
    origin: Optional[str] = None


ChangeListener = Callable[[StoreChange], Any]


def parse_document(key: str, raw: Optional[str], default: Dict) -> Dict:
    """Parsear un documento; si falta o está corrupto retorna copia del default"""
    if raw is None:
        return copy.deepcopy(default)
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"{ErrorCode.MALFORMED_STORE.value}: valor inválido en '{key}', usando default: {e}")
        return copy.deepcopy(default)
    if not isinstance(data, dict):
        logger.warning(f"{ErrorCode.MALFORMED_STORE.value}: '{key}' no contiene un objeto JSON, usando default")
        return copy.deepcopy(default)
    return data


class PersistentStore(ABC):
    """Interfaz de persistencia (repository pattern)"""

    def __init__(self):
        self.origin = uuid.uuid4().hex
        self._listeners: List[ChangeListener] = []

    @abstractmethod
    async def read_raw(self, key: str) -> Optional[str]:
        """Retornar el valor serializado o None si no existe"""
        ...

    @abstractmethod
    async def write_raw(self, key: str, raw: str):
        """Escribir el valor serializado y notificar a los otros contextos"""
        ...

    @abstractmethod
    async def mirror(self, key: str, raw: str):
        """Escribir en la copia local un valor llegado de otro contexto (sin re-notificar)"""
        ...

    def lock(self, key: str):
        """Lock entre procesos sobre una clave (no-op salvo en stores compartidos entre procesos)"""
        return contextlib.nullcontext()

    async def exists(self, key: str) -> bool:
        return await self.read_raw(key) is not None

    async def load(self, key: str, default: Dict) -> Dict:
        """Cargar documento. Nunca falla por datos ausentes o corruptos"""
        raw = await self.read_raw(key)
        return parse_document(key, raw, default)

    async def save(self, key: str, data: Dict):
        """Reescribir el documento completo"""
        await self.write_raw(key, json.dumps(data))

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Suscribirse al change feed. Retorna función para desuscribir"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _notify(self, change: StoreChange):
        for listener in list(self._listeners):
            try:
                result = listener(change)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error en listener de cambios para '{change.key}': {e}", exc_info=True)


class MemoryHub:
    """
    Almacenamiento compartido en memoria entre varios contextos (simula localStorage)

    Con auto_deliver=False las notificaciones quedan pendientes hasta
    deliver_pending(), lo que permite observar lecturas obsoletas.
    """

    def __init__(self, auto_deliver: bool = True):
        self.auto_deliver = auto_deliver
        self.values: Dict[str, str] = {}
        self._stores: List["MemoryStore"] = []
        self._pending: List[Tuple["MemoryStore", StoreChange]] = []

    def attach(self, store: "MemoryStore"):
        self._stores.append(store)

    async def publish(self, source: "MemoryStore", change: StoreChange):
        targets = [s for s in self._stores if s is not source]
        if not self.auto_deliver:
            self._pending.extend((target, change) for target in targets)
            return
        for target in targets:
            await target.receive(change)

    async def deliver_pending(self) -> int:
        """Entregar notificaciones pendientes. Retorna cuántas se entregaron"""
        pending, self._pending = self._pending, []
        for target, change in pending:
            await target.receive(change)
        return len(pending)


class MemoryStore(PersistentStore):
    """Store en memoria: un contexto con su propia copia sobre un MemoryHub"""

    def __init__(self, hub: Optional[MemoryHub] = None):
        super().__init__()
        self.hub = hub or MemoryHub()
        self._local: Dict[str, str] = {}
        self.hub.attach(self)

    def peek(self, key: str) -> Optional[str]:
        """Copia local de este contexto (sin leer el hub)"""
        return self._local.get(key)

    async def read_raw(self, key: str) -> Optional[str]:
        if key in self._local:
            return self._local[key]
        raw = self.hub.values.get(key)
        if raw is not None:
            self._local[key] = raw
        return raw

    async def write_raw(self, key: str, raw: str):
        self._local[key] = raw
        self.hub.values[key] = raw
        await self.hub.publish(self, StoreChange(key=key, new_value=raw, origin=self.origin))

    async def mirror(self, key: str, raw: str):
        self._local[key] = raw

    async def receive(self, change: StoreChange):
        """Cambio hecho por otro contexto"""
        self._local.pop(change.key, None)
        await self._notify(change)


class JsonFileStore(PersistentStore):
    """Store en archivos JSON (un archivo por clave), equivalente al data.json del sink HTTP"""

    def __init__(self, data_dir: str):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{key}.json"

    async def read_raw(self, key: str) -> Optional[str]:
        return await asyncio.to_thread(self._read, key)

    async def save(self, key: str, data: Dict):
        await self.write_raw(key, json.dumps(data, indent=2))

    async def write_raw(self, key: str, raw: str):
        await asyncio.to_thread(self._replace, key, raw)
        # Sólo hay notificación en proceso: otros procesos no observan el archivo

    async def mirror(self, key: str, raw: str):
        await asyncio.to_thread(self._replace, key, raw)

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _replace(self, key: str, raw: str):
        # Escritura a archivo temporal + os.replace: nunca se observa un archivo a medias
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(raw)
            os.replace(tmp_path, self._path(key))
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


def create_store(settings, hub: Optional[MemoryHub] = None) -> PersistentStore:
    """Crear store según STORE_BACKEND"""
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        return MemoryStore(hub)
    if backend == "file":
        logger.info(f"Usando JsonFileStore en {settings.DATA_DIR}")
        return JsonFileStore(settings.DATA_DIR)
    if backend == "redis":
        from shared.storage.redis_store import RedisStore
        return RedisStore(channel=settings.REDIS_CHANGES_CHANNEL)
    raise ValueError(f"STORE_BACKEND desconocido: {settings.STORE_BACKEND}")

"""Planificador de ticks y utilidades de control de frecuencia

Reemplaza los timers ad hoc (setTimeout / requestAnimationFrame) por un
planificador explícito. Todo depende de un Clock inyectable, así en tests se
usa ManualClock y no hace falta esperar tiempo real.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Any, List, Optional
import asyncio
import heapq
import itertools
import logging
import time

logger = logging.getLogger(__name__)


class SystemClock:
    """Reloj real"""

    def monotonic(self) -> float:
        return time.monotonic()

    def now(self) -> datetime:
        # Hora local con zona: peak hours se cuentan en hora local del café
        return datetime.now(timezone.utc).astimezone()


class ManualClock:
    """Reloj virtual para tests"""

    def __init__(self, start: Optional[datetime] = None):
        self._start = start or datetime(2025, 11, 16, 12, 0, tzinfo=timezone.utc)
        self._elapsed = 0.0

    def monotonic(self) -> float:
        return self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def advance(self, seconds: float):
        if seconds < 0:
            raise ValueError("El reloj no puede retroceder")
        self._elapsed += seconds


class TimerHandle:
    """Referencia a un callback programado"""

    def __init__(self, deadline: float, callback: Callable[[], Any]):
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class Scheduler:
    """Fuente única de ticks: ejecuta timers vencidos y callbacks por tick"""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._timers: List = []
        self._counter = itertools.count()
        self._tick_callbacks: List[Callable[[], Any]] = []
        self._running = False

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle:
        """Programar callback para dentro de `delay` segundos"""
        handle = TimerHandle(self.clock.monotonic() + delay, callback)
        heapq.heappush(self._timers, (handle.deadline, next(self._counter), handle))
        return handle

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is not None:
            handle.cancel()

    def every_tick(self, callback: Callable[[], Any]):
        """Registrar callback que se ejecuta en cada tick"""
        self._tick_callbacks.append(callback)

    @property
    def pending(self) -> int:
        return sum(1 for _, _, h in self._timers if not h.cancelled)

    async def tick(self):
        """Ejecutar timers vencidos y luego los callbacks de tick"""
        now = self.clock.monotonic()
        while self._timers and self._timers[0][0] <= now:
            _, _, handle = heapq.heappop(self._timers)
            if handle.cancelled:
                continue
            await self._invoke(handle.callback)

        for callback in list(self._tick_callbacks):
            await self._invoke(callback)

    async def _invoke(self, callback: Callable[[], Any]):
        try:
            if asyncio.iscoroutinefunction(callback):
                await callback()
            else:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
        except Exception as e:
            logger.error(f"Error en callback del scheduler: {e}", exc_info=True)

    async def run(self, interval: float):
        """Ciclo de ticks (equivalente a requestAnimationFrame)"""
        self._running = True
        logger.info(f"Scheduler iniciado (intervalo={interval * 1000:.0f}ms)")
        while self._running:
            await self.tick()
            await asyncio.sleep(interval)

    def stop(self):
        self._running = False


class Debouncer:
    """Colapsa una ráfaga de llamadas en una sola, ejecutada al final de la ventana"""

    def __init__(self, scheduler: Scheduler, delay: float):
        self.scheduler = scheduler
        self.delay = delay
        self._handle: Optional[TimerHandle] = None

    def call(self, callback: Callable[[], Any]):
        self.scheduler.cancel(self._handle)
        self._handle = self.scheduler.call_later(self.delay, callback)


class Throttle:
    """Acepta como máximo un disparo por intervalo; el resto se descarta"""

    def __init__(self, clock, interval: float):
        self.clock = clock
        self.interval = interval
        self._open_at: Optional[float] = None

    def try_acquire(self) -> bool:
        now = self.clock.monotonic()
        if self._open_at is not None and now < self._open_at:
            return False
        self._open_at = now + self.interval
        return True


class Cooldown:
    """Rate limit con pérdida: tras aceptar una llamada ignora las siguientes durante `interval`"""

    def __init__(self, clock, interval: float):
        self.clock = clock
        self.interval = interval
        self._last: Optional[float] = None

    def try_acquire(self) -> bool:
        now = self.clock.monotonic()
        # La primera llamada siempre pasa
        if self._last is None or now - self._last > self.interval:
            self._last = now
            return True
        return False

"""Generación de IDs monotónicos"""
from typing import Optional

from shared.utils.scheduler import SystemClock


class IdGenerator:
    """
    IDs enteros derivados del reloj (milisegundos) pero estrictamente crecientes.

    Dos llamadas en el mismo milisegundo no colisionan: la segunda recibe last + 1.
    """

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()
        self._last: Optional[int] = None

    def next_id(self) -> int:
        now_ms = int(self.clock.now().timestamp() * 1000)
        if self._last is not None and now_ms <= self._last:
            now_ms = self._last + 1
        self._last = now_ms
        return now_ms

"""Stub de pagos (demo): genera un client secret falso en lugar de llamar a Stripe"""
from typing import Dict, Optional
import logging

from shared.utils.scheduler import SystemClock

logger = logging.getLogger(__name__)


class PaymentService:
    """Servicio de pagos en modo demo"""

    def __init__(self, clock=None):
        self.clock = clock or SystemClock()

    def create_intent(
        self,
        amount: Optional[float] = None,
        currency: str = "inr",
        metadata: Optional[Dict] = None
    ) -> Dict:
        """
        Crear un payment intent de demo

        Raises:
            ValueError: si se envía un monto no positivo
        """
        if amount is not None and amount <= 0:
            raise ValueError("Invalid amount")

        millis = int(self.clock.now().timestamp() * 1000)
        logger.info(f"Payment intent demo creado (amount={amount}, currency={currency})")
        return {"clientSecret": f"pi_demo_client_secret_{millis}", "mode": "demo"}

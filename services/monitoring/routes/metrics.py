"""Rutas de métricas en vivo y canal WebSocket del panel admin"""
from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from typing import Dict
import logging

from shared.auth.dependencies import is_valid_admin_token, require_admin_token
from shared.events.bus import (
    ADMIN_CHANNEL,
    METRICS_CHANNEL,
    USER_ACTIVITY,
    BroadcastMessage,
)
from services.monitoring.models.metrics import (
    AcceptedResponse,
    ErrorReport,
    UserActivityRequest,
)
from services.monitoring.services.monitor_service import MonitorService

logger = logging.getLogger(__name__)

router = APIRouter()
ws_router = APIRouter()


def get_monitor_service(request: Request) -> MonitorService:
    return request.app.state.monitor_service


@router.get("")
async def get_metrics(
    monitor: MonitorService = Depends(get_monitor_service),
    token: str = Depends(require_admin_token)
) -> Dict:
    """Foto actual de las métricas (requiere token admin)"""
    return monitor.snapshot().model_dump(by_alias=True)


@router.post("/page-view", response_model=AcceptedResponse)
async def record_page_view(monitor: MonitorService = Depends(get_monitor_service)):
    """Registrar page view. Los que caen dentro de la ventana de throttle se descartan"""
    return AcceptedResponse(accepted=monitor.record_page_view())


@router.post("/errors", response_model=AcceptedResponse)
async def report_error(
    report: ErrorReport,
    monitor: MonitorService = Depends(get_monitor_service)
):
    accepted = monitor.report_error({"message": report.message, "stack": report.stack})
    return AcceptedResponse(accepted=accepted)


@router.post("/activity", response_model=AcceptedResponse)
async def user_activity(
    activity: UserActivityRequest,
    request: Request
):
    """Login / logout de usuario, publicado en el canal admin como userActivity"""
    await request.app.state.bus.publish(
        ADMIN_CHANNEL,
        USER_ACTIVITY,
        {"type": activity.type, "userId": activity.user_id}
    )
    return AcceptedResponse(accepted=True)


@ws_router.websocket("/admin/ws")
async def metrics_socket(websocket: WebSocket):
    """
    Canal en vivo del panel admin

    Envía cada broadcast de métricas. Los mensajes entrantes {type} se pasan
    al monitor. El token va en el query string (?token=...).
    """
    if not is_valid_admin_token(websocket.query_params.get("token", "")):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    bus = websocket.app.state.bus
    monitor: MonitorService = websocket.app.state.monitor_service

    async def forward(message: BroadcastMessage):
        await websocket.send_json(message.model_dump())

    unsubscribe = bus.subscribe(METRICS_CHANNEL, forward)
    logger.info("Cliente WebSocket de métricas conectado")
    try:
        while True:
            data = await websocket.receive_json()
            if isinstance(data, dict):
                monitor.handle_remote_update(data)
    except WebSocketDisconnect:
        logger.info("Cliente WebSocket de métricas desconectado")
    finally:
        unsubscribe()

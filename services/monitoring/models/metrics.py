"""Modelos Pydantic para métricas"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional


class MetricsModel(BaseModel):

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ErrorEntry(MetricsModel):
    timestamp: str
    message: str
    stack: Optional[str] = None


class MetricsSnapshot(MetricsModel):
    """Foto consolidada de las métricas"""
    active_users: int
    page_views: int
    peak_hours: List[int]
    popular_items: Dict[str, int]
    recent_errors: List[ErrorEntry]


class ErrorReport(MetricsModel):
    """Error reportado por un cliente"""
    message: str
    stack: Optional[str] = None


class UserActivityRequest(MetricsModel):
    """Actividad de usuario: login o logout"""
    type: str
    user_id: str


class AcceptedResponse(BaseModel):
    accepted: bool

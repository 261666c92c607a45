"""Códigos de error de dominio"""
from enum import Enum


class ErrorCode(str, Enum):
    """Códigos de error"""

    NOT_FOUND = "NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    EVENT_FULL = "EVENT_FULL"
    # Recuperados localmente, sólo aparecen en el log
    MALFORMED_STORE = "MALFORMED_STORE"
    SYNC_PARSE_FAILURE = "SYNC_PARSE_FAILURE"

"""Dependencies de autenticación para FastAPI

Auth de demo: un token compartido en el header x-admin-token. No usar en producción.
"""
from fastapi import Header, HTTPException, status
import hmac

from shared.config import settings


def is_valid_admin_token(token: str) -> bool:
    '''Comparar contra ADMIN_API_KEY. Sin clave configurada nada es válido'''
    if not settings.ADMIN_API_KEY or not token:
        return False
    return hmac.compare_digest(token, settings.ADMIN_API_KEY)


async def require_admin_token(
    x_admin_token: str = Header(default="")
) -> str:
    '''Verificar el token admin del request'''
    if not is_valid_admin_token(x_admin_token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='unauthorized'
        )
    return x_admin_token

"""Rutas de administración (sink HTTP del ledger admin)"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from typing import Dict, List
import csv
import io

from shared.auth.dependencies import require_admin_token
from services.admin.models.admin import (
    CreateMenuItemRequest,
    CreateOrderRequest,
    CreateUserRequest,
    PaymentIntentRequest,
    PaymentIntentResponse,
)
from services.admin.services.admin_service import AdminService, to_number
from services.payments.services.payment_service import PaymentService


router = APIRouter()

CREDENTIALS_HEADERS = ["id", "name", "email", "role", "joinDate", "status"]


def get_admin_service(request: Request) -> AdminService:
    return request.app.state.admin_service


def _today(service: AdminService) -> str:
    return service.clock.now().date().isoformat()


@router.get("/data")
async def get_all_data(
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
) -> Dict:
    """
    Documento admin completo (sólo lectura)

    Requiere token admin
    """
    data = await service.get_data()
    return data.model_dump(mode="json", by_alias=True)


# ==================== USERS ====================

@router.get("/users")
async def get_users(
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
) -> List[Dict]:
    data = await service.get_data()
    return [u.model_dump(mode="json", by_alias=True) for u in data.users]


@router.post("/users")
async def create_user(
    request: CreateUserRequest,
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    """
    Crear usuario

    joinDate por defecto es hoy y status por defecto 'active'
    """
    user = {
        "name": request.name,
        "email": request.email,
        "role": request.role,
        "joinDate": request.joinDate or _today(service),
        "status": request.status or "active"
    }
    user_id = await service.add_user(user)
    return {"ok": True, "user": {"id": user_id, **user}}


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: str,
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    await service.remove_user(user_id)
    return {"ok": True}


# ==================== MENU ====================

@router.get("/menu")
async def get_menu(
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
) -> List[Dict]:
    data = await service.get_data()
    return [m.model_dump(mode="json", by_alias=True) for m in data.menu_items]


@router.post("/menu")
async def create_menu_item(
    request: CreateMenuItemRequest,
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    item = {
        "name": request.name,
        "description": request.description,
        "price": to_number(request.price),
        "category": request.category,
        "photo": request.photo or "",
        "orders": 0
    }
    item_id = await service.add_menu_item(item)
    return {"ok": True, "item": {"id": item_id, **item}}


@router.delete("/menu/{item_id}")
async def delete_menu_item(
    item_id: str,
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    await service.remove_menu_item(item_id)
    return {"ok": True}


# ==================== ORDERS ====================

@router.get("/orders")
async def get_orders(
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
) -> List[Dict]:
    data = await service.get_data()
    return [o.model_dump(mode="json", by_alias=True) for o in data.orders]


@router.post("/orders")
async def create_order(
    request: CreateOrderRequest,
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    order = {
        "user": request.user,
        "total": to_number(request.total),
        "date": request.date or _today(service),
        "status": request.status or "completed"
    }
    if request.items is not None:
        order["items"] = request.items
    order_id = await service.add_order(order)
    return {"ok": True, "order": {"id": order_id, **order}}


# ==================== EXPORT ====================

@router.get("/export/credentials")
async def export_credentials(
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    """
    Exportar usuarios a CSV (sin contraseñas)

    Cada valor va entre comillas dobles, con las comillas internas duplicadas
    """
    data = await service.get_data()

    buffer = io.StringIO()
    buffer.write(",".join(CREDENTIALS_HEADERS) + "\n")
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for user in data.users:
        row = user.model_dump(mode="json", by_alias=True)
        writer.writerow(["" if row.get(h) is None else str(row.get(h)) for h in CREDENTIALS_HEADERS])

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="credentials_export.csv"'}
    )


# ==================== PAYMENTS ====================

@router.post("/payments/create-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    request: PaymentIntentRequest,
    service: AdminService = Depends(get_admin_service),
    token: str = Depends(require_admin_token)
):
    """
    Stub de payment intent (demo)

    En producción esto debe crear el intent en el proveedor de pagos con la clave secreta del servidor
    """
    payments = PaymentService(clock=service.clock)
    try:
        return payments.create_intent(
            amount=request.amount,
            currency=request.currency,
            metadata=request.metadata
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

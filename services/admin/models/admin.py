"""Modelos Pydantic para administración"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional, Union


class AdminModel(BaseModel):
    """Base: claves camelCase en el documento persistido"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class AdminRecord(AdminModel):
    """Registro admin con conjunto de campos abierto"""
    id: Union[int, str]

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"


# ==================== REGISTROS ====================

class MenuItem(AdminRecord):
    """Item del menú"""
    name: str = ""
    price: float = 0
    status: str = "available"  # available, unavailable


class User(AdminRecord):
    """Usuario registrado"""
    name: str = ""
    email: str = ""
    status: str = "active"  # active, inactive


class Order(AdminRecord):
    """Orden o transacción. total puede llegar como texto desde formularios"""
    user: str = ""
    total: Any = 0
    date: Optional[str] = None
    status: str = "completed"  # completed, confirmed, pending, cancelled


# ==================== DOCUMENTO ====================

class AdminSettings(AdminModel):
    is_maintenance_mode: bool = False
    allow_new_registrations: bool = True
    featured_items: List[Any] = []


class DerivedStats(AdminModel):
    """Estadísticas derivadas: se recalculan en cada guardado, nunca se editan"""
    total_users: int = 0
    total_orders: int = 0
    revenue: float = 0
    active_users: int = 0


class AdminData(AdminModel):
    """Documento completo del ledger admin"""
    menu_items: List[MenuItem] = []
    users: List[User] = []
    orders: List[Order] = []
    events: List[Dict[str, Any]] = []
    settings: AdminSettings = Field(default_factory=AdminSettings)
    stats: DerivedStats = Field(default_factory=DerivedStats)


# ==================== REQUESTS (sink HTTP) ====================

class CreateUserRequest(BaseModel):
    """Request para crear usuario"""
    name: str
    email: str
    role: Optional[str] = None
    joinDate: Optional[str] = None
    status: Optional[str] = None


class CreateMenuItemRequest(BaseModel):
    """Request para crear item del menú"""
    name: str
    description: Optional[str] = None
    price: Any = 0
    category: Optional[str] = None
    photo: Optional[str] = None


class CreateOrderRequest(BaseModel):
    """Request para registrar una orden"""
    user: str
    total: Any = 0
    date: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[Dict[str, Any]]] = None


class PaymentIntentRequest(BaseModel):
    """Request para el stub de pagos"""
    amount: Optional[float] = None
    currency: str = "inr"
    metadata: Optional[Dict[str, Any]] = None


class PaymentIntentResponse(BaseModel):
    clientSecret: str
    mode: str = "demo"

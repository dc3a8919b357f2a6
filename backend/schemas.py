from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, validator

from models import ORDER_STATUSES, PAYMENT_METHODS, TABLE_STATUSES, USER_ROLES

ORDER_TYPES = ("dine-in", "delivery")


def _non_empty(v: Optional[str], label: str, max_length: int) -> Optional[str]:
    if v is None:
        return v
    if len(v.strip()) == 0:
        raise ValueError(f"{label} cannot be empty")
    if len(v) > max_length:
        raise ValueError(f"{label} cannot exceed {max_length} characters")
    return v.strip()


class UserCreate(BaseModel):
    username: str
    password: str
    full_name: str = ""
    role: str

    @validator("username")
    def validate_username(cls, v: str) -> str:
        if not v or len(v.strip()) == 0:
            raise ValueError("Username cannot be empty")
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Username cannot exceed 50 characters")
        return v.strip()

    @validator("password")
    def validate_password(cls, v: str) -> str:
        if len(v) < 4:
            raise ValueError("Password must be at least 4 characters")
        return v

    @validator("role")
    def validate_role(cls, v: str) -> str:
        if v not in USER_ROLES:
            raise ValueError(f"Role must be one of: {', '.join(USER_ROLES)}")
        return v


class UserResponse(BaseModel):
    id: int
    username: str
    full_name: str
    role: str

    class Config:
        from_attributes = True


class UserLogin(BaseModel):
    username: str
    password: str


class HallCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_active: bool = True

    @validator("name")
    def validate_name(cls, v: str) -> str:
        return _non_empty(v, "Hall name", 100)


class HallUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None

    @validator("name")
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _non_empty(v, "Hall name", 100)


class HallResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


def _check_table_status(cls, v: Optional[str]) -> Optional[str]:
    if v is not None and v not in TABLE_STATUSES:
        raise ValueError(f"Status must be one of: {', '.join(TABLE_STATUSES)}")
    return v


def _check_capacity(cls, v: Optional[int]) -> Optional[int]:
    if v is not None and v <= 0:
        raise ValueError("Capacity must be greater than 0")
    return v


class TableCreate(BaseModel):
    table_number: str
    capacity: int = 4
    status: str = "available"
    hall_id: Optional[int] = None
    qr_code: Optional[str] = None

    @validator("table_number")
    def validate_table_number(cls, v: str) -> str:
        return _non_empty(v, "Table number", 20)

    _capacity = validator("capacity", allow_reuse=True)(_check_capacity)
    _status = validator("status", allow_reuse=True)(_check_table_status)


class TableUpdate(BaseModel):
    table_number: Optional[str] = None
    capacity: Optional[int] = None
    status: Optional[str] = None
    hall_id: Optional[int] = None
    qr_code: Optional[str] = None

    @validator("table_number")
    def validate_table_number(cls, v: Optional[str]) -> Optional[str]:
        return _non_empty(v, "Table number", 20)

    _capacity = validator("capacity", allow_reuse=True)(_check_capacity)
    _status = validator("status", allow_reuse=True)(_check_table_status)


class TableStatusUpdate(BaseModel):
    status: str

    _status = validator("status", allow_reuse=True)(_check_table_status)


class TableResponse(BaseModel):
    id: int
    table_number: str
    qr_code: Optional[str] = None
    capacity: int
    status: str
    hall_id: Optional[int] = None
    hall_name: Optional[str] = None


class TableQRResponse(BaseModel):
    table_id: int
    table_number: str
    qr_code: Optional[str] = None
    url: str


def _check_money(v: Optional[float], label: str) -> Optional[float]:
    if v is None:
        return v
    if v < 0:
        raise ValueError(f"{label} cannot be negative")
    if v > 1000000:
        raise ValueError(f"{label} is too high")
    return round(v, 2)


class MenuItemCreate(BaseModel):
    name: str
    description: Optional[str] = None
    price: float
    cost: float = 0
    barcode: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    stock_quantity: int = 0
    is_available: bool = True

    @validator("name")
    def validate_name(cls, v: str) -> str:
        return _non_empty(v, "Item name", 100)

    @validator("price")
    def validate_price(cls, v: float) -> float:
        return _check_money(v, "Price")

    @validator("cost")
    def validate_cost(cls, v: float) -> float:
        return _check_money(v, "Cost")


class MenuItemUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    cost: Optional[float] = None
    barcode: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    stock_quantity: Optional[int] = None
    is_available: Optional[bool] = None

    @validator("name")
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _non_empty(v, "Item name", 100)

    @validator("price")
    def validate_price(cls, v: Optional[float]) -> Optional[float]:
        return _check_money(v, "Price")

    @validator("cost")
    def validate_cost(cls, v: Optional[float]) -> Optional[float]:
        return _check_money(v, "Cost")


class MenuItemResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    cost: float
    barcode: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    stock_quantity: int
    is_available: bool

    class Config:
        from_attributes = True


class OrderItemCreate(BaseModel):
    menu_item_id: int
    quantity: int
    unit_price: float
    # Trusted as submitted; computed as quantity * unit_price when omitted.
    subtotal: Optional[float] = None
    notes: Optional[str] = None

    @validator("quantity")
    def validate_quantity(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than 0")
        return v

    @validator("unit_price")
    def validate_unit_price(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Unit price cannot be negative")
        return v


class OrderItemResponse(BaseModel):
    id: int
    menu_item_id: int
    menu_item_name: str
    quantity: int
    unit_price: float
    subtotal: float
    notes: Optional[str] = None


def _check_order_type(cls, v: str) -> str:
    if v not in ORDER_TYPES:
        raise ValueError(f"Order type must be one of: {', '.join(ORDER_TYPES)}")
    return v


def _check_payment_method(cls, v: str) -> str:
    if v not in PAYMENT_METHODS:
        raise ValueError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    return v


class OrderCreate(BaseModel):
    order_type: str = "dine-in"
    table_id: Optional[int] = None
    items: List[OrderItemCreate] = []
    notes: Optional[str] = None
    total_amount: Optional[float] = None

    _order_type = validator("order_type", allow_reuse=True)(_check_order_type)


class PosOrderCreate(OrderCreate):
    payment_method: str = "cash"

    _payment_method = validator("payment_method", allow_reuse=True)(_check_payment_method)


class OrderUpdate(BaseModel):
    notes: Optional[str] = None
    total_amount: Optional[float] = None


class OrderStatusUpdate(BaseModel):
    status: str

    @validator("status")
    def validate_status(cls, v: str) -> str:
        if v not in ORDER_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(ORDER_STATUSES)}")
        return v


class PaymentSummary(BaseModel):
    id: int
    amount: float
    payment_method: str
    transaction_reference: Optional[str] = None
    cashier_id: Optional[int] = None
    created_at: Optional[datetime] = None


class OrderResponse(BaseModel):
    id: int
    order_type: str
    table_id: Optional[int] = None
    table_number: Optional[str] = None
    hall_name: Optional[str] = None
    waiter_id: Optional[int] = None
    waiter_name: Optional[str] = None
    status: str
    total_amount: float
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    items: List[OrderItemResponse]
    payments: List[PaymentSummary] = []


class PaymentCreate(BaseModel):
    order_id: int
    payment_method: str
    transaction_reference: Optional[str] = None

    _payment_method = validator("payment_method", allow_reuse=True)(_check_payment_method)


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    amount: float
    payment_method: str
    transaction_reference: Optional[str] = None
    cashier_id: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceLine(BaseModel):
    name: str
    quantity: int
    unit_price: float
    subtotal: float


class InvoiceResponse(BaseModel):
    order_id: int
    barcode: str
    order_type: str
    table_number: Optional[str] = None
    hall_name: Optional[str] = None
    waiter_name: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    lines: List[InvoiceLine]
    total_amount: float
    payment_methods: List[str]


class CustomerOrderCreate(BaseModel):
    table_number: str = ""
    items: List[OrderItemCreate] = []


class CustomerOrderResponse(BaseModel):
    order_id: int
    order_reference: str
    table_number: str
    total_amount: float
    status: str


class CustomerMenuResponse(BaseModel):
    table_number: str
    table_id: Optional[int] = None
    available_tables: List[TableResponse]
    categories: List[str]
    items: List[MenuItemResponse]


class TopItemResponse(BaseModel):
    menu_item_id: int
    name: str
    quantity: int
    revenue: float
    cost: float
    profit: float


class ReportResponse(BaseModel):
    start: datetime
    end: datetime
    revenue: float
    cost: float
    profit: float
    profit_margin: float
    completed_orders: int
    top_items: List[TopItemResponse] = []


class DashboardStatsResponse(BaseModel):
    range: str
    available_tables: int
    total_tables: int
    total_items: int
    active_orders: int
    low_stock: int
    completed_orders: int
    revenue: float
    total_cost: float
    profit: float
    profit_margin: float


class RecentOrderResponse(BaseModel):
    id: int
    created_at: Optional[datetime] = None
    status: str
    total_amount: float
    table_number: Optional[str] = None

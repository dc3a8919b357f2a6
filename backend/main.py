import logging
from datetime import date
from typing import List, Optional

import uvicorn
from fastapi import FastAPI, Depends, HTTPException, Header, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, joinedload

import auth
import models
import order_service
import reporting
from config import CORS_ORIGINS, LOG_LEVEL, LOW_STOCK_THRESHOLD, PUBLIC_BASE_URL
from database import engine, get_db, init_restaurant_data, utcnow, wait_for_db
from export_utils import EXPORT_FORMATS, MEDIA_TYPES, build_export
from redis_client import (
    AVAILABLE_MENU_ITEMS,
    AVAILABLE_TABLES,
    HALLS,
    MENU_ITEMS,
    ORDERS,
    TABLES,
    UNPAID_ORDERS,
    redis_client,
)
from schemas import (
    CustomerMenuResponse,
    CustomerOrderCreate,
    CustomerOrderResponse,
    DashboardStatsResponse,
    HallCreate,
    HallResponse,
    HallUpdate,
    InvoiceResponse,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
    OrderCreate,
    OrderItemCreate,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdate,
    OrderUpdate,
    PaymentCreate,
    PaymentResponse,
    PosOrderCreate,
    RecentOrderResponse,
    ReportResponse,
    TableCreate,
    TableQRResponse,
    TableResponse,
    TableStatusUpdate,
    TableUpdate,
    TopItemResponse,
    UserCreate,
    UserLogin,
    UserResponse,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("restaurant_pos")

app = FastAPI(title="Restaurant POS API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MANAGEMENT_ROLES = ("admin", "manager")


@app.on_event("startup")
def startup_event():
    if wait_for_db():
        try:
            logger.info("Creating database tables...")
            models.Base.metadata.create_all(bind=engine)
            init_restaurant_data()
            logger.info("Database initialized")
        except Exception as e:
            logger.error(f"Error creating/initializing the database: {e}")
    else:
        logger.error("Database did not become ready during startup")

    if redis_client.is_available():
        logger.info("Redis is available")
    else:
        logger.warning("Redis is unavailable, query cache disabled")


async def get_current_user(authorization: Optional[str] = Header(None), db: Session = Depends(get_db)):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")

    token = authorization.replace("Bearer ", "")
    payload = auth.verify_token(token)

    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    username = payload.get("sub")
    if not username:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = db.query(models.User).filter(models.User.username == username).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


def ensure_role(user: models.User, roles, action: str):
    if user.role not in roles:
        raise HTTPException(status_code=403, detail=f"Only {' or '.join(roles)} can {action}")


@app.get("/")
def read_root():
    return {"message": "Restaurant POS API is working!"}


@app.get("/health")
def health_check():
    return {"status": "ok", "message": "API is running"}


@app.get("/cache/info")
def get_cache_info():
    return redis_client.get_cache_info()


# ========== Users ==========

@app.post("/register", response_model=UserResponse)
def register(user: UserCreate, db: Session = Depends(get_db)):
    db_user = db.query(models.User).filter(models.User.username == user.username).first()
    if db_user:
        raise HTTPException(status_code=400, detail="Username already registered")

    hashed_password = auth.get_password_hash(user.password)
    db_user = models.User(
        username=user.username,
        password=hashed_password,
        full_name=user.full_name or user.username,
        role=user.role,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info(f"User registered: {db_user.username} ({db_user.role})")
    return db_user


@app.post("/login")
def login(user: UserLogin, db: Session = Depends(get_db)):
    db_user = auth.authenticate_user(db, user.username, user.password)
    if not db_user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect username or password")

    access_token = auth.create_access_token(data={"sub": db_user.username, "role": db_user.role})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": {
            "id": db_user.id,
            "username": db_user.username,
            "full_name": db_user.full_name,
            "role": db_user.role
        }
    }


@app.get("/me", response_model=UserResponse)
def get_current_user_info(current_user: models.User = Depends(get_current_user)):
    return current_user


@app.get("/users", response_model=List[UserResponse])
def get_users(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, ("admin",), "view users")
    return db.query(models.User).order_by(models.User.id).all()


# ========== Halls ==========

@app.get("/halls", response_model=List[HallResponse])
def get_halls(db: Session = Depends(get_db)):
    cached_halls = redis_client.get_cached(HALLS)
    if cached_halls:
        return [HallResponse(**hall) for hall in cached_halls]

    halls = db.query(models.Hall).order_by(models.Hall.name).all()
    halls_data = [HallResponse.from_orm(h).dict() for h in halls]

    redis_client.cache(HALLS, halls_data)

    return halls


@app.post("/halls", response_model=HallResponse)
def create_hall(hall: HallCreate, db: Session = Depends(get_db),
                current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage halls")

    try:
        db_hall = models.Hall(**hall.dict())
        db.add(db_hall)
        db.commit()
        db.refresh(db_hall)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating hall: {e}")
        raise HTTPException(status_code=500, detail=f"Error creating hall: {e}")

    redis_client.invalidate(HALLS)
    return db_hall


@app.put("/halls/{hall_id}", response_model=HallResponse)
def update_hall(hall_id: int, hall: HallUpdate, db: Session = Depends(get_db),
                current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage halls")

    try:
        db_hall = db.query(models.Hall).filter(models.Hall.id == hall_id).first()
        if not db_hall:
            raise HTTPException(status_code=404, detail="Hall not found")

        for key, value in hall.dict(exclude_unset=True).items():
            setattr(db_hall, key, value)

        db.commit()
        db.refresh(db_hall)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating hall {hall_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error updating hall: {e}")

    redis_client.invalidate(HALLS)
    return db_hall


@app.delete("/halls/{hall_id}")
def delete_hall(hall_id: int, db: Session = Depends(get_db),
                current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage halls")

    try:
        db_hall = db.query(models.Hall).filter(models.Hall.id == hall_id).first()
        if not db_hall:
            raise HTTPException(status_code=404, detail="Hall not found")

        detached = db.query(models.Table).filter(models.Table.hall_id == hall_id).update(
            {models.Table.hall_id: None}, synchronize_session=False
        )
        db.delete(db_hall)
        db.commit()
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting hall {hall_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error deleting hall: {e}")

    redis_client.invalidate(HALLS, TABLES)
    return {"message": "Hall deleted", "detached_tables": detached}


# ========== Tables ==========

def table_to_dict(table: models.Table) -> dict:
    return {
        "id": table.id,
        "table_number": table.table_number,
        "qr_code": table.qr_code,
        "capacity": table.capacity,
        "status": table.status,
        "hall_id": table.hall_id,
        "hall_name": table.hall.name if table.hall else None,
    }


def get_table_or_404(db: Session, table_id: int) -> models.Table:
    table = db.query(models.Table).filter(models.Table.id == table_id).first()
    if not table:
        raise HTTPException(status_code=404, detail="Table not found")
    return table


@app.get("/tables", response_model=List[TableResponse])
def get_tables(db: Session = Depends(get_db)):
    cached_tables = redis_client.get_cached(TABLES)
    if cached_tables:
        return [TableResponse(**table) for table in cached_tables]

    tables = (
        db.query(models.Table)
        .options(joinedload(models.Table.hall))
        .order_by(models.Table.table_number)
        .all()
    )
    tables_data = [table_to_dict(t) for t in tables]

    redis_client.cache(TABLES, tables_data)

    return tables_data


@app.get("/tables/available", response_model=List[TableResponse])
def get_available_tables(db: Session = Depends(get_db)):
    cached_tables = redis_client.get_cached(AVAILABLE_TABLES)
    if cached_tables:
        return [TableResponse(**table) for table in cached_tables]

    tables = (
        db.query(models.Table)
        .options(joinedload(models.Table.hall))
        .filter(models.Table.status == "available")
        .order_by(models.Table.table_number)
        .all()
    )
    tables_data = [table_to_dict(t) for t in tables]

    redis_client.cache(AVAILABLE_TABLES, tables_data)

    return tables_data


@app.get("/tables/{table_id}", response_model=TableResponse)
def get_table(table_id: int, db: Session = Depends(get_db)):
    return table_to_dict(get_table_or_404(db, table_id))


@app.get("/tables/{table_id}/qr", response_model=TableQRResponse)
def get_table_qr(table_id: int, db: Session = Depends(get_db)):
    table = get_table_or_404(db, table_id)
    return TableQRResponse(
        table_id=table.id,
        table_number=table.table_number,
        qr_code=table.qr_code,
        url=f"{PUBLIC_BASE_URL}/customer-menu/{table.table_number}",
    )


def _check_hall_exists(db: Session, hall_id: Optional[int]):
    if hall_id is not None and not db.query(models.Hall).filter(models.Hall.id == hall_id).first():
        raise HTTPException(status_code=404, detail="Hall not found")


def _check_table_number_free(db: Session, table_number: str, table_id: Optional[int] = None):
    query = db.query(models.Table).filter(models.Table.table_number == table_number)
    if table_id is not None:
        query = query.filter(models.Table.id != table_id)
    if query.first():
        raise HTTPException(status_code=400, detail="Table number already exists")


@app.post("/tables", response_model=TableResponse)
def create_table(table: TableCreate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage tables")
    _check_hall_exists(db, table.hall_id)
    _check_table_number_free(db, table.table_number)

    try:
        data = table.dict()
        if not data.get("qr_code"):
            data["qr_code"] = order_service.generate_table_qr_code(table.table_number)
        db_table = models.Table(**data)
        db.add(db_table)
        db.commit()
        db.refresh(db_table)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating table {table.table_number}: {e}")
        raise HTTPException(status_code=500, detail=f"Error creating table: {e}")

    redis_client.invalidate(TABLES)
    return table_to_dict(db_table)


@app.put("/tables/{table_id}", response_model=TableResponse)
def update_table(table_id: int, table: TableUpdate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage tables")
    db_table = get_table_or_404(db, table_id)

    updates = table.dict(exclude_unset=True)
    if "hall_id" in updates:
        _check_hall_exists(db, updates["hall_id"])
    if updates.get("table_number"):
        _check_table_number_free(db, updates["table_number"], table_id)

    try:
        for key, value in updates.items():
            setattr(db_table, key, value)
        db.commit()
        db.refresh(db_table)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating table {table_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error updating table: {e}")

    redis_client.invalidate(TABLES)
    return table_to_dict(db_table)


@app.put("/tables/{table_id}/status", response_model=TableResponse)
def update_table_status(table_id: int, table_status: TableStatusUpdate, db: Session = Depends(get_db),
                        current_user: models.User = Depends(get_current_user)):
    db_table = get_table_or_404(db, table_id)

    try:
        db_table.status = table_status.status
        db.commit()
        db.refresh(db_table)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating status of table {table_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error updating table: {e}")

    redis_client.invalidate(TABLES)
    return table_to_dict(db_table)


@app.delete("/tables/{table_id}")
def delete_table(table_id: int, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage tables")
    db_table = get_table_or_404(db, table_id)

    # Orders keep their table_id.
    try:
        db.delete(db_table)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting table {table_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error deleting table: {e}")

    redis_client.invalidate(TABLES)
    return {"message": "Table deleted"}


# ========== Menu ==========

def get_menu_item_or_404(db: Session, item_id: int) -> models.MenuItem:
    item = db.query(models.MenuItem).filter(models.MenuItem.id == item_id).first()
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item


def orderable_menu_items(db: Session) -> List[models.MenuItem]:
    return (
        db.query(models.MenuItem)
        .filter(models.MenuItem.is_available == True, models.MenuItem.stock_quantity > 0)
        .order_by(models.MenuItem.name)
        .all()
    )


@app.get("/menu-items", response_model=List[MenuItemResponse])
def get_menu_items(db: Session = Depends(get_db)):
    cached_items = redis_client.get_cached(MENU_ITEMS)
    if cached_items:
        return [MenuItemResponse(**item) for item in cached_items]

    items = db.query(models.MenuItem).order_by(models.MenuItem.name).all()
    redis_client.cache(MENU_ITEMS, [MenuItemResponse.from_orm(i).dict() for i in items])

    return items


@app.get("/menu-items/available", response_model=List[MenuItemResponse])
def get_available_menu_items(db: Session = Depends(get_db)):
    cached_items = redis_client.get_cached(AVAILABLE_MENU_ITEMS)
    if cached_items:
        return [MenuItemResponse(**item) for item in cached_items]

    items = orderable_menu_items(db)
    redis_client.cache(AVAILABLE_MENU_ITEMS, [MenuItemResponse.from_orm(i).dict() for i in items])

    return items


@app.get("/menu-items/featured", response_model=List[MenuItemResponse])
def get_featured_menu_items(limit: int = Query(8, ge=1, le=50), db: Session = Depends(get_db)):
    return (
        db.query(models.MenuItem)
        .filter(models.MenuItem.is_available == True)
        .order_by(models.MenuItem.name)
        .limit(limit)
        .all()
    )


@app.get("/menu-items/low-stock", response_model=List[MenuItemResponse])
def get_low_stock_menu_items(db: Session = Depends(get_db)):
    return (
        db.query(models.MenuItem)
        .filter(models.MenuItem.stock_quantity <= LOW_STOCK_THRESHOLD)
        .order_by(models.MenuItem.stock_quantity, models.MenuItem.name)
        .all()
    )


@app.get("/menu-items/{item_id}", response_model=MenuItemResponse)
def get_menu_item(item_id: int, db: Session = Depends(get_db)):
    return get_menu_item_or_404(db, item_id)


@app.post("/menu-items", response_model=MenuItemResponse)
def create_menu_item(item: MenuItemCreate, db: Session = Depends(get_db),
                     current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage the menu")

    try:
        data = item.dict()
        if not data.get("barcode"):
            data["barcode"] = order_service.generate_item_barcode()
        db_item = models.MenuItem(**data)
        db.add(db_item)
        db.commit()
        db.refresh(db_item)
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating menu item: {e}")
        raise HTTPException(status_code=500, detail=f"Error creating menu item: {e}")

    redis_client.invalidate(MENU_ITEMS, AVAILABLE_MENU_ITEMS)
    return db_item


@app.put("/menu-items/{item_id}", response_model=MenuItemResponse)
def update_menu_item(item_id: int, item: MenuItemUpdate, db: Session = Depends(get_db),
                     current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage the menu")
    db_item = get_menu_item_or_404(db, item_id)

    try:
        for key, value in item.dict(exclude_unset=True).items():
            setattr(db_item, key, value)
        db.commit()
        db.refresh(db_item)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating menu item {item_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error updating menu item: {e}")

    redis_client.invalidate(MENU_ITEMS, AVAILABLE_MENU_ITEMS)
    return db_item


@app.delete("/menu-items/{item_id}")
def delete_menu_item(item_id: int, db: Session = Depends(get_db),
                     current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "manage the menu")
    db_item = get_menu_item_or_404(db, item_id)

    try:
        db.delete(db_item)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error deleting menu item {item_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error deleting menu item: {e}")

    redis_client.invalidate(MENU_ITEMS, AVAILABLE_MENU_ITEMS)
    return {"message": "Menu item deleted"}


# ========== Orders ==========

@app.get("/orders", response_model=List[OrderResponse])
def get_orders(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    cached_orders = redis_client.get_cached(ORDERS)
    if cached_orders:
        return [OrderResponse(**order) for order in cached_orders]

    orders = order_service.list_orders(db)
    redis_client.cache(ORDERS, [o.dict() for o in orders])
    return orders


@app.get("/orders/unpaid", response_model=List[OrderResponse])
def get_unpaid_orders(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    cached_orders = redis_client.get_cached(UNPAID_ORDERS)
    if cached_orders:
        return [OrderResponse(**order) for order in cached_orders]

    orders = order_service.list_unpaid_orders(db)
    redis_client.cache(UNPAID_ORDERS, [o.dict() for o in orders])
    return orders


@app.get("/orders/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    order_response = order_service.get_order_response(db, order_id)
    if not order_response:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_response


@app.post("/orders", response_model=OrderResponse)
def create_order(order: OrderCreate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    db_order = order_service.create_order(db, order, waiter_id=current_user.id)
    return order_service.get_order_response(db, db_order.id)


@app.post("/orders/{order_id}/items", response_model=OrderItemResponse)
def add_order_item(order_id: int, item: OrderItemCreate, db: Session = Depends(get_db),
                   current_user: models.User = Depends(get_current_user)):
    db_item = order_service.add_order_item(db, order_id, item)
    return OrderItemResponse(
        id=db_item.id,
        menu_item_id=db_item.menu_item_id,
        menu_item_name=db_item.menu_item.name if db_item.menu_item else "Unknown",
        quantity=db_item.quantity,
        unit_price=db_item.unit_price,
        subtotal=db_item.subtotal,
        notes=db_item.notes,
    )


@app.put("/orders/{order_id}", response_model=OrderResponse)
def update_order(order_id: int, order_update: OrderUpdate, db: Session = Depends(get_db),
                 current_user: models.User = Depends(get_current_user)):
    order_service.update_order(db, order_id, notes=order_update.notes, total_amount=order_update.total_amount)
    return order_service.get_order_response(db, order_id)


@app.put("/orders/{order_id}/status", response_model=OrderResponse)
def update_order_status(order_id: int, order_status: OrderStatusUpdate, db: Session = Depends(get_db),
                        current_user: models.User = Depends(get_current_user)):
    order_service.update_order_status(db, order_id, order_status.status)
    return order_service.get_order_response(db, order_id)


@app.get("/orders/{order_id}/invoice", response_model=InvoiceResponse)
def get_order_invoice(order_id: int, db: Session = Depends(get_db),
                      current_user: models.User = Depends(get_current_user)):
    return order_service.build_invoice(db, order_id)


# ========== Payments ==========

@app.post("/payments", response_model=PaymentResponse)
def create_payment(payment: PaymentCreate, db: Session = Depends(get_db),
                   current_user: models.User = Depends(get_current_user)):
    return order_service.capture_payment(
        db,
        payment.order_id,
        payment.payment_method,
        cashier_id=current_user.id,
        transaction_reference=payment.transaction_reference,
    )


@app.post("/pos/orders", response_model=OrderResponse)
def create_pos_order(order: PosOrderCreate, db: Session = Depends(get_db),
                     current_user: models.User = Depends(get_current_user)):
    db_order = order_service.create_pos_order(db, order, order.payment_method, cashier_id=current_user.id)
    return order_service.get_order_response(db, db_order.id)


# ========== Customer self-order ==========

@app.get("/customer-menu/{table_ref}", response_model=CustomerMenuResponse)
def get_customer_menu(table_ref: str, db: Session = Depends(get_db)):
    table = db.query(models.Table).filter(models.Table.table_number == table_ref).first()
    if not table and table_ref.isdigit():
        table = db.query(models.Table).filter(models.Table.id == int(table_ref)).first()

    available_tables = (
        db.query(models.Table)
        .options(joinedload(models.Table.hall))
        .filter(models.Table.status == "available")
        .order_by(models.Table.table_number)
        .all()
    )
    items = orderable_menu_items(db)

    categories = []
    for item in items:
        if item.category and item.category not in categories:
            categories.append(item.category)

    return CustomerMenuResponse(
        table_number=table.table_number if table else table_ref,
        table_id=table.id if table else None,
        available_tables=[TableResponse(**table_to_dict(t)) for t in available_tables],
        categories=categories,
        items=[MenuItemResponse.from_orm(i) for i in items],
    )


@app.post("/customer-menu/orders", response_model=CustomerOrderResponse)
def create_customer_order(order: CustomerOrderCreate, db: Session = Depends(get_db)):
    db_order = order_service.create_customer_order(db, order.table_number, order.items)
    return CustomerOrderResponse(
        order_id=db_order.id,
        order_reference=str(db_order.id)[:8],
        table_number=order.table_number.strip(),
        total_amount=db_order.total_amount,
        status=db_order.status,
    )


# ========== Dashboard & reports ==========

@app.get("/dashboard/stats", response_model=DashboardStatsResponse)
def get_dashboard_stats(range: str = Query("today"), db: Session = Depends(get_db),
                        current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "view the dashboard")
    return reporting.dashboard_stats(db, range)


@app.get("/dashboard/top-items", response_model=List[TopItemResponse])
def get_top_items(range: str = Query("today"), db: Session = Depends(get_db),
                  current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "view the dashboard")
    start, end = reporting.period_bounds(range)
    return reporting.top_items(db, start, end)


@app.get("/dashboard/recent-orders", response_model=List[RecentOrderResponse])
def get_recent_orders(db: Session = Depends(get_db), current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "view the dashboard")
    return reporting.recent_orders(db)


@app.get("/reports/summary", response_model=ReportResponse)
def get_report_summary(range: Optional[str] = Query(None), start: Optional[date] = Query(None),
                       end: Optional[date] = Query(None), db: Session = Depends(get_db),
                       current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "view reports")
    period_start, period_end = reporting.resolve_period(range, start, end)
    return reporting.period_report(db, period_start, period_end)


def _file_response(rows, export_format: str, file_stem: str, sheet_name: str):
    if export_format not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Format must be one of: {', '.join(EXPORT_FORMATS)}")
    output = build_export(rows, export_format, sheet_name)
    filename = f"{file_stem}_{utcnow().strftime('%Y-%m-%d')}.{export_format}"
    return StreamingResponse(
        output,
        media_type=MEDIA_TYPES[export_format],
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/dashboard/export")
def export_report(range: str = Query("today"), format: str = Query("xlsx"), db: Session = Depends(get_db),
                  current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "export reports")
    start, end = reporting.period_bounds(range)

    if range == "today":
        rows = reporting.summary_rows(db, start, end, "Today")
        file_stem = "report"
    else:
        rows = reporting.daily_breakdown_rows(db, start, end)
        file_stem = f"report_{range}"

    return _file_response(rows, format, file_stem, "Report")


@app.get("/dashboard/export/orders")
def export_completed_orders(period: str = Query("today"), format: str = Query("xlsx"),
                            db: Session = Depends(get_db),
                            current_user: models.User = Depends(get_current_user)):
    ensure_role(current_user, MANAGEMENT_ROLES, "export reports")
    if period not in ("today", "week", "month"):
        raise HTTPException(status_code=400, detail="Period must be one of: today, week, month")

    start, end = reporting.period_bounds(period)
    rows = reporting.completed_order_rows(db, start, end)
    if not rows:
        raise HTTPException(status_code=404, detail=f"No completed orders for period '{period}'")

    return _file_response(rows, format, f"orders_{period}", "Orders")


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

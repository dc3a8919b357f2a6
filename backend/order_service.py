"""
Order lifecycle and payment capture.

Every multi-step operation here commits each step on its own: the order row,
its items, the payment row and the table status are separate writes with no
shared transaction. A failure part-way leaves the earlier steps in place;
nothing is rolled back across steps and nothing is retried.
"""
import logging
import time
from typing import List, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

import models
from database import utcnow
from redis_client import ORDERS, AVAILABLE_TABLES, TABLES, UNPAID_ORDERS, redis_client
from schemas import (
    InvoiceLine,
    InvoiceResponse,
    OrderCreate,
    OrderItemCreate,
    OrderItemResponse,
    OrderResponse,
    PaymentSummary,
)

logger = logging.getLogger(__name__)


def generate_order_barcode(order_id) -> str:
    return f"ORD-{str(order_id)[:8].upper()}"


def generate_item_barcode() -> str:
    return f"ITEM-{int(time.time() * 1000)}"


def generate_table_qr_code(table_number: str) -> str:
    return f"TABLE-{table_number}-{int(time.time() * 1000)}"


def order_type_of(order: models.Order) -> str:
    return "dine-in" if order.table_id is not None else "delivery"


def item_subtotal(item: OrderItemCreate) -> float:
    if item.subtotal is not None:
        return item.subtotal
    return item.quantity * item.unit_price


def _order_query(db: Session):
    return db.query(models.Order).options(
        joinedload(models.Order.table).joinedload(models.Table.hall),
        joinedload(models.Order.waiter),
        joinedload(models.Order.items).joinedload(models.OrderItem.menu_item),
        joinedload(models.Order.payments),
    )


def get_order_or_404(db: Session, order_id: int) -> models.Order:
    order = db.query(models.Order).filter(models.Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def get_order_response(db: Session, order_id: int) -> Optional[OrderResponse]:
    order = _order_query(db).filter(models.Order.id == order_id).first()
    if not order:
        return None
    return build_order_response(order)


def build_order_response(order: models.Order) -> OrderResponse:
    table = order.table
    items = [
        OrderItemResponse(
            id=item.id,
            menu_item_id=item.menu_item_id,
            menu_item_name=item.menu_item.name if item.menu_item else "Unknown",
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.subtotal,
            notes=item.notes,
        )
        for item in sorted(order.items, key=lambda i: i.id)
    ]
    payments = [
        PaymentSummary(
            id=p.id,
            amount=p.amount,
            payment_method=p.payment_method,
            transaction_reference=p.transaction_reference,
            cashier_id=p.cashier_id,
            created_at=p.created_at,
        )
        for p in sorted(order.payments, key=lambda p: p.id)
    ]

    return OrderResponse(
        id=order.id,
        order_type=order_type_of(order),
        table_id=order.table_id,
        table_number=table.table_number if table else None,
        hall_name=table.hall.name if table and table.hall else None,
        waiter_id=order.waiter_id,
        waiter_name=(order.waiter.full_name or order.waiter.username) if order.waiter else None,
        status=order.status,
        total_amount=order.total_amount or 0,
        notes=order.notes,
        created_at=order.created_at,
        updated_at=order.updated_at,
        completed_at=order.completed_at,
        items=items,
        payments=payments,
    )


def list_orders(db: Session) -> List[OrderResponse]:
    orders = _order_query(db).order_by(models.Order.created_at.desc(), models.Order.id.desc()).all()
    return [build_order_response(order) for order in orders]


def list_unpaid_orders(db: Session) -> List[OrderResponse]:
    """Active orders that have no payment row yet, newest first."""
    orders = (
        _order_query(db)
        .filter(models.Order.status.in_(models.ACTIVE_ORDER_STATUSES))
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .all()
    )
    return [build_order_response(order) for order in orders if not order.payments]


def _set_table_status(db: Session, table_id: int, status: str, raise_on_error: bool):
    try:
        table = db.query(models.Table).filter(models.Table.id == table_id).first()
        if table:
            table.status = status
            db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error setting table {table_id} to '{status}': {e}")
        if raise_on_error:
            raise HTTPException(status_code=500, detail=f"Error updating table status: {e}")


def _insert_order(db: Session, table_id: Optional[int], waiter_id: Optional[int],
                  total_amount: float, notes: Optional[str]) -> models.Order:
    try:
        db_order = models.Order(
            table_id=table_id,
            waiter_id=waiter_id,
            status="pending",
            total_amount=total_amount,
            notes=notes or None,
        )
        db.add(db_order)
        db.commit()
        db.refresh(db_order)
        return db_order
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating order: {e}")
        raise HTTPException(status_code=500, detail=f"Error creating order: {e}")


def _insert_order_items(db: Session, order_id: int, items: List[OrderItemCreate]):
    try:
        for item in items:
            db.add(models.OrderItem(
                order_id=order_id,
                menu_item_id=item.menu_item_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                subtotal=item_subtotal(item),
                notes=item.notes,
            ))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Error adding items to order {order_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error adding order items: {e}")


def _insert_payment(db: Session, order_id: int, amount: float, method: str,
                    cashier_id: Optional[int], reference: Optional[str] = None) -> models.Payment:
    try:
        payment = models.Payment(
            order_id=order_id,
            amount=amount,
            payment_method=method,
            transaction_reference=reference,
            cashier_id=cashier_id,
        )
        db.add(payment)
        db.commit()
        db.refresh(payment)
        return payment
    except Exception as e:
        db.rollback()
        logger.error(f"Error recording payment for order {order_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error recording payment: {e}")


def _resolve_table_id(db: Session, order: OrderCreate) -> Optional[int]:
    if not order.items:
        raise HTTPException(status_code=400, detail="Cart is empty")

    if order.order_type == "delivery":
        return None

    if order.table_id is None:
        raise HTTPException(status_code=400, detail="Select a table for dine-in orders")

    table = db.query(models.Table).filter(models.Table.id == order.table_id).first()
    if not table:
        raise HTTPException(status_code=404, detail="Table not found")
    return table.id


def create_order(db: Session, order: OrderCreate, waiter_id: Optional[int]) -> models.Order:
    """
    Staff order: order row, then its items, then the table is marked occupied.

    The table's current status is not checked, so two orders can occupy the
    same table.
    """
    table_id = _resolve_table_id(db, order)

    total_amount = order.total_amount
    if total_amount is None:
        total_amount = sum(item_subtotal(item) for item in order.items)

    db_order = _insert_order(db, table_id, waiter_id, total_amount, order.notes)
    _insert_order_items(db, db_order.id, order.items)

    if table_id is not None:
        _set_table_status(db, table_id, "occupied", raise_on_error=False)

    redis_client.invalidate(ORDERS, AVAILABLE_TABLES)
    logger.info(f"Order {db_order.id} created ({order_type_of(db_order)}, {len(order.items)} items)")
    return db_order


def create_pos_order(db: Session, order: OrderCreate, payment_method: str,
                     cashier_id: Optional[int]) -> models.Order:
    """
    Counter sale: order, items and payment in one go.

    The order is left pending and the table occupied; with a payment row it
    no longer shows up as unpaid.
    """
    table_id = _resolve_table_id(db, order)

    total = sum(item_subtotal(item) for item in order.items)
    total_amount = order.total_amount if order.total_amount is not None else total

    db_order = _insert_order(db, table_id, cashier_id, total_amount, order.notes)
    _insert_order_items(db, db_order.id, order.items)
    _insert_payment(db, db_order.id, total, payment_method, cashier_id)

    if table_id is not None:
        _set_table_status(db, table_id, "occupied", raise_on_error=False)

    redis_client.invalidate(ORDERS, AVAILABLE_TABLES)
    logger.info(f"POS order {db_order.id} created and paid by {payment_method}")
    return db_order


def add_order_item(db: Session, order_id: int, item: OrderItemCreate) -> models.OrderItem:
    """Append one line; the order total is left as it was."""
    get_order_or_404(db, order_id)

    try:
        db_item = models.OrderItem(
            order_id=order_id,
            menu_item_id=item.menu_item_id,
            quantity=item.quantity,
            unit_price=item.unit_price,
            subtotal=item.quantity * item.unit_price,
            notes=item.notes,
        )
        db.add(db_item)
        db.commit()
        db.refresh(db_item)
    except Exception as e:
        db.rollback()
        logger.error(f"Error adding item to order {order_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error adding order item: {e}")

    redis_client.invalidate(ORDERS)
    return db_item


def update_order(db: Session, order_id: int, notes: Optional[str] = None,
                 total_amount: Optional[float] = None) -> models.Order:
    db_order = get_order_or_404(db, order_id)

    try:
        if notes is not None:
            db_order.notes = notes
        if total_amount is not None:
            db_order.total_amount = total_amount
        db.commit()
        db.refresh(db_order)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating order {order_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error updating order: {e}")

    redis_client.invalidate(ORDERS)
    return db_order


def update_order_status(db: Session, order_id: int, status: str) -> models.Order:
    """
    General status editor. Any status may follow any other.

    Cancelling frees the order's table. Completing does not: the table stays
    occupied until a payment is captured.
    """
    db_order = get_order_or_404(db, order_id)

    try:
        db_order.status = status
        if status == "completed":
            db_order.completed_at = utcnow()
        db.commit()
        db.refresh(db_order)
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating status of order {order_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error updating order: {e}")

    if status == "cancelled" and db_order.table_id is not None:
        _set_table_status(db, db_order.table_id, "available", raise_on_error=True)

    redis_client.invalidate(ORDERS, TABLES)
    logger.info(f"Order {order_id} moved to '{status}'")
    return db_order


def capture_payment(db: Session, order_id: int, payment_method: str,
                    cashier_id: Optional[int], transaction_reference: Optional[str] = None) -> models.Payment:
    """
    Record a payment for the order's total, complete the order, free its table.

    The order is not checked for an existing payment.
    """
    db_order = get_order_or_404(db, order_id)
    table_id = db_order.table_id

    payment = _insert_payment(db, order_id, db_order.total_amount or 0, payment_method,
                              cashier_id, transaction_reference)

    try:
        db_order.status = "completed"
        db_order.completed_at = utcnow()
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Payment {payment.id} recorded but order {order_id} was not completed: {e}")
        raise HTTPException(status_code=500, detail=f"Error completing order: {e}")

    if table_id is not None:
        _set_table_status(db, table_id, "available", raise_on_error=False)

    redis_client.invalidate(UNPAID_ORDERS, ORDERS, TABLES)
    logger.info(f"Order {order_id} paid by {payment_method} ({payment.amount:.2f})")
    return payment


def create_customer_order(db: Session, table_number: str, items: List[OrderItemCreate]) -> models.Order:
    """
    Self-order from the table's QR menu. The table must still be available
    when the order is confirmed.
    """
    if not items:
        raise HTTPException(status_code=400, detail="Cart is empty")
    if not table_number or not table_number.strip():
        raise HTTPException(status_code=400, detail="Select a table")

    table = (
        db.query(models.Table)
        .filter(models.Table.table_number == table_number.strip(), models.Table.status == "available")
        .first()
    )
    if not table:
        raise HTTPException(status_code=409, detail="Table is not available or does not exist")

    # Client-side subtotals are ignored here.
    priced = [item.copy(update={"subtotal": item.unit_price * item.quantity}) for item in items]
    total_amount = sum(item.subtotal for item in priced)

    db_order = _insert_order(db, table.id, None, total_amount, None)
    _insert_order_items(db, db_order.id, priced)
    _set_table_status(db, table.id, "occupied", raise_on_error=False)

    logger.info(f"Customer order {db_order.id} placed at table {table.table_number}")
    return db_order


def build_invoice(db: Session, order_id: int) -> InvoiceResponse:
    order = _order_query(db).filter(models.Order.id == order_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    response = build_order_response(order)
    return InvoiceResponse(
        order_id=order.id,
        barcode=generate_order_barcode(order.id),
        order_type=response.order_type,
        table_number=response.table_number,
        hall_name=response.hall_name,
        waiter_name=response.waiter_name,
        status=order.status,
        created_at=order.created_at,
        completed_at=order.completed_at,
        lines=[
            InvoiceLine(name=i.menu_item_name, quantity=i.quantity, unit_price=i.unit_price, subtotal=i.subtotal)
            for i in response.items
        ],
        total_amount=response.total_amount,
        payment_methods=[p.payment_method for p in response.payments],
    )

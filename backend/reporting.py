"""
Read-side aggregation over completed orders.

Nothing here is cached or stored: every call re-runs its queries. Cost is
always taken from the menu item's *current* cost, so editing a cost changes
the profit reported for orders completed before the edit.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from fastapi import HTTPException
from sqlalchemy.orm import Session

import models
from config import LOW_STOCK_THRESHOLD
from database import utcnow

logger = logging.getLogger(__name__)

RANGES = ("today", "week", "month", "year")
TOP_ITEMS_LIMIT = 5
RECENT_ORDERS_LIMIT = 15

Period = Tuple[datetime, datetime]


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def period_bounds(range_name: str, now: Optional[datetime] = None) -> Period:
    """Half-open [start, end) window for a named dashboard range."""
    now = now or utcnow()
    today = now.date()

    if range_name == "today":
        start = _day_start(today)
        end = start + timedelta(days=1)
    elif range_name == "week":
        start = _day_start(today - timedelta(days=7))
        end = _day_start(today) + timedelta(days=1)
    elif range_name == "month":
        start = _day_start(today.replace(day=1))
        if today.month == 12:
            end = _day_start(date(today.year + 1, 1, 1))
        else:
            end = _day_start(date(today.year, today.month + 1, 1))
    elif range_name == "year":
        start = _day_start(date(today.year, 1, 1))
        end = _day_start(date(today.year + 1, 1, 1))
    else:
        raise HTTPException(status_code=400, detail=f"Range must be one of: {', '.join(RANGES)}")

    return start, end


def resolve_period(range_name: Optional[str], start: Optional[date], end: Optional[date]) -> Period:
    """Explicit dates win over a named range; ``end`` is inclusive by day."""
    if start or end:
        if not (start and end):
            raise HTTPException(status_code=400, detail="Both start and end dates are required")
        if end < start:
            raise HTTPException(status_code=400, detail="End date is before start date")
        return _day_start(start), _day_start(end) + timedelta(days=1)
    return period_bounds(range_name or "today")


def completed_orders(db: Session, start: datetime, end: datetime) -> List[models.Order]:
    return (
        db.query(models.Order)
        .filter(
            models.Order.status == "completed",
            models.Order.created_at >= start,
            models.Order.created_at < end,
        )
        .order_by(models.Order.created_at.desc())
        .all()
    )


def _item_rows(db: Session, order_ids: List[int]):
    """(OrderItem, MenuItem or None) pairs for the given orders."""
    if not order_ids:
        return []
    return (
        db.query(models.OrderItem, models.MenuItem)
        .outerjoin(models.MenuItem, models.MenuItem.id == models.OrderItem.menu_item_id)
        .filter(models.OrderItem.order_id.in_(order_ids))
        .order_by(models.OrderItem.id)
        .all()
    )


def profit_margin(revenue: float, profit: float) -> float:
    if revenue <= 0:
        return 0
    return round(profit / revenue * 100, 1)


def period_financials(db: Session, start: datetime, end: datetime) -> Dict:
    orders = completed_orders(db, start, end)
    rows = _item_rows(db, [o.id for o in orders])

    revenue = sum(item.subtotal or 0 for item, _ in rows)
    cost = sum(item.quantity * ((menu_item.cost or 0) if menu_item else 0) for item, menu_item in rows)
    profit = revenue - cost

    return {
        "revenue": round(revenue, 2),
        "cost": round(cost, 2),
        "profit": round(profit, 2),
        "profit_margin": profit_margin(revenue, profit),
        "completed_orders": len(orders),
    }


def top_items(db: Session, start: datetime, end: datetime, limit: int = TOP_ITEMS_LIMIT) -> List[Dict]:
    """Best sellers by quantity; revenue and cost use current menu prices."""
    orders = completed_orders(db, start, end)
    sales: Dict[int, Dict] = {}

    for item, menu_item in _item_rows(db, [o.id for o in orders]):
        entry = sales.setdefault(item.menu_item_id, {
            "menu_item_id": item.menu_item_id,
            "name": menu_item.name if menu_item else "Unknown",
            "quantity": 0,
            "revenue": 0.0,
            "cost": 0.0,
        })
        entry["quantity"] += item.quantity
        entry["revenue"] += item.quantity * (menu_item.price if menu_item else 0)
        entry["cost"] += item.quantity * ((menu_item.cost or 0) if menu_item else 0)

    ranked = sorted(sales.values(), key=lambda e: e["quantity"], reverse=True)[:limit]
    for entry in ranked:
        entry["revenue"] = round(entry["revenue"], 2)
        entry["cost"] = round(entry["cost"], 2)
        entry["profit"] = round(entry["revenue"] - entry["cost"], 2)
    return ranked


def period_report(db: Session, start: datetime, end: datetime) -> Dict:
    report = period_financials(db, start, end)
    report.update(start=start, end=end, top_items=top_items(db, start, end))
    return report


def dashboard_stats(db: Session, range_name: str, now: Optional[datetime] = None) -> Dict:
    start, end = period_bounds(range_name, now)

    total_tables = db.query(models.Table).count()
    available_tables = db.query(models.Table).filter(models.Table.status == "available").count()
    total_items = db.query(models.MenuItem).count()
    active_orders = db.query(models.Order).filter(models.Order.status == "pending").count()
    low_stock = db.query(models.MenuItem).filter(models.MenuItem.stock_quantity <= LOW_STOCK_THRESHOLD).count()

    financials = period_financials(db, start, end)

    return {
        "range": range_name,
        "available_tables": available_tables,
        "total_tables": total_tables,
        "total_items": total_items,
        "active_orders": active_orders,
        "low_stock": low_stock,
        "completed_orders": financials["completed_orders"],
        "revenue": financials["revenue"],
        "total_cost": financials["cost"],
        "profit": financials["profit"],
        "profit_margin": financials["profit_margin"],
    }


def recent_orders(db: Session, limit: int = RECENT_ORDERS_LIMIT) -> List[Dict]:
    orders = (
        db.query(models.Order)
        .order_by(models.Order.created_at.desc(), models.Order.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": o.id,
            "created_at": o.created_at,
            "status": o.status,
            "total_amount": o.total_amount or 0,
            "table_number": o.table.table_number if o.table else None,
        }
        for o in orders
    ]


# ---------- export rows ----------

def summary_rows(db: Session, start: datetime, end: datetime, label: str) -> List[Dict]:
    financials = period_financials(db, start, end)
    return [{
        "Period": label,
        "Revenue": financials["revenue"],
        "Cost": financials["cost"],
        "Profit": financials["profit"],
        "Profit Margin %": financials["profit_margin"],
        "Completed Orders": financials["completed_orders"],
    }]


def daily_breakdown_rows(db: Session, start: datetime, end: datetime) -> List[Dict]:
    """One row per calendar day in [start, end), each from its own query."""
    rows = []
    day = start.date()
    last_day = (end - timedelta(microseconds=1)).date()

    while day <= last_day:
        day_start = _day_start(day)
        financials = period_financials(db, day_start, day_start + timedelta(days=1))
        rows.append({
            "Date": day.isoformat(),
            "Day": day.strftime("%A"),
            "Revenue": f"{financials['revenue']:.2f}",
            "Cost": f"{financials['cost']:.2f}",
            "Profit": f"{financials['profit']:.2f}",
            "Profit Margin %": f"{financials['profit_margin']:.1f}",
            "Orders": financials["completed_orders"],
        })
        day += timedelta(days=1)

    logger.info(f"Built daily breakdown for {len(rows)} days")
    return rows


def completed_order_rows(db: Session, start: datetime, end: datetime) -> List[Dict]:
    rows = []
    for order in completed_orders(db, start, end):
        items = _item_rows(db, [order.id])
        items_text = ", ".join(
            f"{menu_item.name if menu_item else 'Unknown'} ({item.quantity}×{item.unit_price:g})"
            for item, menu_item in items
        )
        cost = sum(item.quantity * ((menu_item.cost or 0) if menu_item else 0) for item, menu_item in items)
        revenue = order.total_amount or 0
        table = order.table

        rows.append({
            "Order": order.id,
            "Date": order.created_at.strftime("%Y-%m-%d %H:%M") if order.created_at else "",
            "Type": "Dine-in" if order.table_id is not None else "Delivery",
            "Table": table.table_number if table else "-",
            "Hall": table.hall.name if table and table.hall else "-",
            "Items": items_text,
            "Revenue": f"{revenue:.2f}",
            "Cost": f"{cost:.2f}",
            "Profit": f"{revenue - cost:.2f}",
        })
    return rows

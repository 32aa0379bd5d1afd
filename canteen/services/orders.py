"""
Order workflow: checkout, item replacement, cancellation, status changes and
history projections.

Every mutating call is one unit of work on the given session: it commits once
at the end and rolls back everything on any error, so a failed checkout or
edit never leaves partial rows behind. Line prices are frozen when the lines
are written; totals are always recomputed from them.
"""

import calendar
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import delete, select
from sqlalchemy.orm import selectinload

from ..errors import (
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    StatusLockedError,
    ValidationError,
)
from ..models import ORDER_STATUSES, MenuItem, Order, OrderLine, Stall
from .pricing import price_for

NEXT_STATUS = {
    "unconfirmed": "cooking",
    "cooking": "delivering",
    "delivering": "arrived",
}


def money(value):
    return float(value)


def normalize_items(items):
    """Validate the ``[{"menu_id": .., "quantity": ..}]`` payload shape."""
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    normalized = []
    for entry in items:
        if not isinstance(entry, dict):
            raise ValidationError("Each item must be an object with menu_id and quantity")
        menu_id = entry.get("menu_id")
        quantity = entry.get("quantity")
        if isinstance(menu_id, bool) or isinstance(quantity, bool):
            raise ValidationError("menu_id and quantity must be integers")
        try:
            menu_id = int(menu_id)
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("menu_id and quantity must be integers")
        if quantity < 1:
            raise ValidationError("quantity must be at least 1")
        normalized.append((menu_id, quantity))
    return normalized


def _price_lines(session, order, items, now):
    total = Decimal("0")
    lines = []
    for menu_id, quantity in items:
        menu_item = session.get(MenuItem, menu_id)
        if not menu_item or not menu_item.is_available:
            raise ValidationError(f"Menu item {menu_id} not found")
        if menu_item.stall_id != order.stall_id:
            raise ValidationError(
                f"Menu item {menu_item.name} does not belong to stall {order.stall_id}"
            )

        unit_price, discount = price_for(session, menu_item, now)
        total += unit_price * quantity
        lines.append(
            OrderLine(
                order_id=order.id,
                menu_item_id=menu_item.id,
                quantity=quantity,
                unit_price=unit_price,
            )
        )
    return lines, total


def _line_detail(line):
    return {
        "menu_id": line.menu_item_id,
        "quantity": line.quantity,
        "unit_price": money(line.unit_price),
        "subtotal": money(line.unit_price * line.quantity),
    }


def _load_order_for_update(session, order_id):
    # status is re-read inside the unit of work
    return session.scalar(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _check_owner_can_modify(order, student_id):
    if not order:
        raise NotFoundError("Order not found")
    if order.student_id != student_id:
        raise ForbiddenError("This order does not belong to you")
    if order.status != "unconfirmed":
        raise StatusLockedError(
            "Order is already being processed and can no longer be changed"
        )


def create_order(session, student_id, stall_id, items, now=None):
    now = now or datetime.now()
    items = normalize_items(items)

    try:
        if not session.get(Stall, stall_id):
            raise NotFoundError(f"Stall {stall_id} not found")

        order = Order(
            student_id=student_id,
            stall_id=stall_id,
            created_at=now,
            status="unconfirmed",
        )
        session.add(order)
        session.flush()

        lines, total = _price_lines(session, order, items, now)
        session.add_all(lines)
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        f"Order {order.id} created by student {student_id} at stall {stall_id}"
    )
    return {
        "order_id": order.id,
        "stall_id": stall_id,
        "status": order.status,
        "created_at": order.created_at.isoformat(),
        "total": money(total),
        "items": [_line_detail(line) for line in lines],
    }


def replace_order_items(session, order_id, student_id, items, now=None):
    now = now or datetime.now()
    items = normalize_items(items)

    try:
        order = _load_order_for_update(session, order_id)
        _check_owner_can_modify(order, student_id)

        session.execute(delete(OrderLine).where(OrderLine.order_id == order.id))
        lines, total = _price_lines(session, order, items, now)
        session.add_all(lines)
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(f"Order {order_id} items replaced by student {student_id}")
    return {
        "order_id": order.id,
        "stall_id": order.stall_id,
        "status": order.status,
        "total": money(total),
        "items": [_line_detail(line) for line in lines],
    }


def cancel_order(session, order_id, student_id):
    try:
        order = _load_order_for_update(session, order_id)
        _check_owner_can_modify(order, student_id)

        session.execute(delete(OrderLine).where(OrderLine.order_id == order.id))
        session.delete(order)
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(f"Order {order_id} cancelled by student {student_id}")


def advance_status(session, order_id, new_status, principal):
    """
    Move an order one step along unconfirmed -> cooking -> delivering -> arrived.
    Staff may only touch orders of their own stall; admins are unrestricted.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(ORDER_STATUSES)}"
        )

    try:
        order = _load_order_for_update(session, order_id)
        if not order:
            raise NotFoundError("Order not found")

        if not principal.is_admin and order.stall_id != principal.stall_id:
            raise ForbiddenError("This order belongs to another stall")

        if NEXT_STATUS.get(order.status) != new_status:
            raise InvalidTransitionError(
                f"Cannot change status from {order.status} to {new_status}"
            )

        previous = order.status
        order.status = new_status
        session.commit()
    except Exception:
        session.rollback()
        raise

    current_app.logger.info(
        f"Order {order_id} status {previous} -> {new_status} by user {principal.user_id}"
    )
    return serialize_order(order)


def month_window(month=None, year=None, today=None):
    """
    ``[first instant, last instant]`` of the given month in local time, or
    ``None`` when no month filter was asked for.
    """
    if month is None:
        return None
    today = today or datetime.now()
    try:
        month = int(month)
        year = int(year) if year is not None else today.year
    except (TypeError, ValueError):
        raise ValidationError("month and year must be integers")
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")

    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day, 23, 59, 59, 999999)
    return start, end


def get_order(session, order_id):
    order = session.scalar(
        select(Order)
        .where(Order.id == order_id)
        .options(
            selectinload(Order.lines).selectinload(OrderLine.menu_item),
            selectinload(Order.student),
            selectinload(Order.stall),
        )
    )
    if not order:
        raise NotFoundError("Order not found")
    return order


def check_can_view(order, principal):
    if principal.is_admin:
        return
    if principal.role == "student" and order.student_id == principal.student_id:
        return
    if principal.role == "staff" and order.stall_id == principal.stall_id:
        return
    raise ForbiddenError("You are not allowed to view this order")


def serialize_order(order):
    return {
        "order_id": order.id,
        "student_id": order.student_id,
        "stall_id": order.stall_id,
        "stall_name": order.stall.name if order.stall else None,
        "status": order.status,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "total": money(order.total),
        "items": [
            {
                "menu_id": line.menu_item_id,
                "menu_name": line.menu_item.name if line.menu_item else None,
                "quantity": line.quantity,
                "unit_price": money(line.unit_price),
                "subtotal": money(line.subtotal),
            }
            for line in order.lines
        ],
    }


def _history_query(window):
    stmt = select(Order).options(
        selectinload(Order.lines).selectinload(OrderLine.menu_item),
        selectinload(Order.student),
        selectinload(Order.stall),
    )
    if window:
        stmt = stmt.where(Order.created_at >= window[0], Order.created_at <= window[1])
    return stmt.order_by(Order.created_at.desc(), Order.id.desc())


def student_history(session, student_id, month=None, year=None):
    window = month_window(month, year)
    orders = session.scalars(
        _history_query(window).where(Order.student_id == student_id)
    ).all()

    history = []
    for order in orders:
        history.append(
            {
                "order_id": order.id,
                "created_at": order.created_at.isoformat(),
                "status": order.status,
                "stall_name": order.stall.name if order.stall else None,
                "total": money(order.total),
                "items": [
                    {
                        "menu_name": line.menu_item.name,
                        "photo_url": line.menu_item.photo_url,
                        "quantity": line.quantity,
                        "unit_price": money(line.unit_price),
                        "subtotal": money(line.subtotal),
                    }
                    for line in order.lines
                ],
            }
        )
    return history


def stall_history(session, stall_id, month=None, year=None):
    """
    Orders placed at one stall plus a revenue summary. ``total_revenue`` counts
    every returned order whatever its status; ``finalized_revenue`` only
    counts orders that have arrived.
    """
    window = month_window(month, year)
    orders = session.scalars(
        _history_query(window).where(Order.stall_id == stall_id)
    ).all()

    total_revenue = Decimal("0")
    finalized_revenue = Decimal("0")
    history = []
    for order in orders:
        order_total = order.total
        total_revenue += order_total
        if order.status == "arrived":
            finalized_revenue += order_total

        history.append(
            {
                "order_id": order.id,
                "created_at": order.created_at.isoformat(),
                "student_name": order.student.name if order.student else None,
                "student_number": order.student.student_number if order.student else None,
                "status": order.status,
                "total": money(order_total),
                "items": [
                    {
                        "menu_name": line.menu_item.name,
                        "quantity": line.quantity,
                        "unit_price": money(line.unit_price),
                    }
                    for line in order.lines
                ],
            }
        )

    summary = {
        "order_count": len(history),
        "total_revenue": money(total_revenue),
        "finalized_revenue": money(finalized_revenue),
    }
    return history, summary

"""
Discount resolution shared by checkout, order edits and the active-discount listing.

A discount applies to an item when ``starts_at <= now <= ends_at``. When several
active discounts are attached to the same item the highest percentage wins,
and equal percentages fall back to the lowest discount id.
"""

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select

from ..models import Discount, MenuItem, menu_item_discount

CENT = Decimal("0.01")


def to_money(value):
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def discounted_price(price, percentage):
    price = Decimal(str(price))
    cut = price * Decimal(str(percentage)) / Decimal(100)
    return to_money(price - cut)


def pick_discount(discounts, now):
    active = [d for d in discounts if d.is_active_at(now)]
    if not active:
        return None
    return sorted(active, key=lambda d: (-Decimal(str(d.percentage)), d.id))[0]


def active_discount_for(session, menu_item_id, now):
    return session.scalar(
        select(Discount)
        .join(menu_item_discount, menu_item_discount.c.discount_id == Discount.id)
        .where(
            menu_item_discount.c.menu_item_id == menu_item_id,
            Discount.starts_at <= now,
            Discount.ends_at >= now,
        )
        .order_by(Discount.percentage.desc(), Discount.id.asc())
        .limit(1)
    )


def price_for(session, menu_item, now):
    """Return ``(final unit price, applied discount or None)`` for ``menu_item`` at ``now``."""
    discount = active_discount_for(session, menu_item.id, now)
    if discount is None:
        return to_money(menu_item.price), None
    return discounted_price(menu_item.price, discount.percentage), discount


def active_discount_rows(session, now):
    """Every (menu item, discount) pair whose discount window contains ``now``."""
    stmt = (
        select(MenuItem, Discount)
        .join(menu_item_discount, menu_item_discount.c.menu_item_id == MenuItem.id)
        .join(Discount, Discount.id == menu_item_discount.c.discount_id)
        .where(
            Discount.starts_at <= now,
            Discount.ends_at >= now,
            MenuItem.is_available.is_(True),
        )
        .order_by(MenuItem.id.asc(), Discount.percentage.desc(), Discount.id.asc())
    )
    return session.execute(stmt).all()

from decimal import Decimal, InvalidOperation

from ..errors import ForbiddenError, NotFoundError, ValidationError
from ..models import MENU_CATEGORIES, MenuItem, Stall
from .pricing import discounted_price, pick_discount, to_money


def parse_price(value):
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("price must be a number")
    if not price.is_finite() or price <= 0:
        raise ValidationError("price must be greater than 0")
    return to_money(price)


def parse_category(value):
    category = (value or "").strip().lower()
    if category not in MENU_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(MENU_CATEGORIES)}")
    return category


def resolve_target_stall(session, principal, requested_stall_id):
    """Staff always work on their own stall; admins must name one."""
    if principal.role == "staff":
        return principal.stall_id

    if requested_stall_id in (None, ""):
        raise ValidationError("stall_id is required for admin")
    try:
        stall_id = int(requested_stall_id)
    except (TypeError, ValueError):
        raise ValidationError("stall_id must be an integer")
    if not session.get(Stall, stall_id):
        raise NotFoundError(f"Stall {stall_id} not found")
    return stall_id


def check_item_owner(menu_item, principal):
    if principal.role == "staff" and menu_item.stall_id != principal.stall_id:
        raise ForbiddenError("You do not have access to this menu item")


def get_menu_item(session, menu_id):
    menu_item = session.get(MenuItem, menu_id)
    if not menu_item:
        raise NotFoundError(f"Menu item {menu_id} not found")
    return menu_item


def serialize_menu_item(menu_item, now=None):
    data = {
        "id": menu_item.id,
        "name": menu_item.name,
        "price": float(menu_item.price),
        "category": menu_item.category,
        "description": menu_item.description,
        "photo_url": menu_item.photo_url,
        "is_available": bool(menu_item.is_available),
        "stall_id": menu_item.stall_id,
        "stall_name": menu_item.stall.name if menu_item.stall else None,
    }
    if now is not None:
        discount = pick_discount(menu_item.discounts, now)
        data["discount"] = (
            {
                "id": discount.id,
                "name": discount.name,
                "percentage": float(discount.percentage),
            }
            if discount
            else None
        )
        data["current_price"] = float(
            discounted_price(menu_item.price, discount.percentage)
            if discount
            else to_money(menu_item.price)
        )
    return data

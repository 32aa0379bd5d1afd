from datetime import datetime

from flask import Blueprint, g, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..errors import CanteenError
from ..extensions import db
from ..models import MenuItem
from ..services.catalog import (
    check_item_owner,
    get_menu_item,
    parse_category,
    parse_price,
    resolve_target_stall,
    serialize_menu_item,
)
from ..utils import s3_utils
from ..utils.auth import require_roles
from ..utils.http import (
    domain_error,
    error_response,
    integrity_error,
    internal_error,
    missing_fields,
    request_data,
    to_bool,
)

menu_bp = Blueprint("menu", __name__, url_prefix="/api/menu")


@menu_bp.route("", methods=["GET"])
def list_menu():
    """
    Browse the menu
    ---
    tags:
      - Menu
    parameters:
      - in: query
        name: stall_id
        type: integer
        required: false
      - in: query
        name: category
        type: string
        enum: [food, drink]
        required: false
    responses:
      200:
        description: Available menu items with their current price
    """
    try:
        stmt = (
            select(MenuItem)
            .options(selectinload(MenuItem.stall), selectinload(MenuItem.discounts))
            .where(MenuItem.is_available.is_(True))
        )

        stall_id = request.args.get("stall_id", type=int)
        if stall_id is not None:
            stmt = stmt.where(MenuItem.stall_id == stall_id)

        category = request.args.get("category")
        if category:
            stmt = stmt.where(MenuItem.category == parse_category(category))

        items = db.session.scalars(stmt.order_by(MenuItem.stall_id, MenuItem.name)).all()
        now = datetime.now()

        return (
            jsonify(
                {
                    "status": "success",
                    "items_found": len(items),
                    "data": [serialize_menu_item(m, now) for m in items],
                }
            ),
            200,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Failed to list menu")


@menu_bp.route("/<int:menu_id>", methods=["GET"])
def get_menu(menu_id):
    try:
        menu_item = get_menu_item(db.session, menu_id)
        return (
            jsonify(
                {"status": "success", "data": serialize_menu_item(menu_item, datetime.now())}
            ),
            200,
        )
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to fetch menu item {menu_id}")


@menu_bp.route("", methods=["POST"])
@require_roles("admin", "staff")
def create_menu():
    """
    Add a menu item
    ---
    tags:
      - Menu
    security:
      - Bearer: []
    consumes:
      - multipart/form-data
    parameters:
      - in: formData
        name: name
        type: string
        required: true
      - in: formData
        name: price
        type: number
        required: true
      - in: formData
        name: category
        type: string
        enum: [food, drink]
        required: true
      - in: formData
        name: description
        type: string
      - in: formData
        name: stall_id
        type: integer
        description: Required for admin, ignored for staff
      - in: formData
        name: photo
        type: file
        required: true
    responses:
      201:
        description: Menu item created
      400:
        description: Missing or invalid fields
      404:
        description: Stall not found
    """
    try:
        data = request_data()
        missing = missing_fields(data, ["name", "price", "category"])
        if missing:
            return error_response(f"Missing required fields ({', '.join(missing)})", 400)

        price = parse_price(data["price"])
        category = parse_category(data["category"])
        stall_id = resolve_target_stall(db.session, g.principal, data.get("stall_id"))

        photo = request.files.get("photo")
        if photo:
            photo_url = s3_utils.upload_photo(photo, "menu")
        elif data.get("photo_url"):
            photo_url = data["photo_url"]
        else:
            return error_response("Menu photo is required", 400)

        menu_item = MenuItem(
            name=data["name"],
            price=price,
            category=category,
            description=data.get("description"),
            photo_url=photo_url,
            is_available=True,
            stall_id=stall_id,
        )
        db.session.add(menu_item)
        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Menu item created",
                    "data": serialize_menu_item(menu_item),
                }
            ),
            201,
        )

    except CanteenError as e:
        return domain_error(e)
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, "Failed to create menu item")


@menu_bp.route("/<int:menu_id>", methods=["PUT"])
@require_roles("admin", "staff")
def update_menu(menu_id):
    try:
        principal = g.principal
        data = request_data()

        menu_item = get_menu_item(db.session, menu_id)
        check_item_owner(menu_item, principal)

        updated_fields = []

        if data.get("name"):
            menu_item.name = data["name"]
            updated_fields.append("name")

        if data.get("price") not in (None, ""):
            menu_item.price = parse_price(data["price"])
            updated_fields.append("price")

        if data.get("category"):
            menu_item.category = parse_category(data["category"])
            updated_fields.append("category")

        if "description" in data:
            menu_item.description = data["description"]
            updated_fields.append("description")

        if "is_available" in data:
            menu_item.is_available = to_bool(data["is_available"])
            updated_fields.append("is_available")

        if data.get("stall_id") not in (None, ""):
            if not principal.is_admin:
                return error_response("Only an admin can move a menu item to another stall", 403)
            menu_item.stall_id = resolve_target_stall(db.session, principal, data["stall_id"])
            updated_fields.append("stall_id")

        photo = request.files.get("photo")
        if photo:
            menu_item.photo_url = s3_utils.upload_photo(photo, "menu")
            updated_fields.append("photo_url")
        elif data.get("photo_url"):
            menu_item.photo_url = data["photo_url"]
            updated_fields.append("photo_url")

        if not updated_fields:
            db.session.rollback()
            return error_response("No valid update fields provided", 400)

        db.session.commit()
        db.session.refresh(menu_item)

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Menu item updated",
                    "data": serialize_menu_item(menu_item),
                    "updated_fields": updated_fields,
                }
            ),
            200,
        )

    except CanteenError as e:
        return domain_error(e)
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to update menu item {menu_id}")


@menu_bp.route("/<int:menu_id>", methods=["DELETE"])
@require_roles("admin", "staff")
def delete_menu(menu_id):
    """Retire the item. Past order lines keep referencing it."""
    try:
        menu_item = get_menu_item(db.session, menu_id)
        check_item_owner(menu_item, g.principal)

        menu_item.retire()
        db.session.commit()

        return jsonify({"status": "success", "message": "Menu item removed"}), 200
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to remove menu item {menu_id}")

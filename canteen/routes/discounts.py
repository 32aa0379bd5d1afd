from datetime import datetime
from decimal import Decimal, InvalidOperation

from flask import Blueprint, g, jsonify
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..errors import CanteenError, ValidationError
from ..extensions import db
from ..models import Discount, MenuItem
from ..services.catalog import check_item_owner
from ..services.pricing import active_discount_rows, discounted_price, to_money
from ..utils.auth import require_roles
from ..utils.http import (
    domain_error,
    error_response,
    integrity_error,
    internal_error,
    missing_fields,
    request_data,
)

discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


def _parse_percentage(value):
    try:
        percentage = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("percentage must be a number")
    if not percentage.is_finite() or percentage <= 0 or percentage > 100:
        raise ValidationError("percentage must be greater than 0 and at most 100")
    return to_money(percentage)


def _parse_moment(value, field):
    if isinstance(value, datetime):
        return value
    try:
        moment = datetime.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be an ISO 8601 date/time")
    if moment.tzinfo is not None:
        # stored as naive local time
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def serialize_discount(discount):
    return {
        "id": discount.id,
        "name": discount.name,
        "percentage": float(discount.percentage),
        "starts_at": discount.starts_at.isoformat(),
        "ends_at": discount.ends_at.isoformat(),
        "menu_ids": sorted(m.id for m in discount.menu_items),
    }


@discounts_bp.route("/active", methods=["GET"])
def list_active_discounts():
    """
    Discounts running right now
    ---
    tags:
      - Discounts
    responses:
      200:
        description: Every menu item with an active discount, original and discounted price
    """
    try:
        rows = active_discount_rows(db.session, datetime.now())
        data = [
            {
                "menu_id": menu_item.id,
                "menu_name": menu_item.name,
                "stall_id": menu_item.stall_id,
                "discount_id": discount.id,
                "discount_name": discount.name,
                "percentage": float(discount.percentage),
                "original_price": float(menu_item.price),
                "discounted_price": float(
                    discounted_price(menu_item.price, discount.percentage)
                ),
                "ends_at": discount.ends_at.isoformat(),
            }
            for menu_item, discount in rows
        ]
        return jsonify({"status": "success", "data": data}), 200
    except Exception as e:
        return internal_error(e, "Failed to list active discounts")


@discounts_bp.route("", methods=["GET"])
@require_roles("admin", "staff")
def list_discounts():
    try:
        discounts = db.session.scalars(
            select(Discount)
            .options(selectinload(Discount.menu_items))
            .order_by(Discount.starts_at.desc(), Discount.id.asc())
        ).all()
        return (
            jsonify(
                {
                    "status": "success",
                    "discounts_found": len(discounts),
                    "data": [serialize_discount(d) for d in discounts],
                }
            ),
            200,
        )
    except Exception as e:
        return internal_error(e, "Failed to list discounts")


@discounts_bp.route("/<int:discount_id>", methods=["GET"])
@require_roles("admin", "staff")
def get_discount(discount_id):
    discount = db.session.get(Discount, discount_id)
    if not discount:
        return error_response("Discount not found", 404)
    return jsonify({"status": "success", "data": serialize_discount(discount)}), 200


@discounts_bp.route("", methods=["POST"])
@require_roles("admin", "staff")
def create_discount():
    """
    Create a discount window
    ---
    tags:
      - Discounts
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [name, percentage, starts_at, ends_at]
          properties:
            name:
              type: string
            percentage:
              type: number
              example: 20
            starts_at:
              type: string
              example: "2026-01-01T00:00:00"
            ends_at:
              type: string
              example: "2026-01-31T23:59:59"
    responses:
      201:
        description: Discount created
      400:
        description: Invalid percentage or window
    """
    try:
        data = request_data()
        missing = missing_fields(data, ["name", "percentage", "starts_at", "ends_at"])
        if missing:
            return error_response(f"Missing required fields ({', '.join(missing)})", 400)

        percentage = _parse_percentage(data["percentage"])
        starts_at = _parse_moment(data["starts_at"], "starts_at")
        ends_at = _parse_moment(data["ends_at"], "ends_at")
        if ends_at < starts_at:
            return error_response("ends_at must not be before starts_at", 400)

        discount = Discount(
            name=data["name"],
            percentage=percentage,
            starts_at=starts_at,
            ends_at=ends_at,
        )
        db.session.add(discount)
        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Discount created",
                    "data": serialize_discount(discount),
                }
            ),
            201,
        )
    except CanteenError as e:
        return domain_error(e)
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, "Failed to create discount")


@discounts_bp.route("/<int:discount_id>", methods=["PUT"])
@require_roles("admin", "staff")
def update_discount(discount_id):
    try:
        discount = db.session.get(Discount, discount_id)
        if not discount:
            return error_response("Discount not found", 404)

        data = request_data()
        updated_fields = []

        if data.get("name"):
            discount.name = data["name"]
            updated_fields.append("name")
        if data.get("percentage") not in (None, ""):
            discount.percentage = _parse_percentage(data["percentage"])
            updated_fields.append("percentage")
        if data.get("starts_at"):
            discount.starts_at = _parse_moment(data["starts_at"], "starts_at")
            updated_fields.append("starts_at")
        if data.get("ends_at"):
            discount.ends_at = _parse_moment(data["ends_at"], "ends_at")
            updated_fields.append("ends_at")

        if not updated_fields:
            db.session.rollback()
            return error_response("No valid update fields provided", 400)

        # one side may come from the stored row
        if discount.ends_at < discount.starts_at:
            db.session.rollback()
            return error_response("ends_at must not be before starts_at", 400)

        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Discount updated",
                    "data": serialize_discount(discount),
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
        return internal_error(e, f"Failed to update discount {discount_id}")


@discounts_bp.route("/<int:discount_id>", methods=["DELETE"])
@require_roles("admin", "staff")
def delete_discount(discount_id):
    try:
        discount = db.session.get(Discount, discount_id)
        if not discount:
            return error_response("Discount not found", 404)

        discount.menu_items.clear()
        db.session.flush()
        db.session.delete(discount)
        db.session.commit()

        return jsonify({"status": "success", "message": "Discount deleted"}), 200
    except Exception as e:
        return internal_error(e, f"Failed to delete discount {discount_id}")


@discounts_bp.route("/assign", methods=["POST"])
@require_roles("admin", "staff")
def assign_discount():
    """
    Attach a discount to menu items
    ---
    tags:
      - Discounts
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [discount_id, menu_ids]
          properties:
            discount_id:
              type: integer
            menu_ids:
              type: array
              items:
                type: integer
    responses:
      200:
        description: Discount assigned; already linked items are skipped
      403:
        description: Staff tried to touch another stall's item
      404:
        description: Discount or menu item not found
    """
    try:
        data = request_data()
        menu_ids = data.get("menu_ids")
        if data.get("discount_id") in (None, "") or not isinstance(menu_ids, list) or not menu_ids:
            return error_response("discount_id and a non-empty menu_ids list are required", 400)

        try:
            discount_id = int(data["discount_id"])
            menu_ids = [int(m) for m in menu_ids]
        except (TypeError, ValueError):
            return error_response("discount_id and menu_ids must be integers", 400)

        discount = db.session.get(Discount, discount_id)
        if not discount:
            return error_response("Discount not found", 404)

        assigned, skipped = [], []
        for menu_id in menu_ids:
            menu_item = db.session.get(MenuItem, menu_id)
            if not menu_item:
                db.session.rollback()
                return error_response(f"Menu item {menu_id} not found", 404)
            check_item_owner(menu_item, g.principal)

            if menu_item in discount.menu_items:
                skipped.append(menu_id)
            else:
                discount.menu_items.append(menu_item)
                assigned.append(menu_id)

        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Discount assigned",
                    "assigned": assigned,
                    "skipped": skipped,
                }
            ),
            200,
        )
    except CanteenError as e:
        return domain_error(e)
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, "Failed to assign discount")


@discounts_bp.route("/assign/<int:discount_id>/<int:menu_id>", methods=["DELETE"])
@require_roles("admin", "staff")
def unassign_discount(discount_id, menu_id):
    try:
        discount = db.session.get(Discount, discount_id)
        menu_item = db.session.get(MenuItem, menu_id)
        if not discount or not menu_item or menu_item not in discount.menu_items:
            return error_response("Discount is not assigned to this menu item", 404)

        check_item_owner(menu_item, g.principal)

        discount.menu_items.remove(menu_item)
        db.session.commit()

        return jsonify({"status": "success", "message": "Discount removed from menu item"}), 200
    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Failed to remove discount from menu item")

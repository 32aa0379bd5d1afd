from flask import Blueprint, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Account, MenuItem, Order, StaffProfile, Stall
from ..utils.auth import require_roles
from ..utils.http import error_response, integrity_error, internal_error, request_data

stalls_bp = Blueprint("stalls", __name__, url_prefix="/api/stalls")


def serialize_stall(stall):
    active_staff = [s for s in stall.staff if s.account and s.account.is_active]
    return {
        "id": stall.id,
        "name": stall.name,
        "created_at": stall.created_at.isoformat() if stall.created_at else None,
        "menu_count": sum(1 for m in stall.menu_items if m.is_available),
        "staff_count": len(active_staff),
        "staff": [s.name for s in active_staff],
    }


def _stall_name(data):
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    return name.strip()


@stalls_bp.route("", methods=["POST"])
@require_roles("admin")
def create_stall():
    """
    Open a new stall
    ---
    tags:
      - Stalls
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [name]
          properties:
            name:
              type: string
    responses:
      201:
        description: Stall created
      400:
        description: Name missing
    """
    try:
        name = _stall_name(request_data())
        if not name:
            return error_response("Stall name is required", 400)

        stall = Stall(name=name)
        db.session.add(stall)
        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Stall created",
                    "data": {"id": stall.id, "name": stall.name},
                }
            ),
            201,
        )
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, "Failed to create stall")


@stalls_bp.route("", methods=["GET"])
@require_roles("admin")
def list_stalls():
    try:
        stalls = db.session.scalars(
            select(Stall)
            .options(selectinload(Stall.staff), selectinload(Stall.menu_items))
            .order_by(Stall.id.asc())
        ).all()
        return (
            jsonify(
                {
                    "status": "success",
                    "stalls_found": len(stalls),
                    "data": [serialize_stall(s) for s in stalls],
                }
            ),
            200,
        )
    except Exception as e:
        return internal_error(e, "Failed to list stalls")


@stalls_bp.route("/<int:stall_id>", methods=["GET"])
@require_roles("admin")
def get_stall(stall_id):
    stall = db.session.get(Stall, stall_id)
    if not stall:
        return error_response("Stall not found", 404)
    return jsonify({"status": "success", "data": serialize_stall(stall)}), 200


@stalls_bp.route("/<int:stall_id>", methods=["PUT"])
@require_roles("admin")
def update_stall(stall_id):
    try:
        stall = db.session.get(Stall, stall_id)
        if not stall:
            return error_response("Stall not found", 404)

        name = _stall_name(request_data())
        if not name:
            return error_response("Stall name is required", 400)

        stall.name = name
        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Stall updated",
                    "data": {"id": stall.id, "name": stall.name},
                }
            ),
            200,
        )
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to update stall {stall_id}")


@stalls_bp.route("/<int:stall_id>", methods=["DELETE"])
@require_roles("admin")
def delete_stall(stall_id):
    """
    Remove a stall together with its menu. Stalls that already took orders,
    or that still have active staff assigned, are kept. Deactivated staff
    lose their stall link.
    """
    try:
        stall = db.session.get(Stall, stall_id)
        if not stall:
            return error_response("Stall not found", 404)

        order_count = db.session.scalar(
            select(func.count(Order.id)).where(Order.stall_id == stall_id)
        )
        if order_count:
            return error_response(
                "Stall has order history and cannot be deleted",
                409,
                {"order_count": order_count},
            )

        staff_count = db.session.scalar(
            select(func.count(StaffProfile.id))
            .join(Account, Account.id == StaffProfile.account_id)
            .where(StaffProfile.stall_id == stall_id, Account.is_active.is_(True))
        )
        if staff_count:
            return error_response(
                "Stall still has staff assigned; move or remove them first",
                409,
                {"staff_count": staff_count},
            )

        for menu_item in db.session.scalars(
            select(MenuItem).where(MenuItem.stall_id == stall_id)
        ).all():
            menu_item.discounts.clear()
            db.session.delete(menu_item)

        for staff in db.session.scalars(
            select(StaffProfile).where(StaffProfile.stall_id == stall_id)
        ).all():
            staff.stall_id = None

        db.session.delete(stall)
        db.session.commit()

        return jsonify({"status": "success", "message": "Stall deleted"}), 200
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, f"Failed to delete stall {stall_id}")

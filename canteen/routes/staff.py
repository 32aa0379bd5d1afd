from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload

from ..errors import CanteenError
from ..extensions import db
from ..models import StaffProfile, Stall
from ..services.identity import hash_password
from ..utils import s3_utils
from ..utils.auth import require_roles
from ..utils.http import (
    PROFILE_TEXT_FIELDS,
    domain_error,
    error_response,
    integrity_error,
    internal_error,
    non_string_fields,
    request_data,
)

staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")


def serialize_staff(staff):
    return {
        "id": staff.id,
        "name": staff.name,
        "address": staff.address,
        "phone": staff.phone,
        "photo_url": staff.photo_url,
        "stall_id": staff.stall_id,
        "stall_name": staff.stall.name if staff.stall else None,
        "email": staff.account.email if staff.account else None,
        "is_active": bool(staff.account.is_active) if staff.account else False,
    }


@staff_bp.route("", methods=["GET"])
@require_roles("admin")
def list_staff():
    try:
        staff = db.session.scalars(
            select(StaffProfile)
            .options(joinedload(StaffProfile.stall), joinedload(StaffProfile.account))
            .order_by(StaffProfile.id.asc())
        ).all()
        return (
            jsonify(
                {
                    "status": "success",
                    "staff_found": len(staff),
                    "data": [serialize_staff(s) for s in staff],
                }
            ),
            200,
        )
    except Exception as e:
        return internal_error(e, "Failed to list staff")


@staff_bp.route("/<int:staff_id>", methods=["PUT"])
@require_roles("admin", "staff")
def update_staff(staff_id):
    # Staff edit their own profile; only admins may move someone to another stall
    principal = g.principal
    if not principal.is_admin and principal.staff_id != staff_id:
        return error_response("You can only edit your own profile", 403)

    try:
        data = request_data()
        wrong_type = non_string_fields(data, PROFILE_TEXT_FIELDS)
        if wrong_type:
            return error_response(f"Fields must be text ({', '.join(wrong_type)})", 400)

        staff = db.session.get(StaffProfile, staff_id)
        if not staff:
            return error_response("Staff not found", 404)

        updated_fields = []

        if data.get("name"):
            staff.name = data["name"]
            staff.account.username = data["name"]
            updated_fields.append("name")

        for field in ("address", "phone"):
            if data.get(field):
                setattr(staff, field, data[field])
                updated_fields.append(field)

        if data.get("password"):
            if len(data["password"]) < 6:
                return error_response("Password must be at least 6 characters", 400)
            staff.account.password_hash = hash_password(
                data["password"], current_app.config["BCRYPT_ROUNDS"]
            )
            updated_fields.append("password")

        if data.get("stall_id") not in (None, ""):
            if not principal.is_admin:
                return error_response("Only an admin can move staff to another stall", 403)
            try:
                stall_id = int(data["stall_id"])
            except (TypeError, ValueError):
                return error_response("stall_id must be an integer", 400)
            if not db.session.get(Stall, stall_id):
                return error_response(f"Stall {stall_id} not found", 404)
            staff.stall_id = stall_id
            updated_fields.append("stall_id")

        photo = request.files.get("photo")
        if photo:
            staff.photo_url = s3_utils.upload_photo(photo, "staff")
            updated_fields.append("photo_url")

        if not updated_fields:
            db.session.rollback()
            return error_response("No valid update fields provided", 400)

        db.session.commit()
        db.session.refresh(staff)

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Staff profile updated",
                    "data": serialize_staff(staff),
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
        return internal_error(e, f"Failed to update staff {staff_id}")


@staff_bp.route("/<int:staff_id>", methods=["DELETE"])
@require_roles("admin")
def deactivate_staff(staff_id):
    try:
        staff = db.session.get(StaffProfile, staff_id)
        if not staff:
            return error_response("Staff not found", 404)

        staff.account.deactivate()
        db.session.commit()

        return jsonify({"status": "success", "message": "Staff account deactivated"}), 200
    except Exception as e:
        return internal_error(e, f"Failed to deactivate staff {staff_id}")

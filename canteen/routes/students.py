from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..errors import CanteenError, ConflictError
from ..extensions import db
from ..models import Account, StudentProfile
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

students_bp = Blueprint("students", __name__, url_prefix="/api/students")


def serialize_student(student):
    return {
        "id": student.id,
        "student_number": student.student_number,
        "name": student.name,
        "address": student.address,
        "phone": student.phone,
        "photo_url": student.photo_url,
        "email": student.account.email if student.account else None,
        "is_active": bool(student.account.is_active) if student.account else False,
    }


def _can_touch(student_id):
    principal = g.principal
    return principal.is_admin or principal.student_id == student_id


@students_bp.route("", methods=["GET"])
@require_roles("admin")
def list_students():
    try:
        students = db.session.scalars(
            select(StudentProfile)
            .join(Account, Account.id == StudentProfile.account_id)
            .where(Account.is_active.is_(True))
            .order_by(StudentProfile.name.asc())
        ).all()

        return (
            jsonify(
                {
                    "status": "success",
                    "students_found": len(students),
                    "data": [serialize_student(s) for s in students],
                }
            ),
            200,
        )
    except Exception as e:
        return internal_error(e, "Failed to list students")


@students_bp.route("/<int:student_id>", methods=["GET"])
@require_roles("admin", "student")
def get_student(student_id):
    if not _can_touch(student_id):
        return error_response("You can only view your own profile", 403)

    student = db.session.get(StudentProfile, student_id)
    if not student or not student.account or not student.account.is_active:
        return error_response("Student not found or inactive", 404)

    return jsonify({"status": "success", "data": serialize_student(student)}), 200


@students_bp.route("/<int:student_id>", methods=["PUT"])
@require_roles("admin", "student")
def update_student(student_id):
    """
    Partial profile update. The student number and the email are checked for
    uniqueness again when they change.
    """
    if not _can_touch(student_id):
        return error_response("You can only edit your own profile", 403)

    try:
        data = request_data()
        wrong_type = non_string_fields(data, PROFILE_TEXT_FIELDS)
        if wrong_type:
            return error_response(f"Fields must be text ({', '.join(wrong_type)})", 400)

        student = db.session.get(StudentProfile, student_id)
        if not student:
            return error_response("Student not found", 404)
        account = student.account

        updated_fields = []

        new_number = data.get("student_number")
        if new_number and new_number != student.student_number:
            taken = db.session.scalar(
                select(StudentProfile).where(StudentProfile.student_number == new_number)
            )
            if taken:
                raise ConflictError("Student number already used by another student")
            student.student_number = new_number
            updated_fields.append("student_number")

        new_email = data.get("email")
        if new_email and new_email != account.email:
            if "@" not in new_email:
                return error_response("Invalid email address", 400)
            taken = db.session.scalar(select(Account).where(Account.email == new_email))
            if taken:
                raise ConflictError("Email already in use")
            account.email = new_email
            updated_fields.append("email")

        if data.get("name"):
            student.name = data["name"]
            account.username = data["name"]
            updated_fields.append("name")

        for field in ("address", "phone"):
            if data.get(field):
                setattr(student, field, data[field])
                updated_fields.append(field)

        if data.get("password"):
            if len(data["password"]) < 6:
                return error_response("Password must be at least 6 characters", 400)
            account.password_hash = hash_password(
                data["password"], current_app.config["BCRYPT_ROUNDS"]
            )
            updated_fields.append("password")

        photo = request.files.get("photo")
        if photo:
            student.photo_url = s3_utils.upload_photo(photo, "students")
            updated_fields.append("photo_url")

        if not updated_fields:
            db.session.rollback()
            return error_response("No valid update fields provided", 400)

        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Student updated successfully",
                    "data": serialize_student(student),
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
        return internal_error(e, f"Failed to update student {student_id}")


@students_bp.route("/<int:student_id>", methods=["DELETE"])
@require_roles("admin")
def deactivate_student(student_id):
    try:
        student = db.session.get(StudentProfile, student_id)
        if not student:
            return error_response("Student not found", 404)

        student.account.deactivate()
        db.session.commit()

        return (
            jsonify(
                {"status": "success", "message": "Student deactivated (soft delete)"}
            ),
            200,
        )
    except Exception as e:
        return internal_error(e, f"Failed to deactivate student {student_id}")

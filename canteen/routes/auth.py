from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..errors import CanteenError
from ..extensions import db
from ..models import Account, StaffProfile, Stall, StudentProfile
from ..services.identity import (
    authenticate_staff,
    authenticate_student,
    hash_password,
    staff_claims,
    student_claims,
)
from ..utils import s3_utils
from ..utils.auth import require_roles, token_issuer
from ..utils.http import (
    domain_error,
    error_response,
    integrity_error,
    internal_error,
    PROFILE_TEXT_FIELDS,
    missing_fields,
    non_string_fields,
    request_data,
    to_bool,
)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _email_taken(email):
    return db.session.scalar(select(Account).where(Account.email == email)) is not None


@auth_bp.route("/register/student", methods=["POST"])
def register_student():
    """
    Register a student account
    ---
    tags:
      - Authentication
    consumes:
      - application/json
      - multipart/form-data
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [student_number, name, email, address, phone, password]
          properties:
            student_number:
              type: string
            name:
              type: string
            email:
              type: string
            address:
              type: string
            phone:
              type: string
            password:
              type: string
    responses:
      201:
        description: Student registered
      400:
        description: Missing or invalid fields
      409:
        description: Student number or email already registered
    """
    try:
        data = request_data()
        missing = missing_fields(
            data, ["student_number", "name", "email", "address", "phone", "password"]
        )
        if missing:
            return error_response(f"Missing required fields ({', '.join(missing)})", 400)
        wrong_type = non_string_fields(data, PROFILE_TEXT_FIELDS)
        if wrong_type:
            return error_response(f"Fields must be text ({', '.join(wrong_type)})", 400)

        if "@" not in data["email"]:
            return error_response("Invalid email address", 400)
        if len(data["password"]) < 6:
            return error_response("Password must be at least 6 characters", 400)

        # --- Uniqueness checks before any write ---
        existing = db.session.scalar(
            select(StudentProfile).where(
                StudentProfile.student_number == data["student_number"]
            )
        )
        if existing:
            return error_response("Student number already registered", 409)
        if _email_taken(data["email"]):
            return error_response("Email already in use", 409)

        photo_url = None
        photo = request.files.get("photo")
        if photo:
            photo_url = s3_utils.upload_photo(photo, "students")

        account = Account(
            username=data["name"],
            email=data["email"],
            password_hash=hash_password(
                data["password"], current_app.config["BCRYPT_ROUNDS"]
            ),
            role="student",
            is_active=True,
        )
        db.session.add(account)
        db.session.flush()

        student = StudentProfile(
            student_number=data["student_number"],
            name=data["name"],
            address=data["address"],
            phone=data["phone"],
            photo_url=photo_url,
            account_id=account.id,
        )
        db.session.add(student)
        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Student registered successfully",
                    "data": {
                        "id": student.id,
                        "account_id": account.id,
                        "student_number": student.student_number,
                        "name": student.name,
                        "email": account.email,
                        "address": student.address,
                        "phone": student.phone,
                        "photo_url": student.photo_url,
                    },
                }
            ),
            201,
        )

    except CanteenError as e:
        return domain_error(e)
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, "Student registration failed")


@auth_bp.route("/register/staff", methods=["POST"])
@require_roles("admin")
def register_staff():
    """Admins enrol canteen staff and place them on a stall."""
    try:
        data = request_data()
        missing = missing_fields(
            data, ["name", "email", "address", "phone", "stall_id", "password"]
        )
        if missing:
            return error_response(f"Missing required fields ({', '.join(missing)})", 400)
        wrong_type = non_string_fields(data, PROFILE_TEXT_FIELDS)
        if wrong_type:
            return error_response(f"Fields must be text ({', '.join(wrong_type)})", 400)

        if "@" not in data["email"]:
            return error_response("Invalid email address", 400)
        if len(data["password"]) < 6:
            return error_response("Password must be at least 6 characters", 400)

        try:
            stall_id = int(data["stall_id"])
        except (TypeError, ValueError):
            return error_response("stall_id must be an integer", 400)

        if _email_taken(data["email"]):
            return error_response("Email already in use", 409)

        stall = db.session.get(Stall, stall_id)
        if not stall:
            return error_response(f"Stall {stall_id} not found", 404)

        photo_url = None
        photo = request.files.get("photo")
        if photo:
            photo_url = s3_utils.upload_photo(photo, "staff")

        account = Account(
            username=data["name"],
            email=data["email"],
            password_hash=hash_password(
                data["password"], current_app.config["BCRYPT_ROUNDS"]
            ),
            role="staff",
            is_active=True,
        )
        db.session.add(account)
        db.session.flush()

        staff = StaffProfile(
            name=data["name"],
            address=data["address"],
            phone=data["phone"],
            photo_url=photo_url,
            stall_id=stall.id,
            account_id=account.id,
        )
        db.session.add(staff)
        db.session.commit()

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Staff registered successfully",
                    "data": {
                        "id": staff.id,
                        "account_id": account.id,
                        "name": staff.name,
                        "email": account.email,
                        "stall_id": staff.stall_id,
                        "photo_url": staff.photo_url,
                    },
                }
            ),
            201,
        )

    except CanteenError as e:
        return domain_error(e)
    except IntegrityError as e:
        return integrity_error(e)
    except Exception as e:
        return internal_error(e, "Staff registration failed")


@auth_bp.route("/login/student", methods=["POST"])
def login_student():
    """
    Student login with student number
    ---
    tags:
      - Authentication
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [student_number, password]
          properties:
            student_number:
              type: string
            password:
              type: string
            remember_me:
              type: boolean
    responses:
      200:
        description: Login successful, returns a bearer token
      401:
        description: Unknown student number, inactive account or wrong password
    """
    try:
        data = request.get_json(silent=True) or {}
        student_number = data.get("student_number")
        password = data.get("password")

        if not student_number or not password:
            return error_response("Student number and password required", 400)
        if non_string_fields(data, ["password"]):
            return error_response("Password must be text", 400)

        account, student = authenticate_student(db.session, str(student_number), password)
        token = token_issuer().issue(
            student_claims(account, student),
            remember_me=to_bool(data.get("remember_me", False)),
        )

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Login successful",
                    "token": token,
                    "user": {
                        "id": student.id,
                        "name": student.name,
                        "role": account.role,
                    },
                }
            ),
            200,
        )

    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Student login failed")


@auth_bp.route("/login/staff", methods=["POST"])
def login_staff():
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return error_response("Email and password required", 400)
        if non_string_fields(data, ["email", "password"]):
            return error_response("Email and password must be text", 400)

        account, staff = authenticate_staff(db.session, email, password)
        claims = staff_claims(account, staff)
        token = token_issuer().issue(
            claims, remember_me=to_bool(data.get("remember_me", False))
        )

        user = {"id": account.id, "email": account.email, "role": account.role}
        if staff is not None:
            user["stall_id"] = staff.stall_id

        return (
            jsonify(
                {
                    "status": "success",
                    "message": "Login successful",
                    "token": token,
                    "user": user,
                }
            ),
            200,
        )

    except CanteenError as e:
        return domain_error(e)
    except Exception as e:
        return internal_error(e, "Staff login failed")


@auth_bp.route("/me", methods=["GET"])
@require_roles("admin", "staff", "student")
def get_current_user():
    principal = g.principal
    account = db.session.get(Account, principal.user_id)

    response = {
        "status": "success",
        "user_id": account.id,
        "email": account.email,
        "role": account.role,
        "profile": None,
    }

    if account.role == "student" and account.student_profile:
        student = account.student_profile
        response["profile"] = {
            "id": student.id,
            "student_number": student.student_number,
            "name": student.name,
            "address": student.address,
            "phone": student.phone,
            "photo_url": student.photo_url,
        }
    elif account.role == "staff" and account.staff_profile:
        staff = account.staff_profile
        response["profile"] = {
            "id": staff.id,
            "name": staff.name,
            "address": staff.address,
            "phone": staff.phone,
            "photo_url": staff.photo_url,
            "stall_id": staff.stall_id,
        }

    return jsonify(response), 200

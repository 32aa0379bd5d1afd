from flask import current_app, jsonify, request

from ..extensions import db

PROFILE_TEXT_FIELDS = ("student_number", "name", "email", "address", "phone", "password")


def request_data():
    """JSON body, or the form fields of a multipart request carrying a photo."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def missing_fields(data, fields):
    return [f for f in fields if data.get(f) in (None, "")]


def non_string_fields(data, fields):
    return [f for f in fields if data.get(f) is not None and not isinstance(data[f], str)]


def error_response(message, status_code, details=None):
    body = {"status": "error", "message": message}
    if details:
        body["details"] = details
    return jsonify(body), status_code


def domain_error(e):
    db.session.rollback()
    return error_response(e.message, e.status_code)


def integrity_error(e):
    db.session.rollback()
    current_app.logger.error(f"Integrity error: {e.orig}")
    return error_response("Database integrity error", 409)


def internal_error(e, what):
    db.session.rollback()
    current_app.logger.error(f"{what}: {e}")
    return error_response("Internal server error", 500)


def to_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")

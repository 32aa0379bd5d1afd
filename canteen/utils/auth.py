from dataclasses import dataclass
from functools import wraps
from typing import Optional

import jwt
from flask import current_app, g, jsonify, request

from ..extensions import db
from ..models import Account


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    student_id: Optional[int] = None
    staff_id: Optional[int] = None
    stall_id: Optional[int] = None

    @property
    def is_admin(self):
        return self.role == "admin"

    @classmethod
    def from_claims(cls, claims):
        return cls(
            user_id=claims["user_id"],
            role=claims["role"],
            student_id=claims.get("student_id"),
            staff_id=claims.get("staff_id"),
            stall_id=claims.get("stall_id"),
        )


def token_issuer():
    return current_app.extensions["token_issuer"]


def _error(message, status_code):
    return jsonify({"status": "error", "message": message}), status_code


def require_roles(*roles):
    """
    Reject the request unless it carries a valid bearer credential whose role
    is one of ``roles``. The decoded principal is left on ``g.principal``.
    """

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            auth_header = request.headers.get("Authorization", "")
            if not auth_header.startswith("Bearer "):
                return _error("Access denied. No token provided.", 401)

            token = auth_header.split(" ", 1)[1].strip()
            try:
                claims = token_issuer().decode(token)
                principal = Principal.from_claims(claims)
            except jwt.ExpiredSignatureError:
                return _error("Token has expired, please login again", 401)
            except (jwt.InvalidTokenError, KeyError):
                return _error("Invalid token", 401)

            account = db.session.get(Account, principal.user_id)
            if not account or not account.is_active:
                return _error("Account not found or inactive", 401)

            # A credential issued before the staff member was moved is stale
            if principal.role == "staff":
                profile = account.staff_profile
                if profile is None or profile.stall_id != principal.stall_id:
                    return _error("Stall assignment changed, please login again", 401)

            if principal.role not in roles:
                return _error(
                    f"Access denied. Role {principal.role} is not allowed on this route.",
                    403,
                )

            g.principal = principal
            return view(*args, **kwargs)

        return wrapped

    return decorator

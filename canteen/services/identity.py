"""
Password hashing, credential issuing and login checks.

The signing key and lifetimes are passed in when the ``TokenIssuer`` is built
in ``create_app``; nothing here reads the environment.
"""

import datetime

import bcrypt
import jwt
from sqlalchemy import select

from ..errors import AuthenticationError
from ..models import Account, StaffProfile, StudentProfile


def hash_password(password, rounds=12):
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds)).decode("utf-8")


def check_password(password, password_hash):
    if not password or not password_hash:
        return False
    stored_hash = password_hash
    if isinstance(stored_hash, str):
        stored_hash = stored_hash.encode("utf-8")
    return bcrypt.checkpw(password.encode("utf-8"), stored_hash)


class TokenIssuer:
    """Signs and verifies the bearer credentials handed out at login."""

    def __init__(self, secret, expires, remember_expires, algorithm="HS256"):
        self.secret = secret
        self.expires = expires
        self.remember_expires = remember_expires
        self.algorithm = algorithm

    def issue(self, claims, remember_me=False):
        now = datetime.datetime.now(datetime.timezone.utc)
        lifetime = self.remember_expires if remember_me else self.expires
        payload = dict(claims)
        payload["iat"] = now
        payload["exp"] = now + lifetime
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token):
        # raises jwt.ExpiredSignatureError / jwt.InvalidTokenError
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])


def student_claims(account, student):
    return {
        "user_id": account.id,
        "role": account.role,
        "student_id": student.id,
        "student_number": student.student_number,
        "name": student.name,
    }


def staff_claims(account, staff=None):
    claims = {
        "user_id": account.id,
        "role": account.role,
        "email": account.email,
        "name": staff.name if staff is not None else account.username,
    }
    if staff is not None:
        claims["staff_id"] = staff.id
        claims["stall_id"] = staff.stall_id
        claims["stall_name"] = staff.stall.name if staff.stall else None
    return claims


def authenticate_student(session, student_number, password):
    """Student login goes through the student number, not the email."""
    student = session.scalar(
        select(StudentProfile).where(StudentProfile.student_number == student_number)
    )
    if not student or not student.account or not student.account.is_active:
        raise AuthenticationError("Student number not found or account inactive")

    if not check_password(password, student.account.password_hash):
        raise AuthenticationError("Invalid credentials")

    return student.account, student


def authenticate_staff(session, email, password):
    """Admins and canteen staff log in with their email."""
    account = session.scalar(select(Account).where(Account.email == email))
    if not account or not account.is_active or account.role not in ("admin", "staff"):
        raise AuthenticationError("Email not found or access denied")

    if not check_password(password, account.password_hash):
        raise AuthenticationError("Invalid credentials")

    staff = None
    if account.role == "staff":
        staff = session.scalar(
            select(StaffProfile).where(StaffProfile.account_id == account.id)
        )
    return account, staff

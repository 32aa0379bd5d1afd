"""
Create the tables if needed and make sure one admin account exists.

    ADMIN_EMAIL=admin@canteen.local ADMIN_PASSWORD=... python seed_admin.py
"""

import os

from sqlalchemy import select

from canteen.extensions import db
from canteen.models import Account, Base
from canteen.services.identity import hash_password
from main import create_app


def seed_admin(email, password, rounds=12):
    account = db.session.scalar(select(Account).where(Account.email == email))
    if account is None:
        account = Account(username="admin", email=email, role="admin")
        db.session.add(account)
        action = "created"
    else:
        action = "updated"

    account.role = "admin"
    account.is_active = True
    account.deactivated_at = None
    account.password_hash = hash_password(password, rounds)
    db.session.commit()
    return account, action


if __name__ == "__main__":
    app = create_app()

    with app.app_context():
        Base.metadata.create_all(bind=db.engine)
        account, action = seed_admin(
            os.environ.get("ADMIN_EMAIL", "admin@canteen.local"),
            os.environ.get("ADMIN_PASSWORD", "admin123"),
            app.config["BCRYPT_ROUNDS"],
        )

    print(f"Admin account {account.email} {action} successfully!")

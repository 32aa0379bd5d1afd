"""
Pytest configuration and shared fixtures for the canteen app tests.

Every test gets a fresh app bound to an in-memory SQLite database, unless
MYSQL_TEST_URL points somewhere else (it must look like a test database).
"""

import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from flask.testing import FlaskClient

os.environ["FLASK_ENV"] = "testing"
os.environ["TESTING"] = "True"

from canteen.config import is_production_database  # noqa: E402
from canteen.extensions import db as database  # noqa: E402
from canteen.models import (  # noqa: E402
    Account,
    Base,
    Discount,
    MenuItem,
    StaffProfile,
    Stall,
    StudentProfile,
)
from canteen.services.identity import hash_password  # noqa: E402
from canteen.utils import s3_utils  # noqa: E402
from main import create_app  # noqa: E402

TEST_BUCKET_URL = "https://canteen-test.s3.amazonaws.com"


@pytest.fixture
def app():
    """Create and configure a test app instance."""
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "JWT_SECRET_KEY": "test-jwt-secret",
            "BCRYPT_ROUNDS": 4,
            "S3_BUCKET_NAME": "canteen-test",
            "S3_BASE_URL": TEST_BUCKET_URL,
        }
    )

    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if is_production_database(db_uri):
        pytest.exit(f"Refusing to run tests against {db_uri}")

    with app.app_context():
        Base.metadata.drop_all(bind=database.engine)
        Base.metadata.create_all(bind=database.engine)

        yield app

        database.session.remove()
        Base.metadata.drop_all(bind=database.engine)


@pytest.fixture
def db_session(app):
    return database.session


class ExpiringClient(FlaskClient):
    """Re-read fixture objects after every request so assertions see committed rows."""

    def open(self, *args, **kwargs):
        response = super().open(*args, **kwargs)
        database.session.expire_all()
        return response


@pytest.fixture
def client(app):
    app.test_client_class = ExpiringClient
    return app.test_client()


@pytest.fixture(autouse=True)
def fake_s3(monkeypatch):
    """Photo uploads never leave the process; the stored key is recorded instead."""
    uploaded = []

    def upload(file, filename, bucket_name):
        uploaded.append((bucket_name, filename))
        return f"{TEST_BUCKET_URL}/{filename}"

    monkeypatch.setattr(s3_utils, "upload_file_to_s3", upload)
    return uploaded


def _account(db_session, username, email, password, role):
    account = Account(
        username=username,
        email=email,
        password_hash=hash_password(password, 4),
        role=role,
        is_active=True,
    )
    db_session.add(account)
    db_session.flush()
    return account


@pytest.fixture
def admin_account(db_session):
    account = _account(db_session, "admin", "admin@canteen.test", "adminpass", "admin")
    db_session.commit()
    return account


@pytest.fixture
def sample_stall(db_session):
    stall = Stall(name="Warung Bu Sri")
    db_session.add(stall)
    db_session.commit()
    return stall


@pytest.fixture
def other_stall(db_session):
    stall = Stall(name="Kedai Kopi")
    db_session.add(stall)
    db_session.commit()
    return stall


@pytest.fixture
def sample_staff(db_session, sample_stall):
    """Staff member working at ``sample_stall``."""
    account = _account(db_session, "Budi", "budi@canteen.test", "staffpass", "staff")
    staff = StaffProfile(
        name="Budi",
        address="Jl. Merdeka 1",
        phone="0811111111",
        account_id=account.id,
        stall_id=sample_stall.id,
    )
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture
def other_staff(db_session, other_stall):
    account = _account(db_session, "Sari", "sari@canteen.test", "staffpass", "staff")
    staff = StaffProfile(
        name="Sari",
        address="Jl. Sudirman 2",
        phone="0822222222",
        account_id=account.id,
        stall_id=other_stall.id,
    )
    db_session.add(staff)
    db_session.commit()
    return staff


def make_student(db_session, student_number, name, email):
    account = _account(db_session, name, email, "studentpass", "student")
    student = StudentProfile(
        student_number=student_number,
        name=name,
        address="Jl. Pelajar 3",
        phone="0833333333",
        account_id=account.id,
    )
    db_session.add(student)
    db_session.commit()
    return student


@pytest.fixture
def sample_student(db_session):
    return make_student(db_session, "2024001", "Andi", "andi@school.test")


@pytest.fixture
def other_student(db_session):
    return make_student(db_session, "2024002", "Rina", "rina@school.test")


def make_menu_item(db_session, stall, name, price, category="food", available=True):
    menu_item = MenuItem(
        name=name,
        price=Decimal(str(price)),
        category=category,
        description=f"{name} from {stall.name}",
        photo_url=f"{TEST_BUCKET_URL}/menu/{name.lower().replace(' ', '_')}.jpg",
        is_available=available,
        stall_id=stall.id,
    )
    db_session.add(menu_item)
    db_session.commit()
    return menu_item


@pytest.fixture
def nasi_goreng(db_session, sample_stall):
    return make_menu_item(db_session, sample_stall, "Nasi Goreng", 10000)


@pytest.fixture
def es_teh(db_session, sample_stall):
    return make_menu_item(db_session, sample_stall, "Es Teh", 3000, category="drink")


@pytest.fixture
def kopi_susu(db_session, other_stall):
    return make_menu_item(db_session, other_stall, "Kopi Susu", 8000, category="drink")


def make_discount(db_session, name, percentage, menu_items=(), starts_at=None, ends_at=None):
    now = datetime.now()
    discount = Discount(
        name=name,
        percentage=Decimal(str(percentage)),
        starts_at=starts_at or now - timedelta(days=1),
        ends_at=ends_at or now + timedelta(days=1),
    )
    discount.menu_items.extend(menu_items)
    db_session.add(discount)
    db_session.commit()
    return discount


def bearer(response):
    assert response.status_code == 200, response.get_json()
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


def login_student(client, student_number, password="studentpass"):
    return client.post(
        "/api/auth/login/student",
        json={"student_number": student_number, "password": password},
    )


def login_staff(client, email, password):
    return client.post("/api/auth/login/staff", json={"email": email, "password": password})


@pytest.fixture
def admin_headers(client, admin_account):
    return bearer(login_staff(client, "admin@canteen.test", "adminpass"))


@pytest.fixture
def staff_headers(client, sample_staff):
    return bearer(login_staff(client, "budi@canteen.test", "staffpass"))


@pytest.fixture
def other_staff_headers(client, other_staff):
    return bearer(login_staff(client, "sari@canteen.test", "staffpass"))


@pytest.fixture
def student_headers(client, sample_student):
    return bearer(login_student(client, sample_student.student_number))


@pytest.fixture
def other_student_headers(client, other_student):
    return bearer(login_student(client, other_student.student_number))

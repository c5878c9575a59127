import io
from datetime import datetime, timedelta

import pytest
from PIL import Image

from app import create_app
from extensions import db as _db
from models import User
from utils.errors import StorageError
from utils.image_utils import ImageUpload
from utils.security import _attempts
from utils.tool_reports import ToolReportManager

PASSWORD = "secret123"


class MemoryStorage:
    """Object storage double; uploads whose object name contains a ``fail_on`` token fail."""

    def __init__(self, fail_on=(), fail_delete=False):
        self.objects = {}
        self.fail_on = tuple(fail_on)
        self.fail_delete = fail_delete
        self.delete_calls = []

    def put(self, bucket, name, data):
        if any(token in name for token in self.fail_on):
            raise StorageError("Upload failed", object_name=name)
        self.objects[(bucket, name)] = data
        return self.public_url(bucket, name)

    def delete(self, bucket, names):
        names = list(names)
        self.delete_calls.append(names)
        if self.fail_delete:
            raise StorageError("Delete failed", object_name=", ".join(names))
        for name in names:
            self.objects.pop((bucket, name), None)

    def public_url(self, bucket, name):
        return f"https://storage.test/{bucket}/{name}"


class StepClock:
    """Each call moves one second forward so timestamps are distinct and ordered."""

    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


def image_bytes(fmt="PNG", color="red", size=(8, 8)):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


def png_upload(filename="photo.png", color="red"):
    return ImageUpload(filename=filename, data=image_bytes(color=color), content_type="image/png")


@pytest.fixture
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("OBJECT_STORAGE_ROOT", str(tmp_path / "objects"))
    monkeypatch.delenv("TEST_DATABASE_URL", raising=False)
    monkeypatch.delenv("GOVERNMENT_EMAIL_DOMAINS", raising=False)
    _attempts.clear()

    app = create_app("testing")
    yield app

    with app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    with app.app_context():
        yield _db.session
        _db.session.rollback()


@pytest.fixture
def make_user(session):
    def _make(email, account_type="owner", name="Test User"):
        user = User(
            email=email.lower(),
            full_name=name,
            phone="4035551234",
            address="1 Main St",
            city="Calgary",
            province="AB",
            postal_code="T2P 1A1",
            account_type=account_type,
        )
        user.set_password(PASSWORD)
        session.add(user)
        session.commit()
        return user

    return _make


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def manager(session, storage, clock):
    return ToolReportManager(session, storage, clock=clock)


@pytest.fixture
def report_fields():
    return {
        "make": "DeWalt",
        "model": "DCD999",
        "serialNumber": "SN123",
        "ownerName": "U One",
        "ownerPhone": "4035551234",
    }


def registration_payload(email, account_type="owner", **overrides):
    payload = {
        "email": email,
        "password": PASSWORD,
        "fullName": "Test User",
        "phone": "4035551234",
        "postalCode": "T2P 1A1",
        "address": "1 Main St",
        "city": "Calgary",
        "province": "AB",
        "accountType": account_type,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def signup():
    """Register through the API and return a logged-in test client for that account."""

    def _signup(app, email, account_type="owner"):
        client = app.test_client()
        response = client.post("/auth/register", json=registration_payload(email, account_type))
        assert response.status_code == 201, response.get_json()
        response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
        assert response.status_code == 200, response.get_json()
        return client

    return _signup

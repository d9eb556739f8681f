from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie

import pytest

from qconnect.api import create_app
from qconnect.models import storage
from qconnect.models.enums import Role
from qconnect.models.user import User
from qconnect.utils.security import Identity, hash_password, issue_access_token

PASSWORD = "correct-horse-battery"


@pytest.fixture
def app(tmp_path):
    app = create_app("testing", DATABASE_URL=f"sqlite:///{tmp_path / 'qconnect.db'}")
    yield app
    with app.app_context():
        storage.drop_all()


@pytest.fixture
def client(app):
    # Cookies are always passed explicitly so each request shows exactly what it sends
    return app.test_client(use_cookies=False)


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


def _make_user(app, email, role):
    with app.app_context():
        user = User(
            name=email.split("@")[0].title(),
            email=email,
            password_hash=hash_password(PASSWORD),
            role=role,
        )
        storage.new(user)
        storage.save()
        return user


@pytest.fixture
def patient(app):
    return _make_user(app, "alice@example.com", Role.patient)


@pytest.fixture
def other_patient(app):
    return _make_user(app, "bob@example.com", Role.patient)


@pytest.fixture
def admin(app):
    return _make_user(app, "admin@example.com", Role.admin)


@pytest.fixture
def doctor(app):
    return _make_user(app, "doc@example.com", Role.doctor)


def bearer(app, user, now=None):
    with app.app_context():
        token = issue_access_token(Identity(user.id, user.email, user.role), now=now)
    return {"Authorization": f"Bearer {token}"}


def expired_bearer(app, user):
    return bearer(app, user, now=datetime.now(timezone.utc) - timedelta(hours=2))


def set_cookies(response) -> dict:
    """name -> morsel for every Set-Cookie header on a response."""
    jar = {}
    for header in response.headers.getlist("Set-Cookie"):
        parsed = SimpleCookie()
        parsed.load(header)
        for name, morsel in parsed.items():
            jar[name] = morsel
    return jar


def login(client, email, password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})

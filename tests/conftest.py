import re
from datetime import datetime, timedelta

import pytest

from api import create_app
from models.db_storage import DBStorage


class FakeMailer:
    """Collects outgoing mail instead of talking to an SMTP server."""

    def __init__(self):
        self.sent = []
        self.accept = True

    def send(self, to, subject, html):
        self.sent.append({"to": to, "subject": subject, "html": html})
        return self.accept

    def last_token(self):
        match = re.search(r"token=([0-9a-f]{64})", self.sent[-1]["html"])
        return match.group(1) if match else None


class FakeClock:
    def __init__(self, start=datetime(2024, 1, 15, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def storage(tmp_path):
    storage = DBStorage(f"sqlite:///{tmp_path / 'test.db'}")
    yield storage
    storage.dispose()


@pytest.fixture
def app(storage, mailer, clock):
    return create_app("testing", storage=storage, mailer=mailer, clock=clock)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sessions(app):
    return app.extensions["session_manager"]


@pytest.fixture
def resets(app):
    return app.extensions["reset_manager"]


@pytest.fixture
def csrf_headers(client):
    """Fetch a CSRF token; the client keeps the secret cookie it is bound to."""
    response = client.get("/csrf-token")
    return {"X-CSRF-Token": response.get_json()["csrfToken"]}


REGISTRATION = {
    "name": "Ada",
    "username": "ada",
    "email": "ada@x.com",
    "password": "longpassword1",
    "password_confirmation": "longpassword1",
}


@pytest.fixture
def registration():
    return dict(REGISTRATION)


@pytest.fixture
def registered(client, csrf_headers, registration):
    response = client.post("/auth/register", json=registration, headers=csrf_headers)
    assert response.status_code == 201
    return response.get_json()

import threading

import pytest

from api import create_app
from models.user import Role, VerificationStatus

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "ChangeMe123!"
DEFAULT_PASSWORD = "Password123!"

CITIZEN_PAYLOAD = {
    "email": "jane@example.com",
    "password": DEFAULT_PASSWORD,
    "firstName": "Jane",
    "middleName": "Q",
    "lastName": "Citizen",
    "address": "1 Main Street",
    "phone": "+1 555 0100",
    "dob": "1990-04-01",
}

PNG = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def app(tmp_path):
    app = create_app(
        "test",
        config_overrides={"DATABASE_URL": f"sqlite:///{tmp_path / 'test.db'}"},
    )
    yield app
    services = app.extensions["portal"]
    services.sweeper.stop()
    services.storage.dispose()


@pytest.fixture
def services(app):
    with app.app_context():
        yield app.extensions["portal"]


@pytest.fixture
def client(app):
    return app.test_client()


def create_user(app, email, role=Role.CITIZEN, password=DEFAULT_PASSWORD, name="Test User", status=None):
    with app.app_context():
        user = app.extensions["portal"].accounts.create_user(email, name, password, role, status=status)
        return user.id


def login(client, email, password=DEFAULT_PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})


def csrf_headers(client):
    """Fetch a CSRF token (sets the cookie on the client) and return the echo header."""
    resp = client.get("/auth/csrf-token")
    return {"X-CSRF-Token": resp.get_json()["csrfToken"]}


def login_as(client, email, password=DEFAULT_PASSWORD):
    resp = login(client, email, password)
    assert resp.status_code == 200
    return csrf_headers(client)


def register_citizen(client, **overrides):
    payload = dict(CITIZEN_PAYLOAD, **overrides)
    return client.post("/register/step1", json=payload)


def complete_registration(client, **overrides):
    resp = register_citizen(client, **overrides)
    assert resp.status_code == 201
    headers = csrf_headers(client)
    assert client.post("/register/step2", json={"idCardFront": PNG, "idCardBack": PNG},
                       headers=headers).status_code == 200
    assert client.post("/register/step3", json={"selfieImage": PNG, "aiAnalysis": "{}"},
                       headers=headers).status_code == 200
    return resp.get_json()["applicationId"]


def refresh_cookie(client):
    cookie = client.get_cookie("refresh_token")
    return cookie.value if cookie is not None else None


def run_concurrently(app, target, count):
    """
    Call `target(index)` on `count` threads released together by a barrier.
    Each thread works through its own scoped DB session. Returns the results
    in index order, with any raised exception in place of a result.
    """
    barrier = threading.Barrier(count)
    outcomes = [None] * count
    storage = app.extensions["portal"].storage

    def run(index):
        try:
            with app.app_context():
                barrier.wait(timeout=10)
                outcomes[index] = target(index)
        except Exception as exc:
            outcomes[index] = exc
        finally:
            storage.close()

    threads = [threading.Thread(target=run, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return outcomes

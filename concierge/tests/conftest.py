import uuid

import pytest

from concierge import create_app
from concierge.models import Account, AuthRateLimitBucket, Profile, db

ADMIN_EMAIL = "admin@sewa-hospitality.com"
ADMIN_PASSWORD = "Admin-Pass-2026!"
USER_PASSWORD = "Member-Pass-2026!"


def build_test_app(tmp_path, overrides=None):
    db_path = tmp_path / f"concierge_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "UPLOAD_FOLDER": str(upload_path),
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "SEED_DEFAULT_CONTENT": False,
        "SESSION_COOKIE_SECURE": False,
        "LOG_JSON": False,
        "SENTRY_DSN": "",
        "MAILGUN_API_KEY": "",
        "SMTP_HOST": "",
        "CONCIERGE_NOTIFICATION_EMAILS": "",
        "SEND_CONTACT_CONFIRMATION": False,
        "LICENSE_PUBLIC_KEY": "",
        "LICENSE_PRIVATE_KEY": "",
        "LICENSE_KEY": "",
        "EXTENSION_FLAGS": "",
        "STRIPE_SECRET_KEY": "",
        "RAZORPAY_KEY_ID": "",
        "CHAT_STREAM_POLL_SECONDS": 0,
        "CHAT_STREAM_MAX_SECONDS": 0,
    }
    if overrides:
        config.update(overrides)

    app = create_app(config)
    with app.app_context():
        AuthRateLimitBucket.query.delete()
        db.session.commit()
    return app


@pytest.fixture()
def app(tmp_path):
    return build_test_app(tmp_path)


@pytest.fixture()
def client(app):
    return app.test_client()


def create_user(app, email, role, password=USER_PASSWORD, full_name=None):
    with app.app_context():
        account = Account(email=email)
        account.set_password(password)
        db.session.add(account)
        db.session.flush()
        db.session.add(Profile(id=account.id, email=email, full_name=full_name, role=role))
        db.session.commit()
        return account.id


def login(client, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    response = client.post("/api/admin/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.get_json()
    return response.get_json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def auth_headers(app, email=ADMIN_EMAIL, password=ADMIN_PASSWORD):
    # A separate client keeps the caller's cookie jar clean.
    return bearer(login(app.test_client(), email, password)["token"])


@pytest.fixture()
def admin_headers(app):
    return auth_headers(app)


@pytest.fixture()
def editor_headers(app):
    create_user(app, "editor@example.com", "editor")
    return auth_headers(app, "editor@example.com", USER_PASSWORD)


@pytest.fixture()
def viewer_headers(app):
    create_user(app, "viewer@example.com", "viewer")
    return auth_headers(app, "viewer@example.com", USER_PASSWORD)

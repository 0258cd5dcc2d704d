"""
Test configuration and fixtures.

Provides:
- An app on an in-memory SQLite database, seeded with statuses and categories
- ``ctx``: an app context for tests that drive the service layer directly
- ``people``: a client, a contractor, an outsider and an admin (ids only, so
  HTTP tests never hold ORM objects across requests)
- ``login`` helper for the JSON API
"""
from types import SimpleNamespace

import pytest

from neigh import create_app
from neigh.config import Config
from neigh.extensions import db
from neigh.models.category import Category
from neigh.models.task import Task
from neigh.models.user import User
from neigh.seed import seed_all

PASSWORD = "secret123"


class ConfigForTests(Config):
    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    SESSION_COOKIE_SECURE = False
    SERVER_NAME = None
    PREFERRED_URL_SCHEME = "http"
    MAIL_SUPPRESS_SEND = True
    MAIL_DEFAULT_SENDER = "noreply@neigh.test"
    LOG_TO_FILE = False
    LOG_LEVEL = "WARNING"
    SENTRY_DSN = ""
    INVOICE_TAX_RATE = "0"
    PAYMENT_METHODS = ["STRIPE", "PAYPAL"]
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_PUBLISHABLE_KEY = "pk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_dummy"
    PAYPAL_CLIENT_ID = "paypal-client"
    PAYPAL_APP_SECRET = "paypal-secret"
    SOCKETIO_MESSAGE_QUEUE = None


# =============================================================================
# App / DB
# =============================================================================

@pytest.fixture
def app(tmp_path):
    class _Cfg(ConfigForTests):
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(_Cfg)
    with app.app_context():
        db.create_all()
        seed_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    """App context for service-level tests (no HTTP requests inside)."""
    with app.app_context():
        yield app


# =============================================================================
# Data helpers
# =============================================================================

def make_user(name: str, email: str, role: str = "user") -> User:
    user = User(name=name, email=email, role=role)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


def make_task(owner: User, name: str = "Mow Lawn", price="50.00", category: str = "Garden") -> Task:
    task = Task(
        name=name,
        description="Front and back lawn, bring your own mower.",
        price=price,
        category=Category.query.filter_by(name=category).one(),
        created_by=owner.id,
    )
    db.session.add(task)
    db.session.commit()
    return task


@pytest.fixture
def people(app):
    with app.app_context():
        users = {
            "client": make_user("Alice Client", "alice@example.com"),
            "contractor": make_user("Bob Contractor", "bob@example.com"),
            "outsider": make_user("Eve Outsider", "eve@example.com"),
            "admin": make_user("Ada Admin", "ada@example.com", role="admin"),
        }
        return SimpleNamespace(**{k: SimpleNamespace(id=u.id, email=u.email) for k, u in users.items()})


@pytest.fixture
def parties(ctx):
    """ORM objects for service tests; only valid inside ``ctx``."""
    client = make_user("Alice Client", "alice@example.com")
    contractor = make_user("Bob Contractor", "bob@example.com")
    outsider = make_user("Eve Outsider", "eve@example.com")
    return SimpleNamespace(
        client=client,
        contractor=contractor,
        outsider=outsider,
        task=make_task(client),
    )


@pytest.fixture
def login(client):
    def _login(who, c=None):
        c = c or client
        c.post("/api/auth/logout")
        resp = c.post("/api/auth/login", json={"email": who.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.get_json()
        return c
    return _login

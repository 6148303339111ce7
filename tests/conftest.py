"""
Shared pytest fixtures for the course admin console test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - upload_dir: per-test UPLOAD_FOLDER
    - make_user / auth_headers: accounts and Bearer headers for JWT calls
"""

import pytest

from coursedesk import create_app
from coursedesk.models import db as _db
from coursedesk.models.account import User
from coursedesk.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def upload_dir(app, tmp_path):
    """Point closure archive storage at a per-test directory."""
    previous = app.config["UPLOAD_FOLDER"]
    app.config["UPLOAD_FOLDER"] = str(tmp_path)
    yield tmp_path
    app.config["UPLOAD_FOLDER"] = previous


# ── Auth fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: create and commit a User row."""
    def _make(email="admin@example.com", role="admin", first_name="Ada", last_name="Admin"):
        user = User(email=email, role=role, first_name=first_name, last_name=last_name)
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def auth_headers():
    """Factory: Bearer headers for a user."""
    def _headers(user):
        token = generate_access_token(user.id, user.role)
        return {"Authorization": f"Bearer {token}"}
    return _headers

"""
Shared pytest fixtures for the Nippo report service test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - store: Store over the test session
    - org / author / manager / manager2 / admin: pre-created profiles
    - project: Project with one work category
    - auth_headers: helper building a Bearer header for a profile
"""

import pytest

from nippo import create_app
from nippo.models import db as _db
from tests.factories import make_org, make_project, make_user


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
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def store():
    from nippo.store import Store

    return Store(_db.session)


# ── Entity fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def org():
    return make_org()


@pytest.fixture()
def author(org):
    return make_user(org, "user", "Author")


@pytest.fixture()
def manager(org):
    return make_user(org, "manager", "Manager")


@pytest.fixture()
def manager2(org):
    return make_user(org, "manager", "Second Manager")


@pytest.fixture()
def admin(org):
    return make_user(org, "admin", "Admin")


@pytest.fixture()
def project(org):
    return make_project(org)


@pytest.fixture()
def category(project):
    return project.categories[0]


@pytest.fixture()
def auth_headers(app):
    """Return a callable building a Bearer header for a profile."""
    from nippo.services.jwt_service import generate_access_token

    def _headers(profile):
        token = generate_access_token(profile.external_identity_ref, profile.org_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers

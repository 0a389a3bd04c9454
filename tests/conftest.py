"""
Shared pytest fixtures for the Roadmap Engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - level1_catalogue: Default macro-phase catalogue rows
    - project: Pre-created Project entity
"""

import pytest

from roadmap_engine import create_app
from roadmap_engine.models import db as _db
from roadmap_engine.models.project import Project


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


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def level1_catalogue():
    """Seed and return the default macro-phase catalogue, ordered."""
    from roadmap_engine.models.roadmap import Level1Stage
    from roadmap_engine.services.roadmap_template_service import seed_default_level1_stages

    seed_default_level1_stages()
    _db.session.commit()
    return Level1Stage.query.order_by(Level1Stage.order_index).all()


@pytest.fixture()
def project():
    """Create and return a committed Project."""
    proj = Project(code="PRJ-1", name="Launch Campaign")
    _db.session.add(proj)
    _db.session.commit()
    return proj

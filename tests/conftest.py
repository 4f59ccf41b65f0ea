"""
Shared pytest fixtures for the TeamFlow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - notifications: RecordingNotifier swapped into the app for one test
    - team: "Marketing" team owned by OWNER
    - add_member: ORM helper that seats a user in a team with a given role
"""

import pytest

from teamflow import create_app
from teamflow.models import db as _db
from teamflow.models.team import Membership
from teamflow.services import team_service
from teamflow.services.notification import NOTIFIER_KEY

OWNER = "u-owner"
ADMIN = "u-admin"
EDITOR = "u-editor"
VIEWER = "u-viewer"
OUTSIDER = "u-outsider"


class RecordingNotifier:
    """Collects (event, payload) pairs instead of delivering them."""

    def __init__(self):
        self.sent = []

    def send(self, event, payload):
        self.sent.append((event, payload))

    def events(self):
        return [event for event, _ in self.sent]


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
def notifications(app, monkeypatch):
    recorder = RecordingNotifier()
    monkeypatch.setitem(app.extensions, NOTIFIER_KEY, recorder)
    return recorder


# ── Convenience fixtures ─────────────────────────────────────────────────


def _make_membership(team_id, user_id, role, email=None):
    membership = Membership(team_id=team_id, user_id=user_id, role=role, email=email)
    _db.session.add(membership)
    _db.session.commit()
    return membership


@pytest.fixture()
def add_member():
    """Seat a user directly, bypassing the invitation flow."""
    return _make_membership


@pytest.fixture()
def team():
    """Team "Marketing" owned by OWNER with no other members."""
    return team_service.create_team(OWNER, "Marketing", description="Campaign content")


@pytest.fixture()
def staffed_team(team, add_member):
    """Marketing team with one member per role."""
    add_member(team.id, ADMIN, "admin", email="admin@acme.io")
    add_member(team.id, EDITOR, "editor", email="editor@acme.io")
    add_member(team.id, VIEWER, "viewer", email="viewer@acme.io")
    return team


def auth(user_id):
    """Request headers identifying ``user_id``."""
    return {"X-User-Id": user_id}

import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
os.environ.setdefault("REFRESH_COOKIE_SECURE", "false")

import pytest  # noqa: E402

import warden.models  # noqa: E402,F401
from warden.core.config import settings  # noqa: E402
from warden.db.base import Base  # noqa: E402
from warden.db.session import SessionLocal, engine  # noqa: E402
from warden.db.stores import permission_store  # noqa: E402
from warden.models.navigation import NodeKind  # noqa: E402
from warden.models.role import Role  # noqa: E402
from warden.services.identity_service import identity_service  # noqa: E402

from tests.helpers import PASSWORD  # noqa: E402


@pytest.fixture(autouse=True)
def _tables():
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(_tables):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def roles(db):
    """Admin, User and Auditor roles keyed by name."""
    created = {}
    for name in (settings.ADMIN_ROLE, settings.DEFAULT_ROLE, "Auditor"):
        role = Role(name=name, description=f"{name} role")
        db.add(role)
        created[name] = role
    db.commit()
    return created


@pytest.fixture
def make_user(db, roles):
    """Factory for confirmed users with a known password."""

    def _make(email="alice@example.com", role_names=(settings.DEFAULT_ROLE,), **fields):
        user = identity_service.create_user(
            db, email, PASSWORD, email_confirmed=True, role_name=role_names[0],
        )
        for name in role_names[1:]:
            identity_service.add_role(db, user, name)
        for key, value in fields.items():
            setattr(user, key, value)
        db.commit()
        return user

    return _make


@pytest.fixture
def user(make_user):
    return make_user()


class TreeBuilder:
    """Small helper for building navigation trees and grants in tests."""

    def __init__(self, db, roles):
        self.db = db
        self.roles = roles

    def section(self, name, **kwargs):
        return permission_store.add_node(self.db, NodeKind.section, name, **kwargs)

    def item(self, parent, name, route=None, **kwargs):
        return permission_store.add_node(
            self.db, NodeKind.item, name, parent_id=parent.id, route=route, **kwargs
        )

    def sub_item(self, parent, name, route, **kwargs):
        return permission_store.add_node(
            self.db, NodeKind.sub_item, name, parent_id=parent.id, route=route, **kwargs
        )

    def action(self, owner, code, **kwargs):
        return permission_store.add_action(self.db, owner.id, code, code.title(), **kwargs)

    def grant(self, role_name, *nodes, has_access=True):
        for node in nodes:
            permission_store.upsert_navigation_grant(
                self.db, self.roles[role_name].id, node, has_access
            )

    def enable(self, role_name, *actions, is_enabled=True):
        for action in actions:
            permission_store.upsert_action_grant(
                self.db, self.roles[role_name].id, action.id, is_enabled
            )

    def commit(self):
        self.db.commit()


@pytest.fixture
def tree(db, roles):
    return TreeBuilder(db, roles)


@pytest.fixture
def client(_tables):
    from fastapi.testclient import TestClient
    from warden.main import app

    with TestClient(app) as test_client:
        yield test_client


class Outbox:
    """Collects account links instead of sending them."""

    def __init__(self):
        self.sent = []

    def deliver(self, email, purpose, token):
        self.sent.append((email, purpose, token))

    def last_token(self, email, purpose):
        tokens = [t for e, p, t in self.sent if e == email and p == purpose]
        assert tokens, f"no {purpose} link sent to {email}"
        return tokens[-1]


@pytest.fixture
def outbox(monkeypatch):
    from warden.services.account_token_service import account_token_service

    box = Outbox()
    monkeypatch.setattr(account_token_service, "deliver", box.deliver)
    return box

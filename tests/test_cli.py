"""Tests for the wardenctl commands that work against the configured database."""

import json

from typer.testing import CliRunner

from warden.cli import app
from warden.models.navigation import NavigationNode
from warden.models.role import Role
from warden.models.user import User
from warden.services.session_service import session_service

runner = CliRunner()


def test_menu_show_prints_resolved_menu(tree):
    section = tree.section("Reports")
    tree.item(section, "Sales", route="/reports/sales")
    tree.grant("Auditor", section)
    tree.commit()

    result = runner.invoke(app, ["menu", "show", "Auditor"])

    assert result.exit_code == 0
    # Section is granted but has no visible item
    assert json.loads(result.stdout) == {"sections": []}


def test_sessions_list_and_revoke_all(db, user):
    session_service.issue_session(db, user.id, device="phone")
    session_service.issue_session(db, user.id, device="laptop")

    listed = runner.invoke(app, ["sessions", "list", str(user.id)])
    revoked = runner.invoke(app, ["sessions", "revoke-all", str(user.id)])

    assert "2 active session(s)" in listed.stdout
    assert "phone" in listed.stdout
    assert revoked.exit_code == 0
    assert "Revoked 2 session(s)" in revoked.stdout
    db.expire_all()
    assert session_service.list_active(db, user.id) == []


def test_db_seed_is_idempotent(db):
    first = runner.invoke(app, ["db", "seed"])
    second = runner.invoke(app, ["db", "seed"])

    assert first.exit_code == 0, first.stdout
    assert second.exit_code == 0, second.stdout
    assert {r.name for r in db.query(Role)} == {"Admin", "User"}
    assert db.query(User).count() == 1
    assert db.query(NavigationNode).filter(NavigationNode.parent_id.is_(None)).count() == 2


def test_users_confirm(db, make_user):
    pending = make_user("pending@example.com", email_confirmed=False)

    result = runner.invoke(app, ["users", "confirm", str(pending.id)])

    assert result.exit_code == 0, result.stdout
    assert "pending@example.com confirmed" in result.stdout
    db.expire_all()
    assert db.get(User, pending.id).email_confirmed is True

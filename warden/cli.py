"""Warden CLI tool (wardenctl)."""

from typing import List

import typer

app = typer.Typer(name="wardenctl", help="Warden CLI")
db_app = typer.Typer(help="Database management commands")
sessions_app = typer.Typer(help="Refresh session commands")
menu_app = typer.Typer(help="Navigation permission commands")
users_app = typer.Typer(help="User account commands")
app.add_typer(db_app, name="db")
app.add_typer(sessions_app, name="sessions")
app.add_typer(menu_app, name="menu")
app.add_typer(users_app, name="users")


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from sqlalchemy.engine import make_url
    from warden.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host, port=url.port or 3306, user=url.username, password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"✅ Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    import warden.models  # noqa: F401
    from warden.db.base import Base
    from warden.db.session import engine

    Base.metadata.create_all(bind=engine)
    typer.echo("✅ Tables created")


@db_app.command("seed")
def db_seed():
    """Seed roles, the admin user, and a starter navigation tree."""
    from warden.db.session import SessionLocal
    from warden.db.seeds.seed_roles import seed_roles
    from warden.db.seeds.seed_super_admin import seed_super_admin
    from warden.db.seeds.seed_navigation import seed_navigation

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_super_admin(db)
        seed_navigation(db)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@sessions_app.command("list")
def sessions_list(user_id: int = typer.Argument(..., help="User id")):
    """List a user's active refresh sessions."""
    from warden.db.session import SessionLocal
    from warden.services.session_service import session_service

    db = SessionLocal()
    try:
        active = session_service.list_active(db, user_id)
        for credential in active:
            typer.echo(
                f"{credential.id}\t{credential.created_at:%Y-%m-%d %H:%M}\t"
                f"{credential.expires_at:%Y-%m-%d %H:%M}\t{credential.ip or '-'}\t"
                f"{credential.device_info or '-'}"
            )
        typer.echo(f"{len(active)} active session(s)")
    finally:
        db.close()


@sessions_app.command("revoke-all")
def sessions_revoke_all(user_id: int = typer.Argument(..., help="User id")):
    """Revoke every refresh session of a user."""
    from warden.db.session import SessionLocal
    from warden.services.session_service import session_service

    db = SessionLocal()
    try:
        revoked = session_service.revoke_all(db, user_id, reason="cli")
    finally:
        db.close()
    typer.echo(f"✅ Revoked {revoked} session(s) for user {user_id}")


@users_app.command("confirm")
def users_confirm(user_id: int = typer.Argument(..., help="User id")):
    """Mark a user's email as confirmed."""
    from warden.db.session import SessionLocal
    from warden.services.auth_service import auth_service

    db = SessionLocal()
    try:
        user = auth_service.mark_email_confirmed(db, user_id)
        email = user.email
    finally:
        db.close()
    typer.echo(f"✅ Email {email} confirmed")


@menu_app.command("show")
def menu_show(roles: List[str] = typer.Argument(..., help="Role names")):
    """Print the menu resolved for a set of roles as JSON."""
    from warden.db.session import SessionLocal
    from warden.services.permission_service import permission_resolver

    db = SessionLocal()
    try:
        menu = permission_resolver.resolve_user_menu(db, roles)
    finally:
        db.close()
    typer.echo(menu.model_dump_json(indent=2))


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the API server."""
    import uvicorn
    uvicorn.run("warden.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()

import pytest
from werkzeug.security import generate_password_hash

from app.sendportal import auth, create_app
from app.sendportal.db import session_scope
from app.sendportal.models import AuditEvent, Base, Team, TeamUser, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    auth._login_attempts.clear()

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        t = Team(name="Acme")
        u = User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True)
        s.add_all([t, u])
        s.flush()
        s.add(TeamUser(team_id=t.id, user_id=u.id, role="owner"))
        u.current_team_id = t.id

    return app.test_client()


def _audit_actions(client):
    with session_scope(client.application) as s:
        return [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_landing_page_for_guests(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Log in" in r.data


def test_login_and_templates_access(client):
    # Anonymous is sent to login, remembering where it was going
    r = client.get("/templates")
    assert r.status_code == 302
    assert "/auth/login?next=/templates" in r.headers["Location"].replace("%2F", "/")

    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "pw", "next": "/templates"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/templates")

    r = client.get("/templates")
    assert r.status_code == 200
    assert b"Acme" in r.data

    assert _audit_actions(client) == ["auth.login"]


def test_login_ignores_external_next(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "pw", "next": "//evil.example.com/"},
    )
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/templates")


def test_invalid_credentials(client):
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Invalid credentials." in r.data

    r = client.get("/templates")
    assert r.status_code == 302
    assert _audit_actions(client) == ["auth.login_failed"]


def test_login_is_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"})

    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"}, follow_redirects=True)
    assert b"Too many login attempts" in r.data

    r = client.get("/templates")
    assert r.status_code == 302


def test_logout(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "pw"})
    r = client.get("/auth/logout")
    assert r.status_code == 302

    r = client.get("/templates")
    assert r.status_code == 302
    assert _audit_actions(client) == ["auth.login", "auth.logout"]


def test_production_rejects_default_secret(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://db/sendportal")

    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()


def test_production_rejects_sqlite(tmp_path, monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")

    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()

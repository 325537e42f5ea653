from datetime import timedelta
from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient
import pytest

from studio_platform.studio_platform.auth_service import main
from studio_platform.studio_platform.auth_service.main import app, get_account_service
from studio_platform.studio_platform.auth_service.accounts import AccountService
from studio_platform.studio_platform.auth_service.auth import PasswordHasher, ResetTokenGenerator, TokenIssuer
from studio_platform.studio_platform.auth_service.config import get_settings
from studio_platform.studio_platform.auth_service.db import Base, engine, SessionLocal
from studio_platform.studio_platform.auth_service.errors import NotFoundOrExpired
from studio_platform.studio_platform.auth_service.models import AuthEvent, User, utc_now

client = TestClient(app)
settings = get_settings()
hasher = PasswordHasher(settings)


def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def ensure_user(email="user@example.com", password="Secret123!"):
    db = SessionLocal()
    try:
        u = db.query(User).filter(User.email == email).first()
        if not u:
            u = User(email=email, first_name="A", last_name="B", password_hash=hasher.hash(password))
            db.add(u)
            db.commit()
        # return stable scalar values to avoid DetachedInstance
        return {"id": u.id, "email": email}
    finally:
        db.close()


@pytest.fixture
def mailer():
    """Swap in an account service whose email service records reset links."""
    email_service = Mock()
    email_service.send_password_reset.return_value = True
    service = AccountService(
        hasher=hasher,
        issuer=TokenIssuer(settings),
        reset_tokens=ResetTokenGenerator(settings),
        email_service=email_service,
        build_reset_link=main.build_reset_link,
    )
    app.dependency_overrides[get_account_service] = lambda: service
    yield email_service
    app.dependency_overrides.pop(get_account_service, None)


def sent_secret(email_service) -> str:
    _to, link = email_service.send_password_reset.call_args.args
    return parse_qs(urlparse(link).query)["token"][0]


def test_forgot_password_stores_only_digest(mailer):
    reset_db()
    user_info = ensure_user()

    resp = client.post("/forgotpassword", json={"email": user_info["email"]})
    assert resp.status_code == 200
    assert resp.json()["message"] == main.FORGOT_PASSWORD_MESSAGE

    to_email, link = mailer.send_password_reset.call_args.args
    assert to_email == user_info["email"]
    assert link.startswith(f"{settings.FRONTEND_URL}{settings.RESET_PATH}?token=")
    raw = sent_secret(mailer)

    db = SessionLocal()
    try:
        u = db.query(User).filter(User.email == user_info["email"]).first()
        assert u.reset_token_hash == ResetTokenGenerator.digest(raw)
        assert u.reset_token_hash != raw
        now = utc_now()
        assert now + timedelta(minutes=9) <= u.reset_token_expires <= now + timedelta(minutes=11)
    finally:
        db.close()


def test_forgot_password_unknown_email_same_answer(mailer):
    reset_db()
    ensure_user()
    known = client.post("/forgotpassword", json={"email": "user@example.com"})
    unknown = client.post("/forgotpassword", json={"email": "nobody@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert mailer.send_password_reset.call_count == 1


def test_forgot_password_email_failure_still_generic(mailer):
    reset_db()
    ensure_user()
    mailer.send_password_reset.return_value = False
    resp = client.post("/forgotpassword", json={"email": "user@example.com"})
    assert resp.status_code == 200
    assert resp.json()["message"] == main.FORGOT_PASSWORD_MESSAGE


def test_reset_password_updates_password_once(mailer):
    reset_db()
    user_info = ensure_user(password="OldPass1!")

    client.post("/forgotpassword", json={"email": user_info["email"]})
    raw = sent_secret(mailer)

    confirm = client.post(f"/resetpassword/{raw}", json={"password": "NewPass2!"})
    assert confirm.status_code == 200

    assert client.post("/login", json={"email": user_info["email"], "password": "NewPass2!"}).status_code == 200
    assert client.post("/login", json={"email": user_info["email"], "password": "OldPass1!"}).status_code == 401

    # Reuse should fail
    reuse = client.post(f"/resetpassword/{raw}", json={"password": "Another!3"})
    assert reuse.status_code == 400
    assert reuse.json()["detail"] == "Invalid or expired reset token."

    db = SessionLocal()
    try:
        u = db.query(User).filter(User.email == user_info["email"]).first()
        assert u.reset_token_hash is None
        assert u.reset_token_expires is None
        events = [e.event_type for e in db.query(AuthEvent).filter(AuthEvent.user_id == u.id).all()]
        assert "password_reset_request" in events
        assert "password_reset" in events
    finally:
        db.close()


def test_new_request_supersedes_old_secret(mailer):
    reset_db()
    ensure_user()
    client.post("/forgotpassword", json={"email": "user@example.com"})
    first = sent_secret(mailer)
    client.post("/forgotpassword", json={"email": "user@example.com"})
    second = sent_secret(mailer)
    assert first != second

    assert client.post(f"/resetpassword/{first}", json={"password": "x1"}).status_code == 400
    assert client.post(f"/resetpassword/{second}", json={"password": "x2"}).status_code == 200


def test_reset_password_rejects_invalid_token():
    reset_db()
    ensure_user()
    bad = client.post("/resetpassword/not-a-token", json={"password": "x"})
    assert bad.status_code == 400
    assert bad.json()["detail"] == "Invalid or expired reset token."


def test_reset_password_requires_password(mailer):
    reset_db()
    ensure_user()
    client.post("/forgotpassword", json={"email": "user@example.com"})
    resp = client.post(f"/resetpassword/{sent_secret(mailer)}", json={})
    assert resp.status_code == 422


# ---------------- ResetTokenGenerator ----------------

def test_generate_secret_shape():
    secret = ResetTokenGenerator(settings).generate()
    # 32 random bytes, URL-safe
    assert len(secret.raw) >= 43
    assert all(c.isalnum() or c in "-_" for c in secret.raw)
    assert secret.digest == ResetTokenGenerator.digest(secret.raw)
    assert len(secret.digest) == 64


def test_resolve_returns_user_then_not_found_after_consume():
    reset_db()
    user_info = ensure_user()
    generator = ResetTokenGenerator(settings)
    db = SessionLocal()
    try:
        user = db.get(User, user_info["id"])
        raw = generator.issue_for(user, db)

        resolved = generator.resolve(raw, db)
        assert resolved.id == user_info["id"]

        generator.consume(resolved, hasher.hash("Fresh1!"), db)
        with pytest.raises(NotFoundOrExpired):
            generator.resolve(raw, db)
    finally:
        db.close()


def test_resolve_expired_secret_is_not_found():
    reset_db()
    user_info = ensure_user()
    generator = ResetTokenGenerator(settings)
    db = SessionLocal()
    try:
        user = db.get(User, user_info["id"])
        raw = generator.issue_for(user, db, now=utc_now() - timedelta(minutes=11))
        with pytest.raises(NotFoundOrExpired):
            generator.resolve(raw, db)
    finally:
        db.close()


def test_consume_twice_fails():
    reset_db()
    user_info = ensure_user()
    generator = ResetTokenGenerator(settings)
    db = SessionLocal()
    try:
        user = db.get(User, user_info["id"])
        raw = generator.issue_for(user, db)
        first = generator.resolve(raw, db)
        generator.consume(first, hasher.hash("One1!"), db)
        with pytest.raises(NotFoundOrExpired):
            generator.consume(first, hasher.hash("Two2!"), db)
    finally:
        db.close()

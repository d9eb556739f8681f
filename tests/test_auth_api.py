"""Login, refresh rotation, logout and signup over HTTP."""
import threading
from datetime import datetime, timedelta, timezone

import jwt

from conftest import PASSWORD, bearer, login, set_cookies
from qconnect.models import refresh_tokens, storage
from qconnect.models.refresh_token import RefreshToken
from qconnect.utils.security import hash_token, issue_refresh_token


def _refresh(client, raw):
    return client.post("/api/v1/auth/refresh", headers={"Cookie": f"refreshToken={raw}"})


def _stored_hashes(app):
    with app.app_context():
        return {row.token_hash for row in storage.get_session().query(RefreshToken).all()}


class TestLogin:
    def test_login_sets_both_cookies(self, app, client, patient):
        resp = login(client, "alice@example.com")
        assert resp.status_code == 200, resp.get_data(as_text=True)
        cookies = set_cookies(resp)

        access = cookies["token"]
        claims = jwt.decode(access.value, app.config["JWT_SECRET"], algorithms=["HS256"], options={"verify_iss": False})
        assert claims["role"] == "patient"
        assert claims["email"] == "alice@example.com"
        assert access["httponly"]
        assert access["samesite"] == "Strict"
        assert access["max-age"] == str(15 * 60)

        refresh = cookies["refreshToken"]
        assert refresh["httponly"]
        assert 7 * 86400 - 60 < int(refresh["max-age"]) <= 7 * 86400
        assert _stored_hashes(app) == {hash_token(refresh.value)}

        with app.app_context():
            row = storage.get_session().query(RefreshToken).one()
            expires_at = row.expires_at.replace(tzinfo=timezone.utc)
        assert abs(expires_at - (datetime.now(timezone.utc) + timedelta(days=7))) < timedelta(minutes=1)

    def test_login_body_carries_access_token_and_user(self, client, patient):
        body = login(client, "ALICE@example.com ").get_json()["data"]
        assert body["token_type"] == "bearer"
        assert body["access_token"]
        assert body["user"]["email"] == "alice@example.com"
        assert "password_hash" not in body["user"]

    def test_wrong_password(self, client, patient):
        resp = login(client, "alice@example.com", "not-the-password")
        assert resp.status_code == 401
        assert resp.get_json()["reason"] == "INVALID_CREDENTIALS"
        assert "Set-Cookie" not in resp.headers

    def test_unknown_email_looks_the_same(self, client):
        resp = login(client, "ghost@example.com")
        assert resp.status_code == 401
        assert resp.get_json()["reason"] == "INVALID_CREDENTIALS"

    def test_malformed_body_is_400(self, client):
        resp = client.post("/api/v1/auth/login", json={"email": "not-an-email"})
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["error"] == "VALIDATION_ERROR"
        assert "password" in body["details"]

    def test_store_outage_issues_nothing(self, client, patient, monkeypatch):
        from qconnect.models import StorageUnavailable

        def down(user_id):
            raise StorageUnavailable("refresh token create failed")

        monkeypatch.setattr(refresh_tokens, "create", down)
        resp = login(client, "alice@example.com")
        assert resp.status_code == 503
        assert resp.get_json()["error"] == "SERVICE_UNAVAILABLE"
        assert "Set-Cookie" not in resp.headers


class TestRefresh:
    def test_rotation_issues_new_pair(self, app, client, patient):
        old = set_cookies(login(client, "alice@example.com"))["refreshToken"].value

        resp = _refresh(client, old)
        assert resp.status_code == 200
        cookies = set_cookies(resp)
        new = cookies["refreshToken"].value
        assert new != old
        assert cookies["token"].value
        assert _stored_hashes(app) == {hash_token(new)}

    def test_reused_token_is_rejected(self, client, patient):
        old = set_cookies(login(client, "alice@example.com"))["refreshToken"].value
        assert _refresh(client, old).status_code == 200

        replay = _refresh(client, old)
        assert replay.status_code == 401
        assert replay.get_json()["reason"] == "INVALID_REFRESH_TOKEN"

    def test_missing_cookie(self, client):
        resp = client.post("/api/v1/auth/refresh")
        assert resp.status_code == 401
        assert resp.get_json()["reason"] == "MISSING_REFRESH_TOKEN"

    def test_expired_token_is_rejected_and_removed(self, app, client, patient):
        with app.app_context():
            issued = issue_refresh_token(now=datetime.now(timezone.utc) - timedelta(days=8))
            storage.new(RefreshToken(token_hash=issued.token_hash, user_id=patient.id, expires_at=issued.expires_at))
            storage.save()
        assert _stored_hashes(app) == {issued.token_hash}

        resp = _refresh(client, issued.raw)
        assert resp.status_code == 401
        assert _stored_hashes(app) == set()

    def test_concurrent_refresh_has_one_winner(self, app, client, patient):
        raw = set_cookies(login(client, "alice@example.com"))["refreshToken"].value

        workers = 4
        barrier = threading.Barrier(workers)
        statuses = []
        lock = threading.Lock()

        def attempt():
            own_client = app.test_client(use_cookies=False)
            barrier.wait()
            status = _refresh(own_client, raw).status_code
            with lock:
                statuses.append(status)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(statuses) == [200] + [401] * (workers - 1)
        assert len(_stored_hashes(app)) == 1


class TestLogout:
    def test_logout_revokes_every_session_and_clears_cookies(self, app, client, patient):
        first = set_cookies(login(client, "alice@example.com"))["refreshToken"].value
        second = set_cookies(login(client, "alice@example.com"))["refreshToken"].value

        resp = client.post("/api/v1/auth/logout", headers={"Cookie": f"refreshToken={second}"})
        assert resp.status_code == 200
        cookies = set_cookies(resp)
        assert cookies["token"]["max-age"] == "0"
        assert cookies["refreshToken"]["max-age"] == "0"
        assert cookies["token"].value == ""

        assert _refresh(client, first).status_code == 401
        assert _refresh(client, second).status_code == 401

    def test_logout_without_cookie_still_clears(self, client):
        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert set_cookies(resp)["refreshToken"]["max-age"] == "0"

    def test_admin_forced_revocation(self, app, client, patient, admin):
        raw = set_cookies(login(client, "alice@example.com"))["refreshToken"].value
        resp = client.post(f"/api/v1/admin/users/{patient.id}/revoke-sessions", headers=bearer(app, admin))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["revoked"] == 1
        assert _refresh(client, raw).status_code == 401


class TestSignupAndMe:
    def test_signup_creates_patient(self, client):
        resp = client.post(
            "/api/v1/auth/signup",
            json={"name": "Carol", "email": "Carol@Example.com", "password": PASSWORD},
        )
        assert resp.status_code == 201
        data = resp.get_json()["data"]
        assert data["role"] == "patient"
        assert data["email"] == "carol@example.com"
        assert login(client, "carol@example.com").status_code == 200

    def test_signup_cannot_pick_role(self, client):
        resp = client.post(
            "/api/v1/auth/signup",
            json={"name": "Mallory", "email": "m@example.com", "password": PASSWORD, "role": "admin"},
        )
        assert resp.status_code == 400

    def test_signup_duplicate_email(self, client, patient):
        resp = client.post(
            "/api/v1/auth/signup",
            json={"name": "Alice", "email": "alice@example.com", "password": PASSWORD},
        )
        assert resp.status_code == 409

    def test_short_password_rejected(self, client):
        resp = client.post("/api/v1/auth/signup", json={"name": "Dan", "email": "d@example.com", "password": "short"})
        assert resp.status_code == 400
        assert "password" in resp.get_json()["details"]

    def test_me_with_login_access_token(self, client, patient):
        token = login(client, "alice@example.com").get_json()["data"]["access_token"]
        resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == patient.id

    def test_me_requires_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

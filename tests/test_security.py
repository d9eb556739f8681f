"""Unit tests for password hashing and token issuing."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from qconnect.models.enums import Role
from qconnect.utils.security import (
    Identity,
    TokenExpired,
    TokenInvalid,
    hash_password,
    hash_token,
    issue_access_token,
    issue_refresh_token,
    verify_access_token,
    verify_password,
)

IDENTITY = Identity(user_id="3f2b1c9e-0000-4000-8000-000000000001", email="alice@example.com", role=Role.patient)


class TestPasswords:
    def test_hash_is_salted_and_not_plaintext(self):
        h1 = hash_password("s3cret-pass")
        h2 = hash_password("s3cret-pass")
        assert h1 != h2
        assert "s3cret-pass" not in h1
        assert h1.startswith("$argon2")

    def test_verify_matches_only_original(self):
        stored = hash_password("s3cret-pass")
        assert verify_password("s3cret-pass", stored) is True
        assert verify_password("s3cret-pasS", stored) is False

    @pytest.mark.parametrize("stored", ["", "not-a-hash", "$argon2id$v=19$garbage", None])
    def test_corrupt_hash_fails_closed(self, stored):
        assert verify_password("anything", stored) is False

    def test_empty_password_never_matches(self):
        assert verify_password("", hash_password("x" * 8)) is False


class TestAccessTokens:
    def test_round_trip(self, ctx):
        token = issue_access_token(IDENTITY)
        assert verify_access_token(token) == IDENTITY

    def test_claims_carry_role_and_email(self, ctx, app):
        token = issue_access_token(IDENTITY)
        claims = jwt.decode(token, app.config["JWT_SECRET"], algorithms=["HS256"], options={"verify_iss": False})
        assert claims["role"] == "patient"
        assert claims["email"] == "alice@example.com"
        assert claims["type"] == "access"
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_expired_token_is_distinct_from_invalid(self, ctx):
        token = issue_access_token(IDENTITY, now=datetime.now(timezone.utc) - timedelta(hours=1))
        with pytest.raises(TokenExpired):
            verify_access_token(token)

    def test_tampered_payload_is_invalid(self, ctx):
        header, _, signature = issue_access_token(IDENTITY).split(".")
        escalated = issue_access_token(IDENTITY._replace(role=Role.admin)).split(".")[1]
        with pytest.raises(TokenInvalid):
            verify_access_token(".".join([header, escalated, signature]))

    def test_rotated_secret_invalidates_outstanding_tokens(self, ctx, app):
        token = issue_access_token(IDENTITY)
        app.config["JWT_SECRET"] = "a-brand-new-secret"
        with pytest.raises(TokenInvalid):
            verify_access_token(token)

    def test_expired_token_signed_with_other_secret_is_invalid(self, ctx):
        now = datetime.now(timezone.utc) - timedelta(hours=1)
        payload = {"sub": "x", "email": "x@example.com", "role": "admin", "type": "access",
                   "iss": "qconnect", "iat": int(now.timestamp()), "exp": int(now.timestamp()) + 60}
        token = jwt.encode(payload, "attacker-secret", algorithm="HS256")
        with pytest.raises(TokenInvalid):
            verify_access_token(token)

    @pytest.mark.parametrize("overrides", [
        {"type": "refresh"},
        {"role": "superuser"},
        {"email": ""},
    ])
    def test_unexpected_claims_are_invalid(self, ctx, app, overrides):
        now = datetime.now(timezone.utc)
        payload = {"sub": "x", "email": "x@example.com", "role": "admin", "type": "access",
                   "iss": "qconnect", "iat": int(now.timestamp()), "exp": int(now.timestamp()) + 60}
        payload.update(overrides)
        token = jwt.encode(payload, app.config["JWT_SECRET"], algorithm="HS256")
        with pytest.raises(TokenInvalid):
            verify_access_token(token)

    def test_none_algorithm_rejected(self, ctx):
        token = jwt.encode({"sub": "x", "role": "admin", "type": "access"}, None, algorithm="none")
        with pytest.raises(TokenInvalid):
            verify_access_token(token)

    def test_garbage_is_invalid(self, ctx):
        with pytest.raises(TokenInvalid):
            verify_access_token("not.a.jwt")


class TestRefreshTokens:
    def test_raw_token_has_enough_entropy_and_is_hashed(self, ctx):
        issued = issue_refresh_token()
        # token_urlsafe(48) -> 64 url-safe characters (384 bits)
        assert len(issued.raw) == 64
        assert issued.token_hash == hash_token(issued.raw)
        assert issued.token_hash != issued.raw
        assert len(issued.token_hash) == 64

    def test_tokens_are_unique(self, ctx):
        assert len({issue_refresh_token().raw for _ in range(50)}) == 50

    def test_expiry_uses_configured_days(self, ctx):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert issue_refresh_token(now=now).expires_at == now + timedelta(days=7)

"""
security helpers:
- Argon2 password hashing via argon2-cffi
- Access token issue/verify (JWT, HS256) via PyJWT
- Opaque refresh token generation and hashing
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone
from typing import NamedTuple

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import Argon2Error, InvalidHash

from flask import current_app

from qconnect.models.enums import Role

logger = logging.getLogger(__name__)

ph = PasswordHasher()

# Verified against when the email is unknown so both login failures cost the same
_DUMMY_HASH = ph.hash("qconnect-dummy-password")


class Identity(NamedTuple):
    user_id: str
    email: str
    role: Role


class IssuedRefreshToken(NamedTuple):
    raw: str
    token_hash: str
    expires_at: datetime


class TokenInvalid(Exception):
    """Bad signature, malformed token or unexpected claims."""


class TokenExpired(Exception):
    """Signature is valid but the token is past its expiry."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a plaintext password using argon2.

    Any failure, including a corrupt stored hash, counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (Argon2Error, InvalidHash):
        return False
    except Exception:
        logger.exception("password verification failed unexpectedly")
        return False


def burn_password_check(password: str) -> None:
    verify_password(password or "-", _DUMMY_HASH)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_access_token(identity: Identity, now: datetime | None = None) -> str:
    """Sign a short-lived access token carrying the identity claims."""
    now = now or _now()
    exp = now + current_app.config["ACCESS_TOKEN_EXPIRES"]
    payload = {
        "iss": current_app.config.get("JWT_ISSUER", "qconnect"),
        "sub": str(identity.user_id),
        "email": identity.email,
        "role": Role(identity.role).value,
        "type": "access",
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def verify_access_token(token: str) -> Identity:
    """
    Decode and validate an access token.
    Raises TokenExpired when only the expiry check fails, TokenInvalid otherwise.
    """
    try:
        decoded = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            issuer=current_app.config.get("JWT_ISSUER", "qconnect"),
            options={"require": ["exp", "iat", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired("Token expired")
    except jwt.InvalidTokenError as exc:
        raise TokenInvalid(f"Invalid token: {exc}")

    if decoded.get("type") != "access":
        raise TokenInvalid("Wrong token type")
    try:
        role = Role(decoded.get("role"))
    except ValueError:
        raise TokenInvalid("Unknown role")
    email = decoded.get("email")
    if not isinstance(email, str) or not email:
        raise TokenInvalid("Missing email claim")
    return Identity(user_id=str(decoded["sub"]), email=email, role=role)


def issue_refresh_token(now: datetime | None = None) -> IssuedRefreshToken:
    """Generate an opaque refresh token (384 bits) and the hash to store for it."""
    now = now or _now()
    raw = secrets.token_urlsafe(48)
    return IssuedRefreshToken(
        raw=raw,
        token_hash=hash_token(raw),
        expires_at=now + current_app.config["REFRESH_TOKEN_EXPIRES"],
    )

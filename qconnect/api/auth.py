"""
Authentication blueprint:
- POST /auth/signup
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- GET  /auth/me

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens (JWT, HS256) and long-lived opaque refresh tokens
- Stores only refresh token hashes (RefreshToken model); every refresh consumes
  the presented token and issues a new pair (rotation)
- Both tokens travel as HttpOnly cookies; the access token is also returned in
  the body for clients that prefer the Authorization header
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, current_app

from qconnect.api.errors import Conflict, NotFound, Unauthorized
from qconnect.api.middleware import current_identity
from qconnect.models import storage, refresh_tokens
from qconnect.models.enums import Role
from qconnect.models.user import User
from qconnect.models.schemas.user import SignupSchema, LoginSchema, UserOutSchema
from qconnect.utils.cookies import clear_auth_cookies, set_auth_cookies
from qconnect.utils.security import (
    Identity,
    burn_password_check,
    hash_password,
    issue_access_token,
    verify_password,
)

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

signup_schema = SignupSchema()
login_schema = LoginSchema()
user_out_schema = UserOutSchema()


def _issue_session(user: User, message: str):
    """Persist a new refresh token, sign an access token and set both cookies."""
    # The refresh half is stored first: if that fails no access token goes out
    refresh_raw, refresh_expires_at = refresh_tokens.create(user.id)
    access = issue_access_token(Identity(user_id=user.id, email=user.email, role=user.role))

    response = jsonify(
        {
            "message": message,
            "data": {
                "user": user_out_schema.dump(user),
                "access_token": access,
                "token_type": "bearer",
                "expires_in": int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
            },
        }
    )
    return set_auth_cookies(response, access, refresh_raw, refresh_expires_at)


@bp.post("/signup")
def signup():
    """
    Register a new patient account.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            email: { type: string }
            password: { type: string }
            phone: { type: string }
    responses:
      201:
        description: Created
      400:
        description: Validation error
      409:
        description: Email already registered
    """
    payload = request.get_json(silent=True) or {}
    data = signup_schema.load(payload)

    if User.find_by_email(data["email"]):
        raise Conflict("Email already registered")

    user = User(
        name=data["name"],
        email=data["email"],
        phone=data.get("phone"),
        password_hash=hash_password(data["password"]),
        role=Role.patient,
    )
    storage.new(user)
    storage.save()
    logger.info("signup for user %s", user.id)

    return jsonify({"message": "Signup successful", "data": user_out_schema.dump(user)}), 201


@bp.post("/login")
def login():
    """
    Login: sets access and refresh cookies
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns the user and access token, sets cookies)
      400:
        description: Validation error
      401:
        description: Invalid credentials
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)

    user = User.find_by_email(data["email"])
    if user is None:
        burn_password_check(data["password"])
        logger.warning("login failed: unknown email")
        raise Unauthorized("Invalid credentials", reason="INVALID_CREDENTIALS")
    if not verify_password(data["password"], user.password_hash):
        logger.warning("login failed for user %s", user.id)
        raise Unauthorized("Invalid credentials", reason="INVALID_CREDENTIALS")

    logger.info("login for user %s", user.id)
    return _issue_session(user, "Login successful")


@bp.post("/refresh")
def refresh():
    """
    Exchange the refresh cookie for a new access/refresh pair (rotation)
    ---
    tags:
      - Auth
    responses:
      200:
        description: Refreshed (new cookies set)
      401:
        description: Missing, invalid, reused or expired refresh token
    """
    raw = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if not raw:
        raise Unauthorized("Missing refresh token", reason="MISSING_REFRESH_TOKEN")

    user = refresh_tokens.consume(raw)
    if user is None:
        logger.warning("refresh rejected: unknown, reused or expired token")
        raise Unauthorized("Invalid or expired refresh token", reason="INVALID_REFRESH_TOKEN")

    logger.info("refresh for user %s", user.id)
    return _issue_session(user, "Refreshed")


@bp.post("/logout")
def logout():
    """
    Logout: revokes every refresh token of the cookie's owner and clears cookies
    ---
    tags:
      - Auth
    responses:
      200:
        description: Logged out
    """
    raw = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
    if raw:
        owner = refresh_tokens.owner_of(raw)
        if owner:
            refresh_tokens.revoke_all(owner)
            logger.info("logout for user %s", owner)

    return clear_auth_cookies(jsonify({"message": "Logged out"}))


@bp.get("/me")
def me():
    """
    Get current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
      404:
        description: User no longer exists
    """
    identity = current_identity()
    user = User.find_by_id(identity.user_id)
    if user is None:
        raise NotFound("User not found")
    return jsonify({"data": user_out_schema.dump(user)}), 200

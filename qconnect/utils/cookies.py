"""
Auth cookies: `token` (access) and `refreshToken` (refresh), both HttpOnly.
"""
from datetime import datetime, timezone

from flask import current_app


def _cookie_kwargs() -> dict:
    return {
        "path": "/",
        "httponly": True,
        "secure": bool(current_app.config.get("COOKIE_SECURE")),
        "samesite": current_app.config.get("COOKIE_SAMESITE", "Strict"),
    }


def set_auth_cookies(response, access_token: str, refresh_token: str, refresh_expires_at: datetime):
    config = current_app.config
    access_max_age = int(config["ACCESS_TOKEN_EXPIRES"].total_seconds())
    refresh_max_age = max(0, int((refresh_expires_at - datetime.now(timezone.utc)).total_seconds()))
    response.set_cookie(config["ACCESS_COOKIE_NAME"], access_token, max_age=access_max_age, **_cookie_kwargs())
    response.set_cookie(config["REFRESH_COOKIE_NAME"], refresh_token, max_age=refresh_max_age, **_cookie_kwargs())
    return response


def clear_auth_cookies(response):
    config = current_app.config
    for name in (config["ACCESS_COOKIE_NAME"], config["REFRESH_COOKIE_NAME"]):
        response.set_cookie(name, "", max_age=0, **_cookie_kwargs())
    return response

"""
Session middleware.

Each request to a protected route walks: extract credential -> validate
access token -> authorize against the policy table -> forward with
g.identity set. Any step may reject with 401 or 403 instead. Security
headers are added to every response afterwards, whatever the outcome.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from flask import current_app, g, request

from qconnect.api.errors import Forbidden, Unauthorized
from qconnect.api.policy import Policy, default_policy
from qconnect.utils.security import TokenExpired, TokenInvalid, verify_access_token

logger = logging.getLogger(__name__)

BEARER_RE = re.compile(r"^Bearer\s+(?P<token>\S+)\s*$", re.IGNORECASE)

MISSING_TOKEN = "MISSING_TOKEN"
INVALID_TOKEN = "INVALID_TOKEN"
EXPIRED_TOKEN = "EXPIRED_TOKEN"

# Interactive docs served by flasgger need inline scripts
CSP_EXEMPT_PREFIXES = ("/apidocs", "/flasgger_static")


def extract_token(cookie_name: str) -> Optional[str]:
    """Bearer token from the Authorization header, else the access cookie."""
    auth = request.headers.get("Authorization", "")
    match = BEARER_RE.match(auth.strip()) if auth else None
    if match:
        return match.group("token")
    return request.cookies.get(cookie_name) or None


class SessionMiddleware:
    def __init__(self, app=None, policy: Policy | None = None):
        self.policy = policy
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        if self.policy is None:
            self.policy = default_policy(app.config.get("API_PREFIX", "/api/v1"))
        app.extensions["session_middleware"] = self
        app.before_request(self.authenticate)
        app.after_request(self.apply_security_headers)

    def authenticate(self):
        rule = self.policy.match(request.path, request.method)
        if rule is None:
            return None

        token = extract_token(current_app.config["ACCESS_COOKIE_NAME"])
        if not token:
            raise Unauthorized("Token missing", reason=MISSING_TOKEN)

        try:
            identity = verify_access_token(token)
        except TokenExpired:
            raise Unauthorized("Access token expired", reason=EXPIRED_TOKEN)
        except TokenInvalid as exc:
            logger.info("rejected access token: %s", exc)
            raise Unauthorized("Invalid token", reason=INVALID_TOKEN)

        # No view matched (404/405): let Flask raise the routing error
        if request.routing_exception is not None:
            g.identity = identity
            return None

        if not rule.predicate(identity, request.view_args or {}):
            logger.warning(
                "role %s denied %s %s", identity.role.value, request.method, request.path,
            )
            raise Forbidden("Access denied")

        g.identity = identity
        return None

    def apply_security_headers(self, response):
        config = current_app.config
        headers = response.headers
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        headers.setdefault("Permissions-Policy", "geolocation=(), microphone=()")
        csp = config.get("CSP_DIRECTIVES")
        if csp and not request.path.startswith(CSP_EXEMPT_PREFIXES):
            headers.setdefault("Content-Security-Policy", csp)
        if request.is_secure or config.get("ENABLE_HSTS"):
            headers.setdefault("Strict-Transport-Security", "max-age=63072000; includeSubDomains; preload")
        return response


def current_identity():
    """Identity set by SessionMiddleware for this request, or None on public routes."""
    return getattr(g, "identity", None)

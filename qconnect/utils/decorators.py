from __future__ import annotations
from functools import wraps

from qconnect.api.errors import Forbidden, Unauthorized
from qconnect.api.middleware import current_identity


def identity_required():
    """Route-level guard; the session middleware normally rejects first."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if current_identity() is None:
                raise Unauthorized("Token missing", reason="MISSING_TOKEN")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the identity's role is one of required_roles.
    """
    req = {str(r) for r in required_roles or []}

    def decorator(fn):
        @wraps(fn)
        @identity_required()
        def wrapper(*args, **kwargs):
            if current_identity().role.value not in req:
                raise Forbidden("Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator

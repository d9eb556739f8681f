"""
Route authorization policy.

An ordered table of rules; the first rule whose path prefix and method set
match the request decides who may pass. Requests matching no rule are public.
"""
from __future__ import annotations

from typing import Callable, FrozenSet, Iterable, NamedTuple, Optional

from qconnect.models.enums import Role
from qconnect.utils.security import Identity

# OPTIONS is left out so CORS preflight requests pass through
ALL_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"})
READ_METHODS = frozenset({"GET", "HEAD"})

# predicate(identity, view_args) -> bool
Predicate = Callable[[Identity, dict], bool]


def authenticated(identity: Identity, view_args: dict) -> bool:
    return True


def admin_only(identity: Identity, view_args: dict) -> bool:
    return identity.role == Role.admin


def self_or_admin(identity: Identity, view_args: dict) -> bool:
    if identity.role == Role.admin:
        return True
    target = (view_args or {}).get("user_id")
    return target is not None and str(target) == identity.user_id


class Rule(NamedTuple):
    prefix: str
    methods: FrozenSet[str]
    predicate: Predicate

    def matches(self, path: str, method: str) -> bool:
        if method.upper() not in self.methods:
            return False
        prefix = self.prefix.rstrip("/")
        return path == prefix or path.startswith(prefix + "/")


class Policy:
    def __init__(self, rules: Iterable[Rule]):
        self.rules = list(rules)

    def match(self, path: str, method: str) -> Optional[Rule]:
        for rule in self.rules:
            if rule.matches(path, method):
                return rule
        return None


def default_policy(api_prefix: str = "/api/v1") -> Policy:
    p = api_prefix.rstrip("/")
    return Policy([
        Rule(f"{p}/admin", ALL_METHODS, admin_only),
        Rule(f"{p}/users", frozenset({"POST", "DELETE"}), admin_only),
        Rule(f"{p}/users", frozenset({"PUT", "PATCH"}), self_or_admin),
        Rule(f"{p}/users", READ_METHODS, authenticated),
        Rule(f"{p}/auth/me", ALL_METHODS, authenticated),
    ])

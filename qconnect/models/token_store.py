"""
Refresh token persistence.

Each refresh token is single use: consume() deletes the row in the same
statement that reads it (DELETE ... RETURNING), so two requests presenting
the same token cannot both win.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError

from qconnect.models.base_model import as_utc, utcnow
from qconnect.models.db_storage import StorageUnavailable
from qconnect.models.refresh_token import RefreshToken
from qconnect.models.user import User
from qconnect.utils import security

logger = logging.getLogger(__name__)


class RefreshTokenStore:
    def __init__(self, storage, clock: Optional[Callable[[], datetime]] = None):
        self.storage = storage
        self.clock = clock or utcnow

    def _write(self, action: str, fn):
        """Run fn in the current session and commit; storage errors become StorageUnavailable."""
        session = self.storage.get_session()
        try:
            result = fn(session)
            session.commit()
            return result
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("refresh token %s failed: %s", action, exc.__class__.__name__)
            raise StorageUnavailable(f"refresh token {action} failed") from exc

    def create(self, user_id: str) -> Tuple[str, datetime]:
        """Mint a refresh token for user_id and persist its hash. Returns (raw, expires_at)."""
        issued = security.issue_refresh_token(now=self.clock())

        def _insert(session):
            session.add(RefreshToken(
                token_hash=issued.token_hash,
                user_id=str(user_id),
                expires_at=issued.expires_at,
            ))

        self._write("create", _insert)
        return issued.raw, issued.expires_at

    def consume(self, raw: str) -> Optional[User]:
        """
        Exchange a raw refresh token for its owner, deleting the record.
        Returns None for unknown, already consumed or expired tokens.
        """
        if not raw:
            return None
        token_hash = security.hash_token(raw)
        stmt = (
            delete(RefreshToken)
            .where(RefreshToken.token_hash == token_hash)
            .returning(RefreshToken.user_id, RefreshToken.expires_at)
        )
        row = self._write("consume", lambda session: session.execute(stmt).first())
        if row is None:
            return None
        if as_utc(row.expires_at) <= self.clock():
            logger.info("expired refresh token removed for user %s", row.user_id)
            return None
        try:
            return self.storage.get(User, row.user_id)
        except SQLAlchemyError as exc:
            raise StorageUnavailable("user lookup failed") from exc

    def owner_of(self, raw: str) -> Optional[str]:
        """user_id of the record for raw, without consuming it."""
        if not raw:
            return None
        session = self.storage.get_session()
        try:
            return session.execute(
                select(RefreshToken.user_id).where(RefreshToken.token_hash == security.hash_token(raw))
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageUnavailable("refresh token lookup failed") from exc

    def revoke_all(self, user_id: str) -> int:
        """Delete every refresh token owned by user_id."""
        stmt = delete(RefreshToken).where(RefreshToken.user_id == str(user_id))
        count = self._write("revoke", lambda session: session.execute(stmt).rowcount)
        logger.info("revoked %d refresh token(s) for user %s", count, user_id)
        return count

    def count_live(self) -> int:
        session = self.storage.get_session()
        try:
            return session.execute(
                select(func.count()).select_from(RefreshToken).where(RefreshToken.expires_at > self.clock())
            ).scalar_one()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StorageUnavailable("refresh token count failed") from exc

    def purge_expired(self) -> int:
        """Bulk delete of expired rows (consume() also removes them lazily)."""
        stmt = delete(RefreshToken).where(RefreshToken.expires_at <= self.clock())
        return self._write("purge", lambda session: session.execute(stmt).rowcount)

"""
Persistent single-use record of outstanding refresh tokens.

Every operation runs in its own short transaction against the pooled engine.
``consume`` is one DELETE statement whose affected-row count decides the
winner, so concurrent callers racing on the same ``jti`` cannot both observe
success.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import StoreUnavailable
from app.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RefreshRecord:
    jti: str
    subject: str
    expires_at: datetime


class TokenStore:
    """SQLAlchemy-backed refresh token store."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    # ─── Upsert ─────────────────────────────────
    async def persist(self, jti: str, subject: str, expires_at: datetime) -> None:
        """Insert the record for ``jti`` or overwrite its subject/expiry."""
        values = {"jti": jti, "user_id": str(subject), "expires_at": expires_at}
        try:
            async with self._session_factory.begin() as session:
                conn = await session.connection()
                dialect = conn.dialect.name

                if dialect in ("sqlite", "postgresql"):
                    insert = sqlite_insert if dialect == "sqlite" else postgresql_insert
                    stmt = insert(RefreshToken).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[RefreshToken.jti],
                        set_={
                            "user_id": stmt.excluded.user_id,
                            "expires_at": stmt.excluded.expires_at,
                        },
                    )
                    await session.execute(stmt)
                elif dialect in ("mysql", "mariadb"):
                    stmt = mysql_insert(RefreshToken).values(**values)
                    stmt = stmt.on_duplicate_key_update(
                        user_id=stmt.inserted.user_id,
                        expires_at=stmt.inserted.expires_at,
                    )
                    await session.execute(stmt)
                else:
                    await session.merge(RefreshToken(**values))
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist refresh token: {e}")
            raise StoreUnavailable("Failed to persist refresh token") from e

    # ─── Atomic single use ──────────────────────
    async def consume(self, jti: str) -> bool:
        """
        Delete the live record for ``jti``.

        Returns True only for the caller whose DELETE removed the row.
        Records past their expiry are never consumable.
        """
        try:
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    delete(RefreshToken).where(
                        RefreshToken.jti == jti,
                        RefreshToken.expires_at > self._clock(),
                    )
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Failed to consume refresh token: {e}")
            raise StoreUnavailable("Failed to consume refresh token") from e

    # ─── Lookup ─────────────────────────────────
    async def get(self, jti: str) -> Optional[RefreshRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(RefreshToken).where(RefreshToken.jti == jti)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailable("Failed to read refresh token") from e

        if row is None:
            return None
        return RefreshRecord(jti=row.jti, subject=row.user_id, expires_at=row.expires_at)

    # ─── Bulk revocation ────────────────────────
    async def revoke_subject(self, subject: str) -> int:
        """Delete every outstanding record of ``subject`` (logout everywhere)."""
        try:
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    delete(RefreshToken).where(RefreshToken.user_id == str(subject))
                )
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Failed to revoke sessions for user_id {subject}: {e}")
            raise StoreUnavailable("Failed to revoke refresh tokens") from e

    async def purge_expired(self) -> int:
        """Remove records whose expiry has passed."""
        try:
            async with self._session_factory.begin() as session:
                result = await session.execute(
                    delete(RefreshToken).where(RefreshToken.expires_at <= self._clock())
                )
                return result.rowcount
        except SQLAlchemyError as e:
            raise StoreUnavailable("Failed to purge expired refresh tokens") from e


async def purge_loop(store: TokenStore, interval_seconds: float) -> None:
    """Sweep expired records every ``interval_seconds`` until cancelled."""
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                purged = await store.purge_expired()
            except StoreUnavailable as e:
                logger.warning(f"Periodic refresh token purge failed: {e}")
            else:
                if purged:
                    logger.info(f"Purged {purged} expired refresh token(s)")
    except asyncio.CancelledError:
        logger.info("Refresh token purge task stopped")
        raise

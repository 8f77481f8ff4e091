"""Just-in-time user provisioning from the identity provider profile."""

import logging
from typing import Optional

from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import StoreUnavailable
from app.models.user import User

logger = logging.getLogger(__name__)


class UserDirectory:
    """Idempotent user upsert, called once per login before tokens are issued."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def upsert(
        self,
        user_id: int,
        username: str,
        display_name: str,
        avatar_url: Optional[str] = None,
    ) -> None:
        """
        Create the user or refresh its username/avatar.

        ``display_name`` is only written on first creation so a name the user
        changed locally survives later logins.
        """
        values = {
            "id": user_id,
            "username": username,
            "display_name": display_name,
            "avatar_url": avatar_url,
        }
        try:
            async with self._session_factory.begin() as session:
                conn = await session.connection()
                dialect = conn.dialect.name

                if dialect in ("sqlite", "postgresql"):
                    insert = sqlite_insert if dialect == "sqlite" else postgresql_insert
                    stmt = insert(User).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[User.id],
                        set_={
                            "username": stmt.excluded.username,
                            "avatar_url": stmt.excluded.avatar_url,
                        },
                    )
                    await session.execute(stmt)
                elif dialect in ("mysql", "mariadb"):
                    stmt = mysql_insert(User).values(**values)
                    stmt = stmt.on_duplicate_key_update(
                        username=stmt.inserted.username,
                        avatar_url=stmt.inserted.avatar_url,
                    )
                    await session.execute(stmt)
                else:
                    user = await session.get(User, user_id)
                    if user is None:
                        session.add(User(**values))
                    else:
                        user.username = username
                        user.avatar_url = avatar_url
        except SQLAlchemyError as e:
            logger.error(f"Failed to upsert user on login: {e}")
            raise StoreUnavailable("Failed to upsert user") from e

    async def get(self, user_id: int) -> Optional[User]:
        async with self._session_factory() as session:
            return await session.get(User, user_id)

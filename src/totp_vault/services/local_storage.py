"""Local storage — small persisted client state, backed by the preferences table."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from totp_vault.database.repository import PreferenceRepository

logger = logging.getLogger(__name__)

ENCRYPTED_PASSWORD_KEY = "encryptedPassword"


class LocalStorage:
    """String key/value store; each call runs in its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_item(self, key: str) -> str | None:
        async with self._session_factory() as session:
            return await PreferenceRepository(session).get(key)

    async def has_item(self, key: str) -> bool:
        return await self.get_item(key) is not None

    async def set_item(self, key: str, value: str) -> None:
        async with self._session_factory() as session:
            await PreferenceRepository(session).set(key, value)
            await session.commit()
        logger.info("Stored local item %s", key)

    async def remove_item(self, key: str) -> None:
        async with self._session_factory() as session:
            removed = await PreferenceRepository(session).delete(key)
            await session.commit()
        if removed:
            logger.info("Removed local item %s", key)

"""Preference repository — data access layer for local key/value state."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from totp_vault.models.preference import Preference


class PreferenceRepository:
    """Encapsulates all database queries related to preferences."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, key: str) -> str | None:
        """Return the stored value for *key*, or ``None``."""
        stmt = select(Preference.value).where(Preference.key == key)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        """Insert or overwrite *key*.  The caller commits."""
        existing = await self._session.get(Preference, key)
        if existing is None:
            self._session.add(Preference(key=key, value=value))
        else:
            existing.value = value
        await self._session.flush()

    async def delete(self, key: str) -> bool:
        """Remove *key*; returns ``True`` if a row was deleted."""
        result = await self._session.execute(delete(Preference).where(Preference.key == key))
        return result.rowcount > 0

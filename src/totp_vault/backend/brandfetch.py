"""Brandfetch search client — finds a logo URL for a service issuer."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from totp_vault.config import settings

logger = logging.getLogger(__name__)


class BrandLookupError(Exception):
    """The brand search request failed or returned garbage."""


class Brand(BaseModel):
    brandId: str
    claimed: bool = False
    domain: str = ""
    icon: str | None = None
    name: str | None = None


_brands = TypeAdapter(list[Brand])


class BrandfetchClient:
    """Async wrapper around the Brandfetch search endpoint."""

    def __init__(
        self,
        client_id: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client_id = settings.brandfetch_client_id if client_id is None else client_id
        self._base_url = (base_url or settings.brandfetch_base_url).rstrip("/")
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._client_id)

    async def search(self, name: str) -> list[Brand]:
        """Search brands matching *name*."""
        url = f"{self._base_url}/search/{quote(name, safe='')}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                resp = await client.get(url, params={"c": self._client_id})
        except httpx.HTTPError as exc:
            raise BrandLookupError(f"Brand search request error: {exc}") from exc

        if resp.status_code != 200:
            raise BrandLookupError(f"Brand search failed: HTTP {resp.status_code}")
        try:
            return _brands.validate_python(resp.json())
        except (ValueError, ValidationError) as exc:
            raise BrandLookupError("Brand search returned an unexpected body") from exc

    async def find_icon(self, issuer: str) -> str:
        """Return the first matching brand icon for *issuer*, or ``""``.

        Returns ``""`` without a request when no client id is configured
        or the issuer is empty.
        """
        if not self.enabled or not issuer:
            return ""
        brands = await self.search(issuer)
        if not brands:
            logger.info("No brand found for issuer %r", issuer)
            return ""
        return brands[0].icon or ""

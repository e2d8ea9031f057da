"""Vault backend — the encrypted service store behind the command adapter.

File layout::

    salt (32 bytes) | nonce (12 bytes) | AES-256-GCM(JSON service map)

The key is derived from the user's password with PBKDF2.  Every
successful unlock of an existing file re-keys it with a fresh salt.

All public coroutines return JSON-shaped values so that the same results
can be handed out in-process or over HTTP.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pyotp
from cryptography.exceptions import InvalidTag
from pydantic import ValidationError

from totp_vault.backend import crypto
from totp_vault.backend.brandfetch import BrandfetchClient, BrandLookupError
from totp_vault.config import settings
from totp_vault.models.service import PayloadError, Service, TotpAlgorithm, decode_service_map

logger = logging.getLogger(__name__)

_DIGESTS = {
    TotpAlgorithm.SHA1: hashlib.sha1,
    TotpAlgorithm.SHA256: hashlib.sha256,
    TotpAlgorithm.SHA512: hashlib.sha512,
}


class StorageError(Exception):
    """A store operation could not be completed."""


def parse_service_uri(uri: str) -> Service:
    """Build a :class:`Service` from an ``otpauth://totp/...`` URI.

    Raises ``ValueError`` if the URI is not a usable TOTP provisioning
    URI.  The service id is the issuer followed by the account name.
    """
    otp = pyotp.parse_uri(uri.strip())
    if not isinstance(otp, pyotp.TOTP):
        raise ValueError("Only TOTP provisioning URIs are supported")
    if not otp.name:
        raise ValueError("Provisioning URI has no account name")
    otp.byte_secret()  # rejects secrets that are not base32

    algorithm = TotpAlgorithm(otp.digest().name.upper())
    issuer = otp.issuer or ""
    return Service(
        id=f"{issuer}{otp.name}",
        issuer=issuer,
        name=otp.name,
        secret=otp.secret,
        algorithm=algorithm,
        digits=otp.digits,
        period=otp.interval,
    )


def current_token(service: Service, now: float) -> dict[str, Any]:
    """Return the code valid at *now* and the epoch second it expires."""
    otp = pyotp.TOTP(
        service.secret,
        digits=service.digits,
        digest=_DIGESTS[service.algorithm],
        interval=service.period,
    )
    timecode = int(now) // service.period
    return {"token": otp.at(int(now)), "next_step_time": (timecode + 1) * service.period}


class VaultBackend:
    """In-process implementation of the store commands."""

    def __init__(
        self,
        path: Path | str | None = None,
        iterations: int | None = None,
        brands: BrandfetchClient | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path) if path is not None else settings.vault_path
        self._iterations = iterations or settings.kdf_iterations
        self._brands = brands or BrandfetchClient()
        self._clock = clock
        self._key: bytes | None = None
        self._salt: bytes | None = None
        self._services: dict[str, Service] = {}

    @property
    def unlocked(self) -> bool:
        return self._key is not None

    # ── Commands ─────────────────────────────────────────

    async def setup_storage_keys(self, user_pass: str) -> dict[str, Any]:
        """Unlock (or create) the vault with *user_pass*."""
        if self._path.exists():
            self._services = self._read(user_pass)
            self._rekey(user_pass)
            self._save()
        else:
            logger.info("No vault at %s, starting an empty one", self._path)
            self._services = {}
            self._rekey(user_pass)

        logger.info("Vault unlocked with %d service(s)", len(self._services))
        return self._dump()

    async def add_service(self, totp_uri: str) -> dict[str, Any]:
        """Parse *totp_uri* and store the service.

        An unparseable URI is not an error: the result is an empty map.
        """
        self._require_unlocked()
        try:
            service = parse_service_uri(totp_uri)
        except ValueError as exc:
            logger.info("Rejected provisioning URI: %s", exc)
            return {}

        try:
            icon = await self._brands.find_icon(service.issuer)
        except BrandLookupError as exc:
            logger.warning("Icon lookup for %r failed: %s", service.issuer, exc)
            icon = ""

        self._services[service.id] = service.with_display(icon=icon)
        self._save()
        logger.info("Service %s stored", service.id)
        return self._dump()

    async def update_service(self, service: dict[str, Any]) -> None:
        """Replace the display fields of an existing service."""
        self._require_unlocked()
        try:
            updated = Service.model_validate(service)
        except ValidationError as exc:
            raise StorageError("Malformed service") from exc

        current = self._get(updated.id)
        self._services[updated.id] = current.with_display(
            name=updated.name, issuer=updated.issuer, icon=updated.icon
        )
        self._save()
        logger.info("Service %s updated", updated.id)

    async def remove_service(self, service_id: str) -> dict[str, Any]:
        """Delete a service and return the remaining map."""
        self._require_unlocked()
        self._get(service_id)
        del self._services[service_id]
        self._save()
        logger.info("Service %s removed", service_id)
        return self._dump()

    async def get_services_tokens(self) -> dict[str, Any]:
        """Current code and expiry for every stored service."""
        self._require_unlocked()
        now = self._clock()
        tokens = {}
        for service_id, service in self._services.items():
            try:
                tokens[service_id] = current_token(service, now)
            except ValueError as exc:
                raise StorageError(f"Couldn't generate a token for {service_id}") from exc
        return tokens

    async def get_service_icon(self, service_id: str) -> str:
        """Look the service's icon up again and store the result."""
        self._require_unlocked()
        service = self._get(service_id)
        try:
            icon = await self._brands.find_icon(service.issuer)
        except BrandLookupError as exc:
            self._services[service_id] = service.with_display(icon="")
            self._save()
            raise StorageError(str(exc)) from exc

        self._services[service_id] = service.with_display(icon=icon)
        self._save()
        return icon

    # ── Private helpers ──────────────────────────────────

    def _require_unlocked(self) -> None:
        if not self.unlocked:
            raise StorageError("Storage is locked")

    def _get(self, service_id: str) -> Service:
        try:
            return self._services[service_id]
        except KeyError:
            raise StorageError("Service not found") from None

    def _dump(self) -> dict[str, Any]:
        return {service_id: service.to_wire() for service_id, service in self._services.items()}

    def _rekey(self, user_pass: str) -> None:
        self._salt = crypto.generate_salt()
        self._key = crypto.derive_key(user_pass, self._salt, self._iterations)

    def _read(self, user_pass: str) -> dict[str, Service]:
        blob = self._path.read_bytes()
        salt, payload = blob[: crypto.SALT_SIZE], blob[crypto.SALT_SIZE :]
        key = crypto.derive_key(user_pass, salt, self._iterations)
        try:
            raw = crypto.decrypt(payload, key)
        except (InvalidTag, ValueError) as exc:
            raise StorageError("Couldn't decrypt the storage file") from exc
        try:
            return decode_service_map(json.loads(raw))
        except (PayloadError, ValueError) as exc:
            raise StorageError("Storage file is corrupted") from exc

    def _save(self) -> None:
        assert self._key is not None and self._salt is not None
        raw = json.dumps(self._dump()).encode()
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(self._salt + crypto.encrypt(raw, self._key))

"""Platform secret — wraps the vault password so it can be kept on disk.

On phones this is the biometric-gated keystore.  The engine only needs
the ``cipher`` call: give it ``data_to_encrypt`` to wrap a value or
``data_to_decrypt`` to unwrap one, after the platform has prompted the
user.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from totp_vault.config import settings
from totp_vault.errors import BiometricDenied, BiometricUnavailable

logger = logging.getLogger(__name__)

_NONCE_SIZE = 12


class AuthOptions(BaseModel):
    """Prompt options passed to the platform, serialized in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    allow_device_credential: bool = False
    cancel_title: str | None = None
    fallback_title: str | None = None
    title: str | None = None
    subtitle: str | None = None
    confirmation_required: bool | None = None


class CipherResult(BaseModel):
    data: str


# Prompt texts for the two places the engine uses the platform secret.
STORE_PASSWORD_REASON = "Next time you will be able to login with your biometrics"
STORE_PASSWORD_OPTIONS = AuthOptions(
    cancel_title="You won't be able to login without password",
    title="Login without password",
    subtitle="Next times you will be able to login using your biometrics authentication",
)
UNLOCK_REASON = "Open service files without password"
UNLOCK_OPTIONS = AuthOptions(
    cancel_title="Cancel and type password",
    title="Open services without password",
    subtitle="",
)


class PlatformSecret(ABC):
    """Abstract base class for platform-secret implementations."""

    @property
    @abstractmethod
    def available(self) -> bool:
        """Whether this device can wrap secrets at all."""

    @abstractmethod
    async def cipher(
        self,
        reason: str,
        options: AuthOptions,
        *,
        data_to_encrypt: str | None = None,
        data_to_decrypt: str | None = None,
    ) -> CipherResult:
        """Prompt the user, then wrap or unwrap the given data.

        Raises
        ------
        BiometricUnavailable
            No platform secret on this device.
        BiometricDenied
            The prompt was refused or the data can't be unwrapped.
        """

    async def wrap(self, secret: str, reason: str, options: AuthOptions) -> str:
        return (await self.cipher(reason, options, data_to_encrypt=secret)).data

    async def unwrap(self, blob: str, reason: str, options: AuthOptions) -> str:
        return (await self.cipher(reason, options, data_to_decrypt=blob)).data


class DeviceKeyPlatformSecret(PlatformSecret):
    """Desktop stand-in: AES-256-GCM under a per-device key.

    *prompt* plays the role of the biometric dialog: it receives the
    reason and options and returns ``False`` to refuse.
    """

    def __init__(
        self,
        device_key: str | None = None,
        prompt: Callable[[str, AuthOptions], Awaitable[bool]] | None = None,
    ) -> None:
        raw = settings.device_key if device_key is None else device_key
        self._key = self._load_key(raw)
        self._prompt = prompt

    @staticmethod
    def _load_key(raw: str) -> bytes | None:
        if not raw:
            return None
        try:
            key = base64.b64decode(raw, validate=True)
        except binascii.Error:
            logger.error("DEVICE_KEY is not valid base64; platform secret disabled")
            return None
        if len(key) != 32:
            logger.error("DEVICE_KEY must be 32 bytes; platform secret disabled")
            return None
        return key

    @property
    def available(self) -> bool:
        return self._key is not None

    async def cipher(
        self,
        reason: str,
        options: AuthOptions,
        *,
        data_to_encrypt: str | None = None,
        data_to_decrypt: str | None = None,
    ) -> CipherResult:
        if (data_to_encrypt is None) == (data_to_decrypt is None):
            raise ValueError("Pass exactly one of data_to_encrypt / data_to_decrypt")
        if self._key is None:
            raise BiometricUnavailable("No platform secret is configured on this device")
        if self._prompt is not None and not await self._prompt(reason, options):
            raise BiometricDenied(options.cancel_title or "Authentication cancelled")

        if data_to_encrypt is not None:
            nonce = os.urandom(_NONCE_SIZE)
            ct = AESGCM(self._key).encrypt(nonce, data_to_encrypt.encode(), None)
            return CipherResult(data=base64.b64encode(nonce + ct).decode())

        try:
            raw = base64.b64decode(data_to_decrypt, validate=True)
            plain = AESGCM(self._key).decrypt(raw[:_NONCE_SIZE], raw[_NONCE_SIZE:], None)
        except (binascii.Error, InvalidTag, ValueError) as exc:
            raise BiometricDenied("Can't load biometric decrypted data") from exc
        return CipherResult(data=plain.decode())

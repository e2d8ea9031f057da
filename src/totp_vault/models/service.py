"""Service and token shapes, decoded strictly at the command boundary.

The command adapter returns untyped JSON.  Nothing past this module
touches raw payloads: :func:`decode_service_map` and
:func:`decode_token_map` either return fully validated objects or raise
:class:`PayloadError`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator


class PayloadError(ValueError):
    """Raised when a command result does not have the expected shape."""


class TotpAlgorithm(StrEnum):
    SHA1 = "SHA1"
    SHA256 = "SHA256"
    SHA512 = "SHA512"


class Service(BaseModel):
    """A single TOTP-protected account.

    ``issuer``, ``name`` and ``icon`` are display metadata and may be
    edited.  ``secret``, ``algorithm``, ``digits`` and ``period`` are
    fixed once the backend has created the service.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    issuer: str
    name: str
    secret: str
    algorithm: TotpAlgorithm = TotpAlgorithm.SHA1
    digits: int = 6
    period: int = 30
    icon: str = ""

    @field_validator("icon", mode="before")
    @classmethod
    def _empty_icon(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("algorithm", mode="before")
    @classmethod
    def _upper_algorithm(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    def with_display(
        self, *, name: str | None = None, issuer: str | None = None, icon: str | None = None
    ) -> Service:
        """Return a copy with the given display fields replaced."""
        changes = {
            key: value
            for key, value in (("name", name), ("issuer", issuer), ("icon", icon))
            if value is not None
        }
        return self.model_copy(update=changes)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class TotpToken:
    """Current code of a service and the instant it stops being valid."""

    code: str
    next_step_time: datetime


class _WireToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str
    next_step_time: int


_service_map = TypeAdapter(dict[str, Service])
_token_map = TypeAdapter(dict[str, _WireToken])


def decode_service_map(payload: Any) -> dict[str, Service]:
    """Validate a ``{id: service}`` payload returned by the store."""
    try:
        services = _service_map.validate_python(payload)
    except ValidationError as exc:
        raise PayloadError(f"Malformed service map: {exc.error_count()} error(s)") from exc
    for key, service in services.items():
        if key != service.id:
            raise PayloadError(f"Service map key {key!r} does not match id {service.id!r}")
    return services


def decode_token_map(payload: Any) -> dict[str, TotpToken]:
    """Validate a ``{id: {token, next_step_time}}`` payload.

    ``next_step_time`` arrives as epoch seconds and is converted to an
    aware UTC datetime.
    """
    try:
        tokens = _token_map.validate_python(payload)
    except ValidationError as exc:
        raise PayloadError(f"Malformed token map: {exc.error_count()} error(s)") from exc
    return {
        service_id: TotpToken(
            code=wire.token,
            next_step_time=datetime.fromtimestamp(wire.next_step_time, UTC),
        )
        for service_id, wire in tokens.items()
    }

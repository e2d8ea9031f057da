"""Command router — exposes the vault backend to out-of-process clients.

Endpoints
---------
POST /commands/setup_storage_keys   → unlock, returns the service map
POST /commands/add_service          → parse + store a provisioning URI
POST /commands/update_service       → edit display fields
POST /commands/remove_service       → delete, returns the service map
POST /commands/get_services_tokens  → current codes and expiries
POST /commands/get_service_icon     → refresh a service's icon
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from totp_vault.backend.vault import StorageError, VaultBackend

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commands", tags=["commands"])

# Shared backend (in-memory singleton, unlocked per process)
_vault = VaultBackend()


def get_vault() -> VaultBackend:
    return _vault


# ── Request / response models ────────────────────────────

class SetupStorageKeysRequest(BaseModel):
    userPass: str


class AddServiceRequest(BaseModel):
    totpUri: str


class UpdateServiceRequest(BaseModel):
    service: dict[str, Any]


class ServiceIdRequest(BaseModel):
    serviceId: str


class CommandResponse(BaseModel):
    result: Any = None


def _rejected(command: str, exc: StorageError) -> HTTPException:
    logger.info("Command %s rejected: %s", command, exc)
    return HTTPException(status_code=400, detail=str(exc))


# ── Endpoints ────────────────────────────────────────────

@router.post("/setup_storage_keys", response_model=CommandResponse)
async def setup_storage_keys(
    body: SetupStorageKeysRequest, vault: VaultBackend = Depends(get_vault)
):
    """Unlock the vault with the user's password."""
    try:
        return CommandResponse(result=await vault.setup_storage_keys(body.userPass))
    except StorageError as exc:
        raise _rejected("setup_storage_keys", exc) from exc


@router.post("/add_service", response_model=CommandResponse)
async def add_service(body: AddServiceRequest, vault: VaultBackend = Depends(get_vault)):
    """Add a service from a provisioning URI."""
    try:
        return CommandResponse(result=await vault.add_service(body.totpUri))
    except StorageError as exc:
        raise _rejected("add_service", exc) from exc


@router.post("/update_service", response_model=CommandResponse)
async def update_service(body: UpdateServiceRequest, vault: VaultBackend = Depends(get_vault)):
    """Edit a service's name, issuer or icon."""
    try:
        await vault.update_service(body.service)
    except StorageError as exc:
        raise _rejected("update_service", exc) from exc
    return CommandResponse()


@router.post("/remove_service", response_model=CommandResponse)
async def remove_service(body: ServiceIdRequest, vault: VaultBackend = Depends(get_vault)):
    """Delete a service."""
    try:
        return CommandResponse(result=await vault.remove_service(body.serviceId))
    except StorageError as exc:
        raise _rejected("remove_service", exc) from exc


@router.post("/get_services_tokens", response_model=CommandResponse)
async def get_services_tokens(vault: VaultBackend = Depends(get_vault)):
    """Return the current code of every service."""
    try:
        return CommandResponse(result=await vault.get_services_tokens())
    except StorageError as exc:
        raise _rejected("get_services_tokens", exc) from exc


@router.post("/get_service_icon", response_model=CommandResponse)
async def get_service_icon(body: ServiceIdRequest, vault: VaultBackend = Depends(get_vault)):
    """Look a service's icon up again."""
    try:
        return CommandResponse(result=await vault.get_service_icon(body.serviceId))
    except StorageError as exc:
        raise _rejected("get_service_icon", exc) from exc

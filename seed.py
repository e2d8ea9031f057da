"""Seed script — populates a vault file with sample services for testing."""

import asyncio
import getpass

from totp_vault.backend.vault import VaultBackend
from totp_vault.config import settings

SAMPLE_URIS = [
    "otpauth://totp/GitHub:alice@example.com?secret=KRSXG5CTMVRXEZLUKN2XAZLSKNSWG4TFOQ&issuer=GitHub",
    "otpauth://totp/Google:alice@example.com?secret=JBSWY3DPEHPK3PXP&issuer=Google",
    "otpauth://totp/AWS:root?secret=GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ&issuer=AWS&algorithm=SHA256&digits=8",
    "otpauth://totp/Namecheap:bob?secret=ZEH7IWIVJ7Q65KF7EQPEVDQ5JTATNNPM&issuer=Namecheap&period=60",
]


async def seed() -> None:
    """Unlock (or create) the vault and add the sample services."""
    password = getpass.getpass(f"Password for {settings.vault_path}: ")
    vault = VaultBackend()
    await vault.setup_storage_keys(password)
    services = {}
    for uri in SAMPLE_URIS:
        services = await vault.add_service(uri)
    print(f"✅ Vault now holds {len(services)} services.")


if __name__ == "__main__":
    asyncio.run(seed())

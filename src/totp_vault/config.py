"""TOTP Vault — configuration loaded from environment."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Local state (persisted unlock credential) ─────────
    database_url: str = "sqlite+aiosqlite:///./totp_vault.db"

    # ── Encrypted service store ───────────────────────────
    vault_path: Path = Path("vault.bin")
    kdf_iterations: int = 100_000

    # ── Brand icons ───────────────────────────────────────
    brandfetch_client_id: str = ""
    brandfetch_base_url: str = "https://api.brandfetch.io/v2"

    # ── Command adapter ───────────────────────────────────
    command_api_base_url: str = "http://localhost:8000/commands"
    command_timeout_seconds: float | None = 30.0

    # ── Token refresh ─────────────────────────────────────
    token_tick_seconds: float = 1.0

    # ── Platform secret (base64, 32 bytes) ────────────────
    device_key: str = ""

    # ── App ───────────────────────────────────────────────
    app_name: str = "TOTP Vault"
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()

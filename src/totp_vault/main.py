"""FastAPI application entry point — the out-of-process command server."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from totp_vault.backend.router import router as commands_router
from totp_vault.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hook."""
    logger.info("Starting %s …", settings.app_name)
    logger.info("Serving vault file %s", settings.vault_path)
    yield
    logger.info("Shutting down %s …", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Command server for an encrypted TOTP service vault",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(commands_router)


@app.get("/health")
async def health_check():
    """Simple liveness probe."""
    return {"status": "healthy", "app": settings.app_name}

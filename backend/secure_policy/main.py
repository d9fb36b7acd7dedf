"""
Example application protected by the secure middleware.
The policy is loaded from SECURE_* environment variables.

    uvicorn secure_policy.main:app
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from secure_policy.core.config import Settings, get_settings
from secure_policy.core.logging import configure_logging
from secure_policy.middleware.secure import SecureMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging(app.state.settings)
    logger.info(
        "Starting secure application",
        environment=app.state.settings.APP_ENV,
    )
    yield
    logger.info("Shutdown complete")


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    application = FastAPI(
        title=settings.APP_NAME,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        openapi_url=None if settings.is_production else "/openapi.json",
        lifespan=lifespan,
    )
    application.state.settings = settings

    application.add_middleware(
        SecureMiddleware,
        config=settings.to_policy_config(),
    )

    @application.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "ok"

    return application


app = create_application()

# vaultrelay/main.py

import logging
import time
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from vaultrelay.api import health, inbox, messages, users
from vaultrelay.api.errors import register_error_handlers
from vaultrelay.config import Settings
from vaultrelay.core.rate_limit import build_limiter
from vaultrelay.infra.database import Database
from vaultrelay.services.relay_service import RelayService
from vaultrelay.utils.logger import setup_logger

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logger(settings.log_level)

    app = FastAPI(
        title="Vault Relay",
        version="1.0.0",
        description="Peer-to-peer message relay: send, fetch, acknowledge, remove",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting
    app.state.limiter = build_limiter(settings.rate_limit, settings.rate_limit_enabled)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_error_handlers(app)

    database = Database(settings.database_url)
    database.init_db()

    app.state.settings = settings
    app.state.database = database
    app.state.relay = RelayService(max_content_bytes=settings.max_content_bytes)
    app.state.started_at = time.monotonic()

    # Register routers; /api mirrors the original deployment's paths
    for router, tag in (
        (users.router, "Users"),
        (messages.router, "Messages"),
        (inbox.router, "Inbox"),
        (health.router, "Health"),
    ):
        app.include_router(router, tags=[tag])
        app.include_router(router, prefix="/api", tags=[tag], include_in_schema=False)

    logger.info("Vault relay initialized")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run("vaultrelay.main:app", host=settings.host, port=settings.port)

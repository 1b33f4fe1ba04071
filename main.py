"""
Account service entry point.
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.errors import register_exception_handlers
from api.middleware import register_middleware
from auth.dependencies import get_notifier
from auth.routes import router as auth_router
from config.settings import config
from users.routes import router as users_router

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("sqlalchemy.engine", "asyncio", "multipart"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    from database.session import create_tables, engine

    if config.using_default_secrets:
        logger.warning(
            "ACCESS_TOKEN_SECRET / REFRESH_TOKEN_SECRET are the built-in defaults. "
            "Set real secrets before deploying."
        )
    logger.info("Ensuring database tables exist…")
    await create_tables()
    logger.info("Mail transport: %s", get_notifier().gateway.name)
    logger.info("Application ready to accept requests.")

    yield

    pending = get_notifier().pending
    if pending:
        logger.info("Waiting for %d outgoing mail(s)…", pending)
    await get_notifier().drain()
    await engine.dispose()


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(
        title=config.app_name,
        version=config.app_version,
        description="User registration, authentication, sessions and account email flows.",
        lifespan=lifespan if use_lifespan else None,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(auth_router, prefix="/api/v1/auth")
    app.include_router(users_router, prefix="/api/v1/users")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )

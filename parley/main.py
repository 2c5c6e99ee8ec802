from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from parley.config import get_settings
from parley.core.executor import get_executor
from parley.infra.logging_config import configure_logging, get_logger
from parley.routers import system, webhooks

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_executor().shutdown()


def create_app(testing: bool = False) -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(
        title=settings.app_name,
        lifespan=None if testing else lifespan,
    )
    app.include_router(system.router)
    app.include_router(webhooks.router)
    logger.info("Application created (environment=%s)", settings.environment)
    return app


app = create_app()


def main() -> None:
    settings = get_settings()
    uvicorn.run("parley.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, List
from urllib.parse import urlparse

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.dependencies import get_dispatcher, get_settings, get_workspace_manager
from api.routes import router as api_router
from services.job_runner.container_runner import ensure_data_container

LOGGER = logging.getLogger(__name__)


def _parse_origins(raw: str) -> List[str]:
    # Accept comma-separated list. Ignore empties.
    return [o.strip() for o in (raw or "").split(",") if o.strip()]


def _validate_origins(origins: List[str]) -> List[str]:
    for origin in origins:
        if origin == "*":
            raise ValueError("CORS_ALLOW_ORIGINS must not contain '*'")
        parsed = urlparse(origin)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(f"invalid CORS origin: {origin!r}")
    return origins


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    _configure_logging(settings.log_level)

    get_workspace_manager().ensure_dirs()
    ensure_data_container(settings)
    dispatcher = get_dispatcher()
    dispatcher.start()
    LOGGER.info("deployer ready, workspaces under %s", settings.workspace_dir)
    try:
        yield
    finally:
        dispatcher.shutdown(wait=False)


def create_app() -> FastAPI:
    app = FastAPI(title="ChatOps Deployer", version="0.1.0", lifespan=lifespan)

    origins = _validate_origins(_parse_origins(os.getenv("CORS_ALLOW_ORIGINS", "")))
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(api_router)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=False,
    )


if __name__ == "__main__":
    run()

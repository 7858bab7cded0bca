from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.api import router
from logging_config import configure_logging
from services.errors import TrustEngineError
from services.ingestion import build_default_ingestion


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    ingestion = build_default_ingestion()
    try:
        yield
    finally:
        ingestion.shutdown()
        build_default_ingestion.cache_clear()


async def engine_error_handler(_request: Request, exc: TrustEngineError) -> JSONResponse:
    """Storage and evaluation failures that no route maps explicitly."""
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": str(exc)},
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Trust Service",
        description="Rule-based trust scoring and maintenance escalation for field sensors.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(TrustEngineError, engine_error_handler)
    app.include_router(router)
    return app


app = create_app()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from deckvault.api import (
    cards_router,
    containers_router,
    health_router,
    operations_router,
)
from deckvault.api.operations import get_controller
from deckvault.config import settings
from deckvault.db.database import init_db
from deckvault.models.failure import ApiResponse, KnownError
from deckvault.services.bulk_operations import summarize

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    for line in summarize(await get_controller().pending()):
        logger.warning("Interrupted operation can be resumed: %s", line)
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("deckvault"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Explain known failures with the response envelope instead of a bare 500."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def unknown_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=ApiResponse.unknown_failure(detail=type(exc).__name__).model_dump(mode="json"),
    )


app.include_router(cards_router)
app.include_router(containers_router)
app.include_router(health_router)
app.include_router(operations_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cardkeeper.api import (
    backups_router,
    cards_router,
    collections_router,
    health_router,
    seed_router,
)
from cardkeeper.api.backups import RestoreResponse
from cardkeeper.config import settings
from cardkeeper.db.database import init_db
from cardkeeper.models.failure import KnownError, PartialImportError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("cardkeeper"),
    lifespan=lifespan,
)

app.include_router(backups_router)
app.include_router(cards_router)
app.include_router(collections_router)
app.include_router(health_router)
app.include_router(seed_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(request: Request, exc: KnownError) -> JSONResponse:
    """Render a KnownError as a FailureDetail body with its status code."""
    body = exc.to_detail().model_dump(mode="json")
    if isinstance(exc, PartialImportError):
        body["result"] = RestoreResponse.from_result(exc.result).model_dump(mode="json")

    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_failed",
        extra={
            "path": request.url.path,
            "kind": exc.kind.value,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )
    return JSONResponse(status_code=exc.status_code, content=body)

import logging
from contextlib import asynccontextmanager
from urllib.parse import urlsplit

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entryflow.api import files
from entryflow.api.router import api_router
from entryflow.config import settings
from entryflow.exceptions import (
    DocumentNotFound,
    EntryflowError,
    EntryNotFound,
    ExtractionUnavailable,
    FieldNotAllowed,
    InvalidTransition,
    StaleWrite,
    UploadRejected,
    ValidationBlocked,
)
from entryflow.middleware.logging import RequestLoggingMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS: list[tuple[type[EntryflowError], int]] = [
    (EntryNotFound, 404),
    (DocumentNotFound, 404),
    (ValidationBlocked, 409),
    (InvalidTransition, 409),
    (StaleWrite, 409),
    (ExtractionUnavailable, 422),
    (FieldNotAllowed, 400),
    (UploadRejected, 400),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Initialize Sentry if DSN is configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.environment,
            )
            logger.info("Sentry initialized (env=%s)", settings.environment)
        except Exception as e:
            logger.warning("Failed to initialize Sentry: %s", e)

    logger.info("Starting entryflow backend (env=%s, edit policy=%s)", settings.environment, settings.broker_edit_policy)
    yield
    logger.info("Shutting down entryflow backend")


app = FastAPI(
    title="Entryflow - Customs Formal Entry Processing",
    description="Customs document extraction, field reconciliation, officer review and duty/VAT computation",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(EntryflowError)
async def entryflow_error_handler(request: Request, exc: EntryflowError) -> JSONResponse:
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error("Unhandled domain error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, "details": exc.details},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix="/api")

# Signed links are served outside /api, at the configured link base
app.include_router(files.router, prefix=urlsplit(settings.signed_url_base).path.rstrip("/"), tags=["files"])

"""ConsentLink FastAPI application.

Entry point: uvicorn consentlink.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from consentlink.config import settings
from consentlink.exceptions import ConsentLinkError

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("app_startup", env=settings.APP_ENV)
    yield
    from consentlink.db.session import engine

    await engine.dispose()
    logger.info("app_shutdown")


app = FastAPI(
    title="ConsentLink API",
    description="Token-based document consent requests",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.APP_ENV == "development" else None,
    redoc_url="/redoc" if settings.APP_ENV == "development" else None,
)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Exception handlers ---

@app.exception_handler(ConsentLinkError)
async def consent_error_handler(request: Request, exc: ConsentLinkError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, **exc.details},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err["loc"][1:]) or str(err["loc"][0]),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    first = details[0] if details else {"field": "", "message": "Invalid request"}
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": f"{first['field']}: {first['message']}", "details": details},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_exception", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "An unexpected error occurred"},
    )


# --- Routers ---

from consentlink.routers.consent import router as consent_router  # noqa: E402
from consentlink.routers.storage import router as storage_router  # noqa: E402

app.include_router(consent_router, prefix="/api", tags=["consent"])
app.include_router(storage_router, prefix="/api", tags=["storage"])


# --- Health check ---

@app.get("/api/health")
async def health_check():
    return {"status": "ok", "version": "0.1.0"}

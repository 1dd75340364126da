"""
Main FastAPI application for the ResearchAid backend.
Handles CORS, request logging middleware, lifespan events, exception
handlers and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from researchaid.config import settings
from researchaid.exceptions import (
    OracleFailure,
    ParseFailure,
    RenderUnavailable,
    SerializationFailure,
)
from researchaid.routers import download, formatting, health, research, upload
from researchaid.services.pdf_renderer import default_pipeline

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup helpers
# ---------------------------------------------------------------------------

def _check_upload_dir() -> None:
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    logger.info("✓ Upload directory: %s", os.path.abspath(settings.UPLOAD_DIR))


def _check_oracle() -> bool:
    """Log whether the completion API key is present.  Never raises."""
    if settings.oracle_configured:
        logger.info(
            "✓ Completion API configured (%s, default model %s, report model %s)",
            settings.OPENAI_BASE_URL,
            settings.OPENAI_DEFAULT_MODEL,
            settings.OPENAI_REPORT_MODEL,
        )
        return True
    logger.warning(
        "⚠ OPENAI_API_KEY is not set; generation and AI formatting will be unavailable"
    )
    return False


def _check_pdf_engines() -> None:
    names = default_pipeline().engine_names
    logger.info("✓ PDF engines (in order): %s", " → ".join(names))


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting ResearchAid backend …")
    logger.info("=" * 60)

    _check_upload_dir()
    _check_oracle()
    _check_pdf_engines()

    logger.info("=" * 60)
    logger.info("  ResearchAid backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ResearchAid API",
    description=(
        "**ResearchAid** — academic writing assistant.\n\n"
        "Upload papers (PDF/DOCX) for formatting, generate summaries, research "
        "questions, critiques, citations, outlines, reports and assignment "
        "responses, and export any of them as PDF or DOCX.\n\n"
        "Key endpoints:\n"
        "- `POST /api/upload` — upload and format a document\n"
        "- `POST /api/download` — export a formatted document\n"
        "- `POST /api/research/report` — academic report from a query\n"
        "- `POST /api/research/assignment` — assignment response from a brief\n"
        "- `POST /api/research/preview` — structured view of any content\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    if request.url.path not in ("/api/health/", "/api/health", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

def _error_body(request: Request, detail: str, exc: Exception) -> dict:
    return {
        "detail": detail,
        "error": str(exc),
        "path": str(request.url.path),
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.exception_handler(OracleFailure)
async def oracle_failure_handler(request: Request, exc: OracleFailure):
    logger.error("Completion API failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.user_message, exc),
    )


@app.exception_handler(ParseFailure)
async def parse_failure_handler(request: Request, exc: ParseFailure):
    logger.warning("Could not parse upload on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(request, "Failed to parse document", exc),
    )


@app.exception_handler(RenderUnavailable)
async def render_unavailable_handler(request: Request, exc: RenderUnavailable):
    logger.error(
        "PDF rendering unavailable on %s after %s",
        request.url.path,
        [a.engine for a in exc.attempts],
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(request, "PDF rendering is unavailable", exc),
    )


@app.exception_handler(SerializationFailure)
async def serialization_failure_handler(request: Request, exc: SerializationFailure):
    logger.error("DOCX serialization failed on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Failed to generate download file", exc),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(request, "Internal server error", exc),
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,    prefix="/api/health",   tags=["Health"])
app.include_router(upload.router,    prefix="/api/upload",   tags=["Upload"])
app.include_router(formatting.router, prefix="/api/format",   tags=["Format"])
app.include_router(download.router,  prefix="/api/download", tags=["Download"])
app.include_router(research.router,  prefix="/api/research", tags=["Research"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "ResearchAid API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "upload": "/api/upload",
            "format": "/api/format",
            "download": "/api/download",
            "research": "/api/research",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "researchaid.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )

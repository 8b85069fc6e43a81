"""
Main FastAPI application for the DocMaker backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import os
import shutil
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from docmaker.config import settings
from docmaker.database import close_db, init_db
from docmaker.routers import admin_config, assets, briefs, documents, export, health, research, slides
from docmaker.routers import pipeline
from docmaker.services.gemini_client import GeminiClient

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


async def _check_providers() -> dict:
    """
    Report which AI providers and external tools are configured.
    Never raises — warnings are logged instead.
    """
    result = {
        "gemini": False,
        "openai": bool(settings.OPENAI_API_KEY),
        "scrape_creators": bool(settings.SCRAPE_CREATORS_TOKEN),
        "tesseract": bool(shutil.which(settings.TESSERACT_CMD) or os.path.exists(settings.TESSERACT_CMD)),
    }

    result["gemini"] = await GeminiClient().ping()
    if result["gemini"]:
        logger.info("✓ Gemini API key accepted — models: %s / %s",
                    settings.GEMINI_PRO_MODEL, settings.GEMINI_FLASH_MODEL)
    else:
        logger.error("✗ Gemini unavailable — research, proposals and slides will use fallbacks")

    if result["openai"]:
        logger.info("✓ OpenAI configured — proposal writer model: %s", settings.OPENAI_MODEL)
    else:
        logger.warning("⚠ OPENAI_API_KEY not set — proposal content will use default text")

    if result["scrape_creators"]:
        logger.info("✓ ScrapeCreators configured")
    else:
        logger.warning("⚠ SCRAPE_CREATORS_TOKEN not set — influencer scraping disabled")

    if result["tesseract"]:
        logger.info("✓ Tesseract found: %s (%s)", settings.TESSERACT_CMD, settings.OCR_LANGUAGES)
    else:
        logger.warning("⚠ Tesseract not found at %s — OCR falls back to Gemini vision",
                       settings.TESSERACT_CMD)
    return result


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting DocMaker backend …")
    logger.info("=" * 60)

    # 1 — Database (required; raises on failure)
    await _check_database()

    # 2 — AI providers (optional; logs warnings but continues)
    await _check_providers()

    # 3 — Storage directory
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
    logger.info("✓ Storage directory: %s (served at %s)",
                os.path.abspath(settings.UPLOAD_DIR), settings.FILES_URL_PREFIX)

    logger.info("=" * 60)
    logger.info("  DocMaker backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down DocMaker backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="DocMaker API",
    description=(
        "**DocMaker** — turns an advertising brief into a priced influencer "
        "proposal and a branded slide deck.\n\n"
        "Key endpoints:\n"
        "- `POST /api/parse-document` — parse a brief (PDF/DOCX/image/Google Doc)\n"
        "- `POST /api/research` — brand research, colours and logo\n"
        "- `POST /api/build-proposal` — generate the proposal for a document\n"
        "- `POST /api/generate-slides-stage` — foundation / batch / finalize\n"
        "- `POST /api/pdf` — export the deck to PDF\n"
        "- `POST /api/pipeline/{id}/start` — run everything in the background\n"
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

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/"):
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
# Global exception handler
# ---------------------------------------------------------------------------

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
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,       prefix="/api/health",       tags=["Health"])
app.include_router(documents.router,    prefix="/api/documents",    tags=["Documents"])
app.include_router(briefs.router,       prefix="/api",              tags=["Briefs"])
app.include_router(research.router,     prefix="/api",              tags=["Research"])
app.include_router(assets.router,       prefix="/api",              tags=["Assets"])
app.include_router(slides.router,       prefix="/api",              tags=["Slides"])
app.include_router(export.router,       prefix="/api",              tags=["Export"])
app.include_router(pipeline.router,     prefix="/api/pipeline",     tags=["Pipeline"])
app.include_router(admin_config.router, prefix="/api/admin/config", tags=["Admin"])

# Stored uploads, generated images and PDFs
app.mount(
    settings.FILES_URL_PREFIX,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="files",
)


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "DocMaker API",
        "version": "0.1.0",
        "description": "Brief-to-proposal and slide deck generator",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "documents": "/api/documents",
            "parse": "/api/parse-document",
            "research": "/api/research",
            "influencers": "/api/influencers",
            "proposal": "/api/build-proposal",
            "slides": "/api/generate-slides-stage",
            "pdf": "/api/pdf",
            "pipeline": "/api/pipeline",
            "admin": "/api/admin/config",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docmaker.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )

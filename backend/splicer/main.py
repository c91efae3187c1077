"""FastAPI application entry point."""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import psutil
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from splicer.config import settings
from splicer.api.middleware import (
    RateLimiter,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
    UploadLimitMiddleware,
    sweep_rate_limiter,
)
from splicer.api.routes import router
from splicer.api.schemas import HealthResponse, MemoryUsage, NotFoundResponse
from splicer.services.job_service import JobService
from splicer.services.storage_service import ensure_working_directories
from splicer.utils.ffmpeg import check_ffmpeg_available
from splicer.workers.retention import RetentionScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting video processing server...")
    ensure_working_directories(settings.working_dirs)

    if not check_ffmpeg_available():
        logger.warning(f"ffmpeg not found at '{settings.ffmpeg_path}', processing requests will fail")

    retention = RetentionScheduler()
    app.state.job_service = JobService(retention=retention, config=settings)
    sweeper = asyncio.create_task(
        sweep_rate_limiter(rate_limiter, settings.rate_limit_sweep_seconds)
    )

    logger.info(f"Port: {settings.port}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Directories: {', '.join(f'{d}/' for d in settings.working_dirs)}")
    logger.info(f"FFmpeg: {settings.ffmpeg_path}")

    yield

    # Shutdown
    logger.info("Shutting down server...")
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    retention.flush()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Cut a video down to a list of time segments",
    version=settings.version,
    lifespan=lifespan
)

rate_limiter = RateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds
)

# Innermost first
app.add_middleware(UploadLimitMiddleware)
app.add_middleware(RateLimitMiddleware, limiter=rate_limiter, prefix="/api/")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)

# Include API routes
app.include_router(router, prefix="/api")


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return JSONResponse(
            status_code=404,
            content=NotFoundResponse(error="route not found", path=request.url.path).model_dump()
        )
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "invalid request", "details": str(exc.errors())}
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Only reached before the response has started
    logger.exception(f"Server error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal server error",
            "details": str(exc) if settings.debug else "internal error",
        }
    )


# =============================================================================
# Health & index
# =============================================================================

INDEX_HTML = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>{title} - API</title>
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <style>
    body {{ font-family: system-ui, -apple-system, sans-serif; margin: 40px; line-height: 1.6; color: #222; }}
    code {{ background: #f5f5f5; padding: 2px 6px; border-radius: 4px; }}
    a {{ color: #0b5fff; text-decoration: none; }}
  </style>
</head>
<body>
  <h1>{title} - API</h1>
  <p>Server online. Available endpoints:</p>
  <ul>
    <li><a href="/health">/health</a> - status</li>
    <li><a href="/api/test">/api/test</a> - test</li>
    <li><code>POST /api/process-video</code> - cut a video to segments</li>
  </ul>
</body>
</html>"""


@app.get("/", response_class=HTMLResponse)
async def root():
    """Informational index page."""
    return INDEX_HTML.format(title=settings.app_name)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Process health and memory usage."""
    process = psutil.Process()
    mem = process.memory_info()

    return HealthResponse(
        status="OK",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=int(time.time() - process.create_time()),
        memory=MemoryUsage(
            rss=f"{round(mem.rss / 1024 / 1024)} MB",
            vms=f"{round(mem.vms / 1024 / 1024)} MB",
        ),
        environment=settings.environment,
        ffmpeg_available=check_ffmpeg_available(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "splicer.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )

"""API routes."""
import logging
import time
from functools import partial
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse

from splicer.config import settings
from splicer.api.responses import JobFileResponse
from splicer.api.schemas import ApiInfoResponse, ErrorResponse
from splicer.pipeline.segments import ValidationError
from splicer.services.job_service import JobService
from splicer.services.storage_service import PayloadTooLarge, store_upload

router = APIRouter()
logger = logging.getLogger(__name__)


def get_job_service(request: Request) -> JobService:
    """JobService created in the application lifespan."""
    return request.app.state.job_service


def error_response(status_code: int, error: str, details: str = None, **extra) -> JSONResponse:
    body = ErrorResponse(error=error, details=details, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


# =============================================================================
# Processing
# =============================================================================

@router.post(
    "/process-video",
    responses={
        200: {"content": {"video/mp4": {}}},
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def process_video(
    video: Optional[UploadFile] = File(None),
    segments: Optional[str] = Form(None),
    service: JobService = Depends(get_job_service)
):
    """Keep only the requested time ranges of the uploaded video."""
    started = time.monotonic()

    if video is None:
        return error_response(400, "no video file provided", 'the "video" field is required')

    try:
        stored = await store_upload(video, service.config)
    except ValidationError as e:
        return error_response(400, e.message, e.details)
    except PayloadTooLarge as e:
        return error_response(413, e.message, e.details)

    try:
        result = await service.process(stored, segments)
    except ValidationError as e:
        return error_response(400, e.message, e.details)
    except Exception as e:
        logger.exception("Video processing error")
        return error_response(
            500,
            "video processing error",
            str(e) if service.config.debug else "internal error",
            processing_time=f"{time.monotonic() - started:.2f}",
        )

    return JobFileResponse(
        result.path,
        on_complete=partial(service.finish_streaming, result.job),
        on_error=partial(service.fail_streaming, result.job),
        media_type="video/mp4",
        filename=result.filename,
    )


# =============================================================================
# System
# =============================================================================

@router.get("/test", response_model=ApiInfoResponse)
async def api_test():
    """Static capability descriptor."""
    return ApiInfoResponse(
        message="Video processing server operational",
        version=settings.version,
        endpoints=["/health", "/api/process-video", "/api/test"],
    )

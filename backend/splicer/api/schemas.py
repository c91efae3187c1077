"""Pydantic schemas for API responses."""
from typing import List, Optional
from pydantic import BaseModel, Field


# =============================================================================
# Errors
# =============================================================================

class ErrorResponse(BaseModel):
    """Body of every failed request."""
    error: str
    details: Optional[str] = None
    processing_time: Optional[str] = Field(None, description="Seconds spent before failing")


class NotFoundResponse(BaseModel):
    """Body of a request to an unknown route."""
    error: str
    path: str


# =============================================================================
# Health & System
# =============================================================================

class MemoryUsage(BaseModel):
    rss: str
    vms: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    uptime: int
    memory: MemoryUsage
    environment: str
    ffmpeg_available: bool


class ApiInfoResponse(BaseModel):
    """Static capability descriptor."""
    message: str
    version: str
    endpoints: List[str]

"""
Inceptra Backend — Pydantic Request/Response Schemas
======================================================

What:  Pydantic models defining the API contract between frontend and backend.
Why:   Automatic serialization and OpenAPI doc generation.
How:   FastAPI uses these models to parse request bodies and serialize responses.

Prompt length is deliberately NOT constrained here. The generation service
validates it, so a short prompt is rejected with the application's own
validation_error body and before any quota lookup runs.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Feature(str, Enum):
    """The fixed set of generation capabilities."""

    ARTICLE = "article-generator"
    IMAGE = "image-generator"
    BACKGROUND_REMOVAL = "background-remover"
    RESUME = "resume-analyzer"

    @property
    def is_image(self) -> bool:
        """Image-bearing features produce a base64 blob; the rest produce text."""
        return self in (Feature.IMAGE, Feature.BACKGROUND_REMOVAL)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ArticleRequest(BaseModel):
    """Body of POST /api/article."""
    prompt: str = Field(default="", description="Topic or brief for the article")
    length: Optional[int] = Field(
        default=None,
        ge=50,
        le=5000,
        description="Approximate article length in words",
    )


class ImageRequest(BaseModel):
    """Body of POST /api/image."""
    prompt: str = Field(default="", description="Description of the image to generate")
    style: Optional[str] = Field(default=None, description="Optional style hint, e.g. 'watercolor'")
    size: Optional[str] = Field(default=None, description="Optional size hint, e.g. '1024x1024'")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ArticleResponse(BaseModel):
    content: str = Field(description="Generated article text")


class ImageResponse(BaseModel):
    """Returned by the image generator and the background remover."""
    image: str = Field(description="Base64-encoded image (PNG for background removal)")


class ResumeResponse(BaseModel):
    analysis: str = Field(description="Career-advisor feedback on the uploaded resume")


class HistoryItem(BaseModel):
    """One entry of the generation history, newest first."""
    id: str
    feature: str
    input: Dict[str, Any]
    output: Dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}


class PaginationInfo(BaseModel):
    """
    Cursor pagination state for the history list.

    next_cursor is the id of the last item on this page; pass it back as
    `cursor` to fetch the following page.
    """
    current_page: int
    total_count: int
    has_next_page: bool
    has_previous_page: bool
    next_cursor: Optional[str] = None
    limit: int


class HistoryResponse(BaseModel):
    history: List[HistoryItem]
    pagination: PaginationInfo


class FeatureUsage(BaseModel):
    """
    Today's usage for one feature.

    limit and remaining are null for premium users (unlimited).
    """
    feature: str
    used: int
    limit: Optional[int] = None
    remaining: Optional[int] = None
    is_premium: bool


class UsageResponse(BaseModel):
    usage: List[FeatureUsage]
    is_premium: bool
    reset_time: datetime = Field(description="Start of the next UTC day, when counters reset")


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "quota_exceeded",
            "message": "Free limit of 10 per day reached for image-generator. ...",
            "status_code": 429,
            "details": {"feature": "image-generator", "limit": 10, ...},
            "request_id": "a1b2c3d4"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    status_code: int = Field(description="HTTP status code of the response")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    providers: Dict[str, str] = Field(description="Per-provider status: available, unavailable")
    uptime_seconds: float

"""
API Schemas: Request/Response Models

Centralized Pydantic models for API request/response validation.
Implements Domain Transfer Objects (DTOs) pattern for clean API contracts.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl

from core.enums import ContentFormat, Purpose, Tone
from core.models import (
    ContentRequest,
    ContentResponse,
    EngagementMetrics,
    RequestPreferences,
)


class GenerateContentRequest(BaseModel):
    """Command: Generate a post from a draft idea."""

    content: str = Field(..., min_length=10, max_length=2000, description="Draft idea or notes")
    purpose: Optional[Purpose] = Field(None, description="Post purpose")
    format: Optional[ContentFormat] = Field(None, description="Post format")
    tone: Optional[Tone] = Field(None, description="Writing tone")
    target_audience: Optional[str] = Field(None, max_length=200)
    enable_research: bool = Field(False, description="Gather supporting research first")
    url_reference: Optional[HttpUrl] = Field(None, description="Article to research")
    template_id: Optional[str] = None
    user_id: str = Field("anonymous", min_length=1, max_length=255)
    session_id: Optional[str] = None
    preferences: Optional[RequestPreferences] = None
    keywords: List[str] = Field(default_factory=list, max_length=20)
    patterns: List[str] = Field(default_factory=list, max_length=20)
    personalize: bool = Field(True, description="Fill unset fields from learned defaults")

    def to_domain(self) -> ContentRequest:
        """
        Convert to the domain request.

        Only fields the caller actually sent are passed through, so the
        domain model can tell explicit choices from defaults.
        """
        data = self.model_dump(
            exclude_unset=True, exclude_none=True, exclude={"personalize"}, mode="json"
        )
        for name in ("keywords", "patterns"):
            if name in data:
                data[name] = tuple(data[name])
        return ContentRequest(**data)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "content": "Most teams ship features nobody asked for. Talk to users first.",
                "purpose": "thought-leadership",
                "format": "insight",
                "tone": "professional",
                "user_id": "user-42",
            }
        }
    )


class GenerateContentResponse(BaseModel):
    """Query result: Generated (or cached) content."""

    success: bool = True
    request_id: str
    data: ContentResponse


class LearnRequest(BaseModel):
    """Command: Feed engagement of a published post back into learning."""

    user_id: str = Field(..., min_length=1, max_length=255)
    request: GenerateContentRequest
    published_content: str = Field(..., min_length=1, description="Text that was actually posted")
    engagement: EngagementMetrics

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "user-42",
                "request": {"content": "Talk to users before you build", "purpose": "value"},
                "published_content": "I learned this the hard way...",
                "engagement": {"likes": 640, "comments": 85, "shares": 40},
            }
        }
    )


class LearnResponse(BaseModel):
    user_id: str
    learned: bool
    total_engagement: int


class RecommendationRequest(BaseModel):
    """Query: Recommendations for a draft request."""

    user_id: str = Field(..., min_length=1, max_length=255)
    request: GenerateContentRequest


class HealthCheckResponse(BaseModel):
    """System health status."""

    status: str
    timestamp: datetime
    version: str
    dependencies: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str
    detail: Any
    timestamp: datetime
    request_id: Optional[str]

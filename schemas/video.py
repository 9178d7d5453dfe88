from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class VideoOut(BaseModel):
    id: str
    userId: str
    prompt: str
    negativePrompt: Optional[str] = None
    duration: int
    resolution: str
    aspectRatio: str
    fps: int
    status: str
    fileUrl: Optional[str] = None
    thumbnailUrl: Optional[str] = None
    costCredits: int = 0
    errorMessage: Optional[str] = None
    createdAt: datetime
    completedAt: Optional[datetime] = None

    @classmethod
    def from_entity(cls, video: Any) -> "VideoOut":
        return cls(
            id=video.id,
            userId=video.user_id,
            prompt=video.prompt,
            negativePrompt=video.negative_prompt,
            duration=video.duration,
            resolution=video.resolution,
            aspectRatio=video.aspect_ratio,
            fps=video.fps,
            status=video.status.value if hasattr(video.status, "value") else video.status,
            fileUrl=video.file_url,
            thumbnailUrl=video.thumbnail_url,
            costCredits=video.cost_credits,
            errorMessage=video.error_message,
            createdAt=video.created_at,
            completedAt=video.completed_at,
        )


class VideoListQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    status: Optional[Literal["pending", "processing", "completed", "failed", "all"]] = None
    sortBy: Literal["createdAt", "updatedAt"] = "createdAt"
    order: Literal["asc", "desc"] = "desc"


class VideoSearchRequest(BaseModel):
    q: str = Field(..., min_length=1)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int
    hasMore: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = -(-total // limit) if total else 0
        return cls(page=page, limit=limit, total=total, totalPages=total_pages, hasMore=page < total_pages)


class CreditBalance(BaseModel):
    balance: int = 0
    currency: str = "credits"
    userId: Optional[str] = None


class CreditTransactionOut(BaseModel):
    id: str
    type: str
    amount: int
    balanceAfter: int
    relatedId: Optional[str] = None
    description: str
    createdAt: datetime

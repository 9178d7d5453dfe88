import re
from dataclasses import dataclass
from typing import Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db.logs import logger
from entities.video import VideoStatusEnum
from repositories.video_repository import VideoRepository
from schemas.auth import TokenClaims
from schemas.video import Pagination, VideoListQuery, VideoOut, VideoSearchRequest
from services.errors import Forbidden, NotFound, ServiceError, ValidationFailed
from services.storage_service import StorageService

_FILENAME_UNSAFE = re.compile(r"[^a-zA-Z0-9\u4e00-\u9fa5]")


@dataclass
class DownloadFile:
    filename: str
    content: bytes
    content_type: str


@dataclass
class DownloadRedirect:
    filename: str
    url: str


def download_filename(prompt: str, video_id: str, file_url: str) -> str:
    ext = file_url.rsplit(".", 1)[-1].split("?", 1)[0] if "." in file_url else "mp4"
    if not ext or "/" in ext:
        ext = "mp4"
    return f"videogen_{_FILENAME_UNSAFE.sub('_', prompt[:50])}_{video_id[:8]}.{ext}"


class VideoService:
    def __init__(self, session: AsyncSession, *, http: httpx.AsyncClient,
                 storage_factory=StorageService):
        self.session = session
        self.repo = VideoRepository(session)
        self.http = http
        self._storage_factory = storage_factory

    @staticmethod
    def _owner_filter(claims: TokenClaims) -> Optional[str]:
        # admins see every user's videos
        return None if claims.role == "admin" else claims.userId

    async def list(self, claims: TokenClaims, query: VideoListQuery) -> dict:
        videos, total = await self.repo.list(
            user_id=self._owner_filter(claims),
            status=query.status,
            sort_column="created_at" if query.sortBy == "createdAt" else "updated_at",
            ascending=query.order == "asc",
            offset=(query.page - 1) * query.limit,
            limit=query.limit,
        )
        return {
            "videos": [VideoOut.from_entity(v).model_dump(mode="json") for v in videos],
            "pagination": Pagination.build(page=query.page, limit=query.limit, total=total).model_dump(),
        }

    async def search(self, claims: TokenClaims, body: VideoSearchRequest) -> dict:
        videos, total = await self.repo.list(
            user_id=self._owner_filter(claims),
            search=body.q,
            offset=(body.page - 1) * body.limit,
            limit=body.limit,
        )
        return {
            "videos": [VideoOut.from_entity(v).model_dump(mode="json") for v in videos],
            "pagination": Pagination.build(page=body.page, limit=body.limit, total=total).model_dump(),
            "query": body.q,
        }

    async def prepare_download(self, claims: TokenClaims, video_id: str) -> DownloadFile | DownloadRedirect:
        if not video_id or len(video_id) < 10:
            raise ValidationFailed("Invalid video ID")

        video = await self.repo.get_by_id(video_id)
        if not video or video.deleted_at is not None:
            raise NotFound("Video not found")
        if video.user_id != claims.userId and claims.role != "admin":
            raise Forbidden("You do not have permission to download this video")
        if video.status != VideoStatusEnum.completed or not video.file_url:
            raise ValidationFailed(
                "Video is not finished or the file is unavailable",
                details={"status": video.status.value, "hasFileUrl": bool(video.file_url)},
            )

        try:
            await self.repo.record_download(video, user_id=claims.userId, email=claims.email)
            await self.session.commit()
        except SQLAlchemyError as e:
            # the download itself still goes ahead
            await self.session.rollback()
            logger.warning("Failed to log download of %s: %s", video_id, e)

        filename = download_filename(video.prompt, video.id, video.file_url)
        if video.file_url.startswith(("http://", "https://")):
            try:
                resp = await self.http.get(video.file_url, follow_redirects=True, timeout=60)
            except httpx.HTTPError as e:
                raise ServiceError("Unable to fetch video file") from e
            if not resp.is_success:
                raise ServiceError("Unable to fetch video file")
            return DownloadFile(
                filename=filename,
                content=resp.content,
                content_type=resp.headers.get("content-type", "video/mp4"),
            )

        storage = self._storage_factory()
        return DownloadRedirect(filename=filename, url=storage.signed_download_url(video.file_url, filename=filename))

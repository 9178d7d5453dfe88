import httpx
from sqlalchemy.ext.asyncio import AsyncSession
from schemas.auth import TokenClaims
from schemas.video import VideoListQuery, VideoSearchRequest
from services.video_service import VideoService, DownloadFile, DownloadRedirect


class VideoController:
    def __init__(self, session: AsyncSession, *, http: httpx.AsyncClient, storage_factory):
        self.service = VideoService(session, http=http, storage_factory=storage_factory)

    async def list(self, *, claims: TokenClaims, query: VideoListQuery) -> dict:
        return await self.service.list(claims, query)

    async def search(self, *, claims: TokenClaims, body: VideoSearchRequest) -> dict:
        return await self.service.search(claims, body)

    async def download(self, *, claims: TokenClaims, video_id: str) -> DownloadFile | DownloadRedirect:
        return await self.service.prepare_download(claims, video_id)

from datetime import datetime, timezone
from typing import Sequence, Optional
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from entities.video import Video, VideoStatusEnum

DOWNLOAD_HISTORY_KEEP = 10


class VideoRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, video_id: str) -> Video | None:
        res = await self.session.execute(select(Video).where(Video.id == video_id))
        return res.scalar_one_or_none()

    async def list(
        self,
        *,
        user_id: Optional[str],
        status: Optional[str] = None,
        search: Optional[str] = None,
        sort_column: str = "created_at",
        ascending: bool = False,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[Sequence[Video], int]:
        """Page of visible videos plus the total count. ``user_id=None`` lists everyone's."""
        stmt = select(Video).where(Video.deleted_at.is_(None))
        if user_id is not None:
            stmt = stmt.where(Video.user_id == user_id)
        if status and status != "all":
            stmt = stmt.where(Video.status == VideoStatusEnum(status))
        if search:
            stmt = stmt.where(Video.prompt.ilike(f"%{search}%"))

        total = await self.session.scalar(select(func.count()).select_from(stmt.subquery()))

        column = Video.updated_at if sort_column == "updated_at" else Video.created_at
        stmt = stmt.order_by(column.asc() if ascending else column.desc()).offset(offset).limit(limit)
        res = await self.session.execute(stmt)
        return res.scalars().all(), int(total or 0)

    async def record_download(self, video: Video, *, user_id: str, email: str) -> Video:
        now = datetime.now(timezone.utc)
        meta = dict(video.meta or {})
        history = list(meta.get("download_history") or [])
        history.append({"timestamp": now.isoformat(), "userId": user_id, "userEmail": email})
        meta["downloads"] = int(meta.get("downloads") or 0) + 1
        meta["download_history"] = history[-DOWNLOAD_HISTORY_KEEP:]
        meta["last_downloaded_at"] = now.isoformat()
        # reassign so the JSON column is flagged dirty
        video.meta = meta
        self.session.add(video)
        await self.session.flush()
        return video

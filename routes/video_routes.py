from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from controllers.video_controller import VideoController
from routes.deps import get_claims, get_session
from schemas.auth import TokenClaims
from schemas.video import VideoListQuery, VideoSearchRequest
from services.errors import ValidationFailed
from services.video_service import DownloadFile

router = APIRouter(prefix="/api/videos", tags=["videos"])


def _details(exc: ValidationError) -> list[dict]:
    return [{"field": ".".join(str(p) for p in e["loc"]), "message": e["msg"]} for e in exc.errors()]


def _controller(request: Request, session: AsyncSession) -> VideoController:
    return VideoController(session, http=request.app.state.http, storage_factory=request.app.state.storage_factory)


@router.get("/list")
async def list_videos(request: Request, claims: TokenClaims = Depends(get_claims),
                      session: AsyncSession = Depends(get_session)):
    params = {k: v for k, v in request.query_params.items() if v != ""}
    try:
        query = VideoListQuery(**params)
    except ValidationError as e:
        raise ValidationFailed("Request parameter validation failed", details={"errors": _details(e)}) from e

    data = await _controller(request, session).list(claims=claims, query=query)
    return {"success": True, "data": data}


@router.post("/list")
async def search_videos(request: Request, claims: TokenClaims = Depends(get_claims),
                        session: AsyncSession = Depends(get_session)):
    try:
        raw = await request.json()
        body = VideoSearchRequest(**(raw if isinstance(raw, dict) else {}))
    except ValueError as e:
        details = {"errors": _details(e)} if isinstance(e, ValidationError) else None
        raise ValidationFailed("Request parameter validation failed", details=details) from e

    data = await _controller(request, session).search(claims=claims, body=body)
    return {"success": True, "data": data}


@router.get("/{video_id}/download")
async def download(video_id: str, request: Request, claims: TokenClaims = Depends(get_claims),
                   session: AsyncSession = Depends(get_session)):
    result = await _controller(request, session).download(claims=claims, video_id=video_id)
    disposition = f'attachment; filename="{quote(result.filename)}"'

    if isinstance(result, DownloadFile):
        return Response(
            content=result.content,
            media_type=result.content_type,
            headers={
                "Content-Disposition": disposition,
                "Cache-Control": "public, max-age=31536000",
            },
        )
    return RedirectResponse(result.url, status_code=307, headers={"Content-Disposition": disposition})

from typing import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.config import Settings
from schemas.auth import TokenClaims
from services.auth_service import TOKEN_COOKIE, claims_from_cookie


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.session_factory() as session:
        yield session


def get_claims(request: Request, cfg: Settings = Depends(get_settings)) -> TokenClaims:
    return claims_from_cookie(request.cookies.get(TOKEN_COOKIE), cfg)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and forwarded.split(",")[0].strip():
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"

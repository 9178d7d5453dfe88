from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from controllers.auth_controller import AuthController
from db.config import Settings
from routes.deps import get_claims, get_session, get_settings
from schemas.auth import TokenClaims

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/profile")
async def profile(claims: TokenClaims = Depends(get_claims), session: AsyncSession = Depends(get_session),
                  cfg: Settings = Depends(get_settings)):
    ctrl = AuthController(session, cfg)
    user = await ctrl.profile(claims=claims)
    return {"success": True, "data": {"user": user.model_dump(mode="json")}}

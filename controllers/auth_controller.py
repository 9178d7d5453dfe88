from sqlalchemy.ext.asyncio import AsyncSession
from db.config import Settings
from entities.user import User
from schemas.auth import LoginRequest, RegisterRequest, TokenClaims, UserProfile
from services.auth_service import AuthService


class AuthController:
    def __init__(self, session: AsyncSession, cfg: Settings):
        self.service = AuthService(session, cfg)

    async def register(self, *, body: RegisterRequest) -> tuple[User, str]:
        return await self.service.register(body)

    async def login(self, *, body: LoginRequest) -> tuple[User, str]:
        return await self.service.login(email=body.email, password=body.password)

    async def profile(self, *, claims: TokenClaims) -> UserProfile:
        return await self.service.profile(claims)

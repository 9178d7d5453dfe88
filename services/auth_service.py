from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from db.config import Settings, settings as default_settings
from db.logs import logger
from entities.credit_transaction import TransactionTypeEnum
from entities.user import User, UserStatusEnum
from repositories.credit_repository import CreditRepository
from repositories.user_repository import UserRepository
from schemas.auth import RegisterRequest, TokenClaims, UserProfile
from services.errors import AuthError, Conflict, Forbidden, NotFound

TOKEN_COOKIE = "token"

BYPASS_CLAIMS = TokenClaims(userId="admin-001", email="admin@videogen.local", role="admin")
BYPASS_PROFILE = UserProfile(
    id="admin-001",
    email="admin@videogen.local",
    nickname="Administrator",
    credits=999999,
    role="admin",
    status="active",
)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def issue_token(user: User, cfg: Settings = default_settings) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.id,
        "email": user.email,
        "role": user.role.value if hasattr(user.role, "value") else user.role,
        "iat": now,
        "exp": now + timedelta(days=cfg.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, cfg.JWT_SECRET, algorithm=cfg.JWT_ALGORITHM)


def decode_token(token: str, cfg: Settings = default_settings) -> TokenClaims:
    try:
        payload = jwt.decode(token, cfg.JWT_SECRET, algorithms=[cfg.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as e:
        raise AuthError("Session expired, please log in again") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("Invalid session, please log in again") from e
    try:
        return TokenClaims(**payload)
    except (TypeError, ValueError) as e:
        raise AuthError("Invalid session, please log in again") from e


def cookie_options(cfg: Settings = default_settings, *, clear: bool = False) -> Dict[str, Any]:
    return {
        "httponly": True,
        "secure": cfg.is_production,
        "samesite": "lax",
        "max_age": 0 if clear else cfg.JWT_EXPIRES_DAYS * 24 * 60 * 60,
        "path": "/",
    }


def to_profile(user: User) -> UserProfile:
    return UserProfile(
        id=user.id,
        email=user.email,
        nickname=user.nickname or "User",
        avatarUrl=user.avatar_url,
        credits=user.credits or 0,
        role=user.role.value,
        status=user.status.value,
        createdAt=user.created_at,
    )


class AuthService:
    def __init__(self, session: AsyncSession, cfg: Settings = default_settings):
        self.session = session
        self.cfg = cfg
        self.users = UserRepository(session)
        self.credits = CreditRepository(session)

    async def register(self, body: RegisterRequest) -> tuple[User, str]:
        if await self.users.get_by_email(body.email):
            raise Conflict("Email is already registered")

        bonus = self.cfg.SIGNUP_BONUS_CREDITS
        user = await self.users.create(
            email=body.email,
            password_hash=hash_password(body.password),
            nickname=body.nickname.strip(),
            credits=bonus,
        )
        if bonus:
            await self.credits.add(user_id=user.id, type=TransactionTypeEnum.gift, amount=bonus,
                                   balance_after=bonus, description="Sign-up bonus")
        await self.session.commit()
        logger.info("Registered user %s", user.id)
        return user, issue_token(user, self.cfg)

    async def login(self, *, email: str, password: str) -> tuple[User, str]:
        user = await self.users.get_by_email(email.strip().lower())
        if not user or not verify_password(password, user.password_hash):
            raise AuthError("Incorrect email or password")
        if user.status != UserStatusEnum.active:
            raise Forbidden("Account has been disabled")
        return user, issue_token(user, self.cfg)

    async def profile(self, claims: TokenClaims) -> UserProfile:
        if self.cfg.BYPASS_AUTH and claims.userId == BYPASS_CLAIMS.userId:
            return BYPASS_PROFILE
        user = await self.users.get_by_id(claims.userId)
        if not user:
            raise NotFound("User not found")
        if user.status != UserStatusEnum.active:
            raise Forbidden("Account has been disabled")
        return to_profile(user)


def claims_from_cookie(token: Optional[str], cfg: Settings = default_settings) -> TokenClaims:
    if cfg.BYPASS_AUTH:
        return BYPASS_CLAIMS
    if not token:
        raise AuthError("Not logged in or session expired, please log in again")
    return decode_token(token, cfg)

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from entities.user import User, RoleEnum


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, *, email: str, password_hash: str, nickname: str | None,
                     credits: int = 0, role: RoleEnum = RoleEnum.user) -> User:
        user = User(email=email, password_hash=password_hash, nickname=nickname, credits=credits, role=role)
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: str) -> User | None:
        res = await self.session.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        )
        return res.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        res = await self.session.execute(
            select(User).where(User.email == email.strip().lower(), User.deleted_at.is_(None))
        )
        return res.scalar_one_or_none()

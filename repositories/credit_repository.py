from typing import Sequence
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from entities.credit_transaction import CreditTransaction, TransactionTypeEnum


class CreditRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, *, user_id: str, type: TransactionTypeEnum, amount: int, balance_after: int,
                  description: str, related_id: str | None = None) -> CreditTransaction:
        tx = CreditTransaction(user_id=user_id, type=type, amount=amount, balance_after=balance_after,
                               description=description, related_id=related_id)
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def list_for_user(self, user_id: str, *, offset: int = 0, limit: int = 20
                            ) -> tuple[Sequence[CreditTransaction], int]:
        base = select(CreditTransaction).where(CreditTransaction.user_id == user_id)
        total = await self.session.scalar(select(func.count()).select_from(base.subquery()))
        res = await self.session.execute(
            base.order_by(CreditTransaction.created_at.desc()).offset(offset).limit(limit)
        )
        return res.scalars().all(), int(total or 0)

# app/repositories/user_repo.py
# 負責與使用者相關的資料庫操作
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update
from typing import List
from app.models.user import User

# 可由 ReputationService 寫入的分數欄位
SCORE_FIELDS = ("client_score", "provider_score")

class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> User | None:
        """
        透過 email 查詢使用者
        """
        stmt = select(User).where(User.email == email)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_user_by_wallet(self, wallet_address: str) -> User | None:
        """
        透過錢包地址查詢使用者 (註冊時檢查重複)
        """
        stmt = select(User).where(User.wallet_address == wallet_address)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def create_user(self, user: User) -> User:
        """
        新增使用者到資料庫
        """
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def get_user_by_id(self, user_id: str) -> User | None:
        """
        透過 user_id 查詢使用者
        """
        stmt = select(User).where(User.user_id == user_id).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_users(self, limit: int = 20) -> List[User]:
        stmt = select(User).where(User.is_active.is_(True)).order_by(User.created_at.desc()).limit(limit)
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def update_user(self, user: User) -> User:
        """
        儲存對現有 User 物件的變更
        """
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def update_user_score(self, user_id: str, field: str, value: float) -> None:
        """
        更新評價分數 (不 commit，由 Service 統一提交)
        """
        if field not in SCORE_FIELDS:
            raise ValueError(f"不可寫入的分數欄位: {field}")
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values({field: value})
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

# app/services/user_service.py
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from web3 import Web3

from app.core.escrow_gateway import EscrowGateway
from app.core.exceptions import UserNotFound
from app.models.user import User
from app.repositories.user_repo import UserRepository
from app.schemas.user_schema import BalanceOut, UserUpdate

class UserService:
    def __init__(self, db: AsyncSession):
        self.repo = UserRepository(db)

    async def get_user(self, user_id: str) -> User:
        """獲取指定 ID 的使用者 (公開用)"""
        user = await self.repo.get_user_by_id(user_id)
        if not user or not user.is_active:
            raise UserNotFound(user_id=user_id)
        return user

    async def list_users(self, limit: int = 20) -> List[User]:
        return await self.repo.list_users(limit=limit)

    async def update_me(self, user: User, update_data: UserUpdate) -> User:
        """
        更新自己的資料。評價分數只由評價流程重新計算，這裡不可修改
        """
        if update_data.specialties is not None:
            user.specialties = [s.value for s in update_data.specialties]
        return await self.repo.update_user(user)

    async def get_balance(self, user_id: str, gateway: EscrowGateway) -> BalanceOut:
        """查詢使用者錢包在鏈上的餘額"""
        user = await self.get_user(user_id)
        balance = await gateway.get_balance(user.wallet_address)
        return BalanceOut(
            user_id=user.user_id,
            wallet_address=user.wallet_address,
            balance_wei=balance,
            balance_eth=str(Web3.from_wei(balance, "ether")),
        )

# app/routers/user_router.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.database import get_db
from app.core.escrow_gateway import EscrowGateway, get_escrow_gateway
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.review_schema import ReviewOut
from app.schemas.user_schema import BalanceOut, UserOut, UserUpdate
from app.services.reputation_service import ReputationService
from app.services.user_service import UserService

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(get_current_user)] # (重要) 整個路由都需要登入
)

@router.get("/me", response_model=UserOut)
async def read_users_me(
    current_user: User = Depends(get_current_user)
):
    """
    獲取當前登入使用者的基本資料 (不含密碼)
    """
    return current_user

@router.patch("/me", response_model=UserOut)
async def update_users_me(
    update_data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    更新自己的專長 (評價分數不可由使用者修改)
    """
    service = UserService(db)
    return await service.update_me(current_user, update_data)

@router.get("", response_model=List[UserOut])
async def list_users(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    service = UserService(db)
    return await service.list_users(limit=limit)

@router.get("/{user_id}", response_model=UserOut)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_db)
):
    service = UserService(db)
    return await service.get_user(user_id)

@router.get("/{user_id}/balance", response_model=BalanceOut)
async def get_user_balance(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: EscrowGateway = Depends(get_escrow_gateway)
):
    """
    查詢使用者錢包的鏈上餘額 (wei 與 ether)
    """
    service = UserService(db)
    return await service.get_balance(user_id, gateway)

@router.get("/{user_id}/reviews", response_model=List[ReviewOut])
async def get_user_reviews(
    user_id: str,
    db: AsyncSession = Depends(get_db)
):
    """
    使用者收到的所有評價 (依時間倒序)
    """
    service = ReputationService(db)
    return await service.list_reviews_for_user(user_id)

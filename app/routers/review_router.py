# app/routers/review_router.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.review_schema import ReviewCreate, ReviewOut
from app.services.reputation_service import ReputationService

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"],
    dependencies=[Depends(get_current_user)]
)

@router.post("", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def create_review(
    review_data: ReviewCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    對已完成的工作留下評價 (1 ~ 5 分)

    - 雇主: role = CLIENT_TO_PROVIDER
    - 提供者: role = PROVIDER_TO_CLIENT
    """
    service = ReputationService(db)
    return await service.create_review(current_user, review_data)

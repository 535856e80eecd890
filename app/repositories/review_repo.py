# app/repositories/review_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func
from typing import List, Optional

from app.models.review import Review, ReviewRoleEnum


class ReviewRepository:
    """
    封裝對 'reviews' 資料表的操作
    """
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_review(self, job_id: str, reviewer_id: str, role: ReviewRoleEnum) -> Optional[Review]:
        stmt = select(Review).where(
            Review.job_id == job_id,
            Review.reviewer_id == reviewer_id,
            Review.role == role,
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def create_review(self, review: Review) -> Review:
        """
        新增評價 (只 flush，讓唯一鍵衝突在這裡浮現；由 Service 統一 commit)
        """
        self.db.add(review)
        await self.db.flush()
        return review

    async def average_rating(self, reviewed_user_id: str, role: ReviewRoleEnum) -> float:
        """
        計算使用者在某個角色下收到的平均評分 (沒有評價時為 0)
        """
        stmt = select(func.avg(Review.rating)).where(
            Review.reviewed_user_id == reviewed_user_id,
            Review.role == role,
        )
        result = await self.db.execute(stmt)
        average = result.scalar()
        return float(average) if average is not None else 0.0

    async def list_reviews_for_user(self, reviewed_user_id: str) -> List[Review]:
        stmt = (
            select(Review)
            .where(Review.reviewed_user_id == reviewed_user_id)
            .order_by(Review.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

# app/services/reputation_service.py

import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    DuplicateReview, InvalidRating, JobNotCompleted, JobNotFound, NotAParticipant,
)
from app.models.job import JobStatusEnum
from app.models.review import Review, ReviewRoleEnum
from app.models.user import User
from app.repositories.job_repo import JobRepository
from app.repositories.review_repo import ReviewRepository
from app.repositories.user_repo import UserRepository
from app.schemas.review_schema import ReviewCreate

logger = logging.getLogger(__name__)

# 評價角色 -> 被評價者的分數欄位
SCORE_FIELD_BY_ROLE = {
    ReviewRoleEnum.CLIENT_TO_PROVIDER: "provider_score",
    ReviewRoleEnum.PROVIDER_TO_CLIENT: "client_score",
}

MIN_RATING = 1
MAX_RATING = 5


class ReputationService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.review_repo = ReviewRepository(db)
        self.job_repo = JobRepository(db)
        self.user_repo = UserRepository(db)

    async def create_review(self, reviewer: User, review_data: ReviewCreate) -> Review:
        """
        對已完成的工作留下評價，並重新計算被評價者的平均分數

        - 雇主只能以 CLIENT_TO_PROVIDER 評價提供者
        - 提供者只能以 PROVIDER_TO_CLIENT 評價雇主
        - 評價寫入與分數更新在同一個交易中
        """
        reviewer_id = reviewer.user_id
        rating = review_data.rating
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidRating(rating=rating)

        job = await self.job_repo.get_job(review_data.job_id)
        if not job:
            raise JobNotFound(job_id=review_data.job_id)
        if job.status != JobStatusEnum.COMPLETED:
            raise JobNotCompleted(job_id=job.job_id, status=job.status.value)

        role = review_data.role
        if role == ReviewRoleEnum.CLIENT_TO_PROVIDER:
            expected_reviewer_id, reviewed_user_id = job.client_id, job.provider_id
        else:
            expected_reviewer_id, reviewed_user_id = job.provider_id, job.client_id
        if reviewer_id != expected_reviewer_id:
            raise NotAParticipant(job_id=job.job_id, role=role.value)

        existing = await self.review_repo.get_review(job.job_id, reviewer_id, role)
        if existing:
            raise DuplicateReview(job_id=job.job_id, role=role.value)

        review = Review(
            job_id=job.job_id,
            reviewer_id=reviewer_id,
            reviewed_user_id=reviewed_user_id,
            rating=rating,
            comment=review_data.comment,
            role=role,
        )
        try:
            await self.review_repo.create_review(review)
        except IntegrityError as e:
            # 同時送出的重複評價，由唯一鍵擋下
            await self.db.rollback()
            raise DuplicateReview(job_id=review_data.job_id, role=role.value) from e

        score_field = SCORE_FIELD_BY_ROLE[role]
        average = await self.review_repo.average_rating(reviewed_user_id, role)
        await self.user_repo.update_user_score(reviewed_user_id, score_field, average)
        await self.db.commit()
        await self.db.refresh(review)

        logger.info(f"新評價: job={review.job_id} {role.value} -> {reviewed_user_id} {score_field}={average}")
        return review

    async def list_reviews_for_user(self, user_id: str) -> List[Review]:
        return await self.review_repo.list_reviews_for_user(user_id)

# app/schemas/review_schema.py
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional

from app.models.review import ReviewRoleEnum

class ReviewCreate(BaseModel):
    job_id: str
    # 1 ~ 5，範圍檢查由 Service 層負責 (InvalidRating)
    rating: int
    role: ReviewRoleEnum
    comment: Optional[str] = None

class ReviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    review_id: str
    job_id: str
    reviewer_id: str
    reviewed_user_id: str
    rating: int
    comment: Optional[str] = None
    role: ReviewRoleEnum
    created_at: Optional[datetime] = None

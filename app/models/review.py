# app/models/review.py
import enum
import uuid
from sqlalchemy import (
    Column, Text, INT, ForeignKey, TIMESTAMP, Enum, CHAR, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from app.core.database import Base

class ReviewRoleEnum(str, enum.Enum):
    CLIENT_TO_PROVIDER = "CLIENT_TO_PROVIDER" # 雇主評價提供者 -> provider_score
    PROVIDER_TO_CLIENT = "PROVIDER_TO_CLIENT" # 提供者評價雇主 -> client_score

class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        # 同一工作、同一評價者、同一角色只能評價一次
        UniqueConstraint("job_id", "reviewer_id", "role", name="uq_review_job_reviewer_role"),
    )

    review_id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    job_id = Column(CHAR(36), ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_id = Column(CHAR(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    reviewed_user_id = Column(CHAR(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)

    rating = Column(INT, nullable=False) # 1 ~ 5
    comment = Column(Text, nullable=True)
    role = Column(Enum(ReviewRoleEnum, name="review_role_enum"), nullable=False)

    created_at = Column(TIMESTAMP, server_default=func.now())

    job = relationship("Job", back_populates="reviews")
    reviewer = relationship("User", foreign_keys=[reviewer_id], lazy="selectin")
    reviewed_user = relationship("User", foreign_keys=[reviewed_user_id])

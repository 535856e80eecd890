# app/models/proposal.py
import enum
import uuid
from sqlalchemy import Column, Text, ForeignKey, TIMESTAMP, Enum, CHAR, func
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.types import WeiAmount

class ProposalStatusEnum(str, enum.Enum):
    PENDING = "PENDING"
    COUNTEROFFERED = "COUNTEROFFERED"
    COUNTEROFFER_REJECTED = "COUNTEROFFER_REJECTED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"

class Proposal(Base):
    __tablename__ = "proposals"

    proposal_id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # (job_id, provider_id) 不設唯一鍵：
    # 冷卻期過後重新提案會新增一筆，舊的 COUNTEROFFER_REJECTED 會保留
    job_id = Column(CHAR(36), ForeignKey("jobs.job_id", ondelete="CASCADE"), nullable=False, index=True)
    provider_id = Column(CHAR(36), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)

    message = Column(Text, nullable=True)

    # 金額 (wei)
    proposed_amount = Column(WeiAmount, nullable=True)
    counter_offer_amount = Column(WeiAmount, nullable=True)

    status = Column(
        Enum(ProposalStatusEnum, name="proposal_status_enum"),
        default=ProposalStatusEnum.PENDING,
        nullable=False
    )
    # 只有 COUNTEROFFER_REJECTED 會設定 (冷卻期起點)
    rejected_at = Column(TIMESTAMP, nullable=True)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # --- 建立關聯 (Relationships) ---
    job = relationship("Job", back_populates="proposals", lazy="selectin")

    provider = relationship("User", back_populates="proposals", lazy="selectin")

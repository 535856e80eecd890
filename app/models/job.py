# app/models/job.py

import enum
import uuid
from sqlalchemy import (
    Column, String, TEXT, Boolean, TIMESTAMP, ForeignKey, Enum, CHAR, func
)
from sqlalchemy.orm import relationship
from app.core.database import Base
from app.models.types import WeiAmount

# 工作狀態
# PENDING -> IN_PROGRESS -> COMPLETED；DISPUTED / CANCELLED 由外部流程寫入
class JobStatusEnum(str, enum.Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    DISPUTED = "DISPUTED"
    CANCELLED = "CANCELLED"

# 有提供者的狀態 (provider_id 不可為空)
ASSIGNED_STATUSES = (
    JobStatusEnum.IN_PROGRESS,
    JobStatusEnum.COMPLETED,
    JobStatusEnum.DISPUTED,
)

# 鏈上合約的狀態編號 (getJob 回傳的 uint8)
CONTRACT_STATUS_BY_CODE = {
    0: JobStatusEnum.PENDING,
    1: JobStatusEnum.IN_PROGRESS,
    2: JobStatusEnum.COMPLETED,
    3: JobStatusEnum.DISPUTED,
    4: JobStatusEnum.CANCELLED,
}

# 工作類別
# (注意) 宣告順序就是合約 createJob 的 category 編號，不可任意調整
class JobCategoryEnum(str, enum.Enum):
    ELECTRICAL = "ELECTRICAL"
    PLUMBING = "PLUMBING"
    MAINTENANCE = "MAINTENANCE"
    CARPENTRY = "CARPENTRY"
    PAINTING = "PAINTING"
    CLEANING = "CLEANING"
    GARDENING = "GARDENING"
    OTHER = "OTHER"

    @property
    def contract_index(self) -> int:
        return list(JobCategoryEnum).index(self)


class Job(Base):
    __tablename__ = "jobs"

    job_id = Column(CHAR(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # --- 工作內容 (對核心流程而言是不透明的) ---
    title = Column(String(255), nullable=False)
    description = Column(TEXT, nullable=False)
    category = Column(Enum(JobCategoryEnum, name="job_category_enum"), nullable=False)

    # 金額 (wei)，指派時會更新成最終成交價
    amount = Column(WeiAmount, nullable=False)

    # --- 狀態管理 ---
    status = Column(
        Enum(JobStatusEnum, name="job_status_enum"),
        default=JobStatusEnum.PENDING,
        nullable=False,
        index=True
    )

    # --- 關聯 ---
    client_id = Column(CHAR(36), ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=False, index=True)
    # 指派前為 NULL
    provider_id = Column(CHAR(36), ForeignKey("users.user_id", ondelete="RESTRICT"), nullable=True, index=True)

    # --- Escrow 合約 ---
    # 只有在 createAndDeposit 成功後才寫入
    contract_job_id = Column(String(78), nullable=True)
    tx_hash = Column(String(66), nullable=True)

    # --- 雙方確認完成 ---
    client_approved = Column(Boolean, nullable=False, default=False)
    provider_approved = Column(Boolean, nullable=False, default=False)

    created_at = Column(TIMESTAMP, server_default=func.now())
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now())

    # --- SQLAlchemy Relationships ---
    client = relationship(
        "User",
        foreign_keys=[client_id],
        back_populates="jobs_as_client",
        lazy="selectin"
    )

    provider = relationship(
        "User",
        foreign_keys=[provider_id],
        back_populates="jobs_as_provider",
        lazy="selectin"
    )

    # 刪除工作時，一併刪除提案與評價 (由資料庫 ON DELETE CASCADE 處理)
    proposals = relationship(
        "Proposal",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    reviews = relationship(
        "Review",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

# models/user.py
import uuid
from sqlalchemy import Column, String, Boolean, Float, JSON, CHAR, TIMESTAMP, func
from sqlalchemy.orm import relationship
from app.core.database import Base

class User(Base):
    __tablename__ = "users"

    # 基本欄位
    user_id = Column(CHAR(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    # 使用者的錢包地址 (由節點管理的帳戶，本服務不保管私鑰)
    wallet_address = Column(String(42), unique=True, nullable=False)
    # 專長 (JobCategoryEnum 的值列表)
    specialties = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True)

    # 評價平均分數 (由 ReputationService 重新計算，使用者不可直接修改)
    client_score = Column(Float, nullable=False, default=0.0)
    provider_score = Column(Float, nullable=False, default=0.0)

    created_at = Column(TIMESTAMP, server_default=func.now())

    # 關聯設定
    # 作為雇主刊登的工作
    jobs_as_client = relationship(
        "Job",
        foreign_keys="[Job.client_id]",
        back_populates="client"
    )

    # 作為提供者承接的工作
    jobs_as_provider = relationship(
        "Job",
        foreign_keys="[Job.provider_id]",
        back_populates="provider"
    )

    proposals = relationship(
        "Proposal",
        back_populates="provider"
    )

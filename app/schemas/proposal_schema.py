# app/schemas/proposal_schema.py
from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Literal, Optional

from app.models.proposal import ProposalStatusEnum
from app.schemas.common_schema import UserBrief, WeiStr
from app.schemas.job_schema import JobOut

# --- 建立 (Create) ---
class ProposalCreate(BaseModel):
    # job_id 與 provider_id 將從 URL 和 Token 中取得
    message: Optional[str] = None
    # 提議金額 (wei)，未填則沿用工作金額
    proposed_amount: Optional[int] = None

# --- 雇主還價 ---
class CounterOfferCreate(BaseModel):
    amount: int

# --- 直接接受提案 ---
class ProposalAccept(BaseModel):
    # 上一次「合約接受」失敗時回傳的 contract_job_id，帶入即可跳過存款步驟重試
    contract_job_id: Optional[str] = None

# --- 提供者回應還價 ---
class CounterOfferResponse(BaseModel):
    action: Literal["accept", "reject"]
    contract_job_id: Optional[str] = None

# --- 讀取 (Read / Out) ---
class ProposalOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proposal_id: str
    job_id: str
    provider_id: str
    message: Optional[str] = None
    proposed_amount: Optional[WeiStr] = None
    counter_offer_amount: Optional[WeiStr] = None
    status: ProposalStatusEnum
    rejected_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

# --- 雇主檢視提案列表用 ---
class ProposalOutWithProvider(ProposalOut):
    provider: Optional[UserBrief] = None

# --- 提供者檢視「我的提案」用 ---
class ProposalOutWithJob(ProposalOut):
    job: Optional[JobOut] = None

# --- 指派結果 (接受提案 / 接受還價) ---
class AssignmentOut(BaseModel):
    job: JobOut
    proposal: ProposalOut

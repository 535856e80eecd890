# app/schemas/job_schema.py

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional

from app.models.job import JobCategoryEnum, JobStatusEnum
from app.schemas.common_schema import UserBrief, WeiStr

# --- 1. 基礎欄位 ---
class JobBase(BaseModel):
    title: str = Field(..., max_length=255)
    description: str
    category: JobCategoryEnum

# --- 2. 刊登工作 (Input) ---
class JobCreate(JobBase):
    # 金額 (wei，整數)。範圍檢查由 Service 層負責
    amount: int

# --- 3. 工作 (Output) ---
class JobOut(JobBase):
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    amount: WeiStr
    status: JobStatusEnum
    client_id: str
    provider_id: Optional[str] = None
    contract_job_id: Optional[str] = None
    tx_hash: Optional[str] = None
    client_approved: bool
    provider_approved: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    client: Optional[UserBrief] = None
    provider: Optional[UserBrief] = None

# --- 4. 確認完成的結果 ---
class ApprovalResult(BaseModel):
    job: JobOut
    both_approved: bool
    # 鏈上同步確認的結果 (盡力而為，不影響本地確認)
    # None 表示此工作沒有關聯的鏈上合約
    on_chain_confirmed: Optional[bool] = None
    on_chain_tx_hash: Optional[str] = None
    on_chain_error: Optional[str] = None

# --- 5. 鏈上合約狀態 ---
class ContractConfirmations(BaseModel):
    client_confirmed: bool
    provider_confirmed: bool
    both_confirmed: bool
    contract_status: JobStatusEnum

class ContractStatusOut(BaseModel):
    job_id: str
    contract_job_id: str
    status: ContractConfirmations
    amount: WeiStr
    amount_eth: str
    client: str
    provider: str
    message: str

# app/routers/job_router.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.core.database import get_db
from app.core.escrow_gateway import EscrowGateway, get_escrow_gateway
from app.core.security import get_current_user
from app.models.job import JobCategoryEnum, JobStatusEnum
from app.models.user import User
from app.schemas.job_schema import ApprovalResult, ContractStatusOut, JobCreate, JobOut
from app.schemas.proposal_schema import ProposalCreate, ProposalOut, ProposalOutWithProvider
from app.services.job_service import JobService
from app.services.notification_service import NotificationService, get_notification_service
from app.services.proposal_service import ProposalService
from app.services.settlement_service import SettlementService

router = APIRouter(
    prefix="/jobs",
    tags=["Jobs"],
    dependencies=[Depends(get_current_user)]
)

# -----------------------------------------------------------------
# 1. 工作 CRUD
# -----------------------------------------------------------------
@router.post("", response_model=JobOut, status_code=status.HTTP_201_CREATED)
async def create_job(
    job_data: JobCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service)
):
    """
    (雇主) 刊登新工作，金額以 wei 為單位
    """
    service = JobService(db, notifier)
    return await service.create_job(current_user, job_data)

@router.get("", response_model=List[JobOut])
async def list_jobs(
    status: Optional[JobStatusEnum] = None,
    category: Optional[JobCategoryEnum] = None,
    client_id: Optional[str] = None,
    provider_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service)
):
    service = JobService(db, notifier)
    return await service.list_jobs(
        status=status, category=category, client_id=client_id, provider_id=provider_id
    )

@router.get("/{job_id}", response_model=JobOut)
async def get_job(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service)
):
    service = JobService(db, notifier)
    return await service.get_job(job_id)

@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(
    job_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationService = Depends(get_notification_service)
):
    """
    (雇主) 刪除仍在待指派的工作
    """
    service = JobService(db, notifier)
    await service.delete_job(job_id, current_user)
    return

# -----------------------------------------------------------------
# 2. 完成確認 / 鏈上狀態
# -----------------------------------------------------------------
@router.post("/{job_id}/complete", response_model=ApprovalResult)
async def approve_completion(
    job_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: EscrowGateway = Depends(get_escrow_gateway),
    notifier: NotificationService = Depends(get_notification_service)
):
    """
    (雇主 / 提供者) 確認工作完成

    - 雙方都確認後，工作狀態變為 COMPLETED
    - 鏈上確認失敗不影響本地確認，結果會放在 on_chain_error
    """
    service = SettlementService(db, gateway, notifier)
    return await service.approve_completion(job_id, current_user.user_id)

@router.get("/{job_id}/contract-status", response_model=ContractStatusOut)
async def get_contract_status(
    job_id: str,
    db: AsyncSession = Depends(get_db),
    gateway: EscrowGateway = Depends(get_escrow_gateway),
    notifier: NotificationService = Depends(get_notification_service)
):
    service = JobService(db, notifier)
    return await service.get_contract_status(job_id, gateway)

# -----------------------------------------------------------------
# 3. 工作底下的提案
# -----------------------------------------------------------------
@router.post(
    "/{job_id}/proposals",
    response_model=ProposalOut,
    status_code=status.HTTP_201_CREATED
)
async def submit_proposal(
    job_id: str,
    proposal_data: ProposalCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: EscrowGateway = Depends(get_escrow_gateway),
    notifier: NotificationService = Depends(get_notification_service)
):
    """
    (提供者) 對工作提案，可附上提議金額 (wei)
    """
    service = ProposalService(db, gateway, notifier)
    return await service.submit_proposal(job_id, current_user, proposal_data)

@router.get("/{job_id}/proposals", response_model=List[ProposalOutWithProvider])
async def list_job_proposals(
    job_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: EscrowGateway = Depends(get_escrow_gateway),
    notifier: NotificationService = Depends(get_notification_service)
):
    """
    (雇主) 檢視自己工作的所有提案
    """
    service = ProposalService(db, gateway, notifier)
    return await service.list_job_proposals(job_id, current_user)

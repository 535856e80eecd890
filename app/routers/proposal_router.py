# app/routers/proposal_router.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from app.core.database import get_db
from app.core.escrow_gateway import EscrowGateway, get_escrow_gateway
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.job_schema import JobOut
from app.schemas.proposal_schema import (
    AssignmentOut,
    CounterOfferCreate,
    CounterOfferResponse,
    ProposalAccept,
    ProposalOut,
    ProposalOutWithJob,
)
from app.services.notification_service import NotificationService, get_notification_service
from app.services.proposal_service import ProposalService

# 建立 API Router
router = APIRouter(
    prefix="/proposals",
    tags=["Proposals"],
    dependencies=[Depends(get_current_user)] # 重要：此 router 下所有 API 都需要登入
)


def get_proposal_service(
    db: AsyncSession = Depends(get_db),
    gateway: EscrowGateway = Depends(get_escrow_gateway),
    notifier: NotificationService = Depends(get_notification_service)
) -> ProposalService:
    return ProposalService(db, gateway, notifier)


@router.get("/my", response_model=List[ProposalOutWithJob])
async def list_my_proposals(
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service)
):
    """
    (提供者) 檢視自己送出的提案 (包含工作資訊)
    """
    return await service.list_my_proposals(current_user)

@router.post("/{proposal_id}/accept", response_model=AssignmentOut)
async def accept_proposal(
    proposal_id: str,
    body: ProposalAccept = ProposalAccept(),
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service)
):
    """
    (雇主) 直接接受提案：存入資金、提供者在合約中接受、工作進入 IN_PROGRESS

    若「合約接受」失敗，回應 502 並附上 contract_job_id；
    帶入該 contract_job_id 再呼叫一次即可跳過存款步驟重試。
    """
    job, proposal = await service.accept_proposal_directly(
        proposal_id, current_user, contract_job_id=body.contract_job_id
    )
    return AssignmentOut(job=JobOut.model_validate(job), proposal=ProposalOut.model_validate(proposal))

@router.post("/{proposal_id}/reject", response_model=ProposalOut)
async def reject_proposal(
    proposal_id: str,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service)
):
    """
    (雇主) 拒絕提案
    """
    return await service.reject_proposal(proposal_id, current_user)

@router.post("/{proposal_id}/counteroffer", response_model=ProposalOut)
async def counter_offer(
    proposal_id: str,
    body: CounterOfferCreate,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service)
):
    """
    (雇主) 對提案還價 (wei)
    """
    return await service.counter_offer(proposal_id, current_user, body.amount)

@router.post("/{proposal_id}/counteroffer/respond", response_model=AssignmentOut)
async def respond_to_counter_offer(
    proposal_id: str,
    body: CounterOfferResponse,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service)
):
    """
    (提供者) 回應還價

    - accept: 以還價金額進行指派 (同「接受提案」的流程)
    - reject: 提案變為 COUNTEROFFER_REJECTED，冷卻期內不可對同一工作重新提案
    """
    job, proposal = await service.respond_to_counter_offer(
        proposal_id, current_user, body.action, contract_job_id=body.contract_job_id
    )
    return AssignmentOut(job=JobOut.model_validate(job), proposal=ProposalOut.model_validate(proposal))

@router.delete("/{proposal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def withdraw_proposal(
    proposal_id: str,
    current_user: User = Depends(get_current_user),
    service: ProposalService = Depends(get_proposal_service)
):
    """
    (提供者) 撤回尚未被處理的提案
    """
    await service.withdraw_proposal(proposal_id, current_user)
    return

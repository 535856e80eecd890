# app/repositories/proposal_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update, and_, not_
from sqlalchemy.orm import selectinload
from datetime import datetime
from typing import List, Optional

from app.models.job import Job
from app.models.proposal import Proposal, ProposalStatusEnum

class ProposalRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_proposal_by_id(self, proposal_id: str) -> Optional[Proposal]:
        """
        透過 ID 獲取單一提案 (重新從資料庫讀取，job / provider 一併載入)
        """
        stmt = (
            select(Proposal)
            .where(Proposal.proposal_id == proposal_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def find_active_proposal(
        self, job_id: str, provider_id: str, cooldown_cutoff: datetime
    ) -> Optional[Proposal]:
        """
        檢查提供者是否仍有會阻擋重新提案的提案

        除了「還價被拒絕且已超過冷卻期」(rejected_at <= cutoff) 之外，
        任何狀態的提案都會阻擋，REJECTED 也一樣。
        回傳最新的一筆，讓 Service 判斷是否仍在冷卻期內。
        """
        expired_rejection = and_(
            Proposal.status == ProposalStatusEnum.COUNTEROFFER_REJECTED,
            Proposal.rejected_at.is_not(None),
            Proposal.rejected_at <= cooldown_cutoff,
        )
        stmt = (
            select(Proposal)
            .where(
                Proposal.job_id == job_id,
                Proposal.provider_id == provider_id,
                not_(expired_rejection),
            )
            .order_by(Proposal.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def create_proposal(self, proposal: Proposal) -> Proposal:
        """
        建立新提案
        """
        self.db.add(proposal)
        await self.db.commit()
        await self.db.refresh(proposal)
        return proposal

    async def update_proposal(self, proposal: Proposal) -> Proposal:
        """
        儲存對現有 Proposal 物件的變更 (還價 / 拒絕)
        """
        await self.db.commit()
        await self.db.refresh(proposal)
        return proposal

    async def mark_accepted(self, proposal_id: str) -> None:
        """
        將提案設為 ACCEPTED (不 commit，與工作指派在同一個交易中)
        """
        await self.db.execute(
            update(Proposal)
            .where(Proposal.proposal_id == proposal_id)
            .values(status=ProposalStatusEnum.ACCEPTED, rejected_at=None)
            .execution_options(synchronize_session=False)
        )

    async def reject_sibling_proposals(self, job_id: str, accepted_proposal_id: str) -> int:
        """
        同一工作除了被接受的提案之外，其餘提案一律設為 REJECTED
        (不 commit，與工作指派在同一個交易中)
        """
        stmt = (
            update(Proposal)
            .where(
                Proposal.job_id == job_id,
                Proposal.proposal_id != accepted_proposal_id,
            )
            .values(status=ProposalStatusEnum.REJECTED)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def list_by_job(self, job_id: str) -> List[Proposal]:
        """
        獲取特定工作的所有提案 (雇主檢視用)
        """
        stmt = (
            select(Proposal)
            .where(Proposal.job_id == job_id)
            .order_by(Proposal.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def list_by_provider(self, provider_id: str) -> List[Proposal]:
        """
        獲取提供者自己的所有提案 (包含工作與雇主資訊)
        """
        stmt = (
            select(Proposal)
            .where(Proposal.provider_id == provider_id)
            .options(selectinload(Proposal.job).selectinload(Job.client))
            .order_by(Proposal.created_at.desc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def delete_proposal(self, proposal: Proposal) -> None:
        """
        刪除提案
        """
        await self.db.delete(proposal)
        await self.db.commit()

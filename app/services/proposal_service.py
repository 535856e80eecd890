# app/services/proposal_service.py

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.escrow_gateway import EscrowGateway
from app.core.exceptions import (
    DuplicateActiveProposal, InvalidAction, JobNotFound, JobNotPending,
    NotJobClient, NotProposalOwner, ProposalNotCounteroffered, ProposalNotFound,
    ProposalNotPending, ProviderAlreadyAssigned, ReapplicationCooldown, SelfProposal,
)
from app.models.job import Job, JobStatusEnum
from app.models.proposal import Proposal, ProposalStatusEnum
from app.models.user import User
from app.repositories.job_repo import JobRepository
from app.repositories.proposal_repo import ProposalRepository
from app.schemas.event_schema import (
    CounterofferAcceptedEvent, CounterofferRejectedEvent, EventUser, NewProposalEvent,
    ProposalAcceptedEvent, ProposalCounterofferedEvent, ProposalRejectedEvent,
)
from app.schemas.proposal_schema import ProposalCreate
from app.services.notification_service import NotificationService
from app.services.settlement_service import SettlementService, require_positive_amount
from app.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def cooldown_remaining_hours(rejected_at: datetime, now: datetime, cooldown: timedelta) -> int:
    """還價被拒絕後剩餘的冷卻時數 (無條件進位)"""
    elapsed_hours = (now - rejected_at).total_seconds() / 3600
    return max(1, math.ceil(cooldown.total_seconds() / 3600 - elapsed_hours))


class ProposalService:
    def __init__(
        self,
        db: AsyncSession,
        gateway: EscrowGateway,
        notifier: NotificationService,
        settlement: Optional[SettlementService] = None,
        clock: Callable[[], datetime] = utcnow,
        cooldown_hours: Optional[int] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.proposal_repo = ProposalRepository(db)
        self.job_repo = JobRepository(db)
        self.settlement = settlement or SettlementService(db, gateway, notifier)
        self.clock = clock
        self.cooldown = timedelta(
            hours=settings.PROPOSAL_COOLDOWN_HOURS if cooldown_hours is None else cooldown_hours
        )

    async def _get_job(self, job_id: str) -> Job:
        job = await self.job_repo.get_job(job_id)
        if not job:
            raise JobNotFound(job_id=job_id)
        return job

    async def _get_proposal(self, proposal_id: str) -> Proposal:
        proposal = await self.proposal_repo.get_proposal_by_id(proposal_id)
        if not proposal:
            raise ProposalNotFound(proposal_id=proposal_id)
        return proposal

    @staticmethod
    def _ensure_job_open(job: Job) -> None:
        if job.provider_id is not None:
            raise ProviderAlreadyAssigned(job_id=job.job_id)
        if job.status != JobStatusEnum.PENDING:
            raise JobNotPending(job_id=job.job_id, status=job.status.value)

    # -----------------------------------------------------------------
    # 1. (提供者) 提交提案
    # -----------------------------------------------------------------
    async def submit_proposal(self, job_id: str, provider: User, proposal_data: ProposalCreate) -> Proposal:
        provider_id = provider.user_id
        provider_brief = EventUser.from_user(provider)

        job = await self._get_job(job_id)
        if job.client_id == provider_id:
            raise SelfProposal(job_id=job_id)
        self._ensure_job_open(job)

        if proposal_data.proposed_amount is not None:
            require_positive_amount(proposal_data.proposed_amount)

        # 除了「還價被拒絕且已過冷卻期」之外，任何既有提案都會阻擋
        now = self.clock()
        existing = await self.proposal_repo.find_active_proposal(job_id, provider_id, now - self.cooldown)
        if existing:
            if existing.status == ProposalStatusEnum.COUNTEROFFER_REJECTED and existing.rejected_at:
                raise ReapplicationCooldown(
                    cooldown_remaining_hours(existing.rejected_at, now, self.cooldown)
                )
            raise DuplicateActiveProposal(proposal_id=existing.proposal_id)

        job_title = job.title
        client_id = job.client_id

        new_proposal = Proposal(
            job_id=job_id,
            provider_id=provider_id,
            message=proposal_data.message,
            proposed_amount=proposal_data.proposed_amount,
            status=ProposalStatusEnum.PENDING,
        )
        created = await self.proposal_repo.create_proposal(new_proposal)
        logger.info(f"新提案: proposal={created.proposal_id} job={job_id} provider={provider_id}")

        await self.notifier.notify_user(client_id, NewProposalEvent(
            job_id=job_id,
            job_title=job_title,
            proposal_id=created.proposal_id,
            provider=provider_brief,
            message=proposal_data.message,
        ))
        return created

    # -----------------------------------------------------------------
    # 2. (雇主) 還價
    # -----------------------------------------------------------------
    async def counter_offer(self, proposal_id: str, client: User, amount: int) -> Proposal:
        client_id = client.user_id
        require_positive_amount(amount)

        proposal = await self._get_proposal(proposal_id)
        job = await self._get_job(proposal.job_id)
        if job.client_id != client_id:
            raise NotJobClient(job_id=job.job_id)
        if proposal.status != ProposalStatusEnum.PENDING:
            raise ProposalNotPending(proposal_id=proposal_id, status=proposal.status.value)
        self._ensure_job_open(job)

        original_amount = proposal.proposed_amount or job.amount
        proposal.status = ProposalStatusEnum.COUNTEROFFERED
        proposal.counter_offer_amount = amount
        proposal = await self.proposal_repo.update_proposal(proposal)

        await self.notifier.notify_user(proposal.provider_id, ProposalCounterofferedEvent(
            proposal_id=proposal_id,
            job_id=job.job_id,
            job_title=job.title,
            counter_offer=amount,
            original_amount=original_amount,
        ))
        return proposal

    # -----------------------------------------------------------------
    # 3. (提供者) 回應還價
    # -----------------------------------------------------------------
    async def respond_to_counter_offer(
        self,
        proposal_id: str,
        provider: User,
        action: str,
        contract_job_id: Optional[str] = None,
    ) -> Tuple[Job, Proposal]:
        provider_id = provider.user_id
        provider_brief = EventUser.from_user(provider)
        if action not in ("accept", "reject"):
            raise InvalidAction(action=action)

        proposal = await self._get_proposal(proposal_id)
        if proposal.provider_id != provider_id:
            raise NotProposalOwner(proposal_id=proposal_id)
        if proposal.status != ProposalStatusEnum.COUNTEROFFERED:
            raise ProposalNotCounteroffered(proposal_id=proposal_id, status=proposal.status.value)

        job = await self._get_job(proposal.job_id)
        job_id = job.job_id
        job_title = job.title
        client_id = job.client_id

        if action == "reject":
            proposal.status = ProposalStatusEnum.COUNTEROFFER_REJECTED
            proposal.rejected_at = self.clock()
            proposal = await self.proposal_repo.update_proposal(proposal)
            logger.info(f"還價被拒絕: proposal={proposal_id}，冷卻期 {self.cooldown} 開始")

            await self.notifier.notify_user(client_id, CounterofferRejectedEvent(
                proposal_id=proposal_id,
                job_id=job_id,
                job_title=job_title,
                provider=provider_brief,
            ))
            return job, proposal

        # accept: 以還價金額進行指派
        job = await self.settlement.assign_provider(
            job_id=job_id,
            proposal_id=proposal_id,
            provider_id=provider_id,
            final_amount=proposal.counter_offer_amount,
            contract_job_id=contract_job_id,
        )
        proposal = await self._get_proposal(proposal_id)

        await self.notifier.notify_user(client_id, CounterofferAcceptedEvent(
            proposal_id=proposal_id,
            job_id=job_id,
            job_title=job_title,
            provider=provider_brief,
        ))
        return job, proposal

    # -----------------------------------------------------------------
    # 4. (雇主) 直接接受提案
    # -----------------------------------------------------------------
    async def accept_proposal_directly(
        self,
        proposal_id: str,
        client: User,
        contract_job_id: Optional[str] = None,
    ) -> Tuple[Job, Proposal]:
        client_id = client.user_id

        proposal = await self._get_proposal(proposal_id)
        job = await self._get_job(proposal.job_id)
        if job.client_id != client_id:
            raise NotJobClient(job_id=job.job_id)
        # 先檢查工作，再檢查提案狀態 (工作已指派時，其他提案已被設為 REJECTED)
        self._ensure_job_open(job)
        # 還價中的提案必須由提供者回應
        if proposal.status != ProposalStatusEnum.PENDING:
            raise ProposalNotPending(proposal_id=proposal_id, status=proposal.status.value)

        job_id = job.job_id
        job_title = job.title
        provider_id = proposal.provider_id
        final_amount = proposal.proposed_amount or job.amount

        job = await self.settlement.assign_provider(
            job_id=job_id,
            proposal_id=proposal_id,
            provider_id=provider_id,
            final_amount=final_amount,
            contract_job_id=contract_job_id,
        )
        proposal = await self._get_proposal(proposal_id)

        await self.notifier.notify_user(provider_id, ProposalAcceptedEvent(
            proposal_id=proposal_id,
            job_id=job_id,
            job_title=job_title,
            amount=final_amount,
        ))
        return job, proposal

    # -----------------------------------------------------------------
    # 5. (雇主) 拒絕提案
    # -----------------------------------------------------------------
    async def reject_proposal(self, proposal_id: str, client: User) -> Proposal:
        client_id = client.user_id

        proposal = await self._get_proposal(proposal_id)
        job = await self._get_job(proposal.job_id)
        if job.client_id != client_id:
            raise NotJobClient(job_id=job.job_id)
        if proposal.status != ProposalStatusEnum.PENDING:
            raise ProposalNotPending(proposal_id=proposal_id, status=proposal.status.value)

        proposal.status = ProposalStatusEnum.REJECTED
        proposal = await self.proposal_repo.update_proposal(proposal)

        await self.notifier.notify_user(proposal.provider_id, ProposalRejectedEvent(
            proposal_id=proposal_id,
            job_id=job.job_id,
            job_title=job.title,
        ))
        return proposal

    # -----------------------------------------------------------------
    # 6. (提供者) 撤回提案
    # -----------------------------------------------------------------
    async def withdraw_proposal(self, proposal_id: str, provider: User) -> None:
        proposal = await self._get_proposal(proposal_id)
        if proposal.provider_id != provider.user_id:
            raise NotProposalOwner(proposal_id=proposal_id)
        if proposal.status != ProposalStatusEnum.PENDING:
            raise ProposalNotPending(proposal_id=proposal_id, status=proposal.status.value)
        await self.proposal_repo.delete_proposal(proposal)

    # -----------------------------------------------------------------
    # 7. 列表
    # -----------------------------------------------------------------
    async def list_job_proposals(self, job_id: str, client: User) -> List[Proposal]:
        """(雇主) 檢視自己工作的所有提案"""
        job = await self._get_job(job_id)
        if job.client_id != client.user_id:
            raise NotJobClient(job_id=job_id)
        return await self.proposal_repo.list_by_job(job_id)

    async def list_my_proposals(self, provider: User) -> List[Proposal]:
        """(提供者) 檢視自己送出的提案"""
        return await self.proposal_repo.list_by_provider(provider.user_id)

# app/services/job_service.py

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from app.core.escrow_gateway import EscrowGateway
from app.core.exceptions import (
    ContractJobMissing, ExternalCallError, JobNotDeletable, JobNotFound, NotJobClient,
)
from app.models.job import CONTRACT_STATUS_BY_CODE, Job, JobCategoryEnum, JobStatusEnum
from app.models.user import User
from app.repositories.job_repo import JobRepository
from app.schemas.event_schema import EventUser, JobDeletedEvent, NewJobCreatedEvent
from app.schemas.job_schema import ContractConfirmations, ContractStatusOut, JobCreate
from app.services.notification_service import NotificationService
from app.services.settlement_service import require_positive_amount

logger = logging.getLogger(__name__)


def describe_confirmations(client_confirmed: bool, provider_confirmed: bool) -> str:
    if client_confirmed and provider_confirmed:
        return "雙方皆已確認，資金應已釋放給提供者"
    if client_confirmed:
        return "雇主已確認，等待提供者確認"
    if provider_confirmed:
        return "提供者已確認，等待雇主確認"
    return "雙方皆尚未確認"


class JobService:
    def __init__(self, db: AsyncSession, notifier: NotificationService):
        self.db = db
        self.notifier = notifier
        self.repo = JobRepository(db)

    async def create_job(self, client: User, job_data: JobCreate) -> Job:
        """
        (雇主) 刊登新工作，並廣播給所有在線使用者
        """
        client_brief = EventUser.from_user(client)
        amount = require_positive_amount(job_data.amount)

        new_job = Job(
            title=job_data.title,
            description=job_data.description,
            category=job_data.category,
            amount=amount,
            status=JobStatusEnum.PENDING,
            client_id=client.user_id,
        )
        created = await self.repo.create_job(new_job)
        job = await self.repo.get_job(created.job_id)
        logger.info(f"新工作: job={job.job_id} client={job.client_id} amount={amount}")

        await self.notifier.broadcast(NewJobCreatedEvent(
            job_id=job.job_id,
            title=job.title,
            category=job.category,
            amount=job.amount,
            client=client_brief,
        ))
        return job

    async def list_jobs(
        self,
        status: Optional[JobStatusEnum] = None,
        category: Optional[JobCategoryEnum] = None,
        client_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Job]:
        return await self.repo.list_jobs(
            status=status, category=category, client_id=client_id, provider_id=provider_id
        )

    async def get_job(self, job_id: str) -> Job:
        job = await self.repo.get_job(job_id)
        if not job:
            raise JobNotFound(job_id=job_id)
        return job

    async def delete_job(self, job_id: str, client: User) -> None:
        """
        (雇主) 刪除工作：只能刪除待指派且尚無提供者的工作，提案與評價一併刪除
        """
        job = await self.get_job(job_id)
        if job.client_id != client.user_id:
            raise NotJobClient(job_id=job_id)
        if job.status != JobStatusEnum.PENDING or job.provider_id is not None:
            raise JobNotDeletable(job_id=job_id, status=job.status.value)

        # 條件刪除，避免與同時進行的指派衝突
        deleted = await self.repo.delete_pending_job(job_id)
        if not deleted:
            raise JobNotDeletable(job_id=job_id)
        await self.db.commit()
        logger.info(f"工作已刪除: job={job_id}")

        await self.notifier.broadcast(JobDeletedEvent(job_id=job_id))

    async def get_contract_status(self, job_id: str, gateway: EscrowGateway) -> ContractStatusOut:
        """
        讀取鏈上合約中此工作的確認狀態
        """
        job = await self.get_job(job_id)
        if not job.contract_job_id:
            raise ContractJobMissing(job_id=job_id)

        contract_job = await gateway.get_contract_job(job.contract_job_id)
        contract_status = CONTRACT_STATUS_BY_CODE.get(contract_job.status)
        if contract_status is None:
            logger.error(f"無法辨識的鏈上狀態編號: job={job_id} status={contract_job.status}")
            raise ExternalCallError(
                "query",
                f"unknown contract status code {contract_job.status}",
                contract_job_id=job.contract_job_id,
            )
        return ContractStatusOut(
            job_id=job_id,
            contract_job_id=job.contract_job_id,
            status=ContractConfirmations(
                client_confirmed=contract_job.client_confirmed,
                provider_confirmed=contract_job.provider_confirmed,
                both_confirmed=contract_job.client_confirmed and contract_job.provider_confirmed,
                contract_status=contract_status,
            ),
            amount=contract_job.amount,
            amount_eth=str(Web3.from_wei(contract_job.amount, "ether")),
            client=contract_job.client,
            provider=contract_job.provider,
            message=describe_confirmations(contract_job.client_confirmed, contract_job.provider_confirmed),
        )

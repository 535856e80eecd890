# app/services/settlement_service.py

import logging
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.escrow_gateway import EscrowGateway
from app.core.exceptions import (
    AlreadyApproved, ContractMismatch, ExternalCallError, InvalidAmount,
    JobNotFound, JobNotInProgress, JobNotPending, NotAParticipant,
    ProviderAlreadyAssigned, UserNotFound,
)
from app.models.job import Job, JobStatusEnum
from app.repositories.job_repo import JobRepository
from app.repositories.proposal_repo import ProposalRepository
from app.repositories.user_repo import UserRepository
from app.schemas.event_schema import (
    JobApprovalRequestedEvent, JobApprovalUpdatedEvent, JobStatusChangedEvent,
)
from app.schemas.job_schema import ApprovalResult, JobOut
from app.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

# 鏈上 getJob 回傳的 PENDING 狀態編號
CONTRACT_STATUS_PENDING = 0

# (job_id, caller_id, error) -> None
MirrorFailureHook = Callable[[str, str, ExternalCallError], None]

# 鏈上同步失敗的待對帳紀錄，獨立的 logger 方便另外收集
reconciliation_logger = logging.getLogger("app.escrow.reconciliation")


def log_mirror_failure(job_id: str, caller_id: str, error: ExternalCallError) -> None:
    """預設的 on_mirror_failure：寫一筆帶結構化欄位的待對帳紀錄"""
    fields = {"job_id": job_id, "caller_id": caller_id, "stage": error.stage, "cause": error.cause}
    reconciliation_logger.warning(
        "mirror-failure | " + " ".join(f"{k}={v}" for k, v in fields.items()),
        extra={"reconciliation": fields},
    )


def require_positive_amount(amount) -> int:
    """金額必須是正整數 (wei)。bool 也是 int 的子類別，要排除"""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmount(amount=str(amount))
    return amount


class SettlementService:
    """
    工作狀態機的唯一寫入者：

    - PENDING -> IN_PROGRESS (指派：先完成鏈上存款與接受，才寫入資料庫)
    - IN_PROGRESS -> COMPLETED (雙方確認)
    """
    def __init__(
        self,
        db: AsyncSession,
        gateway: EscrowGateway,
        notifier: NotificationService,
        on_mirror_failure: Optional[MirrorFailureHook] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.on_mirror_failure = on_mirror_failure or log_mirror_failure
        self.job_repo = JobRepository(db)
        self.proposal_repo = ProposalRepository(db)
        self.user_repo = UserRepository(db)

    @staticmethod
    def _ensure_assignable(job: Job) -> None:
        # 先檢查 provider，再檢查狀態 (已指派的工作回報 ProviderAlreadyAssigned)
        if job.provider_id is not None:
            raise ProviderAlreadyAssigned(job_id=job.job_id)
        if job.status != JobStatusEnum.PENDING:
            raise JobNotPending(job_id=job.job_id, status=job.status.value)

    # -----------------------------------------------------------------
    # 指派 (PENDING -> IN_PROGRESS)
    # -----------------------------------------------------------------
    async def assign_provider(
        self,
        job_id: str,
        proposal_id: str,
        provider_id: str,
        final_amount: int,
        contract_job_id: Optional[str] = None,
    ) -> Job:
        """
        指派流程：

        1. 重新讀取工作，確認仍是 PENDING 且沒有提供者
        2. 鏈上建立工作並存入資金 (帶入 contract_job_id 時改為核對既有的存款)
        3. 提供者在鏈上接受工作
        4. 兩者都成功後，在同一個交易中：條件更新工作、提案 -> ACCEPTED、其他提案 -> REJECTED
        5. 廣播 job-status-changed

        步驟 2、3 失敗時資料庫完全不變。
        """
        final_amount = require_positive_amount(final_amount)

        # --- 1. 重新驗證 ---
        job = await self.job_repo.get_job(job_id)
        if not job:
            raise JobNotFound(job_id=job_id)
        self._ensure_assignable(job)

        provider = await self.user_repo.get_user_by_id(provider_id)
        if not provider:
            raise UserNotFound(user_id=provider_id)

        job_title = job.title
        category = job.category
        client_wallet = job.client.wallet_address
        provider_wallet = provider.wallet_address

        # --- 2. 存款 ---
        if contract_job_id is None:
            created = await self.gateway.create_and_deposit(
                client_wallet=client_wallet,
                provider_wallet=provider_wallet,
                amount=final_amount,
                category=category,
            )
            contract_job_id = created.contract_job_id
            deposit_tx_hash = created.tx_hash
        else:
            await self._verify_existing_deposit(
                contract_job_id, final_amount, client_wallet, provider_wallet
            )
            deposit_tx_hash = None

        # --- 3. 鏈上接受 ---
        try:
            accepted = await self.gateway.accept_in_contract(provider_id, contract_job_id)
        except ExternalCallError as e:
            logger.error(
                f"合約接受失敗，工作維持 PENDING: job={job_id} contract_job_id={contract_job_id}"
            )
            raise ExternalCallError(
                "accept",
                e.cause,
                message="資金已存入合約，但接受工作失敗。請帶入 contract_job_id 重新嘗試接受",
                contract_job_id=contract_job_id,
                tx_hash=deposit_tx_hash,
            ) from e

        # --- 4. 寫入資料庫 (單一交易) ---
        updated = await self.job_repo.update_job_conditional(
            job_id,
            expected_status=JobStatusEnum.PENDING,
            expected_provider_null=True,
            patch={
                "provider_id": provider_id,
                "status": JobStatusEnum.IN_PROGRESS,
                "amount": final_amount,
                "contract_job_id": contract_job_id,
                "tx_hash": deposit_tx_hash or accepted.tx_hash,
            },
        )
        if not updated:
            # 條件更新沒有寫入任何資料列；另一個指派搶先完成，這筆鏈上存款成為孤兒，需人工對帳
            logger.error(
                f"⚠️ 工作已被其他請求指派，鏈上存款未使用: job={job_id} "
                f"orphaned contract_job_id={contract_job_id}"
            )
            current = await self.job_repo.get_job(job_id)
            if current is not None and current.provider_id is not None:
                raise ProviderAlreadyAssigned(job_id=job_id, orphaned_contract_job_id=contract_job_id)
            raise JobNotPending(job_id=job_id, orphaned_contract_job_id=contract_job_id)

        await self.proposal_repo.mark_accepted(proposal_id)
        rejected_count = await self.proposal_repo.reject_sibling_proposals(job_id, proposal_id)
        await self.db.commit()

        logger.info(
            f"✅ 工作已指派: job={job_id} provider={provider_id} amount={final_amount} "
            f"contract_job_id={contract_job_id} (rejected {rejected_count} sibling proposal(s))"
        )

        # --- 5. 推播 ---
        job = await self.job_repo.get_job(job_id)
        await self.notifier.broadcast(JobStatusChangedEvent(
            job_id=job_id,
            job_title=job_title,
            old_status=JobStatusEnum.PENDING,
            new_status=JobStatusEnum.IN_PROGRESS,
            message=f"工作「{job_title}」已指派，進行中",
        ))
        return job

    async def _verify_existing_deposit(
        self, contract_job_id: str, final_amount: int, client_wallet: str, provider_wallet: str
    ) -> None:
        """重試接受時，核對鏈上既有的工作確實是這筆指派的存款"""
        contract_job = await self.gateway.get_contract_job(contract_job_id)
        if contract_job.status != CONTRACT_STATUS_PENDING:
            raise ContractMismatch(
                "鏈上合約工作已不在待接受狀態",
                contract_job_id=contract_job_id,
                contract_status=contract_job.status,
            )
        if contract_job.amount != final_amount:
            raise ContractMismatch(
                "鏈上存款金額與成交金額不符",
                contract_job_id=contract_job_id,
                contract_amount=str(contract_job.amount),
            )
        if contract_job.client.lower() != client_wallet.lower():
            raise ContractMismatch(
                "鏈上存款不是由此工作的雇主存入",
                contract_job_id=contract_job_id,
            )
        if contract_job.provider.lower() != provider_wallet.lower():
            raise ContractMismatch(
                "鏈上合約工作的提供者與提案者不符",
                contract_job_id=contract_job_id,
            )

    # -----------------------------------------------------------------
    # 雙方確認完成 (IN_PROGRESS -> COMPLETED)
    # -----------------------------------------------------------------
    async def approve_completion(self, job_id: str, caller_id: str) -> ApprovalResult:
        job = await self.job_repo.get_job(job_id)
        if not job:
            raise JobNotFound(job_id=job_id)
        if job.status != JobStatusEnum.IN_PROGRESS:
            raise JobNotInProgress(job_id=job_id, status=job.status.value)

        if caller_id == job.client_id:
            flag, other_flag = "client_approved", "provider_approved"
            other_party_id = job.provider_id
        elif caller_id == job.provider_id:
            flag, other_flag = "provider_approved", "client_approved"
            other_party_id = job.client_id
        else:
            raise NotAParticipant(job_id=job_id)

        if getattr(job, flag):
            raise AlreadyApproved(job_id=job_id)

        job_title = job.title
        contract_job_id = job.contract_job_id

        # --- 鏈上同步 (盡力而為，失敗不阻擋本地確認) ---
        on_chain_confirmed = None
        on_chain_tx_hash = None
        on_chain_error = None
        if contract_job_id:
            try:
                tx = await self.gateway.confirm_completion(caller_id, contract_job_id)
                on_chain_confirmed = True
                on_chain_tx_hash = tx.tx_hash
            except ExternalCallError as e:
                on_chain_confirmed = False
                on_chain_error = e.cause
                logger.warning(
                    f"鏈上確認失敗，仍記錄本地確認: job={job_id} caller={caller_id} error={e.cause}"
                )
                self._report_mirror_failure(job_id, caller_id, e)

        # --- 本地確認 (原子性條件更新) ---
        updated = await self.job_repo.approve_completion_atomic(job_id, flag, other_flag)
        if not updated:
            current = await self.job_repo.get_job(job_id)
            if current is not None and getattr(current, flag):
                raise AlreadyApproved(job_id=job_id)
            raise JobNotInProgress(job_id=job_id)
        await self.db.commit()

        job = await self.job_repo.get_job(job_id)
        both_approved = job.status == JobStatusEnum.COMPLETED
        logger.info(
            f"工作確認: job={job_id} caller={caller_id} "
            f"client_approved={job.client_approved} provider_approved={job.provider_approved}"
        )

        if both_approved:
            await self.notifier.broadcast(JobStatusChangedEvent(
                job_id=job_id,
                job_title=job_title,
                old_status=JobStatusEnum.IN_PROGRESS,
                new_status=JobStatusEnum.COMPLETED,
                message=f"工作「{job_title}」雙方皆已確認，已完成",
            ))
        else:
            await self.notifier.broadcast(JobApprovalUpdatedEvent(
                job_id=job_id,
                job_title=job_title,
                client_approved=job.client_approved,
                provider_approved=job.provider_approved,
                message=f"工作「{job_title}」等待另一方確認完成",
            ))
            await self.notifier.notify_user(other_party_id, JobApprovalRequestedEvent(
                job_id=job_id,
                job_title=job_title,
                approved_by=caller_id,
                message=f"對方已確認工作「{job_title}」完成，請確認",
            ))

        return ApprovalResult(
            job=JobOut.model_validate(job),
            both_approved=both_approved,
            on_chain_confirmed=on_chain_confirmed,
            on_chain_tx_hash=on_chain_tx_hash,
            on_chain_error=on_chain_error,
        )

    def _report_mirror_failure(self, job_id: str, caller_id: str, error: ExternalCallError) -> None:
        try:
            self.on_mirror_failure(job_id, caller_id, error)
        except Exception as e:
            logger.error(f"on_mirror_failure hook 失敗: {e}", exc_info=True)

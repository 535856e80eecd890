# app/core/escrow_gateway.py
# 封裝對外部 Escrow 合約的呼叫 (建立並存入資金 / 接受 / 確認完成 / 查詢)
# 本身不保存狀態；交易由節點管理的帳戶簽署 (本服務不保管私鑰)

import logging
from typing import Awaitable, Callable, Optional, Protocol

from fastapi import Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import ExternalCallError, UserNotFound
from app.models.job import JobCategoryEnum
from app.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)

# 只列出本服務會用到的函式與事件
ESCROW_ABI = [
    {
        "type": "function",
        "name": "createJob",
        "stateMutability": "payable",
        "inputs": [
            {"name": "provider", "type": "address"},
            {"name": "category", "type": "uint8"},
        ],
        "outputs": [{"name": "jobId", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "acceptJob",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "jobId", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "confirmCompletion",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "jobId", "type": "uint256"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getJob",
        "stateMutability": "view",
        "inputs": [{"name": "jobId", "type": "uint256"}],
        "outputs": [
            {"name": "client", "type": "address"},
            {"name": "provider", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "status", "type": "uint8"},
            {"name": "clientConfirmed", "type": "bool"},
            {"name": "providerConfirmed", "type": "bool"},
        ],
    },
    {
        "type": "event",
        "name": "JobCreated",
        "anonymous": False,
        "inputs": [
            {"name": "jobId", "type": "uint256", "indexed": True},
            {"name": "client", "type": "address", "indexed": True},
            {"name": "provider", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
        ],
    },
]


# --- 回傳格式 ---
class ContractJobCreated(BaseModel):
    contract_job_id: str
    tx_hash: str

class ContractTx(BaseModel):
    # 確認完成時若鏈上已確認過，不會送出交易，tx_hash 為 None
    tx_hash: Optional[str] = None
    skipped: bool = False

class ContractJob(BaseModel):
    client: str
    provider: str
    amount: int
    status: int # 0=PENDING, 1=IN_PROGRESS, 2=COMPLETED, 3=DISPUTED, 4=CANCELLED
    client_confirmed: bool
    provider_confirmed: bool


class EscrowGateway(Protocol):
    """Settlement 流程依賴的介面 (測試中以假物件替換)"""

    async def create_and_deposit(
        self, client_wallet: str, provider_wallet: str, amount: int, category: JobCategoryEnum
    ) -> ContractJobCreated: ...

    async def accept_in_contract(self, provider_id: str, contract_job_id: str) -> ContractTx: ...

    async def confirm_completion(self, caller_id: str, contract_job_id: str) -> ContractTx: ...

    async def get_contract_job(self, contract_job_id: str) -> ContractJob: ...

    async def get_balance(self, wallet_address: str) -> int: ...


WalletResolver = Callable[[str], Awaitable[str]]


def create_web3(rpc_url: str, timeout: int = 30) -> Web3:
    """建立 Web3 連線 (Web3 物件本身不會立即連線，第一次呼叫時才會)"""
    return Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))


class Web3EscrowGateway:
    """
    以 web3.py 實作的 EscrowGateway

    - 每個方法都是一次同步的鏈上呼叫，放到 threadpool 執行
    - 任何失敗 (連線、revert、收據逾時) 都轉成 ExternalCallError，保留原始訊息
    - 不做自動重試，重試由使用者重新呼叫
    """

    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        wallet_resolver: WalletResolver,
        tx_timeout: int = 120,
    ):
        self.w3 = w3
        self.contract_address = contract_address
        self.wallet_resolver = wallet_resolver
        self.tx_timeout = tx_timeout

    def _contract(self):
        if not self.contract_address:
            raise RuntimeError("ESCROW_CONTRACT_ADDRESS 未設定")
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(self.contract_address),
            abi=ESCROW_ABI,
        )

    async def _wallet_of(self, user_id: str) -> str:
        return Web3.to_checksum_address(await self.wallet_resolver(user_id))

    async def _call(self, stage: str, fn, *args):
        try:
            return await run_in_threadpool(fn, *args)
        except Exception as e:
            logger.error(f"Escrow 呼叫失敗 (stage={stage}): {e}", exc_info=True)
            raise ExternalCallError(stage, str(e)) from e

    def _wait_for_success(self, tx_hash):
        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        if receipt.status != 1:
            raise RuntimeError(f"交易被 revert: {Web3.to_hex(tx_hash)}")
        return receipt

    # --- 1. 建立工作並存入資金 ---
    async def create_and_deposit(
        self,
        client_wallet: str,
        provider_wallet: str,
        amount: int,
        category: JobCategoryEnum,
    ) -> ContractJobCreated:
        logger.info(
            f"💰 建立 escrow 工作: client={client_wallet} provider={provider_wallet} amount={amount} wei"
        )
        return await self._call(
            "create", self._create_job_sync,
            Web3.to_checksum_address(client_wallet), provider_wallet, amount, JobCategoryEnum(category)
        )

    def _create_job_sync(self, client_wallet, provider_wallet, amount, category) -> ContractJobCreated:
        contract = self._contract()
        tx_hash = contract.functions.createJob(
            Web3.to_checksum_address(provider_wallet),
            category.contract_index,
        ).transact({"from": client_wallet, "value": int(amount)})
        receipt = self._wait_for_success(tx_hash)

        # contract_job_id 只從成功交易的 JobCreated 事件取得
        events = contract.events.JobCreated().process_receipt(receipt)
        if not events:
            raise RuntimeError("交易收據中找不到 JobCreated 事件")
        contract_job_id = str(events[0]["args"]["jobId"])
        logger.info(f"✅ Escrow 工作已建立: id={contract_job_id} tx={Web3.to_hex(tx_hash)}")
        return ContractJobCreated(contract_job_id=contract_job_id, tx_hash=Web3.to_hex(tx_hash))

    # --- 2. 提供者在合約中接受工作 ---
    async def accept_in_contract(self, provider_id: str, contract_job_id: str) -> ContractTx:
        provider_wallet = await self._wallet_of(provider_id)
        return await self._call("accept", self._accept_job_sync, provider_wallet, contract_job_id)

    def _accept_job_sync(self, provider_wallet, contract_job_id) -> ContractTx:
        contract = self._contract()
        tx_hash = contract.functions.acceptJob(int(contract_job_id)).transact({"from": provider_wallet})
        self._wait_for_success(tx_hash)
        logger.info(f"✅ Escrow 工作已接受: id={contract_job_id} tx={Web3.to_hex(tx_hash)}")
        return ContractTx(tx_hash=Web3.to_hex(tx_hash))

    # --- 3. 確認完成 (先檢查鏈上是否已確認，避免重複交易) ---
    async def confirm_completion(self, caller_id: str, contract_job_id: str) -> ContractTx:
        caller_wallet = await self._wallet_of(caller_id)
        return await self._call("confirm", self._confirm_sync, caller_wallet, contract_job_id)

    def _confirm_sync(self, caller_wallet, contract_job_id) -> ContractTx:
        contract = self._contract()
        job = self._read_job(contract, contract_job_id)
        if (
            (job.client.lower() == caller_wallet.lower() and job.client_confirmed)
            or (job.provider.lower() == caller_wallet.lower() and job.provider_confirmed)
        ):
            logger.info(f"鏈上已確認過，略過: id={contract_job_id} wallet={caller_wallet}")
            return ContractTx(tx_hash=None, skipped=True)

        tx_hash = contract.functions.confirmCompletion(int(contract_job_id)).transact({"from": caller_wallet})
        self._wait_for_success(tx_hash)
        logger.info(f"✅ 鏈上確認完成: id={contract_job_id} tx={Web3.to_hex(tx_hash)}")
        return ContractTx(tx_hash=Web3.to_hex(tx_hash))

    # --- 4. 查詢 ---
    async def get_contract_job(self, contract_job_id: str) -> ContractJob:
        return await self._call("query", self._get_job_sync, contract_job_id)

    def _get_job_sync(self, contract_job_id) -> ContractJob:
        return self._read_job(self._contract(), contract_job_id)

    def _read_job(self, contract, contract_job_id) -> ContractJob:
        client, provider, amount, status, client_confirmed, provider_confirmed = (
            contract.functions.getJob(int(contract_job_id)).call()
        )
        return ContractJob(
            client=client,
            provider=provider,
            amount=int(amount),
            status=int(status),
            client_confirmed=bool(client_confirmed),
            provider_confirmed=bool(provider_confirmed),
        )

    async def get_balance(self, wallet_address: str) -> int:
        return await self._call(
            "query",
            lambda: int(self.w3.eth.get_balance(Web3.to_checksum_address(wallet_address))),
        )


# --- FastAPI Dependency ---
def get_escrow_gateway(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Web3EscrowGateway:
    """依賴注入：以本次請求的 DB session 解析使用者錢包地址"""
    user_repo = UserRepository(db)

    async def resolve_wallet(user_id: str) -> str:
        user = await user_repo.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user.wallet_address

    return Web3EscrowGateway(
        w3=request.app.state.web3,
        contract_address=settings.ESCROW_CONTRACT_ADDRESS,
        wallet_resolver=resolve_wallet,
        tx_timeout=settings.ESCROW_TX_TIMEOUT_SECONDS,
    )

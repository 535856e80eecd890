import os
import sys
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

# Ensure the backend package (app) is on sys.path for imports during tests
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import sessionmaker

from app.core.database import build_engine, create_tables
from app.core.escrow_gateway import ContractJob, ContractJobCreated, ContractTx
from app.core.exceptions import ExternalCallError
from app.models.job import Job, JobCategoryEnum, JobStatusEnum
from app.models.proposal import Proposal, ProposalStatusEnum
from app.models.review import Review  # noqa: F401 (registers the table)
from app.models.user import User
from app.services.notification_service import NotificationService
from app.services.proposal_service import ProposalService
from app.services.settlement_service import SettlementService

ONE_ETH = 10 ** 18


class FakeEscrowGateway:
    """In-memory stand-in for the escrow contract, recording every call"""

    def __init__(self):
        self.calls = []
        self.fail_create = False
        self.fail_accept = False
        self.fail_confirm = False
        self.contract_jobs = {}
        self.balances = {}
        self._next_id = 1

    async def create_and_deposit(self, client_wallet, provider_wallet, amount, category):
        self.calls.append(("create", client_wallet, provider_wallet, amount, JobCategoryEnum(category)))
        if self.fail_create:
            raise ExternalCallError("create", "execution reverted: insufficient funds")
        contract_job_id = str(self._next_id)
        self._next_id += 1
        self.contract_jobs[contract_job_id] = ContractJob(
            client=client_wallet,
            provider=provider_wallet,
            amount=amount,
            status=0,
            client_confirmed=False,
            provider_confirmed=False,
        )
        return ContractJobCreated(contract_job_id=contract_job_id, tx_hash=f"0x{int(contract_job_id):064x}")

    async def accept_in_contract(self, provider_id, contract_job_id):
        self.calls.append(("accept", provider_id, contract_job_id))
        if self.fail_accept:
            raise ExternalCallError("accept", "execution reverted: not the provider")
        job = self.contract_jobs[contract_job_id]
        self.contract_jobs[contract_job_id] = job.model_copy(update={"status": 1})
        return ContractTx(tx_hash="0x" + "a" * 64)

    async def confirm_completion(self, caller_id, contract_job_id):
        self.calls.append(("confirm", caller_id, contract_job_id))
        if self.fail_confirm:
            raise ExternalCallError("confirm", "connection refused")
        return ContractTx(tx_hash="0x" + "f" * 64)

    async def get_contract_job(self, contract_job_id):
        self.calls.append(("query", contract_job_id))
        if contract_job_id not in self.contract_jobs:
            raise ExternalCallError("query", "execution reverted: job does not exist")
        return self.contract_jobs[contract_job_id]

    async def get_balance(self, wallet_address):
        self.calls.append(("balance", wallet_address))
        return self.balances.get(wallet_address, 0)

    def stages(self):
        return [call[0] for call in self.calls]


class RecordingFanout:
    """Collects pushed events instead of writing to sockets"""

    def __init__(self):
        self.user_events = []
        self.broadcasts = []
        self.fail = False

    async def notify_user(self, user_id, event_name, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.user_events.append((user_id, event_name, payload))

    async def broadcast(self, event_name, payload):
        if self.fail:
            raise RuntimeError("socket closed")
        self.broadcasts.append((event_name, payload))

    def events_for(self, user_id):
        return [name for uid, name, _ in self.user_events if uid == user_id]

    def broadcast_names(self):
        return [name for name, _ in self.broadcasts]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakeEscrowGateway()


@pytest.fixture
def fanout():
    return RecordingFanout()


@pytest.fixture
def notifier(fanout):
    return NotificationService(fanout)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, 0))


@pytest.fixture
def mirror_failures():
    return []


@pytest.fixture
def settlement(db, gateway, notifier, mirror_failures):
    return SettlementService(
        db, gateway, notifier,
        on_mirror_failure=lambda job_id, caller_id, error: mirror_failures.append((job_id, caller_id, error.stage)),
    )


@pytest.fixture
def proposal_service(db, gateway, notifier, settlement, clock):
    return ProposalService(db, gateway, notifier, settlement=settlement, clock=clock, cooldown_hours=24)


_wallet_counter = iter(range(1, 10 ** 6))


async def make_user(db, email: str) -> User:
    user = User(
        email=email,
        password_hash="not-a-real-hash",
        wallet_address="0x" + f"{next(_wallet_counter):040x}",
        specialties=[],
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_job(
    db,
    client: User,
    amount: int = ONE_ETH // 10,
    category: JobCategoryEnum = JobCategoryEnum.PLUMBING,
    **fields,
) -> Job:
    job = Job(
        title=fields.pop("title", "Fix the kitchen sink"),
        description=fields.pop("description", "Leaking pipe under the sink"),
        category=category,
        amount=amount,
        client_id=client.user_id,
        status=fields.pop("status", JobStatusEnum.PENDING),
        **fields,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return job


async def make_proposal(db, job: Job, provider: User, **fields) -> Proposal:
    proposal = Proposal(
        job_id=job.job_id,
        provider_id=provider.user_id,
        message=fields.pop("message", "I can do it tomorrow"),
        status=fields.pop("status", ProposalStatusEnum.PENDING),
        **fields,
    )
    db.add(proposal)
    await db.commit()
    await db.refresh(proposal)
    return proposal


@pytest_asyncio.fixture
async def client_user(db):
    return await make_user(db, "client@marketplace.dev")


@pytest_asyncio.fixture
async def provider_user(db):
    return await make_user(db, "provider@marketplace.dev")


@pytest_asyncio.fixture
async def other_provider(db):
    return await make_user(db, "second.provider@marketplace.dev")


@pytest_asyncio.fixture
async def outsider(db):
    return await make_user(db, "outsider@marketplace.dev")


@pytest_asyncio.fixture
async def in_progress_job(db, client_user, provider_user):
    return await make_job(
        db, client_user,
        status=JobStatusEnum.IN_PROGRESS,
        provider_id=provider_user.user_id,
        contract_job_id="7",
        tx_hash="0x" + "1" * 64,
    )

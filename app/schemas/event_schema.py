# app/schemas/event_schema.py
# 推播事件的 payload 格式 (前端以 camelCase 讀取)
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import ClassVar, Optional

from app.models.job import JobCategoryEnum, JobStatusEnum
from app.schemas.common_schema import WeiStr


class BaseEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    # 事件名稱 (前端 socket 監聽的名稱)
    event_name: ClassVar[str]

    def payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class EventUser(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    provider_score: Optional[float] = None

    @classmethod
    def from_user(cls, user) -> "EventUser":
        return cls(id=user.user_id, email=user.email, provider_score=user.provider_score)


# --- 工作 ---
class NewJobCreatedEvent(BaseEvent):
    event_name: ClassVar[str] = "new-job-created"

    job_id: str
    title: str
    category: JobCategoryEnum
    amount: WeiStr
    client: EventUser

class JobStatusChangedEvent(BaseEvent):
    event_name: ClassVar[str] = "job-status-changed"

    job_id: str
    job_title: str
    old_status: JobStatusEnum
    new_status: JobStatusEnum
    message: str

class JobApprovalUpdatedEvent(BaseEvent):
    """其中一方確認完成，仍在等待另一方"""
    event_name: ClassVar[str] = "job-approval-updated"

    job_id: str
    job_title: str
    client_approved: bool
    provider_approved: bool
    message: str

class JobApprovalRequestedEvent(BaseEvent):
    """私訊給尚未確認的一方"""
    event_name: ClassVar[str] = "job-approval-requested"

    job_id: str
    job_title: str
    approved_by: str
    message: str

class JobDeletedEvent(BaseEvent):
    event_name: ClassVar[str] = "job-deleted"

    job_id: str


# --- 提案 ---
class NewProposalEvent(BaseEvent):
    event_name: ClassVar[str] = "new-proposal"

    job_id: str
    job_title: str
    proposal_id: str
    provider: EventUser
    message: Optional[str] = None

class ProposalCounterofferedEvent(BaseEvent):
    event_name: ClassVar[str] = "proposal-counteroffered"

    proposal_id: str
    job_id: str
    job_title: str
    counter_offer: WeiStr
    original_amount: WeiStr

class CounterofferAcceptedEvent(BaseEvent):
    event_name: ClassVar[str] = "counteroffer-accepted"

    proposal_id: str
    job_id: str
    job_title: str
    provider: EventUser

class CounterofferRejectedEvent(CounterofferAcceptedEvent):
    event_name: ClassVar[str] = "counteroffer-rejected"

class ProposalAcceptedEvent(BaseEvent):
    event_name: ClassVar[str] = "proposal-accepted"

    proposal_id: str
    job_id: str
    job_title: str
    amount: WeiStr

class ProposalRejectedEvent(BaseEvent):
    event_name: ClassVar[str] = "proposal-rejected"

    proposal_id: str
    job_id: str
    job_title: str

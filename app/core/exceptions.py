# app/core/exceptions.py
# 業務錯誤分類
# 全部繼承 HTTPException，Service 層直接 raise，FastAPI 會自動轉成 HTTP 回應
from typing import Any, Optional
from fastapi import HTTPException, status


class MarketplaceError(HTTPException):
    """
    所有業務錯誤的基底類別。

    回應格式: {"detail": {"code": "<類別名稱>", "message": "...", ...extra}}
    """
    status_code_default: int = status.HTTP_400_BAD_REQUEST
    message_default: str = "請求無法處理"

    def __init__(self, message: Optional[str] = None, **extra: Any):
        self.message = message or self.message_default
        self.extra = extra
        detail = {"code": type(self).__name__, "message": self.message}
        detail.update(extra)
        super().__init__(status_code=self.status_code_default, detail=detail)

    def __str__(self) -> str:
        return self.message


# --- 1. ValidationError (400): 輸入格式 / 範圍錯誤，在任何副作用之前拒絕 ---
class ValidationError(MarketplaceError):
    status_code_default = status.HTTP_400_BAD_REQUEST
    message_default = "輸入資料不合法"

class InvalidAmount(ValidationError):
    message_default = "金額必須是正整數 (最小單位, wei)"

class InvalidRating(ValidationError):
    message_default = "評分必須是 1 到 5 的整數"

class SelfProposal(ValidationError):
    message_default = "不能對自己刊登的工作提案"

class InvalidAction(ValidationError):
    message_default = "不支援的操作"

class ContractMismatch(ValidationError):
    message_default = "鏈上合約工作與此提案不符"


# --- 2. StateConflictError (409): 實體不在允許此轉移的狀態 ---
class StateConflictError(MarketplaceError):
    status_code_default = status.HTTP_409_CONFLICT
    message_default = "狀態不符，無法執行此操作"

class JobNotPending(StateConflictError):
    message_default = "此工作不在「待指派」狀態"

class ProviderAlreadyAssigned(StateConflictError):
    message_default = "此工作已指派提供者"

class DuplicateActiveProposal(StateConflictError):
    message_default = "你已經對此工作提案"

class ReapplicationCooldown(DuplicateActiveProposal):
    """還價被拒絕後的冷卻期內重新提案"""

    def __init__(self, remaining_hours: int):
        self.remaining_hours = remaining_hours
        super().__init__(
            f"還價被拒絕後需等待才能重新提案，剩餘 {remaining_hours} 小時",
            cooldown_remaining=remaining_hours,
        )

class ProposalNotPending(StateConflictError):
    message_default = "此提案已被處理"

class ProposalNotCounteroffered(StateConflictError):
    message_default = "此提案不在還價狀態"

class JobNotInProgress(StateConflictError):
    message_default = "工作必須在進行中才能確認完成"

class AlreadyApproved(StateConflictError):
    message_default = "你已經確認過此工作的完成"

class JobNotCompleted(StateConflictError):
    message_default = "只能評價已完成的工作"

class DuplicateReview(StateConflictError):
    message_default = "此工作已有相同角色的評價"

class JobNotDeletable(StateConflictError):
    message_default = "只有待指派且尚無提供者的工作可以刪除"


# --- 3. AuthorizationError (403): 呼叫者不是允許的參與者 ---
class AuthorizationError(MarketplaceError):
    status_code_default = status.HTTP_403_FORBIDDEN
    message_default = "你無權執行此操作"

class NotAParticipant(AuthorizationError):
    message_default = "你不是此工作的參與者"

class NotJobClient(AuthorizationError):
    message_default = "只有工作的刊登者可以執行此操作"

class NotProposalOwner(AuthorizationError):
    message_default = "只有提案者本人可以執行此操作"


# --- 4. NotFoundError (404) ---
class NotFoundError(MarketplaceError):
    status_code_default = status.HTTP_404_NOT_FOUND
    message_default = "資源不存在"

class JobNotFound(NotFoundError):
    message_default = "工作不存在"

class ProposalNotFound(NotFoundError):
    message_default = "提案不存在"

class UserNotFound(NotFoundError):
    message_default = "使用者不存在"

class ContractJobMissing(NotFoundError):
    message_default = "此工作沒有關聯的鏈上合約"


# --- 5. ExternalCallError (502): Escrow Gateway 傳輸或合約 revert ---
class ExternalCallError(MarketplaceError):
    """
    鏈上呼叫失敗。

    stage: "create" / "accept" / "confirm" / "query"
    cause: 底層錯誤訊息 (原文保留，讓呼叫端決定是否重試)
    """
    status_code_default = status.HTTP_502_BAD_GATEWAY
    message_default = "Escrow 合約呼叫失敗"

    def __init__(self, stage: str, cause: str, message: Optional[str] = None, **extra: Any):
        self.stage = stage
        self.cause = cause
        super().__init__(
            message or f"{self.message_default} ({stage}): {cause}",
            stage=stage,
            cause=cause,
            **extra,
        )

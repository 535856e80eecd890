# app/schemas/common_schema.py
from typing import Annotated
from pydantic import BaseModel, ConfigDict, PlainSerializer

# 金額 (wei)：Python 端是 int，輸出 JSON 時轉成十進位字串
# (前端 JavaScript 的 Number 無法精確表示 uint256)
WeiStr = Annotated[int, PlainSerializer(lambda v: str(v), return_type=str, when_used="json")]


class UserBrief(BaseModel):
    """巢狀顯示在工作 / 提案中的使用者資訊"""
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: str
    wallet_address: str
    client_score: float
    provider_score: float

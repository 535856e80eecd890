# app/schemas/user_schema.py
from pydantic import BaseModel, EmailStr, Field, field_validator, ConfigDict
from datetime import datetime
from typing import List, Optional
import re
from web3 import Web3

from app.models.job import JobCategoryEnum
from app.schemas.common_schema import WeiStr

# Token 回應的格式
class Token(BaseModel):
    access_token: str
    token_type: str

# Token 內的資料
class TokenData(BaseModel):
    user_id: str


# 1. 註冊請求 Body
class UserCreate(BaseModel):
    email: EmailStr
    # 密碼要求英數混合
    password: str = Field(..., min_length=8)
    # 錢包地址 (0x 開頭的 40 位十六進位)
    wallet_address: str
    specialties: List[JobCategoryEnum] = []

    @field_validator('password')
    @classmethod
    def validate_password(cls, v: str) -> str:
        """
        驗證密碼是否至少8碼且包含英文和數字
        """
        if not re.search(r'(?=.*[a-zA-Z])(?=.*[0-9])', v):
            raise ValueError('密碼必須包含英文和數字')
        if len(v) < 8:
            raise ValueError('密碼長度至少為 8 個字元')
        return v

    @field_validator('wallet_address')
    @classmethod
    def validate_wallet_address(cls, v: str) -> str:
        if not Web3.is_address(v):
            raise ValueError('錢包地址格式不正確')
        # 統一存成 checksum 格式
        return Web3.to_checksum_address(v)


# 2. 更新自己的資料 (目前只開放專長)
class UserUpdate(BaseModel):
    specialties: Optional[List[JobCategoryEnum]] = None


# 3. 註冊/查詢使用者的安全回應
class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email: EmailStr
    wallet_address: str
    specialties: List[JobCategoryEnum] = []
    client_score: float
    provider_score: float
    is_active: bool
    created_at: Optional[datetime] = None


# 4. 鏈上錢包餘額
class BalanceOut(BaseModel):
    user_id: str
    wallet_address: str
    balance_wei: WeiStr
    balance_eth: str

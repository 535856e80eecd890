# app/core/config.py
# 應用程式設定 (例如資料庫連線字串、JWT 秘鑰、區塊鏈節點等)
from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    # 資料庫設定
    DATABASE_URL: str
    # (可選) 設為 True 會在 console 印出 SQL 語句
    SQL_ECHO: bool = False
    # 啟動時自動建立資料表 (本機開發用，正式環境請關閉)
    AUTO_CREATE_TABLES: bool = False

    # JWT 設定
    JWT_SECRET_KEY: str
    # JWT 演算法
    JWT_ALGORITHM: str = "HS256"
    # 存取令牌過期時間（分鐘）
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # --- Escrow 合約設定 ---
    # 區塊鏈節點 (本機 Anvil 預設埠號)
    RPC_URL: str = "http://127.0.0.1:8545"
    # Escrow 合約地址 (未設定時，所有鏈上呼叫都會失敗並回傳 502)
    ESCROW_CONTRACT_ADDRESS: str = ""
    # 等待交易收據的秒數
    ESCROW_TX_TIMEOUT_SECONDS: int = 120

    # --- 提案規則 ---
    # 還價被拒絕後，同一位提供者需等待的時數
    PROPOSAL_COOLDOWN_HOURS: int = 24

    # CORS 允許來源
    CORS_ORIGINS: List[str] = ["*"]

    # 環境變數檔案
    class Config:
        env_file = ".env"

# 建立設定實例
settings = Settings()

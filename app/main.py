import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import create_tables
from app.core.escrow_gateway import create_web3
from app.core.websocket_manager import NotificationHub
from app.routers import (
    auth_router, user_router,
    job_router, proposal_router,
    review_router, notification_router
)

# --- 匯入所有 Model 檔案 ---
# 都在應用程式啟動時被 SQLAlchemy 註冊。
from app.models import user
from app.models import job
from app.models import proposal
from app.models import review


# 設定基礎日誌
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__) # 建立一個 logger 實例


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        await create_tables()
    # 推播中心與區塊鏈連線的生命週期跟著應用程式
    app.state.notification_hub = NotificationHub()
    app.state.web3 = create_web3(settings.RPC_URL)
    logger.info(f"Escrow contract: {settings.ESCROW_CONTRACT_ADDRESS or '(未設定)'} via {settings.RPC_URL}")
    yield
    await app.state.notification_hub.close()
    logger.info("Notification hub closed")


app = FastAPI(lifespan=lifespan)

# --- 設定 CORS (跨來源資源共用) ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS, # 生產環境應限制為前端網域
    allow_credentials=True,
    allow_methods=["*"], # 允許所有 HTTP 方法
    allow_headers=["*"], # 允許所有 HTTP 標頭
)

# --- 根路徑 ---
@app.get("/")
def read_root():
    return {"status": "success", "message": "Backend is running!"}

# --- 載入 API 路由 ---
app.include_router(auth_router.router)
app.include_router(user_router.router)
app.include_router(job_router.router)
app.include_router(proposal_router.router)
app.include_router(review_router.router)
app.include_router(notification_router.router)

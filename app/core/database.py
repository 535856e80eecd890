# app/core/database.py
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from app.core.config import settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """
    建立非同步引擎

    - MySQL (aiomysql): 每次從連線池取連線前，先 PING 一次，確保連線有效
    - SQLite (aiosqlite，本機開發 / 測試): 記憶體資料庫必須共用同一條連線
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=echo, **kwargs)
    return create_async_engine(url, pool_pre_ping=True, echo=echo)


engine = build_engine(settings.DATABASE_URL, echo=settings.SQL_ECHO)

# 建立非同步 Session
# expire_on_commit=False: commit 後仍可讀取物件屬性 (async 下不能延遲載入)
AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# 建立 ORM Model 基底類別
Base = declarative_base()


async def create_tables(bind: AsyncEngine | None = None) -> None:
    """建立所有資料表 (呼叫前必須已匯入所有 Model)"""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# (重要) 取得 DB Session 的 Dependency
async def get_db() -> AsyncSession:
    """FastAPI Dependency: 取得非同步資料庫 session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()

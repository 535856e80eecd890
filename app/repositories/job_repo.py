# app/repositories/job_repo.py

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import update, delete, case
from typing import Any, Dict, List, Optional

from app.models.job import Job, JobStatusEnum, JobCategoryEnum
from app.models.proposal import Proposal
from app.models.review import Review

# 只有 Settlement 流程可以透過條件更新寫入的欄位
APPROVAL_FLAGS = ("client_approved", "provider_approved")


class JobRepository:
    """
    封裝對 'jobs' 資料表的 CRUD 操作
    """
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_job(self, job: Job) -> Job:
        """
        (C) 將新的工作存入資料庫
        """
        self.db.add(job)
        await self.db.commit()
        await self.db.refresh(job)
        return job

    async def get_job(self, job_id: str) -> Optional[Job]:
        """
        (R) 透過 ID 獲取單一工作

        (重要) populate_existing: 每次都從資料庫重新讀取，
        不使用 Session 中可能已過時的物件 (狀態檢查必須以當下的資料為準)
        """
        stmt = (
            select(Job)
            .where(Job.job_id == job_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_jobs(
        self,
        status: Optional[JobStatusEnum] = None,
        category: Optional[JobCategoryEnum] = None,
        client_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Job]:
        """
        (R) 依條件篩選工作 (依建立時間降序)
        """
        stmt = select(Job)
        if status is not None:
            stmt = stmt.where(Job.status == status)
        if category is not None:
            stmt = stmt.where(Job.category == category)
        if client_id:
            stmt = stmt.where(Job.client_id == client_id)
        if provider_id:
            stmt = stmt.where(Job.provider_id == provider_id)
        stmt = stmt.order_by(Job.created_at.desc()).execution_options(populate_existing=True)

        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def update_job_conditional(
        self,
        job_id: str,
        expected_status: JobStatusEnum,
        expected_provider_null: bool,
        patch: Dict[str, Any],
    ) -> bool:
        """
        (U) 條件更新：只有在狀態 (以及 provider_id 為 NULL) 仍符合預期時才寫入

        回傳是否有更新到資料列。兩個請求同時指派時，只有一個會成功。
        (不 commit，由 Service 統一提交)
        """
        stmt = update(Job).where(
            Job.job_id == job_id,
            Job.status == expected_status,
        )
        if expected_provider_null:
            stmt = stmt.where(Job.provider_id.is_(None))
        stmt = stmt.values(patch).execution_options(synchronize_session=False)

        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def approve_completion_atomic(self, job_id: str, flag: str, other_flag: str) -> bool:
        """
        (U) 原子性地設定一方的確認旗標，並在同一個 UPDATE 中決定是否完成

            SET <flag> = true,
                status = CASE WHEN <other_flag> THEN 'COMPLETED' ELSE status END
            WHERE status = 'IN_PROGRESS' AND <flag> = false

        另一方的旗標是在寫入當下由資料庫讀取，不會遺失同時發生的確認。
        (不 commit，由 Service 統一提交)
        """
        if flag not in APPROVAL_FLAGS or other_flag not in APPROVAL_FLAGS:
            raise ValueError(f"不合法的確認欄位: {flag}, {other_flag}")

        other_column = getattr(Job, other_flag)
        stmt = (
            update(Job)
            .where(
                Job.job_id == job_id,
                Job.status == JobStatusEnum.IN_PROGRESS,
                getattr(Job, flag).is_(False),
            )
            .values({
                flag: True,
                "status": case(
                    (other_column.is_(True), JobStatusEnum.COMPLETED.value),
                    else_=Job.status,
                ),
            })
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def delete_pending_job(self, job_id: str) -> bool:
        """
        (D) 刪除仍在待指派且沒有提供者的工作，一併刪除提案與評價

        回傳是否真的刪除。(不 commit，由 Service 統一提交)
        """
        result = await self.db.execute(
            delete(Job)
            .where(
                Job.job_id == job_id,
                Job.status == JobStatusEnum.PENDING,
                Job.provider_id.is_(None),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        # SQLite 預設不啟用外鍵，ON DELETE CASCADE 不一定生效，這裡明確刪除
        await self.db.execute(
            delete(Proposal).where(Proposal.job_id == job_id).execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Review).where(Review.job_id == job_id).execution_options(synchronize_session=False)
        )
        return True

# app/utils/time_utils.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    """
    目前的 UTC 時間 (naive)

    資料庫欄位一律存 naive UTC，避免 MySQL / SQLite 對時區處理不一致
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)

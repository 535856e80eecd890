# app/models/types.py
from sqlalchemy import String
from sqlalchemy.types import TypeDecorator


class WeiAmount(TypeDecorator):
    """
    以十進位字串儲存的整數金額 (wei)

    uint256 超出 BIGINT 範圍，DECIMAL 在 SQLite 上又會被轉成 float 而失去精度，
    所以資料庫中存字串，Python 端一律是 int
    """
    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)

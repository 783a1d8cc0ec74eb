"""SellSync Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

from pathlib import Path

import aiosqlite

from ..models.domain import DOMAIN_SPECS
from ..models.enums import EffectDomain
from .attempt_store import SqliteAttemptStore
from .effect_store import SqliteEffectStore, format_ts, parse_ts
from .sqlite_init import init_db, open_connection
from .transaction import create_effect, record_execution, update_effect


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接，每个业务域一对 effect/attempt store"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.effect_stores: dict[EffectDomain, SqliteEffectStore] = {}
        self.attempt_stores: dict[EffectDomain, SqliteAttemptStore] = {}
        for domain, spec in DOMAIN_SPECS.items():
            self.effect_stores[domain] = SqliteEffectStore(conn, spec)
            self.attempt_stores[domain] = SqliteAttemptStore(conn, spec)

    def effects(self, domain: EffectDomain) -> SqliteEffectStore:
        return self.effect_stores[EffectDomain(domain)]

    def attempts(self, domain: EffectDomain) -> SqliteAttemptStore:
        return self.attempt_stores[EffectDomain(domain)]


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteEffectStore",
    "SqliteAttemptStore",
    "init_db",
    "open_connection",
    "create_effect",
    "record_execution",
    "update_effect",
    "format_ts",
    "parse_ts",
]

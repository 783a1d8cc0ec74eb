"""SQLite 数据库初始化

PRAGMA 配置 + 每个业务域一张副作用表和一张尝试台账表 + 会话缓存表。
使用 aiosqlite 异步操作。
"""

import aiosqlite

from ..models.domain import DOMAIN_SPECS, DomainSpec

# 副作用表 DDL（按业务域表名渲染）
_EFFECTS_DDL = """
CREATE TABLE IF NOT EXISTS {table} (
    effect_id          TEXT PRIMARY KEY,
    tenant_id          TEXT NOT NULL,
    key_1              TEXT NOT NULL DEFAULT '',
    key_2              TEXT NOT NULL DEFAULT '',
    key_3              TEXT NOT NULL DEFAULT '',
    key_4              TEXT NOT NULL DEFAULT '',
    status             TEXT NOT NULL DEFAULT 'INITIAL',
    result_id          TEXT,
    attempt_count      INTEGER NOT NULL DEFAULT 0,
    next_retry_at      TEXT,
    last_error_code    TEXT,
    last_error_message TEXT,
    request_payload    TEXT NOT NULL DEFAULT '{{}}',
    response_payload   TEXT,
    trace_id           TEXT NOT NULL DEFAULT '',
    job_id             TEXT,
    claim_owner        TEXT,
    claim_expires_at   TEXT,
    created_at         TEXT NOT NULL,
    updated_at         TEXT NOT NULL,
    completed_at       TEXT
);
"""

_EFFECTS_INDEXES = [
    # 自然幂等键唯一约束；key 列 NOT NULL，缺省字段存空串，避免 NULL 互不相等造成重复
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_{table}_natural_key "
        "ON {table}(tenant_id, key_1, key_2, key_3, key_4);"
    ),
    # 重试扫描：按租户 + 状态筛选，按到期时间排序
    (
        "CREATE INDEX IF NOT EXISTS idx_{table}_retry "
        "ON {table}(tenant_id, status, next_retry_at);"
    ),
]

# 尝试台账 DDL
_ATTEMPTS_DDL = """
CREATE TABLE IF NOT EXISTS {table}_attempts (
    attempt_id        TEXT PRIMARY KEY,
    effect_id         TEXT NOT NULL,
    attempt_number    INTEGER NOT NULL,
    outcome           TEXT NOT NULL,
    request_snapshot  TEXT NOT NULL DEFAULT '{{}}',
    response_snapshot TEXT,
    error_code        TEXT,
    error_message     TEXT,
    duration_ms       INTEGER NOT NULL DEFAULT 0,
    trace_id          TEXT NOT NULL DEFAULT '',
    job_id            TEXT,
    attempted_at      TEXT NOT NULL,

    FOREIGN KEY (effect_id) REFERENCES {table}(effect_id)
);
"""

_ATTEMPTS_INDEXES = [
    (
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_{table}_attempts_number "
        "ON {table}_attempts(effect_id, attempt_number);"
    ),
]

# 厂商会话缓存（多实例共享，任一实例失效会话对所有实例可见）
_SESSIONS_DDL = """
CREATE TABLE IF NOT EXISTS vendor_sessions (
    tenant_id   TEXT NOT NULL,
    scope       TEXT NOT NULL,
    token       TEXT NOT NULL,
    expires_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL,

    PRIMARY KEY (tenant_id, scope)
);
"""


def _domain_statements(spec: DomainSpec) -> list[str]:
    statements = [_EFFECTS_DDL.format(table=spec.table)]
    statements += [sql.format(table=spec.table) for sql in _EFFECTS_INDEXES]
    statements.append(_ATTEMPTS_DDL.format(table=spec.table))
    statements += [sql.format(table=spec.table) for sql in _ATTEMPTS_INDEXES]
    return statements


async def configure_connection(conn: aiosqlite.Connection) -> None:
    """设置连接级 PRAGMA（每个新连接都需要执行）"""
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    await configure_connection(conn)

    for spec in DOMAIN_SPECS.values():
        for sql in _domain_statements(spec):
            await conn.execute(sql)

    await conn.execute(_SESSIONS_DDL)
    await conn.commit()


async def open_connection(db_path: str) -> aiosqlite.Connection:
    """打开一个已配置 PRAGMA 的连接（表结构需已由 init_db 创建）"""
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row
    await configure_connection(conn)
    return conn


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"

"""EffectStore SQLite 实现

每个业务域一个实例，表名来自 DomainSpec。
所有并发协调都通过唯一约束和条件 UPDATE 的影响行数完成，不使用进程内锁。
写操作不自动提交，由调用方（resolver / guard / transaction）控制事务边界。
"""

import json
from datetime import UTC, datetime

import aiosqlite

from ..models.domain import DomainSpec
from ..models.effect import Effect, NaturalKey
from ..models.enums import EffectStatus


def format_ts(value: datetime | None) -> str | None:
    """统一转为 UTC、固定微秒精度的 ISO 字符串，保证字典序即时间序"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SqliteEffectStore:
    """EffectStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, spec: DomainSpec) -> None:
        self._conn = conn
        self._conn.row_factory = aiosqlite.Row
        self._spec = spec
        self._table = spec.table

    @property
    def spec(self) -> DomainSpec:
        return self._spec

    async def insert_effect(self, effect: Effect) -> None:
        """插入新记录（自然键冲突时抛出 aiosqlite.IntegrityError）"""
        key_columns = effect.natural_key.columns()
        await self._conn.execute(
            f"""
            INSERT INTO {self._table} (
                effect_id, tenant_id, key_1, key_2, key_3, key_4, status,
                result_id, attempt_count, next_retry_at, last_error_code,
                last_error_message, request_payload, response_payload,
                trace_id, job_id, created_at, updated_at, completed_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                effect.effect_id,
                effect.tenant_id,
                *key_columns,
                effect.status.value,
                effect.result_id,
                effect.attempt_count,
                format_ts(effect.next_retry_at),
                effect.last_error_code,
                effect.last_error_message,
                json.dumps(effect.request_payload, ensure_ascii=False),
                self._dump_optional(effect.response_payload),
                effect.trace_id,
                effect.job_id,
                format_ts(effect.created_at),
                format_ts(effect.updated_at),
                format_ts(effect.completed_at),
            ),
        )

    async def get_effect(self, effect_id: str) -> Effect | None:
        """根据 effect_id 查询"""
        cursor = await self._conn.execute(
            f"SELECT * FROM {self._table} WHERE effect_id = ?",
            (effect_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_effect(row)

    async def get_by_natural_key(self, key: NaturalKey) -> Effect | None:
        """根据自然幂等键查询"""
        cursor = await self._conn.execute(
            f"""
            SELECT * FROM {self._table}
            WHERE tenant_id = ? AND key_1 = ? AND key_2 = ? AND key_3 = ? AND key_4 = ?
            """,
            (key.tenant_id, *key.columns()),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_effect(row)

    async def save_effect(
        self,
        effect: Effect,
        expected_status: EffectStatus,
        claim_owner: str | None = None,
    ) -> int:
        """条件写回记录的可变字段，同时释放认领

        仅当数据库中的状态仍为 expected_status（且认领令牌仍属于 claim_owner）时生效。
        SUCCESS 行永远不会被匹配，保证终态不可变。

        Returns:
            影响行数（0 或 1）
        """
        sql = f"""
            UPDATE {self._table}
            SET status = ?, result_id = ?, attempt_count = ?, next_retry_at = ?,
                last_error_code = ?, last_error_message = ?, request_payload = ?,
                response_payload = ?, updated_at = ?, completed_at = ?,
                claim_owner = NULL, claim_expires_at = NULL
            WHERE effect_id = ? AND status = ? AND status != 'SUCCESS'
        """
        params: list = [
            effect.status.value,
            effect.result_id,
            effect.attempt_count,
            format_ts(effect.next_retry_at),
            effect.last_error_code,
            effect.last_error_message,
            json.dumps(effect.request_payload, ensure_ascii=False),
            self._dump_optional(effect.response_payload),
            format_ts(effect.updated_at),
            format_ts(effect.completed_at),
            effect.effect_id,
            expected_status.value,
        ]
        if claim_owner is not None:
            sql += " AND claim_owner = ?"
            params.append(claim_owner)

        cursor = await self._conn.execute(sql, params)
        return cursor.rowcount

    async def try_claim(
        self,
        effect_id: str,
        claim_owner: str,
        now: datetime,
        lease_until: datetime,
        max_attempts: int,
    ) -> int:
        """乐观认领：仅当记录仍可执行且未被他人持有时写入租约

        可执行 = INITIAL，或 FAILED 且 next_retry_at 已到期且 attempt_count < max_attempts。

        Returns:
            影响行数（0 表示已被认领或不再可执行）
        """
        now_s = format_ts(now)
        cursor = await self._conn.execute(
            f"""
            UPDATE {self._table}
            SET claim_owner = ?, claim_expires_at = ?
            WHERE effect_id = ?
              AND (claim_owner IS NULL OR claim_expires_at <= ?)
              AND (
                  status = 'INITIAL'
                  OR (status = 'FAILED'
                      AND next_retry_at IS NOT NULL
                      AND next_retry_at <= ?
                      AND attempt_count < ?)
              )
            """,
            (claim_owner, format_ts(lease_until), effect_id, now_s, now_s, max_attempts),
        )
        return cursor.rowcount

    async def try_lock(
        self,
        effect_id: str,
        claim_owner: str,
        now: datetime,
        lease_until: datetime,
    ) -> int:
        """悲观锁的一次尝试：不看状态，只要求租约空闲

        Returns:
            影响行数（0 表示被他人持有或记录不存在）
        """
        cursor = await self._conn.execute(
            f"""
            UPDATE {self._table}
            SET claim_owner = ?, claim_expires_at = ?
            WHERE effect_id = ?
              AND (claim_owner IS NULL OR claim_owner = ? OR claim_expires_at <= ?)
            """,
            (claim_owner, format_ts(lease_until), effect_id, claim_owner, format_ts(now)),
        )
        return cursor.rowcount

    async def release_claim(self, effect_id: str, claim_owner: str) -> int:
        """释放认领（仅当令牌仍属于自己）"""
        cursor = await self._conn.execute(
            f"""
            UPDATE {self._table}
            SET claim_owner = NULL, claim_expires_at = NULL
            WHERE effect_id = ? AND claim_owner = ?
            """,
            (effect_id, claim_owner),
        )
        return cursor.rowcount

    async def list_retryable(
        self,
        tenant_id: str,
        now: datetime,
        max_attempts: int,
        limit: int | None = None,
    ) -> list[Effect]:
        """到期可重试的 FAILED 记录，按 next_retry_at 升序（最久逾期优先）"""
        sql = f"""
            SELECT * FROM {self._table}
            WHERE tenant_id = ? AND status = 'FAILED'
              AND next_retry_at IS NOT NULL AND next_retry_at <= ?
              AND attempt_count < ?
            ORDER BY next_retry_at ASC
        """
        params: list = [tenant_id, format_ts(now), max_attempts]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_effect(row) for row in rows]

    async def list_pending(
        self,
        tenant_id: str,
        now: datetime,
        limit: int | None = None,
    ) -> list[Effect]:
        """尚未执行过的 INITIAL 记录，按创建时间升序

        正被认领的记录不返回；租约已过期的（持有者崩溃）会重新返回。
        """
        sql = f"""
            SELECT * FROM {self._table}
            WHERE tenant_id = ? AND status = 'INITIAL'
              AND (claim_owner IS NULL OR claim_expires_at <= ?)
            ORDER BY created_at ASC
        """
        params: list = [tenant_id, format_ts(now)]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        cursor = await self._conn.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._row_to_effect(row) for row in rows]

    async def list_max_retry_exceeded(
        self,
        tenant_id: str,
        max_attempts: int,
    ) -> list[Effect]:
        """已用尽自动重试、需要人工介入的记录，按 updated_at 倒序"""
        cursor = await self._conn.execute(
            f"""
            SELECT * FROM {self._table}
            WHERE tenant_id = ? AND status = 'FAILED'
              AND (attempt_count >= ? OR next_retry_at IS NULL)
            ORDER BY updated_at DESC
            """,
            (tenant_id, max_attempts),
        )
        rows = await cursor.fetchall()
        return [self._row_to_effect(row) for row in rows]

    async def list_due_tenants(self, now: datetime) -> list[str]:
        """存在待执行或到期重试记录的租户"""
        cursor = await self._conn.execute(
            f"""
            SELECT DISTINCT tenant_id FROM {self._table}
            WHERE status = 'INITIAL'
               OR (status = 'FAILED' AND next_retry_at IS NOT NULL AND next_retry_at <= ?)
            ORDER BY tenant_id
            """,
            (format_ts(now),),
        )
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    @staticmethod
    def _dump_optional(payload: dict | None) -> str | None:
        if payload is None:
            return None
        return json.dumps(payload, ensure_ascii=False)

    def _row_to_effect(self, row: aiosqlite.Row) -> Effect:
        """将数据库行转换为 Effect 模型"""
        key_columns = (row["key_1"], row["key_2"], row["key_3"], row["key_4"])
        response_payload = row["response_payload"]
        return Effect(
            effect_id=row["effect_id"],
            domain=self._spec.domain,
            tenant_id=row["tenant_id"],
            key_fields=self._spec.denormalize_key(key_columns),
            status=row["status"],
            result_id=row["result_id"],
            attempt_count=row["attempt_count"],
            next_retry_at=parse_ts(row["next_retry_at"]),
            last_error_code=row["last_error_code"],
            last_error_message=row["last_error_message"],
            request_payload=json.loads(row["request_payload"]),
            response_payload=json.loads(response_payload) if response_payload else None,
            trace_id=row["trace_id"],
            job_id=row["job_id"],
            created_at=parse_ts(row["created_at"]),
            updated_at=parse_ts(row["updated_at"]),
            completed_at=parse_ts(row["completed_at"]),
            claim_owner=row["claim_owner"],
            claim_expires_at=parse_ts(row["claim_expires_at"]),
        )

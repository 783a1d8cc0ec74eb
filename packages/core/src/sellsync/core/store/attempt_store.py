"""AttemptStore SQLite 实现 -- append-only 执行台账"""

import json

import aiosqlite

from ..models.attempt import Attempt
from ..models.domain import DomainSpec
from .effect_store import format_ts, parse_ts


class SqliteAttemptStore:
    """AttemptStore 的 SQLite 实现

    只提供插入和查询，不提供更新或删除。
    """

    def __init__(self, conn: aiosqlite.Connection, spec: DomainSpec) -> None:
        self._conn = conn
        self._conn.row_factory = aiosqlite.Row
        self._table = spec.attempts_table

    async def append_attempt(self, attempt: Attempt) -> None:
        """追加一条尝试记录（不提交）"""
        await self._conn.execute(
            f"""
            INSERT INTO {self._table} (
                attempt_id, effect_id, attempt_number, outcome, request_snapshot,
                response_snapshot, error_code, error_message, duration_ms,
                trace_id, job_id, attempted_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                attempt.attempt_id,
                attempt.effect_id,
                attempt.attempt_number,
                attempt.outcome.value,
                json.dumps(attempt.request_snapshot, ensure_ascii=False),
                (
                    json.dumps(attempt.response_snapshot, ensure_ascii=False)
                    if attempt.response_snapshot is not None
                    else None
                ),
                attempt.error_code,
                attempt.error_message,
                attempt.duration_ms,
                attempt.trace_id,
                attempt.job_id,
                format_ts(attempt.attempted_at),
            ),
        )

    async def next_attempt_number(self, effect_id: str) -> int:
        """获取下一个 attempt_number（MAX+1）"""
        cursor = await self._conn.execute(
            f"SELECT COALESCE(MAX(attempt_number), 0) FROM {self._table} WHERE effect_id = ?",
            (effect_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    async def list_attempts(self, effect_id: str) -> list[Attempt]:
        """查询指定副作用的全部尝试，按序号升序"""
        cursor = await self._conn.execute(
            f"SELECT * FROM {self._table} WHERE effect_id = ? ORDER BY attempt_number ASC",
            (effect_id,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_attempt(row) for row in rows]

    @staticmethod
    def _row_to_attempt(row: aiosqlite.Row) -> Attempt:
        response_snapshot = row["response_snapshot"]
        return Attempt(
            attempt_id=row["attempt_id"],
            effect_id=row["effect_id"],
            attempt_number=row["attempt_number"],
            outcome=row["outcome"],
            request_snapshot=json.loads(row["request_snapshot"]),
            response_snapshot=json.loads(response_snapshot) if response_snapshot else None,
            error_code=row["error_code"],
            error_message=row["error_message"],
            duration_ms=row["duration_ms"],
            trace_id=row["trace_id"],
            job_id=row["job_id"],
            attempted_at=parse_ts(row["attempted_at"]),
        )

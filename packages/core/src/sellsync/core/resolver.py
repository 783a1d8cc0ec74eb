"""IdempotencyResolver -- 按自然键 create-or-get

流程：
1. 按自然键查询，存在则直接返回
2. 不存在则插入 INITIAL 记录
3. 并发插入被唯一约束拒绝时，回滚并回查，透明返回胜者记录
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import aiosqlite
import structlog
from ulid import ULID

from .exceptions import EffectValidationError, IdempotencyConflictError
from .models.effect import Effect, NaturalKey
from .models.enums import EffectStatus
from .store import StoreGroup, create_effect

log = structlog.get_logger()


class IdempotencyResolver:
    """幂等解析器：同一自然键最多一条记录，先到者胜"""

    def __init__(
        self,
        store_group: StoreGroup,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._stores = store_group
        self._clock = clock or (lambda: datetime.now(UTC))

    async def create_or_get(
        self,
        key: NaturalKey,
        payload: dict[str, Any] | None = None,
        trace_id: str | None = None,
        job_id: str | None = None,
    ) -> tuple[Effect, bool]:
        """按自然键获取或创建副作用记录

        Args:
            key: 自然幂等键
            payload: 初始业务 payload
            trace_id: 追踪 ID，缺省时由 effect_id 派生
            job_id: 触发任务 ID

        Returns:
            (effect, created) -- created=True 表示本次新建

        Raises:
            EffectValidationError: 键或 payload 不合法
        """
        if payload is not None and not isinstance(payload, dict):
            raise EffectValidationError("payload 必须是 JSON 对象")
        key.columns()

        store = self._stores.effects(key.domain)
        existing = await store.get_by_natural_key(key)
        if existing is not None:
            return existing, False

        now = self._clock()
        effect_id = str(ULID())
        effect = Effect(
            effect_id=effect_id,
            domain=key.domain,
            tenant_id=key.tenant_id,
            key_fields=key.key_fields,
            status=EffectStatus.INITIAL,
            request_payload=payload or {},
            trace_id=trace_id or f"trace-{effect_id}",
            job_id=job_id,
            created_at=now,
            updated_at=now,
        )

        try:
            await create_effect(self._stores.conn, store, effect)
        except aiosqlite.IntegrityError as e:
            if not self._is_natural_key_conflict(e, store.spec.natural_key_index):
                raise
            # 并发插入落败：回查并返回胜者记录，调用方无感知
            winner = await store.get_by_natural_key(key)
            if winner is None:
                raise IdempotencyConflictError(key.display()) from e
            log.info(
                "idempotency_race_recovered",
                domain=key.domain,
                natural_key=key.display(),
                effect_id=winner.effect_id,
            )
            return winner, False

        log.info(
            "effect_created",
            domain=key.domain,
            tenant_id=key.tenant_id,
            natural_key=key.display(),
            effect_id=effect_id,
        )
        return effect, True

    async def get(self, key: NaturalKey) -> Effect | None:
        """只读查询，不创建"""
        return await self._stores.effects(key.domain).get_by_natural_key(key)

    @staticmethod
    def _is_natural_key_conflict(error: aiosqlite.IntegrityError, index_name: str) -> bool:
        """判断是否为自然键唯一约束冲突

        SQLite 对唯一索引冲突报告列名而非索引名，两种形式都需要识别。
        """
        message = str(error)
        return index_name in message or (
            "UNIQUE constraint failed" in message and ".key_1" in message
        )

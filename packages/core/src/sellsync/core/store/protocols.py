"""Store Protocol 接口定义

定义 EffectStore、AttemptStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from datetime import datetime
from typing import Protocol

from ..models.attempt import Attempt
from ..models.effect import Effect, NaturalKey
from ..models.enums import EffectStatus


class EffectStore(Protocol):
    """副作用记录存储接口

    并发协调只依赖唯一约束与条件更新的影响行数。
    """

    async def insert_effect(self, effect: Effect) -> None:
        """插入新记录，自然键冲突时抛出完整性错误"""
        ...

    async def get_effect(self, effect_id: str) -> Effect | None: ...

    async def get_by_natural_key(self, key: NaturalKey) -> Effect | None: ...

    async def save_effect(
        self,
        effect: Effect,
        expected_status: EffectStatus,
        claim_owner: str | None = None,
    ) -> int:
        """条件写回，返回影响行数"""
        ...

    async def try_claim(
        self,
        effect_id: str,
        claim_owner: str,
        now: datetime,
        lease_until: datetime,
        max_attempts: int,
    ) -> int:
        """乐观认领，返回 0 或 1"""
        ...

    async def try_lock(
        self,
        effect_id: str,
        claim_owner: str,
        now: datetime,
        lease_until: datetime,
    ) -> int: ...

    async def release_claim(self, effect_id: str, claim_owner: str) -> int: ...

    async def list_retryable(
        self,
        tenant_id: str,
        now: datetime,
        max_attempts: int,
        limit: int | None = None,
    ) -> list[Effect]: ...

    async def list_pending(
        self,
        tenant_id: str,
        now: datetime,
        limit: int | None = None,
    ) -> list[Effect]: ...

    async def list_max_retry_exceeded(
        self,
        tenant_id: str,
        max_attempts: int,
    ) -> list[Effect]: ...

    async def list_due_tenants(self, now: datetime) -> list[str]: ...


class AttemptStore(Protocol):
    """尝试台账存储接口 -- append-only"""

    async def append_attempt(self, attempt: Attempt) -> None:
        """追加尝试记录"""
        ...

    async def next_attempt_number(self, effect_id: str) -> int:
        """获取下一个 attempt_number（MAX+1）"""
        ...

    async def list_attempts(self, effect_id: str) -> list[Attempt]:
        """查询指定副作用的全部尝试"""
        ...

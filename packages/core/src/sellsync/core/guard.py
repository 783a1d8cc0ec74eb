"""ConcurrencyGuard -- 执行前的唯一准入关卡

两种策略都落在副作用行本身的租约列上（claim_owner / claim_expires_at），
跨实例协调完全依赖条件 UPDATE 的影响行数：
- claim: 乐观认领，后台扫描使用；0 表示已被认领或不再可执行，静默跳过
- acquire_lock: 悲观锁，交互式请求使用；有界等待，超时快速失败
持有者崩溃后租约到期，其他执行者可以重新认领。
"""

import asyncio
import math
import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import structlog

from . import config
from .exceptions import ClaimTimeoutError
from .models.enums import EffectDomain
from .retry import RetryPolicy
from .store import StoreGroup

log = structlog.get_logger()


def lease_covering(
    max_run_s: float,
    lease_s: int = config.CLAIM_LEASE_S,
    margin_s: int = config.CLAIM_LEASE_MARGIN_S,
) -> int:
    """返回足以覆盖一次完整执行的租约时长（秒）

    租约必须覆盖 max_run_s + margin_s，配置值不足时抬高到该值。
    """
    required = math.ceil(max_run_s + margin_s)
    if lease_s >= required:
        return lease_s
    log.warning(
        "claim_lease_raised",
        configured_lease_s=lease_s,
        lease_s=required,
        max_run_s=max_run_s,
    )
    return required


class ConcurrencyGuard:
    """基于租约列的并发守卫"""

    def __init__(
        self,
        store_group: StoreGroup,
        lease_s: int = config.CLAIM_LEASE_S,
        lock_wait_s: float = config.LOCK_WAIT_S,
        poll_interval_s: float = config.LOCK_POLL_INTERVAL_S,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._stores = store_group
        self._lease = timedelta(seconds=lease_s)
        self._lock_wait_s = lock_wait_s
        self._poll_interval_s = poll_interval_s
        self._clock = clock or (lambda: datetime.now(UTC))

    async def claim(
        self,
        domain: EffectDomain,
        effect_id: str,
        claim_token: str,
        policy: RetryPolicy,
    ) -> int:
        """乐观认领

        Returns:
            影响行数：1 表示认领成功，0 表示已被认领或不可执行（不是错误）
        """
        now = self._clock()
        store = self._stores.effects(domain)
        try:
            claimed = await store.try_claim(
                effect_id,
                claim_token,
                now=now,
                lease_until=now + self._lease,
                max_attempts=policy.max_attempts,
            )
            await self._stores.conn.commit()
        except Exception:
            await self._stores.conn.rollback()
            raise

        if claimed == 0:
            log.debug("effect_claim_skipped", domain=domain, effect_id=effect_id)
        return claimed

    async def acquire_lock(
        self,
        domain: EffectDomain,
        effect_id: str,
        claim_token: str,
    ) -> None:
        """悲观锁：在 lock_wait_s 内反复尝试获取租约

        Raises:
            ClaimTimeoutError: 等待超时
        """
        store = self._stores.effects(domain)
        start = time.monotonic()
        deadline = start + self._lock_wait_s

        while True:
            now = self._clock()
            try:
                locked = await store.try_lock(
                    effect_id,
                    claim_token,
                    now=now,
                    lease_until=now + self._lease,
                )
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise

            if locked == 1:
                return

            if time.monotonic() >= deadline:
                waited_s = time.monotonic() - start
                log.warning(
                    "effect_lock_timeout",
                    domain=domain,
                    effect_id=effect_id,
                    waited_s=round(waited_s, 3),
                )
                raise ClaimTimeoutError(effect_id, waited_s)

            await asyncio.sleep(self._poll_interval_s)

    async def release(
        self,
        domain: EffectDomain,
        effect_id: str,
        claim_token: str,
    ) -> bool:
        """释放认领（令牌不再属于自己时无操作）"""
        store = self._stores.effects(domain)
        try:
            released = await store.release_claim(effect_id, claim_token)
            await self._stores.conn.commit()
        except Exception:
            await self._stores.conn.rollback()
            raise
        return released == 1

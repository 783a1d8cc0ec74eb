"""重试调度策略 -- attempt_count -> 下次重试延迟

所有业务域共用一个 RetryPolicy 接口，按域注入具体策略：
- BackoffTableRetryPolicy: 固定退避表（物流回传：1m/5m/15m/60m/180m）
- FixedDelayRetryPolicy: 固定间隔 + 次数上限（ERP 过账、运单、同步任务）

next_delay 的参数是"本次失败之前"的失败次数；返回 None 表示不再自动重试，
记录停留在 FAILED + next_retry_at 为空，等待人工处理。
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Protocol

from . import config
from .models.effect import Effect
from .models.enums import EffectDomain, EffectStatus


class RetryPolicy(Protocol):
    """重试策略接口"""

    @property
    def max_attempts(self) -> int:
        """最大执行次数；attempt_count 达到该值后不再自动重试"""
        ...

    def next_delay(self, attempt_count: int) -> timedelta | None:
        """计算下一次重试的延迟，None 表示不再重试"""
        ...


class BackoffTableRetryPolicy:
    """退避表策略：第 n 次失败（从 0 计）使用 delays[n]"""

    def __init__(self, delays: Sequence[timedelta]) -> None:
        if not delays:
            raise ValueError("退避表不能为空")
        self._delays = tuple(delays)

    @classmethod
    def from_minutes(cls, minutes: Sequence[int]) -> "BackoffTableRetryPolicy":
        return cls([timedelta(minutes=m) for m in minutes])

    @property
    def max_attempts(self) -> int:
        # 首次执行 + 每个表项一次重试
        return len(self._delays) + 1

    @property
    def delays(self) -> tuple[timedelta, ...]:
        return self._delays

    def next_delay(self, attempt_count: int) -> timedelta | None:
        if attempt_count < 0 or attempt_count >= len(self._delays):
            return None
        return self._delays[attempt_count]


class FixedDelayRetryPolicy:
    """固定间隔策略：最多执行 max_attempts 次，间隔固定"""

    def __init__(self, max_attempts: int, delay: timedelta) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts 必须 >= 1")
        self._max_attempts = max_attempts
        self._delay = delay

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def next_delay(self, attempt_count: int) -> timedelta | None:
        if attempt_count < 0 or attempt_count + 1 >= self._max_attempts:
            return None
        return self._delay


def compute_next_retry_at(
    policy: RetryPolicy,
    attempt_count: int,
    now: datetime,
) -> datetime | None:
    """根据失败前的 attempt_count 计算 next_retry_at"""
    delay = policy.next_delay(attempt_count)
    if delay is None:
        return None
    return now + delay


def is_retry_eligible(effect: Effect, now: datetime, policy: RetryPolicy) -> bool:
    """记录是否到期可自动重试

    条件：FAILED 且 next_retry_at 非空且已到期且 attempt_count < max_attempts。
    """
    return (
        effect.status == EffectStatus.FAILED
        and effect.next_retry_at is not None
        and effect.next_retry_at <= now
        and effect.attempt_count < policy.max_attempts
    )


def is_max_retry_exceeded(effect: Effect, policy: RetryPolicy) -> bool:
    """记录是否已用尽自动重试，需要人工介入"""
    return effect.status == EffectStatus.FAILED and (
        effect.next_retry_at is None or effect.attempt_count >= policy.max_attempts
    )


def default_retry_policies() -> dict[EffectDomain, RetryPolicy]:
    """按配置构建各业务域的默认重试策略"""
    fixed = FixedDelayRetryPolicy(
        max_attempts=config.MAX_ATTEMPTS,
        delay=timedelta(seconds=config.RETRY_DELAY_S),
    )
    return {
        EffectDomain.ERP_POSTING: fixed,
        EffectDomain.SHIPMENT_LABEL: fixed,
        EffectDomain.MARKET_PUSH: BackoffTableRetryPolicy.from_minutes(
            config.get_backoff_minutes()
        ),
        EffectDomain.ORDER_SYNC: fixed,
    }

"""副作用状态 + 尝试台账的原子事务封装

状态写回与台账追加在同一 SQLite 事务内提交，失败则整体回滚。
"""

import aiosqlite

from ..exceptions import ClaimLostError
from ..models.attempt import Attempt
from ..models.effect import Effect
from ..models.enums import EffectStatus
from .protocols import AttemptStore, EffectStore


async def create_effect(
    conn: aiosqlite.Connection,
    effect_store: EffectStore,
    effect: Effect,
) -> None:
    """插入新记录并提交

    Raises:
        aiosqlite.IntegrityError: 自然键冲突（已回滚）
    """
    try:
        await effect_store.insert_effect(effect)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def record_execution(
    conn: aiosqlite.Connection,
    effect_store: EffectStore,
    attempt_store: AttemptStore,
    effect: Effect,
    expected_status: EffectStatus,
    claim_owner: str,
    attempts: list[Attempt],
) -> None:
    """在同一事务内写回执行结果、追加台账并释放认领

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        effect_store: EffectStore 实例
        attempt_store: AttemptStore 实例
        effect: 执行后的新记录
        expected_status: 执行前数据库中的状态
        claim_owner: 当前认领令牌
        attempts: 本次执行产生的尝试记录

    Raises:
        ClaimLostError: 认领已失效或状态已被他人改变（已回滚）
    """
    try:
        updated = await effect_store.save_effect(
            effect,
            expected_status=expected_status,
            claim_owner=claim_owner,
        )
        if updated == 0:
            raise ClaimLostError(effect.effect_id, claim_owner)

        for attempt in attempts:
            await attempt_store.append_attempt(attempt)

        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def update_effect(
    conn: aiosqlite.Connection,
    effect_store: EffectStore,
    effect: Effect,
    expected_status: EffectStatus,
    claim_owner: str | None = None,
) -> bool:
    """不产生台账的状态写回（如人工 requeue），返回是否生效"""
    try:
        updated = await effect_store.save_effect(
            effect,
            expected_status=expected_status,
            claim_owner=claim_owner,
        )
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
    return updated == 1

"""Effect 状态机 -- 所有状态变更的唯一入口

INITIAL -> SUCCESS | FAILED，FAILED -> INITIAL（仅 prepare_retry），SUCCESS 为终态。
函数均为纯函数：校验后返回更新后的副本，持久化由调用方负责。
"""

from datetime import datetime
from typing import Any

import structlog

from . import config
from .exceptions import DuplicateResultError, StateConflictError
from .models.effect import Effect
from .models.enums import EffectStatus, validate_transition
from .retry import RetryPolicy, compute_next_retry_at

log = structlog.get_logger()


def transition_to(
    effect: Effect,
    target: EffectStatus,
    now: datetime,
    **changes: Any,
) -> Effect:
    """唯一的流转守卫

    Args:
        effect: 当前记录
        target: 目标状态
        now: 当前时间（写入 updated_at）
        **changes: 随流转一起写入的字段

    Returns:
        流转后的新记录

    Raises:
        StateConflictError: 流转不合法（包括从 SUCCESS 出发的任何流转）
    """
    if not validate_transition(effect.status, target):
        log.error(
            "illegal_effect_transition",
            effect_id=effect.effect_id,
            domain=effect.domain,
            from_status=effect.status,
            to_status=target,
        )
        raise StateConflictError(effect.effect_id, effect.status, target)

    return effect.model_copy(update={**changes, "status": target, "updated_at": now})


def mark_success(
    effect: Effect,
    result_id: str,
    response_payload: dict[str, Any] | None,
    now: datetime,
) -> Effect:
    """INITIAL -> SUCCESS

    Raises:
        DuplicateResultError: 记录已有结果标识
        StateConflictError: 当前状态不是 INITIAL
    """
    if effect.result_id:
        log.error(
            "duplicate_effect_result",
            effect_id=effect.effect_id,
            existing_result_id=effect.result_id,
            new_result_id=result_id,
        )
        raise DuplicateResultError(effect.effect_id, effect.result_id)

    return transition_to(
        effect,
        EffectStatus.SUCCESS,
        now,
        result_id=result_id,
        response_payload=response_payload,
        completed_at=now,
        next_retry_at=None,
        last_error_code=None,
        last_error_message=None,
    )


def mark_failed(
    effect: Effect,
    error_code: str,
    error_message: str,
    policy: RetryPolicy,
    now: datetime,
    response_payload: dict[str, Any] | None = None,
) -> Effect:
    """INITIAL -> FAILED

    延迟按失败前的 attempt_count 计算，随后 attempt_count + 1。
    退避表用尽时 next_retry_at 为空。
    """
    next_retry_at = compute_next_retry_at(policy, effect.attempt_count, now)
    updated = transition_to(
        effect,
        EffectStatus.FAILED,
        now,
        attempt_count=effect.attempt_count + 1,
        next_retry_at=next_retry_at,
        last_error_code=error_code,
        last_error_message=error_message[: config.ERROR_MESSAGE_MAX_LENGTH],
        response_payload=response_payload,
    )
    if next_retry_at is None:
        log.warning(
            "effect_max_retry_exceeded",
            effect_id=effect.effect_id,
            domain=effect.domain,
            attempt_count=updated.attempt_count,
            error_code=error_code,
        )
    return updated


def prepare_retry(effect: Effect, now: datetime) -> Effect:
    """FAILED -> INITIAL，清空错误状态与 next_retry_at，attempt_count 保持不变"""
    return transition_to(
        effect,
        EffectStatus.INITIAL,
        now,
        next_retry_at=None,
        last_error_code=None,
        last_error_message=None,
    )

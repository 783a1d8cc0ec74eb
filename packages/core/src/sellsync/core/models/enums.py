"""枚举定义 -- 副作用状态机、业务域、尝试结果、认领模式

包含 EffectStatus 三态状态机，VALID_TRANSITIONS 合法流转映射
和 TERMINAL_STATES 终态集合。所有状态变更都必须经过 validate_transition。
"""

from enum import StrEnum


class EffectStatus(StrEnum):
    """副作用记录状态

    各业务域在展示层使用自己的名称（见 domain.DomainSpec.status_labels），
    持久化与流转判断统一使用这三个值。
    """

    INITIAL = "INITIAL"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class EffectDomain(StrEnum):
    """业务域：四类外部副作用"""

    ERP_POSTING = "erp_posting"
    SHIPMENT_LABEL = "shipment_label"
    MARKET_PUSH = "market_push"
    ORDER_SYNC = "order_sync"


class AttemptOutcome(StrEnum):
    """单次厂商调用的结果"""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SESSION_EXPIRED = "SESSION_EXPIRED"
    TIMEOUT = "TIMEOUT"


class ClaimMode(StrEnum):
    """认领策略

    LOCK: 交互式单条操作，悲观锁 + 有界等待
    CONDITIONAL: 后台批量扫描，条件更新，未抢到即静默跳过
    """

    LOCK = "lock"
    CONDITIONAL = "conditional"


# 合法状态流转；FAILED -> INITIAL 只能经由 prepare_retry
VALID_TRANSITIONS: dict[EffectStatus, set[EffectStatus]] = {
    EffectStatus.INITIAL: {EffectStatus.SUCCESS, EffectStatus.FAILED},
    EffectStatus.FAILED: {EffectStatus.INITIAL},
    # 终态不可再流转
    EffectStatus.SUCCESS: set(),
}

TERMINAL_STATES: set[EffectStatus] = {
    EffectStatus.SUCCESS,
}


def validate_transition(from_status: EffectStatus, to_status: EffectStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed

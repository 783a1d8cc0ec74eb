"""SellSync Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .attempt import Attempt
from .domain import (
    DOMAIN_SPECS,
    DomainSpec,
    compute_range_hash,
    get_domain_spec,
)
from .effect import Effect, NaturalKey
from .enums import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AttemptOutcome,
    ClaimMode,
    EffectDomain,
    EffectStatus,
    validate_transition,
)

__all__ = [
    # 枚举
    "EffectStatus",
    "EffectDomain",
    "AttemptOutcome",
    "ClaimMode",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # 业务域
    "DomainSpec",
    "DOMAIN_SPECS",
    "get_domain_spec",
    "compute_range_hash",
    # Effect
    "Effect",
    "NaturalKey",
    # Attempt
    "Attempt",
]

"""Core 异常体系

ConflictError 类（幂等插入竞争）只在内部捕获恢复，不向调用方暴露；
StateConflictError / DuplicateResultError 代表正确性被破坏，必须记录并上抛。
"达到最大重试次数" 不是异常，而是 FAILED + next_retry_at 为空的状态。
"""


class EffectError(Exception):
    """副作用引擎基础异常"""

    code = "EFFECT_ERROR"

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class EffectValidationError(EffectError):
    """幂等键或 payload 格式不合法"""

    code = "VALIDATION_ERROR"


class IdempotencyConflictError(EffectError):
    """同一幂等键并发插入，唯一约束拒绝了后到者

    仅在 IdempotencyResolver 内部使用：捕获后回查并返回胜者记录。
    """

    code = "IDEMPOTENCY_CONFLICT"

    def __init__(self, natural_key: str) -> None:
        super().__init__(f"幂等键已存在: {natural_key}", recoverable=True)
        self.natural_key = natural_key


class StateConflictError(EffectError):
    """非法状态流转"""

    code = "STATE_CONFLICT"

    def __init__(self, effect_id: str, from_status: str, to_status: str) -> None:
        super().__init__(f"非法状态流转: {effect_id} {from_status} -> {to_status}")
        self.effect_id = effect_id
        self.from_status = from_status
        self.to_status = to_status


class DuplicateResultError(EffectError):
    """记录已有结果标识，拒绝第二次成功写入"""

    code = "DUPLICATE_RESULT"

    def __init__(self, effect_id: str, existing_result_id: str) -> None:
        super().__init__(
            f"副作用 {effect_id} 已存在结果标识 {existing_result_id}，拒绝覆盖"
        )
        self.effect_id = effect_id
        self.existing_result_id = existing_result_id


class EffectNotFoundError(EffectError):
    """副作用记录不存在"""

    code = "EFFECT_NOT_FOUND"

    def __init__(self, domain: str, effect_id: str) -> None:
        super().__init__(f"副作用不存在: {domain}/{effect_id}")
        self.domain = domain
        self.effect_id = effect_id


class ClaimTimeoutError(EffectError):
    """悲观锁等待超时（交互式请求快速失败，不排队）"""

    code = "EFFECT_LOCKED"

    def __init__(self, effect_id: str, waited_s: float) -> None:
        super().__init__(
            f"副作用 {effect_id} 正在被其他执行者处理（等待 {waited_s:.1f}s 超时）",
            recoverable=True,
        )
        self.effect_id = effect_id
        self.waited_s = waited_s


class ClaimLostError(EffectError):
    """写回结果时发现认领租约已被他人接管"""

    code = "CLAIM_LOST"

    def __init__(self, effect_id: str, claim_token: str) -> None:
        super().__init__(f"副作用 {effect_id} 的认领 {claim_token} 已失效")
        self.effect_id = effect_id
        self.claim_token = claim_token

"""Attempt Domain Model -- 执行尝试台账

每次厂商调用（包括会话过期后的那次透明重试）都追加一条记录。
表为 append-only，只允许插入，不允许更新或删除。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import AttemptOutcome


class Attempt(BaseModel):
    """单次执行尝试"""

    attempt_id: str = Field(description="唯一标识，ULID 格式")
    effect_id: str = Field(description="所属副作用 ID")
    attempt_number: int = Field(ge=1, description="副作用内序号，从 1 开始")
    outcome: AttemptOutcome = Field(description="调用结果")
    request_snapshot: dict[str, Any] = Field(default_factory=dict, description="脱敏后的请求快照")
    response_snapshot: dict[str, Any] | None = Field(default=None, description="脱敏后的响应快照")
    error_code: str | None = Field(default=None, description="错误码")
    error_message: str | None = Field(default=None, description="错误信息")
    duration_ms: int = Field(default=0, ge=0, description="调用耗时（毫秒）")
    trace_id: str = Field(default="", description="追踪 ID")
    job_id: str | None = Field(default=None, description="任务 ID")
    attempted_at: datetime = Field(description="调用发起时间")

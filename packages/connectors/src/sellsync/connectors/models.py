"""Connectors 数据模型

VendorCredentials: 租户的厂商凭证（值为 SecretStr）
SubmitResult: 一次成功的厂商调用
VendorVerdict: 厂商响应体的业务分类结果
AttemptRecord / ExecutionReport: EffectExecutor 的输出，由上层落库
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, SecretStr
from sellsync.core.models import AttemptOutcome


class VendorCredentials(BaseModel):
    """厂商凭证

    scope 标识凭证作用域（如 ECOUNT 的公司代码），会话缓存按 tenant + scope 区分。
    """

    vendor: str = Field(description="厂商标识，如 ecount / smartstore")
    scope: str = Field(default="default", description="凭证作用域")
    values: dict[str, SecretStr] = Field(default_factory=dict, description="凭证字段")

    def get(self, name: str, default: str = "") -> str:
        """读取凭证字段明文"""
        secret = self.values.get(name)
        return secret.get_secret_value() if secret is not None else default


class SubmitResult(BaseModel):
    """厂商调用成功后的返回"""

    result_id: str = Field(description="厂商分配的结果标识")
    request_snapshot: dict[str, Any] = Field(default_factory=dict, description="实际提交的请求")
    response_payload: dict[str, Any] = Field(default_factory=dict, description="厂商响应体")


class VendorVerdict(BaseModel):
    """响应分类结果"""

    success: bool = Field(description="是否业务成功")
    session_expired: bool = Field(default=False, description="是否会话失效")
    result_id: str | None = Field(default=None, description="结果标识（如 SlipNos[0]）")
    error_code: str | None = Field(default=None, description="错误码")
    error_message: str | None = Field(default=None, description="错误信息")


class AttemptRecord(BaseModel):
    """单次厂商调用记录（尚未编号落库）"""

    outcome: AttemptOutcome = Field(description="调用结果")
    request_snapshot: dict[str, Any] = Field(default_factory=dict, description="脱敏请求快照")
    response_snapshot: dict[str, Any] | None = Field(default=None, description="脱敏响应快照")
    error_code: str | None = Field(default=None, description="错误码")
    error_message: str | None = Field(default=None, description="错误信息")
    duration_ms: int = Field(default=0, description="耗时（毫秒）")
    attempted_at: datetime = Field(description="调用发起时间")


class ExecutionReport(BaseModel):
    """一次 execute 的完整结果（可能包含会话刷新产生的两次调用）"""

    succeeded: bool = Field(description="最终是否成功")
    result_id: str | None = Field(default=None, description="成功时的结果标识")
    response_payload: dict[str, Any] | None = Field(default=None, description="最后一次响应体")
    error_code: str | None = Field(default=None, description="失败时的错误码")
    error_message: str | None = Field(default=None, description="失败时的错误信息")
    session_refreshed: bool = Field(default=False, description="是否发生过会话刷新")
    attempts: list[AttemptRecord] = Field(default_factory=list, description="本次执行的调用记录")

"""Effect Domain Model -- 一次外部副作用的持久化表示

Effect 记录按幂等键唯一创建，只能通过状态机变更，永不删除。
"""

from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field, StringConstraints

from ..exceptions import EffectValidationError
from .domain import get_domain_spec
from .enums import EffectDomain, EffectStatus

# 首尾空白不构成新的租户分区
TenantId = Annotated[str, StringConstraints(strip_whitespace=True)]


class NaturalKey(BaseModel):
    """自然幂等键：tenant_id + 2~4 个业务字段"""

    domain: EffectDomain = Field(description="业务域")
    tenant_id: TenantId = Field(description="租户标识（分区键）")
    key_fields: dict[str, str | None] = Field(description="业务字段")

    def columns(self) -> tuple[str, ...]:
        """校验并返回 key_1..key_4 列值

        Raises:
            EffectValidationError: tenant_id 为空或字段不合法
        """
        if not self.tenant_id:
            raise EffectValidationError("tenant_id 不能为空")
        return get_domain_spec(self.domain).normalize_key(self.key_fields)

    def display(self) -> str:
        """人类可读的键，如 tenant1/order42/ECOUNT_DOC"""
        parts = [self.tenant_id, *(v for v in self.columns() if v)]
        return "/".join(parts)


class Effect(BaseModel):
    """副作用记录"""

    effect_id: str = Field(description="唯一标识，ULID 格式")
    domain: EffectDomain = Field(description="业务域")
    tenant_id: TenantId = Field(description="租户标识")
    key_fields: dict[str, str | None] = Field(description="自然键业务字段")
    status: EffectStatus = Field(default=EffectStatus.INITIAL, description="当前状态")
    result_id: str | None = Field(default=None, description="厂商返回的结果标识，仅 SUCCESS 时设置")
    attempt_count: int = Field(default=0, ge=0, description="失败次数，单调不减")
    next_retry_at: datetime | None = Field(default=None, description="下次可重试时间")
    last_error_code: str | None = Field(default=None, description="最近一次错误码")
    last_error_message: str | None = Field(default=None, description="最近一次错误信息")
    request_payload: dict[str, Any] = Field(default_factory=dict, description="提交给厂商的业务 payload")
    response_payload: dict[str, Any] | None = Field(default=None, description="最近一次厂商响应")
    trace_id: str = Field(default="", description="跨系统追踪 ID")
    job_id: str | None = Field(default=None, description="触发该副作用的任务 ID")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    completed_at: datetime | None = Field(default=None, description="成功完成时间")
    claim_owner: str | None = Field(default=None, description="当前认领令牌")
    claim_expires_at: datetime | None = Field(default=None, description="认领租约到期时间")

    @property
    def natural_key(self) -> NaturalKey:
        return NaturalKey(
            domain=self.domain,
            tenant_id=self.tenant_id,
            key_fields=self.key_fields,
        )

    @property
    def status_label(self) -> str:
        """该域的状态展示名，如 MARKET_PUSHED"""
        return get_domain_spec(self.domain).label_for(self.status)

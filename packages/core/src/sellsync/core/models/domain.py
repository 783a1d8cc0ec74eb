"""业务域定义 -- 每个域的表名、自然键字段与状态展示名

四个业务域共享同一套状态机和存储结构，差异只在这里声明。
自然键统一映射到 key_1..key_4 四个列，缺省的可选字段存为空串，
保证唯一索引对"缺省"值同样生效（SQLite 中 NULL 互不相等）。
"""

import hashlib

from pydantic import BaseModel, Field

from ..exceptions import EffectValidationError
from .enums import EffectDomain, EffectStatus

# 自然键最多 4 个业务字段（不含 tenant_id）
MAX_KEY_FIELDS = 4


class DomainSpec(BaseModel):
    """单个业务域的声明"""

    domain: EffectDomain = Field(description="业务域")
    table: str = Field(description="副作用表名")
    key_fields: tuple[str, ...] = Field(description="自然键字段（有序）")
    optional_key_fields: frozenset[str] = Field(
        default=frozenset(),
        description="允许缺省的自然键字段",
    )
    status_labels: dict[EffectStatus, str] = Field(description="状态展示名")

    @property
    def attempts_table(self) -> str:
        return f"{self.table}_attempts"

    @property
    def natural_key_index(self) -> str:
        return f"idx_{self.table}_natural_key"

    def label_for(self, status: EffectStatus) -> str:
        """返回该域的状态展示名"""
        return self.status_labels.get(status, status.value)

    def normalize_key(self, fields: dict[str, str | None]) -> tuple[str, ...]:
        """把业务字段映射为 key_1..key_4 列值

        Raises:
            EffectValidationError: 存在未知字段，或必填字段缺失/为空
        """
        unknown = set(fields) - set(self.key_fields)
        if unknown:
            raise EffectValidationError(
                f"{self.domain} 不认识的自然键字段: {sorted(unknown)}"
            )

        values: list[str] = []
        for name in self.key_fields:
            raw = fields.get(name)
            value = raw.strip() if isinstance(raw, str) else raw
            if value is None or value == "":
                if name not in self.optional_key_fields:
                    raise EffectValidationError(
                        f"{self.domain} 缺少自然键字段: {name}"
                    )
                value = ""
            elif not isinstance(value, str):
                raise EffectValidationError(
                    f"{self.domain} 自然键字段 {name} 必须是字符串"
                )
            values.append(value)

        values.extend([""] * (MAX_KEY_FIELDS - len(values)))
        return tuple(values)

    def denormalize_key(self, columns: tuple[str, ...]) -> dict[str, str | None]:
        """key_1..key_4 列值还原为业务字段（空串还原为 None）"""
        return {
            name: (columns[i] or None)
            for i, name in enumerate(self.key_fields)
        }


DOMAIN_SPECS: dict[EffectDomain, DomainSpec] = {
    EffectDomain.ERP_POSTING: DomainSpec(
        domain=EffectDomain.ERP_POSTING,
        table="erp_postings",
        key_fields=("erp_code", "marketplace", "marketplace_order_id", "posting_type"),
        status_labels={
            EffectStatus.INITIAL: "READY",
            EffectStatus.SUCCESS: "POSTED",
            EffectStatus.FAILED: "FAILED",
        },
    ),
    EffectDomain.SHIPMENT_LABEL: DomainSpec(
        domain=EffectDomain.SHIPMENT_LABEL,
        table="shipment_labels",
        key_fields=("marketplace", "marketplace_order_id", "carrier_code"),
        status_labels={
            EffectStatus.INITIAL: "INVOICE_REQUESTED",
            EffectStatus.SUCCESS: "INVOICE_ISSUED",
            EffectStatus.FAILED: "FAILED",
        },
    ),
    EffectDomain.MARKET_PUSH: DomainSpec(
        domain=EffectDomain.MARKET_PUSH,
        table="market_pushes",
        key_fields=("order_id", "tracking_no"),
        status_labels={
            EffectStatus.INITIAL: "MARKET_PUSH_REQUESTED",
            EffectStatus.SUCCESS: "MARKET_PUSHED",
            EffectStatus.FAILED: "FAILED",
        },
    ),
    EffectDomain.ORDER_SYNC: DomainSpec(
        domain=EffectDomain.ORDER_SYNC,
        table="sync_jobs",
        key_fields=("store_id", "trigger_type", "range_hash"),
        # 全租户同步任务不绑定具体店铺
        optional_key_fields=frozenset({"store_id"}),
        status_labels={
            EffectStatus.INITIAL: "PENDING",
            EffectStatus.SUCCESS: "COMPLETED",
            EffectStatus.FAILED: "FAILED",
        },
    ),
}


def get_domain_spec(domain: EffectDomain | str) -> DomainSpec:
    """按域名查找 DomainSpec

    Raises:
        EffectValidationError: 未知业务域
    """
    try:
        return DOMAIN_SPECS[EffectDomain(domain)]
    except ValueError as e:
        raise EffectValidationError(f"未知业务域: {domain}") from e


def compute_range_hash(marketplace: str, range_start: str, range_end: str) -> str:
    """同步任务的区间指纹：SHA-256(marketplace + start + end) 十六进制"""
    raw = f"{marketplace}{range_start}{range_end}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

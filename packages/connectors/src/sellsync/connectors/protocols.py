"""厂商客户端接口定义

ErpClient / MarketplaceClient / CarrierClient 是具体厂商能力；
EffectClient 是 EffectExecutor 面向的统一接口，由 adapters 模块按业务域适配。
"""

from typing import Any, Protocol

from sellsync.core.models import Effect

from .models import SubmitResult, VendorCredentials


class ErpClient(Protocol):
    """ERP 提交客户端"""

    async def submit(
        self,
        document: dict[str, Any],
        credentials: VendorCredentials,
        session_token: str | None = None,
    ) -> SubmitResult:
        """提交单据，返回厂商单据号

        Raises:
            SessionExpiredError: 会话失效
            ExternalApiError: 业务失败或传输失败
        """
        ...

    async def test_auth(self, credentials: VendorCredentials) -> bool:
        """验证凭证是否可用"""
        ...


class MarketplaceClient(Protocol):
    """电商平台客户端"""

    async def push_tracking(
        self,
        order_ref: str,
        carrier: str,
        tracking_no: str,
        credentials: VendorCredentials,
    ) -> dict[str, Any]:
        """回传物流单号，返回响应体"""
        ...

    async def fetch_orders(
        self,
        store_id: str | None,
        range_start: str,
        range_end: str,
        credentials: VendorCredentials,
    ) -> list[dict[str, Any]]:
        """拉取时间区间内的订单"""
        ...


class CarrierClient(Protocol):
    """物流商运单签发客户端"""

    async def issue_label(
        self,
        request: dict[str, Any],
        credentials: VendorCredentials,
    ) -> SubmitResult:
        """签发运单，result_id 为运单号"""
        ...


class EffectClient(Protocol):
    """EffectExecutor 使用的统一接口"""

    requires_session: bool

    async def perform(
        self,
        effect: Effect,
        credentials: VendorCredentials,
        session_token: str | None,
    ) -> SubmitResult:
        """执行一次外部副作用

        Raises:
            SessionExpiredError: 会话失效（仅 requires_session=True 的客户端）
            ExternalApiError: 其他已分类失败
        """
        ...

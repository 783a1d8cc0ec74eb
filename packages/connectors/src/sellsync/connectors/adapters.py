"""业务域适配器 -- 把厂商客户端适配为 EffectClient

每个适配器从 Effect 的自然键字段与 request_payload 中取出厂商调用参数。
"""

from typing import Any

from sellsync.core.models import Effect, EffectDomain

from .exceptions import ExternalApiError
from .models import SubmitResult, VendorCredentials
from .protocols import CarrierClient, EffectClient, ErpClient, MarketplaceClient


def _require(effect: Effect, name: str) -> str:
    value = effect.key_fields.get(name) or effect.request_payload.get(name)
    if not value:
        raise ExternalApiError(
            "INVALID_REQUEST",
            f"{effect.domain} 缺少调用参数 {name}",
            recoverable=False,
        )
    return str(value)


class ErpPostingAdapter:
    """ERP 过账：request_payload 即 ERP 单据"""

    requires_session = True

    def __init__(self, client: ErpClient) -> None:
        self._client = client

    async def perform(
        self,
        effect: Effect,
        credentials: VendorCredentials,
        session_token: str | None,
    ) -> SubmitResult:
        return await self._client.submit(effect.request_payload, credentials, session_token)


class MarketPushAdapter:
    """物流单号回传：order_id + tracking_no 为自然键，承运商代码取自 payload"""

    requires_session = False

    def __init__(self, client: MarketplaceClient) -> None:
        self._client = client

    async def perform(
        self,
        effect: Effect,
        credentials: VendorCredentials,
        session_token: str | None,
    ) -> SubmitResult:
        order_ref = str(effect.request_payload.get("marketplace_order_id") or _require(effect, "order_id"))
        carrier = _require(effect, "carrier_code")
        tracking_no = _require(effect, "tracking_no")
        response = await self._client.push_tracking(order_ref, carrier, tracking_no, credentials)
        result_id = response.get("requestId") or response.get("request_id") or tracking_no
        return SubmitResult(
            result_id=str(result_id),
            request_snapshot={
                "order_ref": order_ref,
                "carrier_code": carrier,
                "tracking_no": tracking_no,
            },
            response_payload=response,
        )


class ShipmentLabelAdapter:
    """运单签发：result_id 为运单号"""

    requires_session = False

    def __init__(self, client: CarrierClient) -> None:
        self._client = client

    async def perform(
        self,
        effect: Effect,
        credentials: VendorCredentials,
        session_token: str | None,
    ) -> SubmitResult:
        request: dict[str, Any] = {**effect.request_payload, **effect.key_fields}
        return await self._client.issue_label(request, credentials)


class OrderSyncAdapter:
    """订单同步：拉取区间订单，result_id 为拉取批次摘要"""

    requires_session = False

    def __init__(self, client: MarketplaceClient) -> None:
        self._client = client

    async def perform(
        self,
        effect: Effect,
        credentials: VendorCredentials,
        session_token: str | None,
    ) -> SubmitResult:
        range_start = _require(effect, "range_start")
        range_end = _require(effect, "range_end")
        store_id = effect.key_fields.get("store_id") or None
        orders = await self._client.fetch_orders(store_id, range_start, range_end, credentials)
        return SubmitResult(
            result_id=f"{effect.key_fields.get('range_hash', '')[:12]}:{len(orders)}",
            request_snapshot={
                "store_id": store_id,
                "range_start": range_start,
                "range_end": range_end,
            },
            response_payload={"order_count": len(orders), "orders": orders},
        )


def build_effect_clients(
    erp_client: ErpClient,
    marketplace_client: MarketplaceClient,
    carrier_client: CarrierClient,
) -> dict[EffectDomain, EffectClient]:
    """按业务域组装 EffectClient"""
    return {
        EffectDomain.ERP_POSTING: ErpPostingAdapter(erp_client),
        EffectDomain.MARKET_PUSH: MarketPushAdapter(marketplace_client),
        EffectDomain.SHIPMENT_LABEL: ShipmentLabelAdapter(carrier_client),
        EffectDomain.ORDER_SYNC: OrderSyncAdapter(marketplace_client),
    }

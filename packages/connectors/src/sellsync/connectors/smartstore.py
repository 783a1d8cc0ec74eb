"""SmartStoreClient -- 네이버 SmartStore Commerce API 封装

- 物流回传: POST /v1/orders/{orderId}/shipment
- 订单拉取: GET /v1/orders?from=&to=
认证使用 Client ID / Secret 请求头；凭证优先取租户凭证，其次全局配置。
"""

from typing import Any

import httpx
import structlog

from .classifier import detect_failure_body
from .exceptions import ExternalApiError, VendorUnreachableError
from .models import VendorCredentials

log = structlog.get_logger()

SMARTSTORE_VENDOR = "smartstore"


class SmartStoreClient:
    """SmartStore 平台客户端"""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = "https://api.commerce.naver.com",
        client_id: str = "",
        client_secret: str = "",
        timeout_s: float = 30.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout_s = timeout_s

    async def push_tracking(
        self,
        order_ref: str,
        carrier: str,
        tracking_no: str,
        credentials: VendorCredentials,
    ) -> dict[str, Any]:
        """回传物流单号

        Raises:
            ExternalApiError: 非 2xx 响应，或 2xx 响应体携带失败信息
            VendorUnreachableError: 连接失败或超时
        """
        url = f"{self._base_url}/v1/orders/{order_ref}/shipment"
        log.info(
            "smartstore_push_tracking",
            order_ref=order_ref,
            carrier=carrier,
            tracking_no=tracking_no,
        )
        response = await self._request(
            "POST",
            url,
            credentials,
            json={"deliveryCompanyCode": carrier, "trackingNumber": tracking_no},
        )
        return self._parse(response, url)

    async def fetch_orders(
        self,
        store_id: str | None,
        range_start: str,
        range_end: str,
        credentials: VendorCredentials,
    ) -> list[dict[str, Any]]:
        """拉取区间订单"""
        url = f"{self._base_url}/v1/orders"
        params = {"from": range_start, "to": range_end}
        if store_id:
            params["storeId"] = store_id
        response = await self._request("GET", url, credentials, params=params)
        body = self._parse(response, url)
        orders = body.get("data") or body.get("orders") or []
        return orders if isinstance(orders, list) else []

    def _headers(self, credentials: VendorCredentials) -> dict[str, str]:
        client_id = credentials.get("client_id") or self._client_id
        client_secret = credentials.get("client_secret") or self._client_secret
        if not client_id or not client_secret:
            raise ExternalApiError(
                "CREDENTIALS_MISSING",
                "SmartStore client_id / client_secret 未配置",
                recoverable=False,
            )
        return {
            "Content-Type": "application/json",
            "X-Naver-Client-Id": client_id,
            "X-Naver-Client-Secret": client_secret,
        }

    async def _request(
        self,
        method: str,
        url: str,
        credentials: VendorCredentials,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = self._headers(credentials)
        try:
            return await self._http.request(
                method,
                url,
                headers=headers,
                timeout=self._timeout_s,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise VendorUnreachableError(url, e, code="TIMEOUT") from e
        except httpx.TransportError as e:
            raise VendorUnreachableError(url, e) from e

    @staticmethod
    def _parse(response: httpx.Response, url: str) -> dict[str, Any]:
        if not response.is_success:
            log.error(
                "smartstore_request_failed",
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ExternalApiError(
                f"HTTP_{response.status_code}",
                response.text[:500] or "SmartStore 请求失败",
            )
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError:
            return {"raw": response.text[:500]}
        if not isinstance(body, dict):
            return {"data": body}

        # 2xx 响应体同样可能表示业务失败
        verdict = detect_failure_body(body)
        if verdict is not None:
            log.warning(
                "smartstore_business_failure",
                url=url,
                error_code=verdict.error_code,
                error=verdict.error_message,
            )
            raise ExternalApiError(
                verdict.error_code,
                verdict.error_message or "SmartStore 业务失败",
                response_payload=body,
            )
        return body

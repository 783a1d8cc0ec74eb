"""EcountErpClient -- ECOUNT OpenAPI 封装

区域查询 -> OAPILogin 签发会话 -> Sale/SaveSale 提交销售单据。
会话由 EffectExecutor 通过 SessionProvider 管理，本客户端只负责单次调用与分类：
- 会话失效特征（401 / SESSION_EXPIRED）抛出 SessionExpiredError
- 其余业务失败抛出 ExternalApiError
SESSION_ID 与 API_CERT_KEY 在日志中脱敏。
"""

import time
from typing import Any

import httpx
import structlog

from .classifier import resolve_submission
from .exceptions import ExternalApiError, SessionExpiredError, VendorUnreachableError
from .models import SubmitResult, VendorCredentials
from .redact import mask_secret, redact

log = structlog.get_logger()

ECOUNT_VENDOR = "ecount"

# 区域化 API 地址模板
ECOUNT_BASE_URL_TEMPLATE = "https://oapi{zone}.ecount.com/OAPI/V2"

# 成功但未返回单据号时的占位结果标识
UNNUMBERED_RESULT_ID = "ECOUNT-UNNUMBERED"


class EcountErpClient:
    """ECOUNT ERP 客户端"""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        zone_url: str = "https://oapi.ecount.com/OAPI/V2/Zone",
        lan_type: str = "ko-KR",
        timeout_s: float = 30.0,
    ) -> None:
        """
        Args:
            http_client: 共享的 httpx.AsyncClient
            zone_url: 区域查询地址
            lan_type: 登录语言
            timeout_s: 单次请求超时（秒）
        """
        self._http = http_client
        self._zone_url = zone_url
        self._lan_type = lan_type
        self._timeout_s = timeout_s
        # 公司代码 -> 区域
        self._zones: dict[str, str] = {}

    async def lookup_zone(self, com_code: str) -> str:
        """查询公司代码所属区域（DOMAIN_ZONE 优先，其次 ZONE）

        Raises:
            ExternalApiError: 区域未分配或查询失败
        """
        body = await self._post_json(self._zone_url, {"COM_CODE": com_code.strip()})
        if str(body.get("Status")) == "200":
            data = body.get("Data") or {}
            if isinstance(data, dict):
                if data.get("EMPTY_ZONE"):
                    raise ExternalApiError(
                        "EMPTY_ZONE",
                        f"公司代码未分配区域: {com_code}",
                        recoverable=False,
                    )
                zone = data.get("DOMAIN_ZONE") or data.get("ZONE")
                if zone and zone != "null":
                    return str(zone)

        message = (body.get("Error") or {}).get("Message") or "Unknown error"
        raise ExternalApiError(str(body.get("Status", "ZONE_LOOKUP_FAILED")), f"区域查询失败: {message}")

    async def login(self, credentials: VendorCredentials) -> str:
        """登录并返回 SESSION_ID（作为 SessionIssuer 注册到 CachedSessionProvider）

        Raises:
            ExternalApiError: 登录失败或响应缺少 SESSION_ID
        """
        zone = await self._resolve_zone(credentials)
        url = f"{ECOUNT_BASE_URL_TEMPLATE.format(zone=zone)}/OAPILogin"
        api_key = credentials.get("api_key")
        payload = {
            "COM_CODE": credentials.get("com_code").strip(),
            "USER_ID": credentials.get("user_id").strip(),
            "API_CERT_KEY": api_key.strip(),
            "LAN_TYPE": self._lan_type,
            "ZONE": zone.strip(),
        }
        log.info(
            "ecount_login_request",
            url=url,
            com_code=payload["COM_CODE"],
            api_key=mask_secret(api_key),
            zone=zone,
        )

        body = await self._post_json(url, payload)
        if str(body.get("Status")) == "200":
            datas = (body.get("Data") or {}).get("Datas") or {}
            session_id = datas.get("SESSION_ID")
            if session_id and session_id != "null":
                log.info(
                    "ecount_login_succeeded",
                    com_code=payload["COM_CODE"],
                    session_id=mask_secret(session_id),
                )
                return str(session_id)
            raise ExternalApiError("LOGIN_FAILED", "登录响应缺少 SESSION_ID", response_payload=body)

        message = (body.get("Error") or {}).get("Message") or "Unknown error"
        raise ExternalApiError(
            str(body.get("Status", "LOGIN_FAILED")),
            f"登录失败: {message}",
            response_payload=redact(body),
        )

    async def submit(
        self,
        document: dict[str, Any],
        credentials: VendorCredentials,
        session_token: str | None = None,
    ) -> SubmitResult:
        """提交销售单据（Sale/SaveSale）

        Returns:
            SubmitResult，result_id 为 Data.SlipNos[0]

        Raises:
            SessionExpiredError: 会话失效
            ExternalApiError: 业务失败或传输失败
        """
        if not session_token:
            raise SessionExpiredError("SESSION_EXPIRED", "缺少 ECOUNT 会话")

        zone = await self._resolve_zone(credentials)
        url = f"{ECOUNT_BASE_URL_TEMPLATE.format(zone=zone)}/Sale/SaveSale"
        start = time.monotonic()
        body = await self._post_json(url, document, params={"SESSION_ID": session_token})
        duration_ms = int((time.monotonic() - start) * 1000)

        log.info(
            "ecount_save_sale_completed",
            url=url,
            session_id=mask_secret(session_token),
            status=body.get("Status"),
            duration_ms=duration_ms,
        )
        result = resolve_submission(body, redact(document), UNNUMBERED_RESULT_ID)
        if result.result_id == UNNUMBERED_RESULT_ID:
            log.warning("ecount_success_without_slip_no", url=url)
        return result

    async def test_auth(self, credentials: VendorCredentials) -> bool:
        """尝试登录验证凭证"""
        try:
            await self.login(credentials)
        except ExternalApiError as e:
            log.warning("ecount_auth_test_failed", error_code=e.code, error=e.vendor_message)
            return False
        return True

    async def _resolve_zone(self, credentials: VendorCredentials) -> str:
        zone = credentials.get("zone")
        if zone:
            return zone
        com_code = credentials.get("com_code")
        if com_code not in self._zones:
            self._zones[com_code] = await self.lookup_zone(com_code)
        return self._zones[com_code]

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST JSON 并解析响应；传输层错误统一转为 ExternalApiError 子类"""
        try:
            response = await self._http.post(
                url,
                json=payload,
                params=params,
                headers={"Accept": "application/json", "Accept-Encoding": "gzip, deflate"},
                timeout=self._timeout_s,
            )
        except httpx.TimeoutException as e:
            raise VendorUnreachableError(url, e, code="TIMEOUT") from e
        except httpx.TransportError as e:
            raise VendorUnreachableError(url, e) from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            if response.status_code == 401:
                raise SessionExpiredError("401", "HTTP 401")
            raise ExternalApiError(
                f"HTTP_{response.status_code}",
                response.text[:500] or "响应不是 JSON 对象",
            )
        return body

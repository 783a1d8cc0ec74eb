"""Mock 厂商客户端 -- mock 连接模式与测试使用

行为与真实客户端一致：ERP 响应体同样经过 classifier 分类，
可通过 responses 预置一串响应体来模拟失败、会话失效等场景。
"""

import asyncio
from collections import deque
from collections.abc import Iterable
from typing import Any

from ulid import ULID

from .classifier import resolve_submission
from .exceptions import ExternalApiError
from .models import SubmitResult, VendorCredentials

MOCK_VENDOR = "mock"


def ecount_success_body(slip_no: str) -> dict[str, Any]:
    """ECOUNT 风格的成功响应体"""
    return {
        "Status": "200",
        "Data": {"SuccessCnt": 1, "FailCnt": 0, "SlipNos": [slip_no]},
    }


async def mock_login(credentials: VendorCredentials) -> str:
    """Mock 会话签发"""
    await asyncio.sleep(0)
    return f"mock-session-{ULID()}"


class MockErpClient:
    """Mock ERP：按序返回预置响应体，耗尽后返回成功"""

    def __init__(self, responses: Iterable[dict[str, Any]] | None = None) -> None:
        self._responses: deque[dict[str, Any]] = deque(responses or [])
        self.calls: list[dict[str, Any]] = []
        self._counter = 0

    def enqueue(self, *bodies: dict[str, Any]) -> None:
        """追加预置响应体"""
        self._responses.extend(bodies)

    async def submit(
        self,
        document: dict[str, Any],
        credentials: VendorCredentials,
        session_token: str | None = None,
    ) -> SubmitResult:
        await asyncio.sleep(0)
        self._counter += 1
        self.calls.append({"document": document, "session_token": session_token})
        body = (
            self._responses.popleft()
            if self._responses
            else ecount_success_body(f"MOCK-{self._counter:06d}")
        )
        return resolve_submission(body, document, f"MOCK-{self._counter:06d}")

    async def test_auth(self, credentials: VendorCredentials) -> bool:
        return True


class MockMarketplaceClient:
    """Mock 平台：记录回传，fail_with 非空时抛出 ExternalApiError"""

    def __init__(
        self,
        orders: list[dict[str, Any]] | None = None,
        fail_with: ExternalApiError | None = None,
    ) -> None:
        self._orders = orders or []
        self.fail_with = fail_with
        self.pushed: list[tuple[str, str, str]] = []

    async def push_tracking(
        self,
        order_ref: str,
        carrier: str,
        tracking_no: str,
        credentials: VendorCredentials,
    ) -> dict[str, Any]:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        self.pushed.append((order_ref, carrier, tracking_no))
        return {
            "orderId": order_ref,
            "carrierCode": carrier,
            "trackingNo": tracking_no,
            "status": "success",
            "message": "Mock response",
        }

    async def fetch_orders(
        self,
        store_id: str | None,
        range_start: str,
        range_end: str,
        credentials: VendorCredentials,
    ) -> list[dict[str, Any]]:
        await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        return list(self._orders)


class MockCarrierClient:
    """Mock 物流商：签发递增运单号"""

    def __init__(self, prefix: str = "MOCK") -> None:
        self._prefix = prefix
        self._counter = 0

    async def issue_label(
        self,
        request: dict[str, Any],
        credentials: VendorCredentials,
    ) -> SubmitResult:
        await asyncio.sleep(0)
        self._counter += 1
        tracking_no = f"{self._prefix}{self._counter:010d}"
        return SubmitResult(
            result_id=tracking_no,
            request_snapshot=request,
            response_payload={"trackingNo": tracking_no},
        )

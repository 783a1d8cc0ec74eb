"""TraceMiddleware -- 绑定 trace_id 与 effect_id

trace_id 取自 X-Trace-ID 请求头，缺省时生成；
/api/effects/{domain}/{effect_id} 路径上的 effect_id 一并绑定。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from ulid import ULID

TRACE_HEADER = "X-Trace-ID"

# ULID 长度
_EFFECT_ID_LENGTH = 26


def extract_effect_id(path: str) -> str | None:
    """从 /api/effects/{domain}/{effect_id}[/...] 中提取 effect_id"""
    parts = [p for p in path.split("/") if p]
    if len(parts) >= 4 and parts[0] == "api" and parts[1] == "effects":
        candidate = parts[3]
        if len(candidate) == _EFFECT_ID_LENGTH:
            return candidate
    return None


class TraceMiddleware(BaseHTTPMiddleware):
    """追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        trace_id = request.headers.get(TRACE_HEADER) or f"trace-{ULID()}"
        request.state.trace_id = trace_id
        structlog.contextvars.bind_contextvars(trace_id=trace_id)

        effect_id = extract_effect_id(request.url.path)
        if effect_id:
            structlog.contextvars.bind_contextvars(effect_id=effect_id)

        response = await call_next(request)
        response.headers[TRACE_HEADER] = trace_id
        return response

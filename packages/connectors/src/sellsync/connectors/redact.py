"""脱敏工具 -- 会话 ID、API Key 等不进入日志与台账快照"""

from typing import Any

# 小写比较
SENSITIVE_KEYS = frozenset(
    {
        "session_id",
        "api_cert_key",
        "api_key",
        "apikey",
        "password",
        "client_secret",
        "secret",
        "token",
        "access_token",
        "authorization",
        "x-naver-client-secret",
    }
)

MASK = "***"


def mask_secret(value: str | None, keep: int = 4) -> str:
    """保留首尾若干字符，如 abcd...wxyz"""
    if not value:
        return ""
    if len(value) <= keep * 2:
        return MASK
    return f"{value[:keep]}...{value[-keep:]}"


def redact(payload: Any) -> Any:
    """递归脱敏 dict / list 中的敏感字段"""
    if isinstance(payload, dict):
        return {
            key: (MASK if str(key).lower() in SENSITIVE_KEYS else redact(value))
            for key, value in payload.items()
        }
    if isinstance(payload, list):
        return [redact(item) for item in payload]
    return payload

"""ConnectorConfig -- 厂商连接配置加载

从环境变量加载配置，密钥使用 SecretStr，避免进入日志。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class ConnectorConfig(BaseModel):
    """Connectors 包配置 -- 从环境变量加载

    环境变量:
        SELLSYNC_CONNECTOR_MODE: live / mock
        SELLSYNC_VENDOR_TIMEOUT_S: 厂商调用超时（秒，默认 30）
        SELLSYNC_SESSION_TTL_S: 会话缓存有效期（秒，默认 23 小时）
        SELLSYNC_CREDENTIALS_FILE: 租户凭证 JSON 文件（后台扫描使用）
        ECOUNT_ZONE_URL / ECOUNT_LAN_TYPE: ECOUNT 区域查询地址与语言
        SMARTSTORE_BASE_URL / SMARTSTORE_CLIENT_ID / SMARTSTORE_CLIENT_SECRET
    """

    connector_mode: Literal["live", "mock"] = Field(
        default="mock",
        description="厂商连接模式：live 调用真实 API，mock 使用本地模拟客户端",
    )
    timeout_s: float = Field(
        default=30.0,
        gt=0,
        description="单次厂商调用超时（秒）",
    )
    session_ttl_s: int = Field(
        default=23 * 60 * 60,
        ge=1,
        description="会话缓存有效期（秒），比厂商 24 小时有效期留出余量",
    )
    credentials_file: str | None = Field(
        default=None,
        description="租户凭证 JSON 文件路径",
    )
    ecount_zone_url: str = Field(
        default="https://oapi.ecount.com/OAPI/V2/Zone",
        description="ECOUNT 区域查询地址",
    )
    ecount_lan_type: str = Field(default="ko-KR", description="ECOUNT 登录语言")
    smartstore_base_url: str = Field(
        default="https://api.commerce.naver.com",
        description="SmartStore API 基础 URL",
    )
    smartstore_client_id: str = Field(default="", description="SmartStore Client ID")
    smartstore_client_secret: SecretStr = Field(
        default=SecretStr(""),
        description="SmartStore Client Secret",
    )


def _env_number(name: str, cast, fallback):
    val = os.environ.get(name)
    if not val:
        return None
    try:
        return cast(val)
    except ValueError:
        log.warning("invalid_numeric_config", env_var=name, value=val, fallback=fallback)
        return None


def load_connector_config() -> ConnectorConfig:
    """从环境变量加载 Connectors 配置

    非法数值记录警告并回退到默认值，不阻塞启动。

    Returns:
        ConnectorConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("SELLSYNC_CONNECTOR_MODE"):
        kwargs["connector_mode"] = val

    if (timeout := _env_number("SELLSYNC_VENDOR_TIMEOUT_S", float, 30.0)) is not None:
        kwargs["timeout_s"] = timeout

    if (ttl := _env_number("SELLSYNC_SESSION_TTL_S", int, 23 * 60 * 60)) is not None:
        kwargs["session_ttl_s"] = ttl

    if val := os.environ.get("SELLSYNC_CREDENTIALS_FILE"):
        kwargs["credentials_file"] = val

    if val := os.environ.get("ECOUNT_ZONE_URL"):
        kwargs["ecount_zone_url"] = val

    if val := os.environ.get("ECOUNT_LAN_TYPE"):
        kwargs["ecount_lan_type"] = val

    if val := os.environ.get("SMARTSTORE_BASE_URL"):
        kwargs["smartstore_base_url"] = val

    if val := os.environ.get("SMARTSTORE_CLIENT_ID"):
        kwargs["smartstore_client_id"] = val

    if val := os.environ.get("SMARTSTORE_CLIENT_SECRET"):
        kwargs["smartstore_client_secret"] = SecretStr(val)

    return ConnectorConfig(**kwargs)

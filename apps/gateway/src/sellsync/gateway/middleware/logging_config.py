"""structlog / Logfire 配置模块

SELLSYNC_LOG_FORMAT=json 输出结构化 JSON，默认 dev 控制台输出。
LOGFIRE_SEND_TO_LOGFIRE=true 时额外启用 Logfire APM。
所有事件在渲染前经过 mask_sensitive_fields，会话 ID / API Key 不会落到日志里。
"""

import logging
import os
from typing import Any

import structlog
from fastapi import FastAPI
from sellsync.connectors import redact

# 第三方库的请求行只在出错时输出
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def mask_sensitive_fields(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor：按 redact 规则遮蔽事件中的敏感字段"""
    return redact(event_dict)


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer()


def setup_logging() -> None:
    """初始化 structlog 与标准库 logging

    SELLSYNC_LOG_FORMAT: json / dev（默认）
    SELLSYNC_LOG_LEVEL: 日志级别，默认 INFO
    """
    log_format = os.environ.get("SELLSYNC_LOG_FORMAT", "dev").lower()
    level_name = os.environ.get("SELLSYNC_LOG_LEVEL", "INFO").upper()

    shared = _shared_processors()
    if log_format == "json":
        shared.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(log_format),
            foreign_pre_chain=shared,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logfire(app: FastAPI) -> bool:
    """Logfire 可选初始化

    LOGFIRE_SEND_TO_LOGFIRE 环境变量控制：
    - "true": 启用 Logfire APM（需要 LOGFIRE_TOKEN），追踪 FastAPI 请求与 httpx 厂商调用
    - "false" (默认): 只输出本地日志

    Returns:
        是否已启用
    """
    if os.environ.get("LOGFIRE_SEND_TO_LOGFIRE", "false").lower() != "true":
        return False
    try:
        import logfire

        logfire.configure(service_name="sellsync-gateway")
        logfire.instrument_fastapi(app)
        logfire.instrument_httpx()
    except Exception:
        # 初始化失败退回本地日志，不阻塞启动
        structlog.get_logger().warning("logfire_init_failed", exc_info=True)
        return False
    return True

"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、认领租约、锁等待、重试上限与退避表、后台扫描参数。
"""

import os
from pathlib import Path

import structlog

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("SELLSYNC_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "SELLSYNC_DB_PATH",
        str(_get_base_dir() / "sqlite" / "sellsync.db"),
    )


def _env_float(name: str, default: float) -> float:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        log.warning("invalid_numeric_config", env_var=name, value=val, fallback=default)
        return default


def _env_int(name: str, default: int) -> int:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        log.warning("invalid_numeric_config", env_var=name, value=val, fallback=default)
        return default


def get_backoff_minutes() -> tuple[int, ...]:
    """物流回传退避表（分钟），逗号分隔，如 "1,5,15,60,180" """
    raw = os.environ.get("SELLSYNC_MARKET_PUSH_BACKOFF_MINUTES")
    if not raw:
        return DEFAULT_BACKOFF_MINUTES
    try:
        table = tuple(int(part) for part in raw.split(",") if part.strip())
    except ValueError:
        log.warning(
            "invalid_backoff_config",
            env_var="SELLSYNC_MARKET_PUSH_BACKOFF_MINUTES",
            value=raw,
        )
        return DEFAULT_BACKOFF_MINUTES
    return table or DEFAULT_BACKOFF_MINUTES


# 物流回传默认退避表
DEFAULT_BACKOFF_MINUTES: tuple[int, ...] = (1, 5, 15, 60, 180)

# 悲观锁最长等待（秒），超时即快速失败
LOCK_WAIT_S: float = _env_float("SELLSYNC_LOCK_WAIT_S", 3.0)

# 锁轮询间隔（秒）
LOCK_POLL_INTERVAL_S: float = _env_float("SELLSYNC_LOCK_POLL_INTERVAL_S", 0.05)

# 认领租约时长（秒），持有者崩溃后租约到期自动释放
# 实际租约不小于执行器最长耗时 + CLAIM_LEASE_MARGIN_S，见 guard.lease_covering
CLAIM_LEASE_S: int = _env_int("SELLSYNC_CLAIM_LEASE_S", 120)

# 执行结束到状态写回之间预留的租约余量（秒）
CLAIM_LEASE_MARGIN_S: int = _env_int("SELLSYNC_CLAIM_LEASE_MARGIN_S", 30)

# ERP 过账 / 运单 / 同步任务的最大执行次数与固定重试间隔
MAX_ATTEMPTS: int = _env_int("SELLSYNC_MAX_ATTEMPTS", 5)
RETRY_DELAY_S: int = _env_int("SELLSYNC_RETRY_DELAY_S", 600)

# 后台扫描
SWEEP_INTERVAL_S: float = _env_float("SELLSYNC_SWEEP_INTERVAL_S", 300.0)
SWEEP_BATCH_SIZE: int = _env_int("SELLSYNC_SWEEP_BATCH_SIZE", 50)

# 错误信息落库最大长度
ERROR_MESSAGE_MAX_LENGTH: int = 1000

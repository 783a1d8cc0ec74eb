"""健康检查路由

GET /health: Liveness 检查，永远返回 200。
GET /ready: Readiness 检查，包含 SQLite 连通性、后台扫描状态、磁盘空间。
         profile=vendors 时额外用指定租户的凭证调用 ERP test_auth。
"""

import shutil

import structlog
from fastapi import APIRouter, Query, Request
from sellsync.connectors import ConnectorError
from sellsync.core.models import EffectDomain
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness 检查 -- 永远返回 200"""
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str | None = Query(
        default=None,
        description="core（默认）仅核心检查；vendors 额外探测 ERP 认证",
    ),
    tenant_id: str | None = Query(default=None, description="profile=vendors 时使用的租户"),
):
    """Readiness 检查

    检查项：
    1. sqlite: 数据库连通性
    2. sweeper: running / stopped / disabled
    3. disk_space_mb: 磁盘剩余空间
    4. erp_auth: 根据 profile 决定是否探测
    """
    effective_profile = profile or "core"

    checks = {}
    all_ok = True

    # 1. SQLite 连通性检查
    try:
        store_group = request.app.state.store_group
        cursor = await store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
        checks["sqlite"] = "ok"
    except Exception as e:
        log.warning("ready_sqlite_check_failed", error=str(e))
        checks["sqlite"] = "unavailable"
        all_ok = False

    # 2. 后台扫描
    sweeper = getattr(request.app.state, "sweeper", None)
    sweeper_enabled = getattr(request.app.state, "sweeper_enabled", False)
    if sweeper is None or not sweeper_enabled:
        checks["sweeper"] = "disabled"
    elif sweeper.is_running:
        checks["sweeper"] = "running"
    else:
        checks["sweeper"] = "stopped"
        all_ok = False

    # 3. 磁盘空间检查
    try:
        disk_usage = shutil.disk_usage("/")
        checks["disk_space_mb"] = disk_usage.free // (1024 * 1024)
    except OSError:
        checks["disk_space_mb"] = 0
        all_ok = False

    # 4. 厂商认证
    if effective_profile == "vendors" and tenant_id:
        erp_client = getattr(request.app.state, "erp_client", None)
        credential_provider = getattr(request.app.state, "credential_provider", None)
        if erp_client is None or credential_provider is None:
            checks["erp_auth"] = "skipped"
        else:
            try:
                credentials = await credential_provider.resolve(tenant_id, EffectDomain.ERP_POSTING)
                checks["erp_auth"] = "ok" if await erp_client.test_auth(credentials) else "failed"
            except ConnectorError as e:
                log.warning("erp_auth_check_error", tenant_id=tenant_id, error=str(e))
                checks["erp_auth"] = "failed"
            if checks["erp_auth"] != "ok":
                all_ok = False
    else:
        checks["erp_auth"] = "skipped"

    status_code = 200 if all_ok else 503
    status_text = "ready" if all_ok else "not_ready"

    return JSONResponse(
        status_code=status_code,
        content={
            "status": status_text,
            "profile": effective_profile,
            "checks": checks,
        },
    )

"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 厂商组件初始化 + 后台扫描 + 路由注册。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import httpx
import structlog
from fastapi import FastAPI
from sellsync.connectors import (
    ECOUNT_VENDOR,
    MOCK_VENDOR,
    CachedSessionProvider,
    ConnectorConfig,
    CredentialProvider,
    EcountErpClient,
    EffectExecutor,
    MockCarrierClient,
    MockErpClient,
    MockMarketplaceClient,
    SmartStoreClient,
    SqliteSessionCache,
    StaticCredentialProvider,
    VendorCredentials,
    build_effect_clients,
    load_connector_config,
    mock_login,
)
from sellsync.core.config import get_db_path
from sellsync.core.guard import ConcurrencyGuard, lease_covering
from sellsync.core.resolver import IdempotencyResolver
from sellsync.core.store import StoreGroup, create_store_group

from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import effects, health, sync_jobs
from .services.effect_service import EffectService
from .services.retry_sweeper import RetrySweeper, load_sweeper_config

log = structlog.get_logger()


def build_credential_provider(connector_config: ConnectorConfig) -> CredentialProvider:
    """mock 模式下未配置的租户回退到 mock 凭证"""
    fallback = (
        VendorCredentials(vendor=MOCK_VENDOR)
        if connector_config.connector_mode == "mock"
        else None
    )
    if connector_config.credentials_file:
        return StaticCredentialProvider.from_file(connector_config.credentials_file, fallback=fallback)
    return StaticCredentialProvider(fallback=fallback)


def init_engine(
    app: FastAPI,
    store_group: StoreGroup,
    connector_config: ConnectorConfig,
    http_client: httpx.AsyncClient,
    credential_provider: CredentialProvider | None = None,
) -> EffectService:
    """组装厂商客户端、会话、执行器与服务，写入 app.state"""
    if connector_config.connector_mode == "live":
        erp_client = EcountErpClient(
            http_client,
            zone_url=connector_config.ecount_zone_url,
            lan_type=connector_config.ecount_lan_type,
            timeout_s=connector_config.timeout_s,
        )
        marketplace_client = SmartStoreClient(
            http_client,
            base_url=connector_config.smartstore_base_url,
            client_id=connector_config.smartstore_client_id,
            client_secret=connector_config.smartstore_client_secret.get_secret_value(),
            timeout_s=connector_config.timeout_s,
        )
        issuers = {ECOUNT_VENDOR: erp_client.login}
    else:
        erp_client = MockErpClient()
        marketplace_client = MockMarketplaceClient()
        issuers = {MOCK_VENDOR: mock_login}
    # 运单签发暂无真实物流商接入
    carrier_client = MockCarrierClient()

    session_provider = CachedSessionProvider(
        SqliteSessionCache(store_group.conn),
        issuers=issuers,
        ttl=timedelta(seconds=connector_config.session_ttl_s),
    )
    executor = EffectExecutor(
        build_effect_clients(erp_client, marketplace_client, carrier_client),
        session_provider=session_provider,
        timeout_s=connector_config.timeout_s,
    )
    lease_s = lease_covering(executor.max_run_s)
    service = EffectService(
        store_group,
        executor,
        guard=ConcurrencyGuard(store_group, lease_s=lease_s),
        resolver=IdempotencyResolver(store_group),
    )

    app.state.erp_client = erp_client
    app.state.session_provider = session_provider
    app.state.effect_service = service
    app.state.claim_lease_s = lease_s
    app.state.credential_provider = credential_provider or build_credential_provider(
        connector_config
    )
    log.info(
        "effect_engine_initialized",
        mode=connector_config.connector_mode,
        timeout_s=connector_config.timeout_s,
        claim_lease_s=lease_s,
    )
    return service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和厂商组件，关闭时清理连接"""
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group

    connector_config = load_connector_config()
    app.state.connector_config = connector_config
    http_client = httpx.AsyncClient()
    app.state.http_client = http_client

    service = init_engine(app, store_group, connector_config, http_client)

    sweeper_config = load_sweeper_config()
    sweeper = RetrySweeper(
        service,
        store_group,
        app.state.credential_provider,
        sweeper_config=sweeper_config,
    )
    app.state.sweeper = sweeper
    app.state.sweeper_enabled = sweeper_config.enabled
    if sweeper_config.enabled:
        sweeper.start()

    yield

    await sweeper.stop()
    await http_client.aclose()
    await store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="SellSync Effect Gateway",
        version="0.1.0",
        description="ERP 过账 / 运单 / 物流回传 / 订单同步的幂等执行 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    setup_logging()
    setup_logfire(app)

    app.include_router(effects.router, tags=["effects"])
    app.include_router(sync_jobs.router, tags=["sync-jobs"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()

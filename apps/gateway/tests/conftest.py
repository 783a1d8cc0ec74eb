"""apps/gateway 测试配置 -- 手动初始化 app.state（绕过 lifespan）"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sellsync.connectors import ConnectorConfig
from sellsync.core.store import StoreGroup, create_store_group


class FakeClock:
    """可手动推进的时间源"""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))


@pytest_asyncio.fixture
async def store_group(tmp_path: Path) -> AsyncGenerator[StoreGroup, None]:
    group = await create_store_group(str(tmp_path / "sqlite" / "gateway.db"))
    yield group
    await group.conn.close()


@pytest_asyncio.fixture
async def app(store_group: StoreGroup):
    """mock 连接模式的 app，组件由 init_engine 装配"""
    from sellsync.gateway.main import create_app, init_engine

    application = create_app()
    http_client = httpx.AsyncClient()
    application.state.store_group = store_group
    init_engine(application, store_group, ConnectorConfig(connector_mode="mock"), http_client)

    yield application

    await http_client.aclose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

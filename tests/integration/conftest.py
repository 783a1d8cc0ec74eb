"""集成测试共享 fixture -- 两个 app 实例共享同一个 SQLite 文件"""

from collections.abc import AsyncGenerator
from pathlib import Path

import httpx
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sellsync.connectors import ConnectorConfig
from sellsync.core.store import StoreGroup, create_store_group, open_connection


class Instance:
    """一个 gateway 实例：app + 独立连接 + 测试客户端"""

    def __init__(self, app, store_group: StoreGroup, client: AsyncClient) -> None:
        self.app = app
        self.store_group = store_group
        self.client = client

    @property
    def erp(self):
        return self.app.state.erp_client


async def _start_instance(store_group: StoreGroup) -> tuple:
    from sellsync.gateway.main import create_app, init_engine

    app = create_app()
    http_client = httpx.AsyncClient()
    app.state.store_group = store_group
    init_engine(app, store_group, ConnectorConfig(connector_mode="mock"), http_client)
    client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
    return Instance(app, store_group, client), http_client


@pytest_asyncio.fixture
async def instances(tmp_path: Path) -> AsyncGenerator[tuple[Instance, Instance], None]:
    """实例 A 负责建表，实例 B 打开同一数据库文件"""
    db_path = str(tmp_path / "shared.db")
    group_a = await create_store_group(db_path)
    group_b = StoreGroup(await open_connection(db_path))

    instance_a, http_a = await _start_instance(group_a)
    instance_b, http_b = await _start_instance(group_b)

    yield instance_a, instance_b

    for instance, http_client in ((instance_a, http_a), (instance_b, http_b)):
        await instance.client.aclose()
        await http_client.aclose()
        await instance.store_group.conn.close()

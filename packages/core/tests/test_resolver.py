"""IdempotencyResolver 测试

测试内容：
1. 同一自然键只创建一条记录
2. 缺省可选字段与显式 None 视为同一键
3. 多连接并发 create_or_get 只产生一行
4. 唯一约束竞争后透明返回胜者
"""

import asyncio
from pathlib import Path

import pytest
from sellsync.core.exceptions import EffectValidationError
from sellsync.core.models import EffectDomain, EffectStatus, NaturalKey
from sellsync.core.resolver import IdempotencyResolver
from sellsync.core.store import StoreGroup, open_connection


def _push_key(order_id: str = "order42", tenant_id: str = "tenant1") -> NaturalKey:
    return NaturalKey(
        domain=EffectDomain.MARKET_PUSH,
        tenant_id=tenant_id,
        key_fields={"order_id": order_id, "tracking_no": "TRK-1"},
    )


async def _count_rows(store_group: StoreGroup, table: str) -> int:
    cursor = await store_group.conn.execute(f"SELECT COUNT(*) FROM {table}")
    row = await cursor.fetchone()
    return row[0]


class TestCreateOrGet:
    async def test_create_then_get(self, store_group, clock):
        resolver = IdempotencyResolver(store_group, clock=clock)

        effect, created = await resolver.create_or_get(_push_key(), {"carrier_code": "CJ"})
        assert created is True
        assert effect.status == EffectStatus.INITIAL
        assert effect.attempt_count == 0
        assert effect.request_payload == {"carrier_code": "CJ"}
        assert effect.trace_id == f"trace-{effect.effect_id}"

        again, created = await resolver.create_or_get(_push_key(), {"carrier_code": "OTHER"})
        assert created is False
        assert again.effect_id == effect.effect_id
        # 已存在的记录不被后来的 payload 覆盖
        assert again.request_payload == {"carrier_code": "CJ"}
        assert await _count_rows(store_group, "market_pushes") == 1

    async def test_tenants_are_isolated(self, store_group):
        resolver = IdempotencyResolver(store_group)
        a, _ = await resolver.create_or_get(_push_key(tenant_id="tenant1"))
        b, created = await resolver.create_or_get(_push_key(tenant_id="tenant2"))
        assert created is True
        assert a.effect_id != b.effect_id

    async def test_tenant_whitespace_is_same_partition(self, store_group):
        resolver = IdempotencyResolver(store_group)
        a, _ = await resolver.create_or_get(_push_key(tenant_id="tenant1"))
        b, created = await resolver.create_or_get(_push_key(tenant_id=" tenant1 "))
        assert created is False
        assert b.effect_id == a.effect_id
        assert b.tenant_id == "tenant1"
        assert await _count_rows(store_group, "market_pushes") == 1

    async def test_get_does_not_create(self, store_group):
        resolver = IdempotencyResolver(store_group)
        assert await resolver.get(_push_key()) is None
        assert await _count_rows(store_group, "market_pushes") == 0

    async def test_omitted_optional_field_collides_with_none(self, store_group):
        resolver = IdempotencyResolver(store_group)
        first, _ = await resolver.create_or_get(
            NaturalKey(
                domain=EffectDomain.ORDER_SYNC,
                tenant_id="tenant1",
                key_fields={"store_id": None, "trigger_type": "manual", "range_hash": "h1"},
            )
        )
        second, created = await resolver.create_or_get(
            NaturalKey(
                domain=EffectDomain.ORDER_SYNC,
                tenant_id="tenant1",
                key_fields={"trigger_type": "manual", "range_hash": "h1"},
            )
        )
        assert created is False
        assert second.effect_id == first.effect_id
        assert second.key_fields["store_id"] is None

    async def test_empty_tenant_rejected(self, store_group):
        resolver = IdempotencyResolver(store_group)
        with pytest.raises(EffectValidationError):
            await resolver.create_or_get(_push_key(tenant_id=""))
        assert await _count_rows(store_group, "market_pushes") == 0

    async def test_non_object_payload_rejected(self, store_group):
        resolver = IdempotencyResolver(store_group)
        with pytest.raises(EffectValidationError):
            await resolver.create_or_get(_push_key(), ["not", "an", "object"])

    async def test_missing_key_field_rejected(self, store_group):
        resolver = IdempotencyResolver(store_group)
        key = NaturalKey(
            domain=EffectDomain.MARKET_PUSH,
            tenant_id="tenant1",
            key_fields={"order_id": "order42"},
        )
        with pytest.raises(EffectValidationError):
            await resolver.create_or_get(key)


class TestConcurrentCreate:
    async def test_concurrent_connections_create_one_row(self, store_group, core_db_path: Path):
        """多个独立连接并发 create_or_get 同一键：一行，所有调用方拿到同一 id"""
        conns = [await open_connection(str(core_db_path)) for _ in range(6)]
        try:
            resolvers = [IdempotencyResolver(StoreGroup(conn)) for conn in conns]
            results = await asyncio.gather(
                *(r.create_or_get(_push_key(), {"carrier_code": "CJ"}) for r in resolvers)
            )
        finally:
            for conn in conns:
                await conn.close()

        ids = {effect.effect_id for effect, _ in results}
        assert len(ids) == 1
        assert sum(1 for _, created in results if created) == 1
        assert await _count_rows(store_group, "market_pushes") == 1

    async def test_integrity_conflict_returns_winner(self, store_group, monkeypatch):
        """预检查未看到已存在记录时，唯一约束拒绝插入并回查胜者"""
        resolver = IdempotencyResolver(store_group)
        winner, _ = await resolver.create_or_get(_push_key())

        store = store_group.effects(EffectDomain.MARKET_PUSH)
        original_lookup = store.get_by_natural_key
        call_count = 0

        async def race_like_lookup(key):
            nonlocal call_count
            call_count += 1
            # 第一次查询模拟并发窗口
            if call_count == 1:
                return None
            return await original_lookup(key)

        monkeypatch.setattr(store, "get_by_natural_key", race_like_lookup)

        effect, created = await resolver.create_or_get(_push_key())
        assert created is False
        assert effect.effect_id == winner.effect_id
        assert call_count == 2
        assert await _count_rows(store_group, "market_pushes") == 1

"""EffectService 测试

测试内容：
1. SUCCESS 记录再次执行不调用厂商
2. 物流回传连续失败按 1/5/15/60/180 分钟退避，第 6 次失败后停止自动重试
3. 乐观认领未成功时原样返回，悲观锁超时快速失败
4. 人工重新入队
5. 会话刷新产生的两条尝试按序编号
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sellsync.connectors import (
    CachedSessionProvider,
    EffectExecutor,
    ExternalApiError,
    InMemorySessionCache,
    MockCarrierClient,
    MockErpClient,
    MockMarketplaceClient,
    VendorCredentials,
    build_effect_clients,
    mock_login,
)
from sellsync.core.exceptions import ClaimTimeoutError, EffectNotFoundError, StateConflictError
from sellsync.core.guard import ConcurrencyGuard
from sellsync.core.models import (
    AttemptOutcome,
    ClaimMode,
    EffectDomain,
    EffectStatus,
    NaturalKey,
)
from sellsync.core.retry import BackoffTableRetryPolicy, FixedDelayRetryPolicy
from sellsync.gateway.services.effect_service import EffectService

CREDS = VendorCredentials(vendor="mock", scope="COM001")
PUSH_KEY = NaturalKey(
    domain=EffectDomain.MARKET_PUSH,
    tenant_id="tenant1",
    key_fields={"order_id": "order42", "tracking_no": "TRK-1"},
)
PUSH_PAYLOAD = {"marketplace_order_id": "2026030112345", "carrier_code": "CJGLS"}
ERP_KEY = NaturalKey(
    domain=EffectDomain.ERP_POSTING,
    tenant_id="tenant1",
    key_fields={
        "erp_code": "ECOUNT",
        "marketplace": "smartstore",
        "marketplace_order_id": "order42",
        "posting_type": "SALE",
    },
)


class Vendors:
    def __init__(self) -> None:
        self.erp = MockErpClient()
        self.marketplace = MockMarketplaceClient()
        self.carrier = MockCarrierClient()


@pytest.fixture
def vendors() -> Vendors:
    return Vendors()


@pytest_asyncio.fixture
async def service(store_group, vendors, clock) -> EffectService:
    executor = EffectExecutor(
        build_effect_clients(vendors.erp, vendors.marketplace, vendors.carrier),
        session_provider=CachedSessionProvider(
            InMemorySessionCache(clock=clock), {"mock": mock_login}
        ),
        clock=clock,
    )
    return EffectService(
        store_group,
        executor,
        guard=ConcurrencyGuard(store_group, lock_wait_s=0.2, clock=clock),
        policies={
            EffectDomain.MARKET_PUSH: BackoffTableRetryPolicy.from_minutes([1, 5, 15, 60, 180]),
            EffectDomain.ERP_POSTING: FixedDelayRetryPolicy(3, timedelta(minutes=10)),
            EffectDomain.SHIPMENT_LABEL: FixedDelayRetryPolicy(3, timedelta(minutes=10)),
            EffectDomain.ORDER_SYNC: FixedDelayRetryPolicy(3, timedelta(minutes=10)),
        },
        clock=clock,
    )


class TestExecute:
    async def test_success_then_noop(self, service, vendors):
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)

        first = await service.execute(EffectDomain.MARKET_PUSH, effect.effect_id, CREDS)
        assert first.status == EffectStatus.SUCCESS
        assert first.status_label == "MARKET_PUSHED"
        assert first.result_id == "TRK-1"

        second = await service.execute(EffectDomain.MARKET_PUSH, effect.effect_id, CREDS)
        assert second.status == EffectStatus.SUCCESS
        assert second.result_id == "TRK-1"
        assert len(vendors.marketplace.pushed) == 1

        attempts = await service.list_attempts(EffectDomain.MARKET_PUSH, effect.effect_id)
        assert [a.outcome for a in attempts] == [AttemptOutcome.SUCCESS]

    async def test_unknown_effect(self, service):
        with pytest.raises(EffectNotFoundError):
            await service.execute(EffectDomain.MARKET_PUSH, "01JNOTEXIST000000000000000", CREDS)

    async def test_push_backoff_schedule(self, service, vendors, clock):
        """连续失败：1m / 5m / 15m / 60m / 180m，第 6 次失败后不再排期"""
        vendors.marketplace.fail_with = ExternalApiError("HTTP_500", "marketplace down")
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)
        domain = EffectDomain.MARKET_PUSH

        for expected_count, minutes in enumerate([1, 5, 15, 60, 180], start=1):
            failed = await service.execute(domain, effect.effect_id, CREDS, mode=ClaimMode.CONDITIONAL)
            assert failed.status == EffectStatus.FAILED
            assert failed.attempt_count == expected_count
            assert failed.next_retry_at == clock() + timedelta(minutes=minutes)
            assert failed.last_error_code == "HTTP_500"

            # 未到期：后台扫描认领不到
            skipped = await service.execute(domain, effect.effect_id, CREDS, mode=ClaimMode.CONDITIONAL)
            assert skipped.attempt_count == expected_count
            assert await service.list_retryable(domain, "tenant1") == []

            clock.advance(minutes=minutes)
            retryable = await service.list_retryable(domain, "tenant1")
            assert [e.effect_id for e in retryable] == [effect.effect_id]

        exhausted = await service.execute(domain, effect.effect_id, CREDS, mode=ClaimMode.CONDITIONAL)
        assert exhausted.status == EffectStatus.FAILED
        assert exhausted.attempt_count == 6
        assert exhausted.next_retry_at is None

        exceeded = await service.list_max_retry_exceeded(domain, "tenant1")
        assert [e.effect_id for e in exceeded] == [effect.effect_id]
        attempts = await service.list_attempts(domain, effect.effect_id)
        assert [a.attempt_number for a in attempts] == [1, 2, 3, 4, 5, 6]

    async def test_conditional_skips_claimed_effect(self, service, store_group, vendors):
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)
        guard = ConcurrencyGuard(store_group)
        await guard.acquire_lock(EffectDomain.MARKET_PUSH, effect.effect_id, "other-instance")

        result = await service.execute(
            EffectDomain.MARKET_PUSH, effect.effect_id, CREDS, mode=ClaimMode.CONDITIONAL
        )
        assert result.status == EffectStatus.INITIAL
        assert vendors.marketplace.pushed == []

    async def test_lock_timeout(self, service, store_group, vendors):
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)
        guard = ConcurrencyGuard(store_group)
        await guard.acquire_lock(EffectDomain.MARKET_PUSH, effect.effect_id, "other-instance")

        with pytest.raises(ClaimTimeoutError) as exc_info:
            await service.execute(EffectDomain.MARKET_PUSH, effect.effect_id, CREDS)
        assert exc_info.value.code == "EFFECT_LOCKED"
        assert vendors.marketplace.pushed == []

    async def test_interactive_execute_of_failed_effect(self, service, vendors):
        """交互式执行不受 next_retry_at 约束"""
        vendors.marketplace.fail_with = ExternalApiError("HTTP_500", "down")
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)
        await service.execute(EffectDomain.MARKET_PUSH, effect.effect_id, CREDS)

        vendors.marketplace.fail_with = None
        result = await service.execute(EffectDomain.MARKET_PUSH, effect.effect_id, CREDS)
        assert result.status == EffectStatus.SUCCESS
        assert result.attempt_count == 1
        assert result.last_error_code is None

    async def test_session_refresh_attempts_numbered(self, service, store_group, clock):
        erp = MockErpClient(responses=[{"Status": "401"}])
        executor = EffectExecutor(
            build_effect_clients(erp, MockMarketplaceClient(), MockCarrierClient()),
            session_provider=CachedSessionProvider(
                InMemorySessionCache(clock=clock), {"mock": mock_login}
            ),
            clock=clock,
        )
        erp_service = EffectService(store_group, executor, clock=clock)
        effect, _ = await erp_service.create_or_get(ERP_KEY, payload={"SaleList": []})

        result = await erp_service.execute(EffectDomain.ERP_POSTING, effect.effect_id, CREDS)

        assert result.status == EffectStatus.SUCCESS
        assert result.status_label == "POSTED"
        assert result.attempt_count == 0
        attempts = await erp_service.list_attempts(EffectDomain.ERP_POSTING, effect.effect_id)
        assert [(a.attempt_number, a.outcome) for a in attempts] == [
            (1, AttemptOutcome.SESSION_EXPIRED),
            (2, AttemptOutcome.SUCCESS),
        ]
        assert len(erp.calls) == 2


class TestRequeue:
    async def test_requeue_failed(self, service, vendors):
        vendors.marketplace.fail_with = ExternalApiError("HTTP_500", "down")
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)
        await service.execute(EffectDomain.MARKET_PUSH, effect.effect_id, CREDS)

        requeued = await service.requeue(EffectDomain.MARKET_PUSH, effect.effect_id)
        assert requeued.status == EffectStatus.INITIAL
        assert requeued.attempt_count == 1
        assert requeued.next_retry_at is None

        stored = await service.get_effect(EffectDomain.MARKET_PUSH, effect.effect_id)
        assert stored.status == EffectStatus.INITIAL
        assert stored.claim_owner is None

    async def test_requeue_initial_conflicts(self, service):
        effect, _ = await service.create_or_get(PUSH_KEY, payload=PUSH_PAYLOAD)
        with pytest.raises(StateConflictError):
            await service.requeue(EffectDomain.MARKET_PUSH, effect.effect_id)

"""EffectService -- 副作用创建 / 执行 / 查询业务逻辑

执行流程：
1. 读取记录，SUCCESS 直接返回（不调用厂商）
2. 准入：交互式请求走悲观锁，后台扫描走乐观认领（未认领到则原样返回）
3. 认领后重新读取，FAILED 记录先 prepare_retry
4. EffectExecutor 调用厂商，结果经状态机得到新记录
5. 新状态 + 尝试台账单事务写回并释放认领
"""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import structlog
from sellsync.connectors import EffectExecutor, ExecutionReport, VendorCredentials
from sellsync.core.exceptions import EffectNotFoundError
from sellsync.core.guard import ConcurrencyGuard
from sellsync.core.models import (
    Attempt,
    ClaimMode,
    Effect,
    EffectDomain,
    EffectStatus,
    NaturalKey,
)
from sellsync.core.resolver import IdempotencyResolver
from sellsync.core.retry import RetryPolicy, default_retry_policies
from sellsync.core.state_machine import mark_failed, mark_success, prepare_retry
from sellsync.core.store import StoreGroup, record_execution, update_effect
from ulid import ULID

log = structlog.get_logger()


class EffectService:
    """副作用业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        executor: EffectExecutor,
        guard: ConcurrencyGuard | None = None,
        resolver: IdempotencyResolver | None = None,
        policies: dict[EffectDomain, RetryPolicy] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._stores = store_group
        self._executor = executor
        self._clock = clock or (lambda: datetime.now(UTC))
        self._guard = guard or ConcurrencyGuard(store_group, clock=self._clock)
        self._resolver = resolver or IdempotencyResolver(store_group, clock=self._clock)
        self._policies = policies or default_retry_policies()

    def policy_for(self, domain: EffectDomain) -> RetryPolicy:
        return self._policies[EffectDomain(domain)]

    async def create_or_get(
        self,
        key: NaturalKey,
        payload: dict[str, Any] | None = None,
        trace_id: str | None = None,
        job_id: str | None = None,
    ) -> tuple[Effect, bool]:
        """按自然键获取或创建，返回 (effect, created)"""
        return await self._resolver.create_or_get(
            key, payload=payload, trace_id=trace_id, job_id=job_id
        )

    async def get_effect(self, domain: EffectDomain, effect_id: str) -> Effect:
        """查询记录

        Raises:
            EffectNotFoundError: 记录不存在
        """
        effect = await self._stores.effects(domain).get_effect(effect_id)
        if effect is None:
            raise EffectNotFoundError(str(domain), effect_id)
        return effect

    async def list_attempts(self, domain: EffectDomain, effect_id: str) -> list[Attempt]:
        await self.get_effect(domain, effect_id)
        return await self._stores.attempts(domain).list_attempts(effect_id)

    async def list_retryable(
        self,
        domain: EffectDomain,
        tenant_id: str,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> list[Effect]:
        """到期可重试的记录，最久逾期优先"""
        return await self._stores.effects(domain).list_retryable(
            tenant_id.strip(),
            now or self._clock(),
            max_attempts=self.policy_for(domain).max_attempts,
            limit=limit,
        )

    async def list_max_retry_exceeded(
        self,
        domain: EffectDomain,
        tenant_id: str,
    ) -> list[Effect]:
        """已用尽自动重试、等待人工处理的记录"""
        return await self._stores.effects(domain).list_max_retry_exceeded(
            tenant_id.strip(),
            max_attempts=self.policy_for(domain).max_attempts,
        )

    async def requeue(self, domain: EffectDomain, effect_id: str) -> Effect:
        """人工重新入队：FAILED -> INITIAL

        Raises:
            EffectNotFoundError: 记录不存在
            StateConflictError: 记录不是 FAILED
            ClaimTimeoutError: 记录正在执行
        """
        effect = await self.get_effect(domain, effect_id)
        claim_token = str(ULID())
        await self._guard.acquire_lock(domain, effect_id, claim_token)
        try:
            current = await self.get_effect(domain, effect_id)
            requeued = prepare_retry(current, self._clock())
            applied = await update_effect(
                self._stores.conn,
                self._stores.effects(domain),
                requeued,
                expected_status=current.status,
                claim_owner=claim_token,
            )
        finally:
            await self._guard.release(domain, effect_id, claim_token)

        if not applied:
            return await self.get_effect(domain, effect_id)
        log.info(
            "effect_requeued",
            domain=domain,
            effect_id=effect_id,
            attempt_count=requeued.attempt_count,
            trace_id=effect.trace_id,
        )
        return requeued

    async def execute(
        self,
        domain: EffectDomain,
        effect_id: str,
        credentials: VendorCredentials,
        mode: ClaimMode = ClaimMode.LOCK,
    ) -> Effect:
        """执行副作用

        Args:
            domain: 业务域
            effect_id: 记录 ID
            credentials: 厂商凭证
            mode: LOCK（交互式，有界等待）或 CONDITIONAL（后台扫描，未认领到则跳过）

        Returns:
            执行后的记录；SUCCESS 记录与未认领到的记录原样返回

        Raises:
            EffectNotFoundError: 记录不存在
            ClaimTimeoutError: LOCK 模式等待超时
            ClaimLostError: 写回时租约已被接管
        """
        domain = EffectDomain(domain)
        effect = await self.get_effect(domain, effect_id)
        if effect.status == EffectStatus.SUCCESS:
            log.info(
                "effect_already_succeeded",
                domain=domain,
                effect_id=effect_id,
                result_id=effect.result_id,
            )
            return effect

        policy = self.policy_for(domain)
        claim_token = str(ULID())
        if ClaimMode(mode) == ClaimMode.LOCK:
            await self._guard.acquire_lock(domain, effect_id, claim_token)
        else:
            claimed = await self._guard.claim(domain, effect_id, claim_token, policy)
            if claimed == 0:
                return await self.get_effect(domain, effect_id)

        released = False
        try:
            current = await self.get_effect(domain, effect_id)
            if current.status == EffectStatus.SUCCESS:
                return current

            expected_status = current.status
            working = current
            if current.status == EffectStatus.FAILED:
                working = prepare_retry(current, self._clock())

            log.info(
                "effect_execution_started",
                domain=domain,
                effect_id=effect_id,
                tenant_id=working.tenant_id,
                attempt_count=working.attempt_count,
                mode=mode,
                trace_id=working.trace_id,
            )
            report = await self._executor.run(working, credentials)
            updated = self._apply_report(working, report, policy)
            attempts = await self._build_attempts(working, report)

            await record_execution(
                self._stores.conn,
                self._stores.effects(domain),
                self._stores.attempts(domain),
                updated,
                expected_status=expected_status,
                claim_owner=claim_token,
                attempts=attempts,
            )
            released = True
        finally:
            if not released:
                await self._guard.release(domain, effect_id, claim_token)

        log.info(
            "effect_execution_completed",
            domain=domain,
            effect_id=effect_id,
            status=updated.status,
            status_label=updated.status_label,
            result_id=updated.result_id,
            attempt_count=updated.attempt_count,
            next_retry_at=updated.next_retry_at.isoformat() if updated.next_retry_at else None,
            vendor_calls=len(attempts),
            session_refreshed=report.session_refreshed,
            trace_id=updated.trace_id,
        )
        return updated

    def _apply_report(
        self,
        effect: Effect,
        report: ExecutionReport,
        policy: RetryPolicy,
    ) -> Effect:
        now = self._clock()
        if report.succeeded:
            return mark_success(effect, report.result_id or "", report.response_payload, now)
        return mark_failed(
            effect,
            report.error_code or "UNKNOWN",
            report.error_message or "",
            policy,
            now,
            response_payload=report.response_payload,
        )

    async def _build_attempts(self, effect: Effect, report: ExecutionReport) -> list[Attempt]:
        """为本次执行的厂商调用编号"""
        next_number = await self._stores.attempts(effect.domain).next_attempt_number(
            effect.effect_id
        )
        return [
            Attempt(
                attempt_id=str(ULID()),
                effect_id=effect.effect_id,
                attempt_number=next_number + offset,
                outcome=record.outcome,
                request_snapshot=record.request_snapshot,
                response_snapshot=record.response_snapshot,
                error_code=record.error_code,
                error_message=record.error_message,
                duration_ms=record.duration_ms,
                trace_id=effect.trace_id,
                job_id=effect.job_id,
                attempted_at=record.attempted_at,
            )
            for offset, record in enumerate(report.attempts)
        ]

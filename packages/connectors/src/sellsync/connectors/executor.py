"""EffectExecutor -- 外部副作用执行器

职责：
1. 按业务域选择 EffectClient，带超时执行厂商调用
2. 失败分类：超时 / 不可达 / 业务失败 / 会话失效
3. 会话失效时失效该租户 + 凭证作用域的会话，用新会话透明重试恰好一次
4. 每次厂商调用产生一条 AttemptRecord（脱敏快照 + 耗时）

执行器不修改 Effect 状态，只返回 ExecutionReport，由上层走状态机并落库。
透明重试不消耗退避重试预算。
"""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sellsync.core.models import AttemptOutcome, Effect, EffectDomain

from .exceptions import ConnectorError, ExternalApiError, SessionExpiredError
from .models import AttemptRecord, ExecutionReport, SubmitResult, VendorCredentials
from .protocols import EffectClient
from .redact import redact
from .session import SessionProvider

log = structlog.get_logger()

TIMEOUT_CODE = "TIMEOUT"
# 首次调用 + 会话刷新后的一次重试
MAX_INVOCATIONS = 2
UNEXPECTED_CODE = "UNEXPECTED_ERROR"


class EffectExecutor:
    """外部副作用执行器"""

    def __init__(
        self,
        clients: dict[EffectDomain, EffectClient],
        session_provider: SessionProvider | None = None,
        timeout_s: float = 30.0,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Args:
            clients: 业务域 -> EffectClient
            session_provider: 会话提供者（requires_session 的客户端必需）
            timeout_s: 单次厂商调用（含会话获取）的截止时间（秒）
            clock: 时间源
        """
        self._clients = clients
        self._session_provider = session_provider
        self._timeout_s = timeout_s
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def max_run_s(self) -> float:
        """一次 run 的最长耗时（秒），认领租约必须大于它"""
        return self._timeout_s * MAX_INVOCATIONS

    def client_for(self, domain: EffectDomain) -> EffectClient:
        client = self._clients.get(domain)
        if client is None:
            raise ConnectorError(f"业务域 {domain} 未配置厂商客户端", recoverable=False)
        if client.requires_session and self._session_provider is None:
            raise ConnectorError(f"业务域 {domain} 需要会话提供者", recoverable=False)
        return client

    async def run(self, effect: Effect, credentials: VendorCredentials) -> ExecutionReport:
        """执行一次外部副作用

        Args:
            effect: 已认领的副作用记录（状态为 INITIAL）
            credentials: 厂商凭证

        Returns:
            ExecutionReport，attempts 含本次全部厂商调用
        """
        client = self.client_for(effect.domain)
        attempts: list[AttemptRecord] = []
        session_refreshed = False

        while True:
            record, result, error = await self._invoke(client, effect, credentials)
            attempts.append(record)

            if result is not None:
                log.info(
                    "effect_vendor_call_succeeded",
                    effect_id=effect.effect_id,
                    domain=effect.domain,
                    result_id=result.result_id,
                    duration_ms=record.duration_ms,
                    session_refreshed=session_refreshed,
                )
                return ExecutionReport(
                    succeeded=True,
                    result_id=result.result_id,
                    response_payload=result.response_payload,
                    session_refreshed=session_refreshed,
                    attempts=attempts,
                )

            if (
                isinstance(error, SessionExpiredError)
                and client.requires_session
                and not session_refreshed
            ):
                # 会话失效：失效缓存后用新会话重试一次
                await self._session_provider.invalidate(effect.tenant_id, credentials.scope)
                session_refreshed = True
                log.info(
                    "effect_session_refreshed_retrying",
                    effect_id=effect.effect_id,
                    tenant_id=effect.tenant_id,
                    scope=credentials.scope,
                )
                continue

            log.warning(
                "effect_vendor_call_failed",
                effect_id=effect.effect_id,
                domain=effect.domain,
                error_code=error.code,
                error=error.vendor_message,
                duration_ms=record.duration_ms,
                session_refreshed=session_refreshed,
            )
            return ExecutionReport(
                succeeded=False,
                response_payload=error.response_payload,
                error_code=error.code,
                error_message=error.vendor_message,
                session_refreshed=session_refreshed,
                attempts=attempts,
            )

    async def _invoke(
        self,
        client: EffectClient,
        effect: Effect,
        credentials: VendorCredentials,
    ) -> tuple[AttemptRecord, SubmitResult | None, ExternalApiError | None]:
        """单次厂商调用（含会话获取），所有失败都转为 ExternalApiError"""
        attempted_at = self._clock()
        start_time = time.monotonic()
        result: SubmitResult | None = None
        error: ExternalApiError | None = None

        try:
            result = await asyncio.wait_for(
                self._call(client, effect, credentials),
                timeout=self._timeout_s,
            )
        except TimeoutError as e:
            error = ExternalApiError(TIMEOUT_CODE, f"厂商调用超过 {self._timeout_s}s 未返回")
            error.__cause__ = e
        except ExternalApiError as e:
            error = e
        except Exception as e:
            log.exception(
                "effect_vendor_call_unexpected_error",
                effect_id=effect.effect_id,
                domain=effect.domain,
            )
            error = ExternalApiError(UNEXPECTED_CODE, repr(e))

        duration_ms = int((time.monotonic() - start_time) * 1000)

        if result is not None:
            record = AttemptRecord(
                outcome=AttemptOutcome.SUCCESS,
                request_snapshot=redact(result.request_snapshot or effect.request_payload),
                response_snapshot=redact(result.response_payload),
                duration_ms=duration_ms,
                attempted_at=attempted_at,
            )
        else:
            record = AttemptRecord(
                outcome=self._outcome_for(error),
                request_snapshot=redact(effect.request_payload),
                response_snapshot=redact(error.response_payload) if error.response_payload else None,
                error_code=error.code,
                error_message=error.vendor_message,
                duration_ms=duration_ms,
                attempted_at=attempted_at,
            )
        return record, result, error

    async def _call(
        self,
        client: EffectClient,
        effect: Effect,
        credentials: VendorCredentials,
    ) -> SubmitResult:
        session_token = None
        if client.requires_session:
            session_token = await self._session_provider.get_token(
                effect.tenant_id, credentials
            )
        return await client.perform(effect, credentials, session_token)

    @staticmethod
    def _outcome_for(error: ExternalApiError) -> AttemptOutcome:
        if isinstance(error, SessionExpiredError):
            return AttemptOutcome.SESSION_EXPIRED
        if error.code == TIMEOUT_CODE:
            return AttemptOutcome.TIMEOUT
        return AttemptOutcome.FAILED

"""RetrySweeper -- 后台重试扫描

每一轮遍历所有业务域与有到期记录的租户：
先提交尚未执行的 INITIAL 记录，再提交到期的 FAILED 记录，
全部走乐观认领，其他实例已认领的记录静默跳过。
单条记录的异常只记录日志，不中断本轮扫描。
"""

import asyncio
import contextlib
import os
from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from pydantic import BaseModel, Field
from sellsync.connectors import CredentialProvider, CredentialsMissingError
from sellsync.core import config
from sellsync.core.models import ClaimMode, EffectDomain, EffectStatus
from sellsync.core.store import StoreGroup

from .effect_service import EffectService

log = structlog.get_logger()


class SweeperConfig(BaseModel):
    """后台扫描配置

    环境变量:
        SELLSYNC_SWEEP_ENABLED: true / false（默认 false）
        SELLSYNC_SWEEP_INTERVAL_S / SELLSYNC_SWEEP_BATCH_SIZE
    """

    enabled: bool = Field(default=False, description="是否在启动时运行后台扫描")
    interval_s: float = Field(default=config.SWEEP_INTERVAL_S, gt=0, description="扫描间隔（秒）")
    batch_size: int = Field(default=config.SWEEP_BATCH_SIZE, ge=1, description="每个租户每轮最多处理的记录数")


def load_sweeper_config() -> SweeperConfig:
    enabled = os.environ.get("SELLSYNC_SWEEP_ENABLED", "false").lower() in ("1", "true", "yes")
    return SweeperConfig(enabled=enabled)


class SweepReport(BaseModel):
    """单轮扫描统计"""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: int = 0


class RetrySweeper:
    """后台重试扫描器"""

    def __init__(
        self,
        service: EffectService,
        store_group: StoreGroup,
        credential_provider: CredentialProvider,
        sweeper_config: SweeperConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._service = service
        self._stores = store_group
        self._credentials = credential_provider
        self._config = sweeper_config or SweeperConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task | None = None
        self.last_sweep_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> SweepReport:
        """执行一轮扫描"""
        report = SweepReport()
        now = self._clock()

        for domain in EffectDomain:
            store = self._stores.effects(domain)
            for tenant_id in await store.list_due_tenants(now):
                try:
                    credentials = await self._credentials.resolve(tenant_id, domain)
                except CredentialsMissingError:
                    log.warning("sweep_credentials_missing", domain=domain, tenant_id=tenant_id)
                    continue

                pending = await store.list_pending(tenant_id, now, limit=self._config.batch_size)
                retryable = await self._service.list_retryable(
                    domain, tenant_id, now=now, limit=self._config.batch_size
                )
                for effect in [*pending, *retryable]:
                    report.processed += 1
                    try:
                        result = await self._service.execute(
                            domain,
                            effect.effect_id,
                            credentials,
                            mode=ClaimMode.CONDITIONAL,
                        )
                    except Exception:
                        report.errors += 1
                        log.exception(
                            "sweep_effect_failed",
                            domain=domain,
                            tenant_id=tenant_id,
                            effect_id=effect.effect_id,
                        )
                        continue

                    if (result.status, result.attempt_count) == (effect.status, effect.attempt_count):
                        report.skipped += 1
                    elif result.status == EffectStatus.SUCCESS:
                        report.succeeded += 1
                    else:
                        report.failed += 1

        self.last_sweep_at = now
        log.info("retry_sweep_completed", **report.model_dump())
        return report

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run())
        log.info("retry_sweeper_started", interval_s=self._config.interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        log.info("retry_sweeper_stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except Exception:
                log.exception("retry_sweep_pass_failed")
            await asyncio.sleep(self._config.interval_s)

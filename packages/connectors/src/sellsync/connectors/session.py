"""会话缓存与会话提供者

SessionCache: 按 tenant + scope 缓存厂商会话令牌，带 TTL
- InMemorySessionCache: 单进程使用
- SqliteSessionCache: 共享存储，任一实例失效会话对所有实例可见
CachedSessionProvider: 缓存未命中时调用 issuer 登录签发新会话
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import aiosqlite
import structlog
from sellsync.core.store import format_ts, parse_ts

from .models import VendorCredentials

log = structlog.get_logger()

# 会话签发函数：凭证 -> 会话令牌
SessionIssuer = Callable[[VendorCredentials], Awaitable[str]]


class SessionCache(Protocol):
    """会话缓存接口"""

    async def get(self, tenant_id: str, scope: str) -> str | None:
        """获取未过期的会话令牌"""
        ...

    async def put(self, tenant_id: str, scope: str, token: str, ttl: timedelta) -> None:
        """写入会话令牌"""
        ...

    async def invalidate(self, tenant_id: str, scope: str | None = None) -> None:
        """失效会话；scope 为 None 时失效该租户的全部会话"""
        ...


class InMemorySessionCache:
    """进程内会话缓存"""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._entries: dict[tuple[str, str], tuple[str, datetime]] = {}
        self._clock = clock or (lambda: datetime.now(UTC))

    async def get(self, tenant_id: str, scope: str) -> str | None:
        entry = self._entries.get((tenant_id, scope))
        if entry is None:
            return None
        token, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop((tenant_id, scope), None)
            return None
        return token

    async def put(self, tenant_id: str, scope: str, token: str, ttl: timedelta) -> None:
        self._entries[(tenant_id, scope)] = (token, self._clock() + ttl)

    async def invalidate(self, tenant_id: str, scope: str | None = None) -> None:
        if scope is not None:
            self._entries.pop((tenant_id, scope), None)
            return
        for key in [k for k in self._entries if k[0] == tenant_id]:
            del self._entries[key]


class SqliteSessionCache:
    """基于 vendor_sessions 表的共享会话缓存"""

    def __init__(
        self,
        conn: aiosqlite.Connection,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._conn = conn
        self._clock = clock or (lambda: datetime.now(UTC))

    async def get(self, tenant_id: str, scope: str) -> str | None:
        cursor = await self._conn.execute(
            """
            SELECT token FROM vendor_sessions
            WHERE tenant_id = ? AND scope = ? AND expires_at > ?
            """,
            (tenant_id, scope, format_ts(self._clock())),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def put(self, tenant_id: str, scope: str, token: str, ttl: timedelta) -> None:
        now = self._clock()
        try:
            await self._conn.execute(
                """
                INSERT INTO vendor_sessions (tenant_id, scope, token, expires_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (tenant_id, scope) DO UPDATE
                SET token = excluded.token,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (tenant_id, scope, token, format_ts(now + ttl), format_ts(now)),
            )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise

    async def invalidate(self, tenant_id: str, scope: str | None = None) -> None:
        try:
            if scope is None:
                await self._conn.execute(
                    "DELETE FROM vendor_sessions WHERE tenant_id = ?",
                    (tenant_id,),
                )
            else:
                await self._conn.execute(
                    "DELETE FROM vendor_sessions WHERE tenant_id = ? AND scope = ?",
                    (tenant_id, scope),
                )
            await self._conn.commit()
        except Exception:
            await self._conn.rollback()
            raise

    async def expires_at(self, tenant_id: str, scope: str) -> datetime | None:
        """查询会话到期时间（运维排查用）"""
        cursor = await self._conn.execute(
            "SELECT expires_at FROM vendor_sessions WHERE tenant_id = ? AND scope = ?",
            (tenant_id, scope),
        )
        row = await cursor.fetchone()
        return parse_ts(row[0]) if row else None


class SessionProvider(Protocol):
    """会话提供者接口"""

    async def get_token(self, tenant_id: str, credentials: VendorCredentials) -> str: ...

    async def invalidate(self, tenant_id: str, scope: str | None = None) -> None: ...


class CachedSessionProvider:
    """缓存优先的会话提供者

    issuers 按厂商注册登录函数；缓存未命中时登录并写回缓存。
    """

    def __init__(
        self,
        cache: SessionCache,
        issuers: dict[str, SessionIssuer],
        ttl: timedelta = timedelta(hours=23),
    ) -> None:
        self._cache = cache
        self._issuers = issuers
        self._ttl = ttl

    async def get_token(self, tenant_id: str, credentials: VendorCredentials) -> str:
        token = await self._cache.get(tenant_id, credentials.scope)
        if token:
            return token

        issuer = self._issuers.get(credentials.vendor)
        if issuer is None:
            raise KeyError(f"未注册的会话签发厂商: {credentials.vendor}")

        token = await issuer(credentials)
        await self._cache.put(tenant_id, credentials.scope, token, self._ttl)
        log.info(
            "vendor_session_issued",
            tenant_id=tenant_id,
            vendor=credentials.vendor,
            scope=credentials.scope,
        )
        return token

    async def invalidate(self, tenant_id: str, scope: str | None = None) -> None:
        await self._cache.invalidate(tenant_id, scope)
        log.info("vendor_session_invalidated", tenant_id=tenant_id, scope=scope)

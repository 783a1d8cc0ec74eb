"""租户凭证提供者

凭证文件格式（JSON）:
{
  "tenant1": {
    "erp_posting": {"vendor": "ecount", "scope": "COM001", "values": {"com_code": "...", ...}},
    "market_push": {"vendor": "smartstore", "values": {...}}
  }
}
"""

import json
from pathlib import Path
from typing import Any, Protocol

import structlog
from sellsync.core.models import EffectDomain

from .exceptions import CredentialsMissingError
from .models import VendorCredentials

log = structlog.get_logger()


class CredentialProvider(Protocol):
    """凭证提供者接口"""

    async def resolve(self, tenant_id: str, domain: EffectDomain) -> VendorCredentials:
        """获取租户在某业务域的厂商凭证

        Raises:
            CredentialsMissingError: 未配置凭证
        """
        ...


class StaticCredentialProvider:
    """基于内存映射的凭证提供者

    fallback 非空时，未配置的租户使用该凭证（mock 连接模式）。
    """

    def __init__(
        self,
        credentials: dict[str, dict[EffectDomain, VendorCredentials]] | None = None,
        fallback: VendorCredentials | None = None,
    ) -> None:
        self._credentials = credentials or {}
        self._fallback = fallback

    @classmethod
    def from_mapping(
        cls,
        raw: dict[str, Any],
        fallback: VendorCredentials | None = None,
    ) -> "StaticCredentialProvider":
        parsed: dict[str, dict[EffectDomain, VendorCredentials]] = {}
        for tenant_id, domains in raw.items():
            parsed[tenant_id] = {
                EffectDomain(domain): VendorCredentials.model_validate(entry)
                for domain, entry in domains.items()
            }
        return cls(parsed, fallback=fallback)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        fallback: VendorCredentials | None = None,
    ) -> "StaticCredentialProvider":
        """从 JSON 文件加载；文件不存在时只保留 fallback"""
        file_path = Path(path)
        if not file_path.exists():
            log.warning("credentials_file_not_found", path=str(file_path))
            return cls(fallback=fallback)
        provider = cls.from_mapping(
            json.loads(file_path.read_text(encoding="utf-8")),
            fallback=fallback,
        )
        log.info("credentials_loaded", path=str(file_path), tenants=len(provider._credentials))
        return provider

    def set(self, tenant_id: str, domain: EffectDomain, credentials: VendorCredentials) -> None:
        self._credentials.setdefault(tenant_id, {})[domain] = credentials

    async def resolve(self, tenant_id: str, domain: EffectDomain) -> VendorCredentials:
        credentials = self._credentials.get(tenant_id, {}).get(EffectDomain(domain))
        if credentials is None:
            if self._fallback is not None:
                return self._fallback
            raise CredentialsMissingError(tenant_id, str(domain))
        return credentials

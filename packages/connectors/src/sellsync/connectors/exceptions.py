"""Connectors 异常体系

ExternalApiError 携带厂商错误码与信息，记录到副作用上并可被自动重试；
SessionExpiredError 仅在 EffectExecutor 内部使用，触发一次透明的重新登录重试。
"""


class ConnectorError(Exception):
    """Connectors 包基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class ExternalApiError(ConnectorError):
    """厂商调用失败（已分类），可按退避策略重试"""

    def __init__(
        self,
        code: str,
        message: str,
        response_payload: dict | None = None,
        recoverable: bool = True,
    ) -> None:
        """
        Args:
            code: 厂商错误码（或 TIMEOUT / UNREACHABLE / HTTP_xxx）
            message: 厂商错误信息
            response_payload: 原始响应体（如有）
            recoverable: 是否可重试
        """
        super().__init__(f"[{code}] {message}", recoverable=recoverable)
        self.code = code
        self.vendor_message = message
        self.response_payload = response_payload


class SessionExpiredError(ExternalApiError):
    """厂商会话失效（401 / SESSION_EXPIRED）"""

    def __init__(self, code: str = "401", message: str = "session expired", response_payload: dict | None = None) -> None:
        super().__init__(code, message, response_payload=response_payload)


class VendorUnreachableError(ExternalApiError):
    """厂商不可达（连接失败、超时、DNS 解析失败等）"""

    def __init__(self, url: str, original_error: Exception, code: str = "UNREACHABLE") -> None:
        """
        Args:
            url: 尝试访问的地址（已脱敏）
            original_error: 原始异常
            code: UNREACHABLE 或 TIMEOUT
        """
        super().__init__(code, f"厂商不可达: {url} -- {original_error!r}")
        self.url = url
        self.original_error = original_error


class CredentialsMissingError(ConnectorError):
    """找不到租户的厂商凭证"""

    def __init__(self, tenant_id: str, domain: str) -> None:
        super().__init__(f"租户 {tenant_id} 未配置 {domain} 凭证", recoverable=False)
        self.tenant_id = tenant_id
        self.domain = domain

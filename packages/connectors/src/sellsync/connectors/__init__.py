"""SellSync Connectors -- 厂商调用抽象层

packages/connectors 的公开接口导出。
"""

# 业务域适配
from .adapters import (
    ErpPostingAdapter,
    MarketPushAdapter,
    OrderSyncAdapter,
    ShipmentLabelAdapter,
    build_effect_clients,
)

# 响应分类
from .classifier import classify_vendor_response, detect_failure_body, resolve_submission

# 配置
from .config import ConnectorConfig, load_connector_config
from .credentials import CredentialProvider, StaticCredentialProvider

# 厂商客户端
from .ecount import ECOUNT_VENDOR, EcountErpClient

# 异常
from .exceptions import (
    ConnectorError,
    CredentialsMissingError,
    ExternalApiError,
    SessionExpiredError,
    VendorUnreachableError,
)

# 核心组件
from .executor import EffectExecutor
from .mock import (
    MOCK_VENDOR,
    MockCarrierClient,
    MockErpClient,
    MockMarketplaceClient,
    mock_login,
)

# 数据模型
from .models import (
    AttemptRecord,
    ExecutionReport,
    SubmitResult,
    VendorCredentials,
    VendorVerdict,
)
from .redact import mask_secret, redact
from .session import (
    CachedSessionProvider,
    InMemorySessionCache,
    SessionCache,
    SessionProvider,
    SqliteSessionCache,
)
from .smartstore import SMARTSTORE_VENDOR, SmartStoreClient

__all__ = [
    "AttemptRecord",
    "ExecutionReport",
    "SubmitResult",
    "VendorCredentials",
    "VendorVerdict",
    "EffectExecutor",
    "CachedSessionProvider",
    "InMemorySessionCache",
    "SqliteSessionCache",
    "SessionCache",
    "SessionProvider",
    "CredentialProvider",
    "StaticCredentialProvider",
    "EcountErpClient",
    "SmartStoreClient",
    "MockErpClient",
    "MockMarketplaceClient",
    "MockCarrierClient",
    "mock_login",
    "ErpPostingAdapter",
    "MarketPushAdapter",
    "ShipmentLabelAdapter",
    "OrderSyncAdapter",
    "build_effect_clients",
    "classify_vendor_response",
    "detect_failure_body",
    "resolve_submission",
    "mask_secret",
    "redact",
    "ConnectorConfig",
    "load_connector_config",
    "ConnectorError",
    "ExternalApiError",
    "SessionExpiredError",
    "VendorUnreachableError",
    "CredentialsMissingError",
    "ECOUNT_VENDOR",
    "SMARTSTORE_VENDOR",
    "MOCK_VENDOR",
]

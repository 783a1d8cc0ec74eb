"""packages/connectors 测试配置"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import SecretStr
from sellsync.connectors.models import VendorCredentials
from sellsync.core.models import Effect, EffectDomain


@pytest.fixture
def ecount_credentials() -> VendorCredentials:
    return VendorCredentials(
        vendor="ecount",
        scope="COM001",
        values={
            "com_code": SecretStr("COM001"),
            "user_id": SecretStr("apiuser"),
            "api_key": SecretStr("abcd1234efgh5678ijkl"),
        },
    )


@pytest.fixture
def mock_credentials() -> VendorCredentials:
    return VendorCredentials(vendor="mock", scope="COM001")


@pytest.fixture
def erp_effect() -> Effect:
    now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
    return Effect(
        effect_id="01JTESTERP0000000000000001",
        domain=EffectDomain.ERP_POSTING,
        tenant_id="tenant1",
        key_fields={
            "erp_code": "ECOUNT",
            "marketplace": "smartstore",
            "marketplace_order_id": "order42",
            "posting_type": "SALE",
        },
        request_payload={"SaleList": [{"BulkDatas": {"PROD_CD": "P1", "QTY": "1"}}]},
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def push_effect() -> Effect:
    now = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
    return Effect(
        effect_id="01JTESTPUSH000000000000001",
        domain=EffectDomain.MARKET_PUSH,
        tenant_id="tenant1",
        key_fields={"order_id": "order42", "tracking_no": "TRK-1"},
        request_payload={"marketplace_order_id": "2026030112345", "carrier_code": "CJGLS"},
        created_at=now,
        updated_at=now,
    )


class FakeClock:
    """可手动推进的时间源"""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))

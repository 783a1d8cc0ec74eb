"""中间件测试 -- X-Request-ID / X-Trace-ID 响应头、effect_id 提取、日志脱敏、Logfire 开关"""

import logfire
import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sellsync.gateway.middleware.logging_config import mask_sensitive_fields, setup_logfire
from sellsync.gateway.middleware.trace_mw import extract_effect_id

EFFECT_ID = "01JQ0000000000000000000000"


class TestHeaders:
    async def test_request_id_header(self, client: AsyncClient):
        resp = await client.get("/health")
        assert len(resp.headers["X-Request-ID"]) == 26

    async def test_generated_trace_id(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.headers["X-Trace-ID"].startswith("trace-")

    async def test_trace_id_passthrough(self, client: AsyncClient):
        resp = await client.get("/health", headers={"X-Trace-ID": "trace-abc"})
        assert resp.headers["X-Trace-ID"] == "trace-abc"


class TestExtractEffectId:
    @pytest.mark.parametrize(
        "path,expected",
        [
            (f"/api/effects/market_push/{EFFECT_ID}", EFFECT_ID),
            (f"/api/effects/market_push/{EFFECT_ID}/execute", EFFECT_ID),
            ("/api/effects/market_push/retryable", None),
            ("/api/effects/market_push", None),
            ("/api/sync-jobs", None),
            ("/health", None),
        ],
    )
    def test_paths(self, path, expected):
        assert extract_effect_id(path) == expected


class TestMaskSensitiveFields:
    def test_masks_nested_secrets(self):
        event = {
            "event": "ecount_login_request",
            "SESSION_ID": "raw",
            "request": {"api_key": "k", "com_code": "COM001"},
        }
        masked = mask_sensitive_fields(None, "info", event)
        assert masked["SESSION_ID"] == "***"
        assert masked["request"] == {"api_key": "***", "com_code": "COM001"}
        assert masked["event"] == "ecount_login_request"


class TestSetupLogfire:
    def test_disabled_by_default(self, monkeypatch):
        monkeypatch.delenv("LOGFIRE_SEND_TO_LOGFIRE", raising=False)
        configured = []
        monkeypatch.setattr(logfire, "configure", lambda **kw: configured.append(kw))

        assert setup_logfire(FastAPI()) is False
        assert configured == []

    def test_enabled_instruments_app_and_httpx(self, monkeypatch):
        monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "true")
        calls = []
        monkeypatch.setattr(logfire, "configure", lambda **kw: calls.append(("configure", kw)))
        monkeypatch.setattr(logfire, "instrument_fastapi", lambda app: calls.append(("fastapi", app)))
        monkeypatch.setattr(logfire, "instrument_httpx", lambda: calls.append(("httpx", None)))
        app = FastAPI()

        assert setup_logfire(app) is True
        assert calls == [
            ("configure", {"service_name": "sellsync-gateway"}),
            ("fastapi", app),
            ("httpx", None),
        ]

    def test_init_failure_falls_back_to_local_logs(self, monkeypatch):
        monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "true")

        def broken_configure(**kw):
            raise RuntimeError("missing LOGFIRE_TOKEN")

        monkeypatch.setattr(logfire, "configure", broken_configure)

        assert setup_logfire(FastAPI()) is False

"""副作用路由

POST /api/effects/{domain}: 按自然键 create-or-get（201 新建 / 200 已存在）
GET  /api/effects/{domain}/retryable?tenant_id=: 到期可重试记录
GET  /api/effects/{domain}/exceeded?tenant_id=: 已用尽自动重试的记录
GET  /api/effects/{domain}/{effect_id}: 记录详情
GET  /api/effects/{domain}/{effect_id}/attempts: 尝试台账
POST /api/effects/{domain}/{effect_id}/execute: 执行（默认悲观锁模式）
POST /api/effects/{domain}/{effect_id}/requeue: 人工重新入队
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import BaseModel, Field
from sellsync.connectors import (
    CredentialProvider,
    CredentialsMissingError,
    VendorCredentials,
)
from sellsync.core.exceptions import EffectError
from sellsync.core.models import Attempt, ClaimMode, Effect, EffectDomain, NaturalKey
from starlette.responses import JSONResponse

from ..deps import get_credential_provider, get_effect_service
from ..services.effect_service import EffectService

router = APIRouter()

# 错误码 -> HTTP 状态码
ERROR_STATUS = {
    "EFFECT_NOT_FOUND": 404,
    "STATE_CONFLICT": 409,
    "DUPLICATE_RESULT": 409,
    "EFFECT_LOCKED": 409,
    "CLAIM_LOST": 409,
    "VALIDATION_ERROR": 422,
    "UNKNOWN_DOMAIN": 422,
    "CREDENTIALS_MISSING": 400,
}


class CreateEffectRequest(BaseModel):
    """create-or-get 请求体"""

    tenant_id: str = Field(description="租户标识")
    key_fields: dict[str, str | None] = Field(description="自然键业务字段")
    payload: dict[str, Any] | None = Field(default=None, description="业务 payload")
    job_id: str | None = Field(default=None, description="触发任务 ID")


class ExecuteRequest(BaseModel):
    """执行请求体"""

    mode: ClaimMode = Field(default=ClaimMode.LOCK, description="准入方式")
    credentials: VendorCredentials | None = Field(
        default=None,
        description="临时凭证；缺省时按租户从凭证提供者获取",
    )


def error_response(code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(code, 500),
        content={"error": {"code": code, "message": message}},
    )


def effect_to_dict(effect: Effect) -> dict[str, Any]:
    data = effect.model_dump(mode="json", exclude={"claim_owner", "claim_expires_at"})
    data["status_label"] = effect.status_label
    return data


def attempt_to_dict(attempt: Attempt) -> dict[str, Any]:
    return attempt.model_dump(mode="json")


def parse_domain(domain: str) -> EffectDomain | None:
    try:
        return EffectDomain(domain)
    except ValueError:
        return None


def unknown_domain(domain: str) -> JSONResponse:
    return error_response("UNKNOWN_DOMAIN", f"Unknown effect domain: {domain}")


@router.post("/api/effects/{domain}")
async def create_or_get_effect(
    domain: str,
    body: CreateEffectRequest,
    request: Request,
    service: EffectService = Depends(get_effect_service),
):
    """按自然键获取或创建副作用记录

    - 新建返回 201
    - 自然键已存在返回 200 + 已有记录
    """
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)

    key = NaturalKey(domain=effect_domain, tenant_id=body.tenant_id, key_fields=body.key_fields)
    try:
        effect, created = await service.create_or_get(
            key,
            payload=body.payload,
            trace_id=getattr(request.state, "trace_id", None),
            job_id=body.job_id,
        )
    except EffectError as e:
        return error_response(e.code, str(e))

    return JSONResponse(
        status_code=201 if created else 200,
        content={"effect": effect_to_dict(effect), "created": created},
    )


@router.get("/api/effects/{domain}/retryable")
async def list_retryable(
    domain: str,
    tenant_id: str = Query(description="租户标识"),
    limit: int | None = Query(default=None, ge=1, description="最多返回条数"),
    service: EffectService = Depends(get_effect_service),
):
    """到期可重试的记录，最久逾期优先"""
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)

    effects = await service.list_retryable(effect_domain, tenant_id, limit=limit)
    return {"effects": [effect_to_dict(e) for e in effects]}


@router.get("/api/effects/{domain}/exceeded")
async def list_max_retry_exceeded(
    domain: str,
    tenant_id: str = Query(description="租户标识"),
    service: EffectService = Depends(get_effect_service),
):
    """已用尽自动重试、等待人工处理的记录"""
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)

    effects = await service.list_max_retry_exceeded(effect_domain, tenant_id)
    return {"effects": [effect_to_dict(e) for e in effects]}


@router.get("/api/effects/{domain}/{effect_id}")
async def get_effect(
    domain: str,
    effect_id: str,
    service: EffectService = Depends(get_effect_service),
):
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)

    try:
        effect = await service.get_effect(effect_domain, effect_id)
    except EffectError as e:
        return error_response(e.code, str(e))
    return {"effect": effect_to_dict(effect)}


@router.get("/api/effects/{domain}/{effect_id}/attempts")
async def list_attempts(
    domain: str,
    effect_id: str,
    service: EffectService = Depends(get_effect_service),
):
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)

    try:
        attempts = await service.list_attempts(effect_domain, effect_id)
    except EffectError as e:
        return error_response(e.code, str(e))
    return {"attempts": [attempt_to_dict(a) for a in attempts]}


@router.post("/api/effects/{domain}/{effect_id}/execute")
async def execute_effect(
    domain: str,
    effect_id: str,
    body: ExecuteRequest | None = Body(default=None),
    service: EffectService = Depends(get_effect_service),
    credential_provider: CredentialProvider = Depends(get_credential_provider),
):
    """执行副作用

    - SUCCESS 记录原样返回，不调用厂商
    - 厂商失败记录到副作用上并返回 200 + FAILED 记录
    - 锁等待超时返回 409 EFFECT_LOCKED
    """
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)
    body = body or ExecuteRequest()

    try:
        credentials = body.credentials
        if credentials is None:
            effect = await service.get_effect(effect_domain, effect_id)
            credentials = await credential_provider.resolve(effect.tenant_id, effect_domain)
        effect = await service.execute(effect_domain, effect_id, credentials, mode=body.mode)
    except CredentialsMissingError as e:
        return error_response("CREDENTIALS_MISSING", str(e))
    except EffectError as e:
        return error_response(e.code, str(e))

    return {"effect": effect_to_dict(effect)}


@router.post("/api/effects/{domain}/{effect_id}/requeue")
async def requeue_effect(
    domain: str,
    effect_id: str,
    service: EffectService = Depends(get_effect_service),
):
    """人工重新入队：仅 FAILED 记录可用，其余状态返回 409"""
    effect_domain = parse_domain(domain)
    if effect_domain is None:
        return unknown_domain(domain)

    try:
        effect = await service.requeue(effect_domain, effect_id)
    except EffectError as e:
        return error_response(e.code, str(e))
    return {"effect": effect_to_dict(effect)}

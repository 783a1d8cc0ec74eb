"""订单同步任务路由

POST /api/sync-jobs: 由平台 + 时间区间计算 range_hash，按自然键 create-or-get 同步任务。
同一区间的重复触发得到同一条记录。
"""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sellsync.core.exceptions import EffectError
from sellsync.core.models import EffectDomain, NaturalKey, compute_range_hash
from starlette.responses import JSONResponse

from ..deps import get_effect_service
from ..services.effect_service import EffectService
from .effects import effect_to_dict, error_response

router = APIRouter()


class SyncJobRequest(BaseModel):
    """同步任务请求体"""

    tenant_id: str = Field(description="租户标识")
    marketplace: str = Field(description="平台标识")
    range_start: str = Field(description="区间起点（ISO 时间）")
    range_end: str = Field(description="区间终点（ISO 时间）")
    store_id: str | None = Field(default=None, description="店铺；缺省表示全租户")
    trigger_type: str = Field(default="manual", description="触发方式：manual / scheduled")


@router.post("/api/sync-jobs")
async def create_sync_job(
    body: SyncJobRequest,
    request: Request,
    service: EffectService = Depends(get_effect_service),
):
    """创建或获取同步任务（201 新建 / 200 已存在）"""
    range_hash = compute_range_hash(body.marketplace, body.range_start, body.range_end)
    key = NaturalKey(
        domain=EffectDomain.ORDER_SYNC,
        tenant_id=body.tenant_id,
        key_fields={
            "store_id": body.store_id,
            "trigger_type": body.trigger_type,
            "range_hash": range_hash,
        },
    )
    try:
        effect, created = await service.create_or_get(
            key,
            payload={
                "marketplace": body.marketplace,
                "range_start": body.range_start,
                "range_end": body.range_end,
            },
            trace_id=getattr(request.state, "trace_id", None),
        )
    except EffectError as e:
        return error_response(e.code, str(e))

    return JSONResponse(
        status_code=201 if created else 200,
        content={"effect": effect_to_dict(effect), "created": created},
    )

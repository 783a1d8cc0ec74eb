"""依赖注入模块 -- 通过 FastAPI Depends 注入服务实例

实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Request
from sellsync.connectors import CredentialProvider

from .services.effect_service import EffectService


def get_effect_service(request: Request) -> EffectService:
    """从 app.state 获取 EffectService 实例"""
    return request.app.state.effect_service


def get_credential_provider(request: Request) -> CredentialProvider:
    """从 app.state 获取凭证提供者"""
    return request.app.state.credential_provider

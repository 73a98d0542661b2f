"""
API 依赖注入函数

所有 /v1 路由共用的依赖项：认证上下文、角色校验、租户功能开关、数据库会话。

使用示例：
    @router.post("/journal", dependencies=[Depends(require_feature("diario"))])
    async def create_entry(
        ctx: APIKeyContext = Depends(get_current_context),
        db: AsyncSession = Depends(get_db_session),
    ):
        pass
"""

from fastapi import Depends, HTTPException, status

from radar.auth.api_key import APIKeyContext, get_api_key_context
from radar.db.session import get_db
from radar.models import Tenant


async def get_current_context(context: APIKeyContext = Depends(get_api_key_context)) -> APIKeyContext:
    """当前调用方（API Key + 用户 + 租户）"""
    return context


async def get_tenant(context: APIKeyContext = Depends(get_api_key_context)) -> Tenant:
    return context.tenant


def require_roles(*roles: str):
    """
    角色校验依赖

    示例：Depends(require_roles("admin", "super_admin"))
    """

    async def _checker(context: APIKeyContext = Depends(get_api_key_context)) -> APIKeyContext:
        if context.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "FORBIDDEN", "detail": f"Requires role: {', '.join(roles)}"},
            )
        return context

    return _checker


def require_feature(feature_key: str):
    """租户功能开关依赖，关闭时返回 403 FEATURE_DISABLED"""

    async def _checker(context: APIKeyContext = Depends(get_api_key_context)) -> APIKeyContext:
        if not context.tenant.feature_enabled(feature_key):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "FEATURE_DISABLED", "detail": f"Feature '{feature_key}' is disabled for this tenant"},
            )
        return context

    return _checker


# 重新导出数据库会话获取函数，方便路由模块导入
get_db_session = get_db

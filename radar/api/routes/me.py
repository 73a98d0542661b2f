"""
用户仪表盘接口 (/v1/me)

个人资料、套餐用量和数据导出。所有接口只访问调用方自己的数据。
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session
from radar.auth.api_key import APIKeyContext
from radar.infra.logging import get_logger
from radar.schemas.user import MeResponse, ProfileUpdate, UsageResponse, UserResponse
from radar.services import notifications as notification_service
from radar.services import plans as plan_service
from radar.services import users as user_service

logger = get_logger(__name__)

router = APIRouter()


def _tenant_summary(tenant) -> dict:
    """返回给前端的租户信息（不含内部配置）"""
    return {
        "id": tenant.id,
        "slug": tenant.slug,
        "name": tenant.name,
        "status": tenant.status,
        "branding": tenant.branding or {},
        "features": (tenant.settings or {}).get("features") or {},
    }


@router.get("/v1/me", response_model=MeResponse)
async def get_me(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """当前用户资料 + 租户 + 生效套餐"""
    plan_slug = await plan_service.get_user_plan_slug(db, context.user, context.tenant)
    return MeResponse(
        user=UserResponse.model_validate(context.user),
        tenant=_tenant_summary(context.tenant),
        plan_slug=plan_slug,
    )


@router.patch("/v1/me", response_model=UserResponse)
async def update_me(
    payload: ProfileUpdate,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """
    修改个人资料

    手机号统一规范为纯数字（11 位巴西号码自动补 55），用于 WhatsApp 匹配。
    首次开通 WhatsApp 时发送欢迎模板消息。
    """
    user = context.user
    changes = payload.model_dump(exclude_unset=True)
    if "phone" in changes:
        changes["phone"] = user_service.normalize_phone(changes["phone"])

    opted_in = changes.get("whatsapp_opt_in") is True and not user.whatsapp_opt_in

    for key, value in changes.items():
        setattr(user, key, value)

    if opted_in:
        await notification_service.send_whatsapp_welcome(db, user)

    await db.commit()
    await db.refresh(user)
    return UserResponse.model_validate(user)


@router.get("/v1/me/usage", response_model=UsageResponse)
async def get_my_usage(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """套餐内每个功能今日/本周/本月用量和剩余额度"""
    plan_slug = await plan_service.get_user_plan_slug(db, context.user, context.tenant)
    features = await plan_service.get_usage_summary(db, context.user, plan_slug)
    return UsageResponse(plan_slug=plan_slug, features=features)


@router.get("/v1/me/export")
async def export_my_data(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """导出个人数据（资料、日记、聊天、风险预警、订阅）"""
    data = await user_service.export_user_data(db, context.user)
    logger.info("用户数据已导出", extra={"user_id": context.user.id})
    return data

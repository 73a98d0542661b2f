"""
套餐目录与加购包接口

- GET /v1/plans       : 公开套餐目录（无需认证）
- GET /v1/addons      : 当前套餐可购买的加购包
- GET /v1/addons/mine : 我的有效加购包
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session, require_feature
from radar.auth.api_key import APIKeyContext
from radar.schemas.plan import AddonPurchaseResponse, AddonResponse, PlanFeatureResponse, PlanResponse
from radar.services import addons as addon_service
from radar.services import plans as plan_service

router = APIRouter()


def plan_to_response(plan, features) -> PlanResponse:
    response = PlanResponse.model_validate(plan)
    response.features = [PlanFeatureResponse.model_validate(f) for f in features]
    return response


@router.get("/v1/plans", response_model=list[PlanResponse])
async def list_public_plans(db: AsyncSession = Depends(get_db_session)):
    """可见套餐及其功能额度"""
    catalog = await plan_service.list_plans(db, visible_only=True)
    return [plan_to_response(plan, features) for plan, features in catalog]


@router.get(
    "/v1/addons",
    response_model=list[AddonResponse],
    dependencies=[Depends(require_feature("addons"))],
)
async def list_addons(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    plan_slug = await plan_service.get_user_plan_slug(db, context.user, context.tenant)
    return [AddonResponse(**addon.to_dict()) for addon in addon_service.list_addons_for_plan(plan_slug)]


@router.get(
    "/v1/addons/mine",
    response_model=list[AddonPurchaseResponse],
    dependencies=[Depends(require_feature("addons"))],
)
async def list_my_addons(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    purchases = await addon_service.list_active_purchases(db, context.user.id)
    return [AddonPurchaseResponse.model_validate(p) for p in purchases]

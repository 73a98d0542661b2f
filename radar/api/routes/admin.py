"""
平台管理员 API 路由

租户生命周期和套餐目录管理，需要 Admin Token 认证。
所有接口通过 X-Admin-Token 请求头认证。
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_db_session
from radar.api.routes.plans import plan_to_response
from radar.auth.admin_token import verify_admin_token
from radar.infra.logging import get_logger
from radar.models import Plan, PlanFeature, Tenant, User
from radar.schemas.plan import PlanCreate, PlanFeatureResponse, PlanFeatureUpsert, PlanResponse, PlanUpdate
from radar.schemas.tenant import (
    TenantCreate,
    TenantCreateResponse,
    TenantDisableRequest,
    TenantListResponse,
    TenantResponse,
    TenantUpdate,
)
from radar.schemas.user import UserCreate, UserCreateResponse, UserListResponse, UserResponse
from radar.services import plans as plan_service
from radar.services import users as user_service

logger = get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(verify_admin_token)],  # 所有接口需要管理员认证
)


def _err(code: str, detail: str) -> dict:
    """统一错误响应结构"""
    return {"code": code, "detail": detail}


async def _get_tenant_or_404(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await db.get(Tenant, tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail=_err("TENANT_NOT_FOUND", "Tenant not found"))
    return tenant


async def _ensure_plan_exists(db: AsyncSession, plan_slug: str) -> None:
    """租户默认套餐必须在目录中（free 作为兜底套餐不强制）"""
    if plan_slug == plan_service.DEFAULT_PLAN_SLUG:
        return
    if await plan_service.get_plan(db, plan_slug) is None:
        raise HTTPException(status_code=400, detail=_err("PLAN_NOT_FOUND", f"Plan '{plan_slug}' not found"))


async def _user_count(db: AsyncSession, tenant_id: str) -> int:
    return (await db.execute(select(func.count(User.id)).where(User.tenant_id == tenant_id))).scalar() or 0


# ==================== 租户管理 ====================

@router.post("/tenants", response_model=TenantCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    data: TenantCreate,
    db: AsyncSession = Depends(get_db_session),
) -> TenantCreateResponse:
    """
    创建租户

    同时创建初始管理员用户并签发一个 API Key。
    初始 API Key 仅在此响应中返回一次，请妥善保管。
    """
    existing = await db.execute(select(Tenant.id).where(Tenant.slug == data.slug))
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_err("TENANT_SLUG_EXISTS", f"Tenant with slug '{data.slug}' already exists"),
        )
    await _ensure_plan_exists(db, data.plan_slug)

    tenant = Tenant(
        slug=data.slug,
        name=data.name,
        plan_slug=data.plan_slug,
        status=data.status,
        settings=data.settings,
        branding=data.branding,
        max_ai_requests_per_day=data.max_ai_requests_per_day,
    )
    db.add(tenant)
    await db.flush()  # 获取 tenant.id

    admin_user, raw_key = await user_service.create_user(
        db,
        tenant=tenant,
        email=data.admin_email,
        role="admin",
        display_name=data.admin_name,
        key_name="Initial Admin Key",
    )
    await db.commit()
    await db.refresh(tenant)

    logger.info(f"租户已创建: {tenant.slug}", extra={"tenant_id": tenant.id})

    response = TenantResponse.model_validate(tenant)
    return TenantCreateResponse(
        **response.model_dump(exclude={"user_count"}),
        user_count=1,
        admin_user_id=admin_user.id,
        initial_api_key=raw_key,
    )


@router.get("/tenants", response_model=TenantListResponse)
async def list_tenants(
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    status_filter: str | None = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db_session),
) -> TenantListResponse:
    """列出所有租户，支持分页和状态过滤"""
    query = select(Tenant)
    count_query = select(func.count(Tenant.id))

    if status_filter:
        query = query.where(Tenant.status == status_filter)
        count_query = count_query.where(Tenant.status == status_filter)

    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Tenant.created_at.desc()).offset(skip).limit(limit)
    tenants = (await db.execute(query)).scalars().all()

    return TenantListResponse(
        items=[TenantResponse.model_validate(t) for t in tenants],
        total=total,
        skip=skip,
        limit=limit,
    )


@router.get("/tenants/{tenant_id}", response_model=TenantResponse)
async def get_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> TenantResponse:
    """租户详情（含用户数）"""
    tenant = await _get_tenant_or_404(db, tenant_id)
    response = TenantResponse.model_validate(tenant)
    response.user_count = await _user_count(db, tenant_id)
    return response


@router.patch("/tenants/{tenant_id}", response_model=TenantResponse)
async def update_tenant(
    tenant_id: str,
    data: TenantUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> TenantResponse:
    tenant = await _get_tenant_or_404(db, tenant_id)

    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("plan_slug"):
        await _ensure_plan_exists(db, update_data["plan_slug"])

    for key, value in update_data.items():
        setattr(tenant, key, value)

    await db.commit()
    await db.refresh(tenant)
    return TenantResponse.model_validate(tenant)


@router.post("/tenants/{tenant_id}/disable", response_model=TenantResponse)
async def disable_tenant(
    tenant_id: str,
    data: TenantDisableRequest | None = None,
    db: AsyncSession = Depends(get_db_session),
) -> TenantResponse:
    """
    暂停租户

    暂停后，该租户下所有 API Key 的请求都会被拒绝（403 TENANT_DISABLED）。
    """
    tenant = await _get_tenant_or_404(db, tenant_id)
    if tenant.status == "suspended":
        raise HTTPException(status_code=400, detail=_err("TENANT_ALREADY_DISABLED", "Tenant is already disabled"))

    tenant.status = "suspended"
    tenant.disabled_at = datetime.now(timezone.utc)
    tenant.disabled_reason = data.reason if data else None

    await db.commit()
    await db.refresh(tenant)
    logger.warning(f"租户已暂停: {tenant.slug}", extra={"tenant_id": tenant.id})
    return TenantResponse.model_validate(tenant)


@router.post("/tenants/{tenant_id}/enable", response_model=TenantResponse)
async def enable_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> TenantResponse:
    tenant = await _get_tenant_or_404(db, tenant_id)
    if tenant.is_active:
        raise HTTPException(status_code=400, detail=_err("TENANT_ALREADY_ACTIVE", "Tenant is already active"))

    tenant.status = "active"
    tenant.disabled_at = None
    tenant.disabled_reason = None

    await db.commit()
    await db.refresh(tenant)
    return TenantResponse.model_validate(tenant)


@router.delete("/tenants/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant(
    tenant_id: str,
    db: AsyncSession = Depends(get_db_session),
) -> None:
    """
    删除租户

    警告：此操作将级联删除租户的所有数据（用户、日记、聊天、订阅等）。
    """
    tenant = await _get_tenant_or_404(db, tenant_id)
    await db.delete(tenant)
    await db.commit()
    logger.warning(f"租户已删除: {tenant_id}")


# ==================== 租户用户 ====================

@router.get("/tenants/{tenant_id}/users", response_model=UserListResponse)
async def list_tenant_users(
    tenant_id: str,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db_session),
) -> UserListResponse:
    await _get_tenant_or_404(db, tenant_id)
    result = await db.execute(
        select(User).where(User.tenant_id == tenant_id).order_by(User.created_at.desc()).offset(skip).limit(limit)
    )
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in result.scalars().all()],
        total=await _user_count(db, tenant_id),
    )


@router.post("/tenants/{tenant_id}/users", response_model=UserCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant_user(
    tenant_id: str,
    data: UserCreate,
    db: AsyncSession = Depends(get_db_session),
) -> UserCreateResponse:
    """在租户下创建用户，并返回该用户的 API Key（仅此一次）"""
    tenant = await _get_tenant_or_404(db, tenant_id)
    try:
        user, raw_key = await user_service.create_user(
            db,
            tenant=tenant,
            email=data.email,
            role=data.role,
            display_name=data.display_name,
            phone=data.phone,
        )
    except user_service.UserEmailConflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_err("USER_EMAIL_EXISTS", f"User '{data.email}' already exists in this tenant"),
        )
    await db.commit()
    await db.refresh(user)

    response = UserResponse.model_validate(user)
    return UserCreateResponse(**response.model_dump(), api_key=raw_key)


# ==================== 套餐目录 ====================

async def _get_plan_or_404(db: AsyncSession, slug: str) -> Plan:
    plan = await plan_service.get_plan(db, slug)
    if plan is None:
        raise HTTPException(status_code=404, detail=_err("PLAN_NOT_FOUND", f"Plan '{slug}' not found"))
    return plan


@router.get("/plans", response_model=list[PlanResponse])
async def list_plans(db: AsyncSession = Depends(get_db_session)) -> list[PlanResponse]:
    """全部套餐（含隐藏套餐）"""
    catalog = await plan_service.list_plans(db, visible_only=False)
    return [plan_to_response(plan, features) for plan, features in catalog]


@router.post("/plans", response_model=PlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    data: PlanCreate,
    db: AsyncSession = Depends(get_db_session),
) -> PlanResponse:
    if await plan_service.get_plan(db, data.slug) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_err("PLAN_EXISTS", f"Plan '{data.slug}' already exists"),
        )

    plan = Plan(**data.model_dump(exclude={"features"}))
    db.add(plan)
    await db.flush()
    for feature in data.features:
        db.add(PlanFeature(plan_slug=plan.slug, **feature.model_dump()))
    await db.commit()
    await db.refresh(plan)

    return plan_to_response(plan, await plan_service.get_plan_features(db, plan.slug))


@router.get("/plans/{slug}", response_model=PlanResponse)
async def get_plan(slug: str, db: AsyncSession = Depends(get_db_session)) -> PlanResponse:
    plan = await _get_plan_or_404(db, slug)
    return plan_to_response(plan, await plan_service.get_plan_features(db, slug))


@router.patch("/plans/{slug}", response_model=PlanResponse)
async def update_plan(
    slug: str,
    data: PlanUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> PlanResponse:
    plan = await _get_plan_or_404(db, slug)
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(plan, key, value)
    await db.commit()
    await db.refresh(plan)
    return plan_to_response(plan, await plan_service.get_plan_features(db, slug))


@router.delete("/plans/{slug}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(slug: str, db: AsyncSession = Depends(get_db_session)) -> None:
    """删除套餐及其功能额度；已有订阅保持原 plan_slug，额度回落到 free 套餐"""
    plan = await _get_plan_or_404(db, slug)
    await db.execute(delete(PlanFeature).where(PlanFeature.plan_slug == slug))
    await db.delete(plan)
    await db.commit()


@router.put("/plans/{slug}/features", response_model=PlanFeatureResponse)
async def upsert_plan_feature(
    slug: str,
    data: PlanFeatureUpsert,
    db: AsyncSession = Depends(get_db_session),
) -> PlanFeatureResponse:
    """新增或覆盖套餐的某个功能额度"""
    await _get_plan_or_404(db, slug)
    feature = await plan_service.upsert_plan_feature(db, slug, data.model_dump())
    await db.commit()
    await db.refresh(feature)
    return PlanFeatureResponse.model_validate(feature)

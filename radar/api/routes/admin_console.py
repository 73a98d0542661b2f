"""
租户管理台接口 (/v1/admin)

租户管理员（admin / super_admin）管理本租户的用户、API Key、功能覆盖、
风险预警、内容和审计日志。所有查询都限定在调用方所在租户内。
AI 相关配置（路由、人设、流程图、用量）在 admin_ai.py。
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_db_session, require_roles
from radar.auth.api_key import APIKeyContext
from radar.infra.logging import get_logger
from radar.models import APIKey, FeatureOverride, RiskAlert, User
from radar.schemas.audit import AuditLogListResponse, AuditLogResponse, AuditStatsResponse
from radar.schemas.content import ContentCreate, ContentListResponse, ContentResponse, ContentUpdate
from radar.schemas.plan import FeatureOverrideCreate, FeatureOverrideResponse
from radar.schemas.risk import RiskAlertListResponse, RiskAlertResolve, RiskAlertResponse
from radar.schemas.user import (
    APIKeyCreate,
    APIKeyInfo,
    APIKeySecret,
    UserListResponse,
    UserResponse,
    UserUpdate,
)
from radar.services import audit as audit_service
from radar.services import content as content_service
from radar.services import users as user_service

logger = get_logger(__name__)

require_tenant_admin = require_roles("admin", "super_admin")

router = APIRouter(
    prefix="/v1/admin",
    tags=["admin-console"],
    dependencies=[Depends(require_tenant_admin)],
)


def _err(code: str, detail: str) -> dict:
    """统一错误响应结构"""
    return {"code": code, "detail": detail}


def _not_found(code: str, detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_err(code, detail))


async def _get_tenant_user(db: AsyncSession, tenant_id: str, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None or user.tenant_id != tenant_id:
        raise _not_found("USER_NOT_FOUND", f"User {user_id} not found")
    return user


# ==================== 用户管理 ====================

@router.get("/users", response_model=UserListResponse)
async def list_users(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    role: str | None = Query(None),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    conditions = [User.tenant_id == context.tenant.id]
    if role:
        conditions.append(User.role == role)

    total = await db.scalar(select(func.count(User.id)).where(*conditions)) or 0
    result = await db.execute(
        select(User).where(*conditions).order_by(User.created_at.desc()).offset(skip).limit(limit)
    )
    return UserListResponse(
        items=[UserResponse.model_validate(u) for u in result.scalars().all()],
        total=total,
    )


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    payload: UserUpdate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """
    修改用户角色 / 启用状态

    只有 super_admin 可以授予 super_admin；管理员不能停用自己。
    """
    user = await _get_tenant_user(db, context.tenant.id, user_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get("role") == "super_admin" and context.role != "super_admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=_err("FORBIDDEN", "Only super_admin can grant super_admin"),
        )
    if user.id == context.user.id and changes.get("is_active") is False:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_err("CANNOT_DISABLE_SELF", "You cannot deactivate your own account"),
        )

    for key, value in changes.items():
        setattr(user, key, value)
    await db.commit()
    await db.refresh(user)

    logger.info(f"用户已更新: {user.id}", extra={"changes": list(changes)})
    return UserResponse.model_validate(user)


# ==================== API Key 管理 ====================

@router.get("/api-keys", response_model=list[APIKeyInfo])
async def list_api_keys(
    user_id: str | None = Query(None),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    conditions = [APIKey.tenant_id == context.tenant.id]
    if user_id:
        conditions.append(APIKey.user_id == user_id)
    result = await db.execute(select(APIKey).where(*conditions).order_by(APIKey.created_at.desc()))
    return [APIKeyInfo.model_validate(k) for k in result.scalars().all()]


@router.post("/api-keys", response_model=APIKeySecret, status_code=status.HTTP_201_CREATED)
async def issue_api_key(
    payload: APIKeyCreate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """为本租户用户签发 API Key，完整 Key 仅在此响应中返回一次"""
    user = await _get_tenant_user(db, context.tenant.id, payload.user_id)
    api_key, raw_key = await user_service.issue_api_key(
        db,
        user=user,
        name=payload.name,
        expires_at=payload.expires_at,
        rate_limit_per_minute=payload.rate_limit_per_minute,
    )
    await db.commit()
    await db.refresh(api_key)

    info = APIKeyInfo.model_validate(api_key)
    return APIKeySecret(**info.model_dump(), api_key=raw_key)


@router.post("/api-keys/{key_id}/revoke", response_model=APIKeyInfo)
async def revoke_api_key(
    key_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    api_key = await db.get(APIKey, key_id)
    if api_key is None or api_key.tenant_id != context.tenant.id:
        raise _not_found("API_KEY_NOT_FOUND", f"API key {key_id} not found")
    if api_key.id == context.api_key.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_err("CANNOT_REVOKE_CURRENT_KEY", "Cannot revoke the key used for this request"),
        )

    api_key.revoked = True
    await db.commit()
    return APIKeyInfo.model_validate(api_key)


# ==================== 功能覆盖 ====================

@router.get("/overrides", response_model=list[FeatureOverrideResponse])
async def list_overrides(
    user_id: str | None = Query(None),
    include_inactive: bool = Query(False),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    conditions = [FeatureOverride.tenant_id == context.tenant.id]
    if user_id:
        conditions.append(FeatureOverride.user_id == user_id)
    if not include_inactive:
        conditions.append(FeatureOverride.is_active.is_(True))
    result = await db.execute(
        select(FeatureOverride).where(*conditions).order_by(FeatureOverride.created_at.desc())
    )
    return [FeatureOverrideResponse.model_validate(o) for o in result.scalars().all()]


@router.post("/overrides", response_model=FeatureOverrideResponse, status_code=status.HTTP_201_CREATED)
async def create_override(
    payload: FeatureOverrideCreate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    """
    为用户设置功能覆盖

    同一用户同一功能只保留一个生效覆盖，新建时旧覆盖自动失效。
    """
    await _get_tenant_user(db, context.tenant.id, payload.user_id)

    previous = await db.execute(
        select(FeatureOverride).where(
            FeatureOverride.user_id == payload.user_id,
            FeatureOverride.feature_key == payload.feature_key,
            FeatureOverride.is_active.is_(True),
        )
    )
    for override in previous.scalars().all():
        override.is_active = False

    override = FeatureOverride(
        tenant_id=context.tenant.id,
        created_by=context.user.id,
        **payload.model_dump(),
    )
    db.add(override)
    await db.commit()
    await db.refresh(override)
    return FeatureOverrideResponse.model_validate(override)


@router.delete("/overrides/{override_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_override(
    override_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    override = await db.get(FeatureOverride, override_id)
    if override is None or override.tenant_id != context.tenant.id:
        raise _not_found("OVERRIDE_NOT_FOUND", f"Override {override_id} not found")
    override.is_active = False
    await db.commit()


# ==================== 风险预警 ====================

@router.get("/risk-alerts", response_model=RiskAlertListResponse)
async def list_risk_alerts(
    level: str | None = Query(None),
    resolved: bool | None = Query(None),
    user_id: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    conditions = [RiskAlert.tenant_id == context.tenant.id]
    if level:
        conditions.append(RiskAlert.level == level.upper())
    if resolved is not None:
        conditions.append(RiskAlert.is_resolved.is_(resolved))
    if user_id:
        conditions.append(RiskAlert.user_id == user_id)

    total = await db.scalar(select(func.count(RiskAlert.id)).where(*conditions)) or 0
    result = await db.execute(
        select(RiskAlert).where(*conditions).order_by(RiskAlert.created_at.desc()).offset(skip).limit(limit)
    )
    return RiskAlertListResponse(
        items=[RiskAlertResponse.model_validate(a) for a in result.scalars().all()],
        total=total,
    )


@router.post("/risk-alerts/{alert_id}/resolve", response_model=RiskAlertResponse)
async def resolve_risk_alert(
    alert_id: str,
    payload: RiskAlertResolve,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    alert = await db.get(RiskAlert, alert_id)
    if alert is None or alert.tenant_id != context.tenant.id:
        raise _not_found("ALERT_NOT_FOUND", f"Risk alert {alert_id} not found")

    if not alert.is_resolved:
        alert.is_resolved = True
        alert.resolved_at = datetime.now(timezone.utc)
        alert.resolved_by = context.user.id
    if payload.note is not None:
        alert.resolution_note = payload.note
    await db.commit()
    return RiskAlertResponse.model_validate(alert)


# ==================== 内容管理 ====================

@router.get("/content", response_model=ContentListResponse)
async def list_content(
    status_filter: str | None = Query(None, alias="status"),
    category: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    items, total = await content_service.list_items(
        db, context.tenant.id, status=status_filter, category=category, limit=limit, offset=skip
    )
    return ContentListResponse(items=[ContentResponse.model_validate(i) for i in items], total=total)


@router.post("/content", response_model=ContentResponse, status_code=status.HTTP_201_CREATED)
async def create_content(
    payload: ContentCreate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    try:
        item = await content_service.create_item(
            db, tenant_id=context.tenant.id, author_id=context.user.id, data=payload.model_dump()
        )
    except content_service.ContentSlugConflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_err("SLUG_CONFLICT", f"Slug '{payload.slug}' already exists"),
        )
    return ContentResponse.model_validate(item)


async def _get_content_or_404(db: AsyncSession, tenant_id: str, item_id: str):
    item = await content_service.get_item(db, tenant_id, item_id)
    if item is None:
        raise _not_found("CONTENT_NOT_FOUND", f"Content {item_id} not found")
    return item


@router.get("/content/{item_id}", response_model=ContentResponse)
async def get_content(
    item_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return ContentResponse.model_validate(await _get_content_or_404(db, context.tenant.id, item_id))


@router.patch("/content/{item_id}", response_model=ContentResponse)
async def update_content(
    item_id: str,
    payload: ContentUpdate,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    item = await _get_content_or_404(db, context.tenant.id, item_id)
    try:
        item = await content_service.update_item(db, item, payload.model_dump(exclude_unset=True))
    except content_service.ContentSlugConflict:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=_err("SLUG_CONFLICT", f"Slug '{payload.slug}' already exists"),
        )
    return ContentResponse.model_validate(item)


@router.delete("/content/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(
    item_id: str,
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    item = await _get_content_or_404(db, context.tenant.id, item_id)
    await content_service.delete_item(db, item)


# ==================== 审计日志 ====================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    user_id: str | None = Query(None),
    action: str | None = Query(None),
    resource_type: str | None = Query(None),
    status_code: int | None = Query(None),
    start_time: datetime | None = Query(None),
    end_time: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    logs = await audit_service.query_audit_logs(
        db,
        tenant_id=context.tenant.id,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        status_code=status_code,
        start_time=start_time,
        end_time=end_time,
        limit=limit,
        offset=offset,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(log) for log in logs],
        limit=limit,
        offset=offset,
    )


@router.get("/audit-logs/stats", response_model=AuditStatsResponse)
async def audit_stats(
    hours: int = Query(24, ge=1, le=24 * 30),
    context: APIKeyContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_db_session),
):
    stats = await audit_service.get_audit_stats(db, tenant_id=context.tenant.id, hours=hours)
    return AuditStatsResponse(**stats)

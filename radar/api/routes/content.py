"""
内容阅读接口（用户端）

只返回已发布内容：本租户内容 + 平台全局内容。管理端 CRUD 在 admin_console.py。
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_db_session, get_tenant, require_feature
from radar.models import Tenant
from radar.schemas.content import ContentListResponse, ContentResponse
from radar.services import content as content_service

router = APIRouter(dependencies=[Depends(require_feature("content"))])


@router.get("/v1/content", response_model=ContentListResponse)
async def list_content(
    category: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    tenant: Tenant = Depends(get_tenant),
    db: AsyncSession = Depends(get_db_session),
):
    items = await content_service.list_published(db, tenant.id, category=category, limit=limit, offset=offset)
    return ContentListResponse(items=[ContentResponse.model_validate(i) for i in items], total=len(items))


@router.get("/v1/content/{slug}", response_model=ContentResponse)
async def get_content(
    slug: str,
    tenant: Tenant = Depends(get_tenant),
    db: AsyncSession = Depends(get_db_session),
):
    item = await content_service.get_published_by_slug(db, tenant.id, slug)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "CONTENT_NOT_FOUND", "detail": f"Content '{slug}' not found"},
        )
    return ContentResponse.model_validate(item)

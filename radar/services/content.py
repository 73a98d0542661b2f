"""
内容管理服务

内容条目属于某个租户，tenant_id 为空的是平台全局内容。
用户端只看到已发布的本租户内容 + 全局内容；同一 slug 租户内容优先。
"""

from datetime import datetime, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.models import ContentItem

CONTENT_STATUSES = ("draft", "published", "archived")


class ContentSlugConflict(Exception):
    """同一租户内 slug 重复"""


async def _slug_taken(session: AsyncSession, tenant_id: str | None, slug: str, exclude_id: str | None = None) -> bool:
    tenant_condition = ContentItem.tenant_id == tenant_id if tenant_id else ContentItem.tenant_id.is_(None)
    query = select(ContentItem.id).where(tenant_condition, ContentItem.slug == slug)
    if exclude_id:
        query = query.where(ContentItem.id != exclude_id)
    return (await session.execute(query.limit(1))).scalar_one_or_none() is not None


async def create_item(
    session: AsyncSession,
    *,
    tenant_id: str | None,
    author_id: str | None,
    data: dict,
) -> ContentItem:
    if await _slug_taken(session, tenant_id, data["slug"]):
        raise ContentSlugConflict(data["slug"])

    item = ContentItem(tenant_id=tenant_id, author_id=author_id, **data)
    if item.status == "published":
        item.published_at = datetime.now(timezone.utc)
    session.add(item)
    await session.commit()
    return item


async def list_items(
    session: AsyncSession,
    tenant_id: str,
    *,
    status: str | None = None,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[ContentItem], int]:
    """管理端列表：只包含本租户内容"""
    conditions = [ContentItem.tenant_id == tenant_id]
    if status:
        conditions.append(ContentItem.status == status)
    if category:
        conditions.append(ContentItem.category == category)

    total = await session.scalar(select(func.count(ContentItem.id)).where(*conditions)) or 0
    result = await session.execute(
        select(ContentItem)
        .where(*conditions)
        .order_by(ContentItem.updated_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def get_item(session: AsyncSession, tenant_id: str, item_id: str) -> ContentItem | None:
    item = await session.get(ContentItem, item_id)
    if item is None or item.tenant_id != tenant_id:
        return None
    return item


async def update_item(session: AsyncSession, item: ContentItem, changes: dict) -> ContentItem:
    if "slug" in changes and changes["slug"] != item.slug:
        if await _slug_taken(session, item.tenant_id, changes["slug"], exclude_id=item.id):
            raise ContentSlugConflict(changes["slug"])

    was_published = item.status == "published"
    for key, value in changes.items():
        setattr(item, key, value)

    if item.status == "published" and not was_published:
        item.published_at = datetime.now(timezone.utc)

    await session.commit()
    return item


async def delete_item(session: AsyncSession, item: ContentItem) -> None:
    await session.delete(item)
    await session.commit()


async def list_published(
    session: AsyncSession,
    tenant_id: str,
    *,
    category: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ContentItem]:
    conditions = [
        ContentItem.status == "published",
        or_(ContentItem.tenant_id == tenant_id, ContentItem.tenant_id.is_(None)),
    ]
    if category:
        conditions.append(ContentItem.category == category)

    result = await session.execute(
        select(ContentItem)
        .where(*conditions)
        .order_by(ContentItem.published_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_published_by_slug(session: AsyncSession, tenant_id: str, slug: str) -> ContentItem | None:
    result = await session.execute(
        select(ContentItem).where(
            ContentItem.slug == slug,
            ContentItem.status == "published",
            or_(ContentItem.tenant_id == tenant_id, ContentItem.tenant_id.is_(None)),
        )
    )
    items = result.scalars().all()
    if not items:
        return None
    return sorted(items, key=lambda i: 0 if i.tenant_id else 1)[0]

"""站内通知接口"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session
from radar.auth.api_key import APIKeyContext
from radar.schemas.notification import NotificationListResponse, NotificationResponse, ReadAllResponse
from radar.services import notifications as notification_service

router = APIRouter()


@router.get("/v1/notifications", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    items, total = await notification_service.list_notifications(
        db, context.user.id, unread_only=unread_only, limit=limit, offset=offset
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        total=total,
        unread_only=unread_only,
    )


@router.post("/v1/notifications/read-all", response_model=ReadAllResponse)
async def mark_all_notifications_read(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    updated = await notification_service.mark_all_read(db, context.user.id)
    await db.commit()
    return ReadAllResponse(updated=updated)


@router.post("/v1/notifications/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: str,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    notification = await notification_service.mark_read(db, context.user.id, notification_id)
    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "NOTIFICATION_NOT_FOUND", "detail": "Notification not found"},
        )
    await db.commit()
    return NotificationResponse.model_validate(notification)

"""
通知服务

一次 notify() 调用会：
1. 总是写入一条站内通知（in_app）
2. 用户开通了 WhatsApp 且平台已配置时，发送 WhatsApp 消息
3. 用户允许邮件且 SMTP 已配置时，发送邮件

外部渠道失败只把对应记录标记为 failed 并记日志，不影响调用方的主流程。
"""

from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from radar.config import get_settings
from radar.exceptions import NotificationError
from radar.infra import mailer
from radar.infra.logging import get_logger
from radar.infra.whatsapp import get_whatsapp_client, render_template
from radar.models import Notification, User

logger = get_logger(__name__)

NOTIFICATION_CATEGORIES = (
    "risk_alert",
    "safety_plan",
    "journal_reminder",
    "chat_summary",
    "billing",
    "system",
    "marketing",
)


def _default_channels(user: User) -> list[str]:
    settings = get_settings()
    channels = ["in_app"]
    if user.whatsapp_opt_in and user.phone and settings.whatsapp_enabled:
        channels.append("whatsapp")
    if user.email_notifications and user.email and settings.smtp_enabled:
        channels.append("email")
    return channels


# 模板消息中 {{link}} 指向的前端页面
TEMPLATE_LINK_PATHS = {
    "welcome": "/dashboard",
    "risk_alert": "/plano-seguranca",
    "reminder": "/diario",
}


def _template_variables(template: str, user: User) -> dict[str, str]:
    base_url = get_settings().public_app_url.rstrip("/")
    return {
        "name": user.display_name or "",
        "link": base_url + TEMPLATE_LINK_PATHS.get(template, ""),
    }


async def _deliver(notification: Notification, user: User, whatsapp_template: str | None = None) -> None:
    """通过外部渠道发送一条通知，结果写回记录"""
    try:
        if notification.channel == "whatsapp":
            client = get_whatsapp_client()
            if whatsapp_template:
                notification.external_id = await client.send_template(
                    user.phone, whatsapp_template, _template_variables(whatsapp_template, user)
                )
            else:
                text = f"*{notification.title}*\n\n{notification.body}"
                notification.external_id = await client.send_text(user.phone, text)
        elif notification.channel == "email":
            await mailer.send_email(user.email, notification.title, notification.body)
        notification.status = "sent"
    except NotificationError as e:
        notification.status = "failed"
        notification.error = str(e)
        logger.warning(
            f"通知发送失败 ({notification.channel}): {e}",
            extra={"notification_id": notification.id},
        )


async def notify(
    session: AsyncSession,
    *,
    user: User,
    title: str,
    body: str,
    category: str = "system",
    channels: list[str] | None = None,
    whatsapp_template: str | None = None,
) -> list[Notification]:
    """
    给用户发送通知（不 commit）

    Args:
        channels: 指定渠道；为空时按用户偏好和平台配置自动选择
        whatsapp_template: WhatsApp 渠道改用预设模板（welcome / risk_alert / reminder）

    Returns:
        每个渠道一条 Notification 记录
    """
    if channels is None:
        channels = _default_channels(user)
    elif "in_app" not in channels:
        channels = ["in_app", *channels]

    created = []
    for channel in channels:
        notification = Notification(
            tenant_id=user.tenant_id,
            user_id=user.id,
            channel=channel,
            category=category,
            title=title,
            body=body,
            status="sent" if channel == "in_app" else "pending",
        )
        session.add(notification)
        created.append(notification)

    await session.flush()

    for notification in created:
        if notification.channel != "in_app":
            await _deliver(notification, user, whatsapp_template)

    return created


async def send_whatsapp_welcome(session: AsyncSession, user: User) -> list[Notification]:
    """用户开通 WhatsApp 后发送欢迎模板（不 commit）；平台未配置或缺少手机号时不发送"""
    if not (user.phone and get_settings().whatsapp_enabled):
        return []
    return await notify(
        session,
        user=user,
        title="Bem-vinda ao Radar",
        body=render_template("welcome", _template_variables("welcome", user)),
        category="system",
        channels=["whatsapp"],
        whatsapp_template="welcome",
    )


async def list_notifications(
    session: AsyncSession,
    user_id: str,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    conditions = [Notification.user_id == user_id, Notification.channel == "in_app"]
    if unread_only:
        conditions.append(Notification.read_at.is_(None))

    total = await session.scalar(select(func.count(Notification.id)).where(*conditions)) or 0
    result = await session.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total


async def mark_read(session: AsyncSession, user_id: str, notification_id: str) -> Notification | None:
    notification = await session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        return None
    if notification.read_at is None:
        notification.read_at = datetime.now(timezone.utc)
        notification.status = "read"
    return notification


async def mark_all_read(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        update(Notification)
        .where(
            Notification.user_id == user_id,
            Notification.channel == "in_app",
            Notification.read_at.is_(None),
        )
        .values(read_at=datetime.now(timezone.utc), status="read")
    )
    return result.rowcount or 0

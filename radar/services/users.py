"""
用户与 API Key 服务

平台管理端创建租户/用户、租户管理台签发 Key 都走这里。
完整 Key 只在创建时返回一次，数据库只存 SHA256 哈希。
"""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.auth.api_key import generate_api_key
from radar.config import get_settings
from radar.infra.whatsapp import format_phone_number
from radar.models import (
    APIKey,
    ChatMessage,
    JournalEntry,
    RiskAlert,
    Subscription,
    Tenant,
    User,
)


class UserEmailConflict(Exception):
    """同一租户内邮箱重复"""


def normalize_phone(phone: str | None) -> str | None:
    """手机号统一保存为纯数字，便于 WhatsApp 入站消息匹配用户"""
    if not phone:
        return None
    return format_phone_number(phone) or None


async def issue_api_key(
    session: AsyncSession,
    *,
    user: User,
    name: str,
    expires_at: datetime | None = None,
    rate_limit_per_minute: int | None = None,
) -> tuple[APIKey, str]:
    """
    为用户签发 API Key（不 commit）

    Returns:
        (APIKey 记录, 完整 Key)
    """
    raw_key, hashed, prefix = generate_api_key(get_settings().api_key_prefix)
    api_key = APIKey(
        tenant_id=user.tenant_id,
        user_id=user.id,
        name=name,
        prefix=prefix,
        hashed_key=hashed,
        expires_at=expires_at,
        rate_limit_per_minute=rate_limit_per_minute,
    )
    session.add(api_key)
    return api_key, raw_key


async def create_user(
    session: AsyncSession,
    *,
    tenant: Tenant,
    email: str,
    role: str = "usuaria",
    display_name: str | None = None,
    phone: str | None = None,
    key_name: str = "Default Key",
) -> tuple[User, str]:
    """
    创建用户并签发一个 API Key（不 commit）

    Raises:
        UserEmailConflict: 租户内邮箱已存在
    """
    email = email.strip().lower()
    existing = await session.execute(
        select(User.id).where(User.tenant_id == tenant.id, User.email == email)
    )
    if existing.scalar_one_or_none() is not None:
        raise UserEmailConflict(email)

    user = User(
        tenant_id=tenant.id,
        email=email,
        role=role,
        display_name=display_name,
        phone=normalize_phone(phone),
    )
    session.add(user)
    await session.flush()

    _, raw_key = await issue_api_key(session, user=user, name=key_name)
    return user, raw_key


async def export_user_data(session: AsyncSession, user: User) -> dict:
    """用户数据导出：资料、日记、聊天、风险预警、订阅"""

    async def _all(model, *conditions):
        result = await session.execute(select(model).where(*conditions).order_by(model.created_at))
        return list(result.scalars().all())

    entries = await _all(JournalEntry, JournalEntry.user_id == user.id, JournalEntry.deleted_at.is_(None))
    messages = await _all(ChatMessage, ChatMessage.user_id == user.id)
    alerts = await _all(RiskAlert, RiskAlert.user_id == user.id)
    subscriptions = await _all(Subscription, Subscription.user_id == user.id)

    return {
        "profile": {
            "id": user.id,
            "email": user.email,
            "display_name": user.display_name,
            "role": user.role,
            "phone": user.phone,
            "created_at": user.created_at,
        },
        "journal_entries": [
            {
                "id": e.id,
                "title": e.title,
                "content": e.content,
                "tags": e.tags,
                "emotions": e.emotions,
                "impact_score": e.impact_score,
                "entry_type": e.entry_type,
                "risk_level": e.risk_level,
                "created_at": e.created_at,
            }
            for e in entries
        ],
        "chat_messages": [
            {
                "session_id": m.session_id,
                "channel": m.channel,
                "role": m.role,
                "content": m.content,
                "created_at": m.created_at,
            }
            for m in messages
        ],
        "risk_alerts": [
            {
                "level": a.level,
                "category": a.category,
                "source": a.source,
                "recommendation": a.recommendation,
                "is_resolved": a.is_resolved,
                "created_at": a.created_at,
            }
            for a in alerts
        ],
        "subscriptions": [
            {
                "plan_slug": s.plan_slug,
                "status": s.status,
                "period": s.period,
                "current_period_end": s.current_period_end,
                "created_at": s.created_at,
            }
            for s in subscriptions
        ],
    }
